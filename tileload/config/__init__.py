from tileload.config.settings import Config, config

__all__ = ["Config", "config"]
