"""
运行时配置

所有配置项均可通过 TILELOAD_* 环境变量覆盖，未设置时回退到 constants 中的默认值。
本模块的使用者对配置只读。
"""

from __future__ import annotations

import os
import re
from urllib.parse import urlsplit

from tileload.config.constants import APIDefaults, HTTPDefaults, ImageQueueDefaults


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


class Config:
    """tileload 配置对象"""

    def __init__(self) -> None:
        # === 图片请求队列 ===
        self.max_parallel_image_requests = _env_int(
            "TILELOAD_MAX_PARALLEL_IMAGE_REQUESTS",
            ImageQueueDefaults.MAX_PARALLEL_IMAGE_REQUESTS,
        )
        if self.max_parallel_image_requests <= 0:
            raise ValueError(
                "TILELOAD_MAX_PARALLEL_IMAGE_REQUESTS 必须为正整数, "
                f"当前值: {self.max_parallel_image_requests}"
            )

        # === HTTP 客户端 ===
        self.http_connect_timeout = _env_float(
            "TILELOAD_HTTP_CONNECT_TIMEOUT", HTTPDefaults.CONNECT_TIMEOUT
        )
        self.http_read_timeout = _env_float("TILELOAD_HTTP_READ_TIMEOUT", HTTPDefaults.READ_TIMEOUT)
        self.http_write_timeout = _env_float(
            "TILELOAD_HTTP_WRITE_TIMEOUT", HTTPDefaults.WRITE_TIMEOUT
        )
        self.http_pool_timeout = _env_float("TILELOAD_HTTP_POOL_TIMEOUT", HTTPDefaults.POOL_TIMEOUT)
        self.http_max_connections = _env_int(
            "TILELOAD_HTTP_MAX_CONNECTIONS", HTTPDefaults.MAX_CONNECTIONS
        )
        self.http_keepalive_connections = _env_int(
            "TILELOAD_HTTP_KEEPALIVE_CONNECTIONS", HTTPDefaults.KEEPALIVE_CONNECTIONS
        )
        self.http_keepalive_expiry = _env_float(
            "TILELOAD_HTTP_KEEPALIVE_EXPIRY", HTTPDefaults.KEEPALIVE_EXPIRY
        )

        # === 页面来源（用于 Referer 与 same-origin 凭据判断）===
        # 为空、"null" 或 "file://" 时不发送 Referer
        self.page_origin = os.getenv("TILELOAD_PAGE_ORIGIN", "")
        self.page_path = os.getenv("TILELOAD_PAGE_PATH", "/")

        # === 第一方 API ===
        self.api_url = os.getenv("TILELOAD_API_URL", APIDefaults.API_URL)
        self.first_party_host_pattern = os.getenv(
            "TILELOAD_FIRST_PARTY_HOST_PATTERN", APIDefaults.FIRST_PARTY_HOST_PATTERN
        )
        self.access_token_help_url = os.getenv(
            "TILELOAD_ACCESS_TOKEN_HELP_URL", APIDefaults.ACCESS_TOKEN_HELP_URL
        )
        self._first_party_re = re.compile(self.first_party_host_pattern, re.IGNORECASE)
        # 自定义 API 地址的主机同样视为第一方
        self._api_host = urlsplit(self.api_url).netloc.lower()

    def is_first_party_url(self, url: str) -> bool:
        """判断 URL 是否指向第一方 API 主机（匹配主机正则，或与 api_url 同主机）"""
        if not url:
            return False
        if self._first_party_re.search(url):
            return True
        return bool(self._api_host) and urlsplit(url).netloc.lower() == self._api_host


config = Config()
