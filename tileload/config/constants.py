"""
默认配置常量

环境变量未设置时使用的默认值，集中在这里便于测试和文档查阅。
"""


class ImageQueueDefaults:
    """图片请求队列默认值"""

    # 同时进行中的图片请求（获取 + 解码）上限
    MAX_PARALLEL_IMAGE_REQUESTS = 16


class HTTPDefaults:
    """HTTP 客户端默认值（秒）"""

    CONNECT_TIMEOUT = 10.0
    READ_TIMEOUT = 60.0
    WRITE_TIMEOUT = 60.0
    POOL_TIMEOUT = 10.0

    MAX_CONNECTIONS = 100
    KEEPALIVE_CONNECTIONS = 20
    KEEPALIVE_EXPIRY = 30.0


class APIDefaults:
    """第一方 API 相关默认值"""

    API_URL = "https://api.mapbox.com"
    # 匹配第一方 API 主机（含子域名），用于 401 错误提示增强
    FIRST_PARTY_HOST_PATTERN = r"^((https?:)?//)?([^/]+\.)?mapbox\.(cn|com)(/|\?|$)"
    ACCESS_TOKEN_HELP_URL = (
        "https://www.mapbox.com/api-documentation/#access-tokens-and-token-scopes"
    )
