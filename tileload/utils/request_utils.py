"""
URL 相关工具函数
"""

from __future__ import annotations

import re
from urllib.parse import urlsplit

# URL 中需要脱敏的查询参数
_SENSITIVE_QUERY_PARAMS_PATTERN = re.compile(
    r"([?&])(access_token|key|api_key|apikey|token|secret|password)=([^&]*)",
    re.IGNORECASE,
)

_LOCAL_FILE_PATTERN = re.compile(r"^file:", re.IGNORECASE)

# 本地文件打开的页面，其 origin 会是 "null" 或 "file://"
_OPAQUE_ORIGINS = frozenset({"", "null", "file://"})


def redact_url_for_log(url: str) -> str:
    """将 ?access_token=xxx 之类的敏感参数替换为 ***，用于日志记录"""
    return _SENSITIVE_QUERY_PARAMS_PATTERN.sub(r"\1\2=***", url)


def is_local_file_url(url: str) -> bool:
    return bool(_LOCAL_FILE_PATTERN.match(url))


def get_referrer(origin: str | None, path: str | None = "/") -> str | None:
    """
    根据页面来源计算 Referer

    本地文件页面（origin 为空 / "null" / "file://"）不发送 Referer。
    """
    if not origin or origin in _OPAQUE_ORIGINS:
        return None
    return origin.rstrip("/") + (path or "/")


def _origin_of(url: str) -> tuple[str, str]:
    parts = urlsplit(url)
    return parts.scheme.lower(), parts.netloc.lower()


def is_same_origin(url: str, origin: str | None) -> bool:
    """判断 url 与页面来源的 scheme + host 是否一致"""
    if not origin or origin in _OPAQUE_ORIGINS:
        return False
    return _origin_of(url) == _origin_of(origin)
