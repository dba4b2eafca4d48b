"""
全局HTTP客户端池

避免每次请求都创建新的 AsyncClient：
1. 默认客户端：携带并持久化 cookie，用于 credentials=include 与同源请求
2. 匿名客户端：拒绝一切 cookie，用于 credentials=same-origin 的跨源请求
"""

from __future__ import annotations

from http.cookiejar import CookieJar, DefaultCookiePolicy
from typing import Any

import httpx

from tileload.config import config
from tileload.core.logger import logger


def _default_timeout() -> httpx.Timeout:
    return httpx.Timeout(
        connect=config.http_connect_timeout,
        read=config.http_read_timeout,
        write=config.http_write_timeout,
        pool=config.http_pool_timeout,
    )


def _default_limits() -> httpx.Limits:
    return httpx.Limits(
        max_connections=config.http_max_connections,
        max_keepalive_connections=config.http_keepalive_connections,
        keepalive_expiry=config.http_keepalive_expiry,
    )


def _cookieless_jar() -> CookieJar:
    # allowed_domains 为空列表时，任何域名的 cookie 都不会被保存或发送
    return CookieJar(policy=DefaultCookiePolicy(allowed_domains=[]))


class HTTPClientPool:
    """
    全局HTTP客户端池单例

    事件循环是单线程的，客户端的延迟创建不需要额外加锁。
    """

    _instance: HTTPClientPool | None = None
    _default_client: httpx.AsyncClient | None = None
    _anonymous_client: httpx.AsyncClient | None = None

    def __new__(cls) -> "HTTPClientPool":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    @classmethod
    def _build_client(cls, **kwargs: Any) -> httpx.AsyncClient:
        client_config: dict[str, Any] = {
            "timeout": _default_timeout(),
            "limits": _default_limits(),
            "follow_redirects": True,
        }
        client_config.update(kwargs)
        return httpx.AsyncClient(**client_config)

    @classmethod
    def get_default_client(cls) -> httpx.AsyncClient:
        """获取携带 cookie 的默认客户端"""
        if cls._default_client is None or cls._default_client.is_closed:
            cls._default_client = cls._build_client()
            logger.info(
                "全局HTTP客户端已初始化: max_connections={}, keepalive={}, keepalive_expiry={}s",
                config.http_max_connections,
                config.http_keepalive_connections,
                config.http_keepalive_expiry,
            )
        return cls._default_client

    @classmethod
    def get_anonymous_client(cls) -> httpx.AsyncClient:
        """获取不携带 cookie 的客户端"""
        if cls._anonymous_client is None or cls._anonymous_client.is_closed:
            cls._anonymous_client = cls._build_client(cookies=_cookieless_jar())
            logger.debug("匿名HTTP客户端已初始化")
        return cls._anonymous_client

    @classmethod
    async def close_all(cls) -> None:
        """关闭所有HTTP客户端"""
        for client in (cls._default_client, cls._anonymous_client):
            if client is not None and not client.is_closed:
                await client.aclose()
        cls._default_client = None
        cls._anonymous_client = None
        logger.info("所有HTTP客户端已关闭")

    @classmethod
    def get_pool_stats(cls) -> dict[str, Any]:
        """获取连接池统计信息"""
        return {
            "default_client_active": cls._default_client is not None,
            "anonymous_client_active": cls._anonymous_client is not None,
        }


def get_http_client(include_credentials: bool = True) -> httpx.AsyncClient:
    """按凭据策略获取客户端的便捷函数"""
    if include_credentials:
        return HTTPClientPool.get_default_client()
    return HTTPClientPool.get_anonymous_client()


async def close_http_clients() -> None:
    """关闭所有HTTP客户端的便捷函数"""
    await HTTPClientPool.close_all()
