"""
传输策略基类

每种传输方式都实现 execute(descriptor) -> CompletionResult。
HTTP 类传输（流式 / 缓冲）只负责拿到原始响应，分类与响应体解释在这里统一完成，
保证调用方无论走哪条路径都看到同一套结果约定。
"""

from __future__ import annotations

import json
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Mapping

import httpx

from tileload.config import config
from tileload.core.enums import CredentialsMode, ResponseType, TransportKind
from tileload.core.error_classifier import ErrorClassifier, get_error_classifier
from tileload.core.exceptions import FetchError
from tileload.clients.http_client import get_http_client
from tileload.models.request import CompletionResult, RequestDescriptor
from tileload.utils.request_utils import is_same_origin

# 拿不到响应的异常：连接失败、超时、协议不支持、本地文件读取失败
NO_RESPONSE_ERRORS: tuple[type[BaseException], ...] = (httpx.HTTPError, httpx.InvalidURL, OSError)


@dataclass
class RawResponse:
    """传输层拿到的原始响应"""

    status: int
    url: str
    content: bytes = b""
    reason: str = ""
    headers: Mapping[str, str] = field(default_factory=dict)
    encoding: str | None = None

    def header(self, name: str) -> str | None:
        if isinstance(self.headers, httpx.Headers):
            return self.headers.get(name)
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None


class Transport(ABC):
    """传输策略"""

    kind: TransportKind

    def __init__(self, classifier: ErrorClassifier | None = None) -> None:
        self._classifier = classifier or get_error_classifier()

    @abstractmethod
    async def execute(self, descriptor: RequestDescriptor) -> CompletionResult:
        """
        执行请求并返回完成结果

        取消通过取消运行本协程的 Task 实现，取消时 CancelledError 向上传播。
        """


class HTTPTransport(Transport):
    """直接发起 HTTP 请求的传输方式公共逻辑"""

    def __init__(
        self,
        classifier: ErrorClassifier | None = None,
        referrer: str | None = None,
        client: httpx.AsyncClient | None = None,
        anonymous_client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(classifier)
        self._referrer = referrer
        self._client = client
        self._anonymous_client = anonymous_client

    def _select_client(self, descriptor: RequestDescriptor) -> httpx.AsyncClient:
        """include 总是携带 cookie；same-origin 仅在同源时携带"""
        include = descriptor.credentials == CredentialsMode.INCLUDE or is_same_origin(
            descriptor.url, config.page_origin
        )
        if include:
            return self._client or get_http_client(include_credentials=True)
        return self._anonymous_client or get_http_client(include_credentials=False)

    def _build_headers(self, descriptor: RequestDescriptor) -> dict[str, str]:
        headers = dict(descriptor.headers or {})
        if descriptor.is_json:
            headers["Accept"] = "application/json"
        if self._referrer and not any(k.lower() == "referer" for k in headers):
            headers["Referer"] = self._referrer
        return headers

    @abstractmethod
    async def _send(self, descriptor: RequestDescriptor) -> RawResponse:
        """发起请求；没有拿到响应时抛出 NO_RESPONSE_ERRORS 中的异常"""

    async def execute(self, descriptor: RequestDescriptor) -> CompletionResult:
        started = time.perf_counter()
        try:
            raw = await self._send(descriptor)
        except NO_RESPONSE_ERRORS as e:
            error = self._classifier.classify(e, descriptor.url)
            assert error is not None
            return CompletionResult.failure(error)

        error = self._classifier.classify(raw.status, descriptor.url, raw.reason)
        if error is not None:
            return CompletionResult.failure(error)

        try:
            data = self._interpret(descriptor, raw)
        except FetchError as e:
            return CompletionResult.failure(e)

        timing = None
        if descriptor.collect_resource_timing:
            timing = [
                {
                    "name": descriptor.url,
                    "transport": self.kind.value,
                    "status": raw.status,
                    "start_time": started,
                    "duration_ms": (time.perf_counter() - started) * 1000,
                    "transfer_size": len(raw.content),
                }
            ]
        return CompletionResult.success(
            data,
            cache_control=raw.header("Cache-Control"),
            expires=raw.header("Expires"),
            resource_timing=timing,
        )

    def _interpret(self, descriptor: RequestDescriptor, raw: RawResponse) -> Any:
        """按描述中的 response_type 解释响应体"""
        if descriptor.response_type == ResponseType.ARRAY_BUFFER:
            return raw.content
        text = raw.content.decode(raw.encoding or "utf-8", errors="replace")
        if descriptor.response_type == ResponseType.JSON:
            try:
                return json.loads(text)
            except ValueError as e:
                raise self._classifier.parse_error(e, url=descriptor.url) from e
        return text
