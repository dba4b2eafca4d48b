"""
请求分发器 - 为每个请求选择传输策略并执行

选择顺序:
1. file: URL -> 缓冲传输（Referer 无意义，流式传输也不适用）
2. 流式传输可用 -> 流式传输
3. 处于后台上下文且已与协调上下文建立 actor 链路 -> 委托传输（"getResource"）
4. 其余情况 -> 缓冲传输

能力由 TransportCapabilities 在构造时注入，2~4 的结果只计算一次。
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Callable

import httpx

from tileload.clients.actor import Actor
from tileload.config import config
from tileload.core.cancelable import CancelableHandle
from tileload.core.enums import RequestMethod, ResponseType
from tileload.core.error_classifier import ErrorClassifier, get_error_classifier
from tileload.core.error_utils import extract_error_message
from tileload.core.exceptions import TransportError
from tileload.core.logger import logger
from tileload.models.request import CompletionResult, RequestDescriptor
from tileload.services.transport import (
    GET_RESOURCE_OPERATION,
    BufferedTransport,
    DelegatedTransport,
    StreamingTransport,
    Transport,
)
from tileload.utils.request_utils import get_referrer, is_local_file_url, redact_url_for_log

CompletionCallback = Callable[[CompletionResult], None]


@dataclass(frozen=True)
class TransportCapabilities:
    """
    当前执行上下文的传输能力

    Attributes:
        streaming: 是否可以使用支持中断的流式传输
        background: 是否运行在后台（非主）上下文
        actor: 与协调上下文之间的链路，仅后台上下文使用
        referrer: 协调上下文交给后台上下文的 Referer；为 None 时按配置计算
    """

    streaming: bool = True
    background: bool = False
    actor: Actor | None = None
    referrer: str | None = None


def invoke_callback(callback: CompletionCallback, result: CompletionResult) -> None:
    """调用完成回调；回调内部的异常只记录，不影响分发器与队列"""
    try:
        callback(result)
    except Exception:
        logger.exception("完成回调执行异常")


class RequestDispatcher:
    """请求分发器"""

    def __init__(
        self,
        capabilities: TransportCapabilities | None = None,
        classifier: ErrorClassifier | None = None,
        client: httpx.AsyncClient | None = None,
        anonymous_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.capabilities = capabilities or TransportCapabilities()
        self._classifier = classifier or get_error_classifier()
        referrer = self.capabilities.referrer
        if referrer is None and not self.capabilities.background:
            referrer = get_referrer(config.page_origin, config.page_path)

        self._buffered = BufferedTransport(
            self._classifier, referrer=referrer, client=client, anonymous_client=anonymous_client
        )
        self._default_transport = self._choose_default_transport(
            referrer, client, anonymous_client
        )
        self._tasks: set[asyncio.Task] = set()

    def _choose_default_transport(
        self,
        referrer: str | None,
        client: httpx.AsyncClient | None,
        anonymous_client: httpx.AsyncClient | None,
    ) -> Transport:
        caps = self.capabilities
        if caps.streaming:
            return StreamingTransport(
                self._classifier, referrer=referrer, client=client, anonymous_client=anonymous_client
            )
        if caps.background and caps.actor is not None and caps.actor.is_connected:
            return DelegatedTransport(caps.actor, self._classifier)
        return self._buffered

    def select_transport(self, descriptor: RequestDescriptor) -> Transport:
        if is_local_file_url(descriptor.url):
            return self._buffered
        return self._default_transport

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def dispatch(
        self, descriptor: RequestDescriptor, on_complete: CompletionCallback
    ) -> CancelableHandle:
        """
        发起请求，立即返回可取消句柄

        结果（成功或错误）通过 on_complete 恰好投递一次；
        请求被取消后 on_complete 永远不会被调用。
        必须在事件循环中调用。
        """
        transport = self.select_transport(descriptor)
        logger.debug(
            "分发请求: {} {} via {} ({})",
            descriptor.method.value,
            redact_url_for_log(descriptor.url),
            transport.kind.value,
            descriptor.resource_type.value,
        )

        task: asyncio.Task | None = None

        def abort() -> None:
            if task is not None:
                task.cancel()

        handle = CancelableHandle(on_cancel=abort)
        task = asyncio.get_running_loop().create_task(
            self._run(transport, descriptor, handle, on_complete)
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return handle

    async def _run(
        self,
        transport: Transport,
        descriptor: RequestDescriptor,
        handle: CancelableHandle,
        on_complete: CompletionCallback,
    ) -> None:
        try:
            result = await transport.execute(descriptor)
        except asyncio.CancelledError:
            logger.debug("请求已取消: {}", redact_url_for_log(descriptor.url))
            raise
        except Exception as e:
            logger.exception("传输执行异常: {}", redact_url_for_log(descriptor.url))
            result = CompletionResult.failure(
                TransportError(extract_error_message(e), url=descriptor.url)
            )

        if result.error is not None:
            logger.warning("请求失败: {}", redact_url_for_log(str(result.error)))

        if handle.mark_completed():
            invoke_callback(on_complete, result)

    async def request(self, descriptor: RequestDescriptor) -> CompletionResult:
        """
        等待式接口：返回完成结果

        等待方被取消时，底层请求随之取消。
        """
        future: asyncio.Future[CompletionResult] = asyncio.get_running_loop().create_future()

        def on_complete(result: CompletionResult) -> None:
            if not future.done():
                future.set_result(result)

        handle = self.dispatch(descriptor, on_complete)
        try:
            return await future
        except asyncio.CancelledError:
            handle.cancel()
            raise

    def get_json(
        self, descriptor: RequestDescriptor, on_complete: CompletionCallback
    ) -> CancelableHandle:
        return self.dispatch(descriptor.with_updates(response_type=ResponseType.JSON), on_complete)

    def get_array_buffer(
        self, descriptor: RequestDescriptor, on_complete: CompletionCallback
    ) -> CancelableHandle:
        return self.dispatch(
            descriptor.with_updates(response_type=ResponseType.ARRAY_BUFFER), on_complete
        )

    def post_data(
        self, descriptor: RequestDescriptor, on_complete: CompletionCallback
    ) -> CancelableHandle:
        return self.dispatch(descriptor.with_updates(method=RequestMethod.POST), on_complete)


def serve_resource_requests(actor: Actor, dispatcher: RequestDispatcher) -> None:
    """
    在协调上下文中注册 "getResource" 操作

    后台上下文的委托传输会调用该操作；结果以字典形式回传。
    """

    async def handle_get_resource(payload: dict) -> dict:
        descriptor = RequestDescriptor.from_payload(payload)
        result = await dispatcher.request(descriptor)
        return result.to_payload()

    actor.register(GET_RESOURCE_OPERATION, handle_get_resource)


_dispatcher: RequestDispatcher | None = None


def get_dispatcher() -> RequestDispatcher:
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = RequestDispatcher()
    return _dispatcher


def make_request(descriptor: RequestDescriptor, on_complete: CompletionCallback) -> CancelableHandle:
    return get_dispatcher().dispatch(descriptor, on_complete)


def get_json(descriptor: RequestDescriptor, on_complete: CompletionCallback) -> CancelableHandle:
    return get_dispatcher().get_json(descriptor, on_complete)


def get_array_buffer(
    descriptor: RequestDescriptor, on_complete: CompletionCallback
) -> CancelableHandle:
    return get_dispatcher().get_array_buffer(descriptor, on_complete)


def post_data(descriptor: RequestDescriptor, on_complete: CompletionCallback) -> CancelableHandle:
    return get_dispatcher().post_data(descriptor, on_complete)
