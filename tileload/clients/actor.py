"""
Actor 链路 - 后台上下文与协调上下文之间的具名操作调用

后台上下文（通常是运行独立事件循环的工作线程）没有直接的网络访问能力时，
通过 Actor.send("getResource", payload) 把请求交给协调上下文执行。

- 协调上下文用 register() 注册操作处理器
- 处理器运行在协调上下文自己的事件循环中（跨线程时用 run_coroutine_threadsafe）
- 调用方取消等待时，远端处理器所在的 Task 也会被取消
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

from tileload.core.exceptions import ActorError
from tileload.core.logger import logger

OperationHandler = Callable[[Any], Awaitable[Any]]


class Actor:
    """具名操作消息通道"""

    def __init__(self, name: str = "worker", loop: asyncio.AbstractEventLoop | None = None):
        self.name = name
        # 协调上下文的事件循环；为 None 时处理器在调用方的事件循环中执行
        self._loop = loop
        self._handlers: dict[str, OperationHandler] = {}
        self._closed = False

    def register(self, operation: str, handler: OperationHandler) -> None:
        self._handlers[operation] = handler
        logger.debug("Actor[{}] 注册操作: {}", self.name, operation)

    def close(self) -> None:
        self._closed = True
        self._handlers.clear()

    @property
    def is_connected(self) -> bool:
        return not self._closed

    def has_operation(self, operation: str) -> bool:
        return operation in self._handlers

    async def send(self, operation: str, payload: Any) -> Any:
        """
        调用协调上下文中的具名操作并等待结果

        Raises:
            ActorError: 链路已关闭或操作未注册
        """
        if self._closed:
            raise ActorError(f"Actor[{self.name}] 链路已关闭", operation=operation)
        handler = self._handlers.get(operation)
        if handler is None:
            raise ActorError(f"Actor[{self.name}] 未注册操作: {operation}", operation=operation)

        target_loop = self._loop
        if target_loop is None or target_loop is asyncio.get_running_loop():
            return await handler(payload)

        # 跨事件循环：取消 wrap_future 返回的 Future 会级联取消远端 Task
        future = asyncio.run_coroutine_threadsafe(handler(payload), target_loop)
        return await asyncio.wrap_future(future)
