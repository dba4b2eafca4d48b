"""
图片请求队列 - 限制同时进行中的图片获取 + 解码数量

大屏幕上栅格源会同时发出大量瓦片请求，不加限制会挤占带宽和内存。

准入:
- 新请求追加到等待队列尾部，随后在 active < ceiling 时按 FIFO 取出，以 arrayBuffer 方式发起
- 已发起的请求，句柄取消真实请求；仍在等待的请求，句柄只标记取消并立即从队列移除
- 在事件循环以外的线程调用 cancel() 时，取消真实请求的动作转交给请求所属的事件循环

完成 / 出队（每个终态事件恰好一次：成功、错误或取消）:
1. active -= 1
2. 在 active < ceiling 且队列非空时取出队首；已取消的直接丢弃，
   其余重新发起并把自己的完成事件接回这里

等待中的请求严格按提交顺序准入；已取消的请求不会占用槽位。
"""

from __future__ import annotations

import asyncio
import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable

from PIL import Image

from tileload.config import config
from tileload.core.cancelable import CancelableHandle, CompletionMarker
from tileload.core.enums import ResourceType, ResponseType
from tileload.core.exceptions import DecodeError
from tileload.core.logger import logger
from tileload.models.request import CompletionResult, RequestDescriptor
from tileload.services.decoder import ImageDecoder, PillowImageDecoder
from tileload.services.dispatcher import (
    CompletionCallback,
    RequestDispatcher,
    get_dispatcher,
    invoke_callback,
)
from tileload.utils.request_utils import redact_url_for_log


@dataclass
class DecodedImage:
    """可显示的图片及其缓存元数据"""

    image: Image.Image
    cache_control: str | None = None
    expires: str | None = None
    placeholder: bool = False

    @property
    def size(self) -> tuple[int, int]:
        return self.image.size


@dataclass(eq=False)
class QueuedImageRequest:
    """等待准入的图片请求"""

    descriptor: RequestDescriptor
    on_complete: CompletionCallback
    cancelled: bool = False
    handle: CancelableHandle | None = None
    # 准入后指向真实请求的取消函数
    cancel_live: Callable[[], None] | None = field(default=None, repr=False)
    # 提交请求时所在的事件循环；其他线程的取消会转交给它执行
    loop: asyncio.AbstractEventLoop | None = field(default=None, repr=False)


class ImageRequestQueue:
    """
    图片请求队列

    active 计数与等待队列由同一把锁保护，只在准入与出队逻辑中修改。
    """

    def __init__(
        self,
        dispatcher: RequestDispatcher | None = None,
        decoder: ImageDecoder | None = None,
        ceiling: int | None = None,
    ) -> None:
        ceiling = config.max_parallel_image_requests if ceiling is None else ceiling
        if ceiling <= 0:
            raise ValueError(f"ceiling 必须为正整数, 当前值: {ceiling}")
        self._ceiling = ceiling
        self._dispatcher = dispatcher
        self._decoder = decoder or PillowImageDecoder()
        self._lock = threading.Lock()
        self._active = 0
        self._pending: deque[QueuedImageRequest] = deque()
        # reset() 之后，旧批次请求的完成事件不再修改计数
        self._generation = 0
        self._tasks: set[asyncio.Task] = set()

    @property
    def dispatcher(self) -> RequestDispatcher:
        return self._dispatcher or get_dispatcher()

    @property
    def ceiling(self) -> int:
        return self._ceiling

    @property
    def active_count(self) -> int:
        return self._active

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def get_stats(self) -> dict[str, Any]:
        """获取队列统计信息"""
        with self._lock:
            return {
                "ceiling": self._ceiling,
                "active": self._active,
                "pending": len(self._pending),
                "generation": self._generation,
            }

    def reset(self) -> None:
        """清空等待队列并将 active 归零（用于隔离测试）"""
        with self._lock:
            dropped = len(self._pending)
            self._pending.clear()
            self._active = 0
            self._generation += 1
        if dropped:
            logger.debug("图片请求队列已重置，丢弃 {} 个等待中的请求", dropped)

    def request_image(
        self, descriptor: RequestDescriptor, on_complete: CompletionCallback
    ) -> CancelableHandle:
        """
        请求一张图片

        成功时 on_complete 收到的 data 为 DecodedImage；
        被取消的请求永远不会调用 on_complete。
        """
        # 没有运行中的事件循环时直接抛出 RuntimeError，队列状态不变
        loop = asyncio.get_running_loop()
        updates: dict[str, Any] = {"response_type": ResponseType.ARRAY_BUFFER}
        if descriptor.resource_type == ResourceType.UNKNOWN:
            updates["resource_type"] = ResourceType.IMAGE
        descriptor = descriptor.with_updates(**updates)
        entry = QueuedImageRequest(descriptor=descriptor, on_complete=on_complete, loop=loop)
        entry.handle = CancelableHandle(on_cancel=lambda: self._cancel_entry(entry))

        # 新请求排在已等待的请求之后，由 _drain 统一准入
        with self._lock:
            self._pending.append(entry)
            generation = self._generation
        self._drain(generation)

        if entry.cancel_live is None and not entry.cancelled:
            logger.debug(
                "图片请求排队: {} (pending={})",
                redact_url_for_log(descriptor.url),
                self.pending_count,
            )
        return entry.handle

    get_image = request_image

    def _cancel_entry(self, entry: QueuedImageRequest) -> None:
        with self._lock:
            cancel_live = entry.cancel_live
            if cancel_live is None:
                entry.cancelled = True
                try:
                    self._pending.remove(entry)
                except ValueError:
                    pass
        if cancel_live is None:
            return
        if _current_loop() is entry.loop or entry.loop is None:
            cancel_live()
        else:
            entry.loop.call_soon_threadsafe(cancel_live)

    def _start(self, entry: QueuedImageRequest, generation: int) -> None:
        """发起一个已占用槽位的请求"""
        marker = CompletionMarker()
        decode_task: asyncio.Task | None = None

        def on_fetched(result: CompletionResult) -> None:
            nonlocal decode_task
            if not marker.is_pending:
                return
            if result.error is not None:
                self._finish(entry, marker, generation, result)
                return
            decode_task = asyncio.get_running_loop().create_task(
                self._decode(entry, marker, generation, result)
            )
            self._tasks.add(decode_task)
            decode_task.add_done_callback(self._tasks.discard)

        def cancel_live() -> None:
            if not marker.cancel():
                return
            fetch_handle.cancel()
            if decode_task is not None:
                decode_task.cancel()
            self._advance(generation)

        with self._lock:
            cancelled_before_start = entry.cancelled
        if cancelled_before_start:
            self._advance(generation)
            return

        fetch_handle = self.dispatcher.get_array_buffer(entry.descriptor, on_fetched)
        with self._lock:
            entry.cancel_live = cancel_live
            cancelled_during_start = entry.cancelled
        if cancelled_during_start:
            cancel_live()

    async def _decode(
        self,
        entry: QueuedImageRequest,
        marker: CompletionMarker,
        generation: int,
        fetched: CompletionResult,
    ) -> None:
        data = fetched.data or b""
        try:
            if len(data) == 0:
                image = self._decoder.placeholder()
                placeholder = True
            else:
                image = await self._decoder.decode(data, "image/png")
                placeholder = False
        except DecodeError as e:
            e.url = entry.descriptor.url
            self._finish(entry, marker, generation, CompletionResult.failure(e))
            return
        except Exception:
            logger.exception("图片解码异常: {}", redact_url_for_log(entry.descriptor.url))
            self._finish(
                entry,
                marker,
                generation,
                CompletionResult.failure(DecodeError(url=entry.descriptor.url)),
            )
            return

        decoded = DecodedImage(
            image=image,
            cache_control=fetched.cache_control,
            expires=fetched.expires,
            placeholder=placeholder,
        )
        self._finish(
            entry,
            marker,
            generation,
            CompletionResult.success(
                decoded,
                cache_control=fetched.cache_control,
                expires=fetched.expires,
                resource_timing=fetched.resource_timing,
            ),
        )

    def _finish(
        self,
        entry: QueuedImageRequest,
        marker: CompletionMarker,
        generation: int,
        result: CompletionResult,
    ) -> None:
        if not marker.complete():
            return
        # 其他线程已经取消了句柄、取消动作尚未在事件循环上执行时，不再投递结果
        delivered = entry.handle is None or entry.handle.mark_completed()
        self._advance(generation)
        if delivered:
            invoke_callback(entry.on_complete, result)

    def _advance(self, generation: int) -> None:
        """释放一个槽位并按 FIFO 准入等待中的请求"""
        with self._lock:
            if generation != self._generation:
                return
            self._active -= 1
            assert self._active >= 0, "active 计数不能为负"
        self._drain(generation)

    def _drain(self, generation: int) -> None:
        to_start: list[QueuedImageRequest] = []
        with self._lock:
            if generation != self._generation:
                return
            while self._pending and self._active < self._ceiling:
                entry = self._pending.popleft()
                if entry.cancelled:
                    continue
                self._active += 1
                to_start.append(entry)

        for index, entry in enumerate(to_start):
            logger.debug("图片请求出队: {}", redact_url_for_log(entry.descriptor.url))
            try:
                self._start(entry, generation)
            except Exception:
                logger.exception(
                    "图片请求发起失败，重新排队: {}", redact_url_for_log(entry.descriptor.url)
                )
                self._requeue(to_start[index:], generation)
                return

    def _requeue(self, entries: list[QueuedImageRequest], generation: int) -> None:
        """发起失败的请求释放槽位，按原顺序放回队首"""
        with self._lock:
            if generation != self._generation:
                return
            self._active -= len(entries)
            self._pending.extendleft(reversed(entries))


def _current_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


_image_request_queue: ImageRequestQueue | None = None


def get_image_request_queue() -> ImageRequestQueue:
    global _image_request_queue
    if _image_request_queue is None:
        _image_request_queue = ImageRequestQueue()
    return _image_request_queue


def reset_image_request_queue() -> None:
    """重置进程级默认队列"""
    get_image_request_queue().reset()


def get_image(descriptor: RequestDescriptor, on_complete: CompletionCallback) -> CancelableHandle:
    return get_image_request_queue().request_image(descriptor, on_complete)
