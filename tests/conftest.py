from typing import Any, Callable

import httpx
import pytest
from PIL import Image

from tileload.core.cancelable import CancelableHandle
from tileload.core.exceptions import DecodeError, FetchError
from tileload.models.request import CompletionResult, RequestDescriptor
from tileload.services.decoder import ImageDecoder
from tileload.services.image_queue import reset_image_request_queue

Handler = Callable[[httpx.Request], Any]


@pytest.fixture(autouse=True)
def _reset_default_queue():
    reset_image_request_queue()
    yield
    reset_image_request_queue()


@pytest.fixture
def mock_client():
    """基于 httpx.MockTransport 的客户端工厂"""

    def factory(handler: Handler) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return factory


class FakeCall:
    def __init__(self, descriptor: RequestDescriptor, on_complete) -> None:
        self.descriptor = descriptor
        self.on_complete = on_complete
        self.aborted = False
        self.handle = CancelableHandle(on_cancel=self._abort)

    def _abort(self) -> None:
        self.aborted = True


class FakeDispatcher:
    """记录所有分发调用，由测试手动决定何时完成"""

    def __init__(self) -> None:
        self.calls: list[FakeCall] = []
        # 设置后下一次分发直接抛出该异常
        self.fail_next: Exception | None = None

    def get_array_buffer(self, descriptor: RequestDescriptor, on_complete) -> CancelableHandle:
        if self.fail_next is not None:
            error, self.fail_next = self.fail_next, None
            raise error
        call = FakeCall(descriptor, on_complete)
        self.calls.append(call)
        return call.handle

    @property
    def dispatched_urls(self) -> list[str]:
        return [c.descriptor.url for c in self.calls]

    def call_for(self, url: str) -> FakeCall:
        return next(c for c in self.calls if c.descriptor.url == url)

    def complete(
        self,
        url: str,
        data: bytes = b"\x89PNG",
        error: FetchError | None = None,
        cache_control: str | None = None,
        expires: str | None = None,
    ) -> None:
        call = self.call_for(url)
        if not call.handle.mark_completed():
            return
        if error is not None:
            call.on_complete(CompletionResult.failure(error))
        else:
            call.on_complete(
                CompletionResult.success(data, cache_control=cache_control, expires=expires)
            )


class FakeDecoder(ImageDecoder):
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.decoded: list[bytes] = []

    async def decode(self, data: bytes, mime_hint: str = "image/png") -> Image.Image:
        self.decoded.append(data)
        if self.fail:
            raise DecodeError()
        return Image.new("RGB", (2, 2))

    def placeholder(self) -> Image.Image:
        return Image.new("RGBA", (1, 1), (0, 0, 0, 0))


@pytest.fixture
def fake_dispatcher() -> FakeDispatcher:
    return FakeDispatcher()


@pytest.fixture
def fake_decoder() -> FakeDecoder:
    return FakeDecoder()
