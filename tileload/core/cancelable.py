"""
可取消句柄与完成标记
"""

from __future__ import annotations

import threading
from typing import Callable

from tileload.core.enums import CompletionState


class CompletionMarker:
    """
    三态完成标记: PENDING -> COMPLETED 或 PENDING -> CANCELLED

    只有第一次迁移成功，返回 True；之后的迁移一律返回 False。
    """

    def __init__(self) -> None:
        self._state = CompletionState.PENDING
        self._lock = threading.Lock()

    @property
    def state(self) -> CompletionState:
        return self._state

    @property
    def is_pending(self) -> bool:
        return self._state == CompletionState.PENDING

    def _transition(self, target: CompletionState) -> bool:
        with self._lock:
            if self._state != CompletionState.PENDING:
                return False
            self._state = target
            return True

    def complete(self) -> bool:
        return self._transition(CompletionState.COMPLETED)

    def cancel(self) -> bool:
        return self._transition(CompletionState.CANCELLED)


class CancelableHandle:
    """
    请求句柄，只暴露 cancel()

    cancel() 可以调用任意次，也可以在完成后调用；只有在请求仍未完成时的
    第一次调用会触发 on_cancel。
    """

    def __init__(self, on_cancel: Callable[[], None] | None = None) -> None:
        self._marker = CompletionMarker()
        self._on_cancel = on_cancel

    @property
    def state(self) -> CompletionState:
        return self._marker.state

    @property
    def done(self) -> bool:
        return not self._marker.is_pending

    def cancel(self) -> None:
        if not self._marker.cancel():
            return
        on_cancel, self._on_cancel = self._on_cancel, None
        if on_cancel is not None:
            on_cancel()

    def mark_completed(self) -> bool:
        """标记自然完成；若已被取消则返回 False，调用方不应再投递结果"""
        if not self._marker.complete():
            return False
        self._on_cancel = None
        return True

    def __repr__(self) -> str:
        return f"CancelableHandle(state={self.state.value})"
