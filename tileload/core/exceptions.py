"""
领域错误定义

所有错误都通过完成回调交付，不会跨越异步边界抛出。
取消不是错误：被取消的请求不会触发回调。
"""

from __future__ import annotations

DECODE_ERROR_MESSAGE = (
    "Could not load image. Please make sure to use a supported image type "
    "such as PNG or JPEG. Note that SVGs are not supported."
)


class FetchError(Exception):
    """资源获取错误基类，字符串形式包含类别、消息、状态码与 URL"""

    kind = "FetchError"

    def __init__(self, message: str, status: int | None = None, url: str | None = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.url = url

    def __str__(self) -> str:
        status = self.status if self.status is not None else "-"
        return f"{self.kind}: {self.message} ({status}): {self.url or '-'}"

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(message={self.message!r}, "
            f"status={self.status!r}, url={self.url!r})"
        )

    def to_dict(self) -> dict[str, object]:
        """转换为字典（用于跨 actor 链路传递）"""
        return {
            "kind": self.kind,
            "message": self.message,
            "status": self.status,
            "url": self.url,
        }

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> FetchError:
        """从 to_dict() 的结果还原为对应的错误子类"""
        kind = str(data.get("kind") or cls.kind)
        error_cls = _ERROR_KINDS.get(kind, FetchError)
        status = data.get("status")
        url = data.get("url")
        # 子类构造参数不一致，绕过子类 __init__ 直接填充字段
        error = error_cls.__new__(error_cls)
        FetchError.__init__(
            error,
            str(data.get("message") or ""),
            status=int(status) if status is not None else None,
            url=str(url) if url is not None else None,
        )
        return error


class TransportError(FetchError):
    """未拿到任何响应（连接失败、DNS 错误、超时等）"""

    kind = "TransportError"

    def __init__(self, message: str, url: str | None = None):
        super().__init__(message, status=None, url=url)


class HTTPStatusError(FetchError):
    """响应状态码不在 2xx 范围内（状态码 0 视为成功）"""

    kind = "HTTPStatusError"

    def __init__(self, message: str, status: int, url: str):
        super().__init__(message, status=status, url=url)


class ParseError(FetchError):
    """传输成功，但结构化数据（JSON）解析失败"""

    kind = "ParseError"

    def __init__(self, message: str, url: str | None = None):
        super().__init__(message, status=None, url=url)


class DecodeError(FetchError):
    """图片字节无法解码为可显示的图片"""

    kind = "DecodeError"

    def __init__(self, message: str = DECODE_ERROR_MESSAGE, url: str | None = None):
        super().__init__(message, status=None, url=url)


class ActorError(Exception):
    """actor 链路上的可控错误（未注册的操作、链路已关闭等）"""

    def __init__(self, message: str, operation: str | None = None):
        super().__init__(message)
        self.message = message
        self.operation = operation


_ERROR_KINDS: dict[str, type[FetchError]] = {
    cls.kind: cls for cls in (FetchError, TransportError, HTTPStatusError, ParseError, DecodeError)
}


__all__ = [
    "DECODE_ERROR_MESSAGE",
    "ActorError",
    "DecodeError",
    "FetchError",
    "HTTPStatusError",
    "ParseError",
    "TransportError",
]
