"""
传输策略

- StreamingTransport: 流式读取，支持中途中断
- BufferedTransport: 一次性读取，file: URL 的唯一通道
- DelegatedTransport: 后台上下文通过 actor 链路委托协调上下文执行
"""

from tileload.services.transport.base import HTTPTransport, RawResponse, Transport
from tileload.services.transport.buffered import BufferedTransport
from tileload.services.transport.delegated import GET_RESOURCE_OPERATION, DelegatedTransport
from tileload.services.transport.streaming import StreamingTransport

__all__ = [
    "GET_RESOURCE_OPERATION",
    "BufferedTransport",
    "DelegatedTransport",
    "HTTPTransport",
    "RawResponse",
    "StreamingTransport",
    "Transport",
]
