"""
tileload - 瓦片/资源获取核心

- RequestDispatcher: 按执行上下文能力选择传输策略并分发请求
- ImageRequestQueue: 限制并发图片请求数量的 FIFO 队列
- ErrorClassifier: 传输结果到领域错误的纯映射
"""

from tileload.core.cancelable import CancelableHandle
from tileload.core.enums import CredentialsMode, RequestMethod, ResourceType, ResponseType
from tileload.core.error_classifier import ErrorClassifier, classify
from tileload.core.exceptions import (
    DecodeError,
    FetchError,
    HTTPStatusError,
    ParseError,
    TransportError,
)
from tileload.core.logger import setup_logging
from tileload.models.request import CompletionResult, RequestDescriptor
from tileload.services.dispatcher import (
    RequestDispatcher,
    TransportCapabilities,
    get_array_buffer,
    get_json,
    make_request,
    post_data,
)
from tileload.services.image_queue import (
    DecodedImage,
    ImageRequestQueue,
    get_image,
    reset_image_request_queue,
)

__version__ = "0.1.0"

__all__ = [
    "CancelableHandle",
    "CompletionResult",
    "CredentialsMode",
    "DecodeError",
    "DecodedImage",
    "ErrorClassifier",
    "FetchError",
    "HTTPStatusError",
    "ImageRequestQueue",
    "ParseError",
    "RequestDescriptor",
    "RequestDispatcher",
    "RequestMethod",
    "ResourceType",
    "ResponseType",
    "TransportCapabilities",
    "TransportError",
    "classify",
    "get_array_buffer",
    "get_image",
    "get_json",
    "make_request",
    "post_data",
    "reset_image_request_queue",
    "setup_logging",
]
