"""
请求分发与图片队列服务
"""

from tileload.services.dispatcher import RequestDispatcher, TransportCapabilities, get_dispatcher
from tileload.services.image_queue import ImageRequestQueue, get_image_request_queue

__all__ = [
    "ImageRequestQueue",
    "RequestDispatcher",
    "TransportCapabilities",
    "get_dispatcher",
    "get_image_request_queue",
]
