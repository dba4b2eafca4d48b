"""
请求相关枚举定义
"""

from enum import Enum


class RequestMethod(str, Enum):
    """HTTP 方法（读取 / 创建 / 替换）"""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"


class ResponseType(str, Enum):
    """响应体的解释方式"""

    STRING = "string"  # 原始文本
    JSON = "json"  # 结构化数据
    ARRAY_BUFFER = "arrayBuffer"  # 二进制


class CredentialsMode(str, Enum):
    """凭据（cookie）携带策略"""

    SAME_ORIGIN = "same-origin"  # 仅同源请求携带
    INCLUDE = "include"  # 跨源请求也携带


class ResourceType(str, Enum):
    """资源类别，用于日志与请求改写"""

    UNKNOWN = "Unknown"
    STYLE = "Style"
    SOURCE = "Source"
    TILE = "Tile"
    GLYPHS = "Glyphs"
    SPRITE_IMAGE = "SpriteImage"
    SPRITE_JSON = "SpriteJSON"
    IMAGE = "Image"


class TransportKind(str, Enum):
    """传输策略"""

    STREAMING = "streaming"
    BUFFERED = "buffered"
    DELEGATED = "delegated"


class CompletionState(str, Enum):
    """
    请求完成标记

    只允许一次从 PENDING 出发的状态迁移，之后的 complete/cancel 都是空操作。
    """

    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


__all__ = [
    "CompletionState",
    "CredentialsMode",
    "RequestMethod",
    "ResourceType",
    "ResponseType",
    "TransportKind",
]
