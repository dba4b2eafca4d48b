"""
图片解码面

- ResourceRegistry: 可撤销的临时资源分配器（保存待解码字节），解码完成后必须立即撤销
- ImageDecoder: 解码接口
- PillowImageDecoder: 基于 Pillow 的默认实现，在线程中完成解码
"""

from __future__ import annotations

import asyncio
import io
import itertools
import threading
from abc import ABC, abstractmethod

from PIL import Image, UnidentifiedImageError

from tileload.core.exceptions import DecodeError
from tileload.core.logger import logger

# 零长度响应的占位图: 1x1 全透明
PLACEHOLDER_SIZE = (1, 1)


class ResourceRegistry:
    """
    临时资源注册表

    allocate() 返回一个 blob: 形式的资源 key，revoke() 释放对应字节。
    持续大量请求时，未撤销的资源会一直占用内存。
    """

    def __init__(self) -> None:
        self._resources: dict[str, tuple[bytes, str]] = {}
        self._counter = itertools.count(1)
        self._lock = threading.Lock()

    def allocate(self, data: bytes, mime_type: str) -> str:
        with self._lock:
            key = f"blob:tileload/{next(self._counter)}"
            self._resources[key] = (bytes(data), mime_type)
        return key

    def open(self, key: str) -> io.BytesIO:
        with self._lock:
            entry = self._resources.get(key)
        if entry is None:
            raise KeyError(f"资源不存在或已撤销: {key}")
        return io.BytesIO(entry[0])

    def revoke(self, key: str) -> None:
        with self._lock:
            self._resources.pop(key, None)

    @property
    def live_count(self) -> int:
        return len(self._resources)


class ImageDecoder(ABC):
    """解码接口；失败时抛出 DecodeError"""

    @abstractmethod
    async def decode(self, data: bytes, mime_hint: str = "image/png") -> Image.Image:
        ...

    @abstractmethod
    def placeholder(self) -> Image.Image:
        """零长度响应使用的占位图"""


def _load_image(buffer: io.BytesIO) -> Image.Image:
    image = Image.open(buffer)
    # open() 是惰性的，load() 之后才真正完成解码，字节缓冲区可以释放
    image.load()
    return image


class PillowImageDecoder(ImageDecoder):
    """基于 Pillow 的解码器"""

    def __init__(self, registry: ResourceRegistry | None = None) -> None:
        self.registry = registry or ResourceRegistry()
        self._placeholder: Image.Image | None = None

    async def decode(self, data: bytes, mime_hint: str = "image/png") -> Image.Image:
        key = self.registry.allocate(data, mime_hint)
        try:
            buffer = self.registry.open(key)
            return await asyncio.to_thread(_load_image, buffer)
        except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as e:
            logger.debug("图片解码失败: {}", e)
            raise DecodeError() from e
        finally:
            self.registry.revoke(key)

    def placeholder(self) -> Image.Image:
        if self._placeholder is None:
            self._placeholder = Image.new("RGBA", PLACEHOLDER_SIZE, (0, 0, 0, 0))
        return self._placeholder.copy()
