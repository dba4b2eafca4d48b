"""
缓冲传输 - 一次性读取完整响应

也是 file: URL 的唯一通道：本地文件在线程中读取，状态码记为 0。
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from urllib.parse import unquote, urlsplit

from tileload.core.enums import TransportKind
from tileload.core.logger import logger
from tileload.models.request import RequestDescriptor
from tileload.services.transport.base import HTTPTransport, RawResponse
from tileload.utils.request_utils import is_local_file_url


def _local_path(url: str) -> Path:
    parts = urlsplit(url)
    path = unquote(parts.path)
    if parts.netloc and parts.netloc != "localhost":
        path = f"//{parts.netloc}{path}"
    return Path(path)


class BufferedTransport(HTTPTransport):
    kind = TransportKind.BUFFERED

    async def _send(self, descriptor: RequestDescriptor) -> RawResponse:
        if is_local_file_url(descriptor.url):
            return await self._read_local_file(descriptor)

        client = self._select_client(descriptor)
        response = await client.request(
            descriptor.method.value,
            descriptor.url,
            headers=self._build_headers(descriptor),
            content=descriptor.body,
        )
        return RawResponse(
            status=response.status_code,
            url=str(response.url),
            content=response.content,
            reason=response.reason_phrase,
            headers=response.headers,
            encoding=response.encoding,
        )

    async def _read_local_file(self, descriptor: RequestDescriptor) -> RawResponse:
        path = _local_path(descriptor.url)
        logger.debug("读取本地文件: {}", path)
        content = await asyncio.to_thread(path.read_bytes)
        return RawResponse(status=0, url=descriptor.url, content=content)
