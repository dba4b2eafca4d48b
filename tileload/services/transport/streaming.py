"""
流式传输 - 基于 httpx.AsyncClient.stream

响应体按块读取，取消运行中的 Task 会在下一个 await 点中断读取并关闭连接。
"""

from __future__ import annotations

from tileload.core.enums import TransportKind
from tileload.models.request import RequestDescriptor
from tileload.services.transport.base import HTTPTransport, RawResponse


class StreamingTransport(HTTPTransport):
    kind = TransportKind.STREAMING

    async def _send(self, descriptor: RequestDescriptor) -> RawResponse:
        client = self._select_client(descriptor)
        async with client.stream(
            descriptor.method.value,
            descriptor.url,
            headers=self._build_headers(descriptor),
            content=descriptor.body,
        ) as response:
            chunks = []
            # 非成功状态不需要读取响应体
            if response.is_success:
                async for chunk in response.aiter_bytes():
                    chunks.append(chunk)
            return RawResponse(
                status=response.status_code,
                url=str(response.url),
                content=b"".join(chunks),
                reason=response.reason_phrase,
                headers=response.headers,
                encoding=response.encoding,
            )
