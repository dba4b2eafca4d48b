"""
委托传输 - 通过 actor 链路把请求交给协调上下文执行

协调上下文使用同一个分类器完成分类，结果以字典形式回传并在这里还原，
因此完成/取消约定与直接传输完全一致。
"""

from __future__ import annotations

from tileload.clients.actor import Actor
from tileload.core.enums import TransportKind
from tileload.core.error_classifier import ErrorClassifier
from tileload.core.exceptions import ActorError, TransportError
from tileload.core.logger import logger
from tileload.models.request import CompletionResult, RequestDescriptor
from tileload.services.transport.base import Transport

GET_RESOURCE_OPERATION = "getResource"


class DelegatedTransport(Transport):
    kind = TransportKind.DELEGATED

    def __init__(self, actor: Actor, classifier: ErrorClassifier | None = None) -> None:
        super().__init__(classifier)
        self._actor = actor

    async def execute(self, descriptor: RequestDescriptor) -> CompletionResult:
        try:
            payload = await self._actor.send(GET_RESOURCE_OPERATION, descriptor.to_payload())
        except ActorError as e:
            logger.warning("委托请求失败: {}", e.message)
            return CompletionResult.failure(TransportError(e.message, url=descriptor.url))
        return CompletionResult.from_payload(payload)
