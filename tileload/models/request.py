"""
请求与结果数据模型

- RequestDescriptor: 单次请求的不可变描述
- CompletionResult: 完成回调收到的结果（错误，或 数据 + 缓存元数据）
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from email.utils import parsedate_to_datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tileload.core.enums import CredentialsMode, RequestMethod, ResourceType, ResponseType
from tileload.core.exceptions import FetchError


class RequestDescriptor(BaseModel):
    """单次请求的不可变描述，由调用方按次创建，只被消费一次"""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    url: str = Field(..., description="请求地址")
    method: RequestMethod = Field(RequestMethod.GET, description="HTTP 方法")
    headers: dict[str, str] | None = Field(None, description="附加请求头")
    body: str | bytes | None = Field(None, description="请求体")
    response_type: ResponseType = Field(
        ResponseType.STRING, alias="type", description="响应体解释方式"
    )
    credentials: CredentialsMode = Field(CredentialsMode.SAME_ORIGIN, description="凭据策略")
    collect_resource_timing: bool = Field(False, description="是否收集资源耗时")
    resource_type: ResourceType = Field(ResourceType.UNKNOWN, description="资源类别（仅用于日志）")

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("url 不能为空")
        return v

    @property
    def is_json(self) -> bool:
        return self.response_type == ResponseType.JSON

    def with_updates(self, **changes: Any) -> RequestDescriptor:
        """返回修改了部分字段的新描述（重新校验）"""
        data = self.model_dump(by_alias=False)
        data.update(changes)
        return type(self).model_validate(data)

    def to_payload(self) -> dict[str, Any]:
        """转换为普通字典，用于通过 actor 链路发送"""
        return self.model_dump(by_alias=True, mode="python")

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> RequestDescriptor:
        return cls.model_validate(payload)


@dataclass(frozen=True)
class CompletionResult:
    """
    完成结果

    error 不为空表示失败；否则 data 为响应数据，cache_control / expires
    取自同名响应头，可能为空。
    """

    error: FetchError | None = None
    data: Any = None
    cache_control: str | None = None
    expires: str | None = None
    resource_timing: list[dict[str, Any]] | None = field(default=None, compare=False)

    @classmethod
    def success(
        cls,
        data: Any,
        cache_control: str | None = None,
        expires: str | None = None,
        resource_timing: list[dict[str, Any]] | None = None,
    ) -> CompletionResult:
        return cls(
            error=None,
            data=data,
            cache_control=cache_control,
            expires=expires,
            resource_timing=resource_timing,
        )

    @classmethod
    def failure(cls, error: FetchError) -> CompletionResult:
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def expires_at(self) -> datetime | None:
        """解析 Expires 头；缺失或格式不合法时返回 None"""
        if not self.expires:
            return None
        try:
            return parsedate_to_datetime(self.expires)
        except (TypeError, ValueError):
            return None

    def to_payload(self) -> dict[str, Any]:
        """转换为普通字典，用于通过 actor 链路回传"""
        return {
            "error": self.error.to_dict() if self.error is not None else None,
            "data": self.data,
            "cache_control": self.cache_control,
            "expires": self.expires,
            "resource_timing": self.resource_timing,
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> CompletionResult:
        error = payload.get("error")
        return cls(
            error=FetchError.from_dict(error) if error else None,
            data=payload.get("data"),
            cache_control=payload.get("cache_control"),
            expires=payload.get("expires"),
            resource_timing=payload.get("resource_timing"),
        )
