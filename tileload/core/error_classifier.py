"""
错误分类器 - 将传输结果映射为领域错误（纯逻辑，无副作用）

规则:
- 没有拿到响应（连接失败） -> TransportError
- 状态码 0 或 [200, 300) -> 成功，返回 None
- 其他状态码 -> HTTPStatusError；401 且目标是第一方 API 主机时追加访问令牌提示
- 结构化数据解析失败 -> ParseError（仅在传输本身成功之后）
"""

from __future__ import annotations

from typing import Callable

from tileload.config import config
from tileload.core.error_utils import extract_error_message
from tileload.core.exceptions import FetchError, HTTPStatusError, ParseError, TransportError

ACCESS_TOKEN_HINT = ": you may have provided an invalid access token. See {help_url}"


def is_success_status(status: int) -> bool:
    """状态码 0（本地文件）或 2xx 视为成功"""
    return status == 0 or 200 <= status < 300


class ErrorClassifier:
    """
    错误分类器

    第一方主机判断通过构造参数注入，默认使用全局配置。
    """

    def __init__(
        self,
        is_first_party_url: Callable[[str], bool] | None = None,
        help_url: str | None = None,
    ) -> None:
        self._is_first_party_url = is_first_party_url or config.is_first_party_url
        self._help_url = help_url or config.access_token_help_url

    def classify(
        self,
        status_or_failure: int | BaseException | None,
        url: str,
        raw_message: str = "",
    ) -> FetchError | None:
        """
        对一次传输结果进行分类

        Args:
            status_or_failure: 响应状态码；没有响应时传入异常对象或 None
            url: 请求 URL
            raw_message: 状态文本或传输层给出的错误消息

        Returns:
            领域错误；成功时返回 None
        """
        if status_or_failure is None or isinstance(status_or_failure, BaseException):
            message = raw_message
            if not message and status_or_failure is not None:
                message = extract_error_message(status_or_failure)
            return TransportError(message or "Network request failed", url=url)

        status = int(status_or_failure)
        if is_success_status(status):
            return None

        message = raw_message
        if status == 401 and self._is_first_party_url(url):
            message += ACCESS_TOKEN_HINT.format(help_url=self._help_url)
        return HTTPStatusError(message, status=status, url=url)

    def parse_error(self, error: BaseException, url: str | None = None) -> ParseError:
        """结构化数据解析失败"""
        return ParseError(extract_error_message(error), url=url)


_default_classifier: ErrorClassifier | None = None


def get_error_classifier() -> ErrorClassifier:
    global _default_classifier
    if _default_classifier is None:
        _default_classifier = ErrorClassifier()
    return _default_classifier


def classify(
    status_or_failure: int | BaseException | None, url: str, raw_message: str = ""
) -> FetchError | None:
    """使用默认分类器分类"""
    return get_error_classifier().classify(status_or_failure, url, raw_message)
