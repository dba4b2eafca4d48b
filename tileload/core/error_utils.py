"""
错误消息处理工具函数
"""


def extract_error_message(error: BaseException, status_code: int | None = None) -> str:
    """
    从异常中提取可读的错误消息

    httpx 的超时/连接类异常 str() 可能为空，此时回退到类名，
    保证 TransportError 总有一条非空消息。

    Args:
        error: 异常对象
        status_code: 可选的 HTTP 状态码

    Returns:
        错误消息字符串
    """
    message = getattr(error, "message", None)
    if isinstance(message, str) and message.strip():
        error_str = message
    else:
        error_str = str(error) or type(error).__name__
    if status_code is not None:
        return f"HTTP {status_code}: {error_str}"
    return error_str
