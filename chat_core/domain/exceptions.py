"""统一业务异常模型。

所有跨模块抛出的错误都继承自 ChatError，并携带一个 ErrorCode，
便于写入会话的错误状态（last_code / last_error / last_http_code），
也便于上层统一捕获与用户提示。
"""

from enum import Enum


class ErrorCode(Enum):
    """会话错误码，与 ChatError 子类一一对应。"""

    OK = "ok"
    OUT_OF_MEMORY = "out_of_memory"
    INVALID_ARGUMENT = "invalid_argument"
    HTTP = "http"
    JSON_PARSE = "json_parse"
    API = "api"
    STREAM = "stream"
    STATE = "state"


class ChatError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码字符串（如 "HTTP_ERROR"）。
        message: 用户可读错误信息。
        http_status: 相关的 HTTP 状态码；与 HTTP 无关时为 0。
        extra: 其他补充字段（例如 url、attempts 等）。
    """

    error_code = ErrorCode.STATE

    def __init__(self, code: str, message: str, http_status: int = 0, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class OutOfMemoryError(ChatError):
    """构造请求或累积响应时内存耗尽。"""

    error_code = ErrorCode.OUT_OF_MEMORY


class InvalidArgumentError(ChatError):
    """参数缺失、越界或配置无效。"""

    error_code = ErrorCode.INVALID_ARGUMENT


class HttpError(ChatError):
    """传输层错误，例如 DNS、连接失败、TLS、超时。"""

    error_code = ErrorCode.HTTP


class StorageError(HttpError):
    """会话文件读写失败（沿用 HTTP 错误码表示 I/O 失败）。"""


class JsonParseError(ChatError):
    """响应体不是合法 JSON，或结构不符合预期。"""

    error_code = ErrorCode.JSON_PARSE


class ApiError(ChatError):
    """服务端返回了结构化的错误对象，或非 2xx 状态。"""

    error_code = ErrorCode.API


class StreamError(ChatError):
    """流式请求过程中发生的传输错误。"""

    error_code = ErrorCode.STREAM


class StateError(ChatError):
    """操作依赖的元素不存在，例如替换不存在的 user 消息。"""

    error_code = ErrorCode.STATE
