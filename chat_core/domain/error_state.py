"""会话错误状态。

只保存最近一次失败（错误码、消息、HTTP 状态），不保留历史。
每次补全开始时都会调用 clear()。
"""

from dataclasses import dataclass
from typing import Optional

from chat_core.domain.exceptions import ChatError, ErrorCode


MAX_ERROR_MESSAGE_LEN = 511


@dataclass
class ErrorState:
    code: ErrorCode = ErrorCode.OK
    message: str = ""
    http_status: int = 0

    def set(self, code: ErrorCode, message: Optional[str], http_status: Optional[int] = None) -> None:
        """覆盖错误三元组；http_status 为 None 时保留当前值。"""

        self.code = code
        self.message = (message or "")[:MAX_ERROR_MESSAGE_LEN]
        if http_status is not None:
            self.http_status = http_status

    def record(self, exc: ChatError) -> None:
        self.set(exc.error_code, exc.message, exc.http_status or None)

    def clear(self) -> None:
        self.code = ErrorCode.OK
        self.message = ""
        self.http_status = 0
