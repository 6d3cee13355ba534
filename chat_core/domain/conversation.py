"""会话聚合：配置、有序消息序列、缓存结果与错误状态。

Conversation 本身不做任何 I/O，请求的发送由 providers.chat_client 完成。
实例没有内部加锁，跨线程使用时需要调用方串行化。
"""

import json
from typing import List, Optional, Tuple

from chat_core.config.api_key import resolve_api_key
from chat_core.config.settings import settings
from chat_core.domain.error_state import ErrorState
from chat_core.domain.exceptions import ErrorCode, InvalidArgumentError, StateError
from chat_core.domain.models import ChatUsage, Message


def _check_number(name: str, value, low: float, high: float, low_inclusive: bool = True) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidArgumentError(code="INVALID_ARGUMENT", message=f"{name} must be a number")
    ok_low = low <= value if low_inclusive else low < value
    if not (ok_low and value <= high):
        bracket = "[" if low_inclusive else "("
        raise InvalidArgumentError(
            code="INVALID_ARGUMENT",
            message=f"{name} must be in {bracket}{low}, {high}], got {value}",
        )
    return float(value)


def _check_count(name: str, value) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidArgumentError(code="INVALID_ARGUMENT", message=f"{name} must be an int >= 0, got {value!r}")
    return value


def _check_text(name: str, value) -> str:
    if not isinstance(value, str):
        raise InvalidArgumentError(code="INVALID_ARGUMENT", message=f"{name} must be a string")
    return value


class Conversation:
    """一个多轮对话会话。

    - api_key: 显式传入；为 None 时回退到全局注册表或 Settings，均缺失则抛 InvalidArgumentError。
    - model: 为 None 时使用 Settings.default_model。
    - cfg: 提供默认参数的配置对象，测试中可传入桩对象。
    """

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None, cfg=settings):
        self.api_key = resolve_api_key(api_key, cfg)
        self.model = model or cfg.default_model
        self.temperature = cfg.temperature
        self.top_p = cfg.top_p
        self.max_tokens = 0
        self.presence_penalty = 0.0
        self.frequency_penalty = 0.0
        self.base_url = cfg.base_url.rstrip("/")
        self.use_streaming = cfg.use_streaming
        self.context_messages = cfg.context_messages
        self.max_retries = cfg.max_retries
        self.retry_delay_ms = cfg.retry_delay_ms
        self.http_timeout = cfg.http_timeout

        self._messages: List[Message] = []
        self.last_reply: Optional[str] = None
        self.last_usage = ChatUsage()
        self.error = ErrorState()

    # ---- 错误状态 ----

    @property
    def last_code(self) -> ErrorCode:
        return self.error.code

    @property
    def last_error(self) -> str:
        return self.error.message

    @property
    def last_http_code(self) -> int:
        return self.error.http_status

    def clear_error(self) -> None:
        self.error.clear()

    # ---- 配置 ----

    def set_model(self, model: str) -> None:
        self.model = _check_text("model", model)

    def set_temperature(self, value: float) -> None:
        self.temperature = _check_number("temperature", value, 0.0, 2.0)

    def set_top_p(self, value: float) -> None:
        self.top_p = _check_number("top_p", value, 0.0, 1.0, low_inclusive=False)

    def set_presence_penalty(self, value: float) -> None:
        self.presence_penalty = _check_number("presence_penalty", value, -2.0, 2.0)

    def set_frequency_penalty(self, value: float) -> None:
        self.frequency_penalty = _check_number("frequency_penalty", value, -2.0, 2.0)

    def set_max_tokens(self, value: int) -> None:
        """0 表示不限制。"""

        self.max_tokens = _check_count("max_tokens", value)

    def set_base_url(self, base_url: str) -> None:
        self.base_url = _check_text("base_url", base_url).rstrip("/")

    def set_streaming(self, enabled: bool) -> None:
        self.use_streaming = bool(enabled)

    def set_context_messages(self, count: int) -> None:
        """0 表示仅发送最后一条消息。"""

        self.context_messages = _check_count("context_messages", count)

    def set_retry_config(self, max_retries: int, delay_ms: int) -> None:
        # 两个参数都校验通过后才写入
        max_retries = _check_count("max_retries", max_retries)
        delay_ms = _check_count("retry_delay_ms", delay_ms)
        self.max_retries = max_retries
        self.retry_delay_ms = delay_ms

    def copy_settings_from(self, src: "Conversation") -> None:
        """复制 src 的全部配置（不含 api_key 与消息）。"""

        if not isinstance(src, Conversation):
            raise InvalidArgumentError(code="INVALID_ARGUMENT", message="src must be a Conversation")
        self.model = src.model
        self.base_url = src.base_url
        self.temperature = src.temperature
        self.top_p = src.top_p
        self.max_tokens = src.max_tokens
        self.presence_penalty = src.presence_penalty
        self.frequency_penalty = src.frequency_penalty
        self.use_streaming = src.use_streaming
        self.context_messages = src.context_messages
        self.max_retries = src.max_retries
        self.retry_delay_ms = src.retry_delay_ms
        self.http_timeout = src.http_timeout

    # ---- 消息管理 ----

    @property
    def messages(self) -> Tuple[Message, ...]:
        """消息序列的只读快照。"""

        return tuple(self._messages)

    @property
    def message_count(self) -> int:
        return len(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def add_message(self, role: str, content: str) -> None:
        self._messages.append(Message(role=_check_text("role", role), content=_check_text("content", content)))

    def add_user(self, content: str) -> None:
        self.add_message("user", content)

    def add_system(self, content: str) -> None:
        self.add_message("system", content)

    def add_assistant(self, content: str) -> None:
        self.add_message("assistant", content)

    def add_user_with_file(self, content: Optional[str], file_path: str, file_type: str) -> None:
        """追加一条带附件占位说明的 user 消息（只生成文本，不读取文件）。"""

        _check_text("file_path", file_path)
        _check_text("file_type", file_type)
        text = f"{content or 'File attachment'} [File attached: {file_path} ({file_type})]"
        self.add_user(text)

    def remove_at(self, index: int) -> None:
        if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < len(self._messages):
            raise InvalidArgumentError(
                code="INDEX_OUT_OF_RANGE",
                message=f"index {index!r} out of range for {len(self._messages)} messages",
            )
        del self._messages[index]

    def pop_last(self) -> Message:
        if not self._messages:
            raise InvalidArgumentError(code="EMPTY_CONVERSATION", message="no message to pop")
        return self._messages.pop()

    def _last_index_of_role(self, role: str) -> int:
        for i in range(len(self._messages) - 1, -1, -1):
            if self._messages[i].role == role:
                return i
        raise StateError(code="NO_SUCH_MESSAGE", message=f"no {role} message found")

    def replace_last_of_role(self, role: str, text: str) -> None:
        _check_text("text", text)
        i = self._last_index_of_role(role)
        self._messages[i] = Message(role=role, content=text)

    def append_to_last_of_role(self, role: str, extra: str) -> None:
        _check_text("extra", extra)
        i = self._last_index_of_role(role)
        msg = self._messages[i]
        self._messages[i] = Message(role=msg.role, content=msg.content + extra)

    def replace_last_user(self, text: str) -> None:
        self.replace_last_of_role("user", text)

    def append_to_last_assistant(self, extra: str) -> None:
        self.append_to_last_of_role("assistant", extra)

    def replace_messages(self, messages: List[Message]) -> None:
        """整体替换消息序列（加载持久化文件时使用）。"""

        self._messages.clear()
        self._messages.extend(Message(role=m.role, content=m.content) for m in messages)

    def clear(self) -> None:
        # 原地清空，保留列表对象以便反复复用
        self._messages.clear()

    def reset(self) -> None:
        """清空消息、用量、last_reply 与错误状态，保留配置。"""

        self.clear()
        self.last_usage = ChatUsage()
        self.last_reply = None
        self.error.clear()

    def close(self) -> None:
        self.reset()

    def __enter__(self) -> "Conversation":
        return self

    def __exit__(self, *exc) -> bool:
        self.close()
        return False

    # ---- 调试辅助 ----

    def dump_messages(self) -> str:
        return json.dumps([m.to_payload() for m in self._messages], ensure_ascii=False)

    def format_messages(self) -> str:
        return "\n".join(f"{i} {m.role}: {m.content}" for i, m in enumerate(self._messages))


def copy_settings(dst: Conversation, src: Conversation) -> None:
    if not isinstance(dst, Conversation):
        raise InvalidArgumentError(code="INVALID_ARGUMENT", message="dst must be a Conversation")
    dst.copy_settings_from(src)
