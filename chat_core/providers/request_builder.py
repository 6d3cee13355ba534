"""请求体构造。

把会话状态序列化为 /v1/chat/completions 的 JSON 请求体。
纯函数：同样的会话状态总是得到同样的请求体，不做任何 I/O。
"""

from typing import Any, Dict, List, Sequence

from chat_core.domain.conversation import Conversation
from chat_core.domain.models import Message


def window_messages(messages: Sequence[Message], context_messages: int) -> List[Message]:
    """取最近 context_messages 条消息；0 表示只取最后一条。保持原有顺序。"""

    if not messages:
        return []
    keep = context_messages if context_messages > 0 else 1
    return list(messages[-keep:])


def build_request_body(conversation: Conversation, stream: bool = False) -> Dict[str, Any]:
    msgs = window_messages(conversation.messages, conversation.context_messages)
    payload: Dict[str, Any] = {
        "model": conversation.model,
        "messages": [m.to_payload() for m in msgs],
        "temperature": conversation.temperature,
        "top_p": conversation.top_p,
    }
    if conversation.presence_penalty != 0.0:
        payload["presence_penalty"] = conversation.presence_penalty
    if conversation.frequency_penalty != 0.0:
        payload["frequency_penalty"] = conversation.frequency_penalty
    if conversation.max_tokens > 0:
        payload["max_tokens"] = conversation.max_tokens
    if stream:
        payload["stream"] = True
    return payload
