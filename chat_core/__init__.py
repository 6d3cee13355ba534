"""Chat Core 顶层包。

该包提供与 OpenAI 兼容 Chat Completions 服务交互的会话客户端，
包括配置加载、会话状态模型、请求构造、一次性与流式补全、
事件流解码以及会话持久化等能力。
"""

from chat_core.config.api_key import get_api_key_global, set_api_key_global
from chat_core.domain.conversation import Conversation, copy_settings
from chat_core.domain.exceptions import ChatError, ErrorCode
from chat_core.domain.models import ChatUsage, Message
from chat_core.providers.chat_client import ChatClient, CompletionStream, query

__all__ = [
    "ChatClient",
    "ChatError",
    "ChatUsage",
    "CompletionStream",
    "Conversation",
    "ErrorCode",
    "Message",
    "copy_settings",
    "get_api_key_global",
    "query",
    "set_api_key_global",
]
