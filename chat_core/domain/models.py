"""统一的对话数据模型。

- Message: 一条对话消息（role + content）。
- ChatUsage: 服务端返回的 token 统计。
- CompletionResult: 一次非流式补全解析后的结果。
"""

from dataclasses import dataclass
from typing import Dict, Mapping, Optional


USAGE_FIELDS = ("prompt_tokens", "completion_tokens", "total_tokens")


@dataclass
class Message:
    """一条对话消息，既可用于请求，也可用于持久化。"""

    role: str
    content: str

    def to_payload(self) -> dict:
        return {"role": self.role, "content": self.content}


@dataclass
class ChatUsage:
    """Provider 返回的 token 统计信息。"""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def merge(self, fields: Mapping[str, int]) -> None:
        """逐字段覆盖；fields 中没有的字段保留原值。"""

        for name in USAGE_FIELDS:
            if name in fields:
                setattr(self, name, fields[name])


@dataclass
class CompletionResult:
    """一次非流式补全的解析结果。

    usage 为 None 表示响应中没有 usage 对象；否则只包含响应里给出的数值字段，
    由调用方合并到会话缓存的用量中。
    """

    content: str
    usage: Optional[Dict[str, int]] = None
