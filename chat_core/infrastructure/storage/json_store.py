"""会话消息的 JSON 文件持久化。

文件格式为 `[{"role": ..., "content": ...}, ...]`，只保存消息，不保存配置。
加载时整体替换当前消息；缺少字段或字段不是字符串的条目静默跳过。
"""

import json
import os
from pathlib import Path
from typing import List, Union
from uuid import uuid4

from chat_core.domain.conversation import Conversation
from chat_core.domain.exceptions import JsonParseError, StorageError
from chat_core.domain.models import Message


PathLike = Union[str, Path]


def save_conversation(conversation: Conversation, path: PathLike) -> None:
    target = Path(path)
    tmp_path = target.with_name(f"{target.name}.{uuid4().hex}.tmp")
    try:
        tmp_path.write_text(conversation.dump_messages(), encoding="utf-8")
        os.replace(tmp_path, target)
    except (OSError, UnicodeEncodeError) as e:
        raise StorageError(code="STORE_WRITE_ERROR", message=str(e))
    finally:
        tmp_path.unlink(missing_ok=True)


def load_conversation(conversation: Conversation, path: PathLike) -> int:
    """从文件加载消息，返回加载的条数。文件不合法时会话保持不变。"""

    try:
        raw = Path(path).read_bytes()
    except OSError as e:
        raise StorageError(code="STORE_READ_ERROR", message=str(e))
    try:
        data = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        raise JsonParseError(code="JSON_PARSE_ERROR", message=f"Invalid conversation file: {path}")
    if not isinstance(data, list):
        raise JsonParseError(code="JSON_PARSE_ERROR", message="Conversation file must contain a JSON array")

    messages: List[Message] = []
    for item in data:
        if not isinstance(item, dict):
            continue
        role = item.get("role")
        content = item.get("content")
        if isinstance(role, str) and isinstance(content, str):
            messages.append(Message(role=role, content=content))
    conversation.replace_messages(messages)
    return len(messages)
