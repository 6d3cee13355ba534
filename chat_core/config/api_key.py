"""进程级 API Key 注册表。

创建 Conversation 时如果没有显式传入 api_key，会依次尝试：
1. 通过 set_api_key_global 显式设置的 key；
2. Settings.openai_api_key（环境变量 / .env / config.yaml）。

注册表内部使用锁保护读写；但"先读再用"这类复合操作仍需调用方自行同步。
"""

import threading
from typing import Optional

from chat_core.domain.exceptions import InvalidArgumentError


class ApiKeyRegistry:
    """显式初始化的全局 API Key 持有者。"""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._key: Optional[str] = None

    def set(self, api_key: str) -> None:
        if not isinstance(api_key, str) or not api_key:
            raise InvalidArgumentError(code="INVALID_API_KEY", message="api_key must be a non-empty string")
        with self._lock:
            self._key = api_key

    def get(self) -> Optional[str]:
        with self._lock:
            return self._key

    def clear(self) -> None:
        with self._lock:
            self._key = None


registry = ApiKeyRegistry()


def set_api_key_global(api_key: str) -> None:
    registry.set(api_key)


def get_api_key_global() -> Optional[str]:
    return registry.get()


def resolve_api_key(explicit: Optional[str], cfg) -> str:
    """按 显式参数 > 注册表 > 配置 的顺序解析 API Key，全部缺失时报错。"""

    key = explicit or registry.get() or getattr(cfg, "openai_api_key", None)
    if not key:
        raise InvalidArgumentError(code="MISSING_API_KEY", message="OPENAI_API_KEY not set")
    return key
