"""事件流（text/event-stream）增量解码器。

服务端以任意边界分块下发字节，一行 `data: {...}` 可能横跨两个分块，
甚至在一个 UTF-8 多字节字符中间被切开。StreamDecoder 因此按字节缓存
最后一个不完整的行，只有遇到换行符时才把完整的行交给下游解析。

状态机：

    RECEIVING --[data: [DONE]]--> DONE
    RECEIVING --[finish()]------> DONE     （流正常结束但没有 [DONE]）
    RECEIVING --[fail()]--------> FAILED   （传输错误）

对每个完整的行：
- 不以 `data:` 开头的行忽略；
- 前缀后的连续空格跳过，剩余部分即 payload；
- payload 为 `[DONE]` 时进入 DONE，本次流中之后的数据全部忽略；
- 否则按 JSON 解析，若存在字符串类型的 choices[0].delta.content，
  产出一个增量并追加到累积文本；其他形态（非法 JSON、缺字段）静默跳过。
"""

import json
from enum import Enum
from typing import Any, Iterable, Iterator, List, Optional


DATA_PREFIX = b"data:"
DONE_MARKER = "[DONE]"


class StreamState(Enum):
    RECEIVING = "receiving"
    DONE = "done"
    FAILED = "failed"


def extract_delta(payload: str) -> Optional[str]:
    """从一条事件 payload 中取出 choices[0].delta.content；取不到返回 None。"""

    try:
        data: Any = json.loads(payload)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return None
    delta = choices[0].get("delta")
    if not isinstance(delta, dict):
        return None
    content = delta.get("content")
    return content if isinstance(content, str) else None


class StreamDecoder:
    """按分块喂入字节、按完整行产出文本增量的解码器。"""

    def __init__(self) -> None:
        self.state = StreamState.RECEIVING
        self._buffer = bytearray()
        self._parts: List[str] = []

    @property
    def text(self) -> str:
        """目前为止累积的全部增量文本。"""

        return "".join(self._parts)

    @property
    def pending(self) -> bytes:
        """尚未遇到换行符的残留字节。"""

        return bytes(self._buffer)

    def feed(self, chunk: bytes) -> List[str]:
        """喂入一个分块，返回其中完整行解析出的增量（按到达顺序）。"""

        if self.state is not StreamState.RECEIVING or not chunk:
            return []
        self._buffer.extend(chunk)
        deltas: List[str] = []
        while self.state is StreamState.RECEIVING:
            idx = self._buffer.find(b"\n")
            if idx < 0:
                break
            line = bytes(self._buffer[:idx])
            del self._buffer[: idx + 1]
            delta = self._process_line(line)
            if delta is not None:
                self._parts.append(delta)
                deltas.append(delta)
        if self.state is not StreamState.RECEIVING:
            self._buffer.clear()
        return deltas

    def finish(self) -> str:
        """流结束：丢弃没有换行符的残留行，返回累积文本。"""

        self._buffer.clear()
        if self.state is StreamState.RECEIVING:
            self.state = StreamState.DONE
        return self.text

    def fail(self) -> None:
        self._buffer.clear()
        self._parts.clear()
        self.state = StreamState.FAILED

    def _process_line(self, line: bytes) -> Optional[str]:
        if line.endswith(b"\r"):
            line = line[:-1]
        if not line.startswith(DATA_PREFIX):
            return None
        payload = line[len(DATA_PREFIX):].lstrip(b" ").decode("utf-8", errors="replace")
        if payload == DONE_MARKER:
            self.state = StreamState.DONE
            return None
        return extract_delta(payload)


def iter_deltas(chunks: Iterable[bytes], decoder: Optional[StreamDecoder] = None) -> Iterator[str]:
    """用一个 StreamDecoder 驱动分块序列，惰性地逐个产出增量。"""

    decoder = decoder or StreamDecoder()
    for chunk in chunks:
        yield from decoder.feed(chunk)
        if decoder.state is not StreamState.RECEIVING:
            break
    decoder.finish()
