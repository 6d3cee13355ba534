"""补全调用编排。

ChatClient 把各组件串起来：

- complete:        RequestBuilder -> Transport(缓冲) -> ResponseDecoder -> 更新会话
- stream:          RequestBuilder(stream=True) -> Transport(增量) -> StreamDecoder -> 更新会话
- complete_stream: 驱动 stream，每个增量同步回调一次 on_delta

每次补全开始时都会清空会话的错误状态；失败时先把错误写入会话再抛出，
会话本身保持可用。补全结果不会自动追加到消息列表，由调用方决定。
"""

import logging
from typing import Callable, Iterable, Iterator, Optional

from chat_core.domain.conversation import Conversation
from chat_core.domain.exceptions import ChatError, OutOfMemoryError
from chat_core.infrastructure.logging.logger import logger
from chat_core.providers.request_builder import build_request_body
from chat_core.providers.response_decoder import decode_completion, error_from_status
from chat_core.providers.stream_decoder import StreamDecoder, StreamState, iter_deltas
from chat_core.providers.transport import CHAT_COMPLETIONS_PATH, HttpTransport


DeltaCallback = Callable[[str], None]


def _log(level: int, msg: str, conversation: Conversation, **fields) -> None:
    payload = {"model": conversation.model, "messages": conversation.message_count}
    payload.update(fields)
    logger.log(level, msg, extra={"extra": payload})


def _fail(conversation: Conversation, exc: ChatError) -> None:
    conversation.error.record(exc)
    _log(
        logging.ERROR,
        "Completion failed",
        conversation,
        code=exc.code,
        http_status=exc.http_status,
        error=exc.message,
    )


class CompletionStream:
    """一次流式补全：惰性、有限、不可重启的增量迭代器。

    迭代结束后 text 为完整回复，并同步写入 conversation.last_reply。
    中途失败时已累积的部分文本被丢弃，last_reply 保持原值。
    """

    def __init__(self, conversation: Conversation, chunks: Iterable[bytes]):
        self._conversation = conversation
        self._chunks = chunks
        self._decoder = StreamDecoder()
        self._deltas: Optional[Iterator[str]] = None
        self.text: Optional[str] = None

    @property
    def state(self) -> StreamState:
        return self._decoder.state

    def __iter__(self) -> "CompletionStream":
        return self

    def __next__(self) -> str:
        if self._deltas is None:
            self._deltas = self._run()
        return next(self._deltas)

    def _run(self) -> Iterator[str]:
        chunks = iter(self._chunks)
        try:
            yield from iter_deltas(chunks, self._decoder)
        except ChatError as exc:
            self._decoder.fail()
            _fail(self._conversation, exc)
            raise
        except MemoryError:
            self._decoder.fail()
            exc = OutOfMemoryError(code="OUT_OF_MEMORY", message="Out of memory while streaming")
            _fail(self._conversation, exc)
            raise exc
        finally:
            close = getattr(chunks, "close", None)
            if close is not None:
                close()
        text = self._decoder.text
        self.text = text
        self._conversation.last_reply = text
        # 传输层只在 2xx 响应上产出字节
        self._conversation.error.http_status = 200
        _log(logging.INFO, "Stream completed", self._conversation, chars=len(text))


class ChatClient:
    """会话补全客户端。

    transport_factory 根据会话构造传输对象，测试中可替换。
    """

    def __init__(self, transport_factory: Callable[[Conversation], HttpTransport] = HttpTransport.for_conversation):
        self._transport_factory = transport_factory

    def complete(self, conversation: Conversation) -> str:
        """执行一次非流式补全，返回回复文本。"""

        conversation.clear_error()
        _log(logging.INFO, "Completion request", conversation, stream=False)
        try:
            body = build_request_body(conversation, stream=False)
            resp = self._transport_factory(conversation).post_json(CHAT_COMPLETIONS_PATH, body)
            conversation.error.http_status = resp.status_code
            if resp.status_code >= 400:
                raise error_from_status(resp.text, resp.status_code)
            result = decode_completion(resp.text, resp.status_code)
        except ChatError as exc:
            _fail(conversation, exc)
            raise
        except MemoryError:
            exc = OutOfMemoryError(code="OUT_OF_MEMORY", message="Failed to build request body")
            _fail(conversation, exc)
            raise exc

        conversation.last_reply = result.content
        if result.usage is not None:
            conversation.last_usage.merge(result.usage)
        _log(
            logging.INFO,
            "Completion finished",
            conversation,
            total_tokens=conversation.last_usage.total_tokens,
        )
        return result.content

    def stream(self, conversation: Conversation) -> CompletionStream:
        """发起一次流式补全，返回按到达顺序产出增量的迭代器。"""

        conversation.clear_error()
        _log(logging.INFO, "Completion request", conversation, stream=True)
        try:
            body = build_request_body(conversation, stream=True)
        except MemoryError:
            exc = OutOfMemoryError(code="OUT_OF_MEMORY", message="Failed to build request body")
            _fail(conversation, exc)
            raise exc
        chunks = self._transport_factory(conversation).stream_post(CHAT_COMPLETIONS_PATH, body)
        return CompletionStream(conversation, chunks)

    def complete_stream(self, conversation: Conversation, on_delta: Optional[DeltaCallback] = None) -> str:
        """流式补全；每个增量在调用线程上同步回调 on_delta，返回完整文本。"""

        stream = self.stream(conversation)
        for delta in stream:
            if on_delta is not None:
                on_delta(delta)
        return stream.text or ""

    def chat(self, conversation: Conversation, on_delta: Optional[DeltaCallback] = None) -> str:
        """按会话的 use_streaming 选择流式或非流式补全。"""

        if conversation.use_streaming:
            return self.complete_stream(conversation, on_delta)
        return self.complete(conversation)


def query(prompt: str, api_key: Optional[str] = None, client: Optional[ChatClient] = None) -> str:
    """一次性提问：临时会话 + 单条 user 消息 + 非流式补全。"""

    conversation = Conversation(api_key=api_key)
    try:
        conversation.add_user(prompt)
        return (client or ChatClient()).complete(conversation)
    finally:
        conversation.close()
