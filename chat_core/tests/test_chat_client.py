import json

import httpx
import pytest

from chat_core.domain.exceptions import ApiError, ErrorCode, HttpError, JsonParseError, StreamError
from chat_core.providers.chat_client import ChatClient
from chat_core.providers.transport import TransportResponse


class FakeTransport:
    """按顺序返回预设结果的传输桩，记录收到的请求体。"""

    def __init__(self, responses=(), chunks=(), stream_error=None):
        self.responses = list(responses)
        self.chunks = list(chunks)
        self.stream_error = stream_error
        self.bodies = []

    def post_json(self, path, body):
        self.bodies.append(body)
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def stream_post(self, path, body):
        self.bodies.append(body)
        for chunk in self.chunks:
            yield chunk
        if self.stream_error is not None:
            raise self.stream_error


def ok_body(content="ok", usage=True):
    data = {"choices": [{"message": {"role": "assistant", "content": content}}]}
    if usage:
        data["usage"] = {"prompt_tokens": 3, "completion_tokens": 4, "total_tokens": 7}
    return json.dumps(data)


SAMPLE = [
    b'data: {"choices":[{"delta":{"content":"Hel"}}]}\n\n',
    b'data: {"choices":[{"delta":{"content":"lo"}}]}\n\ndata: [DONE]\n\n',
]


def test_complete_updates_cache(conv):
    transport = FakeTransport([TransportResponse(200, ok_body("hi there"))])
    conv.add_user("hi")
    reply = ChatClient(lambda c: transport).complete(conv)
    assert reply == "hi there"
    assert conv.last_reply == "hi there"
    assert conv.last_usage.total_tokens == 7
    assert conv.last_code is ErrorCode.OK
    assert conv.last_http_code == 200
    assert "stream" not in transport.bodies[0]
    # 回复不会自动追加到消息列表
    assert conv.message_count == 1


def test_missing_usage_keeps_previous_usage(conv):
    transport = FakeTransport([
        TransportResponse(200, ok_body("a")),
        TransportResponse(200, ok_body("b", usage=False)),
    ])
    client = ChatClient(lambda c: transport)
    conv.add_user("hi")
    client.complete(conv)
    client.complete(conv)
    assert conv.last_reply == "b"
    assert conv.last_usage.total_tokens == 7


def test_partial_usage_updates_only_given_fields(conv):
    partial = json.dumps({
        "choices": [{"message": {"content": "b"}}],
        "usage": {"total_tokens": 9},
    })
    transport = FakeTransport([
        TransportResponse(200, ok_body("a")),
        TransportResponse(200, partial),
    ])
    client = ChatClient(lambda c: transport)
    conv.add_user("hi")
    client.complete(conv)
    client.complete(conv)
    usage = conv.last_usage
    assert (usage.prompt_tokens, usage.completion_tokens, usage.total_tokens) == (3, 4, 9)


def test_api_error_recorded_then_cleared(conv):
    transport = FakeTransport([
        TransportResponse(200, '{"error": {"message": "nope"}, "choices": [{"message": {"content": "x"}}]}'),
        TransportResponse(200, ok_body()),
    ])
    client = ChatClient(lambda c: transport)
    conv.add_user("hi")
    with pytest.raises(ApiError):
        client.complete(conv)
    assert conv.last_code is ErrorCode.API
    assert conv.last_error == "nope"
    assert conv.last_reply is None
    client.complete(conv)
    assert conv.last_code is ErrorCode.OK
    assert conv.last_error == ""


def test_http_status_error(conv):
    transport = FakeTransport([TransportResponse(429, '{"error": {"message": "slow down"}}')])
    conv.add_user("hi")
    with pytest.raises(ApiError):
        ChatClient(lambda c: transport).complete(conv)
    assert conv.last_http_code == 429
    assert conv.last_error == "slow down"


def test_transport_error_recorded(conv):
    transport = FakeTransport([HttpError(code="HTTP_ERROR", message="Could not resolve host")])
    conv.add_user("hi")
    with pytest.raises(HttpError):
        ChatClient(lambda c: transport).complete(conv)
    assert conv.last_code is ErrorCode.HTTP
    assert conv.last_error == "Could not resolve host"
    conv.add_user("still usable")
    assert conv.message_count == 2


def test_bad_json_recorded(conv):
    transport = FakeTransport([TransportResponse(200, "<html>")])
    conv.add_user("hi")
    with pytest.raises(JsonParseError):
        ChatClient(lambda c: transport).complete(conv)
    assert conv.last_code is ErrorCode.JSON_PARSE


def test_complete_stream_invokes_sink_in_order(conv):
    transport = FakeTransport(chunks=SAMPLE)
    conv.add_user("hi")
    seen = []
    full = ChatClient(lambda c: transport).complete_stream(conv, seen.append)
    assert seen == ["Hel", "lo"]
    assert full == "Hello"
    assert conv.last_reply == "Hello"
    assert conv.last_http_code == 200
    assert transport.bodies[0]["stream"] is True


def test_stream_iterator_is_lazy_and_not_restartable(conv):
    transport = FakeTransport(chunks=SAMPLE)
    conv.add_user("hi")
    stream = ChatClient(lambda c: transport).stream(conv)
    assert transport.bodies == []
    assert stream.text is None
    assert list(stream) == ["Hel", "lo"]
    assert stream.text == "Hello"
    assert list(stream) == []


def test_stream_failure_discards_partial_text(conv):
    conv.last_reply = "previous"
    transport = FakeTransport(
        chunks=[SAMPLE[0]],
        stream_error=StreamError(code="STREAM_ERROR", message="connection reset"),
    )
    conv.add_user("hi")
    seen = []
    with pytest.raises(StreamError):
        ChatClient(lambda c: transport).complete_stream(conv, seen.append)
    assert seen == ["Hel"]
    assert conv.last_reply == "previous"
    assert conv.last_code is ErrorCode.STREAM
    assert conv.last_error == "connection reset"
    assert conv.last_http_code == 0


def test_chat_dispatches_on_streaming_flag(conv):
    transport = FakeTransport(responses=[TransportResponse(200, ok_body("buffered"))], chunks=SAMPLE)
    client = ChatClient(lambda c: transport)
    conv.add_user("hi")
    assert client.chat(conv) == "Hello"
    conv.set_streaming(False)
    assert client.chat(conv) == "buffered"


def test_complete_over_http(monkeypatch, conv):
    captured = {}

    class Resp:
        status_code = 200
        text = ok_body("from http")

    class Client:
        def __init__(self, *a, **kw):
            pass

        def __enter__(self):
            return self

        def __exit__(self, *a):
            return False

        def post(self, url, json=None, headers=None, **_):
            captured["url"] = url
            captured["payload"] = json
            captured["headers"] = headers
            return Resp()

    monkeypatch.setattr("httpx.Client", Client)
    conv.set_context_messages(1)
    conv.add_system("sys")
    conv.add_user("hi")
    assert ChatClient().complete(conv) == "from http"
    assert captured["url"] == "https://api.openai.com/v1/chat/completions"
    assert captured["headers"]["Authorization"] == "Bearer k"
    assert captured["payload"]["messages"] == [{"role": "user", "content": "hi"}]


def test_complete_stream_over_http(monkeypatch, conv):
    body = b"".join(SAMPLE)
    # 故意在行中间切块
    pieces = [body[:10], body[10:57], body[57:]]

    class FakeResponse:
        status_code = 200

        def iter_bytes(self):
            yield from pieces

    class StreamContext:
        def __enter__(self):
            return FakeResponse()

        def __exit__(self, *args):
            return False

    class Client:
        def __init__(self, *a, **kw):
            pass

        def __enter__(self):
            return self

        def __exit__(self, *a):
            return False

        def post(self, *a, **kw):
            raise AssertionError("post should not be called in stream test")

        def stream(self, *a, **kw):
            return StreamContext()

    monkeypatch.setattr("httpx.Client", Client)
    conv.add_user("hi")
    seen = []
    assert ChatClient().complete_stream(conv, seen.append) == "Hello"
    assert seen == ["Hel", "lo"]


def test_stream_network_error_over_http(monkeypatch, conv):
    class Client:
        def __init__(self, *a, **kw):
            pass

        def __enter__(self):
            return self

        def __exit__(self, *a):
            return False

        def stream(self, *a, **kw):
            raise httpx.ConnectError("refused")

    monkeypatch.setattr("httpx.Client", Client)
    conv.add_user("hi")
    with pytest.raises(StreamError):
        ChatClient().complete_stream(conv)
    assert conv.last_code is ErrorCode.STREAM
