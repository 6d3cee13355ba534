"""HTTP 传输层。

只负责把给定的请求体发送到 {base_url}{path}，不理解会话内容：
- 认证: Authorization: Bearer <api_key>
- 请求体: application/json

两种模式：
- 缓冲模式 post_json / get：读完整个响应体，返回 TransportResponse。
  网络错误（DNS、连接、TLS、超时）包装为 HttpError。
- 增量模式 stream_post：逐块产出响应字节。传输错误包装为 StreamError，
  非 2xx 状态在读取任何字节之前转换为 ApiError。

重试策略（tenacity）：网络错误、5xx 与 429 视为可重试，最多额外重试
max_retries 次，每次间隔固定的 retry_delay_ms。重试耗尽时报告最后一次失败。
流式请求只在响应字节交给下游之前重试。
"""

from contextlib import ExitStack
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, Tuple

import httpx
from tenacity import RetryCallState, Retrying, retry_if_exception, stop_after_attempt, wait_fixed

from chat_core.domain.exceptions import HttpError, StreamError
from chat_core.infrastructure.logging.logger import logger
from chat_core.providers.response_decoder import error_from_status


CHAT_COMPLETIONS_PATH = "/v1/chat/completions"


@dataclass
class TransportResponse:
    status_code: int
    text: str


class RetryableStatus(Exception):
    """可重试的 HTTP 状态（5xx / 429），携带最后一次响应。"""

    def __init__(self, response: TransportResponse):
        self.response = response
        super().__init__(f"HTTP {response.status_code}")


def is_retryable_status(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, (HttpError, StreamError, RetryableStatus))


class HttpTransport:
    """基于 httpx 的传输实现。"""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 60.0,
        max_retries: int = 0,
        retry_delay_ms: int = 0,
    ):
        self.base_url = base_url.rstrip("/")
        self._api_key = api_key
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay_ms = retry_delay_ms

    @classmethod
    def for_conversation(cls, conversation) -> "HttpTransport":
        return cls(
            base_url=conversation.base_url,
            api_key=conversation.api_key,
            timeout=conversation.http_timeout,
            max_retries=conversation.max_retries,
            retry_delay_ms=conversation.retry_delay_ms,
        )

    # ---- 缓冲模式 ----

    def post_json(self, path: str, body: Dict[str, Any]) -> TransportResponse:
        return self._call_with_retry(self._post_once, self.url(path), body)

    def get(self, path: str) -> TransportResponse:
        return self._call_with_retry(self._get_once, self.url(path))

    # ---- 增量模式 ----

    def stream_post(self, path: str, body: Dict[str, Any]) -> Iterator[bytes]:
        url = self.url(path)
        with httpx.Client(timeout=self.timeout, trust_env=False) as client:
            try:
                resp, stack = self._retrying()(self._open_stream, client, url, body)
            except RetryableStatus as exc:
                raise error_from_status(exc.response.text, exc.response.status_code)
            with stack:
                try:
                    for chunk in resp.iter_bytes():
                        if chunk:
                            yield chunk
                except (httpx.RequestError, httpx.StreamError) as e:
                    raise StreamError(code="STREAM_ERROR", message=str(e) or type(e).__name__, url=url)

    # ---- 辅助方法 ----

    def url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def headers(self, with_body: bool = True) -> Dict[str, str]:
        headers = {"Authorization": f"Bearer {self._api_key}"}
        if with_body:
            headers["Content-Type"] = "application/json"
        return headers

    def _retrying(self) -> Retrying:
        return Retrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_fixed(self.retry_delay_ms / 1000.0),
            retry=retry_if_exception(_is_retryable),
            before_sleep=self._log_retry,
            reraise=True,
        )

    def _call_with_retry(self, fn: Callable[..., TransportResponse], *args) -> TransportResponse:
        try:
            return self._retrying()(fn, *args)
        except RetryableStatus as exc:
            return exc.response

    def _post_once(self, url: str, body: Dict[str, Any]) -> TransportResponse:
        try:
            with httpx.Client(timeout=self.timeout, trust_env=False) as client:
                resp = client.post(url, json=body, headers=self.headers())
        except httpx.RequestError as e:
            raise HttpError(code="HTTP_ERROR", message=str(e) or type(e).__name__, url=url)
        return self._check_status(TransportResponse(status_code=resp.status_code, text=resp.text))

    def _get_once(self, url: str) -> TransportResponse:
        try:
            with httpx.Client(timeout=self.timeout, trust_env=False) as client:
                resp = client.get(url, headers=self.headers(with_body=False))
        except httpx.RequestError as e:
            raise HttpError(code="HTTP_ERROR", message=str(e) or type(e).__name__, url=url)
        return self._check_status(TransportResponse(status_code=resp.status_code, text=resp.text))

    def _open_stream(self, client: httpx.Client, url: str, body: Dict[str, Any]) -> Tuple[Any, ExitStack]:
        with ExitStack() as stack:
            try:
                resp = stack.enter_context(client.stream("POST", url, json=body, headers=self.headers()))
                if resp.status_code >= 400:
                    resp.read()
            except httpx.RequestError as e:
                raise StreamError(code="STREAM_ERROR", message=str(e) or type(e).__name__, url=url)
            if resp.status_code >= 400:
                self._check_status(TransportResponse(status_code=resp.status_code, text=resp.text))
                raise error_from_status(resp.text, resp.status_code)
            # 成功打开后把响应的关闭责任交给调用方
            return resp, stack.pop_all()

    @staticmethod
    def _check_status(response: TransportResponse) -> TransportResponse:
        if is_retryable_status(response.status_code):
            raise RetryableStatus(response)
        return response

    def _log_retry(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "Retrying request",
            extra={
                "extra": {
                    "attempt": retry_state.attempt_number,
                    "max_retries": self.max_retries,
                    "delay_ms": self.retry_delay_ms,
                    "reason": str(exc),
                }
            },
        )
