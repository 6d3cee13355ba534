"""非流式响应解析。

把完整的响应体解析为 CompletionResult，或转换为对应的业务异常：
- 顶层存在 error 对象时一律视为 ApiError（即使同时带有 choices）。
- 否则要求 choices 非空，且 choices[0].message.content 为字符串。
- usage 字段可选，缺失时 CompletionResult.usage 为 None；只包含数值类型的字段。
"""

import json
from typing import Any, Dict, Optional

from chat_core.domain.exceptions import ApiError, JsonParseError
from chat_core.domain.models import USAGE_FIELDS, CompletionResult


def _load_document(text: str) -> Any:
    try:
        return json.loads(text)
    except (json.JSONDecodeError, TypeError):
        raise JsonParseError(code="JSON_PARSE_ERROR", message="Failed to parse response JSON")


def _api_error_message(error: Any) -> str:
    if isinstance(error, dict):
        msg = error.get("message")
        if isinstance(msg, str):
            return msg
    return "API returned error"


def _parse_usage(raw: Any) -> Optional[Dict[str, int]]:
    """只取出数值类型的用量字段；缺失或非数值的字段不出现在结果中。"""

    if not isinstance(raw, dict):
        return None
    usage: Dict[str, int] = {}
    for name in USAGE_FIELDS:
        value = raw.get(name)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            usage[name] = int(value)
    return usage


def decode_completion(text: str, http_status: int = 0) -> CompletionResult:
    data = _load_document(text)
    if not isinstance(data, dict):
        raise JsonParseError(code="JSON_PARSE_ERROR", message="Response is not a JSON object", http_status=http_status)
    if "error" in data:
        raise ApiError(code="API_ERROR", message=_api_error_message(data["error"]), http_status=http_status)

    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        raise JsonParseError(code="JSON_PARSE_ERROR", message="No choices in response", http_status=http_status)
    first = choices[0] if isinstance(choices[0], dict) else {}
    msg = first.get("message")
    content = msg.get("content") if isinstance(msg, dict) else None
    if not isinstance(content, str):
        raise JsonParseError(code="JSON_PARSE_ERROR", message="No content in response message", http_status=http_status)

    return CompletionResult(content=content, usage=_parse_usage(data.get("usage")))


def error_from_status(text: str, http_status: int) -> ApiError:
    """为非 2xx 响应构造 ApiError，优先使用响应体中的 error.message。"""

    message = f"HTTP {http_status}"
    try:
        data: Dict[str, Any] = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        data = {}
    if isinstance(data, dict) and "error" in data:
        message = _api_error_message(data["error"])
    elif text:
        message = f"HTTP {http_status}: {text[:200]}"
    return ApiError(code="API_ERROR", message=message, http_status=http_status)
