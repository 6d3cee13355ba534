"""与会话无关的辅助端点：模型列表与图片生成。

复用 HttpTransport，不经过会话状态；不做重试。
"""

import json
from typing import Optional

from chat_core.config.api_key import resolve_api_key
from chat_core.config.settings import settings
from chat_core.domain.exceptions import InvalidArgumentError, JsonParseError
from chat_core.providers.response_decoder import error_from_status
from chat_core.providers.transport import HttpTransport


MODELS_PATH = "/v1/models"
IMAGES_PATH = "/v1/images/generations"


def _transport(api_key: Optional[str], base_url: Optional[str], cfg) -> HttpTransport:
    return HttpTransport(
        base_url=base_url or cfg.base_url,
        api_key=resolve_api_key(api_key, cfg),
        timeout=cfg.http_timeout,
    )


def list_models(api_key: Optional[str] = None, base_url: Optional[str] = None, cfg=settings) -> str:
    """返回 GET /v1/models 的原始响应体。"""

    resp = _transport(api_key, base_url, cfg).get(MODELS_PATH)
    if resp.status_code >= 400:
        raise error_from_status(resp.text, resp.status_code)
    return resp.text


def is_model_available(
    model_name: str,
    api_key: Optional[str] = None,
    base_url: Optional[str] = None,
    cfg=settings,
) -> bool:
    """按子串包含判断模型是否出现在模型列表中。"""

    if not model_name:
        raise InvalidArgumentError(code="INVALID_ARGUMENT", message="model_name is required")
    return model_name in list_models(api_key, base_url, cfg)


def generate_image(
    prompt: str,
    size: str = "1024x1024",
    api_key: Optional[str] = None,
    base_url: Optional[str] = None,
    cfg=settings,
) -> str:
    """生成一张图片，返回 data[0].url。"""

    if not prompt or not size:
        raise InvalidArgumentError(code="INVALID_ARGUMENT", message="prompt and size are required")
    body = {"prompt": prompt, "n": 1, "size": size}
    resp = _transport(api_key, base_url, cfg).post_json(IMAGES_PATH, body)
    if resp.status_code >= 400:
        raise error_from_status(resp.text, resp.status_code)
    try:
        data = json.loads(resp.text)
    except json.JSONDecodeError:
        raise JsonParseError(code="JSON_PARSE_ERROR", message="Failed to parse response JSON")
    items = data.get("data") if isinstance(data, dict) else None
    first = items[0] if isinstance(items, list) and items else None
    url = first.get("url") if isinstance(first, dict) else None
    if not isinstance(url, str):
        raise JsonParseError(code="JSON_PARSE_ERROR", message="No image url in response")
    return url
