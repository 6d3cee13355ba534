import pytest

from chat_core.domain.exceptions import ApiError, JsonParseError
from chat_core.providers import extras


def install_client(monkeypatch, status_code, text, captured):
    class Resp:
        def __init__(self):
            self.status_code = status_code
            self.text = text

    class Client:
        def __init__(self, *a, **kw):
            pass

        def __enter__(self):
            return self

        def __exit__(self, *a):
            return False

        def get(self, url, headers=None, **_):
            captured["url"] = url
            return Resp()

        def post(self, url, json=None, headers=None, **_):
            captured["url"] = url
            captured["payload"] = json
            return Resp()

    monkeypatch.setattr("httpx.Client", Client)


MODELS = '{"data": [{"id": "gpt-4o-mini"}, {"id": "gpt-4"}]}'


def test_list_models(monkeypatch, cfg):
    captured = {}
    install_client(monkeypatch, 200, MODELS, captured)
    assert extras.list_models(api_key="k", cfg=cfg) == MODELS
    assert captured["url"] == "https://api.openai.com/v1/models"


def test_is_model_available_by_substring(monkeypatch, cfg):
    install_client(monkeypatch, 200, MODELS, {})
    assert extras.is_model_available("gpt-4o", api_key="k", cfg=cfg)
    assert not extras.is_model_available("dall-e-3", api_key="k", cfg=cfg)


def test_list_models_error(monkeypatch, cfg):
    install_client(monkeypatch, 401, '{"error": {"message": "bad key"}}', {})
    with pytest.raises(ApiError):
        extras.list_models(api_key="k", cfg=cfg)


def test_generate_image(monkeypatch, cfg):
    captured = {}
    install_client(monkeypatch, 200, '{"data": [{"url": "https://img/1.png"}]}', captured)
    url = extras.generate_image("a cat", "512x512", api_key="k", cfg=cfg)
    assert url == "https://img/1.png"
    assert captured["url"] == "https://api.openai.com/v1/images/generations"
    assert captured["payload"] == {"prompt": "a cat", "n": 1, "size": "512x512"}


def test_generate_image_without_url(monkeypatch, cfg):
    install_client(monkeypatch, 200, '{"data": []}', {})
    with pytest.raises(JsonParseError):
        extras.generate_image("a cat", api_key="k", cfg=cfg)
