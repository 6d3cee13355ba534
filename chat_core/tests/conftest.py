import pytest

from chat_core.domain.conversation import Conversation


class SettingsStub:
    openai_api_key = None
    default_model = "gpt-4o-mini"
    base_url = "https://api.openai.com"
    http_timeout = 1.0
    temperature = 0.7
    top_p = 1.0
    use_streaming = True
    context_messages = 5
    max_retries = 0
    retry_delay_ms = 0


@pytest.fixture
def cfg() -> SettingsStub:
    return SettingsStub()


@pytest.fixture
def conv(cfg) -> Conversation:
    return Conversation(api_key="k", cfg=cfg)
