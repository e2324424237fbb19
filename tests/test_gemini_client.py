import asyncio
from types import SimpleNamespace

import pytest
from google.api_core import exceptions as google_exceptions

from stock_chat.config import Settings
from stock_chat.errors import ParseError, UpstreamError, UpstreamTimeout
from stock_chat.gemini_client import GeminiClient, normalize_model_name
from stock_chat.interpreter import LLMInterpreter, create_llm_client


class StubModel:
    def __init__(self, text="", error=None, response=None):
        self.text = text
        self.error = error
        self.response = response
        self.calls = []

    async def generate_content_async(self, prompt, **kwargs):
        self.calls.append((prompt, kwargs))
        if self.error is not None:
            raise self.error
        return self.response if self.response is not None else SimpleNamespace(text=self.text)


def _gemini(model):
    client = GeminiClient(Settings(llm_provider="gemini", gemini_api_key="test-key", gemini_model="models/gemini-2.5-flash"))
    client._models[client.model] = model
    return client


def test_missing_key_is_rejected():
    with pytest.raises(ValueError):
        GeminiClient(Settings(llm_provider="gemini"))


def test_factory_builds_gemini_client():
    client = create_llm_client(Settings(llm_provider="gemini", gemini_api_key="test-key"))
    assert client.provider == "gemini"
    assert client.model == "gemini-2.5-flash"


def test_generate_requests_json_output():
    model = StubModel(text=' {"accion": "ayuda"} ')
    raw = asyncio.run(_gemini(model).generate("prompt"))
    assert raw == '{"accion": "ayuda"}'
    _, kwargs = model.calls[0]
    assert kwargs["generation_config"]["response_mime_type"] == "application/json"


def test_deadline_maps_to_upstream_timeout():
    model = StubModel(error=google_exceptions.DeadlineExceeded("too slow"))
    with pytest.raises(UpstreamTimeout):
        asyncio.run(_gemini(model).generate("prompt"))


def test_api_error_maps_to_upstream_error():
    model = StubModel(error=google_exceptions.PermissionDenied("bad key"))
    with pytest.raises(UpstreamError) as excinfo:
        asyncio.run(_gemini(model).generate("prompt"))
    assert excinfo.value.url == "https://generativelanguage.googleapis.com"


def test_normalize_model_name():
    assert normalize_model_name(" models/gemini-2.5-flash ") == "gemini-2.5-flash"
    assert normalize_model_name(None) == ""


class BlockedResponse:
    prompt_feedback = "block_reason: SAFETY"

    @property
    def text(self):
        raise ValueError("The response has no candidates.")


def test_blocked_reply_maps_to_parse_error():
    model = StubModel(response=BlockedResponse())
    with pytest.raises(ParseError):
        asyncio.run(_gemini(model).generate("prompt"))


def test_blocked_reply_yields_no_interpretation(snapshot):
    settings = Settings(llm_enabled=True, llm_provider="gemini", gemini_api_key="test-key")
    client = _gemini(StubModel(response=BlockedResponse()))
    assert asyncio.run(LLMInterpreter(settings, client).interpret("saco 2 de tomate", snapshot)) is None
