"""
Tests for the OpenAI call wrapper.

openai.OpenAI is replaced with a fake client so requests never leave the
process; the real openai exception classes are used for error mapping.
"""

from types import SimpleNamespace

import httpx
import openai
import pytest

from shopfloor.config import Settings
from shopfloor.errors import ModelInvocationFailed, UpstreamConfigMissing
from shopfloor.llm import call_llm_text, call_llm_text_with_metadata
from shopfloor.prompts import SYSTEM_PROMPT

SETTINGS = Settings(openai_api_key="sk-test", openai_model="gpt-test", llm_timeout_seconds=30)


def _completion(content, usage=None):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=usage,
    )


class FakeClient:
    """Stands in for openai.OpenAI; the last instance is kept on the class."""

    last = None
    outcome = None

    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.requests = []
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))
        FakeClient.last = self

    def _create(self, **kwargs):
        self.requests.append(kwargs)
        if isinstance(FakeClient.outcome, Exception):
            raise FakeClient.outcome
        return FakeClient.outcome


@pytest.fixture
def fake_openai(monkeypatch):
    FakeClient.last = None
    FakeClient.outcome = _completion('{"steps": []}')
    monkeypatch.setattr(openai, "OpenAI", FakeClient)
    return FakeClient


def _request():
    return httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


class TestCallLLMText:

    def test_returns_raw_text(self, fake_openai):
        fake_openai.outcome = _completion("```json\n{\"steps\": []}\n```")
        assert call_llm_text("plan P1", SETTINGS) == "```json\n{\"steps\": []}\n```"

    def test_request_shape(self, fake_openai):
        call_llm_text("plan P1", SETTINGS)
        request = fake_openai.last.requests[0]
        assert request["model"] == "gpt-test"
        assert request["messages"] == [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": "plan P1"},
        ]
        assert "response_format" not in request

    def test_client_makes_a_single_attempt(self, fake_openai):
        call_llm_text("plan P1", SETTINGS)
        assert fake_openai.last.kwargs["max_retries"] == 0
        assert fake_openai.last.kwargs["timeout"] == 30
        assert fake_openai.last.kwargs["api_key"] == "sk-test"
        assert len(fake_openai.last.requests) == 1

    def test_usage_metadata(self, fake_openai):
        fake_openai.outcome = _completion("{}", usage=SimpleNamespace(prompt_tokens=120, completion_tokens=40))
        result = call_llm_text_with_metadata("plan P1", SETTINGS)
        assert result.input_tokens == 120
        assert result.output_tokens == 40
        assert result.latency_ms >= 0

    def test_missing_key(self, fake_openai):
        with pytest.raises(UpstreamConfigMissing):
            call_llm_text("plan P1", Settings(openai_api_key="  "))
        assert fake_openai.last is None

    def test_status_error_carries_upstream_body(self, fake_openai):
        body = {"error": {"message": "Rate limit reached", "type": "requests"}}
        fake_openai.outcome = openai.RateLimitError(
            "Rate limit reached",
            response=httpx.Response(429, request=_request()),
            body=body,
        )
        with pytest.raises(ModelInvocationFailed) as excinfo:
            call_llm_text("plan P1", SETTINGS)
        assert excinfo.value.message == "Error calling OpenAI API"
        assert excinfo.value.details == body
        assert excinfo.value.status_code == 502

    def test_connection_error(self, fake_openai):
        fake_openai.outcome = openai.APIConnectionError(request=_request())
        with pytest.raises(ModelInvocationFailed) as excinfo:
            call_llm_text("plan P1", SETTINGS)
        assert "message" in excinfo.value.details

    def test_null_content(self, fake_openai):
        fake_openai.outcome = _completion(None)
        with pytest.raises(ModelInvocationFailed, match="Invalid response"):
            call_llm_text("plan P1", SETTINGS)

    def test_no_choices(self, fake_openai):
        fake_openai.outcome = SimpleNamespace(choices=[], usage=None)
        with pytest.raises(ModelInvocationFailed):
            call_llm_text("plan P1", SETTINGS)
