# tests/test_generation_client.py
from types import SimpleNamespace

import httpx
import openai
import anthropic
import pytest

from backend.config import Settings
from backend.errors import GenerationError
from backend.llm_wrapper import GenerationClient, SYSTEM_PROMPT, extract_artifact


def make_settings(**overrides):
    base = dict(mock_generation=False, llm_provider="openai", openai_api_key="sk-test",
                anthropic_api_key="ak-test", generation_max_tokens=256)
    base.update(overrides)
    return Settings(**base)


class FakeCompletions:
    def __init__(self, result=None, exc=None):
        self.result = result
        self.exc = exc
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.exc is not None:
            raise self.exc
        return self.result


def install_fake_openai(monkeypatch, completions):
    built = {}

    class FakeOpenAI:
        def __init__(self, **kwargs):
            built.update(kwargs)
            self.chat = SimpleNamespace(completions=completions)

    monkeypatch.setattr(openai, "OpenAI", FakeOpenAI)
    return built


def status_error(cls, status, body):
    request = httpx.Request("POST", "https://provider.test/v1/generate")
    response = httpx.Response(status, text=body, request=request)
    return cls("provider failed", response=response, body=None)


# --- extraction -----------------------------------------------------------

def test_extract_openai_dict_envelope():
    raw = {"choices": [{"message": {"content": "  print('hi')\n "}}]}
    res = extract_artifact(raw, "openai")
    assert res.ok and res.artifact == "print('hi')"


def test_extract_openai_sdk_shaped_object():
    raw = SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content="x = 1"))])
    assert extract_artifact(raw, "openai").artifact == "x = 1"


@pytest.mark.parametrize("raw", [
    {},
    {"choices": []},
    {"choices": [{}]},
    {"choices": [{"message": {"content": None}}]},
    {"choices": [{"message": {"content": "   "}}]},
    "not an envelope",
    None,
])
def test_extract_openai_malformed(raw):
    res = extract_artifact(raw, "openai")
    assert res.ok is False
    assert res.reason


def test_extract_anthropic_blocks():
    raw = {"content": [{"type": "text", "text": "def a():\n"}, {"type": "text", "text": "    return 1\n"}]}
    assert extract_artifact(raw, "anthropic").artifact == "def a():\n    return 1"


def test_extract_anthropic_missing_content():
    assert extract_artifact({"id": "msg"}, "anthropic").ok is False
    assert extract_artifact({"content": [{"type": "tool_use"}]}, "anthropic").ok is False


# --- client ---------------------------------------------------------------

def test_openai_success_sends_system_prompt_and_cap(monkeypatch):
    completions = FakeCompletions(result={"choices": [{"message": {"content": "\n<code>ok</code>\n"}}]})
    built = install_fake_openai(monkeypatch, completions)
    client = GenerationClient(make_settings(generation_timeout_seconds=12))

    assert client.generate("Build a login form") == "<code>ok</code>"
    call = completions.calls[0]
    assert call["max_tokens"] == 256
    assert call["messages"][0] == {"role": "system", "content": SYSTEM_PROMPT}
    assert call["messages"][1] == {"role": "user", "content": "Build a login form"}
    assert built["timeout"] == 12
    assert built["max_retries"] == 0


def test_openai_non_success_status_is_http_error(monkeypatch):
    completions = FakeCompletions(exc=status_error(openai.InternalServerError, 502, "upstream exploded"))
    install_fake_openai(monkeypatch, completions)
    client = GenerationClient(make_settings())

    with pytest.raises(GenerationError) as exc:
        client.generate("Build a login form")
    assert exc.value.reason == "http-error"
    assert "upstream exploded" in exc.value.detail
    assert len(completions.calls) == 1  # no retry


def test_openai_empty_envelope_is_malformed(monkeypatch):
    install_fake_openai(monkeypatch, FakeCompletions(result={"choices": [{"message": {"content": ""}}]}))
    client = GenerationClient(make_settings())
    with pytest.raises(GenerationError) as exc:
        client.generate("Build a login form")
    assert exc.value.reason == "empty-or-malformed"


def test_anthropic_backend(monkeypatch):
    calls = []

    class FakeMessages:
        def create(self, **kwargs):
            calls.append(kwargs)
            return SimpleNamespace(content=[SimpleNamespace(type="text", text=" code ")])

    class FakeAnthropic:
        def __init__(self, **kwargs):
            self.messages = FakeMessages()

    monkeypatch.setattr(anthropic, "Anthropic", FakeAnthropic)
    client = GenerationClient(make_settings(llm_provider="anthropic"))
    assert client.generate("req") == "code"
    assert calls[0]["system"] == SYSTEM_PROMPT
    assert calls[0]["model"] == "claude-sonnet-4-20250514"
    assert calls[0]["messages"] == [{"role": "user", "content": "req"}]


def test_anthropic_status_error(monkeypatch):
    class FakeMessages:
        def create(self, **kwargs):
            raise status_error(anthropic.InternalServerError, 500, "overloaded")

    class FakeAnthropic:
        def __init__(self, **kwargs):
            self.messages = FakeMessages()

    monkeypatch.setattr(anthropic, "Anthropic", FakeAnthropic)
    client = GenerationClient(make_settings(llm_provider="anthropic"))
    with pytest.raises(GenerationError) as exc:
        client.generate("req")
    assert exc.value.reason == "http-error"


def test_mock_mode_is_deterministic_and_offline():
    client = GenerationClient(make_settings(mock_generation=True))
    out = client.generate("Build a login form")
    assert "# Build a login form" in out
    assert out == out.strip()
