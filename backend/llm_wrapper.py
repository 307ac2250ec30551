# backend/llm_wrapper.py
"""
Generation client. Supports OpenAI and Anthropic backends plus a mock backend.

GenerationClient.generate(prompt) returns the generated artifact (stripped),
or raises GenerationError with reason:
  "http-error"          transport failure or non-success status from the provider
  "empty-or-malformed"  success status but no artifact could be extracted

Configuration (Settings / env vars):
  LLM_PROVIDER=openai|anthropic
  OPENAI_API_KEY=...
  ANTHROPIC_API_KEY=...
  GENERATION_MODEL=...            (default: depends on provider)
  GENERATION_MAX_TOKENS=1024
  GENERATION_TIMEOUT_SECONDS=30
  MOCK_GENERATION=true            (mock mode for dev/tests)

Usage:
  client = GenerationClient(settings)
  code = client.generate("Build a login form")
"""

import time
from dataclasses import dataclass
from typing import Any, Dict, List

from backend.config import Settings
from backend.errors import GenerationError, REASON_HTTP_ERROR, REASON_EMPTY_OR_MALFORMED

SYSTEM_PROMPT = (
    "You are a code generator. The user message is a software requirement. "
    "Generate the code that implements it. Return only the code."
)


@dataclass
class ExtractionResult:
    ok: bool
    artifact: str = ""
    reason: str = ""


def _field(obj: Any, name: str) -> Any:
    """Read `name` from a dict or an SDK object without raising."""
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def extract_artifact(raw: Any, provider: str) -> ExtractionResult:
    """
    Pull the generated text out of a provider envelope.

    openai:    choices[0].message.content
    anthropic: concatenated text of content blocks
    Works on SDK response objects and plain dicts alike.
    """
    if provider == "anthropic":
        blocks = _field(raw, "content")
        if not isinstance(blocks, (list, tuple)):
            return ExtractionResult(ok=False, reason="missing content blocks")
        text = ""
        for block in blocks:
            block_text = _field(block, "text")
            if isinstance(block_text, str):
                text += block_text
    else:
        choices = _field(raw, "choices")
        if not isinstance(choices, (list, tuple)) or not choices:
            return ExtractionResult(ok=False, reason="missing choices")
        message = _field(choices[0], "message")
        text = _field(message, "content")

    if not isinstance(text, str) or not text.strip():
        return ExtractionResult(ok=False, reason="empty artifact")
    return ExtractionResult(ok=True, artifact=text.strip())


class GenerationClient:
    def __init__(self, settings: Settings):
        self.provider = settings.provider
        self.mock = settings.mock_generation
        self.model = settings.resolved_model
        self.max_tokens = settings.generation_max_tokens
        self.timeout = settings.generation_timeout_seconds
        self._openai_api_key = settings.openai_api_key
        self._anthropic_api_key = settings.anthropic_api_key

    @property
    def envelope(self) -> str:
        # the mock backend answers in the OpenAI shape
        return "openai" if self.mock else self.provider

    # -----------------------------------------------------------------------
    # Anthropic backend
    # -----------------------------------------------------------------------
    def _real_anthropic_chat(self, prompt: str) -> Any:
        import anthropic

        client = anthropic.Anthropic(
            api_key=self._anthropic_api_key, timeout=self.timeout, max_retries=0
        )
        try:
            return client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                system=SYSTEM_PROMPT,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APIStatusError as e:
            raise GenerationError(REASON_HTTP_ERROR, detail=f"{e.status_code}: {e.response.text}") from e
        except anthropic.APIError as e:
            raise GenerationError(REASON_HTTP_ERROR, detail=str(e)) from e

    # -----------------------------------------------------------------------
    # OpenAI backend
    # -----------------------------------------------------------------------
    def _real_openai_chat_completion(self, prompt: str) -> Any:
        import openai

        client = openai.OpenAI(
            api_key=self._openai_api_key, timeout=self.timeout, max_retries=0
        )
        try:
            return client.chat.completions.create(
                model=self.model,
                messages=self._messages(prompt),
                max_tokens=self.max_tokens,
            )
        except openai.APIStatusError as e:
            raise GenerationError(REASON_HTTP_ERROR, detail=f"{e.status_code}: {e.response.text}") from e
        except openai.APIError as e:
            raise GenerationError(REASON_HTTP_ERROR, detail=str(e)) from e

    # -----------------------------------------------------------------------
    # Mock backend
    # -----------------------------------------------------------------------
    def _mock_chat(self, prompt: str) -> Dict[str, Any]:
        """Deterministic mock used in dev/tests; echoes the requirement into a code stub."""
        lines = [f"# {line}" for line in prompt.splitlines() if line.strip()][:20]
        code = "\n".join(["# Generated from requirement:"] + lines + ["def main():", "    pass", ""])
        return {
            "id": f"mock-{self.model}-{int(time.time() * 1000)}",
            "model": self.model,
            "choices": [{"index": 0, "message": {"role": "assistant", "content": code}}],
        }

    def _messages(self, prompt: str) -> List[Dict[str, str]]:
        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]

    def _call_provider(self, prompt: str) -> Any:
        if self.mock:
            return self._mock_chat(prompt)
        if self.provider == "anthropic":
            return self._real_anthropic_chat(prompt)
        return self._real_openai_chat_completion(prompt)

    # -----------------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------------
    def generate(self, prompt: str) -> str:
        raw = self._call_provider(prompt)
        result = extract_artifact(raw, self.envelope)
        if not result.ok:
            raise GenerationError(REASON_EMPTY_OR_MALFORMED, detail=result.reason)
        return result.artifact
