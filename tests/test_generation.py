# =============================================
# File: tests/test_generation.py
# Purpose: Ensure timeouts/retries surface as GenerationError and succeed when a retry works
# =============================================
import sys, os
sys.path.append(os.path.dirname(os.path.dirname(__file__)))

from types import SimpleNamespace

import pytest

from shopassist.services.generation import CompletionClient
from shopassist.utils.errors import GenerationError, ProviderError


class _Completions:
    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=outcome))])


def _client(*outcomes):
    completions = _Completions(outcomes)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions)), completions


MESSAGES = [{"role": "user", "content": "hi"}]


def test_passes_model_timeout_and_sampling():
    sdk, completions = _client("  відповідь  ")
    llm = CompletionClient(model="gpt-4o-mini", timeout=7, max_retries=0, client=sdk)
    assert llm.complete(MESSAGES, temperature=0.3, max_tokens=500) == "відповідь"
    call = completions.calls[0]
    assert call["model"] == "gpt-4o-mini"
    assert call["timeout"] == 7
    assert call["temperature"] == 0.3
    assert call["max_tokens"] == 500
    assert call["messages"] == MESSAGES


def test_retry_then_success():
    sdk, completions = _client(TimeoutError("slow"), '{"message": "ok"}')
    llm = CompletionClient(max_retries=1, client=sdk)
    assert llm.complete(MESSAGES) == '{"message": "ok"}'
    assert len(completions.calls) == 2


def test_all_attempts_fail():
    sdk, completions = _client(TimeoutError("slow"), TimeoutError("slow again"))
    llm = CompletionClient(max_retries=1, client=sdk)
    with pytest.raises(GenerationError):
        llm.complete(MESSAGES)
    assert len(completions.calls) == 2


def test_empty_completion_is_a_provider_error():
    sdk, _ = _client("", "   ")
    llm = CompletionClient(max_retries=1, client=sdk)
    with pytest.raises(ProviderError):
        llm.complete(MESSAGES)


def test_client_is_built_lazily(monkeypatch):
    import shopassist.services.generation as gen

    built = []

    def fake_openai():
        built.append(1)
        return _client("ok")[0]

    monkeypatch.setattr(gen, "OpenAI", fake_openai)
    llm = gen.CompletionClient(max_retries=0)
    assert built == []
    assert llm.complete(MESSAGES) == "ok"
    assert built == [1]


def test_missing_credentials_surface_as_generation_error(monkeypatch):
    import shopassist.services.generation as gen

    def no_key():
        raise RuntimeError("The api_key client option must be set")

    monkeypatch.setattr(gen, "OpenAI", no_key)
    with pytest.raises(GenerationError):
        gen.CompletionClient(max_retries=0).complete(MESSAGES)
