import pytest

from app.core.config import Settings
from app.services import oracle
from app.services.oracle import (
    LLMProvider,
    MockLLMProvider,
    OpenAICompatibleLLMProvider,
    applicant_context,
    build_answer_prompt,
    build_llm_provider,
    synthesize_answer,
)


class _Limiter:
    def __init__(self, allowed: bool) -> None:
        self.allowed = allowed
        self.calls = []

    def allow(self, key, limit, window_seconds):
        self.calls.append((key, limit, window_seconds))
        return self.allowed


class _StaticProvider(LLMProvider):
    def __init__(self, text: str) -> None:
        self.text = text
        self.calls = 0

    def generate(self, prompt: str, *, system: str | None = None) -> str:
        self.calls += 1
        return self.text


class _FailingProvider(LLMProvider):
    def generate(self, prompt: str, *, system: str | None = None) -> str:
        raise RuntimeError("simulated provider failure")


def test_build_llm_provider_defaults_to_no_oracle():
    assert build_llm_provider(Settings(llm_provider="none")) is None


def test_build_llm_provider_mock():
    settings = Settings(llm_provider="mock")
    provider = build_llm_provider(settings)
    assert isinstance(provider, MockLLMProvider)


def test_build_llm_provider_rejects_key_in_provider_field():
    bad_value = "gsk_example_secret_value"
    settings = Settings(llm_provider=bad_value, llm_api_key="")
    with pytest.raises(ValueError) as exc:
        build_llm_provider(settings)

    message = str(exc.value)
    assert "API key" in message
    assert bad_value not in message


def test_build_llm_provider_groq_uses_default_compatible_base_url():
    settings = Settings(
        llm_provider="groq",
        llm_api_key="dummy-key",
        llm_model="llama-3.3-70b-versatile",
        llm_base_url="https://api.openai.com/v1",
    )
    provider = build_llm_provider(settings)

    assert isinstance(provider, OpenAICompatibleLLMProvider)
    assert provider.base_url == "https://api.groq.com/openai/v1"
    assert provider.temperature == 0.7
    assert provider.max_tokens == 500


def test_build_llm_provider_requires_api_key_for_groq():
    with pytest.raises(ValueError):
        build_llm_provider(Settings(llm_provider="groq", llm_api_key=""))


def test_prompt_carries_question_role_and_profile_context():
    context = applicant_context(
        {"first_name": "Alex", "last_name": "Carter", "email": "alex@example.com", "location": "Austin, TX"}
    )
    system, prompt = build_answer_prompt(
        question="Why this role?", role_title="Backend Engineer", company="Acme", context=context
    )
    assert "Backend Engineer position at Acme" in system
    assert 'Question: "Why this role?"' in prompt
    assert "- name: Alex Carter" in prompt
    assert "- location: Austin, TX" in prompt


def test_synthesize_answer_returns_text(settings, monkeypatch):
    monkeypatch.setattr(oracle, "get_rate_limiter", lambda: _Limiter(True))
    provider = _StaticProvider('Answer: "I like hard problems."')
    answer = synthesize_answer(
        provider, question="Why this role?", role_title="Engineer", company="Acme", context={}, settings=settings
    )
    assert answer == "I like hard problems."


def test_synthesize_answer_reports_failures_as_no_answer(settings, monkeypatch):
    monkeypatch.setattr(oracle, "get_rate_limiter", lambda: _Limiter(True))
    assert (
        synthesize_answer(
            _FailingProvider(), question="Why?", role_title="Engineer", company="Acme", context={}, settings=settings
        )
        is None
    )
    assert (
        synthesize_answer(
            _StaticProvider("   "), question="Why?", role_title="Engineer", company="Acme", context={}, settings=settings
        )
        is None
    )
    assert synthesize_answer(None, question="Why?", role_title="Engineer", company="Acme", context={}) is None


def test_synthesize_answer_respects_rate_limit(settings, monkeypatch):
    limiter = _Limiter(False)
    monkeypatch.setattr(oracle, "get_rate_limiter", lambda: limiter)
    provider = _StaticProvider("unused")

    answer = synthesize_answer(
        provider, question="Why this role?", role_title="Engineer", company="Acme", context={}, settings=settings
    )

    assert answer is None
    assert provider.calls == 0
    assert limiter.calls == [(oracle.ORACLE_RATE_LIMIT_KEY, settings.oracle_rate_limit, settings.rate_limit_window_seconds)]
