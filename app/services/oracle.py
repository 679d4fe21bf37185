import re
from abc import ABC, abstractmethod
from typing import Any

import httpx

from app.core.config import Settings, get_settings
from app.core.logging import get_logger
from app.core.rate_limit import get_rate_limiter

logger = get_logger(__name__)

ORACLE_RATE_LIMIT_KEY = "oracle:answers"


class LLMProvider(ABC):
    @abstractmethod
    def generate(self, prompt: str, *, system: str | None = None) -> str:
        raise NotImplementedError


class MockLLMProvider(LLMProvider):
    def generate(self, prompt: str, *, system: str | None = None) -> str:
        prompt_lines = [line.strip() for line in prompt.splitlines() if line.strip()]
        seed = " ".join(prompt_lines[:2])
        return f"Generated answer (mock provider): {seed[:200]}"


class OpenAICompatibleLLMProvider(LLMProvider):
    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        base_url: str,
        temperature: float,
        max_tokens: int,
        timeout_seconds: int,
    ) -> None:
        if not api_key:
            raise ValueError("LLM_API_KEY is required when LLM_PROVIDER is openai or groq")
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout_seconds = timeout_seconds

    def generate(self, prompt: str, *, system: str | None = None) -> str:
        url = f"{self.base_url}/chat/completions"
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system or "You are a concise professional writing assistant."},
                {"role": "user", "content": prompt},
            ],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }

        with httpx.Client(timeout=self.timeout_seconds) as client:
            response = client.post(url, headers=headers, json=payload)

        if response.status_code >= 400:
            raise RuntimeError(
                f"LLM request failed ({response.status_code}): {response.text[:300]}"
            )

        data = response.json()
        content = (
            (data.get("choices") or [{}])[0]
            .get("message", {})
            .get("content", "")
        )
        if not content:
            raise RuntimeError("LLM response missing content")
        return str(content).strip()


def build_llm_provider(settings: Settings) -> LLMProvider | None:
    raw_provider = (settings.llm_provider or "none").strip()
    provider = raw_provider.lower()

    if provider.startswith("sk-") or provider.startswith("gsk_"):
        raise ValueError(
            "LLM_PROVIDER appears to contain an API key. Set LLM_PROVIDER to 'openai' or 'groq' "
            "and move the key to LLM_API_KEY."
        )

    if provider in {"", "none", "off"}:
        return None
    if provider == "mock":
        return MockLLMProvider()
    if provider in {"openai", "openai_compatible"}:
        return OpenAICompatibleLLMProvider(
            api_key=settings.llm_api_key,
            model=settings.llm_model,
            base_url=settings.llm_base_url,
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
            timeout_seconds=settings.llm_timeout_seconds,
        )
    if provider == "groq":
        base_url = settings.llm_base_url
        if not base_url or base_url == "https://api.openai.com/v1":
            base_url = "https://api.groq.com/openai/v1"
        return OpenAICompatibleLLMProvider(
            api_key=settings.llm_api_key,
            model=settings.llm_model,
            base_url=base_url,
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
            timeout_seconds=settings.llm_timeout_seconds,
        )
    raise ValueError("Unsupported LLM_PROVIDER. Supported values: none, mock, openai, groq.")


def applicant_context(profile: dict[str, Any]) -> dict[str, Any]:
    """Structured applicant facts sent alongside each question."""
    name = f"{profile.get('first_name') or ''} {profile.get('last_name') or ''}".strip()
    context = {
        "name": name,
        "email": profile.get("email") or "",
        "location": profile.get("location") or "Not specified",
        "work_authorization": profile.get("work_auth") or "",
        "requires_sponsorship": bool(profile.get("requires_sponsorship", False)),
        "willing_to_relocate": bool(profile.get("willing_to_relocate", True)),
        "education": ", ".join(
            part for part in [profile.get("degree") or "", profile.get("school") or ""] if part
        ),
        "links": [link for link in [profile.get("linkedin"), profile.get("github"), profile.get("website")] if link],
        "background": "Software engineer with experience in web development",
    }
    return context


def build_answer_prompt(
    *,
    question: str,
    role_title: str,
    company: str,
    context: dict[str, Any],
) -> tuple[str, str]:
    system = (
        f"You are helping someone apply for a {role_title} position at {company}. "
        "Generate a professional, genuine, and compelling answer to job application questions. "
        "Keep responses concise but meaningful (100-300 words unless specified otherwise). "
        "Answer in first person and return only the answer text."
    )
    context_lines = "\n".join(
        f"- {key.replace('_', ' ')}: {', '.join(value) if isinstance(value, list) else value}"
        for key, value in context.items()
        if value not in ("", [], None)
    )
    prompt = (
        f'Question: "{question}"\n\n'
        f"Applying for: {role_title} at {company}\n"
        f"Applicant profile:\n{context_lines}\n\n"
        "Answer:"
    )
    return system, prompt


def _clean_answer(text: str) -> str:
    cleaned = (text or "").strip()
    cleaned = re.sub(r"^(?:answer|here is[^:]*)\s*:\s*", "", cleaned, flags=re.IGNORECASE)
    return cleaned.strip().strip('"').strip()


def synthesize_answer(
    provider: LLMProvider | None,
    *,
    question: str,
    role_title: str,
    company: str,
    context: dict[str, Any],
    settings: Settings | None = None,
) -> str | None:
    """Ask the oracle for an answer; any failure is reported as ``None``."""
    if provider is None:
        return None
    settings = settings or get_settings()

    if not get_rate_limiter().allow(
        ORACLE_RATE_LIMIT_KEY, settings.oracle_rate_limit, settings.rate_limit_window_seconds
    ):
        logger.warning("Oracle rate limit reached; using local answers", extra={"extra": {"question": question}})
        return None

    system, prompt = build_answer_prompt(
        question=question,
        role_title=role_title,
        company=company,
        context=context,
    )
    try:
        answer = _clean_answer(provider.generate(prompt, system=system))
    except Exception as exc:
        logger.warning(
            "Oracle answer failed",
            extra={"extra": {"question": question, "error": f"{type(exc).__name__}: {exc}"}},
        )
        return None
    return answer or None
