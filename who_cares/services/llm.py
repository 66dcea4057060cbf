from __future__ import annotations

from contextlib import contextmanager
from functools import lru_cache
from threading import BoundedSemaphore

from openai import OpenAI

from ..core.config import Settings, get_settings

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"

_llm_semaphore: BoundedSemaphore | None = None


@contextmanager
def limit_llm_concurrency():
    """
    Hold one slot of the process-wide LLM semaphore for the duration of a call.

    Entered inside the worker thread, since every async call-site runs the
    blocking SDK through ``asyncio.to_thread``.
    """
    global _llm_semaphore
    if _llm_semaphore is None:
        _llm_semaphore = BoundedSemaphore(get_settings().LLM_MAX_CONCURRENCY)
    with _llm_semaphore:
        yield


def has_llm_credentials(settings: Settings | None = None) -> bool:
    settings = settings or get_settings()
    return bool(settings.OPENROUTER_API_KEY or settings.OPENAI_API_KEY)


@lru_cache(maxsize=1)
def get_llm_client() -> OpenAI:
    """
    Shared OpenAI-compatible client for extraction, semantic resolution and
    narrative generation. OpenRouter takes precedence over OpenAI when both
    keys are set.
    """
    settings = get_settings()

    if settings.OPENROUTER_API_KEY:
        return OpenAI(
            base_url=OPENROUTER_BASE_URL,
            api_key=settings.OPENROUTER_API_KEY.strip(),
            default_headers={
                "HTTP-Referer": settings.FRONTEND_ORIGIN or "http://localhost:3000",
                "X-Title": "WHO CARES Relationship Engine",
            },
        )
    if settings.OPENAI_API_KEY:
        return OpenAI(api_key=settings.OPENAI_API_KEY.strip())

    raise RuntimeError("No LLM API key configured. Set OPENROUTER_API_KEY or OPENAI_API_KEY.")


@lru_cache(maxsize=1)
def get_research_client() -> OpenAI:
    """Perplexity client; its chat completions endpoint is OpenAI-compatible."""
    settings = get_settings()
    if not settings.PERPLEXITY_API_KEY:
        raise RuntimeError("PERPLEXITY_API_KEY is not configured.")

    return OpenAI(
        base_url=settings.PERPLEXITY_BASE_URL,
        api_key=settings.PERPLEXITY_API_KEY.strip(),
    )


def chat_completion(
    prompt: str,
    *,
    system_prompt: str | None = None,
    temperature: float = 0.2,
    max_tokens: int = 4000,
    client: OpenAI | None = None,
    model: str | None = None,
    timeout: float | None = None,
) -> str:
    """
    Blocking single-turn chat completion returning the raw text content.

    Callers run this in a worker thread and own error handling. ``timeout``
    bounds the HTTP request itself, so a caller that stops waiting on the
    thread does not leave it holding a concurrency slot past that bound.
    """
    client = client or get_llm_client()

    messages = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    messages.append({"role": "user", "content": prompt})

    request_opts = {"timeout": timeout} if timeout is not None else {}
    with limit_llm_concurrency():
        resp = client.chat.completions.create(
            model=model or get_settings().LLM_MODEL,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
            **request_opts,
        )

    return (resp.choices[0].message.content or "").strip()
