"""Centralized AI client supporting OpenAI (or any OpenAI-compatible gateway) and Anthropic.

Usage:
    from lessonmatch.services.ai_client import ai_chat

    result = await ai_chat(
        messages=[
            {"role": "system", "content": "You are a lesson matching system."},
            {"role": "user", "content": "Pick a teacher from: [...]"},
        ],
        use_case="matching",     # "matching", "summary", "cheap", or None for default
        temperature=0.2,
        json_mode=True,
    )
    # result is the text content of the assistant response

Provider is auto-detected per use case from the model name:
  - Models starting with "claude-" route to Anthropic
  - Everything else routes to OpenAI (AI_BASE_URL points it at a gateway)

Transient failures are retried with exponential backoff. Rate-limit (429)
and quota (402) responses, and other client errors, are raised immediately:
callers decide how to degrade.
"""

import logging
from enum import Enum

from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception

from lessonmatch.config import settings

logger = logging.getLogger(__name__)

RATE_LIMIT_STATUS = 429
QUOTA_EXHAUSTED_STATUS = 402


class AIProvider(str, Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"


# Known Anthropic model prefixes for auto-detection
_ANTHROPIC_PREFIXES = ("claude-",)


def status_code_of(exc: BaseException) -> int | None:
    """HTTP status carried by an SDK error, if any."""
    code = getattr(exc, "status_code", None)
    return code if isinstance(code, int) else None


def _is_retryable(exc: BaseException) -> bool:
    """Retry transport errors and 5xx; never 4xx (429/402 included)."""
    code = status_code_of(exc)
    if code is None:
        return True
    return code >= 500


def _resolve_model(use_case: str | None) -> str:
    """Pick the model name based on the use case and config overrides."""
    if use_case == "matching" and settings.matching_model:
        return settings.matching_model
    if use_case == "summary" and settings.summary_model:
        return settings.summary_model
    if use_case == "cheap" and settings.cheap_model:
        return settings.cheap_model
    return settings.model_name


def _detect_provider(model: str) -> AIProvider:
    """Auto-detect the provider from the model name.

    Models starting with 'claude-' are routed to Anthropic.
    Everything else uses the global ai_provider setting (default: OpenAI).
    """
    if model.lower().startswith(_ANTHROPIC_PREFIXES):
        return AIProvider.ANTHROPIC
    try:
        return AIProvider(settings.ai_provider.lower())
    except ValueError:
        return AIProvider.OPENAI


async def ai_chat(
    messages: list[dict],
    *,
    use_case: str | None = None,
    temperature: float = 0.7,
    json_mode: bool = False,
    max_tokens: int = 1024,
) -> str:
    """Send a chat completion and return the assistant text."""
    model = _resolve_model(use_case)
    provider = _detect_provider(model)

    if provider == AIProvider.OPENAI:
        return await _openai_chat(messages, model, temperature, json_mode, max_tokens)
    elif provider == AIProvider.ANTHROPIC:
        return await _anthropic_chat(messages, model, temperature, json_mode, max_tokens)
    else:
        raise ValueError(f"Unknown AI provider: {provider}")


def _log_retry(provider: str):
    def _before_sleep(retry_state):
        logger.warning(
            "%s call failed (attempt %d), retrying: %s",
            provider,
            retry_state.attempt_number,
            retry_state.outcome.exception(),
        )
    return _before_sleep


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception(_is_retryable),
    before_sleep=_log_retry("OpenAI"),
    reraise=True,
)
async def _openai_chat(
    messages: list[dict],
    model: str,
    temperature: float,
    json_mode: bool,
    max_tokens: int,
) -> str:
    from openai import AsyncOpenAI

    # tenacity owns retries; the SDK's own retry loop would hide 429s
    client = AsyncOpenAI(
        api_key=settings.api_key,
        base_url=settings.ai_base_url or None,
        max_retries=0,
    )
    kwargs: dict = {
        "model": model,
        "messages": messages,
        "temperature": temperature,
        "max_tokens": max_tokens,
    }
    if json_mode:
        kwargs["response_format"] = {"type": "json_object"}

    response = await client.chat.completions.create(**kwargs)
    return response.choices[0].message.content or ""


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception(_is_retryable),
    before_sleep=_log_retry("Anthropic"),
    reraise=True,
)
async def _anthropic_chat(
    messages: list[dict],
    model: str,
    temperature: float,
    json_mode: bool,
    max_tokens: int,
) -> str:
    import anthropic

    client = anthropic.AsyncAnthropic(api_key=settings.anthropic_api_key, max_retries=0)

    # Anthropic uses a separate system parameter, not a system message
    system_text = ""
    chat_messages = []
    for msg in messages:
        if msg["role"] == "system":
            system_text += msg["content"] + "\n"
        else:
            chat_messages.append({"role": msg["role"], "content": msg["content"]})

    if json_mode:
        system_text += "\nYou MUST respond with valid JSON only. No other text.\n"

    kwargs: dict = {
        "model": model,
        "messages": chat_messages,
        "temperature": temperature,
        "max_tokens": max_tokens,
    }
    if system_text.strip():
        kwargs["system"] = system_text.strip()

    response = await client.messages.create(**kwargs)
    return response.content[0].text
