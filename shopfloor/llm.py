"""
LLM Helper Module

Provides call_llm_text, which sends one chat completion request to the OpenAI
API and returns the raw response text. No JSON mode and no function-calling
schema is used: the text is expected to contain JSON but parsing it is the
normalizer's job.

The call is made exactly once. The client is built with retries disabled and,
unless configured, no timeout; callers that need bounded latency must impose
their own.

openai is imported at call time, so the rest of the package (normalizer,
CLI normalize, tests that patch call_llm_text) loads without it.
"""

import logging
import time
from dataclasses import dataclass
from typing import Optional

from .config import Settings
from .errors import ModelInvocationFailed
from .prompts import SYSTEM_PROMPT

logger = logging.getLogger(__name__)


@dataclass
class LLMResult:
    """Result of an LLM call with metadata for observability."""
    text: str
    latency_ms: int
    input_tokens: Optional[int]
    output_tokens: Optional[int]


def call_llm_text_with_metadata(
    prompt: str,
    settings: Settings,
    system_prompt: str = SYSTEM_PROMPT,
) -> LLMResult:
    """
    Call the OpenAI chat completion API and return the raw text with metadata.

    Raises:
        UpstreamConfigMissing: if no API key is configured.
        ModelInvocationFailed: on a non-success response, a transport failure,
            or a response without message content.
    """
    api_key = settings.require_openai_api_key()

    try:
        import openai
    except ImportError as exc:
        raise RuntimeError(
            "openai package is not installed. Install it to generate itineraries."
        ) from exc

    client = openai.OpenAI(
        api_key=api_key,
        base_url=settings.openai_base_url,
        timeout=settings.llm_timeout_seconds,
        max_retries=0,
    )

    logger.info("calling LLM model=%s prompt_chars=%d", settings.openai_model, len(prompt))

    start_time = time.time()
    try:
        response = client.chat.completions.create(
            model=settings.openai_model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": prompt},
            ],
        )
    except openai.APIStatusError as exc:
        logger.warning("LLM call failed with status %s", exc.status_code)
        raise ModelInvocationFailed(
            "Error calling OpenAI API",
            details=exc.body if exc.body is not None else {"status_code": exc.status_code},
        ) from exc
    except openai.OpenAIError as exc:
        logger.warning("LLM call failed: %s: %s", type(exc).__name__, exc)
        raise ModelInvocationFailed(
            "Error calling OpenAI API",
            details={"message": str(exc)},
        ) from exc

    latency_ms = int((time.time() - start_time) * 1000)

    if not response.choices or response.choices[0].message is None:
        raise ModelInvocationFailed("Invalid response from AI service")
    content = response.choices[0].message.content
    if content is None:
        raise ModelInvocationFailed("Invalid response from AI service", details={"reason": "empty content"})

    input_tokens = None
    output_tokens = None
    if response.usage:
        input_tokens = response.usage.prompt_tokens
        output_tokens = response.usage.completion_tokens

    logger.info(
        "LLM responded in %dms (input_tokens=%s output_tokens=%s chars=%d)",
        latency_ms,
        input_tokens,
        output_tokens,
        len(content),
    )
    logger.debug("raw LLM response: %s", content[:2000])

    return LLMResult(
        text=content,
        latency_ms=latency_ms,
        input_tokens=input_tokens,
        output_tokens=output_tokens,
    )


def call_llm_text(prompt: str, settings: Settings) -> str:
    """
    Call the OpenAI chat completion API with the itinerary system prompt and
    return the raw response text.

    Args:
        prompt: The composed user prompt.
        settings: Runtime configuration (API key, model, base URL, timeout).

    Returns:
        The model's message content, unparsed.

    NOTE:
    - Tests monkeypatch this function to avoid real network calls.
    """
    return call_llm_text_with_metadata(prompt, settings).text
