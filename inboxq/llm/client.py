"""Shared async LLM call.

Converts SDK-specific failures (deadline, quota, 5xx) and local timeouts into
ExternalCallError so callers handle a single exception type. Retrying is the
caller's concern: the annotation pipeline wraps this call in its own retry
loop, follow-on actions surface the error to the HTTP layer.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from google.api_core.exceptions import (
    DeadlineExceeded,
    GoogleAPIError,
    InternalServerError,
    ResourceExhausted,
    ServiceUnavailable,
)

from inboxq.config import GEMINI_MAX_TOKENS, GEMINI_TEMPERATURE, LLM_TIMEOUT_SECONDS
from inboxq.llm.gemini import GeminiInitializationError, get_gemini_model
from inboxq.observability.logging import get_logger
from inboxq.observability.telemetry import counter

logger = get_logger(__name__)

LLMCall = Callable[..., Awaitable[str]]


class ExternalCallError(RuntimeError):
    """Network, timeout, quota or SDK failure while calling the language model."""


async def call_llm(
    prompt: str,
    counter_prefix: str = "llm",
    response_schema: dict[str, Any] | None = None,
    timeout_seconds: float = LLM_TIMEOUT_SECONDS,
) -> str:
    """Send ``prompt`` to Gemini and return the raw response text.

    Args:
        prompt: The prompt to send to the model.
        counter_prefix: Telemetry counter prefix (e.g., "annotator", "smart_reply").
        response_schema: Optional JSON schema hint. When provided the model is
            asked for a JSON response; the schema itself travels in the prompt
            because SDK versions disagree on the Schema type they accept.
        timeout_seconds: Upper bound on the call, enforced locally.

    Raises:
        ExternalCallError: On any failure to obtain response text.
    """
    try:
        model = get_gemini_model()
    except GeminiInitializationError as e:
        counter(f"{counter_prefix}.init_error")
        raise ExternalCallError(str(e)) from e

    generation_config: dict[str, Any] = {
        "temperature": GEMINI_TEMPERATURE,
        "max_output_tokens": GEMINI_MAX_TOKENS,
    }
    if response_schema is not None:
        generation_config["response_mime_type"] = "application/json"

    try:
        response = await asyncio.wait_for(
            model.generate_content_async(prompt, generation_config=generation_config),
            timeout=timeout_seconds,
        )
        return response.text
    except (asyncio.TimeoutError, DeadlineExceeded) as e:
        counter(f"{counter_prefix}.timeout")
        logger.warning("LLM call timed out after %ss", timeout_seconds)
        raise ExternalCallError(f"LLM call timed out: {e}") from e
    except ResourceExhausted as e:
        counter(f"{counter_prefix}.rate_limited")
        logger.warning("LLM rate limited (429): %s", e)
        raise ExternalCallError(f"LLM rate limited: {e}") from e
    except (ServiceUnavailable, InternalServerError) as e:
        counter(f"{counter_prefix}.unavailable")
        logger.warning("LLM service error: %s", e)
        raise ExternalCallError(f"LLM service unavailable: {e}") from e
    except GoogleAPIError as e:
        counter(f"{counter_prefix}.api_error")
        logger.error("LLM call failed: %s", e)
        raise ExternalCallError(f"LLM call failed: {e}") from e
    except ValueError as e:
        # response.text raises ValueError when the candidate was blocked or empty
        counter(f"{counter_prefix}.empty_response")
        logger.warning("LLM returned no text: %s", e)
        raise ExternalCallError(f"LLM returned no text: {e}") from e
