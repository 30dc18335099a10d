"""Per-batch retry loop with deterministic fallback.

Each batch moves Attempting(1) -> Succeeded | Attempting(n+1) | Exhausted.
Parse failures and external-call failures are retried up to
``max_attempts`` times; the wait before the next attempt is awaited in full
and attempts never overlap. Exhaustion yields fallback annotations so every
item in the batch still comes out annotated. Any other exception is a bug or
a run-level fault and propagates.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_fixed,
)
from tenacity.wait import wait_base

from inboxq.annotation.annotator import Annotator, annotation_response_schema
from inboxq.annotation.fallback import fallback_annotation
from inboxq.annotation.models import AnnotatedItem, Annotation, Item, PipelineOptions
from inboxq.annotation.parser import AnnotationParseError, parse_annotations
from inboxq.llm.client import ExternalCallError
from inboxq.observability.logging import get_logger
from inboxq.observability.telemetry import counter, log_event

logger = get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]

RETRYABLE_ERRORS = (AnnotationParseError, ExternalCallError)


def retry_wait(options: PipelineOptions) -> wait_base:
    """Fixed ``retry_delay_ms`` or ``retry_delay_ms * 2^(n-1)`` after attempt n."""
    base_seconds = options.retry_delay_ms / 1000
    if options.retry_backoff == "fixed":
        return wait_fixed(base_seconds)
    return wait_exponential(multiplier=base_seconds, exp_base=2, min=0)


def _log_retry(retry_state: RetryCallState) -> None:
    error = retry_state.outcome.exception() if retry_state.outcome else None
    delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
    counter("pipeline.batch.retry")
    logger.warning(
        "Batch attempt %d failed (%s: %s); retrying in %.1fs",
        retry_state.attempt_number,
        type(error).__name__,
        error,
        delay,
    )


@dataclass
class BatchOutcome:
    """Terminal state of one batch."""

    items: list[AnnotatedItem]
    succeeded: bool
    attempts: int
    error: str | None = None


class ResilientBatchAnnotator:
    """Run one batch through the external annotator with retry and fallback."""

    def __init__(
        self,
        annotator: Annotator,
        options: PipelineOptions,
        sleep: Sleep = asyncio.sleep,
    ):
        self.annotator = annotator
        self.options = options
        self._sleep = sleep
        self._schema = annotation_response_schema(options)

    async def annotate_batch(self, batch: Sequence[Item]) -> list[Annotation]:
        """Single attempt: call the annotator and parse its reply.

        Raises:
            AnnotationParseError: Reply missing, malformed or wrong length.
            ExternalCallError: The call itself failed.
        """
        raw = await self.annotator.annotate(batch, self._schema)
        return parse_annotations(raw, batch, self.options)

    async def run(self, batch: Sequence[Item]) -> BatchOutcome:
        """Drive ``batch`` to Succeeded or Exhausted; never returns fewer items than given."""
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.options.max_attempts),
            wait=retry_wait(self.options),
            retry=retry_if_exception_type(RETRYABLE_ERRORS),
            before_sleep=_log_retry,
            sleep=self._sleep,
            reraise=True,
        )

        attempts = 0
        try:
            async for attempt in retrying:
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    annotations = await self.annotate_batch(batch)
        except RETRYABLE_ERRORS as e:
            counter("pipeline.batch.exhausted")
            log_event(
                "pipeline.batch.exhausted",
                size=len(batch),
                attempts=attempts,
                error=type(e).__name__,
            )
            logger.error(
                "Batch of %d exhausted after %d attempts, using fallback: %s",
                len(batch),
                attempts,
                e,
            )
            items = [
                AnnotatedItem.from_annotation(
                    item, fallback_annotation(item, self.options), "fallback"
                )
                for item in batch
            ]
            return BatchOutcome(items=items, succeeded=False, attempts=attempts, error=str(e))

        counter("pipeline.batch.succeeded")
        items = [
            AnnotatedItem.from_annotation(item, annotation, "gemini")
            for item, annotation in zip(batch, annotations)
        ]
        return BatchOutcome(items=items, succeeded=True, attempts=attempts)
