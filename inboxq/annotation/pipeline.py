"""
Batched annotation pipeline: dedup against the cache, annotate the rest in
batches, commit each batch, return everything sorted by urgency.

Batches run strictly one after another with a cooldown in between to stay
under the model's rate limit. The cache is committed after every batch so a
crash mid-run keeps the work already done; re-running skips those items.
Store reads and writes run in a worker thread so a file-backed cache does not
stall the event loop.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from typing import TYPE_CHECKING

from inboxq.annotation.annotator import Annotator
from inboxq.annotation.batching import chunk, merge, partition, sort_by_priority
from inboxq.annotation.models import AnnotatedItem, Item, PipelineOptions, PipelineResult
from inboxq.annotation.resilience import ResilientBatchAnnotator, Sleep
from inboxq.observability.logging import get_logger
from inboxq.observability.telemetry import counter, log_event, time_block

if TYPE_CHECKING:
    from inboxq.storage.cache import CacheStore

logger = get_logger(__name__)


class AnnotationPipeline:
    """One configured pipeline; ``run`` may be called repeatedly against the same store."""

    def __init__(
        self,
        store: CacheStore,
        annotator: Annotator,
        options: PipelineOptions | None = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.store = store
        self.options = options or PipelineOptions()
        self._sleep = sleep
        self._batch_annotator = ResilientBatchAnnotator(annotator, self.options, sleep=sleep)

    async def run(self, items: Iterable[Item]) -> PipelineResult:
        """Annotate ``items`` and return the merged, priority-sorted result.

        Raises:
            CacheIOError: The store could not be read or written. Batches
                committed before the failure stay in the cache.
        """
        with time_block("pipeline.run.latency"):
            cache = await asyncio.to_thread(self.store.load)
            already_annotated, pending = partition(items, cache)
            batches = chunk(pending, self.options.batch_size)

            counter("pipeline.cache.hit", len(already_annotated))
            logger.info(
                "Pipeline run: %d cached, %d pending in %d batches",
                len(already_annotated),
                len(pending),
                len(batches),
            )

            newly_annotated: list[AnnotatedItem] = []
            fallback_count = 0
            cooldown = self.options.inter_batch_delay_ms / 1000

            for index, batch in enumerate(batches, start=1):
                outcome = await self._batch_annotator.run(batch)
                await asyncio.to_thread(self.store.commit, outcome.items)
                newly_annotated.extend(outcome.items)
                if not outcome.succeeded:
                    fallback_count += len(outcome.items)

                log_event(
                    "pipeline.batch.committed",
                    batch=index,
                    of=len(batches),
                    size=len(batch),
                    succeeded=outcome.succeeded,
                    attempts=outcome.attempts,
                )

                if index < len(batches) and cooldown > 0:
                    logger.info("Waiting %.1fs before next batch", cooldown)
                    await self._sleep(cooldown)

            result = PipelineResult(
                items=sort_by_priority(merge(already_annotated, newly_annotated)),
                cached=len(already_annotated),
                annotated=len(newly_annotated) - fallback_count,
                fallback=fallback_count,
                batches=len(batches),
            )

        log_event(
            "pipeline.run.complete",
            total=result.total,
            cached=result.cached,
            annotated=result.annotated,
            fallback=result.fallback,
            batches=result.batches,
        )
        return result


async def run_pipeline(
    items: Iterable[Item],
    options: PipelineOptions | None = None,
    *,
    store: CacheStore,
    annotator: Annotator,
    sleep: Sleep = asyncio.sleep,
) -> list[AnnotatedItem]:
    """Annotate ``items`` and return every one of them, sorted high -> medium -> low."""
    pipeline = AnnotationPipeline(store, annotator, options, sleep=sleep)
    result = await pipeline.run(items)
    return result.items
