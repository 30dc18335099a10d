"""
End-to-end tests for the annotation pipeline against scripted annotators.

Exercises the run-level properties: idempotence, completeness, batch bounds,
stable priority ordering, fallback on exhaustion, partial cache survival and
disjoint merge.
"""

from __future__ import annotations

import asyncio
import math
import threading

import pytest

from inboxq.annotation.models import PipelineOptions, Urgency
from inboxq.annotation.pipeline import AnnotationPipeline, run_pipeline
from inboxq.storage.cache import CacheIOError, InMemoryCacheStore, JsonFileCacheStore


@pytest.fixture
def inbox(item_factory):
    return [
        item_factory(f"m{n}", f"Body of message {n}", subject=f"Subject {n}") for n in range(7)
    ]


def _run(store, annotator, options, sleep, items):
    pipeline = AnnotationPipeline(store, annotator, options, sleep=sleep)
    return asyncio.run(pipeline.run(items))


def test_idempotent_second_run(annotator_factory, fast_options, recording_sleep, inbox):
    store = InMemoryCacheStore()
    annotator = annotator_factory()

    first = _run(store, annotator, fast_options, recording_sleep, inbox)
    calls_after_first = len(annotator.calls)
    second = _run(store, annotator, fast_options, recording_sleep, inbox)

    assert len(annotator.calls) == calls_after_first
    assert second.items == first.items
    assert second.cached == len(inbox)
    assert second.annotated == 0
    assert second.batches == 0


def test_complete_even_when_annotator_always_fails(
    annotator_factory, fast_options, recording_sleep, inbox
):
    from inboxq.llm.client import ExternalCallError

    annotator = annotator_factory(default=ExternalCallError("unavailable"))

    result = _run(InMemoryCacheStore(), annotator, fast_options, recording_sleep, inbox)

    assert result.total == len(inbox)
    assert result.fallback == len(inbox)
    assert all(item.urgency is not None and item.summary for item in result.items)


@pytest.mark.parametrize("batch_size", [1, 2, 3, 7, 10])
def test_batch_bounds(annotator_factory, recording_sleep, inbox, batch_size):
    options = PipelineOptions(batch_size=batch_size, inter_batch_delay_ms=0)
    annotator = annotator_factory()

    result = _run(InMemoryCacheStore(), annotator, options, recording_sleep, inbox)

    expected_batches = math.ceil(len(inbox) / batch_size)
    assert result.batches == expected_batches
    assert len(annotator.calls) == expected_batches
    assert all(len(call) == batch_size for call in annotator.calls[:-1])
    assert [i for call in annotator.calls for i in call] == [item.id for item in inbox]


def test_priority_sort_is_stable(annotator_factory, reply_for, recording_sleep, item_factory):
    items = [item_factory(i) for i in ["low1", "high1", "med1", "high2"]]
    urgencies = {"low1": "low", "high1": "high", "med1": "medium", "high2": "high"}
    annotator = annotator_factory(default=lambda batch: reply_for(batch, urgencies))

    result = asyncio.run(
        run_pipeline(
            items,
            PipelineOptions(batch_size=10),
            store=InMemoryCacheStore(),
            annotator=annotator,
            sleep=recording_sleep,
        )
    )

    assert [i.id for i in result] == ["high1", "high2", "med1", "low1"]
    assert [i.urgency for i in result] == [Urgency.HIGH, Urgency.HIGH, Urgency.MEDIUM, Urgency.LOW]


def test_fallback_on_exhaustion_is_cached(
    annotator_factory, fast_options, recording_sleep, item_factory
):
    items = [item_factory("a", subject="Lunch?"), item_factory("b", subject="Re: Lunch?")]
    store = InMemoryCacheStore()
    annotator = annotator_factory(default="```\nI'm not sure what you mean.\n```")

    result = _run(store, annotator, fast_options, recording_sleep, items)

    assert len(annotator.calls) == fast_options.max_attempts
    assert result.fallback == 2
    cached = store.load()
    assert sorted(cached) == ["a", "b"]
    for item in cached.values():
        assert item.decider == "fallback"
        assert item.urgency is Urgency.MEDIUM
        assert item.category == fast_options.default_category
    assert cached["a"].summary == "Email regarding: Lunch?"


def test_partial_cache_survives_crash(
    annotator_factory, reply_for, fast_options, recording_sleep, item_factory
):
    items = [item_factory(f"m{n}") for n in range(6)]
    store = InMemoryCacheStore()
    crashing = annotator_factory([reply_for, RuntimeError("process killed")])

    with pytest.raises(RuntimeError, match="process killed"):
        _run(store, crashing, fast_options, recording_sleep, items)

    assert sorted(store.load()) == ["m0", "m1"]

    resumed = annotator_factory()
    result = _run(store, resumed, fast_options, recording_sleep, items)

    assert resumed.calls == [["m2", "m3"], ["m4", "m5"]]
    assert result.cached == 2
    assert result.annotated == 4
    assert sorted(store.load()) == [f"m{n}" for n in range(6)]


def test_merge_is_disjoint(annotator_factory, fast_options, recording_sleep, inbox):
    store = InMemoryCacheStore()
    _run(store, annotator_factory(), fast_options, recording_sleep, inbox[:3])

    annotator = annotator_factory()
    result = _run(store, annotator, fast_options, recording_sleep, inbox)

    fresh_ids = {i for call in annotator.calls for i in call}
    assert fresh_ids.isdisjoint({item.id for item in inbox[:3]})
    assert result.cached + result.annotated == len(inbox)
    assert len({item.id for item in result.items}) == len(inbox)


def test_cooldown_between_batches_only(annotator_factory, recording_sleep, item_factory):
    options = PipelineOptions(batch_size=2, inter_batch_delay_ms=3000)
    items = [item_factory(f"m{n}") for n in range(5)]

    _run(InMemoryCacheStore(), annotator_factory(), options, recording_sleep, items)

    assert recording_sleep.delays == [3.0, 3.0]


def test_commit_after_every_batch(annotator_factory, fast_options, recording_sleep, inbox):
    store = InMemoryCacheStore()
    _run(store, annotator_factory(), fast_options, recording_sleep, inbox)
    assert store.save_count == math.ceil(len(inbox) / fast_options.batch_size)


def test_duplicate_ids_annotated_once(annotator_factory, fast_options, recording_sleep, item_factory):
    items = [item_factory("a"), item_factory("b"), item_factory("a")]
    annotator = annotator_factory()

    result = _run(InMemoryCacheStore(), annotator, fast_options, recording_sleep, items)

    assert annotator.calls == [["a", "b"]]
    assert [i.id for i in result.items] == ["a", "b"]


def test_empty_input(annotator_factory, fast_options, recording_sleep):
    annotator = annotator_factory()
    result = _run(InMemoryCacheStore(), annotator, fast_options, recording_sleep, [])

    assert result.items == []
    assert annotator.calls == []
    assert recording_sleep.delays == []


def test_json_file_store_end_to_end(annotator_factory, fast_options, recording_sleep, inbox, tmp_path):
    path = tmp_path / "cache.json"
    _run(JsonFileCacheStore(path), annotator_factory(), fast_options, recording_sleep, inbox)

    annotator = annotator_factory()
    result = _run(JsonFileCacheStore(path), annotator, fast_options, recording_sleep, inbox)

    assert annotator.calls == []
    assert result.cached == len(inbox)


def test_unwritable_cache_is_fatal(annotator_factory, fast_options, recording_sleep, inbox, tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    store = JsonFileCacheStore(blocker / "cache.json")

    with pytest.raises(CacheIOError):
        _run(store, annotator_factory(), fast_options, recording_sleep, inbox)


class ThreadRecordingStore(InMemoryCacheStore):
    """Records which thread each load and save runs on."""

    def __init__(self) -> None:
        super().__init__()
        self.io_threads: list[int] = []

    def load(self):
        self.io_threads.append(threading.get_ident())
        return super().load()

    def save(self, entries):
        self.io_threads.append(threading.get_ident())
        super().save(entries)


def test_store_io_runs_off_the_event_loop(annotator_factory, fast_options, recording_sleep, inbox):
    store = ThreadRecordingStore()
    loop_threads: list[int] = []

    async def run():
        loop_threads.append(threading.get_ident())
        pipeline = AnnotationPipeline(store, annotator_factory(), fast_options, sleep=recording_sleep)
        return await pipeline.run(inbox)

    result = asyncio.run(run())

    assert result.total == len(inbox)
    assert store.io_threads
    assert loop_threads[0] not in store.io_threads
