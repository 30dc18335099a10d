"""Unit tests for the per-batch retry loop and its fallback."""

from __future__ import annotations

import asyncio

import pytest

from inboxq.annotation.models import PipelineOptions, Urgency
from inboxq.annotation.parser import AnnotationParseError
from inboxq.annotation.resilience import ResilientBatchAnnotator, retry_wait
from inboxq.llm.client import ExternalCallError
from inboxq.observability.telemetry import counter


@pytest.fixture
def batch(item_factory):
    return [item_factory("a", subject="Hello"), item_factory("b", subject="World")]


def _run(annotator, options, sleep, batch):
    resilient = ResilientBatchAnnotator(annotator, options, sleep=sleep)
    return asyncio.run(resilient.run(batch))


def test_first_attempt_success(annotator_factory, fast_options, recording_sleep, batch):
    annotator = annotator_factory()

    outcome = _run(annotator, fast_options, recording_sleep, batch)

    assert outcome.succeeded
    assert outcome.attempts == 1
    assert [i.decider for i in outcome.items] == ["gemini", "gemini"]
    assert [i.summary for i in outcome.items] == ["Summary of a", "Summary of b"]
    assert recording_sleep.delays == []
    assert counter("pipeline.batch.succeeded", 0) == 1


def test_recovers_after_parse_failure(annotator_factory, fast_options, recording_sleep, batch):
    annotator = annotator_factory(["not json at all", ExternalCallError("503")])

    outcome = _run(annotator, fast_options, recording_sleep, batch)

    assert outcome.succeeded
    assert outcome.attempts == 3
    assert len(annotator.calls) == 3
    assert recording_sleep.delays == [0.1, 0.1]
    assert counter("pipeline.batch.retry", 0) == 2


def test_exhaustion_yields_fallback(annotator_factory, fast_options, recording_sleep, batch):
    annotator = annotator_factory(default="Sorry, I can't help with that.")

    outcome = _run(annotator, fast_options, recording_sleep, batch)

    assert not outcome.succeeded
    assert outcome.attempts == fast_options.max_attempts
    assert len(annotator.calls) == fast_options.max_attempts
    assert len(recording_sleep.delays) == fast_options.max_attempts - 1
    assert [i.id for i in outcome.items] == ["a", "b"]
    for item in outcome.items:
        assert item.decider == "fallback"
        assert item.urgency is Urgency.MEDIUM
        assert item.category == fast_options.default_category
        assert item.actions_needed == []
    assert outcome.items[0].summary == "Email regarding: Hello"
    assert outcome.error
    assert counter("pipeline.batch.exhausted", 0) == 1


def test_single_attempt_never_sleeps(annotator_factory, recording_sleep, batch):
    options = PipelineOptions(max_attempts=1, retry_delay_ms=1000)
    annotator = annotator_factory([ExternalCallError("timeout")])

    outcome = _run(annotator, options, recording_sleep, batch)

    assert not outcome.succeeded
    assert outcome.attempts == 1
    assert recording_sleep.delays == []


def test_exponential_backoff_delays(annotator_factory, recording_sleep, batch):
    options = PipelineOptions(max_attempts=4, retry_delay_ms=500, retry_backoff="exponential")
    annotator = annotator_factory(default=AnnotationParseError("bad"))

    _run(annotator, options, recording_sleep, batch)

    assert recording_sleep.delays == [0.5, 1.0, 2.0]


def test_length_mismatch_is_retried(annotator_factory, fast_options, recording_sleep, batch):
    annotator = annotator_factory(['[{"category": "spam", "urgency": "low", "summary": "x"}]'])

    outcome = _run(annotator, fast_options, recording_sleep, batch)

    assert outcome.succeeded
    assert outcome.attempts == 2


def test_unexpected_errors_propagate(annotator_factory, fast_options, recording_sleep, batch):
    annotator = annotator_factory([KeyError("bug")])

    with pytest.raises(KeyError):
        _run(annotator, fast_options, recording_sleep, batch)
    assert len(annotator.calls) == 1


@pytest.mark.parametrize(
    "backoff,attempt,expected",
    [("fixed", 1, 2.0), ("fixed", 3, 2.0), ("exponential", 1, 2.0), ("exponential", 3, 8.0)],
)
def test_retry_wait_policy(backoff, attempt, expected):
    from tenacity import RetryCallState

    wait = retry_wait(PipelineOptions(retry_delay_ms=2000, retry_backoff=backoff))
    state = RetryCallState(retry_object=None, fn=None, args=(), kwargs={})
    state.attempt_number = attempt

    assert wait(state) == pytest.approx(expected)
