"""
Shared fixtures for InboxQ tests.

Provides scripted annotators and LLM calls, a recording sleep, and resets the
in-memory telemetry between tests so counter assertions stay isolated.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Sequence
from typing import Any

import pytest

from inboxq.annotation.models import Item, PipelineOptions
from inboxq.observability.telemetry import reset_counters, reset_latencies


class RecordingSleep:
    """Async sleep stand-in that records requested delays and returns at once."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class ScriptedAnnotator:
    """
    Annotator whose replies are scripted per call.

    Each script entry is a string (returned), an exception (raised) or a
    callable taking the batch and returning a string. When the script runs
    out, ``default`` is used.
    """

    def __init__(self, script: Sequence[Any] = (), default: Any = None) -> None:
        self._script = list(script)
        self.default = default if default is not None else annotate_all
        self.calls: list[list[str]] = []

    async def annotate(self, batch: Sequence[Item], response_schema: dict[str, Any]) -> str:
        self.calls.append([item.id for item in batch])
        reply = self._script.pop(0) if self._script else self.default
        if isinstance(reply, BaseException):
            raise reply
        if callable(reply):
            return reply(batch)
        return reply


class ScriptedLLM:
    """Stand-in for ``call_llm`` that returns (or raises) scripted replies."""

    def __init__(self, *replies: Any) -> None:
        self._replies = list(replies)
        self.prompts: list[str] = []

    async def __call__(self, prompt: str, counter_prefix: str = "llm", **kwargs: Any) -> str:
        self.prompts.append(prompt)
        reply = self._replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        return reply


def annotate_all(
    batch: Sequence[Item], urgency_by_id: dict[str, str] | None = None
) -> str:
    """Well-formed reply annotating every item; urgency defaults to medium."""
    urgency_by_id = urgency_by_id or {}
    return json.dumps(
        [
            {
                "id": item.id,
                "category": "work priority",
                "urgency": urgency_by_id.get(item.id, "medium"),
                "summary": f"Summary of {item.id}",
                "actions_needed": [],
            }
            for item in batch
        ]
    )


def make_item(item_id: str, content: str = "", **metadata: Any) -> Item:
    return Item(id=item_id, content=content, metadata=metadata)


@pytest.fixture(autouse=True)
def reset_telemetry():
    reset_counters()
    reset_latencies()
    yield
    reset_counters()
    reset_latencies()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def fast_options() -> PipelineOptions:
    """Small batches, fixed short delays, default categories."""
    return PipelineOptions(
        batch_size=2,
        max_attempts=3,
        retry_delay_ms=100,
        retry_backoff="fixed",
        inter_batch_delay_ms=50,
    )


@pytest.fixture
def annotator_factory() -> Callable[..., ScriptedAnnotator]:
    return ScriptedAnnotator


@pytest.fixture
def llm_factory() -> Callable[..., ScriptedLLM]:
    return ScriptedLLM


@pytest.fixture
def item_factory() -> Callable[..., Item]:
    return make_item


@pytest.fixture
def reply_for() -> Callable[..., str]:
    return annotate_all
