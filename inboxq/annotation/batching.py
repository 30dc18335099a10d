"""Cache partitioning, batching and priority ordering.

All functions here are pure: no I/O, no clock, no model calls.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence

from inboxq.annotation.models import AnnotatedItem, Item

Batch = list[Item]


def partition(
    items: Iterable[Item], cache: Mapping[str, AnnotatedItem]
) -> tuple[list[AnnotatedItem], list[Item]]:
    """Split ``items`` into cache hits and items still needing annotation.

    Cache hits are returned verbatim; changes to the item's current content or
    metadata are ignored. Both lists preserve input order. A repeated id is
    only considered at its first occurrence.
    """
    already_annotated: list[AnnotatedItem] = []
    pending: list[Item] = []
    seen: set[str] = set()

    for item in items:
        if item.id in seen:
            continue
        seen.add(item.id)

        cached = cache.get(item.id)
        if cached is not None:
            already_annotated.append(cached)
        else:
            pending.append(item)

    return already_annotated, pending


def chunk(pending: Sequence[Item], batch_size: int) -> list[Batch]:
    """Split ``pending`` into consecutive batches of ``batch_size``.

    Every batch but the last holds exactly ``batch_size`` items; the last holds
    the remainder. An empty input yields no batches.
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be >= 1, got {batch_size}")
    return [list(pending[i : i + batch_size]) for i in range(0, len(pending), batch_size)]


def merge(
    already_annotated: Sequence[AnnotatedItem], newly_annotated: Sequence[AnnotatedItem]
) -> list[AnnotatedItem]:
    """Concatenate cached and fresh results; the two are disjoint by construction."""
    return [*already_annotated, *newly_annotated]


def sort_by_priority(items: Iterable[AnnotatedItem]) -> list[AnnotatedItem]:
    """Stable sort: high, then medium, then low. Ties keep their incoming order."""
    return sorted(items, key=lambda item: item.priority_rank)
