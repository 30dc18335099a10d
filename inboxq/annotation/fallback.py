"""Deterministic annotations for batches whose retries are exhausted.

Every item always leaves the pipeline annotated; when the model cannot be
reached or keeps returning garbage, these values stand in.
"""

from __future__ import annotations

from inboxq.annotation.models import Annotation, Item, PipelineOptions, Urgency
from inboxq.utils.html import truncate

SUMMARY_PREVIEW_CHARS = 200
MIN_CONTENT_FOR_PREVIEW = 50

HIGH_URGENCY_KEYWORDS = ("urgent", "asap", "deadline", "important")
PROMOTIONAL_KEYWORDS = ("promotional", "offer")


def fallback_summary(item: Item) -> str:
    """Content preview when there is enough body text, else a subject line."""
    content = item.content.strip()
    if len(content) > MIN_CONTENT_FOR_PREVIEW:
        return truncate(content, SUMMARY_PREVIEW_CHARS, suffix="...")
    if item.subject:
        return f"Email regarding: {item.subject}"
    sender = item.sender or "unknown sender"
    return f"Email regarding: communication from {sender}"


def _keyword_hints(item: Item, options: PipelineOptions) -> tuple[Urgency, str] | None:
    subject = item.subject.lower()
    if any(keyword in subject for keyword in HIGH_URGENCY_KEYWORDS):
        category = "work priority" if "work priority" in options.categories else None
        return Urgency.HIGH, category or options.default_category
    if any(keyword in subject for keyword in PROMOTIONAL_KEYWORDS):
        category = "promotions" if "promotions" in options.categories else None
        return Urgency.LOW, category or options.default_category
    return None


def fallback_annotation(item: Item, options: PipelineOptions) -> Annotation:
    """Build the stand-in annotation for ``item``.

    Defaults to medium urgency and the configured default category. With
    ``fallback_keyword_hints`` enabled, subject keywords can raise the item to
    high urgency or drop it to promotions.
    """
    urgency, category = Urgency.MEDIUM, options.default_category
    if options.fallback_keyword_hints:
        hinted = _keyword_hints(item, options)
        if hinted is not None:
            urgency, category = hinted

    return Annotation(
        category=category,
        urgency=urgency,
        summary=fallback_summary(item)[: options.summary_max_chars],
        actions_needed=[],
    )
