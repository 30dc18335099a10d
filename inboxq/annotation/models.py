"""Data contracts for the annotation pipeline.

Item is what callers hand in, Annotation is what the model (or the fallback)
produces, AnnotatedItem is the union that is cached and returned.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from inboxq.config import (
    PIPELINE_BATCH_SIZE,
    PIPELINE_CATEGORIES,
    PIPELINE_CONTENT_MAX_CHARS,
    PIPELINE_DEFAULT_CATEGORY,
    PIPELINE_FALLBACK_KEYWORD_HINTS,
    PIPELINE_INTER_BATCH_DELAY_MS,
    PIPELINE_MAX_ATTEMPTS,
    PIPELINE_RETRY_BACKOFF,
    PIPELINE_RETRY_DELAY_MS,
    PIPELINE_SUMMARY_MAX_CHARS,
)


class Urgency(str, Enum):
    """Ordered urgency levels; PRIORITY_RANK gives the sort order."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


PRIORITY_RANK: dict[str, int] = {
    Urgency.HIGH.value: 1,
    Urgency.MEDIUM.value: 2,
    Urgency.LOW.value: 3,
}

Decider = Literal["gemini", "fallback"]


class Item(BaseModel):
    """An email (or any text unit) waiting to be annotated."""

    id: str = Field(min_length=1)
    content: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def subject(self) -> str:
        return str(self.metadata.get("subject") or "")

    @property
    def sender(self) -> str:
        return str(self.metadata.get("from") or "")


class Annotation(BaseModel):
    """Structured output for one item."""

    model_config = ConfigDict(populate_by_name=True)

    category: str
    urgency: Urgency
    summary: str = Field(min_length=1)
    actions_needed: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("actions_needed", "actionsNeeded"),
    )

    @field_validator("urgency", mode="before")
    @classmethod
    def normalize_urgency(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("summary", mode="before")
    @classmethod
    def strip_summary(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator("actions_needed", mode="before")
    @classmethod
    def coerce_actions(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, str):
            return [v] if v.strip() else []
        return v


class AnnotatedItem(Item):
    """Item plus its annotation. Annotation fields stay None until annotated."""

    category: str | None = None
    urgency: Urgency | None = None
    summary: str | None = None
    actions_needed: list[str] = Field(default_factory=list)
    decider: Decider | None = None

    @classmethod
    def from_annotation(
        cls, item: Item, annotation: Annotation, decider: Decider
    ) -> AnnotatedItem:
        """Merge an annotation onto its originating item."""
        return cls(
            id=item.id,
            content=item.content,
            metadata=dict(item.metadata),
            category=annotation.category,
            urgency=annotation.urgency,
            summary=annotation.summary,
            actions_needed=list(annotation.actions_needed),
            decider=decider,
        )

    @property
    def priority_rank(self) -> int:
        """1 for high, 2 for medium, 3 for low, 4 when not yet annotated."""
        if self.urgency is None:
            return len(PRIORITY_RANK) + 1
        return PRIORITY_RANK[self.urgency.value]


@dataclass(frozen=True)
class PipelineOptions:
    """Tunables for one pipeline run. Defaults come from inboxq.config."""

    batch_size: int = PIPELINE_BATCH_SIZE
    max_attempts: int = PIPELINE_MAX_ATTEMPTS
    retry_delay_ms: int = PIPELINE_RETRY_DELAY_MS
    retry_backoff: Literal["fixed", "exponential"] = PIPELINE_RETRY_BACKOFF  # type: ignore[assignment]
    inter_batch_delay_ms: int = PIPELINE_INTER_BATCH_DELAY_MS
    default_category: str = PIPELINE_DEFAULT_CATEGORY
    categories: tuple[str, ...] = PIPELINE_CATEGORIES
    content_max_chars: int = PIPELINE_CONTENT_MAX_CHARS
    summary_max_chars: int = PIPELINE_SUMMARY_MAX_CHARS
    fallback_keyword_hints: bool = PIPELINE_FALLBACK_KEYWORD_HINTS

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {self.batch_size}")
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.retry_delay_ms < 0 or self.inter_batch_delay_ms < 0:
            raise ValueError("delays must be non-negative")
        if self.retry_backoff not in ("fixed", "exponential"):
            raise ValueError(f"unknown retry_backoff: {self.retry_backoff!r}")
        if self.default_category not in self.categories:
            raise ValueError(
                f"default_category {self.default_category!r} is not one of {self.categories}"
            )


@dataclass
class PipelineResult:
    """Outcome of one run: sorted items plus how each was obtained."""

    items: list[AnnotatedItem] = field(default_factory=list)
    cached: int = 0
    annotated: int = 0
    fallback: int = 0
    batches: int = 0

    @property
    def total(self) -> int:
        return len(self.items)
