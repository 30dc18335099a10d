"""Pydantic request/response models shared by the InboxQ API routes.

Also holds the structure validation applied to free-form metadata so a client
cannot post arbitrarily deep or large payloads.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from inboxq.annotation.models import AnnotatedItem, Item
from inboxq.utils.html import html_to_text

# Dict validation constants to prevent DoS attacks
MAX_DICT_SIZE = 50
MAX_STRING_LENGTH = 10_000
MAX_DICT_DEPTH = 3
MAX_BODY_LENGTH = 200_000


def validate_dict_structure(
    data: dict[str, Any],
    max_keys: int = MAX_DICT_SIZE,
    max_str_len: int = MAX_STRING_LENGTH,
    max_depth: int = MAX_DICT_DEPTH,
    current_depth: int = 0,
) -> None:
    """
    Validate dict size, depth and string lengths (lists count toward depth).

    Raises:
        ValueError: If validation fails
    """
    if current_depth > max_depth:
        raise ValueError(f"Dict nesting exceeds maximum depth of {max_depth}")

    if len(data) > max_keys:
        raise ValueError(f"Dict has too many keys: {len(data)} > {max_keys}")

    for key, value in data.items():
        if isinstance(key, str) and len(key) > 100:
            raise ValueError(f"Dict key too long: {len(key)} > 100")
        _validate_value(value, max_keys, max_str_len, max_depth, current_depth)


def _validate_value(
    value: Any, max_keys: int, max_str_len: int, max_depth: int, current_depth: int
) -> None:
    if isinstance(value, str):
        if len(value) > max_str_len:
            raise ValueError(f"String value too long: {len(value)} > {max_str_len}")
    elif isinstance(value, dict):
        validate_dict_structure(value, max_keys, max_str_len, max_depth, current_depth + 1)
    elif isinstance(value, list):
        if current_depth + 1 > max_depth:
            raise ValueError(f"List nesting exceeds maximum depth of {max_depth}")
        if len(value) > max_keys:
            raise ValueError(f"List too long: {len(value)} > {max_keys}")
        for element in value:
            _validate_value(element, max_keys, max_str_len, max_depth, current_depth + 1)


class EmailIn(BaseModel):
    """One email as sent by the extension or any other client."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(min_length=1, max_length=256)
    sender: str = Field("", alias="from", max_length=1000)
    subject: str = Field("", max_length=2000)
    date: str = Field("", max_length=200)
    thread_id: str | None = Field(None, max_length=256)
    body: str = Field("", max_length=MAX_BODY_LENGTH)
    body_html: str | None = Field(None, max_length=MAX_BODY_LENGTH)
    extra: dict[str, Any] = Field(default_factory=dict)

    @field_validator("extra")
    @classmethod
    def check_extra(cls, v: dict[str, Any]) -> dict[str, Any]:
        validate_dict_structure(v)
        return v

    def to_item(self) -> Item:
        """Plain body wins; HTML-only emails are converted to text."""
        content = self.body.strip() or html_to_text(self.body_html)
        metadata: dict[str, Any] = {
            **self.extra,
            "from": self.sender,
            "subject": self.subject,
            "date": self.date,
        }
        if self.thread_id:
            metadata["thread_id"] = self.thread_id
        return Item(id=self.id, content=content, metadata=metadata)


class EmailOut(BaseModel):
    """An annotated email as returned to clients."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    sender: str = Field("", serialization_alias="from")
    subject: str = ""
    date: str = ""
    thread_id: str | None = None
    body: str = ""
    category: str | None = None
    urgency: str | None = None
    summary: str | None = None
    actions_needed: list[str] = Field(default_factory=list)
    decider: str | None = None

    @classmethod
    def from_item(cls, item: AnnotatedItem) -> EmailOut:
        return cls(
            id=item.id,
            sender=item.sender,
            subject=item.subject,
            date=str(item.metadata.get("date") or ""),
            thread_id=item.metadata.get("thread_id"),
            body=item.content,
            category=item.category,
            urgency=item.urgency.value if item.urgency else None,
            summary=item.summary,
            actions_needed=item.actions_needed,
            decider=item.decider,
        )
