"""Summarize a whole conversation thread.

The mail provider is not called from here: the caller supplies the thread's
messages, oldest first.
"""

from __future__ import annotations

from collections.abc import Sequence
from enum import Enum

from pydantic import BaseModel, Field, ValidationError, field_validator

from inboxq.annotation.parser import AnnotationParseError, extract_json_object
from inboxq.config import THREAD_MAX_MESSAGES, THREAD_MESSAGE_MAX_CHARS
from inboxq.llm.client import LLMCall, call_llm
from inboxq.observability.telemetry import counter, log_event
from inboxq.utils.redaction import sanitize_for_prompt

THREAD_SUMMARY_PROMPT = """Summarize this email thread conversation:

{conversation}

Provide:
1. Main topic/subject
2. Key points discussed
3. Decisions made
4. Action items
5. Current status

Format as JSON:
{{
  "topic": "...",
  "key_points": ["...", "..."],
  "decisions": ["..."],
  "action_items": ["..."],
  "status": "ongoing|resolved|waiting"
}}"""


class ThreadStatus(str, Enum):
    ONGOING = "ongoing"
    RESOLVED = "resolved"
    WAITING = "waiting"


class ThreadMessage(BaseModel):
    sender: str = ""
    date: str = ""
    body: str = ""


class ThreadSummary(BaseModel):
    topic: str = Field(min_length=1)
    key_points: list[str] = Field(default_factory=list)
    decisions: list[str] = Field(default_factory=list)
    action_items: list[str] = Field(default_factory=list)
    status: ThreadStatus = ThreadStatus.ONGOING

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, v: object) -> object:
        return v.strip().lower() if isinstance(v, str) else v


def render_conversation(messages: Sequence[ThreadMessage]) -> str:
    """Number each message and cut its body to THREAD_MESSAGE_MAX_CHARS."""
    blocks = []
    for index, message in enumerate(messages[:THREAD_MAX_MESSAGES], start=1):
        body = sanitize_for_prompt(message.body, max_length=THREAD_MESSAGE_MAX_CHARS)
        sender = sanitize_for_prompt(message.sender, max_length=200) or "Unknown"
        blocks.append(f"Message {index} ({message.date}):\nFrom: {sender}\n{body}")
    return "\n\n---\n\n".join(blocks)


async def summarize_thread(
    thread_id: str,
    messages: Sequence[ThreadMessage],
    llm_call: LLMCall = call_llm,
) -> ThreadSummary:
    """Summarize ``messages`` into topic, key points, decisions, action items and status.

    Raises:
        ValueError: ``messages`` is empty.
        AnnotationParseError: The model reply did not match the summary shape.
        ExternalCallError: The model call failed.
    """
    if not messages:
        raise ValueError("thread has no messages")

    prompt = THREAD_SUMMARY_PROMPT.format(conversation=render_conversation(messages))
    raw = await llm_call(prompt, counter_prefix="thread_summary")
    try:
        summary = ThreadSummary.model_validate(extract_json_object(raw))
    except ValidationError as e:
        counter("thread_summary.schema_error")
        raise AnnotationParseError(f"thread summary failed validation: {e}") from e

    log_event(
        "thread_summary.success",
        thread_id=thread_id,
        messages=len(messages),
        status=summary.status.value,
    )
    return summary
