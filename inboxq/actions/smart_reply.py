"""Smart reply drafting for a cached email."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, ValidationError

from inboxq.annotation.models import AnnotatedItem
from inboxq.annotation.parser import AnnotationParseError, extract_json_object
from inboxq.llm.client import LLMCall, call_llm
from inboxq.observability.logging import get_logger
from inboxq.observability.telemetry import counter
from inboxq.utils.redaction import redact, redact_subject, sanitize_for_prompt

logger = get_logger(__name__)

Tone = Literal["professional", "friendly", "formal", "casual"]

SMART_REPLY_PROMPT = """Generate a smart email reply based on:
From: {sender}
Subject: {subject}
Body: {body}
Urgency: {urgency}

Generate 3 reply options:
1. Quick acknowledgment (1-2 sentences)
2. Detailed response (3-4 sentences)
3. Action-oriented response (with next steps)

Tone: {tone}

Respond ONLY with valid JSON (no markdown, no code fences):
{{
  "quick": "...",
  "detailed": "...",
  "action": "..."
}}"""


class SmartReplies(BaseModel):
    quick: str = Field(min_length=1)
    detailed: str = Field(min_length=1)
    action: str = Field(min_length=1)


async def draft_replies(
    item: AnnotatedItem,
    tone: Tone = "professional",
    llm_call: LLMCall = call_llm,
) -> SmartReplies:
    """Ask the model for three reply drafts to ``item``.

    Raises:
        AnnotationParseError: The reply did not contain the three drafts.
        ExternalCallError: The model call failed.
    """
    prompt = SMART_REPLY_PROMPT.format(
        sender=sanitize_for_prompt(item.sender, max_length=200),
        subject=sanitize_for_prompt(item.subject, max_length=300),
        body=sanitize_for_prompt(item.content, max_length=3000),
        urgency=item.urgency.value if item.urgency else "unknown",
        tone=tone,
    )
    raw = await llm_call(prompt, counter_prefix="smart_reply")
    try:
        replies = SmartReplies.model_validate(extract_json_object(raw))
    except ValidationError as e:
        counter("smart_reply.schema_error")
        raise AnnotationParseError(f"reply drafts failed validation: {e}") from e

    counter("smart_reply.success")
    logger.info(
        "Drafted replies for email %s: %s (tone=%s)",
        redact(item.id),
        redact_subject(item.subject),
        tone,
    )
    return replies
