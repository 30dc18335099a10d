"""Pull meeting details out of high-urgency emails.

Only the extraction lives here. Writing the event to a calendar belongs to
whatever calendar client the caller wires up.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, ValidationError

from inboxq.annotation.models import AnnotatedItem, Urgency
from inboxq.annotation.parser import AnnotationParseError, extract_json_object
from inboxq.llm.client import LLMCall, call_llm
from inboxq.observability.logging import get_logger
from inboxq.observability.telemetry import counter
from inboxq.utils.redaction import redact, redact_subject, sanitize_for_prompt

logger = get_logger(__name__)

MEETING_PROMPT = """Extract meeting/calendar information from this email:
Subject: {subject}
Body: {body}

If this email contains a meeting invitation or deadline, extract:
- Event title
- Date and time
- Duration
- Participants

Respond with JSON:
{{
  "has_event": true/false,
  "title": "...",
  "start": "ISO 8601 datetime",
  "end": "ISO 8601 datetime",
  "attendees": ["email1", "email2"]
}}

If no event found, set has_event to false."""


class MeetingDetection(BaseModel):
    has_event: bool | None = False


class MeetingEvent(BaseModel):
    title: str = Field(min_length=1)
    start: datetime
    end: datetime
    attendees: list[str] = Field(default_factory=list)
    description: str = ""


async def extract_meeting(
    item: AnnotatedItem,
    llm_call: LLMCall = call_llm,
) -> MeetingEvent | None:
    """Return the meeting described in ``item``, or None when there is none.

    Raises:
        ValueError: ``item`` is not high urgency.
        AnnotationParseError: The model reply was not a usable event.
        ExternalCallError: The model call failed.
    """
    if item.urgency is not Urgency.HIGH:
        raise ValueError("Only high-priority emails are synced to the calendar")

    prompt = MEETING_PROMPT.format(
        subject=sanitize_for_prompt(item.subject, max_length=300),
        body=sanitize_for_prompt(item.content, max_length=3000),
    )
    data = extract_json_object(await llm_call(prompt, counter_prefix="meeting"))

    try:
        detection = MeetingDetection.model_validate(data)
    except ValidationError as e:
        counter("meeting.schema_error")
        raise AnnotationParseError(f"has_event is not a boolean: {e}") from e

    if not detection.has_event:
        counter("meeting.none")
        return None

    try:
        event = MeetingEvent.model_validate(
            {
                **data,
                "description": f"Auto-synced from email: {item.subject}\n\nFrom: {item.sender}",
            }
        )
    except ValidationError as e:
        counter("meeting.schema_error")
        raise AnnotationParseError(f"meeting details failed validation: {e}") from e

    if (event.start.tzinfo is None) != (event.end.tzinfo is None):
        raise AnnotationParseError("meeting start and end mix naive and aware datetimes")
    if event.end < event.start:
        raise AnnotationParseError("meeting ends before it starts")

    counter("meeting.extracted")
    logger.info(
        "Extracted meeting from email %s: %s", redact(item.id), redact_subject(item.subject)
    )
    return event
