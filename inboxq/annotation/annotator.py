"""
External annotator seam.

The pipeline only needs "send a batch, get raw text back". GeminiAnnotator is
the production implementation; tests substitute anything that satisfies the
Annotator protocol.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from typing import Any, Protocol

from inboxq.annotation.models import Item, PipelineOptions
from inboxq.config import GEMINI_MODEL
from inboxq.llm.client import LLMCall, call_llm
from inboxq.observability.logging import get_logger
from inboxq.utils.redaction import sanitize_for_prompt

logger = get_logger(__name__)


def annotation_response_schema(options: PipelineOptions) -> dict[str, Any]:
    """JSON schema hint describing the array the model must return."""
    return {
        "type": "array",
        "items": {
            "type": "object",
            "properties": {
                "id": {"type": "string", "description": "Echo of the email id"},
                "category": {"type": "string", "enum": list(options.categories)},
                "urgency": {"type": "string", "enum": ["high", "medium", "low"]},
                "summary": {
                    "type": "string",
                    "description": f"2-3 sentence summary, at most {options.summary_max_chars} characters",
                },
                "actions_needed": {"type": "array", "items": {"type": "string"}},
            },
            "required": ["id", "category", "urgency", "summary", "actions_needed"],
        },
    }


class Annotator(Protocol):
    """Anything that turns a batch description into raw model text."""

    async def annotate(self, batch: Sequence[Item], response_schema: dict[str, Any]) -> str: ...


class GeminiAnnotator:
    """Annotate email batches with Gemini."""

    PROMPT_TEMPLATE = """You are an intelligent email organizer.
Analyze the {count} emails below. Return ONLY a JSON array with exactly one element per email, in the same order, matching this schema:
{schema}

Emails:
{emails}"""

    EMAIL_TEMPLATE = """{index}. id: {id}
From: {sender}
Subject: {subject}
Date: {date}
Body: {body}"""

    def __init__(self, options: PipelineOptions | None = None, llm_call: LLMCall = call_llm):
        self.options = options or PipelineOptions()
        self._llm_call = llm_call

    def build_prompt(self, batch: Sequence[Item], response_schema: dict[str, Any]) -> str:
        """Render the batch prompt with sanitized, truncated fields."""
        emails = "\n\n".join(
            self.EMAIL_TEMPLATE.format(
                index=index,
                id=item.id,
                sender=sanitize_for_prompt(item.sender, max_length=200) or "(unknown sender)",
                subject=sanitize_for_prompt(item.subject, max_length=300) or "(no subject)",
                date=sanitize_for_prompt(str(item.metadata.get("date") or ""), max_length=100)
                or "(no date)",
                body=sanitize_for_prompt(item.content, max_length=self.options.content_max_chars),
            )
            for index, item in enumerate(batch, start=1)
        )
        return self.PROMPT_TEMPLATE.format(
            count=len(batch),
            schema=json.dumps(response_schema, indent=2),
            emails=emails,
        )

    async def annotate(self, batch: Sequence[Item], response_schema: dict[str, Any]) -> str:
        prompt = self.build_prompt(batch, response_schema)
        logger.info("Sending batch of %d emails to %s", len(batch), GEMINI_MODEL)
        return await self._llm_call(
            prompt, counter_prefix="annotator", response_schema=response_schema
        )
