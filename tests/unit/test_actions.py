"""Unit tests for follow-on actions: smart replies, thread summaries, meetings."""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime

import pytest

from inboxq.actions.meetings import extract_meeting
from inboxq.actions.smart_reply import draft_replies
from inboxq.actions.thread_summary import (
    ThreadMessage,
    ThreadStatus,
    render_conversation,
    summarize_thread,
)
from inboxq.annotation.models import AnnotatedItem
from inboxq.annotation.parser import AnnotationParseError
from inboxq.llm.client import ExternalCallError


def _email(urgency: str = "high") -> AnnotatedItem:
    return AnnotatedItem(
        id="msg-1",
        content="Can we meet Tuesday at 10am to go over the launch plan?",
        metadata={"from": "lead@example.com", "subject": "Launch sync"},
        category="work priority",
        urgency=urgency,
        summary="Lead wants a launch sync.",
        decider="gemini",
    )


class TestSmartReply:
    def test_drafts_three_replies(self, llm_factory):
        llm = llm_factory(
            '```json\n{"quick": "Sure!", "detailed": "Tuesday works.", "action": "Invite sent."}\n```'
        )

        replies = asyncio.run(draft_replies(_email(), "friendly", llm_call=llm))

        assert replies.quick == "Sure!"
        assert replies.action == "Invite sent."
        assert "Tone: friendly" in llm.prompts[0]
        assert "Launch sync" in llm.prompts[0]

    def test_missing_draft_is_parse_error(self, llm_factory):
        llm = llm_factory('{"quick": "Sure!"}')
        with pytest.raises(AnnotationParseError):
            asyncio.run(draft_replies(_email(), llm_call=llm))

    def test_external_error_propagates(self, llm_factory):
        llm = llm_factory(ExternalCallError("quota"))
        with pytest.raises(ExternalCallError):
            asyncio.run(draft_replies(_email(), llm_call=llm))

    def test_log_line_redacts_subject(self, llm_factory, caplog):
        email = _email()
        email.metadata["subject"] = "Confidential: acquisition of Northwind closes Friday"
        llm = llm_factory('{"quick": "Ok", "detailed": "Noted.", "action": "Will do."}')

        with caplog.at_level(logging.INFO, logger="inboxq.actions.smart_reply"):
            asyncio.run(draft_replies(email, llm_call=llm))

        assert "Drafted replies" in caplog.text
        assert "Northwind closes Friday" not in caplog.text
        assert "(h:" in caplog.text
        assert "msg-1" not in caplog.text


class TestThreadSummary:
    def test_summarizes(self, llm_factory):
        llm = llm_factory(
            json.dumps(
                {
                    "topic": "Launch date",
                    "key_points": ["Slipping a week"],
                    "decisions": ["Ship on the 14th"],
                    "action_items": ["Update roadmap"],
                    "status": "Resolved",
                }
            )
        )
        messages = [
            ThreadMessage(sender="a@example.com", date="Mon", body="Can we slip?"),
            ThreadMessage(sender="b@example.com", date="Tue", body="Yes, the 14th."),
        ]

        summary = asyncio.run(summarize_thread("t-1", messages, llm_call=llm))

        assert summary.topic == "Launch date"
        assert summary.status is ThreadStatus.RESOLVED
        assert "Message 2 (Tue)" in llm.prompts[0]

    def test_empty_thread_rejected(self, llm_factory):
        with pytest.raises(ValueError, match="no messages"):
            asyncio.run(summarize_thread("t-1", [], llm_call=llm_factory()))

    def test_unknown_status_is_parse_error(self, llm_factory):
        llm = llm_factory('{"topic": "x", "status": "abandoned"}')
        with pytest.raises(AnnotationParseError):
            asyncio.run(summarize_thread("t-1", [ThreadMessage(body="hi")], llm_call=llm))

    def test_message_bodies_truncated(self):
        rendered = render_conversation([ThreadMessage(body="y" * 5000)])
        assert rendered.count("y") == 1000
        assert "From: Unknown" in rendered


class TestMeetingExtraction:
    def test_extracts_event(self, llm_factory):
        llm = llm_factory(
            json.dumps(
                {
                    "has_event": True,
                    "title": "Launch sync",
                    "start": "2026-10-20T10:00:00",
                    "end": "2026-10-20T10:30:00",
                    "attendees": ["lead@example.com"],
                }
            )
        )

        event = asyncio.run(extract_meeting(_email(), llm_call=llm))

        assert event is not None
        assert event.start == datetime(2026, 10, 20, 10, 0)
        assert event.attendees == ["lead@example.com"]
        assert "lead@example.com" in event.description

    def test_no_event(self, llm_factory):
        llm = llm_factory('{"has_event": false}')
        assert asyncio.run(extract_meeting(_email(), llm_call=llm)) is None

    @pytest.mark.parametrize("flag", ['"false"', '"no"', "0", "null"])
    def test_no_event_loose_flags(self, llm_factory, flag):
        llm = llm_factory('{"has_event": ' + flag + "}")
        assert asyncio.run(extract_meeting(_email(), llm_call=llm)) is None

    def test_unreadable_flag_is_parse_error(self, llm_factory):
        llm = llm_factory('{"has_event": "maybe", "title": "Sync"}')
        with pytest.raises(AnnotationParseError, match="has_event"):
            asyncio.run(extract_meeting(_email(), llm_call=llm))

    def test_only_high_urgency(self, llm_factory):
        llm = llm_factory()
        with pytest.raises(ValueError, match="high-priority"):
            asyncio.run(extract_meeting(_email("medium"), llm_call=llm))
        assert llm.prompts == []

    def test_end_before_start_rejected(self, llm_factory):
        llm = llm_factory(
            json.dumps(
                {
                    "has_event": True,
                    "title": "Backwards",
                    "start": "2026-10-20T11:00:00",
                    "end": "2026-10-20T10:00:00",
                }
            )
        )
        with pytest.raises(AnnotationParseError, match="before"):
            asyncio.run(extract_meeting(_email(), llm_call=llm))

    def test_unparseable_time_rejected(self, llm_factory):
        llm = llm_factory('{"has_event": true, "title": "Sync", "start": "soon", "end": "later"}')
        with pytest.raises(AnnotationParseError):
            asyncio.run(extract_meeting(_email(), llm_call=llm))
