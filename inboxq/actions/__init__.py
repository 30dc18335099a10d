"""
Follow-on actions on annotated emails: reply drafts, thread summaries and
meeting extraction. Each is one Gemini call parsed with the lenient parser.
"""

from inboxq.actions.meetings import MeetingEvent, extract_meeting
from inboxq.actions.smart_reply import SmartReplies, draft_replies
from inboxq.actions.thread_summary import ThreadMessage, ThreadSummary, summarize_thread

__all__ = [
    "MeetingEvent",
    "SmartReplies",
    "ThreadMessage",
    "ThreadSummary",
    "draft_replies",
    "extract_meeting",
    "summarize_thread",
]
