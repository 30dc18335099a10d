"""Follow-on actions for emails that have already been analyzed."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from inboxq.actions.meetings import MeetingEvent, extract_meeting
from inboxq.actions.smart_reply import SmartReplies, Tone, draft_replies
from inboxq.actions.thread_summary import ThreadMessage, ThreadSummary, summarize_thread
from inboxq.annotation.models import AnnotatedItem
from inboxq.annotation.parser import AnnotationParseError
from inboxq.api.dependencies import get_cache_store, get_llm_call
from inboxq.config import THREAD_MAX_MESSAGES
from inboxq.llm.client import ExternalCallError, LLMCall
from inboxq.observability.logging import get_logger
from inboxq.storage.cache import CacheIOError, CacheStore

router = APIRouter(prefix="/api", tags=["actions"])
logger = get_logger(__name__)

MODEL_FAILURE_DETAIL = "The language model did not return a usable answer. Please try again."


# ============================================================================
# Request/Response Models
# ============================================================================


class SmartReplyRequest(BaseModel):
    email_id: str = Field(min_length=1, max_length=256)
    tone: Tone = "professional"


class SmartReplyResponse(BaseModel):
    success: bool = True
    email_id: str
    replies: SmartReplies


class ThreadSummaryRequest(BaseModel):
    thread_id: str = Field(min_length=1, max_length=256)
    messages: list[ThreadMessage] = Field(..., min_length=1, max_length=THREAD_MAX_MESSAGES)


class ThreadSummaryResponse(BaseModel):
    success: bool = True
    thread_id: str
    message_count: int
    summary: ThreadSummary


class MeetingRequest(BaseModel):
    email_id: str = Field(min_length=1, max_length=256)


class MeetingResponse(BaseModel):
    success: bool
    message: str
    event: MeetingEvent | None = None


# ============================================================================
# Helpers
# ============================================================================


def _cached_email(store: CacheStore, email_id: str) -> AnnotatedItem:
    try:
        item = store.load().get(email_id)
    except CacheIOError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Annotation cache unavailable. Please try again later.",
        ) from e
    if item is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Email not found")
    return item


def _model_failure(action: str, error: Exception) -> HTTPException:
    logger.warning("%s failed: %s", action, error)
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=MODEL_FAILURE_DETAIL)


# ============================================================================
# Endpoints
# ============================================================================


@router.post("/smart-reply", response_model=SmartReplyResponse)
async def smart_reply(
    request: SmartReplyRequest,
    store: CacheStore = Depends(get_cache_store),
    llm_call: LLMCall = Depends(get_llm_call),
) -> SmartReplyResponse:
    """Draft quick, detailed and action-oriented replies to an analyzed email."""
    item = _cached_email(store, request.email_id)
    try:
        replies = await draft_replies(item, request.tone, llm_call=llm_call)
    except (AnnotationParseError, ExternalCallError) as e:
        raise _model_failure("Smart reply", e) from e
    return SmartReplyResponse(email_id=request.email_id, replies=replies)


@router.post("/summarize-thread", response_model=ThreadSummaryResponse)
async def summarize_thread_endpoint(
    request: ThreadSummaryRequest,
    llm_call: LLMCall = Depends(get_llm_call),
) -> ThreadSummaryResponse:
    """Summarize a conversation the client has already fetched."""
    try:
        summary = await summarize_thread(request.thread_id, request.messages, llm_call=llm_call)
    except (AnnotationParseError, ExternalCallError) as e:
        raise _model_failure("Thread summary", e) from e
    return ThreadSummaryResponse(
        thread_id=request.thread_id,
        message_count=len(request.messages),
        summary=summary,
    )


@router.post("/sync-meeting", response_model=MeetingResponse)
async def sync_meeting(
    request: MeetingRequest,
    store: CacheStore = Depends(get_cache_store),
    llm_call: LLMCall = Depends(get_llm_call),
) -> MeetingResponse:
    """Extract meeting details from a high-urgency email for the client to add to a calendar."""
    item = _cached_email(store, request.email_id)
    try:
        event = await extract_meeting(item, llm_call=llm_call)
    except (AnnotationParseError, ExternalCallError) as e:
        raise _model_failure("Meeting extraction", e) from e
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    if event is None:
        return MeetingResponse(success=False, message="No meeting information found")
    return MeetingResponse(success=True, message="Meeting details extracted", event=event)
