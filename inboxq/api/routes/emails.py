"""Email analysis endpoints.

POST /api/analyze runs the annotation pipeline over the posted emails; the
cache makes repeated calls cheap. GET/DELETE expose the cache itself.
"""

from __future__ import annotations

import dataclasses

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from inboxq.annotation.annotator import Annotator
from inboxq.annotation.batching import sort_by_priority
from inboxq.annotation.models import PipelineOptions
from inboxq.annotation.pipeline import AnnotationPipeline
from inboxq.annotation.resilience import Sleep
from inboxq.api.dependencies import (
    get_annotator,
    get_cache_store,
    get_pipeline_options,
    get_sleep,
)
from inboxq.api.models import EmailIn, EmailOut
from inboxq.config import API_BATCH_SIZE_MAX
from inboxq.observability.logging import get_logger
from inboxq.storage.cache import CacheIOError, CacheStore

router = APIRouter(prefix="/api", tags=["emails"])
logger = get_logger(__name__)


# ============================================================================
# Request/Response Models
# ============================================================================


class AnalyzeOptions(BaseModel):
    """Per-request overrides of the server's pipeline options."""

    batch_size: int | None = Field(None, ge=1, le=API_BATCH_SIZE_MAX)
    max_attempts: int | None = Field(None, ge=1, le=10)
    fallback_keyword_hints: bool | None = None

    def apply(self, options: PipelineOptions) -> PipelineOptions:
        overrides = self.model_dump(exclude_none=True)
        return dataclasses.replace(options, **overrides) if overrides else options


class AnalyzeRequest(BaseModel):
    emails: list[EmailIn] = Field(..., max_length=API_BATCH_SIZE_MAX)
    options: AnalyzeOptions | None = None


class AnalyzeStats(BaseModel):
    total: int
    cached: int
    annotated: int
    fallback: int
    batches: int


class AnalyzeResponse(BaseModel):
    message: str
    emails: list[EmailOut]
    stats: AnalyzeStats


class EmailListResponse(BaseModel):
    count: int
    emails: list[EmailOut]


# ============================================================================
# Endpoints
# ============================================================================


@router.post("/analyze", response_model=AnalyzeResponse)
async def analyze_emails(
    request: AnalyzeRequest,
    store: CacheStore = Depends(get_cache_store),
    annotator: Annotator = Depends(get_annotator),
    options: PipelineOptions = Depends(get_pipeline_options),
    sleep: Sleep = Depends(get_sleep),
) -> AnalyzeResponse:
    """
    Categorize, summarize and prioritize a batch of emails.

    Emails already in the cache are returned as cached; the rest go to Gemini
    in batches. Every posted email comes back annotated, either by the model
    or by the fallback when the model keeps failing.
    """
    if not request.emails:
        return AnalyzeResponse(
            message="No emails to analyze.",
            emails=[],
            stats=AnalyzeStats(total=0, cached=0, annotated=0, fallback=0, batches=0),
        )

    if request.options is not None:
        options = request.options.apply(options)

    pipeline = AnnotationPipeline(store, annotator, options, sleep=sleep)
    try:
        result = await pipeline.run(email.to_item() for email in request.emails)
    except CacheIOError as e:
        logger.error("Analysis aborted, cache unavailable: %s", e)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Annotation cache unavailable. Please try again later.",
        ) from e

    return AnalyzeResponse(
        message=f"Analyzed {result.total} emails. Cached: {result.cached}.",
        emails=[EmailOut.from_item(item) for item in result.items],
        stats=AnalyzeStats(
            total=result.total,
            cached=result.cached,
            annotated=result.annotated,
            fallback=result.fallback,
            batches=result.batches,
        ),
    )


@router.get("/emails", response_model=EmailListResponse)
def list_emails(store: CacheStore = Depends(get_cache_store)) -> EmailListResponse:
    """Every cached annotated email, highest urgency first."""
    try:
        cached = store.load()
    except CacheIOError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Annotation cache unavailable. Please try again later.",
        ) from e

    emails = [EmailOut.from_item(item) for item in sort_by_priority(cached.values())]
    return EmailListResponse(count=len(emails), emails=emails)


@router.delete("/emails/{email_id}", status_code=status.HTTP_204_NO_CONTENT)
def invalidate_email(email_id: str, store: CacheStore = Depends(get_cache_store)) -> None:
    """Forget the cached annotation so the next analysis re-annotates the email."""
    try:
        removed = store.invalidate([email_id])
    except CacheIOError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Annotation cache unavailable. Please try again later.",
        ) from e

    if not removed:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Email not found")
