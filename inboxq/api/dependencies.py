"""FastAPI dependencies for the cache, the model and pipeline settings.

Tests replace these through ``app.dependency_overrides``.
"""

from __future__ import annotations

import asyncio
from functools import lru_cache

from fastapi import Depends

from inboxq.annotation.annotator import Annotator, GeminiAnnotator
from inboxq.annotation.models import PipelineOptions
from inboxq.annotation.resilience import Sleep
from inboxq.config import CACHE_PATH
from inboxq.llm.client import LLMCall, call_llm
from inboxq.storage.cache import CacheStore, JsonFileCacheStore


@lru_cache(maxsize=1)
def get_cache_store() -> CacheStore:
    """Process-wide store so every request shares one lock."""
    return JsonFileCacheStore(CACHE_PATH)


def get_pipeline_options() -> PipelineOptions:
    return PipelineOptions()


def get_llm_call() -> LLMCall:
    return call_llm


def get_sleep() -> Sleep:
    return asyncio.sleep


def get_annotator(
    options: PipelineOptions = Depends(get_pipeline_options),
    llm_call: LLMCall = Depends(get_llm_call),
) -> Annotator:
    return GeminiAnnotator(options, llm_call=llm_call)
