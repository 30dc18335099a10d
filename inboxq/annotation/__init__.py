"""
Annotation pipeline: cache-aware batching of emails through Gemini with
retry, fallback and priority ordering.
"""

from inboxq.annotation.annotator import Annotator, GeminiAnnotator
from inboxq.annotation.batching import chunk, merge, partition, sort_by_priority
from inboxq.annotation.models import (
    AnnotatedItem,
    Annotation,
    Item,
    PipelineOptions,
    PipelineResult,
    Urgency,
)
from inboxq.annotation.parser import AnnotationParseError, parse_annotations
from inboxq.annotation.pipeline import AnnotationPipeline, run_pipeline

__all__ = [
    "AnnotatedItem",
    "Annotation",
    "AnnotationParseError",
    "AnnotationPipeline",
    "Annotator",
    "GeminiAnnotator",
    "Item",
    "PipelineOptions",
    "PipelineResult",
    "Urgency",
    "chunk",
    "merge",
    "parse_annotations",
    "partition",
    "run_pipeline",
    "sort_by_priority",
]
