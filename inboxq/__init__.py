"""InboxQ - Batch-annotate an inbox with categories, urgency and summaries"""

from __future__ import annotations

__version__ = "0.1.0"


def __getattr__(name: str):
    """
    Lazy imports so lightweight modules load without pydantic and tenacity.
    """
    if name in ("AnnotatedItem", "Item", "PipelineOptions", "Urgency"):
        from inboxq.annotation import models

        return getattr(models, name)

    if name in ("AnnotationPipeline", "run_pipeline"):
        from inboxq.annotation import pipeline

        return getattr(pipeline, name)

    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)


__all__ = [
    "AnnotatedItem",
    "AnnotationPipeline",
    "Item",
    "PipelineOptions",
    "Urgency",
    "run_pipeline",
]
