"""
Gemini Model Manager - Singleton for shared model instance.

The batch annotator and every follow-on action share one model instance.

Supports two backends:
  1. Vertex AI SDK (production, Cloud Run): GOOGLE_CLOUD_PROJECT + service account
  2. google-generativeai (local dev): GOOGLE_API_KEY
"""

from __future__ import annotations

import os
from functools import lru_cache

from inboxq.infrastructure.settings import (
    GEMINI_LOCATION,
    GEMINI_MODEL,
    GOOGLE_API_KEY,
    GOOGLE_CLOUD_PROJECT,
)
from inboxq.observability.logging import get_logger

logger = get_logger(__name__)


class GeminiInitializationError(RuntimeError):
    """Raised when Gemini model cannot be initialized."""


@lru_cache(maxsize=1)
def get_gemini_model():
    """
    Get or create the shared Gemini model instance.

    Tries Vertex AI SDK first (production). Falls back to google-generativeai
    with GOOGLE_API_KEY for local development.

    Returns:
        GenerativeModel: Shared Gemini model

    Raises:
        GeminiInitializationError: If model cannot be initialized
    """
    # Read env vars fresh (settings may have been imported before dotenv ran)
    project = os.getenv("GOOGLE_CLOUD_PROJECT") or GOOGLE_CLOUD_PROJECT
    location = os.getenv("GEMINI_LOCATION", "") or GEMINI_LOCATION or "us-central1"

    if project:
        try:
            import vertexai
            from vertexai.generative_models import GenerativeModel

            vertexai.init(project=project, location=location)
            model = GenerativeModel(GEMINI_MODEL)

            logger.info(
                "Initialized Gemini model (Vertex AI): project=%s, location=%s, model=%s",
                project,
                location,
                GEMINI_MODEL,
            )
            return model

        except ImportError:
            logger.info("Vertex AI SDK not installed, trying google-generativeai")

    try:
        import google.generativeai as genai

        api_key = os.getenv("GOOGLE_API_KEY") or GOOGLE_API_KEY
        if not api_key:
            raise GeminiInitializationError(
                "Neither GOOGLE_CLOUD_PROJECT nor GOOGLE_API_KEY available. "
                "Set one of them to enable Gemini."
            )

        genai.configure(api_key=api_key)
        model = genai.GenerativeModel(GEMINI_MODEL)

        logger.info("Initialized Gemini model (google-generativeai): model=%s", GEMINI_MODEL)
        return model

    except ImportError as e:
        raise GeminiInitializationError(
            "No Gemini SDK available. Install google-cloud-aiplatform or google-generativeai."
        ) from e


def clear_model_cache() -> None:
    """
    Clear the cached model instance.

    Useful for testing or when reconfiguration is needed.
    """
    get_gemini_model.cache_clear()
    logger.info("Cleared Gemini model cache")
