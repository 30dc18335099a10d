"""Centralized configuration for the InboxQ backend.

Re-exports everything from inboxq.infrastructure.settings, then adds typed
constants for the annotation pipeline, LLM calls, rate limiting and the API.
Environment variable overrides use safe defaults so the app starts without
extra env configuration.
"""

from __future__ import annotations

import os

from inboxq.infrastructure.settings import *  # noqa: F401, F403

# --- App ---
APP_VERSION: str = "0.1.0"

# --- Annotation Pipeline ---
PIPELINE_BATCH_SIZE: int = int(os.getenv("INBOXQ_BATCH_SIZE", "5"))
PIPELINE_MAX_ATTEMPTS: int = int(os.getenv("INBOXQ_MAX_ATTEMPTS", "3"))
PIPELINE_RETRY_DELAY_MS: int = int(os.getenv("INBOXQ_RETRY_DELAY_MS", "2000"))
PIPELINE_RETRY_BACKOFF: str = os.getenv("INBOXQ_RETRY_BACKOFF", "exponential")
PIPELINE_INTER_BATCH_DELAY_MS: int = int(os.getenv("INBOXQ_INTER_BATCH_DELAY_MS", "3000"))
PIPELINE_DEFAULT_CATEGORY: str = os.getenv("INBOXQ_DEFAULT_CATEGORY", "medium priority")
PIPELINE_CATEGORIES: tuple[str, ...] = (
    "work priority",
    "medium priority",
    "low priority",
    "promotions",
    "spam",
)
PIPELINE_CONTENT_MAX_CHARS: int = 3000
PIPELINE_SUMMARY_MAX_CHARS: int = 300
PIPELINE_FALLBACK_KEYWORD_HINTS: bool = (
    os.getenv("INBOXQ_FALLBACK_KEYWORD_HINTS", "false").lower() == "true"
)

# --- LLM ---
LLM_TIMEOUT_SECONDS: int = int(os.getenv("INBOXQ_LLM_TIMEOUT", "30"))

# --- Follow-on actions ---
THREAD_MESSAGE_MAX_CHARS: int = 1000
THREAD_MAX_MESSAGES: int = 50

# --- Rate Limiting ---
RATE_LIMIT_RPM: int = 60
RATE_LIMIT_RPH: int = 1000
RATE_LIMIT_EMAILS_PM: int = 100
RATE_LIMIT_EMAILS_PH: int = 2000
RATE_LIMIT_MAX_IPS: int = 10000

# --- API ---
API_BATCH_SIZE_MAX: int = 100

# --- Extension ---
CHROME_EXTENSION_ID: str = os.getenv(
    "INBOXQ_CHROME_EXTENSION_ID", "aagmmkcefeaaffcnfgdfhnfokhnajhbb"
)
CHROME_EXTENSION_ORIGIN: str = f"chrome-extension://{CHROME_EXTENSION_ID}"
