"""FastAPI server for InboxQ"""

from __future__ import annotations

from typing import Any

from dotenv import load_dotenv
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from inboxq.api.middleware.rate_limit import RateLimitMiddleware
from inboxq.api.routes.actions import router as actions_router
from inboxq.api.routes.emails import router as emails_router
from inboxq.api.routes.health import router as health_router
from inboxq.config import APP_VERSION, CHROME_EXTENSION_ORIGIN, is_development
from inboxq.observability.logging import get_logger
from inboxq.observability.telemetry import counter, log_event
from inboxq.utils.redaction import redact

# Load environment variables from .env file
load_dotenv()

app = FastAPI(title="InboxQ API", version=APP_VERSION)

logger = get_logger(__name__)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Return field names only; the validation rules stay server-side."""
    logger.warning("Validation error on %s: %s", redact(str(request.url)), exc.errors())
    counter("api.validation_errors")

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "detail": "Invalid request format. Please check your request and try again.",
            "error_count": len(exc.errors()),
            "invalid_fields": [str(err["loc"][-1]) for err in exc.errors()],
        },
    )


ALLOWED_ORIGINS = [
    "https://mail.google.com",
    CHROME_EXTENSION_ORIGIN,
]

if is_development():
    ALLOWED_ORIGINS.extend(
        [
            "http://localhost:3000",
            "http://localhost:8000",
            "http://127.0.0.1:3000",
            "http://127.0.0.1:8000",
        ]
    )

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
)

app.add_middleware(RateLimitMiddleware)

app.include_router(health_router)
app.include_router(emails_router)
app.include_router(actions_router)

log_event("api.startup", service="inboxq", version=APP_VERSION)


@app.get("/")
def root() -> dict[str, Any]:
    return {
        "service": "InboxQ API",
        "version": APP_VERSION,
        "status": "running",
        "endpoints": {
            "health": "/health",
            "analyze": "/api/analyze",
            "emails": "/api/emails",
            "smart_reply": "/api/smart-reply",
            "summarize_thread": "/api/summarize-thread",
            "sync_meeting": "/api/sync-meeting",
        },
    }
