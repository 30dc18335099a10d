"""Per-IP rate limiting for the InboxQ API.

Two budgets apply: plain request counts on every route, and an email budget
on POST /api/analyze so one request carrying a hundred emails cannot burn a
hundred requests' worth of Gemini quota under a single count.

Buckets live in cachetools TTLCaches, so idle IPs age out without a sweep.
"""

from __future__ import annotations

import ipaddress
import json
import time
from collections.abc import Callable
from typing import Any

from cachetools import TTLCache
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from inboxq.config import (
    CHROME_EXTENSION_ORIGIN,
    RATE_LIMIT_EMAILS_PH,
    RATE_LIMIT_EMAILS_PM,
    RATE_LIMIT_MAX_IPS,
    RATE_LIMIT_RPH,
    RATE_LIMIT_RPM,
    is_development,
)
from inboxq.observability.telemetry import counter, log_event

ANALYZE_PATH = "/api/analyze"
UNLIMITED_PATHS = frozenset({"/", "/health"})
WINDOWS = (("minute", 60), ("hour", 3600))


def _is_valid_ip(ip_str: str) -> bool:
    try:
        ipaddress.ip_address(ip_str)
        return True
    except ValueError:
        return False


def count_emails(body: bytes) -> int:
    """Number of entries in the ``emails`` list of an analyze payload, 0 if unreadable."""
    try:
        data = json.loads(body)
    except ValueError:
        return 0
    if not isinstance(data, dict):
        return 0
    emails = data.get("emails")
    return len(emails) if isinstance(emails, list) else 0


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Sliding-window limits per client IP.

    Single-process only; a multi-instance deployment needs a shared store.
    """

    def __init__(
        self,
        app: Any,
        requests_per_minute: int = RATE_LIMIT_RPM,
        requests_per_hour: int = RATE_LIMIT_RPH,
        emails_per_minute: int = RATE_LIMIT_EMAILS_PM,
        emails_per_hour: int = RATE_LIMIT_EMAILS_PH,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(app)
        self.request_limits = {"minute": requests_per_minute, "hour": requests_per_hour}
        self.email_limits = {"minute": emails_per_minute, "hour": emails_per_hour}
        self._clock = clock

        # {window: {ip: [(timestamp, weight), ...]}}
        self.request_buckets: dict[str, TTLCache[str, list[tuple[float, int]]]] = {
            window: TTLCache(maxsize=RATE_LIMIT_MAX_IPS, ttl=seconds * 2)
            for window, seconds in WINDOWS
        }
        self.email_buckets: dict[str, TTLCache[str, list[tuple[float, int]]]] = {
            window: TTLCache(maxsize=RATE_LIMIT_MAX_IPS, ttl=seconds * 2)
            for window, seconds in WINDOWS
        }

        # Cloud Run sets this header; X-Forwarded-For is only trusted alongside it
        self._trusted_proxy_header = "X-Cloud-Trace-Context"

    def _get_client_ip(self, request: Request) -> str:
        trusted = self._trusted_proxy_header in request.headers or is_development()
        if trusted:
            forwarded = request.headers.get("X-Forwarded-For")
            if forwarded:
                ip = forwarded.split(",")[0].strip()
                if _is_valid_ip(ip):
                    return ip
        return request.client.host if request.client else "unknown"

    def _usage(
        self,
        buckets: dict[str, TTLCache[str, list[tuple[float, int]]]],
        client_ip: str,
        now: float,
    ) -> dict[str, int]:
        """Prune each window for ``client_ip`` and return the weight still inside it."""
        usage = {}
        for window, seconds in WINDOWS:
            recent = [
                entry for entry in buckets[window].get(client_ip, []) if now - entry[0] < seconds
            ]
            buckets[window][client_ip] = recent
            usage[window] = sum(weight for _, weight in recent)
        return usage

    @staticmethod
    def _record(
        buckets: dict[str, TTLCache[str, list[tuple[float, int]]]],
        client_ip: str,
        now: float,
        weight: int,
    ) -> None:
        for window, _ in WINDOWS:
            bucket = buckets[window].get(client_ip, [])
            bucket.append((now, weight))
            buckets[window][client_ip] = bucket

    @staticmethod
    def _cors_headers(request: Request) -> dict[str, str]:
        # 429s are returned before CORSMiddleware sees the response
        origin = request.headers.get("origin", "")
        if origin in ("https://mail.google.com", CHROME_EXTENSION_ORIGIN):
            return {"Access-Control-Allow-Origin": origin, "Access-Control-Allow-Credentials": "true"}
        return {}

    def _reject(self, request: Request, window: str, detail: str) -> JSONResponse:
        retry_after = dict(WINDOWS)[window]
        counter("api.rate_limit.rejected")
        return JSONResponse(
            status_code=429,
            content={"detail": detail, "retry_after": retry_after},
            headers={"Retry-After": str(retry_after), **self._cors_headers(request)},
        )

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Check both budgets, then forward the request."""
        if request.url.path in UNLIMITED_PATHS:
            return await call_next(request)

        client_ip = self._get_client_ip(request)
        now = self._clock()

        request_usage = self._usage(self.request_buckets, client_ip, now)
        for window, _ in WINDOWS:
            limit = self.request_limits[window]
            if request_usage[window] >= limit:
                log_event(
                    "api.rate_limit.request_exceeded",
                    ip=client_ip,
                    limit=window,
                    count=request_usage[window],
                )
                return self._reject(
                    request,
                    window,
                    f"Rate limit exceeded. Maximum {limit} requests per {window}.",
                )

        email_count = 0
        is_analyze = request.url.path == ANALYZE_PATH and request.method == "POST"
        if is_analyze:
            # Starlette caches the body, so the route can read it again
            email_count = count_emails(await request.body())

        if email_count > 0:
            email_usage = self._usage(self.email_buckets, client_ip, now)
            for window, _ in WINDOWS:
                limit = self.email_limits[window]
                if email_usage[window] + email_count > limit:
                    log_event(
                        "api.rate_limit.email_exceeded",
                        ip=client_ip,
                        limit=window,
                        current=email_usage[window],
                        requested=email_count,
                        max=limit,
                    )
                    return self._reject(
                        request,
                        window,
                        f"Email rate limit exceeded. Maximum {limit} emails per {window}. "
                        f"Current: {email_usage[window]}, Requested: {email_count}",
                    )
            self._record(self.email_buckets, client_ip, now, email_count)

        self._record(self.request_buckets, client_ip, now, 1)

        response = await call_next(request)

        for window, _ in WINDOWS:
            limit = self.request_limits[window]
            label = window.capitalize()
            response.headers[f"X-RateLimit-Limit-{label}"] = str(limit)
            response.headers[f"X-RateLimit-Remaining-{label}"] = str(
                max(0, limit - request_usage[window] - 1)
            )
        if is_analyze:
            email_usage = self._usage(self.email_buckets, client_ip, now)
            for window, _ in WINDOWS:
                limit = self.email_limits[window]
                label = window.capitalize()
                response.headers[f"X-RateLimit-Emails-{label}"] = str(limit)
                response.headers[f"X-RateLimit-Emails-Remaining-{label}"] = str(
                    max(0, limit - email_usage[window])
                )

        return response
