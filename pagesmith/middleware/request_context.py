"""Per-request bookkeeping for the webhook service.

Each request gets an id (GitHub's delivery id when there is one), a timing
header and one access-log line. Webhook traffic is throttled per hook
rather than per address: every delivery arrives from GitHub's shared ranges,
so an address key would make one noisy repository starve all the others.

Generation runs scheduled from a request inherit its context, so their logs
carry the same id as the delivery that caused them.
"""

import logging
import time
import uuid
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from ..core.config import settings
from ..core.logging_config import request_id_var
from ..exceptions import ErrorCode

logger = logging.getLogger(__name__)

# key -> (tokens left, time of last update)
_rate_buckets: dict[str, tuple[float, float]] = {}

_SWEEP_INTERVAL = 100
_IDLE_EXPIRY = 120.0
_calls_since_sweep = 0

_UNTHROTTLED = frozenset({"/", "/health", "/docs", "/redoc", "/openapi.json"})


def _sweep(bucket: dict[str, tuple[float, float]], now: float) -> None:
    """Forget keys that have been quiet long enough to be full again."""
    global _calls_since_sweep
    _calls_since_sweep += 1
    if _calls_since_sweep < _SWEEP_INTERVAL:
        return
    _calls_since_sweep = 0
    for key in [k for k, (_, seen) in bucket.items() if now - seen > _IDLE_EXPIRY]:
        bucket.pop(key, None)


def check_rate_limit(
    bucket: dict[str, tuple[float, float]],
    key: str,
    max_per_minute: int,
    now: Optional[float] = None,
) -> tuple[bool, float]:
    """Spend one token from *key*'s bucket.

    Buckets hold at most ``max_per_minute`` tokens and refill continuously.
    A limit of zero or less turns throttling off.

    Returns:
        ``(allowed, retry_after)`` where *retry_after* is how many seconds
        until a token is available, or 0.0 when the request was allowed.
    """
    if max_per_minute <= 0:
        return True, 0.0
    now = time.monotonic() if now is None else now
    _sweep(bucket, now)

    per_second = max_per_minute / 60.0
    tokens, seen = bucket.get(key, (float(max_per_minute), now))
    tokens = min(float(max_per_minute), tokens + (now - seen) * per_second)

    allowed = tokens >= 1.0
    bucket[key] = (tokens - 1.0 if allowed else tokens, now)
    return allowed, 0.0 if allowed else (1.0 - tokens) / per_second


def _throttle_key(request: Request) -> str:
    """Hook id for GitHub deliveries, otherwise the caller's address."""
    hook_id = request.headers.get("x-github-hook-id")
    if hook_id:
        return f"hook:{hook_id}"
    forwarded = request.headers.get("x-forwarded-for", "")
    address = forwarded.split(",")[0].strip() or (request.client.host if request.client else "")
    return f"addr:{address or 'unknown'}"


def _request_id(request: Request) -> str:
    headers = request.headers
    return headers.get("x-request-id") or headers.get("x-github-delivery") or uuid.uuid4().hex[:16]


def _too_many_requests(rid: str, retry_after: float) -> JSONResponse:
    return JSONResponse(
        status_code=429,
        content={
            "error": ErrorCode.RATE_LIMITED.value,
            "message": "Too many webhook deliveries, slow down",
            "details": {"retry_after": round(retry_after, 1)},
        },
        headers={"Retry-After": str(int(retry_after) + 1), "X-Request-ID": rid},
    )


class RequestContextMiddleware(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        rid = _request_id(request)
        request_id_var.set(rid)
        path = request.url.path
        event = request.headers.get("x-github-event")

        if path not in _UNTHROTTLED:
            key = _throttle_key(request)
            allowed, retry_after = check_rate_limit(_rate_buckets, key, settings.rate_limit_per_minute)
            if not allowed:
                logger.warning(
                    "Delivery throttled",
                    extra={"throttle_key": key, "github_event": event, "retry_after": round(retry_after, 1)},
                )
                return _too_many_requests(rid, retry_after)

        started = time.monotonic()
        response = await call_next(request)
        elapsed_ms = round((time.monotonic() - started) * 1000, 1)
        response.headers["X-Request-ID"] = rid
        response.headers["X-Response-Time"] = f"{elapsed_ms}ms"

        extra = {"method": request.method, "path": path, "status_code": response.status_code, "duration_ms": elapsed_ms}
        if event:
            extra["github_event"] = event
        logger.info("%s %s %s", request.method, path, response.status_code, extra=extra)
        return response
