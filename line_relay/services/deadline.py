"""Deadline-bounded execution of outbound HTTP calls.

Every collaborator call (LINE reply/push, OpenAI, vendor forward) goes through
`execute`, which races the call against a timeout and folds whatever happens
into a `CallOutcome`. Retries are left to callers.
"""

import asyncio
import json
import time
from typing import Awaitable, Callable

import httpx

from line_relay.logging_config import get_logger
from line_relay.services.outcome import CallOutcome, RateLimitKind

logger = get_logger("deadline")

RATE_LIMIT_STATUS = 429
QUOTA_EXHAUSTED_CODES = {"insufficient_quota"}

HttpCall = Callable[[], Awaitable[httpx.Response]]


def classify_rate_limit(body: str) -> RateLimitKind:
    """Read the rate-limit sub-kind from a 429 body, if it is parseable."""
    try:
        data = json.loads(body) if body else None
    except ValueError:
        return RateLimitKind.GENERIC
    if not isinstance(data, dict):
        return RateLimitKind.GENERIC
    error = data.get("error")
    if not isinstance(error, dict):
        return RateLimitKind.GENERIC
    if error.get("code") in QUOTA_EXHAUSTED_CODES or error.get("type") in QUOTA_EXHAUSTED_CODES:
        return RateLimitKind.QUOTA_EXHAUSTED
    return RateLimitKind.GENERIC


def outcome_from_response(response: httpx.Response) -> CallOutcome:
    body = response.text or ""
    status = response.status_code
    if status == RATE_LIMIT_STATUS:
        return CallOutcome.rate_limited(classify_rate_limit(body), body)
    if not 200 <= status < 300:
        return CallOutcome.http_error(status, body)
    return CallOutcome.success(body, status)


def _describe(exc: Exception) -> str:
    name = type(exc).__name__
    return f"{name}: {exc}" if str(exc) else name


async def execute(call: HttpCall, timeout_ms: int, *, label: str = "call") -> CallOutcome:
    """Run `call` under a `timeout_ms` deadline and classify the result."""
    if timeout_ms <= 0:
        raise ValueError(f"timeout_ms must be positive, got {timeout_ms}")

    started = time.monotonic()
    try:
        response = await asyncio.wait_for(call(), timeout=timeout_ms / 1000)
    except (asyncio.TimeoutError, httpx.TimeoutException):
        outcome = CallOutcome.timeout()
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        # Transport, decoding, redirect and URL failures all count as the call not landing.
        outcome = CallOutcome.network_error(_describe(exc))
    else:
        outcome = outcome_from_response(response)

    logger.debug(
        "Timing",
        extra={
            "context": {
                "stage": label,
                "elapsed_ms": round((time.monotonic() - started) * 1000, 2),
                "timeout_ms": timeout_ms,
                **outcome.log_context(),
            }
        },
    )
    return outcome
