"""Failure classification and retry for provider calls.

A failed attempt is returned as an ``ApiFailure`` value rather than raised, so
the retry wrapper can decide on the ``retryable`` flag and status code without
catching and inspecting exceptions.
"""

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, TypeVar

from deskpilot.exceptions import RequestAbortedError
from deskpilot.logging import get_logger

log = get_logger(__name__)

T = TypeVar("T")

INVALID_KEY = "invalid_key"
RATE_LIMITED = "rate_limited"
QUOTA_EXCEEDED = "quota_exceeded"
MODEL_NOT_FOUND = "model_not_found"
CONTEXT_TOO_LONG = "context_too_long"
TOOL_CALL_MALFORMED = "tool_call_malformed"
NETWORK = "network"
EMPTY_RESPONSE = "empty_response"
GENERIC = "generic"

_QUOTA_CODES = {"insufficient_quota", "billing_hard_limit_reached"}
_OVERLOADED_CODES = {"overloaded", "overloaded_error"}


@dataclass(frozen=True)
class ApiFailure:
    """A classified, user-safe description of one failed provider attempt."""

    kind: str
    message: str
    status_code: int | None = None
    retryable: bool = False
    body: dict[str, Any] = field(default_factory=dict)


def _parse_body(raw_body: str) -> dict[str, Any]:
    try:
        parsed = json.loads(raw_body)
    except (TypeError, ValueError):
        return {}
    return parsed if isinstance(parsed, dict) else {}


def _error_fields(body: dict[str, Any]) -> tuple[str, str]:
    """Return (code, message) from an ``error`` object or string."""
    error = body.get("error")
    if isinstance(error, dict):
        code = str(error.get("code") or error.get("type") or "")
        message = str(error.get("message") or error.get("msg") or "")
        return code, message
    if isinstance(error, str):
        return "", error
    return "", ""


def classify_failure(status_code: int, raw_body: str) -> ApiFailure:
    """Classify an HTTP error response from any provider."""
    body = _parse_body(raw_body)
    code, message = _error_fields(body)
    retryable = status_code == 429 or status_code >= 500 or code in _OVERLOADED_CODES

    if code == "tool_use_failed" or "Failed to call a function" in message:
        kind = TOOL_CALL_MALFORMED
        text = "The AI model had trouble calling a tool. Retrying with adjusted parameters..."
    elif code == "rate_limit_exceeded" or status_code == 429:
        kind = RATE_LIMITED
        text = "Rate limited by the AI provider. Waiting before retrying..."
    elif code in _QUOTA_CODES:
        kind = QUOTA_EXCEEDED
        text = "API quota exceeded. Please check your API key billing."
    elif code == "invalid_api_key" or status_code == 401:
        kind = INVALID_KEY
        text = "Invalid API key. Please check your AI settings."
    elif code == "model_not_found" or status_code == 404:
        kind = MODEL_NOT_FOUND
        text = "Model not found. Please check your AI model setting."
    elif code == "context_length_exceeded":
        kind = CONTEXT_TOO_LONG
        text = "The conversation is too long for this model. Try starting a new conversation."
    else:
        kind = GENERIC
        text = message or f"Request failed (HTTP {status_code}). Please try again."

    return ApiFailure(
        kind=kind,
        message=text,
        status_code=status_code,
        retryable=retryable,
        body=body,
    )


@dataclass
class RetryPolicy:
    """Bounded backoff for retryable provider failures."""

    max_retries: int = 2
    base_delay: float = 2.0
    rate_limit_delay: float = 5.0
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    def delay_for(self, failure: ApiFailure, attempt: int) -> float:
        """Delay before retry number ``attempt + 1`` (0-indexed attempt)."""
        if failure.status_code == 429:
            return self.rate_limit_delay * (attempt + 1)
        return self.base_delay * (attempt + 1)


async def with_retry(
    attempt_fn: Callable[[], Awaitable[T | ApiFailure]],
    policy: RetryPolicy | None = None,
    abort_event: asyncio.Event | None = None,
) -> T | ApiFailure:
    """Run ``attempt_fn`` until it succeeds, fails permanently or runs out of retries."""
    policy = policy or RetryPolicy()
    outcome: T | ApiFailure
    attempt = 0
    while True:
        if abort_event is not None and abort_event.is_set():
            raise RequestAbortedError()
        outcome = await attempt_fn()
        if not isinstance(outcome, ApiFailure):
            return outcome
        if attempt >= policy.max_retries or not outcome.retryable:
            return outcome
        delay = policy.delay_for(outcome, attempt)
        log.warning(
            "Retrying provider call",
            kind=outcome.kind,
            status=outcome.status_code,
            attempt=attempt + 1,
            delay=delay,
        )
        await policy.sleep(delay)
        attempt += 1
