import asyncio
import json

import pytest

from deskpilot.exceptions import RequestAbortedError
from deskpilot.llm.errors import (
    GENERIC,
    INVALID_KEY,
    MODEL_NOT_FOUND,
    QUOTA_EXCEEDED,
    RATE_LIMITED,
    TOOL_CALL_MALFORMED,
    ApiFailure,
    RetryPolicy,
    classify_failure,
    with_retry,
)


class SleepRecorder:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def _body(code: str = "", message: str = "", **extra) -> str:
    return json.dumps({"error": {"code": code, "message": message, **extra}})


@pytest.mark.parametrize(
    ("status", "body", "kind", "retryable"),
    [
        (401, _body("invalid_api_key", "Incorrect API key"), INVALID_KEY, False),
        (429, _body("rate_limit_exceeded"), RATE_LIMITED, True),
        (429, _body("insufficient_quota"), RATE_LIMITED, True),
        (403, _body("insufficient_quota"), QUOTA_EXCEEDED, False),
        (404, _body("model_not_found"), MODEL_NOT_FOUND, False),
        (400, _body("tool_use_failed", "Failed to call a function"), TOOL_CALL_MALFORMED, False),
        (503, "<html>Service Unavailable</html>", GENERIC, True),
        (529, json.dumps({"error": {"type": "overloaded_error", "message": "Overloaded"}}), GENERIC, True),
    ],
)
def test_classify_failure(status, body, kind, retryable):
    failure = classify_failure(status, body)

    assert failure.kind == kind
    assert failure.retryable is retryable
    assert failure.status_code == status


def test_classify_failure_never_exposes_raw_body_for_known_kinds():
    failure = classify_failure(401, _body("invalid_api_key", "sk-123 is wrong"))

    assert "sk-123" not in failure.message
    assert not failure.message.startswith("{")


def test_classify_failure_accepts_string_error_field():
    failure = classify_failure(400, json.dumps({"error": "model 'x' not loaded"}))

    assert failure.kind == GENERIC
    assert failure.message == "model 'x' not loaded"


@pytest.mark.asyncio
async def test_with_retry_backs_off_on_rate_limits_then_succeeds():
    sleep = SleepRecorder()
    outcomes = [
        classify_failure(429, _body("rate_limit_exceeded")),
        classify_failure(429, _body("rate_limit_exceeded")),
        "ok",
    ]
    calls = 0

    async def attempt():
        nonlocal calls
        calls += 1
        return outcomes.pop(0)

    result = await with_retry(attempt, RetryPolicy(sleep=sleep))

    assert result == "ok"
    assert calls == 3
    assert sleep.delays == [5.0, 10.0]


@pytest.mark.asyncio
async def test_with_retry_uses_short_delays_for_server_errors():
    sleep = SleepRecorder()

    async def attempt():
        return classify_failure(500, "")

    result = await with_retry(attempt, RetryPolicy(sleep=sleep))

    assert isinstance(result, ApiFailure)
    assert sleep.delays == [2.0, 4.0]


@pytest.mark.asyncio
async def test_with_retry_gives_up_immediately_on_non_retryable_failure():
    sleep = SleepRecorder()
    calls = 0

    async def attempt():
        nonlocal calls
        calls += 1
        return classify_failure(401, _body("invalid_api_key"))

    result = await with_retry(attempt, RetryPolicy(sleep=sleep))

    assert isinstance(result, ApiFailure)
    assert result.kind == INVALID_KEY
    assert calls == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_with_retry_raises_when_aborted():
    abort = asyncio.Event()
    abort.set()

    async def attempt():
        return "never"

    with pytest.raises(RequestAbortedError):
        await with_retry(attempt, RetryPolicy(sleep=SleepRecorder()), abort_event=abort)
