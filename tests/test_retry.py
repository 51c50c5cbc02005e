"""Resilience wrapper tests: classification, backoff and attempt accounting."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx
from hypothesis import given, settings
from hypothesis import strategies as st
import pytest

from chatbridge._http import NETWORK_ERROR_MARKERS
from chatbridge.cancellation import CancellationToken
from chatbridge.errors import (
    APIError,
    CancellationError,
    MalformedResponseError,
    RequestTimeoutError,
)
from chatbridge.retry import (
    RetryPolicy,
    call_with_resilience,
    compute_backoff_delay,
    extract_status_code,
    is_transient_error,
    should_retry,
)

pytestmark = pytest.mark.unit


class _StatusError(Exception):
    def __init__(self, status: int, message: str = "request failed") -> None:
        super().__init__(message)
        self.status_code = status


class _Response:
    def __init__(self, status_code: int) -> None:
        self.status_code = status_code


class _ResponseError(Exception):
    def __init__(self, status_code: int) -> None:
        super().__init__("http error")
        self.response = _Response(status_code)


# =============================================================================
# Transient-Error Classification
# =============================================================================


@pytest.mark.parametrize("status", [500, 502, 503, 504, 429, 529])
def test_retryable_status_codes(status: int) -> None:
    assert is_transient_error(_StatusError(status)) is True


@pytest.mark.parametrize("status", [400, 401, 403, 404, 422])
def test_permanent_status_codes(status: int) -> None:
    assert is_transient_error(_StatusError(status)) is False


@pytest.mark.parametrize("marker", NETWORK_ERROR_MARKERS)
def test_every_network_marker_is_retryable(marker: str) -> None:
    assert is_transient_error(RuntimeError(f"Request failed: {marker.upper()}"))


@pytest.mark.parametrize(
    "exc",
    [
        httpx.ConnectError("boom"),
        httpx.ReadTimeout("boom"),
        TimeoutError(),
    ],
)
def test_transport_exception_types_are_retryable(exc: BaseException) -> None:
    assert is_transient_error(exc) is True


def test_status_read_from_alternate_attributes() -> None:
    class _Err(Exception):
        pass

    for attr in ("status", "statusCode", "code"):
        err = _Err("failed")
        setattr(err, attr, 503)
        assert extract_status_code(err) == 503
        assert is_transient_error(err) is True


def test_status_read_from_response_object() -> None:
    assert extract_status_code(_ResponseError(502)) == 502
    assert is_transient_error(_ResponseError(502)) is True
    assert is_transient_error(_ResponseError(401)) is False


def test_status_read_from_json_message() -> None:
    overloaded = RuntimeError('{"error": {"code": 503, "message": "Overloaded"}}')
    flat = RuntimeError('{"code": 429, "message": "Slow down"}')
    invalid = RuntimeError('{"error": {"code": 400, "message": "Bad input"}}')

    assert extract_status_code(overloaded) == 503
    assert is_transient_error(overloaded) is True
    assert is_transient_error(flat) is True
    assert is_transient_error(invalid) is False


def test_classification_walks_the_cause_chain() -> None:
    try:
        try:
            raise _StatusError(503)
        except _StatusError as inner:
            raise RuntimeError("wrapper") from inner
    except RuntimeError as outer:
        assert is_transient_error(outer) is True


def test_unknown_errors_are_not_retryable() -> None:
    assert is_transient_error(ValueError("bad value")) is False


def test_websocket_mention_does_not_make_client_errors_retryable() -> None:
    err = _StatusError(400, "Invalid value: websocket transport not supported")
    assert is_transient_error(err) is False


@pytest.mark.parametrize("message", ["socket hang up", "Socket closed by peer"])
def test_socket_disconnects_are_retryable(message: str) -> None:
    assert is_transient_error(RuntimeError(message)) is True


def test_cancellation_is_never_retryable() -> None:
    assert is_transient_error(CancellationError("Operation cancelled")) is False
    assert is_transient_error(asyncio.CancelledError()) is False
    assert should_retry(CancellationError("connection reset")) is False


def test_should_retry_honors_explicit_flag() -> None:
    assert should_retry(APIError("x", retryable=False, status_code=503)) is False
    assert should_retry(APIError("socket closed", retryable=False)) is False
    assert should_retry(APIError("x", retryable=True, status_code=400)) is True
    assert should_retry(APIError("x", status_code=503)) is True


def test_malformed_responses_are_never_retried() -> None:
    assert should_retry(MalformedResponseError("bad JSON: timeout")) is False


# =============================================================================
# Backoff
# =============================================================================


@settings(max_examples=200)
@given(
    attempt=st.integers(min_value=1, max_value=12),
    base=st.floats(min_value=0.0, max_value=5.0, allow_subnormal=False),
    cap=st.floats(min_value=0.0, max_value=60.0, allow_subnormal=False),
)
def test_backoff_delay_is_bounded(attempt: int, base: float, cap: float) -> None:
    policy = RetryPolicy(max_attempts=3, base_delay_s=base, max_delay_s=cap)
    ceiling = min(cap, base * 2**attempt)

    delay = compute_backoff_delay(policy, attempt)

    assert delay >= 0.0
    if ceiling > 0:
        assert delay < ceiling
    else:
        assert delay == 0.0


def test_default_policy_ceilings() -> None:
    policy = RetryPolicy()
    for _ in range(100):
        assert 0.0 <= compute_backoff_delay(policy, 1) < 2.0
        assert 0.0 <= compute_backoff_delay(policy, 10) < 30.0


@pytest.mark.parametrize(
    "kwargs",
    [{"max_attempts": 0}, {"base_delay_s": -1.0}, {"max_delay_s": -0.5}],
)
def test_retry_policy_rejects_invalid_values(kwargs: dict[str, Any]) -> None:
    with pytest.raises(ValueError, match="RetryPolicy"):
        RetryPolicy(**kwargs)


# =============================================================================
# Attempt Accounting
# =============================================================================


def _flaky(failures: list[BaseException], result: Any = "ok"):
    """Return an attempt fn that raises *failures* in order, then returns."""
    calls: list[CancellationToken] = []

    async def fn(token: CancellationToken) -> Any:
        calls.append(token)
        if len(calls) <= len(failures):
            raise failures[len(calls) - 1]
        return result

    return fn, calls


def _overloaded() -> APIError:
    return APIError("overloaded", status_code=503, retryable=True)


@pytest.mark.asyncio
async def test_three_transient_failures_exhaust_attempts(
    fast_policy: RetryPolicy, caplog: pytest.LogCaptureFixture
) -> None:
    fn, calls = _flaky([_overloaded(), _overloaded(), _overloaded()])

    with (
        caplog.at_level(logging.WARNING, logger="chatbridge.retry"),
        pytest.raises(APIError, match="overloaded"),
    ):
        await call_with_resilience(fn, timeout_s=5, policy=fast_policy)

    assert len(calls) == 3
    assert "failed after 3 attempts" in caplog.text


@pytest.mark.asyncio
@pytest.mark.parametrize("failures", [1, 2])
async def test_success_after_transient_failures(
    fast_policy: RetryPolicy, failures: int
) -> None:
    fn, calls = _flaky([_overloaded() for _ in range(failures)], result="done")

    result = await call_with_resilience(fn, timeout_s=5, policy=fast_policy)

    assert result == "done"
    assert len(calls) == failures + 1


@pytest.mark.asyncio
async def test_non_retryable_failure_makes_exactly_one_attempt(
    fast_policy: RetryPolicy,
) -> None:
    fn, calls = _flaky([APIError("bad request", status_code=400, retryable=False)])

    with pytest.raises(APIError, match="bad request"):
        await call_with_resilience(fn, timeout_s=5, policy=fast_policy)

    assert len(calls) == 1


@pytest.mark.asyncio
async def test_plain_exceptions_are_classified(fast_policy: RetryPolicy) -> None:
    fn, calls = _flaky([ConnectionResetError("Connection reset by peer")])

    assert await call_with_resilience(fn, timeout_s=5, policy=fast_policy) == "ok"
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_custom_should_retry_is_used(fast_policy: RetryPolicy) -> None:
    fn, calls = _flaky([_overloaded()])

    with pytest.raises(APIError):
        await call_with_resilience(
            fn, timeout_s=5, policy=fast_policy, should_retry=lambda _e: False
        )

    assert len(calls) == 1


# =============================================================================
# Timeout and Cancellation
# =============================================================================


@pytest.mark.asyncio
async def test_pre_cancelled_signal_makes_zero_calls() -> None:
    fn, calls = _flaky([])
    signal = CancellationToken()
    signal.cancel()

    with pytest.raises(CancellationError, match="Operation cancelled"):
        await call_with_resilience(fn, timeout_s=5, signal=signal)

    assert calls == []


@pytest.mark.asyncio
async def test_pre_cancelled_signal_raises_its_own_reason() -> None:
    fn, calls = _flaky([])
    signal = CancellationToken()
    reason = CancellationError("user pressed stop")
    signal.cancel(reason)

    with pytest.raises(CancellationError) as exc_info:
        await call_with_resilience(fn, timeout_s=5, signal=signal)

    assert exc_info.value is reason
    assert calls == []


@pytest.mark.asyncio
async def test_signal_aborts_in_flight_attempt_without_retry(
    fast_policy: RetryPolicy,
) -> None:
    calls = 0
    started = asyncio.Event()

    async def slow(token: CancellationToken) -> str:
        nonlocal calls
        calls += 1
        started.set()
        await asyncio.sleep(10)
        return "too late"

    signal = CancellationToken()

    async def cancel_when_started() -> None:
        await started.wait()
        signal.cancel("stop")

    canceller = asyncio.create_task(cancel_when_started())
    with pytest.raises(CancellationError, match="stop"):
        await asyncio.wait_for(
            call_with_resilience(slow, timeout_s=5, signal=signal, policy=fast_policy),
            timeout=2,
        )
    await canceller

    assert calls == 1


@pytest.mark.asyncio
async def test_timeout_raises_request_timeout_and_is_retried(
    fast_policy: RetryPolicy,
) -> None:
    calls = 0

    async def hang(token: CancellationToken) -> str:
        nonlocal calls
        calls += 1
        await asyncio.sleep(10)
        return "never"

    with pytest.raises(RequestTimeoutError, match="timed out") as exc_info:
        await call_with_resilience(
            hang, timeout_s=0.01, policy=fast_policy, label="test call"
        )

    assert calls == 3
    assert "test call" in str(exc_info.value)


@pytest.mark.asyncio
async def test_timeout_then_success(fast_policy: RetryPolicy) -> None:
    calls = 0

    async def slow_then_fast(token: CancellationToken) -> str:
        nonlocal calls
        calls += 1
        if calls == 1:
            await asyncio.sleep(10)
        return "recovered"

    result = await call_with_resilience(
        slow_then_fast, timeout_s=0.01, policy=fast_policy
    )

    assert result == "recovered"
    assert calls == 2


@pytest.mark.asyncio
async def test_backoff_sleep_is_released_by_signal(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(
        "chatbridge.retry.compute_backoff_delay", lambda _policy, _attempt: 100.0
    )
    signal = CancellationToken()
    calls = 0

    async def fail_then_cancel(token: CancellationToken) -> str:
        nonlocal calls
        calls += 1
        asyncio.get_running_loop().call_later(0.01, signal.cancel, "stop")
        raise _overloaded()

    with pytest.raises(CancellationError, match="stop"):
        await asyncio.wait_for(
            call_with_resilience(fail_then_cancel, timeout_s=5, signal=signal),
            timeout=2,
        )

    assert calls == 1


@pytest.mark.asyncio
async def test_caller_task_cancellation_propagates(fast_policy: RetryPolicy) -> None:
    attempt_cancelled = asyncio.Event()

    async def hang(token: CancellationToken) -> str:
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            attempt_cancelled.set()
            raise
        return "never"

    task = asyncio.create_task(
        call_with_resilience(hang, timeout_s=5, policy=fast_policy)
    )
    await asyncio.sleep(0.01)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert attempt_cancelled.is_set()


@pytest.mark.asyncio
async def test_timer_and_link_are_torn_down_after_each_attempt(
    fast_policy: RetryPolicy,
) -> None:
    signal = CancellationToken()
    fn, tokens = _flaky([_overloaded()])

    await call_with_resilience(fn, timeout_s=0.02, signal=signal, policy=fast_policy)
    await asyncio.sleep(0.05)

    assert len(tokens) == 2
    # Neither timer fired after its attempt ended.
    assert not any(token.cancelled for token in tokens)
    # No link from the caller's signal survives.
    signal.cancel()
    assert not any(token.cancelled for token in tokens)
