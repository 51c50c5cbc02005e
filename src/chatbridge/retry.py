"""Bounded async retry with per-attempt timeout and explicit cancellation.

Design goals:
- One timer and one cancellation link per attempt, always torn down on exit
- Full-jitter exponential backoff
- A single retry decision for heterogeneous SDK errors
"""

from __future__ import annotations

import asyncio
from contextlib import suppress
from dataclasses import dataclass
import json
import logging
import random
from typing import TYPE_CHECKING, Any, TypeVar

import httpx

from chatbridge._http import NETWORK_ERROR_MARKERS, RETRYABLE_STATUS_CODES
from chatbridge.cancellation import CancellationToken
from chatbridge.errors import (
    APIError,
    CancellationError,
    MalformedResponseError,
    RequestTimeoutError,
    _walk_exception_chain,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

T = TypeVar("T")

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry policy with full-jitter exponential backoff."""

    max_attempts: int = 3
    base_delay_s: float = 1.0
    max_delay_s: float = 30.0

    def __post_init__(self) -> None:
        """Validate invariants to keep retry behavior predictable."""
        if self.max_attempts < 1:
            raise ValueError("RetryPolicy.max_attempts must be >= 1")
        if self.base_delay_s < 0:
            raise ValueError("RetryPolicy.base_delay_s must be >= 0")
        if self.max_delay_s < 0:
            raise ValueError("RetryPolicy.max_delay_s must be >= 0")


DEFAULT_RETRY_POLICY = RetryPolicy()


# =============================================================================
# Classification
# =============================================================================


def parse_error_payload(message: str) -> dict[str, Any] | None:
    """Parse a JSON object embedded as an error message, if there is one."""
    text = message.strip()
    if not text.startswith("{"):
        return None
    try:
        payload = json.loads(text)
    except ValueError:
        return None
    return payload if isinstance(payload, dict) else None


def _status_from_payload(payload: dict[str, Any]) -> int | None:
    error = payload.get("error")
    candidates = [error.get("code") if isinstance(error, dict) else None]
    candidates.append(payload.get("code"))
    for value in candidates:
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str) and value.isdigit():
            return int(value)
    return None


def extract_status_code(exc: BaseException) -> int | None:
    """Walk the exception chain to find an HTTP status code.

    Looks at ``status_code``/``status``/``statusCode``/``code`` attributes,
    then ``response.status_code``, then a JSON object carried as the message.
    """
    for e in _walk_exception_chain(exc):
        for attr in ("status_code", "status", "statusCode", "code"):
            value = getattr(e, attr, None)
            if (
                isinstance(value, int)
                and not isinstance(value, bool)
                and 100 <= value <= 599
            ):
                return value
        response = getattr(e, "response", None)
        value = getattr(response, "status_code", None)
        if isinstance(value, int) and 100 <= value <= 599:
            return value
        payload = parse_error_payload(str(e))
        if payload is not None:
            status = _status_from_payload(payload)
            if status is not None:
                return status
    return None


def is_transient_error(exc: BaseException) -> bool:
    """Return True when *exc* describes a failure worth retrying.

    Contract:
    - Cancellation is never transient.
    - Transport failures (by type or by a known message fragment) are.
    - Otherwise retry 5xx, 429 and 529; everything else is permanent.
    """
    if isinstance(exc, (asyncio.CancelledError, CancellationError)):
        return False

    for e in _walk_exception_chain(exc):
        if isinstance(e, (TimeoutError, httpx.TransportError)):
            return True
        message = str(e).lower()
        if any(marker in message for marker in NETWORK_ERROR_MARKERS):
            return True

    status = extract_status_code(exc)
    if status is None:
        return False
    return 500 <= status < 600 or status in RETRYABLE_STATUS_CODES


def should_retry(exc: BaseException) -> bool:
    """Return True when a failed attempt should be retried.

    An explicit ``APIError.retryable`` flag set by a provider wins over
    classification of the message and status code.
    """
    if isinstance(exc, (CancellationError, MalformedResponseError)):
        return False
    if isinstance(exc, APIError) and exc.retryable is not None:
        return exc.retryable
    return is_transient_error(exc)


# =============================================================================
# Backoff and attempts
# =============================================================================


def compute_backoff_delay(policy: RetryPolicy, attempt: int) -> float:
    """Full-jitter delay in seconds after the failed *attempt* (1-indexed).

    Uniform in ``[0, min(max_delay_s, base_delay_s * 2**attempt))``.
    """
    ceiling = min(policy.max_delay_s, policy.base_delay_s * (2**attempt))
    if ceiling <= 0:
        return 0.0
    return random.random() * ceiling  # noqa: S311


async def _sleep(delay: float, signal: CancellationToken | None) -> None:
    """Sleep for *delay* seconds, waking early if *signal* fires."""
    if signal is None:
        await asyncio.sleep(delay)
        return
    with suppress(TimeoutError):
        await asyncio.wait_for(signal.wait(), timeout=delay)
    signal.raise_if_cancelled()


async def _run_attempt(
    fn: Callable[[CancellationToken], Awaitable[T]],
    token: CancellationToken,
) -> T:
    """Run one attempt as a task that is cancelled when *token* fires."""
    task = asyncio.ensure_future(fn(token))
    remove = token.add_callback(lambda _reason: task.cancel())
    try:
        return await task
    except asyncio.CancelledError:
        if token.cancelled and task.cancelled():
            # The token fired, not the caller's task: surface its reason.
            assert token.reason is not None
            raise token.reason from None
        raise
    finally:
        remove()


async def call_with_resilience(
    fn: Callable[[CancellationToken], Awaitable[T]],
    *,
    timeout_s: float,
    signal: CancellationToken | None = None,
    policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    should_retry: Callable[[BaseException], bool] = should_retry,
    label: str = "request",
) -> T:
    """Run ``fn(token)`` with a per-attempt timeout and bounded retries.

    Each attempt gets a fresh token that fires on timeout (with a
    ``RequestTimeoutError``) or when *signal* fires (with the signal's
    reason). A signal that is already cancelled fails before any attempt.
    """
    loop = asyncio.get_running_loop()
    last_exc: BaseException | None = None

    for attempt in range(1, policy.max_attempts + 1):
        if signal is not None:
            signal.raise_if_cancelled()

        token = CancellationToken()
        timer = loop.call_later(
            timeout_s, token.cancel, RequestTimeoutError(timeout_s, label=label)
        )
        unlink = signal.link(token) if signal is not None else None
        try:
            return await _run_attempt(fn, token)
        except Exception as exc:
            last_exc = exc
            if signal is not None and signal.cancelled:
                if exc is signal.reason:
                    raise
                assert signal.reason is not None
                raise signal.reason from exc
            if not should_retry(exc):
                raise
            if attempt >= policy.max_attempts:
                logger.warning(
                    "%s failed after %d attempts: %s", label, attempt, exc
                )
                raise
            delay = compute_backoff_delay(policy, attempt)
            logger.debug(
                "%s attempt %d/%d failed (%s); retrying in %.2fs",
                label,
                attempt,
                policy.max_attempts,
                exc,
                delay,
            )
        finally:
            timer.cancel()
            if unlink is not None:
                unlink()

        await _sleep(delay, signal)

    # Defensive: loop should always return or raise.
    if last_exc is None:  # pragma: no cover
        raise RuntimeError("call_with_resilience exhausted without an exception")
    raise last_exc  # pragma: no cover
