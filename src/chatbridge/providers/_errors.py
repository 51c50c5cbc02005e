"""Shared provider-side error helpers.

Providers map SDK exceptions into ``APIError`` with retry metadata attached,
so the resilience wrapper decides without knowing any SDK's error types.
"""

from __future__ import annotations

import asyncio
from typing import Any

from chatbridge.catalog import PROVIDERS
from chatbridge.errors import APIError, ChatBridgeError, RateLimitError
from chatbridge.retry import (
    extract_status_code,
    is_transient_error,
    parse_error_payload,
)


def normalize_error_message(exc: BaseException) -> tuple[str, int | None]:
    """Return a human-readable message and any status embedded as JSON.

    Some SDKs (notably Google's) surface the HTTP error body as a JSON string
    in the exception message, e.g. ``{"error": {"code": 503, "message": ...}}``.
    """
    message = str(exc)
    payload = parse_error_payload(message)
    if payload is None:
        return message, None

    error: Any = payload.get("error")
    source = error if isinstance(error, dict) else payload
    text = source.get("message")
    code = source.get("code")
    if isinstance(code, str) and code.isdigit():
        code = int(code)
    return (
        text if isinstance(text, str) and text else message,
        code if isinstance(code, int) and not isinstance(code, bool) else None,
    )


def _auth_hint(
    provider: str, status_code: int | None, cause_message: str
) -> str | None:
    """Generate a hint for auth errors where naming the env var is useful."""
    cause_lower = cause_message.lower()
    if status_code in {401, 403} or (
        status_code == 400 and ("api key" in cause_lower or "api_key" in cause_lower)
    ):
        info = PROVIDERS.get(provider)
        env_var = info.env_key if info else "the API key"
        return (
            f"Check credentials/permissions (try setting {env_var} or brain.api_key)."
        )
    return None


def wrap_provider_error(
    exc: BaseException,
    *,
    provider: str,
    phase: str,
    message: str | None = None,
    hint: str | None = None,
) -> ChatBridgeError:
    """Map provider SDK exceptions into APIError with stable retry metadata."""
    if isinstance(exc, asyncio.CancelledError):
        raise exc

    # Already wrapped: fill in missing context only.
    if isinstance(exc, APIError):
        if exc.provider is None:
            exc.provider = provider
        if exc.phase is None:
            exc.phase = phase
        if hint is not None and exc.hint is None:
            exc.hint = hint
        return exc
    if isinstance(exc, ChatBridgeError):
        return exc

    cause, embedded_status = normalize_error_message(exc)
    status_code = extract_status_code(exc)
    if status_code is None:
        status_code = embedded_status

    derived_hint = (
        hint if hint is not None else _auth_hint(provider, status_code, cause)
    )

    err_cls: type[APIError] = RateLimitError if status_code == 429 else APIError
    msg = message or f"{provider} {phase} failed"
    status_note = f" (status={status_code})" if isinstance(status_code, int) else ""
    return err_cls(
        f"{msg}{status_note}: {cause}" if cause else f"{msg}{status_note}",
        hint=derived_hint,
        retryable=is_transient_error(exc),
        status_code=status_code,
        provider=provider,
        phase=phase,
    )
