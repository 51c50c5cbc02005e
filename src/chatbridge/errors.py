"""Exception hierarchy for chatbridge."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator


class ChatBridgeError(Exception):
    """Base exception for all chatbridge errors."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


class ConfigurationError(ChatBridgeError):
    """Configuration validation or provider selection failed."""


class InvalidRequestError(ChatBridgeError):
    """A canonical request cannot be built or expressed in a backend format."""


class MalformedResponseError(ChatBridgeError):
    """A backend response could not be parsed into the canonical shape.

    Never retried: resubmitting the request will not repair a response that
    was already produced.
    """


class CancellationError(ChatBridgeError):
    """The caller cancelled the operation."""


class APIError(ChatBridgeError):
    """A remote API call failed.

    Providers attach retry metadata so the resilience wrapper can make a
    bounded retry decision without re-inspecting SDK-specific error types.
    """

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        retryable: bool | None = None,
        status_code: int | None = None,
        provider: str | None = None,
        phase: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.retryable = retryable
        self.status_code = status_code
        self.provider = provider
        self.phase = phase


class RateLimitError(APIError):
    """Rate limit exceeded (HTTP 429)."""


class RequestTimeoutError(APIError):
    """An attempt exceeded its configured timeout."""

    def __init__(
        self,
        timeout_s: float,
        *,
        label: str = "request",
    ) -> None:
        super().__init__(
            f"{label} timed out after {timeout_s:g}s",
            hint="Increase brain.timeout if the backend is slow but healthy.",
            retryable=True,
        )
        self.timeout_s = timeout_s


def _walk_exception_chain(exc: BaseException) -> Iterator[BaseException]:
    """Yield *exc* and its ``__cause__``/``__context__`` chain without cycles."""
    seen: set[int] = set()
    stack: list[BaseException] = [exc]
    while stack:
        cur = stack.pop()
        if id(cur) in seen:
            continue
        seen.add(id(cur))
        yield cur

        cause = cur.__cause__
        if isinstance(cause, BaseException):
            stack.append(cause)
        context = cur.__context__
        if isinstance(context, BaseException):
            stack.append(context)
