"""Provider protocol: the uniform chat interface every backend implements."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from chatbridge.errors import APIError, ChatBridgeError
from chatbridge.providers._errors import wrap_provider_error
from chatbridge.retry import DEFAULT_RETRY_POLICY, RetryPolicy, call_with_resilience

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from chatbridge.cancellation import CancellationToken
    from chatbridge.config import ProviderConfig
    from chatbridge.models import ChatRequest, ChatResult


@runtime_checkable
class Provider(Protocol):
    """Minimal provider protocol: chat, ping, aclose."""

    config: ProviderConfig

    @property
    def name(self) -> str:
        """The backend identifier this adapter was created for."""
        ...

    async def chat(
        self,
        request: ChatRequest,
        signal: CancellationToken | None = None,
    ) -> ChatResult:
        """Send *request* and return the normalized result.

        Transient failures are retried; everything else propagates.
        """
        ...

    async def ping(self) -> None:
        """Issue one minimal request. Raises on any failure, never retries."""
        ...

    async def aclose(self) -> None:
        """Close underlying client resources."""
        ...


async def send_with_resilience(
    send: Callable[[], Awaitable[Any]],
    *,
    provider: str,
    config: ProviderConfig,
    signal: CancellationToken | None,
    policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    message: str | None = None,
) -> Any:
    """Run one SDK call under the resilience wrapper.

    SDK errors are wrapped inside each attempt so the retry decision sees
    the provider's status code and retry flag.
    """

    async def attempt(token: CancellationToken) -> Any:
        token.raise_if_cancelled()
        try:
            return await send()
        except (asyncio.CancelledError, ChatBridgeError):
            raise
        except Exception as e:
            raise wrap_provider_error(
                e, provider=provider, phase="chat", message=message
            ) from e

    try:
        return await call_with_resilience(
            attempt,
            timeout_s=config.timeout_s,
            signal=signal,
            policy=policy,
            label=f"{provider} chat",
        )
    except APIError as e:
        # Timeouts are raised by the wrapper itself and lack provider context.
        raise wrap_provider_error(e, provider=provider, phase="chat")
