"""Anthropic Messages API provider."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from chatbridge.errors import APIError
from chatbridge.formats import anthropic as fmt
from chatbridge.providers._errors import wrap_provider_error
from chatbridge.providers.base import send_with_resilience
from chatbridge.retry import DEFAULT_RETRY_POLICY, RetryPolicy

if TYPE_CHECKING:
    from chatbridge.cancellation import CancellationToken
    from chatbridge.config import ProviderConfig
    from chatbridge.models import ChatRequest, ChatResult

logger = logging.getLogger(__name__)

_PING_MAX_TOKENS = 16


class AnthropicProvider:
    """Anthropic Messages API provider."""

    def __init__(
        self,
        config: ProviderConfig,
        *,
        retry_policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    ) -> None:
        """Initialize with an immutable provider config."""
        self.config = config
        self.retry_policy = retry_policy
        self._client: Any = None

    @property
    def name(self) -> str:
        return self.config.provider

    def _get_client(self) -> Any:
        """Lazily initialize and return the async Anthropic client."""
        if self._client is None:
            try:
                from anthropic import AsyncAnthropic
            except ImportError as e:
                raise APIError(
                    "anthropic package not installed",
                    hint="pip install anthropic",
                ) from e
            # Retries are owned by the resilience wrapper.
            self._client = AsyncAnthropic(
                api_key=self.config.api_key,
                base_url=self.config.base_url,
                timeout=self.config.timeout_s,
                max_retries=0,
            )
            logger.debug("Created Anthropic client for model %s", self.config.model)
        return self._client

    async def chat(
        self,
        request: ChatRequest,
        signal: CancellationToken | None = None,
    ) -> ChatResult:
        """Send *request* through the Messages API."""
        client = self._get_client()
        params = fmt.build_params(
            request,
            model=self.config.model,
            max_tokens=self.config.max_tokens,
            temperature=self.config.temperature,
        )
        response = await send_with_resilience(
            lambda: client.messages.create(**params),
            provider=self.name,
            config=self.config,
            signal=signal,
            policy=self.retry_policy,
            message="Anthropic chat failed",
        )
        return fmt.parse_response(response)

    async def ping(self) -> None:
        """Send a minimal request; raise if the backend rejects it."""
        client = self._get_client()
        try:
            await client.messages.create(
                model=self.config.model,
                max_tokens=_PING_MAX_TOKENS,
                temperature=0,
                messages=[{"role": "user", "content": "ping"}],
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise wrap_provider_error(
                e,
                provider=self.name,
                phase="ping",
                message="Anthropic ping failed",
            ) from e

    async def aclose(self) -> None:
        """Close underlying async client resources."""
        client = self._client
        if client is None:
            return
        self._client = None
        await client.close()
