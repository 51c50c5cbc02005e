"""OpenAI-compatible Chat Completions provider.

One adapter serves every backend that speaks the OpenAI dialect; the
endpoint comes from ``ProviderConfig.base_url``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from chatbridge.catalog import is_reasoning_model
from chatbridge.errors import APIError
from chatbridge.formats import openai as fmt
from chatbridge.providers._errors import wrap_provider_error
from chatbridge.providers.base import send_with_resilience
from chatbridge.retry import DEFAULT_RETRY_POLICY, RetryPolicy

if TYPE_CHECKING:
    from chatbridge.cancellation import CancellationToken
    from chatbridge.config import ProviderConfig
    from chatbridge.models import ChatRequest, ChatResult

logger = logging.getLogger(__name__)

_PING_MAX_TOKENS = 16


class OpenAICompatProvider:
    """Chat Completions provider for OpenAI, Groq and Google's compat endpoint."""

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

    @property
    def is_reasoning_model(self) -> bool:
        return is_reasoning_model(self.config.model)

    def _get_client(self) -> Any:
        """Lazily initialize and return the OpenAI client."""
        if self._client is None:
            try:
                from openai import AsyncOpenAI
            except ImportError as e:
                raise APIError(
                    "openai package not installed",
                    hint="pip install openai",
                ) from e
            self._client = AsyncOpenAI(
                api_key=self.config.api_key,
                base_url=self.config.base_url,
                timeout=self.config.timeout_s,
                max_retries=0,
            )
            logger.debug(
                "Created OpenAI-compatible client for %s (%s)",
                self.name,
                self.config.base_url or "default endpoint",
            )
        return self._client

    async def chat(
        self,
        request: ChatRequest,
        signal: CancellationToken | None = None,
    ) -> ChatResult:
        """Send *request* through the Chat Completions endpoint."""
        client = self._get_client()
        params = fmt.build_params(
            request,
            model=self.config.model,
            max_tokens=self.config.max_tokens,
            temperature=self.config.temperature,
        )
        response = await send_with_resilience(
            lambda: client.chat.completions.create(**params),
            provider=self.name,
            config=self.config,
            signal=signal,
            policy=self.retry_policy,
            message=f"{self.name} chat failed",
        )
        return fmt.parse_response(response)

    async def ping(self) -> None:
        """Send a minimal request; raise if the backend rejects it."""
        client = self._get_client()
        params: dict[str, Any] = {
            "model": self.config.model,
            "messages": [{"role": "user", "content": "ping"}],
        }
        if self.is_reasoning_model:
            params["max_completion_tokens"] = _PING_MAX_TOKENS
        else:
            params["max_tokens"] = _PING_MAX_TOKENS
            params["temperature"] = 0
        try:
            await client.chat.completions.create(**params)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise wrap_provider_error(
                e,
                provider=self.name,
                phase="ping",
                message=f"{self.name} ping failed",
            ) from e

    async def aclose(self) -> None:
        """Close underlying async client resources."""
        client = self._client
        if client is None:
            return
        self._client = None
        await client.close()
