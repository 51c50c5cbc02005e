"""Google Gemini provider using the native google-genai SDK."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from chatbridge.errors import APIError
from chatbridge.formats import gemini as fmt
from chatbridge.providers._errors import wrap_provider_error
from chatbridge.providers.base import send_with_resilience
from chatbridge.retry import DEFAULT_RETRY_POLICY, RetryPolicy

if TYPE_CHECKING:
    from chatbridge.cancellation import CancellationToken
    from chatbridge.config import ProviderConfig
    from chatbridge.models import ChatRequest, ChatResult

logger = logging.getLogger(__name__)

_PING_MAX_TOKENS = 16


class GeminiProvider:
    """Google Gemini API provider."""

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
        """Lazy-initialize the Gemini client."""
        if self._client is None:
            try:
                from google import genai
                from google.genai import types
            except ImportError as e:
                raise APIError(
                    "google-genai package not installed",
                    hint="pip install google-genai",
                ) from e

            # The SDK takes its timeout in milliseconds.
            http_options = types.HttpOptions(
                timeout=int(self.config.timeout_s * 1000),
                base_url=self.config.base_url,
            )
            self._client = genai.Client(
                api_key=self.config.api_key, http_options=http_options
            )
            logger.debug("Created Gemini client for model %s", self.config.model)
        return self._client

    async def chat(
        self,
        request: ChatRequest,
        signal: CancellationToken | None = None,
    ) -> ChatResult:
        """Send *request* through ``generate_content``."""
        client = self._get_client()
        params = fmt.build_params(
            request,
            model=self.config.model,
            max_tokens=self.config.max_tokens,
            temperature=self.config.temperature,
        )
        response = await send_with_resilience(
            lambda: client.aio.models.generate_content(**params),
            provider=self.name,
            config=self.config,
            signal=signal,
            policy=self.retry_policy,
            message="Gemini chat failed",
        )
        return fmt.parse_response(response)

    async def ping(self) -> None:
        """Send a minimal request; raise if the backend rejects it."""
        from google.genai import types

        client = self._get_client()
        try:
            await client.aio.models.generate_content(
                model=self.config.model,
                contents="ping",
                config=types.GenerateContentConfig(
                    max_output_tokens=_PING_MAX_TOKENS,
                    temperature=0,
                ),
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise wrap_provider_error(
                e,
                provider=self.name,
                phase="ping",
                message="Gemini ping failed",
            ) from e

    async def aclose(self) -> None:
        """Close underlying async client resources, when the SDK supports it."""
        client = self._client
        if client is None:
            return
        self._client = None
        aclose = getattr(client.aio, "aclose", None)
        if callable(aclose):
            await aclose()
