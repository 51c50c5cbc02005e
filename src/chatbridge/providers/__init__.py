"""Provider implementations and the factory that selects one."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
import dataclasses
import logging
from typing import Any

from chatbridge.catalog import require_provider
from chatbridge.config import ProviderConfig
from chatbridge.retry import DEFAULT_RETRY_POLICY, RetryPolicy

from .anthropic import AnthropicProvider
from .base import Provider
from .gemini import GeminiProvider
from .openai import OpenAICompatProvider

logger = logging.getLogger(__name__)

__all__ = [
    "AnthropicProvider",
    "GeminiProvider",
    "OpenAICompatProvider",
    "Provider",
    "close_provider",
    "create_provider",
]


def create_provider(
    config: ProviderConfig | Mapping[str, Any],
    *,
    retry_policy: RetryPolicy = DEFAULT_RETRY_POLICY,
) -> Provider:
    """Build the adapter for the backend named by *config*.

    Accepts a ``ProviderConfig`` or the application config mapping
    (``{"brain": {...}}``). OpenAI-dialect backends get the catalog's base
    URL unless the config overrides it.
    """
    if not isinstance(config, ProviderConfig):
        config = ProviderConfig.from_mapping(config)

    info = require_provider(config.provider)
    if info.dialect == "anthropic":
        return AnthropicProvider(config, retry_policy=retry_policy)
    if info.dialect == "gemini":
        return GeminiProvider(config, retry_policy=retry_policy)

    if config.base_url is None and info.base_url is not None:
        config = dataclasses.replace(config, base_url=info.base_url)
    return OpenAICompatProvider(config, retry_policy=retry_policy)


async def close_provider(provider: Provider) -> None:
    """Close *provider*, logging rather than raising on cleanup failure."""
    try:
        await provider.aclose()
    except asyncio.CancelledError:
        raise
    except Exception as exc:
        # Cleanup should never mask the primary failure.
        logger.warning("Provider cleanup failed: %s", exc)
