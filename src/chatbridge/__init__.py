"""chatbridge: one async chat interface over several LLM backends.

Public API:
    - create_provider(): Build the adapter for a configured backend
    - ChatRequest / ChatResult: Canonical request and response
    - ProviderConfig: Immutable provider settings
    - call_with_resilience(): Timeout, cancellation and bounded retry
"""

from __future__ import annotations

import logging

from chatbridge.cancellation import CancellationToken
from chatbridge.catalog import PROVIDERS, REASONING_MODELS, provider_for_model
from chatbridge.config import ProviderConfig
from chatbridge.errors import (
    APIError,
    CancellationError,
    ChatBridgeError,
    ConfigurationError,
    InvalidRequestError,
    MalformedResponseError,
    RateLimitError,
    RequestTimeoutError,
)
from chatbridge.models import (
    ChatRequest,
    ChatResult,
    ContentBlock,
    Message,
    TextBlock,
    ToolCall,
    ToolResultBlock,
    ToolSpec,
    ToolUseBlock,
)
from chatbridge.providers import Provider, close_provider, create_provider
from chatbridge.retry import (
    DEFAULT_RETRY_POLICY,
    RetryPolicy,
    call_with_resilience,
    is_transient_error,
)

try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("chatbridge")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

# Library-level NullHandler: stay silent unless the consumer configures logging.
logging.getLogger("chatbridge").addHandler(logging.NullHandler())

__all__ = [
    "DEFAULT_RETRY_POLICY",
    "PROVIDERS",
    "REASONING_MODELS",
    "APIError",
    "CancellationError",
    "CancellationToken",
    "ChatBridgeError",
    "ChatRequest",
    "ChatResult",
    "ConfigurationError",
    "ContentBlock",
    "InvalidRequestError",
    "MalformedResponseError",
    "Message",
    "Provider",
    "ProviderConfig",
    "RateLimitError",
    "RequestTimeoutError",
    "RetryPolicy",
    "TextBlock",
    "ToolCall",
    "ToolResultBlock",
    "ToolSpec",
    "ToolUseBlock",
    "call_with_resilience",
    "close_provider",
    "create_provider",
    "is_transient_error",
    "provider_for_model",
]
