"""Small HTTP-related constants shared across chatbridge.

This module is intentionally tiny to avoid circular imports and drift.
"""

from __future__ import annotations

# Status codes retried in addition to the whole 5xx range. 529 is Anthropic's
# "overloaded" response.
RETRYABLE_STATUS_CODES: frozenset[int] = frozenset({429, 529})

# Lowercased substrings of transport-level failure messages, as produced by
# httpx, the provider SDKs and the OS socket layer.
NETWORK_ERROR_MARKERS: tuple[str, ...] = (
    "connection reset",
    "econnreset",
    "connection refused",
    "econnrefused",
    "connection aborted",
    "econnaborted",
    "broken pipe",
    "epipe",
    "host unreachable",
    "ehostunreach",
    "no route to host",
    "hang up",
    "name or service not known",
    "temporary failure in name resolution",
    "nodename nor servname",
    "getaddrinfo",
    "enotfound",
    "eai_again",
    "fetch failed",
    "connection error",
    "timed out",
    "timeout",
    "etimedout",
    "server disconnected",
    "remote end closed connection",
    "socket hang up",
    "socket closed",
)
