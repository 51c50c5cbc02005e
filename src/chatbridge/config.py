"""Configuration: validated ``brain`` settings resolved into a frozen ProviderConfig."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
import os
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field, SecretStr, ValidationError, field_validator

from chatbridge.catalog import require_provider
from chatbridge.errors import ConfigurationError

DEFAULT_PROVIDER = "anthropic"
DEFAULT_MODEL = "claude-sonnet-4-20250514"
DEFAULT_TIMEOUT_S = 60.0


class BrainSettings(BaseModel):
    """Schema for the ``brain`` configuration section.

    Unknown keys (e.g. ``max_tool_depth``) belong to other collaborators and
    are preserved rather than rejected.
    """

    provider: str = Field(default=DEFAULT_PROVIDER, min_length=1)
    model: str = Field(default=DEFAULT_MODEL, min_length=1)
    max_tokens: int = Field(default=4096, ge=1)
    temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    api_key: SecretStr | None = None
    #: Per-attempt timeout in seconds.
    timeout: float = Field(default=DEFAULT_TIMEOUT_S, gt=0)
    base_url: str | None = None

    model_config = {"extra": "allow"}

    @field_validator("provider", "model", mode="before")
    @classmethod
    def strip_identifiers(cls, v: Any) -> Any:
        """Trim surrounding whitespace on identifiers."""
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator("api_key", "base_url", mode="before")
    @classmethod
    def empty_to_none(cls, v: Any) -> Any:
        """Treat blank strings as unset so env resolution can take over."""
        if isinstance(v, str) and not v.strip():
            return None
        return v


@dataclass(frozen=True)
class ProviderConfig:
    """Immutable settings owned by one provider adapter.

    Example:
        config = ProviderConfig.from_mapping(
            {"brain": {"provider": "anthropic", "model": "claude-sonnet-4-6"}}
        )
        # API key is resolved from ANTHROPIC_API_KEY when not given
    """

    provider: str
    model: str
    api_key: str
    max_tokens: int = 4096
    temperature: float = 0.3
    timeout_s: float = DEFAULT_TIMEOUT_S
    base_url: str | None = None

    @classmethod
    def from_mapping(cls, config: Mapping[str, Any]) -> ProviderConfig:
        """Build from the app config (``{"brain": {...}}``) or a bare section."""
        section = config.get("brain", config)
        if not isinstance(section, Mapping):
            raise ConfigurationError(
                "brain configuration must be a mapping",
                hint="Expected keys: provider, model, max_tokens, temperature, "
                "api_key, timeout, base_url.",
            )
        try:
            settings = BrainSettings.model_validate(dict(section))
        except ValidationError as e:
            fields = ", ".join(
                ".".join(str(p) for p in err["loc"]) for err in e.errors()
            )
            raise ConfigurationError(
                f"Invalid brain configuration: {fields}",
                hint=str(e),
            ) from e

        info = require_provider(settings.provider)
        api_key = (
            settings.api_key.get_secret_value() if settings.api_key else None
        ) or _api_key_from_env(info.env_key)

        if not api_key:
            raise ConfigurationError(
                f"API key required for {settings.provider}",
                hint=f"Set {info.env_key} or brain.api_key.",
            )

        return cls(
            provider=settings.provider,
            model=settings.model,
            api_key=api_key,
            max_tokens=settings.max_tokens,
            temperature=settings.temperature,
            timeout_s=settings.timeout,
            base_url=settings.base_url,
        )

    def __str__(self) -> str:
        """Return a redacted, developer-friendly representation."""
        return (
            f"ProviderConfig(provider={self.provider!r}, model={self.model!r}, "
            f"api_key={'[REDACTED]' if self.api_key else None}, "
            f"max_tokens={self.max_tokens}, temperature={self.temperature}, "
            f"timeout_s={self.timeout_s}, base_url={self.base_url!r})"
        )

    __repr__ = __str__


def _api_key_from_env(env_key: str) -> str | None:
    """Resolve an API key from the environment (and ``.env``)."""
    load_dotenv()
    return os.environ.get(env_key) or None
