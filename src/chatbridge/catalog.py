"""Provider and model catalog: the single source of truth for backend identifiers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from chatbridge.errors import ConfigurationError

Dialect = Literal["anthropic", "openai", "gemini"]


@dataclass(frozen=True)
class ModelInfo:
    id: str
    label: str


@dataclass(frozen=True)
class ProviderInfo:
    """Static facts about one backend identifier."""

    name: str
    dialect: Dialect
    env_key: str
    base_url: str | None = None
    models: tuple[ModelInfo, ...] = ()


_GEMINI_MODELS = (
    ModelInfo("gemini-3.1-pro-preview", "Gemini 3.1 Pro"),
    ModelInfo("gemini-3-flash-preview", "Gemini 3 Flash"),
    ModelInfo("gemini-3-pro-preview", "Gemini 3 Pro"),
    ModelInfo("gemini-2.5-flash", "Gemini 2.5 Flash"),
    ModelInfo("gemini-2.5-pro", "Gemini 2.5 Pro"),
    ModelInfo("gemini-2.5-flash-lite", "Gemini 2.5 Flash Lite"),
)

PROVIDERS: dict[str, ProviderInfo] = {
    "anthropic": ProviderInfo(
        name="Anthropic (Claude)",
        dialect="anthropic",
        env_key="ANTHROPIC_API_KEY",
        models=(
            ModelInfo("claude-opus-4-6", "Claude Opus 4.6"),
            ModelInfo("claude-sonnet-4-6", "Claude Sonnet 4.6"),
            ModelInfo("claude-haiku-4-5-20251001", "Claude Haiku 4.5"),
            ModelInfo("claude-opus-4-5-20251101", "Claude Opus 4.5"),
            ModelInfo("claude-sonnet-4-5-20250929", "Claude Sonnet 4.5"),
            ModelInfo("claude-opus-4-1-20250805", "Claude Opus 4.1"),
            ModelInfo("claude-sonnet-4-20250514", "Claude Sonnet 4"),
            ModelInfo("claude-opus-4-20250514", "Claude Opus 4"),
        ),
    ),
    "openai": ProviderInfo(
        name="OpenAI (GPT)",
        dialect="openai",
        env_key="OPENAI_API_KEY",
        models=(
            ModelInfo("gpt-4o", "GPT-4o"),
            ModelInfo("gpt-4o-mini", "GPT-4o Mini"),
            ModelInfo("o1", "o1"),
            ModelInfo("o3-mini", "o3-mini"),
        ),
    ),
    "google": ProviderInfo(
        name="Google (Gemini, OpenAI-compatible endpoint)",
        dialect="openai",
        env_key="GOOGLE_API_KEY",
        base_url="https://generativelanguage.googleapis.com/v1beta/openai/",
        models=_GEMINI_MODELS,
    ),
    "gemini": ProviderInfo(
        name="Google (Gemini, native API)",
        dialect="gemini",
        env_key="GEMINI_API_KEY",
        models=_GEMINI_MODELS,
    ),
    "groq": ProviderInfo(
        name="Groq",
        dialect="openai",
        env_key="GROQ_API_KEY",
        base_url="https://api.groq.com/openai/v1",
        models=(
            ModelInfo("llama-3.3-70b-versatile", "Llama 3.3 70B"),
            ModelInfo("llama-3.1-8b-instant", "Llama 3.1 8B"),
            ModelInfo("mixtral-8x7b-32768", "Mixtral 8x7B"),
        ),
    ),
}

#: Models that reject a system message and the temperature parameter.
REASONING_MODELS: frozenset[str] = frozenset({"o1", "o3-mini"})


def provider_for_model(model_id: str) -> str | None:
    """Return the first provider identifier listing *model_id*, if any."""
    for key, info in PROVIDERS.items():
        if any(m.id == model_id for m in info.models):
            return key
    return None


def is_reasoning_model(model_id: str) -> bool:
    return model_id in REASONING_MODELS


def require_provider(identifier: str) -> ProviderInfo:
    """Return the catalog entry for *identifier* or fail listing the valid ones."""
    info = PROVIDERS.get(identifier)
    if info is None:
        valid = ", ".join(PROVIDERS)
        raise ConfigurationError(
            f"Unknown provider: {identifier!r}. Valid: {valid}",
            hint=f"Set brain.provider to one of: {valid}.",
        )
    return info
