"""
AI Model Tiers.

Single source of truth for which concrete model each provider uses
for each cost/quality tier.
"""

from enum import Enum
from typing import Optional

from candor.errors.exceptions import ConfigurationError


class ModelTier(str, Enum):
    FAST = "fast"
    STANDARD = "standard"
    ADVANCED = "advanced"


DEFAULT_TIER_MODELS: dict[str, dict[ModelTier, str]] = {
    "anthropic": {
        ModelTier.FAST: "claude-haiku-4-5",
        ModelTier.STANDARD: "claude-sonnet-4-5",
        ModelTier.ADVANCED: "claude-opus-4-1",
    },
    "openai": {
        ModelTier.FAST: "gpt-4o-mini",
        ModelTier.STANDARD: "gpt-4o",
        ModelTier.ADVANCED: "gpt-4.1",
    },
    "bedrock": {
        ModelTier.FAST: "us.anthropic.claude-haiku-4-5-20251001-v1:0",
        ModelTier.STANDARD: "us.anthropic.claude-sonnet-4-5-20250929-v1:0",
        ModelTier.ADVANCED: "us.anthropic.claude-opus-4-1-20250805-v1:0",
    },
}


def resolve_tier_models(
    provider: str, overrides: Optional[dict] = None
) -> dict[ModelTier, str]:
    """Merge explicit model names over the provider's compiled-in defaults.

    Providers with no defaults (self-hosted OpenAI-compatible servers, etc.)
    must name a model for every tier.

    Raises:
        ConfigurationError: if any tier is left without a model.
    """
    models = dict(DEFAULT_TIER_MODELS.get(provider, {}))
    for tier, model in (overrides or {}).items():
        if model:
            models[ModelTier(tier)] = model

    missing = [t.value for t in ModelTier if not models.get(t)]
    if missing:
        raise ConfigurationError(
            f"Provider '{provider}' has no default models; "
            f"explicit model names required for tiers: {missing}"
        )
    return models
