"""
model-router: Router configuration.

Builds a validated ``RouterConfig`` from the plain-dict structure produced by
whatever loads the configuration file::

    {
        "models": {"o3": {"provider": "openai", "model_name": "o3", ...}, ...},
        "settings": {
            "default_model": "o3",
            "fallback_model": "claude-3-5-sonnet",
            "available_models": ["o3", "claude-3-5-sonnet"],
            "rate_limits": {"requests_per_minute": 50, "burst_limit": 10},
            "budget_limits": {"daily_cost_limit": 10.0},
        },
    }
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from model_router.errors import ConfigError
from model_router.models import ModelConfig

logger = logging.getLogger(__name__)


@dataclass
class RateLimitSettings:
    """Per-client admission limits.

    Attributes:
        requests_per_minute: Sustained ceiling over a 60 second window.
        burst_limit: Ceiling over a 10 second window.
    """

    requests_per_minute: int = 50
    burst_limit: int = 10

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> RateLimitSettings:
        data = data or {}
        rpm = data.get("requests_per_minute", data.get("per_user_requests_per_minute"))
        burst = data.get("burst_limit")
        settings = cls(
            requests_per_minute=int(rpm) if rpm is not None else 50,
            burst_limit=int(burst) if burst is not None else 10,
        )
        if settings.requests_per_minute <= 0 or settings.burst_limit <= 0:
            raise ConfigError("Rate limits must be positive integers")
        return settings


@dataclass
class RouterSettings:
    """Routing policy settings."""

    default_model: str
    fallback_model: str | None = None
    available_models: list[str] = field(default_factory=list)
    rate_limits: RateLimitSettings = field(default_factory=RateLimitSettings)
    budget_limits: dict[str, Any] = field(default_factory=dict)


@dataclass
class RouterConfig:
    """Complete, validated router configuration."""

    models: dict[str, ModelConfig]
    settings: RouterSettings

    @property
    def enabled_models(self) -> list[str]:
        """Ids of enabled models, in configuration order."""
        return [model_id for model_id, cfg in self.models.items() if cfg.enabled]

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RouterConfig:
        """Parse and validate a configuration mapping.

        Raises:
            ConfigError: If required fields are missing or reference
                models that are not configured.
        """
        raw_models = data.get("models")
        if not raw_models:
            raise ConfigError("Missing required configuration field: models")

        models: dict[str, ModelConfig] = {}
        for model_id, raw in raw_models.items():
            try:
                models[model_id] = ModelConfig.from_dict(raw)
            except (TypeError, ValueError) as e:
                raise ConfigError(f"Invalid configuration for model '{model_id}': {e}") from e

        raw_settings = data.get("settings") or {}
        default_model = raw_settings.get("default_model")
        if not default_model:
            raise ConfigError("Missing required configuration field: settings.default_model")
        if default_model not in models:
            raise ConfigError(
                f"Default model '{default_model}' not found in models configuration"
            )

        fallback_model = raw_settings.get("fallback_model")
        if fallback_model and fallback_model not in models:
            raise ConfigError(
                f"Fallback model '{fallback_model}' not found in models configuration"
            )

        available = list(raw_settings.get("available_models") or models.keys())
        for model_id in available:
            if model_id not in models:
                logger.warning(f"Available model '{model_id}' not found in models configuration")

        settings = RouterSettings(
            default_model=default_model,
            fallback_model=fallback_model or None,
            available_models=available,
            rate_limits=RateLimitSettings.from_dict(raw_settings.get("rate_limits")),
            budget_limits=dict(raw_settings.get("budget_limits") or {}),
        )
        logger.debug(f"Configuration validated: {len(models)} model(s)")
        return cls(models=models, settings=settings)
