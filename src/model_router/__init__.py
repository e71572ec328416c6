"""
model-router: Capability-aware AI model router.

Keyword-weighted model selection, per-client rate limiting, one-step
fallback and usage/cost metrics across OpenAI, Google and Anthropic models.

Quickstart::

    from model_router import Router, RouterConfig

    config = RouterConfig.from_dict({
        "models": {
            "o3": {"provider": "openai", "model_name": "o3", "cost_per_1k_tokens": 0.06},
            "claude-3-5-sonnet": {
                "provider": "anthropic",
                "model_name": "claude-3-5-sonnet-20241022",
                "cost_per_1k_tokens": 0.015,
            },
        },
        "settings": {"default_model": "o3", "fallback_model": "claude-3-5-sonnet"},
    })

    async with Router(config) as router:
        result = await router.route_query({"query": "Implement a binary search in Python"})
        print(result.model, result.response)
"""

from model_router.adapters.anthropic import AnthropicAdapter
from model_router.adapters.base import BaseAdapter, ProviderAdapter
from model_router.adapters.google import GoogleAdapter
from model_router.adapters.openai import OpenAIAdapter
from model_router.config import RateLimitSettings, RouterConfig, RouterSettings
from model_router.errors import (
    ErrorCode,
    MaxIterationsReachedError,
    MissingFieldError,
    ModelNotAvailableError,
    ProviderError,
    RateLimitExceeded,
    RouterError,
)
from model_router.metrics import MetricEntry, MetricsCollector
from model_router.models import Capability, ModelConfig, Preferences, QueryRequest, QueryResult, TokenUsage
from model_router.rate_limiter import RateLimiter
from model_router.router import Router, register_adapter
from model_router.selector import CAPABILITY_MATRIX, ModelSelector
from model_router.tools import ToolBridge

__version__ = "0.1.0"

__all__ = [
    # Core
    "Router",
    "RouterConfig",
    "RouterSettings",
    "RateLimitSettings",
    "ModelConfig",
    "QueryRequest",
    "QueryResult",
    "Preferences",
    "TokenUsage",
    "Capability",
    # Adapters
    "ProviderAdapter",
    "BaseAdapter",
    "OpenAIAdapter",
    "GoogleAdapter",
    "AnthropicAdapter",
    "register_adapter",
    "ToolBridge",
    # Components
    "ModelSelector",
    "CAPABILITY_MATRIX",
    "RateLimiter",
    "MetricsCollector",
    "MetricEntry",
    # Errors
    "RouterError",
    "ErrorCode",
    "MissingFieldError",
    "RateLimitExceeded",
    "ModelNotAvailableError",
    "ProviderError",
    "MaxIterationsReachedError",
]
