"""model-router: Vendor adapter implementations."""

from model_router.adapters.anthropic import AnthropicAdapter
from model_router.adapters.base import BaseAdapter, ProviderAdapter, normalize_usage
from model_router.adapters.google import GoogleAdapter
from model_router.adapters.openai import OpenAIAdapter

__all__ = [
    "AnthropicAdapter",
    "BaseAdapter",
    "GoogleAdapter",
    "OpenAIAdapter",
    "ProviderAdapter",
    "normalize_usage",
]
