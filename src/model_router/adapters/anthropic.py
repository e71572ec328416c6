"""
model-router: Anthropic adapter using the Messages API.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from model_router.adapters.base import BaseAdapter
from model_router.errors import ProviderError
from model_router.models import QueryRequest

ANTHROPIC_VERSION = "2023-06-01"


class AnthropicAdapter(BaseAdapter):
    """Claude adapter.

    Context is folded into the user turn as ``Context: ...\\n\\nQuery: ...``.
    """

    provider = "anthropic"
    api_key_env = "ANTHROPIC_API_KEY"
    default_base_url = "https://api.anthropic.com/v1"
    DEFAULT_PARAMS = {"temperature": 0.3, "max_tokens": 4000}
    CONTEXT_WINDOWS = {
        "claude-3-5-sonnet": 200000,
        "claude-3-opus": 200000,
        "claude-3-sonnet": 200000,
        "claude-3-haiku": 200000,
    }
    DEFAULT_CONTEXT_WINDOW = 200000

    def _headers(self) -> dict[str, str]:
        return {"x-api-key": self._api_key, "anthropic-version": ANTHROPIC_VERSION}

    @staticmethod
    def build_messages(request: QueryRequest) -> list[dict[str, Any]]:
        content = request.query
        if request.context:
            content = f"Context: {request.context}\n\nQuery: {request.query}"
        return [{"role": "user", "content": content}]

    async def _execute(
        self, request: QueryRequest
    ) -> tuple[str, Mapping[str, Any] | None, str | None]:
        max_tokens, temperature = self._generation_params(request)
        payload: dict[str, Any] = {
            "model": self.model_name,
            "messages": self.build_messages(request),
            "max_tokens": max_tokens,
        }
        if temperature is not None:
            payload["temperature"] = temperature

        data = await self._post_json("/messages", payload)
        text = "".join(
            block.get("text", "")
            for block in data.get("content") or []
            if block.get("type") == "text"
        )
        return text, data.get("usage"), data.get("model")

    async def check_availability(self) -> dict[str, Any]:
        """Send a one-token message; there is no cheaper probe."""
        try:
            await self._post_json(
                "/messages",
                {
                    "model": self.model_name,
                    "messages": [{"role": "user", "content": "test"}],
                    "max_tokens": 1,
                },
            )
        except ProviderError as e:
            if e.status in (400, 404) and "model" in e.message.lower():
                return {"available": False, "message": f"Model {self.model_name} not available"}
            return {"available": False, "message": e.message}
        except Exception as e:
            return {"available": False, "message": f"Error checking availability: {e}"}
        return {"available": True, "message": "OK"}

    def get_model_info(self) -> dict[str, Any]:
        return {
            **super().get_model_info(),
            "supports_reasoning": True,
            "api_type": "messages",
        }
