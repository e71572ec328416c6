"""
model-router: Google Gemini adapter using the generateContent REST API.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any

from model_router.adapters.base import BaseAdapter
from model_router.models import QueryRequest


def estimate_tokens(text: str) -> int:
    """Rough token estimate, ~4 characters per token."""
    return math.ceil(len(text) / 4) if text else 0


class GoogleAdapter(BaseAdapter):
    """Gemini adapter.

    Uses the ``usageMetadata`` block when the API returns one and falls back
    to a character-based estimate otherwise.
    """

    provider = "google"
    api_key_env = "GOOGLE_API_KEY"
    default_base_url = "https://generativelanguage.googleapis.com/v1beta"
    DEFAULT_PARAMS = {"temperature": 0.2, "maxOutputTokens": 4000}
    CONTEXT_WINDOWS = {
        "gemini-pro": 32000,
        "gemini-1.5-pro": 1000000,
        "gemini-1.5-flash": 1000000,
    }
    DEFAULT_CONTEXT_WINDOW = 32000

    def _headers(self) -> dict[str, str]:
        return {"x-goog-api-key": self._api_key}

    @staticmethod
    def build_prompt(request: QueryRequest) -> str:
        if request.context:
            return f"Context: {request.context}\n\nQuery: {request.query}"
        return request.query

    async def _execute(
        self, request: QueryRequest
    ) -> tuple[str, Mapping[str, Any] | None, str | None]:
        max_tokens, temperature = self._generation_params(request)
        prompt = self.build_prompt(request)
        generation_config: dict[str, Any] = {"maxOutputTokens": max_tokens}
        if temperature is not None:
            generation_config["temperature"] = temperature

        data = await self._post_json(
            f"/models/{self.model_name}:generateContent",
            {
                "contents": [{"role": "user", "parts": [{"text": prompt}]}],
                "generationConfig": generation_config,
            },
        )

        candidates = data.get("candidates") or []
        parts = ((candidates[0].get("content") or {}).get("parts") or []) if candidates else []
        text = "".join(part.get("text", "") for part in parts)

        usage = data.get("usageMetadata")
        if not usage:
            input_tokens = estimate_tokens(prompt)
            output_tokens = estimate_tokens(text)
            usage = {
                "input_tokens": input_tokens,
                "output_tokens": output_tokens,
                "total_tokens": input_tokens + output_tokens,
            }
        return text, usage, self.model_name

    async def check_availability(self) -> dict[str, Any]:
        """Fetch the model resource."""
        try:
            await self._get_json(f"/models/{self.model_name}")
        except Exception as e:
            return {"available": False, "message": f"Error checking availability: {e}"}
        return {"available": True, "message": "OK"}

    def get_model_info(self) -> dict[str, Any]:
        return {
            **super().get_model_info(),
            "supports_reasoning": True,
            "supports_multimodal": True,
            "api_type": "generate_content",
        }
