"""
model-router: OpenAI adapter.

Standard models go through /v1/chat/completions. Reasoning models (o1, o3
families) go through the Responses API (/v1/responses), which accepts a
reasoning effort and reports reasoning tokens separately.

When a request sets ``enable_functions`` and a tool bridge is injected, chat
completions run a tool-calling loop capped at ``MAX_TOOL_ITERATIONS``.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from model_router.adapters.base import BaseAdapter
from model_router.errors import MaxIterationsReachedError
from model_router.models import QueryRequest
from model_router.tools import MAX_TOOL_ITERATIONS, TOOL_DEFINITIONS, dispatch_tool_call

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful AI assistant. Provide accurate, detailed, "
    "and well-reasoned responses."
)

REASONING_EFFORT = {
    "quick": "low",
    "low": "low",
    "standard": "medium",
    "medium": "medium",
    "deep": "high",
    "high": "high",
}


class OpenAIAdapter(BaseAdapter):
    """OpenAI API adapter.

    Example::

        adapter = OpenAIAdapter(ModelConfig(provider="openai", model_name="o3",
                                            cost_per_1k_tokens=0.06))
        result = await adapter.call(QueryRequest(query="Prove that sqrt(2) is irrational",
                                                 reasoning_level="deep"))
        await adapter.close()
    """

    provider = "openai"
    api_key_env = "OPENAI_API_KEY"
    default_base_url = "https://api.openai.com/v1"
    DEFAULT_PARAMS = {"temperature": 0.1, "max_tokens": 4000, "top_p": 1.0}
    CONTEXT_WINDOWS = {
        "o3": 200000,
        "o3-pro": 200000,
        "o3-mini": 128000,
        "gpt-4": 128000,
        "gpt-4-turbo": 128000,
        "gpt-3.5-turbo": 16000,
    }
    DEFAULT_CONTEXT_WINDOW = 128000

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._api_key}"}

    def is_reasoning_model(self) -> bool:
        """Reasoning models are served by the Responses API."""
        return self.model_name.startswith(("o1", "o3"))

    def supports_reasoning(self) -> bool:
        return self.is_reasoning_model() or "reasoning" in self.capabilities

    @staticmethod
    def map_reasoning_level(level: str | None) -> str:
        return REASONING_EFFORT.get((level or "").lower(), "medium")

    def build_messages(self, request: QueryRequest) -> list[dict[str, Any]]:
        return [
            {"role": "system", "content": request.context or DEFAULT_SYSTEM_PROMPT},
            {"role": "user", "content": request.query},
        ]

    async def _execute(
        self, request: QueryRequest
    ) -> tuple[str, Mapping[str, Any] | None, str | None]:
        if self.is_reasoning_model():
            return await self._responses(request)

        max_tokens, temperature = self._generation_params(request)
        payload: dict[str, Any] = {
            "model": self.model_name,
            "messages": self.build_messages(request),
            "max_tokens": max_tokens,
            "top_p": self.default_params.get("top_p", 1.0),
        }
        if temperature is not None:
            payload["temperature"] = temperature

        if request.enable_functions and self.tool_bridge is not None:
            return await self._chat_with_tools(payload)

        data = await self._post_json("/chat/completions", payload)
        choices = data.get("choices") or []
        content = (choices[0].get("message", {}).get("content") or "") if choices else ""
        return content, data.get("usage"), data.get("model")

    async def _responses(
        self, request: QueryRequest
    ) -> tuple[str, Mapping[str, Any] | None, str | None]:
        max_tokens, _ = self._generation_params(request)
        payload: dict[str, Any] = {
            "model": self.model_name,
            "input": request.query,
            "max_output_tokens": max_tokens,
        }
        if request.context:
            payload["instructions"] = request.context
        effort = request.reasoning_level or self.default_params.get("reasoning_effort")
        if effort:
            payload["reasoning"] = {
                "effort": self.map_reasoning_level(effort),
                "summary": "auto",
            }

        data = await self._post_json("/responses", payload)
        return self._extract_output_text(data) or "No response generated", data.get("usage"), data.get("model")

    @staticmethod
    def _extract_output_text(data: Mapping[str, Any]) -> str:
        if data.get("output_text"):
            return data["output_text"]
        for item in data.get("output") or []:
            if item.get("type") != "message":
                continue
            for part in item.get("content") or []:
                if part.get("type") == "output_text":
                    return part.get("text", "")
        return ""

    async def _chat_with_tools(
        self, payload: dict[str, Any]
    ) -> tuple[str, Mapping[str, Any] | None, str | None]:
        """Run chat completions until the model stops requesting tools."""
        assert self.tool_bridge is not None
        messages = list(payload["messages"])
        usage = {"prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0}

        for iteration in range(1, MAX_TOOL_ITERATIONS + 1):
            data = await self._post_json(
                "/chat/completions",
                {**payload, "messages": messages, "tools": TOOL_DEFINITIONS},
            )
            for key in usage:
                usage[key] += int((data.get("usage") or {}).get(key) or 0)

            choices = data.get("choices") or []
            message = choices[0].get("message", {}) if choices else {}
            tool_calls = message.get("tool_calls") or []
            if not tool_calls:
                return message.get("content") or "", usage, data.get("model")

            logger.debug(f"Iteration {iteration}: model requested {len(tool_calls)} tool call(s)")
            messages.append(message)
            for tool_call in tool_calls:
                function = tool_call.get("function", {})
                result = await dispatch_tool_call(
                    self.tool_bridge, function.get("name", ""), function.get("arguments") or "{}"
                )
                messages.append({
                    "role": "tool",
                    "tool_call_id": tool_call.get("id"),
                    "content": result,
                })

        raise MaxIterationsReachedError(MAX_TOOL_ITERATIONS)

    async def check_availability(self) -> dict[str, Any]:
        """List models and look for this one."""
        try:
            data = await self._get_json("/models")
        except Exception as e:
            return {"available": False, "message": f"Error checking availability: {e}"}

        ids = [m.get("id", "") for m in data.get("data") or []]
        available = self.model_name in ids
        return {
            "available": available,
            "message": "OK" if available else f"Model {self.model_name} not available",
            "models_found": [i for i in ids if i.startswith(("o1", "o3", "gpt-4"))],
        }

    def get_model_info(self) -> dict[str, Any]:
        return {
            **super().get_model_info(),
            "supports_reasoning": self.supports_reasoning(),
            "api_type": "responses" if self.is_reasoning_model() else "chat_completions",
            "reasoning_levels": ["low", "medium", "high"],
        }
