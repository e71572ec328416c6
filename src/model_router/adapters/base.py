"""
model-router: Provider adapter protocol and shared adapter machinery.

Any vendor can be integrated by implementing ``ProviderAdapter``. The
built-in adapters derive from ``BaseAdapter``, which owns everything that is
not vendor-specific:

- request validation
- HTTP session handling (aiohttp)
- timing, usage normalization and cost computation
- normalization of vendor failures onto ``ErrorCode``
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import aiohttp

from model_router.errors import MissingFieldError, ProviderError, RouterError
from model_router.models import ModelConfig, QueryRequest, QueryResult, TokenUsage

if TYPE_CHECKING:
    from model_router.tools import ToolBridge

logger = logging.getLogger(__name__)


@runtime_checkable
class ProviderAdapter(Protocol):
    """Protocol defining the uniform contract over vendor APIs.

    Example::

        class MyAdapter:
            async def call(self, request: QueryRequest) -> QueryResult:
                text = await my_api.complete(request.query)
                return QueryResult(response=text, model="my-model")

            async def check_availability(self) -> dict[str, Any]:
                return {"available": await my_api.ping(), "message": "OK"}

            def get_capabilities(self) -> dict[str, Any]:
                return {"id": "my-model", "provider": "custom"}

            def get_model_info(self) -> dict[str, Any]:
                return self.get_capabilities()

            async def close(self) -> None:
                await my_api.disconnect()
    """

    async def call(self, request: QueryRequest) -> QueryResult:
        """Execute a query.

        Raises:
            ProviderError: A normalized vendor failure carrying an ErrorCode.
        """
        ...

    async def check_availability(self) -> dict[str, Any]:
        """Lightweight liveness probe returning ``{available, message}``."""
        ...

    def get_capabilities(self) -> dict[str, Any]:
        """Static self-description (id, name, provider, tags, cost)."""
        ...

    def get_model_info(self) -> dict[str, Any]:
        """Capabilities plus vendor-specific details such as context window."""
        ...

    async def close(self) -> None:
        """Clean up resources (HTTP sessions, connections, etc.)."""
        ...


def _first_int(data: Mapping[str, Any], *keys: str) -> int:
    for key in keys:
        value = data.get(key)
        if value:
            return int(value)
    return 0


def normalize_usage(raw: Mapping[str, Any] | None) -> TokenUsage:
    """Map vendor-specific usage fields onto TokenUsage.

    Understands OpenAI chat (prompt/completion), OpenAI responses and
    Anthropic (input/output) and Gemini (usageMetadata) field names.
    """
    if not raw:
        return TokenUsage()

    input_tokens = _first_int(raw, "prompt_tokens", "input_tokens", "promptTokenCount")
    output_tokens = _first_int(raw, "completion_tokens", "output_tokens", "candidatesTokenCount")
    total_tokens = _first_int(raw, "total_tokens", "totalTokenCount") or input_tokens + output_tokens

    reasoning_tokens = _first_int(raw, "reasoning_tokens", "thoughtsTokenCount")
    if not reasoning_tokens:
        for details_key in ("completion_tokens_details", "output_tokens_details"):
            details = raw.get(details_key) or {}
            reasoning_tokens = _first_int(details, "reasoning_tokens")
            if reasoning_tokens:
                break

    return TokenUsage(
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        total_tokens=total_tokens,
        reasoning_tokens=reasoning_tokens,
    )


class BaseAdapter:
    """Shared implementation for HTTP-based vendor adapters.

    Subclasses set the class attributes and implement ``_execute`` (returns
    the text, raw usage and vendor model name) and ``check_availability``.
    """

    provider: str = ""
    api_key_env: str = ""
    default_base_url: str = ""
    DEFAULT_PARAMS: dict[str, Any] = {}
    CONTEXT_WINDOWS: dict[str, int] = {}
    DEFAULT_CONTEXT_WINDOW: int = 128000

    def __init__(
        self,
        config: ModelConfig,
        tool_bridge: ToolBridge | None = None,
    ) -> None:
        """Initialize the adapter.

        Args:
            config: The model configuration.
            tool_bridge: File-system tools offered to the model when a
                request sets ``enable_functions``.

        Raises:
            ValueError: If no API key is configured or set in the environment.
        """
        self.config = config
        self.model_name = config.model_name
        self.name = config.name or config.model_name
        self.capabilities = list(config.capabilities)
        self.cost_per_1k_tokens = config.cost_per_1k_tokens
        self.rate_limits = dict(config.rate_limit)
        self.default_params = {**self.DEFAULT_PARAMS, **config.default_params}
        self.base_url = (config.base_url or self.default_base_url).rstrip("/")
        self.tool_bridge = tool_bridge

        self._api_key = config.api_key or os.environ.get(self.api_key_env, "")
        if not self._api_key:
            raise ValueError(
                f"{self.provider} API key not found: set {self.api_key_env} "
                f"or api_key in the model configuration"
            )
        self._timeout = aiohttp.ClientTimeout(total=config.timeout_ms / 1000)
        self._session: aiohttp.ClientSession | None = None

    # ──────────────────────────────────────────────────────────────────────
    # HTTP
    # ──────────────────────────────────────────────────────────────────────

    def _headers(self) -> dict[str, str]:
        """Authentication headers for this vendor."""
        return {}

    async def _get_session(self) -> aiohttp.ClientSession:
        """Lazily create and return the aiohttp session."""
        if self._session is None or self._session.closed:
            headers = {"Content-Type": "application/json", **self._headers()}
            self._session = aiohttp.ClientSession(headers=headers)
        return self._session

    async def _post_json(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        """POST a JSON payload and return the decoded body.

        Raises:
            ProviderError: On any non-200 status.
        """
        session = await self._get_session()
        async with session.post(
            f"{self.base_url}{path}", json=payload, timeout=self._timeout
        ) as resp:
            if resp.status == 200:
                return await resp.json()
            error_text = await resp.text()
            raise self._error(f"HTTP {resp.status}: {error_text[:500]}", status=resp.status)

    async def _get_json(self, path: str) -> dict[str, Any]:
        """GET a resource and return the decoded body.

        Raises:
            ProviderError: On any non-200 status.
        """
        session = await self._get_session()
        timeout = aiohttp.ClientTimeout(total=10)
        async with session.get(f"{self.base_url}{path}", timeout=timeout) as resp:
            if resp.status == 200:
                return await resp.json()
            error_text = await resp.text()
            raise self._error(f"HTTP {resp.status}: {error_text[:500]}", status=resp.status)

    def _error(self, message: str, status: int | None = None) -> ProviderError:
        return ProviderError.from_failure(
            message, provider=self.provider, model=self.model_name, status=status
        )

    # ──────────────────────────────────────────────────────────────────────
    # Calling
    # ──────────────────────────────────────────────────────────────────────

    async def call(self, request: QueryRequest) -> QueryResult:
        """Execute a query and return a normalized result.

        Raises:
            MissingFieldError: If the query is empty.
            ProviderError: Normalized vendor failure; ``duration_ms`` is set.
        """
        self.validate_request(request)
        start_time = time.time()
        try:
            text, usage, model = await self._execute(request)
        except ProviderError as e:
            e.duration_ms = self._elapsed_ms(start_time)
            raise
        except RouterError:
            raise
        except asyncio.TimeoutError as e:
            timeout_s = self.config.timeout_ms / 1000
            raise ProviderError.from_failure(
                f"Request timeout after {timeout_s}s",
                provider=self.provider,
                model=self.model_name,
                duration_ms=self._elapsed_ms(start_time),
            ) from e
        except aiohttp.ClientError as e:
            raise ProviderError.from_failure(
                f"Connection error: {e}",
                provider=self.provider,
                model=self.model_name,
                duration_ms=self._elapsed_ms(start_time),
            ) from e
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            # malformed body: non-JSON or an unexpected shape
            raise ProviderError.from_failure(
                f"Invalid response: {e}",
                provider=self.provider,
                model=self.model_name,
                duration_ms=self._elapsed_ms(start_time),
            ) from e

        return self.format_response(text, usage, model, start_time)

    async def _execute(
        self, request: QueryRequest
    ) -> tuple[str, Mapping[str, Any] | None, str | None]:
        raise NotImplementedError

    async def check_availability(self) -> dict[str, Any]:
        raise NotImplementedError

    @staticmethod
    def validate_request(request: QueryRequest) -> None:
        if not request.query or not request.query.strip():
            raise MissingFieldError("query")

    @staticmethod
    def _elapsed_ms(start_time: float) -> float:
        return (time.time() - start_time) * 1000

    def format_response(
        self,
        text: str,
        raw_usage: Mapping[str, Any] | None,
        model: str | None,
        start_time: float,
    ) -> QueryResult:
        """Build a QueryResult with normalized usage, cost and duration."""
        usage = normalize_usage(raw_usage)
        return QueryResult(
            response=text,
            model=model or self.model_name,
            usage=usage,
            cost=self.calculate_cost(usage),
            duration=self._elapsed_ms(start_time),
        )

    def calculate_cost(self, usage: TokenUsage) -> float:
        """USD cost: (total tokens / 1000) * cost per 1k tokens."""
        if not self.cost_per_1k_tokens:
            return 0.0
        total = usage.total_tokens or usage.input_tokens + usage.output_tokens
        return (total / 1000) * self.cost_per_1k_tokens

    def _generation_params(self, request: QueryRequest) -> tuple[int, float | None]:
        """Effective (max_tokens, temperature) for a request."""
        max_tokens = (
            request.max_tokens
            or self.default_params.get("max_tokens")
            or self.default_params.get("maxOutputTokens")
            or 4000
        )
        temperature = (
            request.temperature
            if request.temperature is not None
            else self.default_params.get("temperature")
        )
        return int(max_tokens), temperature

    # ──────────────────────────────────────────────────────────────────────
    # Self-description
    # ──────────────────────────────────────────────────────────────────────

    def get_capabilities(self) -> dict[str, Any]:
        return {
            "id": self.model_name,
            "name": self.name,
            "provider": self.provider,
            "capabilities": list(self.capabilities),
            "cost_per_1k_tokens": self.cost_per_1k_tokens,
            "rate_limits": dict(self.rate_limits),
        }

    def get_model_info(self) -> dict[str, Any]:
        return {**self.get_capabilities(), "context_window": self.get_context_window()}

    def get_context_window(self) -> int:
        """Context window for the model; the longest matching key wins."""
        for key in sorted(self.CONTEXT_WINDOWS, key=len, reverse=True):
            if key in self.model_name:
                return self.CONTEXT_WINDOWS[key]
        return self.DEFAULT_CONTEXT_WINDOW

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None
