"""
model-router: Main Router class, the orchestrator.

Wires together the model selector, provider adapters, rate limiter and
metrics collector behind a small JSON-friendly surface.

Routing algorithm:
1. Check the caller's rate limit (client_id, user_id, else "anonymous")
2. Resolve the model: explicit ``model`` wins, otherwise the selector picks
3. Call the model's adapter (unknown model → ModelNotAvailableError, terminal)
4. On a retryable failure (rate limit, quota, timeout) try the configured
   fallback model once, unless it is the model that just failed
5. Record exactly one metrics entry for the whole call, with the model
   actually used and the end-to-end duration
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from model_router.adapters.anthropic import AnthropicAdapter
from model_router.adapters.google import GoogleAdapter
from model_router.adapters.openai import OpenAIAdapter
from model_router.config import RouterConfig
from model_router.errors import ErrorCode, ModelNotAvailableError, ProviderTimeoutError
from model_router.metrics import MetricEntry, MetricsCollector
from model_router.models import QueryRequest, QueryResult
from model_router.rate_limiter import RateLimiter
from model_router.selector import ModelSelector

if TYPE_CHECKING:
    from model_router.adapters.base import ProviderAdapter
    from model_router.tools import ToolBridge

logger = logging.getLogger(__name__)


# Adapter factory: provider tag → adapter class
_ADAPTER_REGISTRY: dict[str, type] = {
    "openai": OpenAIAdapter,
    "google": GoogleAdapter,
    "anthropic": AnthropicAdapter,
}

FALLBACK_CODES = frozenset({
    ErrorCode.RATE_LIMIT_EXCEEDED,
    ErrorCode.QUOTA_EXCEEDED,
    ErrorCode.TIMEOUT,
})
_FALLBACK_MESSAGE = re.compile(r"not available|rate limit|quota")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class Router:
    """Routes queries to the best-fitting model with one-step fallback.

    Quickstart::

        router = Router(RouterConfig.from_dict(config_dict))

        async with router:
            result = await router.route_query({"query": "Explain quicksort"})
            print(result.model, result.response)

    Custom adapters (for tests or unsupported vendors) can be injected per
    model id::

        router = Router(config, adapters={"o3": MyAdapter()})
    """

    def __init__(
        self,
        config: RouterConfig | Mapping[str, Any],
        adapters: Mapping[str, ProviderAdapter] | None = None,
        tool_bridge: ToolBridge | None = None,
        rate_limiter: RateLimiter | None = None,
        metrics: MetricsCollector | None = None,
    ) -> None:
        """Initialize the router.

        Args:
            config: Validated config, or a mapping passed to RouterConfig.from_dict.
            adapters: Pre-built adapters keyed by model id; they replace the
                adapters the provider registry would create.
            tool_bridge: File-system tools handed to adapters that support
                function calling.
            rate_limiter: Override the limiter built from the rate-limit settings.
            metrics: Override the metrics collector.
        """
        if not isinstance(config, RouterConfig):
            config = RouterConfig.from_dict(config)
        self.config = config
        self.settings = config.settings
        self._tool_bridge = tool_bridge
        self._adapters: dict[str, ProviderAdapter] = {}
        self._init_adapters(adapters or {})

        limits = self.settings.rate_limits
        if rate_limiter is None:
            rate_limiter = RateLimiter(
                requests_per_minute=limits.requests_per_minute,
                burst_limit=limits.burst_limit,
            )
        self.rate_limiter = rate_limiter
        self.metrics = metrics if metrics is not None else MetricsCollector()
        self.selector = ModelSelector(
            [m for m in self.settings.available_models if m in self._adapters],
            default_model=self.settings.default_model,
        )
        self._started = False

    def _init_adapters(self, provided: Mapping[str, ProviderAdapter]) -> None:
        for model_id, model_config in self.config.models.items():
            if not model_config.enabled:
                logger.info(f"Skipping disabled model: {model_id}")
                continue

            if model_id in provided:
                self._adapters[model_id] = provided[model_id]
                continue

            adapter_cls = _ADAPTER_REGISTRY.get(model_config.provider)
            if adapter_cls is None:
                logger.warning(
                    f"Unknown provider: {model_config.provider} for model {model_id}"
                )
                continue

            try:
                self._adapters[model_id] = adapter_cls(model_config, tool_bridge=self._tool_bridge)
            except Exception as e:
                logger.error(f"Failed to initialize {model_id} adapter: {e}")
                continue
            logger.info(f"Initialized {model_id} adapter ({model_config.provider})")

        logger.info(f"Initialized {len(self._adapters)} model adapter(s)")

    @property
    def models(self) -> list[str]:
        """Ids of models with a live adapter."""
        return list(self._adapters)

    def get_adapter(self, model_id: str) -> ProviderAdapter | None:
        return self._adapters.get(model_id)

    # ──────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ──────────────────────────────────────────────────────────────────────

    async def start(self) -> None:
        """Start the periodic cleanup timers."""
        if self._started:
            return
        await self.rate_limiter.start()
        await self.metrics.start()
        self._started = True
        logger.info(f"Router started with {len(self._adapters)} model(s): {', '.join(self._adapters)}")

    async def stop(self) -> None:
        """Stop cleanup timers and close all adapter connections."""
        await self.rate_limiter.stop()
        await self.metrics.stop()
        for model_id, adapter in self._adapters.items():
            try:
                await adapter.close()
            except Exception as e:
                logger.warning(f"Error closing adapter '{model_id}': {e}")
        self._started = False
        logger.info("Router stopped")

    async def __aenter__(self) -> Router:
        await self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.stop()

    # ──────────────────────────────────────────────────────────────────────
    # Core API
    # ──────────────────────────────────────────────────────────────────────

    async def route_query(self, request: QueryRequest | Mapping[str, Any]) -> QueryResult:
        """Route a query to the explicit or best-fitting model.

        Raises:
            MissingFieldError: The query is empty.
            RateLimitExceeded: The caller is over its burst or sustained limit.
            ModelNotAvailableError: The resolved model has no adapter.
            ProviderError: The vendor call (and any fallback) failed.
        """
        start_time = time.time()
        attempted: list[str] = []
        resolved: str | None = None

        try:
            req = QueryRequest.from_args(request)
            resolved = req.model
            self.rate_limiter.check_limit(req.client_identifier)

            resolved = req.model or self.selector.select_best_model(
                req.query, req.context, req.preferences
            )
            logger.info(f"Routing query to model: {resolved}")

            result = await self._call_model(resolved, req, attempted)
        except Exception as e:
            model = attempted[-1] if attempted else resolved or "unknown"
            self._record_metrics(model, None, start_time, success=False)
            logger.error(f"Query routing failed: {e}")
            raise

        self._record_metrics(result.model, result, start_time, success=True)
        return result

    async def _call_model(
        self, model_id: str, req: QueryRequest, attempted: list[str]
    ) -> QueryResult:
        adapter = self._adapters.get(model_id)
        if adapter is None:
            raise ModelNotAvailableError(model_id, list(self._adapters))

        attempted.append(model_id)
        logger.debug(f"Calling model {model_id} with query: {req.query[:100]}...")
        try:
            result = await self._invoke(adapter, model_id, req)
        except Exception as e:
            logger.error(f"Model {model_id} call failed: {e}")
            fallback = self.settings.fallback_model
            if (
                len(attempted) == 1
                and fallback
                and fallback != model_id
                and self.should_use_fallback(e)
            ):
                logger.warning(f"Attempting fallback to {fallback}")
                return await self._call_model(fallback, req, attempted)
            raise

        result.model = model_id
        logger.info(
            f"Model {model_id} responded successfully "
            f"(tokens={result.usage.total_tokens}, cost={result.cost:.4f}, "
            f"duration={result.duration:.0f}ms)"
        )
        return result

    @staticmethod
    async def _invoke(
        adapter: ProviderAdapter, model_id: str, req: QueryRequest
    ) -> QueryResult:
        if not req.timeout:
            return await adapter.call(req)
        try:
            return await asyncio.wait_for(adapter.call(req), timeout=req.timeout)
        except asyncio.TimeoutError as e:
            raise ProviderTimeoutError(
                f"Request timeout after {req.timeout}s", model=model_id
            ) from e

    @staticmethod
    def should_use_fallback(error: BaseException) -> bool:
        """Whether a failed call is worth retrying on the fallback model."""
        code = getattr(error, "code", None)
        if code is not None:
            try:
                if ErrorCode(code) in FALLBACK_CODES:
                    return True
            except ValueError:
                pass
        return bool(_FALLBACK_MESSAGE.search(str(error)))

    def _record_metrics(
        self,
        model: str,
        result: QueryResult | None,
        start_time: float,
        success: bool,
    ) -> None:
        try:
            self.metrics.record(MetricEntry(
                model=model,
                tokens=result.usage.total_tokens if result else 0,
                cost=result.cost if result else 0.0,
                duration=(time.time() - start_time) * 1000,
                success=success,
                timestamp=_now_iso(),
            ))
        except Exception as e:
            logger.warning(f"Failed to record metrics: {e}")

    # ──────────────────────────────────────────────────────────────────────
    # Administrative surface
    # ──────────────────────────────────────────────────────────────────────

    async def list_models(self) -> QueryResult:
        """Describe every configured adapter, probing availability in parallel."""
        models = await asyncio.gather(
            *(self._describe_model(mid, adapter) for mid, adapter in self._adapters.items())
        )
        models = sorted(models, key=lambda m: m["id"])
        providers: list[str] = []
        for m in models:
            if m.get("provider") and m["provider"] not in providers:
                providers.append(m["provider"])

        return QueryResult.system({
            "total_models": len(models),
            "available_models": sum(1 for m in models if m["available"]),
            "providers": providers,
            "models": models,
        })

    async def _describe_model(self, model_id: str, adapter: ProviderAdapter) -> dict[str, Any]:
        try:
            info = adapter.get_model_info()
            availability = await adapter.check_availability()
        except Exception as e:
            return {
                "id": model_id,
                "provider": self.config.models[model_id].provider,
                "available": False,
                "status": f"Error: {e}",
                "last_checked": _now_iso(),
            }
        return {
            **info,
            "id": model_id,
            "model_name": info.get("id", self.config.models[model_id].model_name),
            "available": bool(availability.get("available")),
            "status": availability.get("message", ""),
            "last_checked": _now_iso(),
        }

    async def get_model_recommendations(
        self, request: QueryRequest | Mapping[str, Any]
    ) -> QueryResult:
        """Rank the enabled models for a query."""
        req = QueryRequest.from_args(request)
        recommendations = self.selector.get_model_recommendations(
            req.query, req.context, req.limit
        )
        return QueryResult.system({
            "query": req.query,
            "recommendations": recommendations,
            "timestamp": _now_iso(),
        })

    async def get_stats(self, period: str = "all", model: str | None = None) -> QueryResult:
        """Usage statistics from the metrics collector."""
        return QueryResult.system(self.metrics.get_stats(period=period, model=model))

    async def health_check(self) -> QueryResult:
        """Probe every adapter; overall status is "degraded" if any is down."""
        ids = list(self._adapters)
        probes = await asyncio.gather(
            *(self._adapters[mid].check_availability() for mid in ids),
            return_exceptions=True,
        )

        health: dict[str, Any] = {"status": "healthy", "models": {}, "timestamp": _now_iso()}
        for model_id, probe in zip(ids, probes):
            if isinstance(probe, BaseException):
                health["models"][model_id] = {"status": "error", "message": str(probe)}
                health["status"] = "degraded"
            elif probe.get("available"):
                health["models"][model_id] = {"status": "healthy", "message": probe.get("message", "")}
            else:
                health["models"][model_id] = {"status": "unhealthy", "message": probe.get("message", "")}
                health["status"] = "degraded"
        return QueryResult.system(health)


def register_adapter(provider: str, adapter_class: type) -> None:
    """Register an adapter class for a provider tag.

    The class is constructed as ``adapter_class(model_config, tool_bridge=...)``.

    Example::

        from model_router import register_adapter

        class MistralAdapter(BaseAdapter):
            provider = "mistral"
            ...

        register_adapter("mistral", MistralAdapter)
    """
    _ADAPTER_REGISTRY[provider.lower()] = adapter_class
