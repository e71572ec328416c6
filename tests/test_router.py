"""Integration tests for the main Router class."""

import json
from unittest.mock import MagicMock

import pytest

from conftest import MockAdapter, make_config
from model_router import Router, RouterConfig, register_adapter
from model_router.errors import (
    AuthenticationFailedError,
    BurstLimitExceeded,
    MissingFieldError,
    ModelNotAvailableError,
    ProviderRateLimitError,
    ProviderTimeoutError,
    QuotaExceededError,
)
from model_router.metrics import MetricsCollector
from model_router.models import QueryRequest


def make_router(config=None, **adapters: MockAdapter) -> tuple[Router, dict[str, MockAdapter]]:
    adapters = {
        "o3": adapters.get("o3") or MockAdapter(response_content="from o3"),
        "claude-3-5-sonnet": adapters.get("claude") or MockAdapter(response_content="from claude"),
        "gemini-pro": adapters.get("gemini") or MockAdapter(response_content="from gemini"),
    }
    return Router(config or make_config(), adapters=adapters), adapters


class TestRouteQuery:
    """Model resolution and the happy path."""

    @pytest.mark.asyncio
    async def test_explicit_model(self) -> None:
        router, adapters = make_router()

        result = await router.route_query({"query": "Hi", "model": "gemini-pro"})

        assert result.response == "from gemini"
        assert result.model == "gemini-pro"
        assert adapters["gemini-pro"].call_count == 1
        assert adapters["o3"].call_count == 0

    @pytest.mark.asyncio
    async def test_automatic_selection(self) -> None:
        router, adapters = make_router()

        result = await router.route_query({"query": "Describe this image and chart"})

        assert result.model == "gemini-pro"

    @pytest.mark.asyncio
    async def test_preferences_model(self) -> None:
        router, _ = make_router()

        result = await router.route_query({
            "query": "Describe this image",
            "preferences": {"model": "claude-3-5-sonnet"},
        })

        assert result.model == "claude-3-5-sonnet"

    @pytest.mark.asyncio
    async def test_accepts_query_request(self) -> None:
        router, adapters = make_router()

        await router.route_query(QueryRequest(query="Hi", model="o3", context="ctx"))

        assert adapters["o3"].last_request.context == "ctx"

    @pytest.mark.asyncio
    async def test_success_records_one_metric(self) -> None:
        router, _ = make_router()

        await router.route_query({"query": "Hi", "model": "o3"})

        assert len(router.metrics) == 1
        recent = router.metrics.get_recent_requests(1)[0]
        assert recent["model"] == "o3"
        assert recent["tokens"] == 100
        assert recent["success"] is True

    @pytest.mark.asyncio
    async def test_missing_query(self) -> None:
        router, _ = make_router()

        with pytest.raises(MissingFieldError):
            await router.route_query({"query": ""})

        assert router.metrics.totals["failed_requests"] == 1

    @pytest.mark.asyncio
    async def test_unknown_model(self) -> None:
        router, _ = make_router()

        with pytest.raises(ModelNotAvailableError) as exc_info:
            await router.route_query({"query": "Hi", "model": "gpt-99"})

        message = str(exc_info.value)
        assert "gpt-99" in message
        assert "o3, claude-3-5-sonnet, gemini-pro" in message
        recent = router.metrics.get_recent_requests(1)[0]
        assert recent["model"] == "gpt-99"
        assert recent["success"] is False


class TestFallback:
    """One-step fallback on retryable failures."""

    @pytest.mark.asyncio
    async def test_rate_limit_message_falls_back(self) -> None:
        router, adapters = make_router(o3=MockAdapter(error=RuntimeError("Upstream rate limit hit")))

        result = await router.route_query({"query": "Hi", "model": "o3"})

        assert result.model == "claude-3-5-sonnet"
        assert result.response == "from claude"
        assert adapters["o3"].call_count == 1
        assert adapters["claude-3-5-sonnet"].call_count == 1

        assert len(router.metrics) == 1
        recent = router.metrics.get_recent_requests(1)[0]
        assert recent["model"] == "claude-3-5-sonnet"
        assert recent["success"] is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [
        ProviderRateLimitError("HTTP 429", provider="openai", status=429),
        QuotaExceededError("billing", provider="openai"),
        ProviderTimeoutError("slow", provider="openai"),
        RuntimeError("Model o3 not available right now"),
    ])
    async def test_retryable_errors(self, error) -> None:
        router, adapters = make_router(o3=MockAdapter(error=error))

        result = await router.route_query({"query": "Hi", "model": "o3"})

        assert result.model == "claude-3-5-sonnet"

    @pytest.mark.asyncio
    async def test_auth_error_not_retried(self) -> None:
        error = AuthenticationFailedError("HTTP 401", provider="openai", status=401)
        router, adapters = make_router(o3=MockAdapter(error=error))

        with pytest.raises(AuthenticationFailedError):
            await router.route_query({"query": "Hi", "model": "o3"})

        assert adapters["claude-3-5-sonnet"].call_count == 0
        recent = router.metrics.get_recent_requests(1)[0]
        assert recent["model"] == "o3"
        assert recent["success"] is False

    @pytest.mark.asyncio
    async def test_fallback_failure_is_not_chained(self) -> None:
        router, adapters = make_router(
            o3=MockAdapter(error=RuntimeError("rate limit")),
            claude=MockAdapter(error=RuntimeError("quota exhausted")),
        )

        with pytest.raises(RuntimeError, match="quota exhausted"):
            await router.route_query({"query": "Hi", "model": "o3"})

        assert adapters["gemini-pro"].call_count == 0
        assert len(router.metrics) == 1
        assert router.metrics.get_recent_requests(1)[0]["model"] == "claude-3-5-sonnet"

    @pytest.mark.asyncio
    async def test_no_fallback_to_same_model(self) -> None:
        claude = MockAdapter(error=RuntimeError("rate limit"))
        router, _ = make_router(claude=claude)

        with pytest.raises(RuntimeError):
            await router.route_query({"query": "Hi", "model": "claude-3-5-sonnet"})

        assert claude.call_count == 1

    @pytest.mark.asyncio
    async def test_no_fallback_configured(self) -> None:
        router, adapters = make_router(
            make_config(fallback_model=None),
            o3=MockAdapter(error=RuntimeError("rate limit")),
        )

        with pytest.raises(RuntimeError):
            await router.route_query({"query": "Hi", "model": "o3"})

        assert adapters["claude-3-5-sonnet"].call_count == 0

    @pytest.mark.asyncio
    async def test_missing_fallback_adapter(self, monkeypatch) -> None:
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        router = Router(make_config(), adapters={
            "o3": MockAdapter(error=RuntimeError("rate limit")),
            "gemini-pro": MockAdapter(),
        })

        assert "claude-3-5-sonnet" not in router.models
        with pytest.raises(ModelNotAvailableError):
            await router.route_query({"query": "Hi", "model": "o3"})

    @pytest.mark.parametrize("message,expected", [
        ("rate limit exceeded", True),
        ("Rate Limit exceeded", False),
        ("Quota", False),
        ("quota", True),
        ("model not available", True),
        ("HTTP 500: boom", False),
        ("Invalid request", False),
    ])
    def test_should_use_fallback(self, message, expected) -> None:
        assert Router.should_use_fallback(RuntimeError(message)) is expected


class TestTimeout:
    @pytest.mark.asyncio
    async def test_timeout_falls_back(self) -> None:
        router, adapters = make_router(o3=MockAdapter(delay_seconds=1.0))

        result = await router.route_query({"query": "Hi", "model": "o3", "timeout": 0.05})

        assert result.model == "claude-3-5-sonnet"

    @pytest.mark.asyncio
    async def test_timeout_without_fallback(self) -> None:
        router, _ = make_router(
            make_config(fallback_model=None),
            o3=MockAdapter(delay_seconds=1.0),
        )

        with pytest.raises(ProviderTimeoutError, match="timeout"):
            await router.route_query({"query": "Hi", "model": "o3", "timeout": 0.05})

        assert router.metrics.totals["failed_requests"] == 1


class TestRateLimiting:
    @pytest.mark.asyncio
    async def test_burst_limit(self) -> None:
        router, adapters = make_router(make_config(rate_limits={"burst_limit": 2}))

        await router.route_query({"query": "Hi", "model": "o3"})
        await router.route_query({"query": "Hi", "model": "o3"})
        with pytest.raises(BurstLimitExceeded):
            await router.route_query({"query": "Hi", "model": "o3"})

        assert adapters["o3"].call_count == 2
        assert router.metrics.totals["total_requests"] == 3
        assert router.metrics.totals["failed_requests"] == 1

    @pytest.mark.asyncio
    async def test_clients_limited_separately(self) -> None:
        router, _ = make_router(make_config(rate_limits={"burst_limit": 1}))

        await router.route_query({"query": "Hi", "model": "o3", "client_id": "a"})
        await router.route_query({"query": "Hi", "model": "o3", "user_id": "b"})

        assert router.rate_limiter.get_usage("a")["burst"]["count"] == 1
        assert router.rate_limiter.get_usage("b")["burst"]["count"] == 1
        assert router.rate_limiter.get_usage("anonymous")["burst"]["count"] == 0


class TestSetup:
    """Adapter construction and configuration."""

    def test_disabled_model_skipped(self) -> None:
        config = RouterConfig.from_dict({
            "models": {
                "o3": {"provider": "openai", "model_name": "o3"},
                "gemini-pro": {"provider": "google", "model_name": "gemini-pro", "enabled": False},
            },
            "settings": {"default_model": "o3"},
        })
        router = Router(config, adapters={"o3": MockAdapter(), "gemini-pro": MockAdapter()})

        assert router.models == ["o3"]
        assert router.selector.candidates == ["o3"]

    def test_unknown_provider_skipped(self) -> None:
        router = Router({
            "models": {
                "o3": {"provider": "openai", "model_name": "o3"},
                "local": {"provider": "nonexistent", "model_name": "llama"},
            },
            "settings": {"default_model": "o3"},
        }, adapters={"o3": MockAdapter()})

        assert router.models == ["o3"]

    def test_register_adapter(self) -> None:
        class CustomAdapter(MockAdapter):
            def __init__(self, config, tool_bridge=None) -> None:
                super().__init__(response_content=config.model_name)

        register_adapter("Custom", CustomAdapter)
        router = Router({
            "models": {"mine": {"provider": "custom", "model_name": "my-llm"}},
            "settings": {"default_model": "mine"},
        })

        assert isinstance(router.get_adapter("mine"), CustomAdapter)

    @pytest.mark.asyncio
    async def test_metrics_failure_does_not_break_routing(self) -> None:
        metrics = MagicMock(spec=MetricsCollector)
        metrics.record.side_effect = RuntimeError("disk full")
        router = Router(make_config(), adapters={"o3": MockAdapter()}, metrics=metrics)

        result = await router.route_query({"query": "Hi", "model": "o3"})

        assert result.response == "Mock response"
        metrics.record.assert_called_once()


class TestAdminSurface:
    """list_models, recommendations, stats and health."""

    @pytest.mark.asyncio
    async def test_list_models(self) -> None:
        router, _ = make_router(gemini=MockAdapter(available=False))

        result = await router.list_models()
        payload = json.loads(result.response)

        assert result.model == "system"
        assert result.cost == 0.0
        assert payload["total_models"] == 3
        assert payload["available_models"] == 2
        assert [m["id"] for m in payload["models"]] == ["claude-3-5-sonnet", "gemini-pro", "o3"]
        assert payload["models"][0]["model_name"] == "vendor-model-name"
        assert payload["providers"] == ["mock"]

    @pytest.mark.asyncio
    async def test_recommendations(self) -> None:
        router, _ = make_router()

        result = await router.get_model_recommendations({"query": "Write a poem", "limit": 2})
        payload = json.loads(result.response)

        assert payload["query"] == "Write a poem"
        assert len(payload["recommendations"]) == 2
        assert "timestamp" in payload

    @pytest.mark.asyncio
    async def test_stats(self) -> None:
        router, _ = make_router()
        await router.route_query({"query": "Hi", "model": "o3"})

        payload = json.loads((await router.get_stats(period="today")).response)

        assert payload["overview"]["total_requests"] == 1
        assert payload["overview"]["period"] == "today"
        assert "o3" in payload["models"]

    @pytest.mark.asyncio
    async def test_health_check(self) -> None:
        router, _ = make_router(o3=MockAdapter(available=False))

        payload = json.loads((await router.health_check()).response)

        assert payload["status"] == "degraded"
        assert payload["models"]["o3"]["status"] == "unhealthy"
        assert payload["models"]["gemini-pro"]["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_health_check_all_healthy(self) -> None:
        router, _ = make_router()

        payload = json.loads((await router.health_check()).response)

        assert payload["status"] == "healthy"


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_context_manager(self) -> None:
        router, adapters = make_router()

        async with router:
            assert router.rate_limiter.running
            assert router.metrics.running

        assert not router.rate_limiter.running
        assert all(a._closed for a in adapters.values())
