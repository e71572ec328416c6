"""Tests for configuration parsing and validation."""

import pytest

from model_router.config import RateLimitSettings, RouterConfig
from model_router.errors import ConfigError, MissingFieldError
from model_router.models import ModelConfig, Preferences, QueryRequest, QueryResult


def base_config(**settings) -> dict:
    return {
        "models": {
            "o3": {"provider": "OpenAI", "model_name": "o3", "cost_per_1k_tokens": 0.06},
            "gemini-pro": {"provider": "google", "model_name": "gemini-pro"},
        },
        "settings": {"default_model": "o3", **settings},
    }


class TestRouterConfig:
    """Loading and validation."""

    def test_valid_config(self) -> None:
        config = RouterConfig.from_dict(base_config(fallback_model="gemini-pro"))

        assert config.settings.default_model == "o3"
        assert config.settings.fallback_model == "gemini-pro"
        assert config.settings.available_models == ["o3", "gemini-pro"]
        assert config.models["o3"].provider == "openai"
        assert config.settings.rate_limits == RateLimitSettings(50, 10)

    def test_missing_models(self) -> None:
        with pytest.raises(ConfigError, match="models"):
            RouterConfig.from_dict({"settings": {"default_model": "o3"}})

    def test_missing_default_model(self) -> None:
        data = base_config()
        del data["settings"]["default_model"]
        with pytest.raises(ConfigError, match="default_model"):
            RouterConfig.from_dict(data)

    def test_unknown_default_model(self) -> None:
        with pytest.raises(ConfigError, match="not found"):
            RouterConfig.from_dict(base_config(default_model="gpt-99"))

    def test_unknown_fallback_model(self) -> None:
        with pytest.raises(ConfigError, match="Fallback"):
            RouterConfig.from_dict(base_config(fallback_model="gpt-99"))

    def test_negative_cost_rejected(self) -> None:
        data = base_config()
        data["models"]["o3"]["cost_per_1k_tokens"] = -1
        with pytest.raises(ConfigError, match="non-negative"):
            RouterConfig.from_dict(data)

    def test_rate_limit_alias(self) -> None:
        config = RouterConfig.from_dict(base_config(
            rate_limits={"per_user_requests_per_minute": 20, "burst_limit": 5}
        ))
        assert config.settings.rate_limits.requests_per_minute == 20
        assert config.settings.rate_limits.burst_limit == 5

    def test_non_positive_rate_limit(self) -> None:
        with pytest.raises(ConfigError):
            RouterConfig.from_dict(base_config(rate_limits={"burst_limit": 0}))

    def test_enabled_models(self) -> None:
        data = base_config()
        data["models"]["gemini-pro"]["enabled"] = False
        config = RouterConfig.from_dict(data)

        assert config.enabled_models == ["o3"]

    def test_config_error_is_value_error(self) -> None:
        assert issubclass(ConfigError, ValueError)


class TestRequestModels:
    def test_from_args_defaults(self) -> None:
        request = QueryRequest.from_args({"query": "Hi"})

        assert request.context == ""
        assert request.model is None
        assert request.preferences == Preferences()
        assert request.limit == 3
        assert request.client_identifier == "anonymous"

    def test_client_identifier_precedence(self) -> None:
        assert QueryRequest(query="q", client_id="c", user_id="u").client_identifier == "c"
        assert QueryRequest(query="q", user_id="u").client_identifier == "u"

    @pytest.mark.parametrize("args", [{}, {"query": ""}, {"query": "   "}, {"query": 42}])
    def test_missing_query(self, args) -> None:
        with pytest.raises(MissingFieldError):
            QueryRequest.from_args(args)

    def test_model_config_defaults(self) -> None:
        cfg = ModelConfig.from_dict({"provider": "anthropic", "model_name": "claude-3-haiku"})

        assert cfg.name == "claude-3-haiku"
        assert cfg.timeout_ms == 30000
        assert cfg.enabled is True

    def test_system_result(self) -> None:
        result = QueryResult.system({"status": "healthy"})

        assert result.model == "system"
        assert result.cost == 0.0
        assert '"status": "healthy"' in result.response
        assert result.to_dict()["usage"]["total_tokens"] == 0
