"""Shared test fixtures and mock adapters for model-router tests."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from model_router.config import RouterConfig
from model_router.models import QueryRequest, QueryResult, TokenUsage


class MockAdapter:
    """Configurable mock adapter for testing.

    By default, returns successful responses. Can be configured to raise,
    delay, or return custom content.
    """

    def __init__(
        self,
        response_content: str = "Mock response",
        error: Exception | None = None,
        tokens: int = 100,
        cost: float = 0.01,
        delay_seconds: float = 0.0,
        available: bool = True,
        provider: str = "mock",
    ) -> None:
        self.response_content = response_content
        self.error = error
        self.tokens = tokens
        self.cost = cost
        self.delay_seconds = delay_seconds
        self.available = available
        self.provider = provider
        self.call_count = 0
        self.last_request: QueryRequest | None = None
        self._closed = False

    async def call(self, request: QueryRequest) -> QueryResult:
        self.call_count += 1
        self.last_request = request

        if self.delay_seconds > 0:
            await asyncio.sleep(self.delay_seconds)

        if self.error is not None:
            raise self.error

        return QueryResult(
            response=self.response_content,
            model="vendor-model-name",
            usage=TokenUsage(input_tokens=self.tokens // 2, output_tokens=self.tokens // 2,
                             total_tokens=self.tokens),
            cost=self.cost,
            duration=5.0,
        )

    async def check_availability(self) -> dict[str, Any]:
        if self.available:
            return {"available": True, "message": "OK"}
        return {"available": False, "message": "Service down"}

    def get_capabilities(self) -> dict[str, Any]:
        return {"id": "vendor-model-name", "name": "Mock", "provider": self.provider}

    def get_model_info(self) -> dict[str, Any]:
        return {**self.get_capabilities(), "context_window": 1000}

    async def close(self) -> None:
        self._closed = True


class FakeClock:
    """Manually advanced clock returning epoch seconds."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeDatetimeClock:
    """Manually advanced clock returning aware UTC datetimes."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 3, 15, 12, 30, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


def make_config(**settings: Any) -> RouterConfig:
    """Three-model config: o3 (default), claude-3-5-sonnet (fallback), gemini-pro."""
    return RouterConfig.from_dict({
        "models": {
            "o3": {"provider": "openai", "model_name": "o3", "cost_per_1k_tokens": 0.06},
            "claude-3-5-sonnet": {
                "provider": "anthropic",
                "model_name": "claude-3-5-sonnet-20241022",
                "cost_per_1k_tokens": 0.015,
            },
            "gemini-pro": {
                "provider": "google",
                "model_name": "gemini-pro",
                "cost_per_1k_tokens": 0.0005,
            },
        },
        "settings": {
            "default_model": "o3",
            "fallback_model": "claude-3-5-sonnet",
            **settings,
        },
    })


@pytest.fixture
def mock_adapter() -> MockAdapter:
    """A successful mock adapter."""
    return MockAdapter()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def router_config() -> RouterConfig:
    return make_config()
