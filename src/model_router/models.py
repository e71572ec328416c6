"""
model-router: Data models for requests, results and model configuration.

All public types used throughout the library are defined here.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from model_router.errors import MissingFieldError

ANONYMOUS_CLIENT = "anonymous"


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


class Capability(str, Enum):
    """Capability axes used to score how well a model fits a query.

    Declaration order is the canonical axis order.
    """

    REASONING = "reasoning"
    CODING = "coding"
    ANALYSIS = "analysis"
    MATH = "math"
    CREATIVE = "creative"
    SPEED = "speed"
    COST = "cost"
    MULTIMODAL = "multimodal"

    @classmethod
    def parse(cls, value: str | None) -> Capability | None:
        """Return the axis named by ``value``, or None if it names no axis."""
        if value is None:
            return None
        try:
            return cls(str(value).lower())
        except ValueError:
            return None


@dataclass(frozen=True)
class ModelConfig:
    """Configuration for one routable model.

    Loaded once at startup and never mutated afterwards.

    Attributes:
        provider: Vendor tag ("openai", "google", "anthropic").
        model_name: Vendor-side model identifier (e.g., "o3", "gemini-1.5-pro").
        name: Human-readable display name.
        capabilities: Free-form capability tags advertised by the model.
        cost_per_1k_tokens: USD per 1000 tokens, applied to total tokens.
        default_params: Default generation parameters (temperature, max_tokens...).
        rate_limit: Vendor rate-limit hints, informational only.
        timeout_ms: HTTP timeout for vendor calls.
        enabled: Disabled models get no adapter and are never selected.
        api_key: Explicit API key; falls back to the provider's env variable.
        base_url: Override the vendor API base URL.
    """

    provider: str
    model_name: str
    name: str = ""
    capabilities: tuple[str, ...] = ()
    cost_per_1k_tokens: float = 0.0
    default_params: dict[str, Any] = field(default_factory=dict)
    rate_limit: dict[str, Any] = field(default_factory=dict)
    timeout_ms: int = 30000
    enabled: bool = True
    api_key: str | None = None
    base_url: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ModelConfig:
        """Build a ModelConfig from its plain-dict configuration form."""
        cost = float(data.get("cost_per_1k_tokens") or 0.0)
        if cost < 0:
            raise ValueError(f"cost_per_1k_tokens must be non-negative, got {cost}")
        model_name = data.get("model_name") or ""
        return cls(
            provider=str(data.get("provider", "")).lower(),
            model_name=model_name,
            name=data.get("name") or model_name,
            capabilities=tuple(data.get("capabilities") or ()),
            cost_per_1k_tokens=cost,
            default_params=dict(data.get("default_params") or {}),
            rate_limit=dict(data.get("rate_limit") or {}),
            timeout_ms=int(data.get("timeout_ms") or 30000),
            enabled=data.get("enabled", True) is not False,
            api_key=data.get("api_key"),
            base_url=data.get("base_url"),
        )


@dataclass
class Preferences:
    """Caller overrides for model selection.

    Attributes:
        model: Explicit model id; trusted as-is by the selector.
        prioritize: Capability axis whose query weight is doubled.
    """

    model: str | None = None
    prioritize: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | Preferences | None) -> Preferences:
        if isinstance(data, Preferences):
            return data
        if not data:
            return cls()
        return cls(model=data.get("model"), prioritize=data.get("prioritize"))


@dataclass
class QueryRequest:
    """A query submitted to the router.

    Attributes:
        query: The query text. Required and non-empty.
        context: Additional context (file contents, previous tool output...).
        model: Explicit model id. Wins over automatic selection.
        preferences: Selection overrides.
        client_id: Rate-limit identity of the caller.
        user_id: Secondary identity, used when client_id is absent.
        max_tokens: Generation cap; adapter default when None.
        temperature: Sampling temperature; adapter default when None.
        reasoning_level: Reasoning effort hint for reasoning models.
        enable_functions: Allow the adapter to use the injected tool bridge.
        timeout: Caller timeout in seconds for the vendor call.
        limit: Number of recommendations to return.
    """

    query: str
    context: str = ""
    model: str | None = None
    preferences: Preferences = field(default_factory=Preferences)
    client_id: str | None = None
    user_id: str | None = None
    max_tokens: int | None = None
    temperature: float | None = None
    reasoning_level: str | None = None
    enable_functions: bool = False
    timeout: float | None = None
    limit: int = 3

    @classmethod
    def from_args(cls, args: Mapping[str, Any] | QueryRequest) -> QueryRequest:
        """Build a request from transport arguments.

        Raises:
            MissingFieldError: If ``query`` is missing or blank.
        """
        if isinstance(args, QueryRequest):
            if not args.query or not args.query.strip():
                raise MissingFieldError("query")
            return args

        query = args.get("query")
        if not isinstance(query, str) or not query.strip():
            raise MissingFieldError("query")

        return cls(
            query=query,
            context=args.get("context") or "",
            model=args.get("model") or None,
            preferences=Preferences.from_dict(args.get("preferences")),
            client_id=args.get("client_id"),
            user_id=args.get("user_id"),
            max_tokens=args.get("max_tokens"),
            temperature=args.get("temperature"),
            reasoning_level=args.get("reasoning_level"),
            enable_functions=bool(args.get("enable_functions", False)),
            timeout=args.get("timeout"),
            limit=int(args.get("limit") or 3),
        )

    @property
    def client_identifier(self) -> str:
        """Identity used for rate limiting. Unauthenticated callers share one bucket."""
        return self.client_id or self.user_id or ANONYMOUS_CLIENT


@dataclass
class TokenUsage:
    """Token counts normalized across vendors."""

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    reasoning_tokens: int = 0


@dataclass
class QueryResult:
    """Normalized result of a model call.

    Attributes:
        response: The generated text.
        model: Model id that produced the response.
        usage: Token usage.
        cost: Computed cost in USD.
        duration: Elapsed time in milliseconds.
        timestamp: ISO-8601 completion time (UTC).
    """

    response: str
    model: str
    usage: TokenUsage = field(default_factory=TokenUsage)
    cost: float = 0.0
    duration: float = 0.0
    timestamp: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def system(cls, payload: Mapping[str, Any]) -> QueryResult:
        """Wrap an administrative payload as a zero-cost "system" result."""
        return cls(response=json.dumps(payload, indent=2, default=str), model="system")
