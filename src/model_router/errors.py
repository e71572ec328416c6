"""
model-router: Exception hierarchy.

Every failure the router raises is a ``RouterError``. Vendor failures are
normalized by the adapters into ``ProviderError`` subclasses carrying one of
the codes in ``ErrorCode``, which is what lets the router apply one fallback
policy across vendors.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Machine-readable error codes."""

    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    AUTHENTICATION_FAILED = "AUTHENTICATION_FAILED"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    TIMEOUT = "TIMEOUT"
    API_ERROR = "API_ERROR"
    MODEL_NOT_AVAILABLE = "MODEL_NOT_AVAILABLE"
    MISSING_FIELD = "MISSING_FIELD"
    MAX_ITERATIONS_REACHED = "MAX_ITERATIONS_REACHED"


class RouterError(Exception):
    """Base class for all router errors."""

    code: ErrorCode | None = None

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": type(self).__name__,
            "code": self.code.value if self.code else None,
            "message": self.message,
        }


class MissingFieldError(RouterError):
    """A required request field is missing or empty."""

    code = ErrorCode.MISSING_FIELD

    def __init__(self, field: str) -> None:
        super().__init__(f"Missing required field: {field}")
        self.field = field


class RateLimitExceeded(RouterError):
    """Admission control rejected the request.

    Attributes:
        identifier: The client identifier that was limited.
        retry_after: Seconds until the window resets.
        kind: "burst" or "sustained".
    """

    kind = ""

    def __init__(self, message: str, identifier: str, retry_after: int) -> None:
        super().__init__(message)
        self.identifier = identifier
        self.retry_after = retry_after

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["kind"] = self.kind
        data["retry_after"] = self.retry_after
        return data


class BurstLimitExceeded(RateLimitExceeded):
    """Too many requests inside the short burst window."""

    kind = "burst"

    def __init__(self, identifier: str, retry_after: int) -> None:
        super().__init__(
            f"Burst rate limit exceeded. Try again in {retry_after} seconds.",
            identifier,
            retry_after,
        )


class SustainedLimitExceeded(RateLimitExceeded):
    """Too many requests inside the per-minute window."""

    kind = "sustained"
    code = ErrorCode.RATE_LIMIT_EXCEEDED

    def __init__(self, identifier: str, retry_after: int) -> None:
        super().__init__(
            f"Rate limit exceeded. Try again in {retry_after} seconds.",
            identifier,
            retry_after,
        )


class ModelNotAvailableError(RouterError):
    """The requested model id has no adapter. Never retried."""

    code = ErrorCode.MODEL_NOT_AVAILABLE

    def __init__(self, model: str, available: list[str]) -> None:
        super().__init__(
            f"Model not available: {model}. Available models: {', '.join(available)}"
        )
        self.model = model
        self.available = list(available)


class MaxIterationsReachedError(RouterError):
    """The tool-calling loop hit its round-trip cap."""

    code = ErrorCode.MAX_ITERATIONS_REACHED

    def __init__(self, iterations: int) -> None:
        super().__init__(f"Maximum tool-calling iterations reached ({iterations})")
        self.iterations = iterations


class ConfigError(ValueError):
    """Invalid router configuration. Fatal at load time."""


# ──────────────────────────────────────────────────────────────────────
# Vendor failures
# ──────────────────────────────────────────────────────────────────────


class ProviderError(RouterError):
    """A vendor call failed.

    Attributes:
        provider: Vendor tag of the adapter that failed.
        model: Vendor model name.
        status: HTTP status, if the vendor answered.
        duration_ms: Time spent in the adapter before failing.
        original_message: The raw vendor message.
    """

    code = ErrorCode.API_ERROR

    def __init__(
        self,
        message: str,
        provider: str = "",
        model: str = "",
        status: int | None = None,
        duration_ms: float = 0.0,
    ) -> None:
        super().__init__(message)
        self.provider = provider
        self.model = model
        self.status = status
        self.duration_ms = duration_ms
        self.original_message = message

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(provider=self.provider, model=self.model, status=self.status)
        return data

    @staticmethod
    def classify(message: str, status: int | None = None) -> ErrorCode:
        """Map a raw vendor message and HTTP status onto an error code."""
        text = message.lower()
        if status == 429 or re.search(r"rate.?limit", text):
            # 429 with an insufficient_quota body is a billing problem, not throttling
            if "quota" in text or "billing" in text:
                return ErrorCode.QUOTA_EXCEEDED
            return ErrorCode.RATE_LIMIT_EXCEEDED
        if status in (401, 403) or any(
            s in text for s in ("authentication", "unauthorized", "invalid_api_key", "api key")
        ):
            return ErrorCode.AUTHENTICATION_FAILED
        if "quota" in text or "billing" in text:
            return ErrorCode.QUOTA_EXCEEDED
        if status in (408, 504) or "timeout" in text or "timed out" in text:
            return ErrorCode.TIMEOUT
        return ErrorCode.API_ERROR

    @classmethod
    def from_failure(
        cls,
        message: str,
        provider: str = "",
        model: str = "",
        status: int | None = None,
        duration_ms: float = 0.0,
    ) -> ProviderError:
        """Build the ProviderError subclass matching the classified code."""
        error_cls = _ERRORS_BY_CODE[cls.classify(message, status)]
        return error_cls(
            message,
            provider=provider,
            model=model,
            status=status,
            duration_ms=duration_ms,
        )


class ProviderRateLimitError(ProviderError):
    code = ErrorCode.RATE_LIMIT_EXCEEDED


class AuthenticationFailedError(ProviderError):
    code = ErrorCode.AUTHENTICATION_FAILED


class QuotaExceededError(ProviderError):
    code = ErrorCode.QUOTA_EXCEEDED


class ProviderTimeoutError(ProviderError):
    code = ErrorCode.TIMEOUT


class ApiError(ProviderError):
    code = ErrorCode.API_ERROR


_ERRORS_BY_CODE: dict[ErrorCode, type[ProviderError]] = {
    ErrorCode.RATE_LIMIT_EXCEEDED: ProviderRateLimitError,
    ErrorCode.AUTHENTICATION_FAILED: AuthenticationFailedError,
    ErrorCode.QUOTA_EXCEEDED: QuotaExceededError,
    ErrorCode.TIMEOUT: ProviderTimeoutError,
    ErrorCode.API_ERROR: ApiError,
}
