"""
model-router: Usage, performance and cost metrics.

Keeps an append-only log of attempts plus running aggregates:
- lifetime totals (never rolled back)
- per-model aggregates
- day (YYYY-MM-DD) and hour (YYYY-MM-DDTHH) buckets, each with a per-model
  breakdown

All bucketing is in UTC. A periodic cleanup prunes the log (7 days), daily
buckets (30 days) and hourly buckets (7 days).
"""

from __future__ import annotations

import asyncio
import calendar
import contextlib
import logging
import threading
from collections.abc import Callable, Mapping
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

logger = logging.getLogger(__name__)

CLEANUP_INTERVAL = 3600.0
LOG_RETENTION = timedelta(days=7)
DAILY_RETENTION = timedelta(days=30)
HOURLY_RETENTION = timedelta(days=7)
PERIODS = ("all", "today", "week", "month")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value: str | datetime) -> datetime:
    dt = value if isinstance(value, datetime) else datetime.fromisoformat(value)
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _day_key(dt: datetime) -> str:
    return dt.strftime("%Y-%m-%d")


def _hour_key(dt: datetime) -> str:
    return dt.strftime("%Y-%m-%dT%H")


def _one_month_before(dt: datetime) -> datetime:
    year, month = (dt.year, dt.month - 1) if dt.month > 1 else (dt.year - 1, 12)
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def _percent(part: float, whole: float) -> float:
    return round(part / whole * 100, 2) if whole > 0 else 0.0


@dataclass
class MetricEntry:
    """One completed routing attempt.

    Attributes:
        model: Model id actually used (or "unknown").
        tokens: Total tokens consumed.
        cost: Cost in USD.
        duration: End-to-end duration in milliseconds.
        success: Whether the attempt produced a result.
        timestamp: ISO-8601 completion time.
    """

    model: str
    tokens: int = 0
    cost: float = 0.0
    duration: float = 0.0
    success: bool = True
    timestamp: str = field(default_factory=lambda: _utcnow().isoformat())

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> MetricEntry:
        entry = cls(model=data["model"])
        for name in ("tokens", "cost", "duration", "success", "timestamp"):
            if data.get(name) is not None:
                setattr(entry, name, data[name])
        return entry


@dataclass
class ModelAggregate:
    """Running per-model aggregate."""

    requests: int = 0
    tokens: int = 0
    cost: float = 0.0
    avg_duration: float = 0.0
    success_rate: float = 0.0
    total_duration: float = 0.0


@dataclass
class Totals:
    """Lifetime counters. Monotonically non-decreasing until reset()."""

    total_requests: int = 0
    total_tokens: int = 0
    total_cost: float = 0.0
    successful_requests: int = 0
    failed_requests: int = 0


def _new_bucket() -> dict[str, Any]:
    return {"requests": 0, "tokens": 0, "cost": 0.0, "models": {}}


def _add_to_bucket(bucket: dict[str, Any], entry: MetricEntry) -> None:
    bucket["requests"] += 1
    bucket["tokens"] += entry.tokens
    bucket["cost"] += entry.cost
    per_model = bucket["models"].setdefault(
        entry.model, {"requests": 0, "tokens": 0, "cost": 0.0}
    )
    per_model["requests"] += 1
    per_model["tokens"] += entry.tokens
    per_model["cost"] += entry.cost


class MetricsCollector:
    """Thread-safe in-memory metrics collector.

    Example::

        metrics = MetricsCollector()
        metrics.record(MetricEntry(model="o3", tokens=1200, cost=0.072,
                                   duration=2400, success=True))
        stats = metrics.get_stats(period="today")
    """

    def __init__(self, clock: Callable[[], datetime] = _utcnow) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._cleanup_task: asyncio.Task[None] | None = None
        self._init_state()

    def _init_state(self) -> None:
        self._requests: list[MetricEntry] = []
        self._totals = Totals()
        self._models: dict[str, ModelAggregate] = {}
        self._daily: dict[str, dict[str, Any]] = {}
        self._hourly: dict[str, dict[str, Any]] = {}

    # ──────────────────────────────────────────────────────────────────────
    # Recording
    # ──────────────────────────────────────────────────────────────────────

    def record(self, metric: MetricEntry | Mapping[str, Any]) -> None:
        """Append one attempt and update every aggregate."""
        entry = metric if isinstance(metric, MetricEntry) else MetricEntry.from_dict(metric)
        when = _parse_timestamp(entry.timestamp)

        with self._lock:
            self._requests.append(entry)

            self._totals.total_requests += 1
            self._totals.total_tokens += entry.tokens
            self._totals.total_cost += entry.cost
            if entry.success:
                self._totals.successful_requests += 1
            else:
                self._totals.failed_requests += 1

            agg = self._models.setdefault(entry.model, ModelAggregate())
            agg.requests += 1
            agg.tokens += entry.tokens
            agg.cost += entry.cost
            agg.total_duration += entry.duration
            agg.avg_duration = agg.total_duration / agg.requests
            model_log = [r for r in self._requests if r.model == entry.model]
            agg.success_rate = sum(1 for r in model_log if r.success) / len(model_log) * 100

            _add_to_bucket(self._daily.setdefault(_day_key(when), _new_bucket()), entry)
            _add_to_bucket(self._hourly.setdefault(_hour_key(when), _new_bucket()), entry)

    # ──────────────────────────────────────────────────────────────────────
    # Queries
    # ──────────────────────────────────────────────────────────────────────

    @property
    def totals(self) -> dict[str, Any]:
        with self._lock:
            return asdict(self._totals)

    @property
    def model_aggregates(self) -> dict[str, dict[str, Any]]:
        with self._lock:
            return {model: asdict(agg) for model, agg in self._models.items()}

    def __len__(self) -> int:
        return len(self._requests)

    def get_stats(self, period: str = "all", model: str | None = None) -> dict[str, Any]:
        """Aggregate statistics for a period, optionally for one model.

        Args:
            period: "all", "today", "week" (last 7 days) or "month".
            model: Restrict the overview, breakdowns and costs to this model.
        """
        if period not in PERIODS:
            raise ValueError(f"Unknown period '{period}'. Expected one of {PERIODS}")

        now = self._clock()
        with self._lock:
            filtered = self._filter(list(self._requests), period, now)
        if model:
            filtered = [r for r in filtered if r.model == model]

        successes = sum(1 for r in filtered if r.success)
        count = len(filtered)
        return {
            "overview": {
                "total_requests": count,
                "successful_requests": successes,
                "failed_requests": count - successes,
                "success_rate": _percent(successes, count),
                "total_tokens": sum(r.tokens for r in filtered),
                "total_cost": round(sum(r.cost for r in filtered), 4),
                "avg_duration": (
                    round(sum(r.duration for r in filtered) / count, 2) if count else 0.0
                ),
                "period": period,
                "timestamp": now.isoformat(),
            },
            "models": self.get_model_stats(filtered),
            "recent_requests": self.get_recent_requests(5),
            "daily_usage": self.get_daily_usage(7),
            "hourly_usage": self.get_hourly_usage(24),
            "cost_breakdown": self.get_cost_breakdown(filtered),
            "lifetime": self.totals,
        }

    @staticmethod
    def _filter(requests: list[MetricEntry], period: str, now: datetime) -> list[MetricEntry]:
        if period == "all":
            return requests
        if period == "today":
            cutoff = now.replace(hour=0, minute=0, second=0, microsecond=0)
        elif period == "week":
            cutoff = now - timedelta(days=7)
        else:
            cutoff = _one_month_before(now)
        return [r for r in requests if _parse_timestamp(r.timestamp) >= cutoff]

    @staticmethod
    def get_model_stats(requests: list[MetricEntry]) -> dict[str, dict[str, Any]]:
        """Per-model breakdown computed from ``requests`` alone."""
        grouped: dict[str, list[MetricEntry]] = {}
        for r in requests:
            grouped.setdefault(r.model, []).append(r)

        stats = {}
        for model, entries in grouped.items():
            successes = sum(1 for r in entries if r.success)
            stats[model] = {
                "requests": len(entries),
                "tokens": sum(r.tokens for r in entries),
                "cost": round(sum(r.cost for r in entries), 4),
                "avg_duration": round(sum(r.duration for r in entries) / len(entries), 2),
                "success_rate": _percent(successes, len(entries)),
            }
        return stats

    def get_recent_requests(self, limit: int = 10) -> list[dict[str, Any]]:
        """The last ``limit`` log entries, oldest first."""
        with self._lock:
            recent = self._requests[-limit:] if limit > 0 else []
            return [{**asdict(r), "cost": round(r.cost, 4)} for r in recent]

    def get_daily_usage(self, days: int = 7) -> list[dict[str, Any]]:
        """Exactly ``days`` daily points ending today, zero-filled."""
        today = self._clock()
        result = []
        with self._lock:
            for offset in range(days - 1, -1, -1):
                key = _day_key(today - timedelta(days=offset))
                bucket = self._daily.get(key)
                result.append({
                    "date": key,
                    "requests": bucket["requests"] if bucket else 0,
                    "tokens": bucket["tokens"] if bucket else 0,
                    "cost": round(bucket["cost"], 4) if bucket else 0.0,
                })
        return result

    def get_hourly_usage(self, hours: int = 24) -> list[dict[str, Any]]:
        """Exactly ``hours`` hourly points ending this hour, zero-filled."""
        now = self._clock()
        result = []
        with self._lock:
            for offset in range(hours - 1, -1, -1):
                key = _hour_key(now - timedelta(hours=offset))
                bucket = self._hourly.get(key)
                result.append({
                    "hour": key,
                    "requests": bucket["requests"] if bucket else 0,
                    "tokens": bucket["tokens"] if bucket else 0,
                    "cost": round(bucket["cost"], 4) if bucket else 0.0,
                })
        return result

    def get_day_bucket(self, key: str) -> dict[str, Any] | None:
        with self._lock:
            bucket = self._daily.get(key)
            return None if bucket is None else {**bucket, "models": dict(bucket["models"])}

    def get_hour_bucket(self, key: str) -> dict[str, Any] | None:
        with self._lock:
            bucket = self._hourly.get(key)
            return None if bucket is None else {**bucket, "models": dict(bucket["models"])}

    @staticmethod
    def get_cost_breakdown(requests: list[MetricEntry]) -> dict[str, Any]:
        """Cost per model with its share of the total."""
        by_model: dict[str, dict[str, Any]] = {}
        total = 0.0
        for r in requests:
            item = by_model.setdefault(r.model, {"cost": 0.0, "requests": 0, "percentage": 0.0})
            item["cost"] += r.cost
            item["requests"] += 1
            total += r.cost

        for item in by_model.values():
            item["percentage"] = _percent(item["cost"], total)
            item["cost"] = round(item["cost"], 4)

        return {
            "by_model": by_model,
            "total": round(total, 4),
            "avg_per_request": round(total / len(requests), 4) if requests else 0.0,
        }

    # ──────────────────────────────────────────────────────────────────────
    # Maintenance
    # ──────────────────────────────────────────────────────────────────────

    def cleanup(self) -> None:
        """Prune the log and time buckets. Lifetime totals are untouched."""
        now = self._clock()
        log_cutoff = now - LOG_RETENTION
        daily_cutoff = _day_key(now - DAILY_RETENTION)
        hourly_cutoff = _hour_key(now - HOURLY_RETENTION)

        with self._lock:
            before = len(self._requests)
            self._requests = [
                r for r in self._requests if _parse_timestamp(r.timestamp) > log_cutoff
            ]
            for key in [k for k in self._daily if k < daily_cutoff]:
                del self._daily[key]
            for key in [k for k in self._hourly if k < hourly_cutoff]:
                del self._hourly[key]
            pruned = before - len(self._requests)

        if pruned:
            logger.debug(f"Metrics cleanup pruned {pruned} log entr{'y' if pruned == 1 else 'ies'}")

    def reset(self) -> None:
        """Drop everything, including lifetime totals."""
        with self._lock:
            self._init_state()

    async def start(self) -> None:
        """Start the hourly cleanup task on the running event loop."""
        if self._cleanup_task is None or self._cleanup_task.done():
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())

    async def stop(self) -> None:
        """Cancel the cleanup task."""
        task, self._cleanup_task = self._cleanup_task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    @property
    def running(self) -> bool:
        return self._cleanup_task is not None and not self._cleanup_task.done()

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(CLEANUP_INTERVAL)
            self.cleanup()
