"""
model-router: Keyword-weighted model selection.

Maps a free-text query onto a capability vector, scores every enabled model
against its fixed capability profile, and picks (or ranks) the best fit.

Scoring:
1. Count whole-word keyword hits per capability axis in query + context
2. Apply heuristic boosts (question words, code punctuation, digits/operators)
3. Normalize the query weights so they sum to 1
4. Score = dot product of normalized weights with the model's 0..10 profile
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from types import MappingProxyType

from model_router.models import Capability, Preferences

logger = logging.getLogger(__name__)

C = Capability

CapabilityVector = Mapping[Capability, int]


def _profile(**scores: int) -> CapabilityVector:
    return MappingProxyType({axis: scores[axis.value] for axis in Capability})


# Static domain knowledge; not derived from ModelConfig. Iteration order is
# the tie-break order for selection.
CAPABILITY_MATRIX: Mapping[str, CapabilityVector] = MappingProxyType({
    "o3": _profile(
        reasoning=10, coding=9, analysis=10, math=10,
        creative=7, speed=4, cost=3, multimodal=0,
    ),
    "o3-pro": _profile(
        reasoning=10, coding=10, analysis=10, math=10,
        creative=8, speed=2, cost=1, multimodal=0,
    ),
    "o3-mini": _profile(
        reasoning=8, coding=8, analysis=8, math=8,
        creative=6, speed=8, cost=9, multimodal=0,
    ),
    "gemini-pro": _profile(
        reasoning=8, coding=8, analysis=9, math=8,
        creative=9, speed=8, cost=8, multimodal=10,
    ),
    "gemini-1.5-pro": _profile(
        reasoning=9, coding=8, analysis=9, math=8,
        creative=9, speed=7, cost=6, multimodal=10,
    ),
    "claude-3-5-sonnet": _profile(
        reasoning=9, coding=9, analysis=9, math=8,
        creative=9, speed=7, cost=6, multimodal=0,
    ),
    "gpt-4": _profile(
        reasoning=8, coding=8, analysis=8, math=7,
        creative=8, speed=6, cost=4, multimodal=0,
    ),
    "gpt-4-turbo": _profile(
        reasoning=8, coding=8, analysis=8, math=7,
        creative=8, speed=7, cost=5, multimodal=8,
    ),
})

KEYWORDS: Mapping[Capability, tuple[str, ...]] = MappingProxyType({
    C.REASONING: (
        "analyze", "reasoning", "logic", "solve", "complex", "think", "deduce",
        "infer", "conclude", "problem", "strategy", "approach", "plan",
        "why", "how", "explain", "understand", "reason", "because",
    ),
    C.CODING: (
        "code", "programming", "function", "algorithm", "debug", "implement",
        "javascript", "python", "typescript", "react", "api", "database",
        "git", "github", "sql", "html", "css", "json", "xml", "regex",
        "framework", "library", "package", "module", "class", "method",
    ),
    C.ANALYSIS: (
        "analyze", "examine", "review", "evaluate", "assess", "study",
        "investigate", "research", "data", "statistics", "metrics",
        "compare", "contrast", "summarize", "findings", "results",
    ),
    C.MATH: (
        "calculate", "equation", "formula", "mathematics", "algebra",
        "statistics", "probability", "number", "compute", "sum",
        "average", "percentage", "ratio", "derivative", "integral",
    ),
    C.CREATIVE: (
        "creative", "write", "story", "poem", "brainstorm", "design",
        "innovative", "generate", "create", "imagine", "invent",
        "artistic", "novel", "unique", "original", "inspiration",
    ),
    C.SPEED: (
        "quick", "fast", "urgent", "immediate", "asap", "hurry",
        "rapid", "swift", "prompt", "briefly", "short",
    ),
    C.COST: (
        "budget", "cheap", "cost", "affordable", "economical",
        "inexpensive", "free", "low-cost", "minimal",
    ),
    C.MULTIMODAL: (
        "image", "picture", "photo", "visual", "diagram", "chart",
        "graph", "figure", "illustration", "video", "audio",
    ),
})

_KEYWORD_PATTERNS: dict[Capability, list[re.Pattern[str]]] = {
    axis: [re.compile(rf"\b{re.escape(word)}\b", re.IGNORECASE) for word in words]
    for axis, words in KEYWORDS.items()
}

_QUESTION_PATTERN = re.compile(r"\b(what|why|how|when|where|which|explain|describe)\b", re.IGNORECASE)
_CODE_PUNCTUATION = re.compile(r"[{}();]")
_CODE_TOKENS = re.compile(r"\b(function|class|const|let|var)\b", re.IGNORECASE)
_MATH_SYMBOLS = re.compile(r"[\d+\-*/=<>%]")


def get_capability_vector(model_id: str) -> CapabilityVector | None:
    """Capability profile of a model, or None for models without one."""
    return CAPABILITY_MATRIX.get(model_id)


class ModelSelector:
    """Selects the best-fitting model for a query.

    Example::

        selector = ModelSelector(["o3", "claude-3-5-sonnet"], default_model="o3")
        selector.select_best_model("Write a short poem about the sea")
        # -> "claude-3-5-sonnet"
    """

    def __init__(self, available_models: Iterable[str], default_model: str) -> None:
        """Initialize the selector.

        Args:
            available_models: Ids of currently enabled models. Ids without a
                capability profile are never scored.
            default_model: Returned when no enabled model can be scored.
                Not validated here.
        """
        available = set(available_models)
        self.default_model = default_model
        self._candidates = [
            model_id for model_id in CAPABILITY_MATRIX if model_id in available
        ]
        unprofiled = sorted(available - set(CAPABILITY_MATRIX))
        if unprofiled:
            logger.debug(f"Models without a capability profile: {', '.join(unprofiled)}")

    @property
    def candidates(self) -> list[str]:
        """Scorable models in tie-break order."""
        return list(self._candidates)

    def analyze_query(self, query: str, context: str = "") -> dict[Capability, int]:
        """Derive the capability weights a query calls for."""
        text = f"{query} {context or ''}".lower()

        weights = {
            axis: sum(len(p.findall(text)) for p in patterns)
            for axis, patterns in _KEYWORD_PATTERNS.items()
        }

        if _QUESTION_PATTERN.search(text):
            weights[C.REASONING] += 2
        if _CODE_PUNCTUATION.search(query) or _CODE_TOKENS.search(text):
            weights[C.CODING] += 3
        if _MATH_SYMBOLS.search(query):
            weights[C.MATH] += 1

        return weights

    @staticmethod
    def calculate_score(
        query_vector: Mapping[Capability, float], model_vector: CapabilityVector
    ) -> float:
        """Dot product of the normalized query weights with a model profile.

        Axes missing from the model profile contribute zero.
        """
        total_weight = sum(query_vector.values()) or 1
        score = 0.0
        for axis, weight in query_vector.items():
            capability = model_vector.get(axis)
            if capability is not None:
                score += (weight / total_weight) * capability
        return score

    def select_best_model(
        self,
        query: str,
        context: str = "",
        preferences: Preferences | Mapping[str, str] | None = None,
    ) -> str:
        """Return the id of the best-scoring enabled model.

        An explicit ``preferences.model`` is returned unconditionally. With no
        scorable model the configured default is returned unvalidated.
        """
        prefs = Preferences.from_dict(preferences)
        if prefs.model:
            return prefs.model

        weights = self.analyze_query(query, context)
        prioritized = Capability.parse(prefs.prioritize)
        if prioritized is not None:
            weights[prioritized] *= 2

        best_model = self.default_model
        best_score = -1.0
        for model_id in self._candidates:
            score = self.calculate_score(weights, CAPABILITY_MATRIX[model_id])
            if score > best_score:
                best_score = score
                best_model = model_id

        logger.debug(f"Selected '{best_model}' (score={best_score:.2f})")
        return best_model

    def get_model_recommendations(
        self, query: str, context: str = "", limit: int = 3
    ) -> list[dict[str, object]]:
        """Rank all enabled models for a query, best first."""
        weights = self.analyze_query(query, context)
        recommendations = []
        for model_id in self._candidates:
            profile = CAPABILITY_MATRIX[model_id]
            recommendations.append({
                "model": model_id,
                "score": round(self.calculate_score(weights, profile), 2),
                "strengths": self.get_model_strengths(profile),
                "reasoning": self.explain_selection(weights, profile),
            })

        recommendations.sort(key=lambda r: r["score"], reverse=True)
        return recommendations[:max(limit, 0)]

    @staticmethod
    def get_model_strengths(profile: CapabilityVector) -> list[str]:
        """Top three axes by model score."""
        ranked = sorted(profile.items(), key=lambda item: item[1], reverse=True)
        return [axis.value for axis, _ in ranked[:3]]

    @staticmethod
    def explain_selection(
        weights: Mapping[Capability, int], profile: CapabilityVector
    ) -> str:
        """One-line, human-readable reason for recommending a model."""
        ranked = sorted(weights.items(), key=lambda item: item[1], reverse=True)
        top_needs = [axis for axis, weight in ranked[:2] if weight > 0]

        matching = [axis.value for axis in top_needs if profile.get(axis, 0) >= 8]
        if matching:
            return f"Excellent for {' and '.join(matching)}"
        if top_needs:
            return f"Good balance for {' and '.join(a.value for a in top_needs)}"
        return "Well-rounded model for general queries"
