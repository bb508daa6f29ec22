"""Core types and DTOs for the Passage Evaluation Engine."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Protocol


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class AnalysisType(str, Enum):
    """Which question set a passage is evaluated against."""

    INTELLIGENCE = "intelligence"
    ORIGINALITY = "originality"
    COGENCY = "cogency"
    QUALITY = "quality"

    @classmethod
    def from_mode(cls, mode: str) -> AnalysisType:
        """Map a URL mode segment to an analysis type.

        Raises:
            ValueError: unknown mode.
        """
        mode = mode.strip().lower()
        if mode == "overall_quality":
            return cls.QUALITY
        return cls(mode)


class AnalysisMode(str, Enum):
    """Question list depth."""

    QUICK = "quick"  # 5 questions per type
    COMPREHENSIVE = "comprehensive"  # Full protocol lists


class PhaseCompleted(str, Enum):
    """How far the pushback protocol ran."""

    PHASE_1 = "phase_1"  # Every phase-1 score met the threshold
    ALL_THREE = "all_three"


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Passage:
    """A caller-owned passage of text to evaluate."""

    title: str = ""
    text: str = ""
    user_context: str = ""


class LlmProvider(Protocol):
    """Anything that turns a prompt into raw reply text."""

    name: str

    async def complete(
        self,
        prompt: str,
        max_tokens: int = 2000,
        *,
        system_prompt: str = "",
        json_mode: bool = False,
    ) -> str: ...


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


def round_half_up(value: float) -> int:
    """Round to the nearest integer, .5 away from zero for positives."""
    return int(math.floor(value + 0.5))


@dataclass
class MetricResult:
    """Answer to one question."""

    question: str
    score: float = 50
    quotation: str = ""
    explanation: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "question": self.question,
            "score": self.score,
            "quotation": self.quotation,
            "explanation": self.explanation,
        }


@dataclass
class PhaseResult:
    """Normalized output of one LLM call, keyed "0".."n-1" by question index."""

    metrics: dict[str, MetricResult] = field(default_factory=dict)
    strategy: str = field(default="", compare=False)  # Which normalizer strategy parsed it
    backfilled: int = field(default=0, compare=False)  # Entries replaced by the fallback

    def scores(self) -> list[float]:
        return [self.metrics[k].score for k in sorted(self.metrics, key=int)]

    def to_dict(self) -> dict[str, dict[str, Any]]:
        return {k: self.metrics[k].to_dict() for k in sorted(self.metrics, key=int)}


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class EvaluationResult:
    """Final, validated result for one passage and one analysis type."""

    analysis_type: AnalysisType
    provider: str
    phase_completed: PhaseCompleted
    chunk_count: int = 1
    metrics: dict[str, MetricResult] = field(default_factory=dict)
    timestamp: str = field(default_factory=_utc_now)
    chunk_phases: list[PhaseCompleted] = field(default_factory=list)  # One per chunk, in order

    @property
    def overall_score(self) -> int:
        """Rounded mean of the metric scores (0 when there are none)."""
        if not self.metrics:
            return 0
        return round_half_up(math.fsum(m.score for m in self.metrics.values()) / len(self.metrics))

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {k: self.metrics[k].to_dict() for k in sorted(self.metrics, key=int)}
        data.update(
            provider=self.provider,
            analysis_type=self.analysis_type.value,
            phase_completed=self.phase_completed.value,
            chunk_count=self.chunk_count,
            overall_score=self.overall_score,
            timestamp=self.timestamp,
        )
        return data


@dataclass
class DualEvaluationResult:
    """Two independent evaluations zipped per question."""

    analysis_type: AnalysisType
    provider: str
    passage_a: EvaluationResult
    passage_b: EvaluationResult
    timestamp: str = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        for key in sorted(self.passage_a.metrics, key=int):
            a = self.passage_a.metrics[key]
            b = self.passage_b.metrics[key]
            data[key] = {
                "question": a.question,
                "passageA": {"score": a.score, "quotation": a.quotation, "explanation": a.explanation},
                "passageB": {"score": b.score, "quotation": b.quotation, "explanation": b.explanation},
            }
        data.update(
            provider=self.provider,
            analysis_type=f"{self.analysis_type.value}_dual",
            phase_completed={
                "passageA": self.passage_a.phase_completed.value,
                "passageB": self.passage_b.phase_completed.value,
            },
            overall_score={
                "passageA": self.passage_a.overall_score,
                "passageB": self.passage_b.overall_score,
            },
            timestamp=self.timestamp,
        )
        return data
