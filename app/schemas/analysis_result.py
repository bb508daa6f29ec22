"""Pydantic schemas for the legacy nine-metric comparative analysis.

Field names are camelCase because the frontend renders these objects as-is.
Every field has a placeholder default: a partially filled object posted back
by a client (e.g. with feedback) always validates into a complete one.

Scales: semantic distance and heat 0–100; derivative index, coherence,
accuracy, depth and clarity 0–10.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

UNAVAILABLE = "Analysis temporarily unavailable"


class _Section(BaseModel):
    # LLM replies may carry extra keys (e.g. coherenceCategory); keep them
    model_config = ConfigDict(extra="allow")


class FeedbackData(BaseModel):
    comment: str
    aiResponse: str
    isRevised: bool = False


class SupportingDocument(BaseModel):
    title: str = Field("", max_length=500)
    content: str = ""


# ---------------------------------------------------------------------------
# Per-passage entries
# ---------------------------------------------------------------------------


class LineageEntry(_Section):
    primaryInfluences: str | list[str] = UNAVAILABLE
    intellectualTrajectory: str = UNAVAILABLE
    secondaryInfluences: str | list[str] | None = None


class DistanceEntry(_Section):
    distance: float = 50
    label: str = "Analysis Unavailable"


class HeatmapItem(_Section):
    content: str = UNAVAILABLE
    heat: float = 50
    quote: str | None = None
    explanation: str | None = None


class DerivativeComponent(_Section):
    name: str = ""
    score: float = 5.0


class DerivativeEntry(_Section):
    score: float = 5.0
    components: list[DerivativeComponent] = Field(default_factory=list)
    description: str | None = None
    assessment: str | None = None


class ParasiteEntry(_Section):
    level: str = "Moderate"  # Low | Moderate | High
    elements: list[str] = Field(default_factory=lambda: ["Error"])
    assessment: str = UNAVAILABLE


class QualityEntry(_Section):
    score: float = 5.0
    assessment: str = UNAVAILABLE
    strengths: list[str] = Field(default_factory=lambda: ["Please try again later"])
    weaknesses: list[str] = Field(default_factory=lambda: ["API connection issue"])


# ---------------------------------------------------------------------------
# Sections (one per category the frontend renders)
# ---------------------------------------------------------------------------


class ConceptualLineage(_Section):
    passageA: LineageEntry = Field(default_factory=LineageEntry)
    passageB: LineageEntry = Field(default_factory=LineageEntry)
    feedback: FeedbackData | None = None


class SemanticDistance(_Section):
    passageA: DistanceEntry = Field(default_factory=DistanceEntry)
    passageB: DistanceEntry = Field(default_factory=DistanceEntry)
    keyFindings: list[str] = Field(default_factory=lambda: ["Analysis currently unavailable"])
    semanticInnovation: str = "Analysis currently unavailable - please try again later."
    feedback: FeedbackData | None = None


class NoveltyHeatmap(_Section):
    passageA: list[HeatmapItem] = Field(default_factory=lambda: [HeatmapItem()])
    passageB: list[HeatmapItem] = Field(default_factory=lambda: [HeatmapItem()])
    feedback: FeedbackData | None = None


class DerivativeIndex(_Section):
    passageA: DerivativeEntry = Field(default_factory=DerivativeEntry)
    passageB: DerivativeEntry = Field(default_factory=DerivativeEntry)
    feedback: FeedbackData | None = None


class ConceptualParasite(_Section):
    passageA: ParasiteEntry = Field(default_factory=ParasiteEntry)
    passageB: ParasiteEntry = Field(default_factory=ParasiteEntry)
    feedback: FeedbackData | None = None


class QualityMetric(_Section):
    """Shared shape of coherence, accuracy, depth and clarity."""

    passageA: QualityEntry = Field(default_factory=QualityEntry)
    passageB: QualityEntry = Field(default_factory=QualityEntry)
    feedback: FeedbackData | None = None


FEEDBACK_CATEGORIES = (
    "conceptualLineage",
    "semanticDistance",
    "noveltyHeatmap",
    "derivativeIndex",
    "conceptualParasite",
    "coherence",
    "accuracy",
    "depth",
    "clarity",
)


class AnalysisResult(_Section):
    """The complete nine-metric analysis object."""

    userContext: str | None = None
    conceptualLineage: ConceptualLineage = Field(default_factory=ConceptualLineage)
    semanticDistance: SemanticDistance = Field(default_factory=SemanticDistance)
    noveltyHeatmap: NoveltyHeatmap = Field(default_factory=NoveltyHeatmap)
    derivativeIndex: DerivativeIndex = Field(default_factory=DerivativeIndex)
    conceptualParasite: ConceptualParasite = Field(default_factory=ConceptualParasite)
    coherence: QualityMetric = Field(default_factory=QualityMetric)
    accuracy: QualityMetric = Field(default_factory=QualityMetric)
    depth: QualityMetric = Field(default_factory=QualityMetric)
    clarity: QualityMetric = Field(default_factory=QualityMetric)
    verdict: str = "Analysis temporarily unavailable. Please try again later or try a different AI provider."
    supportingDocuments: list[SupportingDocument] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
