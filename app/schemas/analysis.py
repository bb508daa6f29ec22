"""Request schemas for the analysis API."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from app.evaluation.types import AnalysisMode, Passage
from app.schemas.analysis_result import AnalysisResult, SupportingDocument

MAX_PASSAGE_CHARS = 500_000


class PassageIn(BaseModel):
    title: str = Field("", max_length=500)
    text: str = Field(..., min_length=1, max_length=MAX_PASSAGE_CHARS)
    userContext: str = Field("", max_length=10_000)

    def to_passage(self) -> Passage:
        return Passage(title=self.title, text=self.text, user_context=self.userContext)


class SingleAnalysisRequest(BaseModel):
    passage: PassageIn
    analysisMode: AnalysisMode = AnalysisMode.COMPREHENSIVE
    provider: str | None = Field(None, description="openai | anthropic | perplexity | deepseek")


class CompareAnalysisRequest(BaseModel):
    passageA: PassageIn
    passageB: PassageIn
    analysisMode: AnalysisMode = AnalysisMode.COMPREHENSIVE
    provider: str | None = None


class DownloadRequest(BaseModel):
    analysisData: dict[str, Any]


class ComparativeRequest(BaseModel):
    """Nine-metric analysis: passageB omitted → single passage vs. the norm."""

    passageA: PassageIn
    passageB: PassageIn | None = None
    provider: str | None = None


class FeedbackRequest(BaseModel):
    category: str = Field(
        ...,
        pattern=r"^(conceptualLineage|semanticDistance|noveltyHeatmap|derivativeIndex"
        r"|conceptualParasite|coherence|accuracy|depth|clarity)$",
    )
    feedback: str = Field(..., min_length=1, max_length=20_000)
    originalResult: AnalysisResult
    passageA: PassageIn
    passageB: PassageIn | None = None
    isSinglePassageMode: bool = False
    supportingDocument: SupportingDocument | None = None
    provider: str | None = None


class FeedbackResponse(BaseModel):
    aiResponse: str
    isRevised: bool
    revisedResult: AnalysisResult
