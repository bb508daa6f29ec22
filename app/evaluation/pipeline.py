"""Evaluation Pipeline: orchestrator for the three-phase protocol.

For one passage:
  1. Chunker: split into sentence-aligned chunks
  2. Per chunk (concurrently, bounded by a semaphore):
       Phase 1 → stop if every score ≥ threshold
       else Phase 2 (pushback) → Phase 3 (Walmart metric)
     each phase = Prompt Builder → provider.complete → Normalizer
  3. Merge chunk results

Provider errors are fatal: the failing chunk's error propagates and the
other chunk tasks are cancelled. Cancelling the caller's task cancels every
in-flight provider call.

Input:  Passage, AnalysisType, AnalysisMode
Output: EvaluationResult (or DualEvaluationResult for two passages)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Sequence
from typing import TypeVar

from app.evaluation.chunker import chunk_text
from app.evaluation.merge import merge_chunk_results
from app.evaluation.normalizer import normalize
from app.evaluation.prompts import SYSTEM_PROMPT, build_prompt
from app.evaluation.questions import get_questions
from app.evaluation.types import (
    AnalysisMode,
    AnalysisType,
    DualEvaluationResult,
    EvaluationResult,
    LlmProvider,
    Passage,
    PhaseCompleted,
    PhaseResult,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def gather_or_cancel(*aws: Awaitable[T]) -> list[T]:
    """Like asyncio.gather, but the first failure cancels the siblings."""
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


class EvaluationPipeline:
    """One parametrized pipeline for every analysis type.

    Question sets and phase token budgets are data; the provider is
    injected so tests can pass a fake.
    """

    def __init__(
        self,
        provider: LlmProvider,
        *,
        max_chunk_size: int = 6000,
        chunk_unit: str = "chars",
        threshold: float = 95,
        phase_max_tokens: tuple[int, int, int] = (2000, 2000, 1500),
        chunk_concurrency: int = 4,
    ):
        self.provider = provider
        self.max_chunk_size = max_chunk_size
        self.chunk_unit = chunk_unit
        self.threshold = threshold
        self.phase_max_tokens = phase_max_tokens
        self.chunk_concurrency = max(chunk_concurrency, 1)

    @classmethod
    def from_settings(cls, provider: LlmProvider, settings) -> EvaluationPipeline:
        return cls(
            provider,
            max_chunk_size=settings.max_chunk_size,
            chunk_unit=settings.chunk_unit,
            threshold=settings.pushback_threshold,
            phase_max_tokens=(
                settings.phase1_max_tokens,
                settings.phase2_max_tokens,
                settings.phase3_max_tokens,
            ),
            chunk_concurrency=settings.chunk_concurrency,
        )

    async def _run_phase(
        self,
        phase: int,
        questions: Sequence[str],
        text: str,
        prior_scores: Sequence[float] | None,
        user_context: str,
    ) -> PhaseResult:
        prompt = build_prompt(questions, text, phase, prior_scores, user_context=user_context)
        raw = await self.provider.complete(
            prompt,
            self.phase_max_tokens[phase - 1],
            system_prompt=SYSTEM_PROMPT,
            json_mode=True,
        )
        return normalize(raw, questions)

    async def evaluate_chunk(
        self,
        text: str,
        questions: Sequence[str],
        *,
        user_context: str = "",
    ) -> tuple[PhaseResult, PhaseCompleted]:
        """Run the phase state machine for one chunk."""
        phase1 = await self._run_phase(1, questions, text, None, user_context)
        scores = phase1.scores()
        if all(score >= self.threshold for score in scores):
            logger.info("Phase 1: all %d scores >= %s, stopping early", len(scores), self.threshold)
            return phase1, PhaseCompleted.PHASE_1

        logger.debug("Phase 2: pushback (min phase-1 score %s)", min(scores))
        phase2 = await self._run_phase(2, questions, text, scores, user_context)

        logger.debug("Phase 3: Walmart metric (min phase-2 score %s)", min(phase2.scores()))
        phase3 = await self._run_phase(3, questions, text, phase2.scores(), user_context)
        return phase3, PhaseCompleted.ALL_THREE

    async def evaluate(
        self,
        passage: Passage,
        analysis_type: AnalysisType,
        mode: AnalysisMode = AnalysisMode.COMPREHENSIVE,
    ) -> EvaluationResult:
        """Evaluate one passage end to end."""
        questions = get_questions(analysis_type, mode)
        chunks = chunk_text(passage.text, self.max_chunk_size, self.chunk_unit)
        if len(chunks) > 1:
            logger.info(
                "Text chunked into %d parts for %s analysis",
                len(chunks),
                analysis_type.value,
                extra={"analysis_type": analysis_type.value},
            )

        semaphore = asyncio.Semaphore(self.chunk_concurrency)

        async def _bounded(chunk: str) -> tuple[PhaseResult, PhaseCompleted]:
            async with semaphore:
                return await self.evaluate_chunk(chunk, questions, user_context=passage.user_context)

        outcomes = await gather_or_cancel(*(_bounded(c) for c in chunks))
        chunk_results = [result for result, _ in outcomes]
        chunk_phases = [phase for _, phase in outcomes]

        merged = merge_chunk_results(chunk_results, questions)
        phase_completed = (
            PhaseCompleted.PHASE_1
            if all(p == PhaseCompleted.PHASE_1 for p in chunk_phases)
            else PhaseCompleted.ALL_THREE
        )
        return EvaluationResult(
            analysis_type=analysis_type,
            provider=self.provider.name,
            phase_completed=phase_completed,
            chunk_count=len(chunks),
            metrics=merged.metrics,
            chunk_phases=chunk_phases,
        )

    async def evaluate_dual(
        self,
        passage_a: Passage,
        passage_b: Passage,
        analysis_type: AnalysisType,
        mode: AnalysisMode = AnalysisMode.COMPREHENSIVE,
    ) -> DualEvaluationResult:
        """Evaluate two passages independently and concurrently, then zip."""
        result_a, result_b = await gather_or_cancel(
            self.evaluate(passage_a, analysis_type, mode),
            self.evaluate(passage_b, analysis_type, mode),
        )
        return DualEvaluationResult(
            analysis_type=analysis_type,
            provider=self.provider.name,
            passage_a=result_a,
            passage_b=result_b,
        )
