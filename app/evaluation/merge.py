"""Combine per-chunk PhaseResults into one result per passage."""

from __future__ import annotations

import math
from collections.abc import Sequence

from app.evaluation.types import MetricResult, PhaseResult, round_half_up


def merge_chunk_results(chunk_results: Sequence[PhaseResult], questions: Sequence[str]) -> PhaseResult:
    """Merge normalized chunk results question by question.

    - score: half-up rounded mean over chunks (fsum, so order-independent)
    - quotation: from the chunk with the highest score, first-seen on ties
    - explanation: notes chunk count and average

    A single result is returned unchanged.

    Raises:
        ValueError: no chunk results.
    """
    if not chunk_results:
        raise ValueError("Cannot merge an empty list of chunk results")
    if len(chunk_results) == 1:
        return chunk_results[0]

    count = len(chunk_results)
    merged: dict[str, MetricResult] = {}
    for index, question in enumerate(questions):
        key = str(index)
        entries = [r.metrics[key] for r in chunk_results]
        average = round_half_up(math.fsum(e.score for e in entries) / count)

        best = entries[0]
        for entry in entries[1:]:
            if entry.score > best.score:
                best = entry

        merged[key] = MetricResult(
            question=question,
            score=average,
            quotation=best.quotation,
            explanation=f"Combined from {count} text chunks (avg: {average}/100)",
        )
    return PhaseResult(metrics=merged, strategy="merged")
