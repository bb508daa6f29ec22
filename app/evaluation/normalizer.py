"""Response Normalizer: turns free-form LLM replies into a PhaseResult.

Strategies, in order:
  1. direct:  json.loads on the trimmed reply
  2. fenced:  interior of a ```json ... ``` block
  3. braces:  slice from the first "{" to the last "}"
  4. manual:  regex scan per question index for score and quotation
  5. validation: every index missing, or whose score is not a number in
     0-100, is replaced by a fixed fallback MetricResult

The output always holds exactly one MetricResult per question. No parse
error ever reaches the caller. Normalizing the canonical JSON of a
PhaseResult returns the same PhaseResult.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable, Sequence
from typing import Any

from app.core.metrics import NORMALIZER_BACKFILLS, NORMALIZER_STRATEGY
from app.evaluation.types import MetricResult, PhaseResult

logger = logging.getLogger(__name__)

FALLBACK_SCORE = 50
SCORE_MIN = 0
SCORE_MAX = 100
FALLBACK_QUOTATION = "Response unavailable"
FALLBACK_EXPLANATION = "Fallback result"
MISSING_QUOTATION = "No quotation provided"
MISSING_EXPLANATION = "Analysis unavailable"

_FENCE_PATTERN = re.compile(r"```(?:json|JSON)?\s*([\s\S]+?)\s*```")
_SCORE_PATTERN = re.compile(r'"score"\s*:\s*"?(-?\d+(?:\.\d+)?)')
_QUOTATION_PATTERN = re.compile(r'"(?:quotation|quote)"\s*:\s*"((?:[^"\\]|\\.)*)"')
_EXPLANATION_PATTERN = re.compile(r'"explanation"\s*:\s*"((?:[^"\\]|\\.)*)"')


# ---------------------------------------------------------------------------
# Structured strategies (1–3)
# ---------------------------------------------------------------------------


def _loads(candidate: str) -> Any:
    try:
        return json.loads(candidate)
    except (json.JSONDecodeError, ValueError):
        return None


def parse_direct(raw: str) -> Any:
    return _loads(raw.strip())


def parse_fenced(raw: str) -> Any:
    match = _FENCE_PATTERN.search(raw)
    if not match:
        return None
    return _loads(match.group(1))


def parse_braces(raw: str) -> Any:
    start = raw.find("{")
    end = raw.rfind("}")
    if start == -1 or end <= start:
        return None
    return _loads(raw[start : end + 1])


_STRUCTURED_STRATEGIES: list[tuple[str, Callable[[str], Any]]] = [
    ("direct", parse_direct),
    ("fenced", parse_fenced),
    ("braces", parse_braces),
]


def extract_json_object(raw: str) -> dict[str, Any] | None:
    """Run the structured strategies and return the first JSON object found."""
    for _name, strategy in _STRUCTURED_STRATEGIES:
        parsed = strategy(raw)
        if isinstance(parsed, dict):
            return parsed
    return None


def _as_indexed(parsed: Any) -> dict[str, Any] | None:
    """Accept an object keyed by index, or a list in question order."""
    if isinstance(parsed, dict):
        return parsed
    if isinstance(parsed, list):
        return {str(i): item for i, item in enumerate(parsed)}
    return None


# ---------------------------------------------------------------------------
# Manual extraction (4)
# ---------------------------------------------------------------------------


def _unescape(value: str) -> str:
    decoded = _loads(f'"{value}"')
    return decoded if isinstance(decoded, str) else value


def manual_extract(raw: str, count: int) -> dict[str, dict[str, Any]]:
    """Regex scan of a broken reply, one window per question index.

    The window for index ``i`` runs from its ``"i":`` key to the next index
    key found after it. Only indices with a readable score are returned.
    """
    positions: list[tuple[int, int]] = []
    for i in range(count):
        match = re.search(rf'"{i}"\s*:', raw)
        if match:
            positions.append((match.start(), i))
    positions.sort()

    extracted: dict[str, dict[str, Any]] = {}
    for n, (start, index) in enumerate(positions):
        end = positions[n + 1][0] if n + 1 < len(positions) else len(raw)
        window = raw[start:end]

        score_match = _SCORE_PATTERN.search(window)
        if not score_match:
            continue
        entry: dict[str, Any] = {"score": float(score_match.group(1))}
        if entry["score"].is_integer():
            entry["score"] = int(entry["score"])

        quote_match = _QUOTATION_PATTERN.search(window)
        if quote_match:
            entry["quotation"] = _unescape(quote_match.group(1))
        explanation_match = _EXPLANATION_PATTERN.search(window)
        entry["explanation"] = _unescape(explanation_match.group(1)) if explanation_match else "Manual extraction"
        extracted[str(index)] = entry
    return extracted


# ---------------------------------------------------------------------------
# Validation (5)
# ---------------------------------------------------------------------------


def _valid_score(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    # Comparison never converts, so huge ints, NaN and inf all fail here
    return SCORE_MIN <= value <= SCORE_MAX


def _text_field(value: Any, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return value
    return default


def fallback_metric(question: str) -> MetricResult:
    return MetricResult(
        question=question,
        score=FALLBACK_SCORE,
        quotation=FALLBACK_QUOTATION,
        explanation=FALLBACK_EXPLANATION,
    )


def validate(data: dict[str, Any], questions: Sequence[str]) -> tuple[dict[str, MetricResult], int]:
    """Build one MetricResult per question; returns (metrics, backfilled count)."""
    metrics: dict[str, MetricResult] = {}
    backfilled = 0
    for index, question in enumerate(questions):
        key = str(index)
        entry = data.get(key)
        if not isinstance(entry, dict) or not _valid_score(entry.get("score")):
            metrics[key] = fallback_metric(question)
            backfilled += 1
            continue
        quotation = entry.get("quotation", entry.get("quote"))
        metrics[key] = MetricResult(
            question=question,
            score=entry["score"],
            quotation=_text_field(quotation, MISSING_QUOTATION),
            explanation=_text_field(entry.get("explanation"), MISSING_EXPLANATION),
        )
    return metrics, backfilled


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def normalize(raw: str | None, questions: Sequence[str]) -> PhaseResult:
    """Parse an LLM reply into exactly ``len(questions)`` MetricResults."""
    raw = raw or ""
    data: dict[str, Any] | None = None
    strategy = "fallback"

    for name, parse in _STRUCTURED_STRATEGIES:
        data = _as_indexed(parse(raw))
        if data is not None:
            strategy = name
            break

    if data is None:
        data = manual_extract(raw, len(questions))
        if data:
            strategy = "manual"

    metrics, backfilled = validate(data, questions)
    NORMALIZER_STRATEGY.labels(strategy=strategy).inc()

    if backfilled:
        NORMALIZER_BACKFILLS.inc(backfilled)
        logger.warning(
            "Normalizer (%s): %d/%d metrics replaced by fallback (reply length=%d)",
            strategy,
            backfilled,
            len(questions),
            len(raw),
        )
    elif strategy == "manual":
        logger.warning("Normalizer: reply was not valid JSON, recovered %d metrics by regex", len(metrics))

    return PhaseResult(metrics=metrics, strategy=strategy, backfilled=backfilled)
