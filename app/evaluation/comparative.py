"""Legacy nine-metric comparative analysis.

One JSON-mode call evaluates a passage against a norm of typical writing in
its domain, or two passages against each other, across conceptual lineage,
semantic distance, novelty heatmap, derivative index, conceptual parasite,
coherence, accuracy, depth and clarity.

The reply is parsed with the normalizer's JSON strategies and then
backfilled: every field the frontend renders is present afterwards, with
deterministic placeholders where the model left gaps or gave the wrong type.
"""

from __future__ import annotations

import copy
import logging
import math
from datetime import datetime, timezone
from typing import Any

from app.evaluation.normalizer import extract_json_object
from app.evaluation.types import LlmProvider, Passage
from app.schemas.analysis_result import AnalysisResult

logger = logging.getLogger(__name__)

COMPARATIVE_SYSTEM_PROMPT = """You are an expert in evaluating the originality and quality of intellectual writing across all disciplines. You evaluate conceptual originality, not plagiarism or surface similarity.

Your evaluations must include quantitative scoring and qualitative insights on a text's intellectual and stylistic contributions:
1. Conceptual Lineage - where ideas come from; are they new or responses to existing ideas
2. Semantic Distance - how far the text moves from its predecessors; reshuffling or truly novel
3. Novelty Heatmap - where the real conceptual thinking happens, paragraph by paragraph
4. Derivative Index - 0 is recycled, 10 is wholly original
5. Conceptual Parasite Detection - operating in old debates without adding anything new
6. Coherence, Accuracy, Depth, Clarity - whether the text, original or not, holds up

For philosophical analysis: theoretical assertions do not require empirical testing, analogical reasoning is valid, and conceptual innovation is valued over empirical demonstration.

Quantitative scales:
- Semantic distance: 0-100 (higher = more original)
- Novelty heat: 0-100 per paragraph
- Derivative index: 0-10 (higher = more original)
- Coherence, accuracy, depth, clarity: 0-10 (higher = better)

Originality should only be valued when counterbalanced by merit. Innovative but incoherent work should not be rated highly.

OUTPUT FORMAT: a single JSON object matching exactly the structure requested. No text outside the JSON."""

_SCHEMA_TEMPLATE = """{{
  "conceptualLineage": {{
{lineage}
  }},
  "semanticDistance": {{
{distance},
    "keyFindings": ["finding 1", "finding 2", "finding 3"],
    "semanticInnovation": "assessment of semantic innovation"
  }},
  "noveltyHeatmap": {{
{heatmap}
  }},
  "derivativeIndex": {{
{derivative}
  }},
  "conceptualParasite": {{
{parasite}
  }},
  "coherence": {{
{quality}
  }},
  "accuracy": {{
{quality}
  }},
  "depth": {{
{quality}
  }},
  "clarity": {{
{quality}
  }},
  "verdict": "one-paragraph overall judgment"
}}"""


def _per_passage(keys: list[str], body: str) -> str:
    return ",\n".join(f'    "{k}": {body}' for k in keys)


def build_comparative_prompt(passage_a: Passage, passage_b: Passage | None = None) -> str:
    """User prompt for one passage vs. the norm, or two passages."""
    single = passage_b is None
    keys = ["passageA"] if single else ["passageA", "passageB"]
    schema = _SCHEMA_TEMPLATE.format(
        lineage=_per_passage(
            keys,
            '{"primaryInfluences": "key intellectual influences", '
            '"intellectualTrajectory": "how it builds on or diverges from them"}',
        ),
        distance=_per_passage(keys, '{"distance": <0-100>, "label": "Low/Moderate/High Distance"}'),
        heatmap=_per_passage(
            keys,
            '[{"content": "summary of paragraph", "heat": <0-100>, '
            '"quote": "direct quote", "explanation": "why this quote shows originality"}]',
        ),
        derivative=_per_passage(
            keys,
            '{"score": <0-10>, "components": [{"name": "Conceptual Innovation", "score": <0-10>}, '
            '{"name": "Methodological Novelty", "score": <0-10>}, '
            '{"name": "Contextual Application", "score": <0-10>}]}',
        ),
        parasite=_per_passage(
            keys, '{"level": "Low/Moderate/High", "elements": ["..."], "assessment": "..."}'
        ),
        quality=_per_passage(
            keys, '{"score": <0-10>, "assessment": "...", "strengths": ["..."], "weaknesses": ["..."]}'
        ),
    )

    title_a = passage_a.title or ("Your Passage" if single else "Passage A")
    parts: list[str] = []
    if single:
        parts.append(
            "Analyze this single passage against an internal norm of average originality "
            "for writing in the same domain. Do not compare it to any other text."
        )
        parts.append(f'PASSAGE: "{title_a}"\n{passage_a.text}')
    else:
        title_b = passage_b.title or "Passage B"
        parts.append("Analyze and compare these two passages.")
        parts.append(f"Passage A ({title_a}):\n{passage_a.text}")
        parts.append(f"Passage B ({title_b}):\n{passage_b.text}")
    if passage_a.user_context:
        parts.append(f"ADDITIONAL CONTEXT: {passage_a.user_context}")
    parts.append("Return the analysis in the following JSON format:\n" + schema)
    return "\n\n".join(parts)


# ---------------------------------------------------------------------------
# Backfill
# ---------------------------------------------------------------------------


def split_into_paragraphs(text: str) -> list[str]:
    """Split on newlines; text without newlines is one paragraph."""
    if not text:
        return []
    paragraphs = [p for p in text.splitlines() if p.strip()]
    if not paragraphs and text.strip():
        return [text.strip()]
    return paragraphs


def _short_quote(paragraph: str) -> str:
    return paragraph[:40] + "..." if len(paragraph) > 40 else paragraph


def _quality_default(score: float, assessment: str, strengths: list[str], weaknesses: list[str]) -> dict:
    return {"score": score, "assessment": assessment, "strengths": strengths, "weaknesses": weaknesses}


_PASSAGE_A_DEFAULTS: dict[str, Any] = {
    "conceptualLineage": {
        "primaryInfluences": "Analysis temporarily unavailable",
        "intellectualTrajectory": "Analysis temporarily unavailable",
    },
    "semanticDistance": {"distance": 50, "label": "Analysis Unavailable"},
    "derivativeIndex": {
        "score": 5.0,
        "components": [
            {"name": "Conceptual Innovation", "score": 5.0},
            {"name": "Methodological Novelty", "score": 5.0},
            {"name": "Contextual Application", "score": 5.0},
        ],
    },
    "conceptualParasite": {
        "level": "Moderate",
        "elements": ["Builds on existing frameworks", "Extends current knowledge"],
        "assessment": "Analysis temporarily unavailable",
    },
    "coherence": _quality_default(
        5.0,
        "The coherence of this passage has not been fully evaluated.",
        ["Consistent terminology", "Logical structure"],
        ["Could improve clarity in some sections"],
    ),
    "quality": _quality_default(
        5.0, "Analysis temporarily unavailable", ["Please try again later"], ["API connection issue"]
    ),
}

# Passage B is the "norm" baseline in single mode
_NORM_DEFAULTS: dict[str, Any] = {
    "conceptualLineage": {
        "primaryInfluences": "Standard sources in this domain",
        "intellectualTrajectory": "Follows established patterns",
    },
    "semanticDistance": {"distance": 50, "label": "Average/Typical Distance (Norm Baseline)"},
    "derivativeIndex": _PASSAGE_A_DEFAULTS["derivativeIndex"],
    "conceptualParasite": {
        "level": "Moderate",
        "elements": ["Typical patterns of thinking", "Standard conceptual frameworks"],
        "assessment": "Typical reliance on established debates",
    },
    "coherence": _quality_default(
        6.0,
        "This represents an average level of coherence typical for texts in this domain.",
        ["Standard logical flow", "Conventional structure"],
        ["Typical clarity issues found in average texts"],
    ),
    "quality": _quality_default(
        5.0, "Average level typical for texts in this domain", ["N/A"], ["N/A"]
    ),
}

_DUAL_B_DEFAULTS: dict[str, Any] = {
    **_NORM_DEFAULTS,
    "semanticDistance": {"distance": 50, "label": "Analysis Unavailable"},
    "conceptualParasite": {
        "level": "Moderate",
        "elements": ["Draws from established sources", "Utilizes recognized patterns"],
        "assessment": "Analysis temporarily unavailable",
    },
    "coherence": _quality_default(
        5.0,
        "This represents an average level of coherence.",
        ["Standard logical flow", "Conventional structure"],
        ["Typical clarity issues found in average texts"],
    ),
}

_NORM_HEATMAP = [
    {
        "content": "Typical writing in this domain follows conventional structures and patterns",
        "heat": 50,
        "quote": "Standard academic phrasing and terminology",
        "explanation": "This represents the conventional approach found in most scholarly writing.",
    },
    {
        "content": "Standard introduction of established concepts without novel framing",
        "heat": 50,
        "quote": "As scholars have long established...",
        "explanation": "This exemplifies typical references to established authorities without new insight.",
    },
]

_LIST_OR_STR_KEYS = {"primaryInfluences", "secondaryInfluences"}
_OPTIONAL_TEXT_KEYS = {"description", "assessment"}


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:  # int beyond float range
        return False


def _is_str_list(value: Any) -> bool:
    return isinstance(value, list) and bool(value) and all(isinstance(v, str) for v in value)


def _keep_extra(key: str, value: Any) -> bool:
    """Extra keys from the reply survive unless they would break a typed field."""
    if key == "feedback":
        return False  # Attached only by feedback processing
    if key in _OPTIONAL_TEXT_KEYS:
        return isinstance(value, str)
    if key in _LIST_OR_STR_KEYS:
        return isinstance(value, str) or _is_str_list(value)
    return True


def _fill(value: Any, default: Any, key: str = "") -> Any:
    """Return ``value`` where it matches the default's shape, else the default.

    Dicts merge key by key and keep compatible extra keys from ``value``.
    """
    if isinstance(default, dict):
        if not isinstance(value, dict):
            return copy.deepcopy(default)
        merged = {k: v for k, v in value.items() if k not in default and _keep_extra(k, v)}
        for k, dv in default.items():
            merged[k] = _fill(value.get(k), dv, k)
        return merged
    if isinstance(default, list):
        if not isinstance(value, list) or not value:
            return copy.deepcopy(default)
        if isinstance(default[0], dict):
            items = [item for item in value if isinstance(item, dict)]
            # Item i is filled from default i; extra items reuse the last default
            return [
                _fill(item, default[min(i, len(default) - 1)]) for i, item in enumerate(items)
            ] or copy.deepcopy(default)
        return [str(item) for item in value if isinstance(item, (str, int, float))] or copy.deepcopy(default)
    if _is_number(default):
        return value if _is_number(value) else default
    if isinstance(default, str):
        if isinstance(value, str) and value.strip():
            return value
        if key in _LIST_OR_STR_KEYS and _is_str_list(value):
            return value
        return default
    return value if value is not None else default


def _heatmap_from_paragraphs(paragraphs: list[str], explanation: str) -> list[dict[str, Any]]:
    return [
        {
            "content": p[:100] + "...",
            "heat": 50,
            "quote": _short_quote(p),
            "explanation": explanation,
        }
        for p in paragraphs
    ]


def _fill_heatmap(value: Any, paragraphs: list[str], explanation: str, empty_default: list[dict]) -> list[dict]:
    items = [item for item in value if isinstance(item, dict)] if isinstance(value, list) else []
    if not items:
        return _heatmap_from_paragraphs(paragraphs, explanation) or copy.deepcopy(empty_default)

    filled = []
    for index, item in enumerate(items):
        paragraph = paragraphs[index] if index < len(paragraphs) else ""
        entry = dict(item)
        entry["content"] = _fill(item.get("content"), paragraph[:100] or "Paragraph summary unavailable")
        entry["heat"] = _fill(item.get("heat"), 50)
        entry["quote"] = _fill(item.get("quote"), _short_quote(paragraph) or "No quotation provided")
        entry["explanation"] = _fill(
            item.get("explanation"), "This quote highlights a key conceptual element in the passage."
        )
        filled.append(entry)
    return filled


def backfill_analysis_result(
    data: dict[str, Any] | None,
    passage_a: Passage,
    passage_b: Passage | None = None,
    *,
    provider: str = "",
) -> AnalysisResult:
    """Complete a parsed reply into a valid AnalysisResult.

    Deterministic: the same reply and passages always give the same result.
    ``passage_b=None`` means single-passage mode (passage B is the norm).
    """
    data = data if isinstance(data, dict) else {}
    single = passage_b is None
    b_defaults = _NORM_DEFAULTS if single else _DUAL_B_DEFAULTS
    sides = {"passageA": _PASSAGE_A_DEFAULTS, "passageB": b_defaults}

    def section(name: str, default_key: str, extra: dict[str, Any] | None = None) -> dict[str, Any]:
        raw = data.get(name) if isinstance(data.get(name), dict) else {}
        defaults = {side: d[default_key] for side, d in sides.items()}
        defaults.update(extra or {})
        return _fill(raw, defaults)

    result: dict[str, Any] = {k: v for k, v in data.items() if k not in AnalysisResult.model_fields}
    result["conceptualLineage"] = section("conceptualLineage", "conceptualLineage")
    result["semanticDistance"] = section(
        "semanticDistance",
        "semanticDistance",
        {
            "keyFindings": (
                ["Innovative use of concepts", "Novel approach to existing ideas", "Creative application of methodology"]
                if single
                else ["Different conceptual approaches", "Varying levels of originality", "Distinct methodological frameworks"]
            ),
            "semanticInnovation": (
                "The passage demonstrates originality in its approach to the subject matter, "
                "showing innovation compared to typical texts in this domain."
                if single
                else "The passages demonstrate varying levels of semantic innovation, with different "
                "approaches to integrating concepts and ideas."
            ),
        },
    )
    result["derivativeIndex"] = section("derivativeIndex", "derivativeIndex")
    result["conceptualParasite"] = section("conceptualParasite", "conceptualParasite")
    result["coherence"] = section("coherence", "coherence")
    for name in ("accuracy", "depth", "clarity"):
        result[name] = section(name, "quality")

    heatmap_raw = data.get("noveltyHeatmap") if isinstance(data.get("noveltyHeatmap"), dict) else {}
    heatmap = {
        k: v for k, v in heatmap_raw.items() if k not in ("passageA", "passageB") and _keep_extra(k, v)
    }
    heatmap["passageA"] = _fill_heatmap(
        heatmap_raw.get("passageA"),
        split_into_paragraphs(passage_a.text),
        "This section illustrates key concepts in the passage.",
        [{"content": "Analysis temporarily unavailable - please try again later.", "heat": 50}],
    )
    heatmap["passageB"] = _fill_heatmap(
        heatmap_raw.get("passageB"),
        [] if single else split_into_paragraphs(passage_b.text),
        "This section demonstrates typical reasoning in the passage.",
        _NORM_HEATMAP if single else [{"content": "Standard paragraph in this domain.", "heat": 50}],
    )
    result["noveltyHeatmap"] = heatmap

    result["verdict"] = _fill(
        data.get("verdict"),
        "Analysis temporarily unavailable. Please try again later or try a different AI provider.",
    )
    if passage_a.user_context:
        result["userContext"] = passage_a.user_context
    result["metadata"] = {
        "provider": provider,
        "mode": "single" if single else "dual",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    return AnalysisResult.model_validate(result)


async def run_comparative_analysis(
    provider: LlmProvider,
    passage_a: Passage,
    passage_b: Passage | None = None,
    *,
    max_tokens: int = 4000,
) -> AnalysisResult:
    """Run the nine-metric analysis; provider errors propagate."""
    prompt = build_comparative_prompt(passage_a, passage_b)
    raw = await provider.complete(
        prompt,
        max_tokens,
        system_prompt=COMPARATIVE_SYSTEM_PROMPT,
        json_mode=True,
    )
    data = extract_json_object(raw)
    if data is None:
        logger.warning("Comparative analysis: no JSON object in reply (length=%d), using placeholders", len(raw or ""))
    return backfill_analysis_result(data, passage_a, passage_b, provider=provider.name)
