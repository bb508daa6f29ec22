"""Prompt builder for the three-phase pushback protocol.

  Phase 1: answer every question with a score, calibration anchors included
  Phase 2: pushback, defend or revise the phase-1 scores, answer de novo
  Phase 3: "Walmart metric", name concrete outperformers for the lowest score

Provider calls are stateless, so phases 2 and 3 re-embed the passage and the
JSON output directive. All builders are pure: same inputs, same string.
"""

from __future__ import annotations

import json
from collections.abc import Sequence

SYSTEM_PROMPT = (
    "You evaluate passages of text by answering the questions you are given. "
    "You respond with a single valid JSON object and nothing else."
)

_CALIBRATION = """Before answering the questions, note the following non-negotiable standard:

Insight is a sniper shot, not a town hall. If the text reveals something true but unpopular, penalizing it for lacking 'balance' or 'rigor' is midwit bias. Truth often looks extreme because lies are normalized.

Hierarchy of judgment:
95-100/100: Unignorable insight. Either genius or so correct it breaks scales.
80-94/100: Strong but with friction (e.g., clumsy expression, minor gaps).
<80/100: Degrees of mediocrity or failure.

Walmart metric is a sanity check, not a gag. If you claim 30/100 Walmart patrons outperform the author, you must describe exactly what those 30% know that the author doesn't. No vague handwaving."""

_INSTRUCTIONS = """CRITICAL INSTRUCTIONS:
- A score of N/100 (e.g. 73/100) means that (100-N)/100 (e.g. 27/100) outperform the author with respect to the parameter defined by the question.
- You are NOT grading; you are answering these questions.
- You do NOT use a risk-averse standard; you do NOT attempt to be diplomatic; you do NOT attempt to comply with risk-averse, medium-range IQ, academic norms.
- You do NOT make assumptions about the level of the text; it could be a work of the highest excellence and genius, or it could be the work of a moron.
- If a work is a work of genius, you say that, and you say why; you do NOT shy away from giving what might conventionally be regarded as excessively "superlative" scores; you give it the score it deserves, not the score that a midwit committee would say it deserves.
- Think very hard about your answers; do NOT default to cookbook, midwit evaluation protocols."""


def _fmt(score: float) -> str:
    """Render a score without a trailing .0."""
    return f"{score:g}"


def _numbered(questions: Sequence[str]) -> str:
    return "\n".join(f"{i}. {q}" for i, q in enumerate(questions))


def json_directive(questions: Sequence[str]) -> str:
    """Output directive: one JSON object keyed by question index."""
    lines = [
        f'  "{i}": {{"question": {json.dumps(q)}, "score": <number 0-100>, '
        f'"quotation": "<exact quote from the text>", "explanation": "<analysis>"}}'
        for i, q in enumerate(questions)
    ]
    return "RESPOND WITH VALID JSON ONLY - NO TEXT BEFORE OR AFTER:\n{\n" + ",\n".join(lines) + "\n}"


def _text_block(text: str, user_context: str) -> str:
    block = f"TEXT: {text}"
    if user_context:
        block += f"\n\nCONTEXT PROVIDED BY THE USER ABOUT THIS TEXT: {user_context}"
    return block


def build_phase1_prompt(questions: Sequence[str], text: str, *, user_context: str = "") -> str:
    return "\n\n".join(
        [
            "YOU MUST RESPOND WITH VALID JSON ONLY. NO EXPLANATORY TEXT BEFORE OR AFTER THE JSON.",
            "ANSWER THESE QUESTIONS in connection with this text. (Also give a score out of 100.)",
            _text_block(text, user_context),
            _CALIBRATION,
            "QUESTIONS:\n" + _numbered(questions),
            _INSTRUCTIONS,
            json_directive(questions),
        ]
    )


def build_phase2_prompt(
    questions: Sequence[str],
    text: str,
    phase1_scores: Sequence[float],
    *,
    user_context: str = "",
) -> str:
    low = 100 - max(phase1_scores)
    high = 100 - min(phase1_scores)
    scores = ", ".join(f"{i}: {_fmt(s)}/100" for i, s in enumerate(phase1_scores))
    pushback = f"""Your scores for this text were: {scores}.

Your position is that for several questions, {_fmt(low)}/100 to {_fmt(high)}/100 outperform the author with respect to the cognitive metrics defined by the questions: that is your position, am I right? And are you sure about that?

Describe the cognitive superiority of those people in concrete terms:
- What specific insight, skill, or knowledge do they have that the author lacks?
- How does this superiority manifest in their work?
- If you cannot articulate this, revise the score.

If the text is a sniper shot (high insight, low 'development'), ask:
- Is the lack of 'development' a flaw, or is the point obvious to those who see it?
- Does this text need scaffolding, or would that dilute it?"""
    return "\n\n".join(
        [
            _text_block(text, user_context),
            pushback,
            "ANSWER THE FOLLOWING QUESTIONS ABOUT THE TEXT DE NOVO:\n" + _numbered(questions),
            "Return updated JSON with revised scores if needed.",
            json_directive(questions),
        ]
    )


def build_phase3_prompt(
    questions: Sequence[str],
    text: str,
    phase2_scores: Sequence[float],
    *,
    user_context: str = "",
) -> str:
    lowest = min(phase2_scores)
    outperform = 100 - lowest
    walmart = f"""You stated that {_fmt(outperform)}/100 Walmart patrons outperform the author. Provide specific examples of work by those patrons that demonstrates this superiority. If you cannot, justify or revise the score.

If you scored {_fmt(lowest)}/100 ('{_fmt(outperform)}% outperform'), show me {_fmt(outperform)} Walmart patrons whose reasoning/argumentation on similar topics is sharper. If you can't, the score is wrong.

Before finalizing scores, confirm:
- Have you penalized the text for not being conventional? If yes, recalibrate.
- Does the score reflect truth density, not compliance with norms?
- Is the Walmart metric empirically grounded or a lazy guess?"""
    return "\n\n".join(
        [
            _text_block(text, user_context),
            walmart,
            "QUESTIONS:\n" + _numbered(questions),
            "Return final JSON scores.",
            json_directive(questions),
        ]
    )


def build_prompt(
    questions: Sequence[str],
    text: str,
    phase: int,
    prior_scores: Sequence[float] | None = None,
    *,
    user_context: str = "",
) -> str:
    """Build the prompt for one protocol phase.

    Args:
        questions: Question list; indices become the JSON keys.
        text: Passage (or chunk) text.
        phase: 1, 2 or 3.
        prior_scores: Scores of the previous phase (required for 2 and 3).
        user_context: Optional note from the user about the text.

    Raises:
        ValueError: unknown phase, or phase 2/3 without prior scores.
    """
    if phase == 1:
        return build_phase1_prompt(questions, text, user_context=user_context)
    if phase not in (2, 3):
        raise ValueError(f"Unknown protocol phase: {phase}")
    if not prior_scores:
        raise ValueError(f"Phase {phase} requires the previous phase's scores")
    if phase == 2:
        return build_phase2_prompt(questions, text, prior_scores, user_context=user_context)
    return build_phase3_prompt(questions, text, prior_scores, user_context=user_context)
