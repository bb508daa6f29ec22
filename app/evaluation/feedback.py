"""Feedback on a legacy AnalysisResult.

A user disputes one category. The provider answers conversationally; when
the answer signals a revision, a second JSON-mode call asks for the revised
category data. Only that category changes, and it carries the FeedbackData.
The input result is never mutated.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass

from pydantic import ValidationError

from app.evaluation.normalizer import extract_json_object
from app.evaluation.types import LlmProvider, Passage
from app.schemas.analysis_result import (
    FEEDBACK_CATEGORIES,
    AnalysisResult,
    FeedbackData,
    SupportingDocument,
)

logger = logging.getLogger(__name__)

CATEGORY_DESCRIPTIONS = {
    "conceptualLineage": "Conceptual Lineage - Where ideas come from, are they new or responses to existing ideas",
    "semanticDistance": "Semantic Distance - How far each passage moves from predecessors; is it reshuffling or truly novel",
    "noveltyHeatmap": "Novelty Heatmap - Where the real conceptual thinking/innovation is happening by paragraph",
    "derivativeIndex": "Derivative Index - Score 0-10 where 0 is recycled and 10 is wholly original",
    "conceptualParasite": "Conceptual Parasite Detection - Passages that operate in old debates without adding anything new",
    "coherence": "Coherence - Whether the passage, despite being original or not, is logically and conceptually coherent",
    "accuracy": "Accuracy - Whether the claims and characterizations in the passage are correct",
    "depth": "Depth - How far beneath the surface of its subject the passage goes",
    "clarity": "Clarity - How clearly and precisely the passage expresses its ideas",
}

FEEDBACK_SYSTEM_PROMPT = """You are a semantic originality analyzer. A user is giving feedback on your previous analysis.

Respond conversationally and address their feedback directly. If their argument has merit, acknowledge it and state clearly what changes in your assessment and why. If you maintain your assessment, explain your reasoning respectfully, referencing the text. End with an invitation for further dialogue if appropriate."""

REVISION_SYSTEM_PROMPT = """You are a semantic originality analyzer. Based on user feedback, provide a revised analysis for one category. Return only a JSON object whose single key is the category name and whose value has the same structure as the original category data."""

_REVISION_KEYWORDS = re.compile(r"revise|adjust|change|update|modify", re.IGNORECASE)

NO_RESPONSE = "I apologize, but I couldn't process your feedback at this time."


@dataclass
class FeedbackOutcome:
    ai_response: str
    is_revised: bool
    revised_result: AnalysisResult


def indicates_revision(ai_response: str) -> bool:
    return bool(_REVISION_KEYWORDS.search(ai_response))


def _category_json(result: AnalysisResult, category: str) -> str:
    section = getattr(result, category)
    return json.dumps(section.model_dump(exclude_none=True, exclude={"feedback"}), indent=2)


def _passages_block(passage_a: Passage, passage_b: Passage | None, single_mode: bool) -> str:
    title_a = passage_a.title or ("Your Passage" if single_mode else "Passage A")
    block = f"{title_a}:\n{passage_a.text}"
    if not single_mode and passage_b is not None:
        block += f"\n\n{passage_b.title or 'Passage B'}:\n{passage_b.text}"
    return block


def _document_block(document: SupportingDocument | None) -> str:
    if document is None:
        return ""
    return f'\n\nThe user also provided a supporting document titled "{document.title}":\n{document.content}'


def build_feedback_prompt(
    category: str,
    comment: str,
    original: AnalysisResult,
    passage_a: Passage,
    passage_b: Passage | None,
    single_mode: bool,
    supporting_document: SupportingDocument | None = None,
) -> str:
    subject = "a passage against a typical norm" if single_mode else "two passages"
    return (
        f"I previously analyzed {subject} and evaluated their conceptual originality.\n\n"
        f"The category being addressed is: {CATEGORY_DESCRIPTIONS[category]}\n\n"
        f"{'Passage' if single_mode else 'Passages'}:\n\n"
        f"{_passages_block(passage_a, passage_b, single_mode)}\n\n"
        f"My original analysis for this category was:\n{_category_json(original, category)}\n\n"
        f'The user has provided this feedback about my analysis:\n"{comment}"'
        f"{_document_block(supporting_document)}\n\n"
        "Please respond to this feedback directly, in a conversational style, "
        "either revising or justifying the original assessment."
    )


def build_revision_prompt(
    category: str,
    comment: str,
    original: AnalysisResult,
    passage_a: Passage,
    passage_b: Passage | None,
    single_mode: bool,
    supporting_document: SupportingDocument | None = None,
) -> str:
    return (
        f'I need a revised analysis for the category "{category}" based on this user feedback:\n"{comment}"'
        f"{_document_block(supporting_document)}\n\n"
        f"Original passages:\n\n{_passages_block(passage_a, passage_b, single_mode)}\n\n"
        f"Original analysis:\n{_category_json(original, category)}\n\n"
        f'Please provide only the revised JSON data for the "{category}" category.'
    )


def _apply_revision(
    result: AnalysisResult,
    category: str,
    revision: dict | None,
    feedback: FeedbackData,
) -> AnalysisResult:
    """Return a copy with the category revised (when valid) and feedback attached."""
    section = getattr(result, category)
    section_cls = type(section)
    updated = section.model_copy(deep=True)

    revised_data = revision.get(category) if isinstance(revision, dict) else None
    if isinstance(revised_data, dict):
        merged = {**section.model_dump(), **revised_data}
        merged.pop("feedback", None)
        try:
            updated = section_cls.model_validate(merged)
        except ValidationError as e:
            logger.warning("Feedback revision for %s did not validate, keeping original: %s", category, e)

    updated.feedback = feedback
    return result.model_copy(update={category: updated})


async def process_feedback(
    provider: LlmProvider,
    category: str,
    comment: str,
    original: AnalysisResult,
    passage_a: Passage,
    passage_b: Passage | None = None,
    single_mode: bool = False,
    supporting_document: SupportingDocument | None = None,
    *,
    max_tokens: int = 2000,
) -> FeedbackOutcome:
    """Answer feedback on one category and revise it when the answer says so.

    Raises:
        ValueError: unknown category.
    """
    if category not in FEEDBACK_CATEGORIES:
        raise ValueError(f"Unknown feedback category: {category}")

    prompt = build_feedback_prompt(
        category, comment, original, passage_a, passage_b, single_mode, supporting_document
    )
    ai_response = await provider.complete(prompt, max_tokens, system_prompt=FEEDBACK_SYSTEM_PROMPT)
    ai_response = ai_response.strip() or NO_RESPONSE
    is_revised = indicates_revision(ai_response)

    revision = None
    if is_revised:
        revision_prompt = build_revision_prompt(
            category, comment, original, passage_a, passage_b, single_mode, supporting_document
        )
        raw = await provider.complete(
            revision_prompt,
            max_tokens,
            system_prompt=REVISION_SYSTEM_PROMPT,
            json_mode=True,
        )
        revision = extract_json_object(raw)
        if revision is None:
            logger.warning("Feedback revision for %s: no JSON object in reply, attaching feedback only", category)

    feedback = FeedbackData(comment=comment, aiResponse=ai_response, isRevised=is_revised)
    revised = _apply_revision(original, category, revision, feedback)

    if supporting_document is not None:
        revised = revised.model_copy(
            update={"supportingDocuments": [*revised.supportingDocuments, supporting_document]}
        )

    return FeedbackOutcome(ai_response=ai_response, is_revised=is_revised, revised_result=revised)
