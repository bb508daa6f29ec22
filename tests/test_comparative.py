import json

from app.evaluation.comparative import (
    COMPARATIVE_SYSTEM_PROMPT,
    backfill_analysis_result,
    build_comparative_prompt,
    run_comparative_analysis,
    split_into_paragraphs,
)
from app.evaluation.types import Passage
from app.schemas.analysis_result import AnalysisResult
from fakes import FakeProvider

PASSAGE_A = Passage(title="On Minds", text="First paragraph about minds.\nSecond paragraph, longer than forty characters in total.")
PASSAGE_B = Passage(title="On Machines", text="Only paragraph.")


class TestPrompt:
    def test_single_mode(self):
        prompt = build_comparative_prompt(PASSAGE_A)
        assert "single passage" in prompt
        assert 'PASSAGE: "On Minds"' in prompt
        assert '"passageA"' in prompt
        assert '"passageB"' not in prompt

    def test_dual_mode(self):
        prompt = build_comparative_prompt(PASSAGE_A, PASSAGE_B)
        assert "Passage A (On Minds)" in prompt
        assert "Passage B (On Machines)" in prompt
        assert '"passageB"' in prompt

    def test_user_context(self):
        passage = Passage(text="x", user_context="from a 1920s journal")
        assert "ADDITIONAL CONTEXT: from a 1920s journal" in build_comparative_prompt(passage)


class TestParagraphs:
    def test_split(self):
        assert split_into_paragraphs("a\n\nb\n") == ["a", "b"]
        assert split_into_paragraphs("single") == ["single"]
        assert split_into_paragraphs("") == []


class TestBackfill:
    def test_empty_reply_gives_complete_single_result(self):
        result = backfill_analysis_result(None, PASSAGE_A, provider="openai")

        assert isinstance(result, AnalysisResult)
        assert result.semanticDistance.passageA.distance == 50
        assert result.semanticDistance.passageB.label == "Average/Typical Distance (Norm Baseline)"
        assert result.coherence.passageB.score == 6.0
        assert len(result.derivativeIndex.passageA.components) == 3
        assert result.metadata["provider"] == "openai"
        assert result.metadata["mode"] == "single"
        # Heatmap derived from the passage's own paragraphs
        heat_a = result.noveltyHeatmap.passageA
        assert len(heat_a) == 2
        assert all(item.heat == 50 for item in heat_a)
        assert heat_a[1].quote == "Second paragraph, longer than forty char..."
        assert len(result.noveltyHeatmap.passageB) == 2  # norm baseline

    def test_dual_defaults(self):
        result = backfill_analysis_result({}, PASSAGE_A, PASSAGE_B)
        assert result.metadata["mode"] == "dual"
        assert result.semanticDistance.passageB.label == "Analysis Unavailable"
        assert result.coherence.passageB.score == 5.0
        assert [i.content for i in result.noveltyHeatmap.passageB] == ["Only paragraph...."]

    def test_model_values_are_kept(self):
        data = {
            "semanticDistance": {
                "passageA": {"distance": 82, "label": "High Distance"},
                "keyFindings": ["one", "two"],
            },
            "coherence": {"passageA": {"score": 8.5, "assessment": "tight", "coherenceCategory": "strong"}},
            "verdict": "Original and sound.",
        }
        result = backfill_analysis_result(data, PASSAGE_A)
        assert result.semanticDistance.passageA.distance == 82
        assert result.semanticDistance.keyFindings == ["one", "two"]
        assert result.coherence.passageA.score == 8.5
        assert result.coherence.passageA.strengths == ["Consistent terminology", "Logical structure"]
        assert result.coherence.passageA.model_dump()["coherenceCategory"] == "strong"
        assert result.verdict == "Original and sound."

    def test_wrong_types_are_replaced(self):
        data = {
            "derivativeIndex": {"passageA": {"score": "very high", "components": "n/a", "assessment": 7}},
            "conceptualLineage": {"passageA": {"primaryInfluences": ["Kant", "Hume"]}},
            "noveltyHeatmap": {"passageA": [{"content": "c", "heat": "hot"}, "junk"]},
            "conceptualParasite": "none",
        }
        result = backfill_analysis_result(data, PASSAGE_A)
        assert result.derivativeIndex.passageA.score == 5.0
        assert len(result.derivativeIndex.passageA.components) == 3
        assert result.derivativeIndex.passageA.assessment is None
        assert result.conceptualLineage.passageA.primaryInfluences == ["Kant", "Hume"]
        assert [(i.content, i.heat) for i in result.noveltyHeatmap.passageA] == [("c", 50)]
        assert result.conceptualParasite.passageA.level == "Moderate"

    def test_unnamed_components_take_positional_defaults(self):
        data = {
            "derivativeIndex": {
                "passageA": {"score": 7, "components": [{"score": 8}, {"score": 6}, {"score": 4}, {"score": 2}]}
            }
        }
        components = backfill_analysis_result(data, PASSAGE_A).derivativeIndex.passageA.components
        assert [(c.name, c.score) for c in components] == [
            ("Conceptual Innovation", 8),
            ("Methodological Novelty", 6),
            ("Contextual Application", 4),
            ("Contextual Application", 2),
        ]

    def test_huge_integer_is_replaced(self):
        raw = '{"derivativeIndex": {"passageA": {"score": ' + "9" * 400 + "}}}"
        data = json.loads(raw)
        result = backfill_analysis_result(data, PASSAGE_A)
        assert result.derivativeIndex.passageA.score == 5.0

    def test_feedback_from_reply_is_dropped(self):
        data = {"coherence": {"feedback": {"comment": "x"}}}
        assert backfill_analysis_result(data, PASSAGE_A).coherence.feedback is None

    def test_deterministic(self):
        data = {"depth": {"passageA": {"score": 9}}}
        first = backfill_analysis_result(data, PASSAGE_A, PASSAGE_B).model_dump(exclude={"metadata"})
        second = backfill_analysis_result(data, PASSAGE_A, PASSAGE_B).model_dump(exclude={"metadata"})
        assert first == second

    def test_user_context_recorded(self):
        passage = Passage(text="x", user_context="draft")
        assert backfill_analysis_result({}, passage).userContext == "draft"


class TestRun:
    async def test_single_call_in_json_mode(self):
        reply = "```json\n" + json.dumps({"verdict": "Strong."}) + "\n```"
        provider = FakeProvider([reply], name="anthropic")
        result = await run_comparative_analysis(provider, PASSAGE_A, PASSAGE_B, max_tokens=4000)

        assert result.verdict == "Strong."
        assert result.metadata["provider"] == "anthropic"
        assert len(provider.calls) == 1
        call = provider.calls[0]
        assert call["json_mode"]
        assert call["max_tokens"] == 4000
        assert call["system_prompt"] == COMPARATIVE_SYSTEM_PROMPT

    async def test_garbage_reply_still_complete(self):
        provider = FakeProvider(["Sorry, I cannot help with that."])
        result = await run_comparative_analysis(provider, PASSAGE_A)
        assert result.verdict.startswith("Analysis temporarily unavailable")
