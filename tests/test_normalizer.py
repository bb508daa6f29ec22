import json

import pytest

from app.evaluation.normalizer import (
    FALLBACK_EXPLANATION,
    FALLBACK_QUOTATION,
    FALLBACK_SCORE,
    MISSING_EXPLANATION,
    MISSING_QUOTATION,
    extract_json_object,
    manual_extract,
    normalize,
)
from fakes import reply_with_scores

QUESTIONS = ["Q0", "Q1", "Q2"]


def _assert_complete(result, questions=QUESTIONS):
    assert sorted(result.metrics, key=int) == [str(i) for i in range(len(questions))]
    for i, q in enumerate(questions):
        assert result.metrics[str(i)].question == q


class TestStrategies:
    def test_direct(self):
        result = normalize(reply_with_scores([90, 80, 70]), QUESTIONS)
        assert result.strategy == "direct"
        assert result.scores() == [90, 80, 70]
        assert result.metrics["1"].quotation == "a quote 1"
        assert result.backfilled == 0
        _assert_complete(result)

    def test_fenced(self):
        raw = "Here you go:\n```json\n" + reply_with_scores([60, 61, 62]) + "\n```\nThanks."
        result = normalize(raw, QUESTIONS)
        assert result.strategy == "fenced"
        assert result.scores() == [60, 61, 62]

    def test_braces(self):
        raw = "Sure! " + reply_with_scores([10, 20, 30]) + " Hope that helps."
        result = normalize(raw, QUESTIONS)
        assert result.strategy == "braces"
        assert result.scores() == [10, 20, 30]

    def test_list_reply_in_question_order(self):
        raw = json.dumps([{"score": 1, "quotation": "a"}, {"score": 2}, {"score": 3}])
        result = normalize(raw, QUESTIONS)
        assert result.scores() == [1, 2, 3]

    def test_manual_recovery_of_truncated_reply(self):
        raw = (
            '{"0": {"question": "Q0", "score": 88, "quotation": "first \\"quoted\\" bit", '
            '"explanation": "good"}, "1": {"question": "Q1", "score": "77", "quote": "second'
        )
        result = normalize(raw, QUESTIONS)
        assert result.strategy == "manual"
        assert result.metrics["0"].score == 88
        assert result.metrics["0"].quotation == 'first "quoted" bit'
        assert result.metrics["0"].explanation == "good"
        assert result.metrics["1"].score == 77
        # Index 2 never appeared
        assert result.metrics["2"].score == FALLBACK_SCORE
        assert result.backfilled == 1
        _assert_complete(result)


class TestFallbacks:
    @pytest.mark.parametrize("raw", ["", None, "I cannot evaluate this text.", "{not json at all"])
    def test_unparseable_reply_gives_full_fallback(self, raw):
        result = normalize(raw, QUESTIONS)
        _assert_complete(result)
        assert result.strategy == "fallback"
        assert result.backfilled == len(QUESTIONS)
        for metric in result.metrics.values():
            assert metric.score == FALLBACK_SCORE
            assert metric.quotation == FALLBACK_QUOTATION
            assert metric.explanation == FALLBACK_EXPLANATION

    def test_missing_index_is_backfilled(self):
        raw = json.dumps({"0": {"score": 91}, "2": {"score": 93}})
        result = normalize(raw, QUESTIONS)
        assert result.scores() == [91, FALLBACK_SCORE, 93]
        assert result.backfilled == 1

    @pytest.mark.parametrize("bad_score", ["85", None, True, "NaN", [], {}])
    def test_invalid_score_is_backfilled(self, bad_score):
        raw = json.dumps({"0": {"score": bad_score}, "1": {"score": 70}, "2": {"score": 70}})
        result = normalize(raw, QUESTIONS)
        assert result.metrics["0"].score == FALLBACK_SCORE
        assert result.metrics["0"].quotation == FALLBACK_QUOTATION

    def test_nan_score_is_backfilled(self):
        raw = '{"0": {"score": NaN}, "1": {"score": 70}, "2": {"score": Infinity}}'
        result = normalize(raw, QUESTIONS)
        assert result.scores() == [FALLBACK_SCORE, 70, FALLBACK_SCORE]

    def test_huge_integer_score_is_backfilled(self):
        raw = '{"0": {"score": ' + "9" * 400 + '}, "1": {"score": 70}, "2": {"score": 100}}'
        result = normalize(raw, QUESTIONS)
        _assert_complete(result)
        assert result.scores() == [FALLBACK_SCORE, 70, 100]
        assert result.backfilled == 1

    @pytest.mark.parametrize("bad_score", [-1, 100.5, 1e308, -1e308])
    def test_out_of_range_score_is_backfilled(self, bad_score):
        raw = json.dumps({"0": {"score": bad_score}, "1": {"score": 0}, "2": {"score": 70}})
        result = normalize(raw, QUESTIONS)
        assert result.scores() == [FALLBACK_SCORE, 0, 70]

    def test_huge_score_in_truncated_reply(self):
        raw = '{"0": {"score": ' + "9" * 400 + ', "quotation": "x"}, "1": {"score": 64'
        result = normalize(raw, QUESTIONS)
        assert result.strategy == "manual"
        assert result.scores() == [FALLBACK_SCORE, 64, FALLBACK_SCORE]

    def test_missing_text_fields_get_defaults(self):
        raw = json.dumps({"0": {"score": 70}, "1": {"score": 70, "quotation": ""}, "2": {"score": 70}})
        result = normalize(raw, QUESTIONS)
        assert result.metrics["0"].quotation == MISSING_QUOTATION
        assert result.metrics["1"].quotation == MISSING_QUOTATION
        assert result.metrics["2"].explanation == MISSING_EXPLANATION
        assert result.backfilled == 0

    def test_quote_alias(self):
        raw = json.dumps({str(i): {"score": 70, "quote": f"q{i}"} for i in range(3)})
        assert normalize(raw, QUESTIONS).metrics["2"].quotation == "q2"

    def test_extra_keys_ignored(self):
        raw = json.dumps({**{str(i): {"score": 70} for i in range(5)}, "summary": "x"})
        result = normalize(raw, QUESTIONS)
        _assert_complete(result)


class TestIdempotence:
    def test_normalizing_canonical_json_is_identity(self):
        first = normalize('{"0": {"score": 12.5, "quotation": "x"}}', QUESTIONS)
        second = normalize(json.dumps(first.to_dict()), QUESTIONS)
        assert second == first
        assert second.backfilled == 0


class TestHelpers:
    def test_extract_json_object_ignores_arrays(self):
        assert extract_json_object("[1, 2, 3]") is None
        assert extract_json_object('noise {"a": 1} noise') == {"a": 1}

    def test_manual_extract_skips_indices_without_score(self):
        raw = '"0": {"quotation": "no score here"}, "1": {"score": 42}'
        assert manual_extract(raw, 2) == {"1": {"score": 42, "explanation": "Manual extraction"}}
