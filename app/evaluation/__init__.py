"""Passage Evaluation Engine.

Parametrized pipeline that scores a passage against a question list:
  1. Chunker: sentence-boundary segmentation of long passages
  2. Prompt Builder: three-phase pushback protocol prompts
  3. Provider: any LlmProvider (see app.gateway)
  4. Response Normalizer: JSON repair and fallback backfill
  5. Merge: per-question combination of chunk results

Input:  Passage (+ analysis type, mode)
Output: EvaluationResult / DualEvaluationResult
"""
