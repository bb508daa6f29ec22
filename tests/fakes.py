"""Test doubles for the LLM provider and the gateway."""

import json
from collections.abc import Callable


def reply_with_scores(scores: list[float], quotation: str = "a quote") -> str:
    """A well-formed JSON reply giving ``scores`` in question order."""
    return json.dumps(
        {
            str(i): {
                "question": f"Q{i}",
                "score": score,
                "quotation": f"{quotation} {i}",
                "explanation": f"explanation {i}",
            }
            for i, score in enumerate(scores)
        }
    )


class FakeProvider:
    """Scripted LlmProvider.

    ``replies`` is either a list consumed in call order, or a callable
    ``(prompt, call_index) -> str``. A reply that is an Exception is raised.
    """

    def __init__(self, replies: list | Callable[[str, int], str], name: str = "fake"):
        self.name = name
        self._replies = replies
        self.calls: list[dict] = []

    async def complete(self, prompt, max_tokens=2000, *, system_prompt="", json_mode=False):
        index = len(self.calls)
        self.calls.append(
            {"prompt": prompt, "max_tokens": max_tokens, "system_prompt": system_prompt, "json_mode": json_mode}
        )
        if callable(self._replies):
            reply = self._replies(prompt, index)
        else:
            reply = self._replies[index]
        if isinstance(reply, Exception):
            raise reply
        return reply


class FakeGateway:
    """Stands in for ProviderGateway in API tests."""

    def __init__(self, provider: FakeProvider, default_provider: str = "openai"):
        self.llm = provider
        self.default_provider = default_provider
        self.requested: list[str | None] = []

    def provider(self, name=None):
        self.requested.append(name)
        return self.llm

    def status(self):
        return {"openai": True, "anthropic": False, "perplexity": False, "deepseek": False}

    def available_providers(self):
        return ["openai"]

