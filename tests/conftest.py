import json

import pytest

from dna_analyzer.models import ContentPiece, GenerationContext


class FakeGenerator:
    """Scripted stand-in for the content-generation client.

    *responses* is either a list (consumed in call order) or a callable
    ``(system_prompt, user_prompt) -> str``.  Exceptions in the list are
    raised instead of returned.
    """

    def __init__(self, responses):
        self.responses = responses
        self.calls = []

    async def generate(self, model_id, system_prompt, user_prompt, credential, json_mode=False):
        self.calls.append({
            "model_id": model_id,
            "system_prompt": system_prompt,
            "user_prompt": user_prompt,
            "credential": credential,
            "json_mode": json_mode,
        })
        if callable(self.responses):
            result = self.responses(system_prompt, user_prompt)
        else:
            result = self.responses[len(self.calls) - 1]
        if isinstance(result, BaseException):
            raise result
        return result


@pytest.fixture
def make_ctx():
    def _make(responses, **kwargs):
        client = FakeGenerator(responses)
        ctx = GenerationContext(
            client=client,
            model_id=kwargs.pop("model_id", "test/model"),
            credential=kwargs.pop("credential", "sk-test"),
            **kwargs,
        )
        return ctx, client
    return _make


def piece(title, words, url="", comments=""):
    return ContentPiece(
        title=title,
        script=" ".join(f"w{i}" for i in range(words)),
        comments=comments,
        url=url,
    )


def dna_json(name="Pattern", **analysis):
    return json.dumps({"name": name, "niche": "Finance", "analysis": analysis})
