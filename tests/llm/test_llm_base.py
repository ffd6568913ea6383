"""
Tests for the typed wrappers of LLMProvider.
"""

import pytest
from pydantic import BaseModel

from ragweave.core.llm.base import LLMProvider
from ragweave.utils.exceptions import LLMError


class QuestionList(BaseModel):
    questions: list[str] = []


class OtherModel(BaseModel):
    questions: list[str] = []


class FixedLLM(LLMProvider):
    """Returns the same answer for every prompt."""

    model = "fixed"

    def __init__(self, answer):
        self.answer = answer
        self.calls = []

    async def complete(self, prompt, response_format=None, max_tokens=2000, temperature=0.0, **kwargs):
        self.calls.append({"response_format": response_format, "max_tokens": max_tokens})
        return self.answer

    async def close(self):
        pass


@pytest.mark.unit
class TestGenerate:
    """Tests for free-text generation."""

    async def test_strips_answer(self):
        llm = FixedLLM("  A summary.\n")

        assert await llm.generate("Summarize", max_tokens=64) == "A summary."
        assert llm.calls == [{"response_format": None, "max_tokens": 64}]

    async def test_empty_answer(self):
        with pytest.raises(LLMError, match="empty answer"):
            await FixedLLM("   ").generate("Summarize")


@pytest.mark.unit
class TestExtract:
    """Tests for structured extraction."""

    async def test_instance_passes_through(self):
        answer = QuestionList(questions=["What is the capital of Germany?"])

        assert await FixedLLM(answer).extract("Questions", QuestionList) is answer

    async def test_other_model_revalidated(self):
        result = await FixedLLM(OtherModel(questions=["Why?"])).extract("Questions", QuestionList)

        assert isinstance(result, QuestionList)
        assert result.questions == ["Why?"]

    async def test_json_text_validated(self):
        result = await FixedLLM('{"questions": ["Where?"]}').extract("Questions", QuestionList)

        assert result.questions == ["Where?"]

    async def test_invalid_output(self):
        with pytest.raises(LLMError, match="does not match QuestionList"):
            await FixedLLM("not json").extract("Questions", QuestionList)
