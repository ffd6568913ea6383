"""
Tests for OpenAI LLM provider.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from pydantic import BaseModel

from ragweave.core.llm.openai import OpenAILLM
from ragweave.utils.exceptions import LLMError, ValidationError


class KeywordAnswer(BaseModel):
    keywords: list[str]


@pytest.fixture
def openai_llm():
    return OpenAILLM(api_key="test-key", model="gpt-4o-mini", timeout=60.0)


def chat_response(content=None, parsed=None, refusal=None, finish_reason="stop") -> MagicMock:
    message = MagicMock(content=content, parsed=parsed, refusal=refusal)
    response = MagicMock()
    response.choices = [MagicMock(message=message, finish_reason=finish_reason)]
    return response


@pytest.mark.unit
class TestOpenAILLM:
    """Test OpenAI LLM provider."""

    async def test_complete_text(self, openai_llm):
        with patch.object(
            openai_llm.client.chat.completions, "create", new_callable=AsyncMock
        ) as mock_create:
            mock_create.return_value = chat_response(content="test response")

            result = await openai_llm.complete("hello", max_tokens=10)

            assert result == "test response"
            assert mock_create.call_args.kwargs["max_tokens"] == 10
            assert mock_create.call_args.kwargs["model"] == "gpt-4o-mini"
            assert mock_create.call_args.kwargs["messages"] == [{"role": "user", "content": "hello"}]

    async def test_complete_structured(self, openai_llm):
        expected = KeywordAnswer(keywords=["capital"])
        with patch.object(
            openai_llm.client.chat.completions, "parse", new_callable=AsyncMock
        ) as mock_parse:
            mock_parse.return_value = chat_response(parsed=expected)

            result = await openai_llm.extract("Keywords?", KeywordAnswer)

            assert result is expected
            assert mock_parse.call_args.kwargs["response_format"] is KeywordAnswer

    async def test_refusal_raises(self, openai_llm):
        with patch.object(
            openai_llm.client.chat.completions, "parse", new_callable=AsyncMock
        ) as mock_parse:
            mock_parse.return_value = chat_response(refusal="I can't help with that")

            with pytest.raises(LLMError, match="refused"):
                await openai_llm.complete("Keywords?", response_format=KeywordAnswer)

    async def test_truncated_structured_output(self, openai_llm):
        with patch.object(
            openai_llm.client.chat.completions, "parse", new_callable=AsyncMock
        ) as mock_parse:
            mock_parse.return_value = chat_response(finish_reason="length")

            with pytest.raises(LLMError, match="truncated at 50 tokens"):
                await openai_llm.complete("Keywords?", response_format=KeywordAnswer, max_tokens=50)

    async def test_empty_content(self, openai_llm):
        with patch.object(
            openai_llm.client.chat.completions, "create", new_callable=AsyncMock
        ) as mock_create:
            mock_create.return_value = chat_response(content="")

            with pytest.raises(LLMError, match="empty content"):
                await openai_llm.complete("hello")

    async def test_api_error_wrapped(self, openai_llm):
        with patch.object(
            openai_llm.client.chat.completions, "create", new_callable=AsyncMock
        ) as mock_create:
            mock_create.side_effect = RuntimeError("rate limited")

            with pytest.raises(LLMError, match="OpenAI API error"):
                await openai_llm.complete("hello")

    async def test_empty_prompt(self, openai_llm):
        with pytest.raises(ValidationError):
            await openai_llm.complete("   ")
