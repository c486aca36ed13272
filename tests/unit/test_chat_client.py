"""Tests for ChatCompletionClient — OpenAI-compatible chat completions.

The openai.AsyncOpenAI client is mocked; we check the request payload and how
the first choice is turned into a GenerationResult.
"""
import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from wellness.ai.chat_client import DEFAULT_BASE_URL, DEFAULT_MODEL, ChatCompletionClient
from wellness.ai.generation import GenerationResult


def make_response(content="Energy\nGood.", finish_reason="stop"):
    choice = MagicMock()
    choice.message.content = content
    choice.finish_reason = finish_reason
    response = MagicMock()
    response.choices = [choice]
    return response


@pytest.fixture
def mock_openai_client():
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=make_response())
    return client


@pytest.fixture
def chat(mock_openai_client):
    with patch("wellness.ai.chat_client.openai.AsyncOpenAI", return_value=mock_openai_client):
        return ChatCompletionClient(api_key="test-key")


class TestChatClientInit:
    def test_defaults(self, chat):
        assert chat.model == DEFAULT_MODEL == "deepseek-chat"
        assert chat.temperature == 0.4
        assert chat.top_p == 0.9

    def test_client_created_with_base_url(self):
        with patch("wellness.ai.chat_client.openai.AsyncOpenAI") as mock_openai:
            ChatCompletionClient(api_key="my-key", timeout=20.0)
        mock_openai.assert_called_once_with(api_key="my-key", base_url=DEFAULT_BASE_URL, timeout=20.0)


class TestGenerate:
    @pytest.mark.asyncio
    async def test_payload(self, chat, mock_openai_client):
        await chat.generate("sys", "user", 900)
        kwargs = mock_openai_client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "deepseek-chat"
        assert kwargs["messages"] == [
            {"role": "system", "content": "sys"},
            {"role": "user", "content": "user"},
        ]
        assert kwargs["max_tokens"] == 900
        assert kwargs["temperature"] == 0.4
        assert kwargs["top_p"] == 0.9
        assert kwargs["stream"] is False

    @pytest.mark.asyncio
    async def test_generate(self, chat):
        result = await chat.generate("sys", "user", 1200)
        assert result.text == "Energy\nGood."

    @pytest.mark.asyncio
    async def test_returns_text_and_finish_reason(self, chat, mock_openai_client):
        mock_openai_client.chat.completions.create.return_value = make_response("  text  ", "length")
        assert await chat.generate("s", "u", 10) == GenerationResult(text="text", finish_reason="length")

    @pytest.mark.asyncio
    async def test_none_content(self, chat, mock_openai_client):
        mock_openai_client.chat.completions.create.return_value = make_response(None, None)
        assert await chat.generate("s", "u", 10) == GenerationResult(text="", finish_reason="stop")

    @pytest.mark.asyncio
    async def test_no_choices_raises(self, chat, mock_openai_client):
        mock_openai_client.chat.completions.create.return_value = MagicMock(choices=[])
        with pytest.raises(RuntimeError):
            await chat.generate("s", "u", 10)

    @pytest.mark.asyncio
    async def test_propagates_exceptions(self, chat, mock_openai_client):
        mock_openai_client.chat.completions.create.side_effect = ConnectionError("down")
        with pytest.raises(ConnectionError):
            await chat.generate("sys", "user")

    @pytest.mark.asyncio
    async def test_timeout_cancels_request(self, chat, mock_openai_client):
        cancelled = asyncio.Event()

        async def slow_create(**kwargs):
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        mock_openai_client.chat.completions.create = slow_create
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(chat.generate("s", "u"), timeout=0.05)
        assert cancelled.is_set()
