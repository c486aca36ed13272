"""Tests for ClaudeClient — async wrapper over the Anthropic SDK.

We mock the AsyncAnthropic client entirely (no real API calls) and verify:
  - generate() builds the correct payload
  - system_prompt is only included when provided
  - stop_reason "max_tokens" is reported as finish_reason "length"
  - cancelling generate() cancels the in-flight request
"""
import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from wellness.ai.claude_client import ClaudeClient
from wellness.ai.generation import FINISH_LENGTH, FINISH_STOP, GenerationResult


@pytest.fixture
def mock_anthropic_client():
    """AsyncAnthropic client mock with messages.create stubbed."""
    client = MagicMock()
    response = MagicMock()
    response.content = [MagicMock(text="  Energy\nSteady all week.  ")]
    response.stop_reason = "end_turn"
    client.messages.create = AsyncMock(return_value=response)
    return client


@pytest.fixture
def claude(mock_anthropic_client):
    """ClaudeClient with a mock Anthropic backend."""
    with patch("wellness.ai.claude_client.anthropic.AsyncAnthropic", return_value=mock_anthropic_client):
        return ClaudeClient(api_key="test-key", model="claude-sonnet-4-5")


class TestClaudeClientInit:
    def test_model_stored(self, claude):
        assert claude.model == "claude-sonnet-4-5"

    def test_timeout_passed_when_given(self):
        with patch("wellness.ai.claude_client.anthropic.AsyncAnthropic") as mock_cls:
            ClaudeClient(api_key="k", timeout=30.0)
        mock_cls.assert_called_once_with(api_key="k", timeout=30.0)

    def test_timeout_omitted_by_default(self):
        with patch("wellness.ai.claude_client.anthropic.AsyncAnthropic") as mock_cls:
            ClaudeClient(api_key="k")
        mock_cls.assert_called_once_with(api_key="k")


class TestGeneratePayload:
    @pytest.mark.asyncio
    async def test_user_message_included(self, claude, mock_anthropic_client):
        await claude.generate("", "num_points=3", 500)
        call_kwargs = mock_anthropic_client.messages.create.call_args.kwargs
        assert call_kwargs["messages"] == [{"role": "user", "content": "num_points=3"}]

    @pytest.mark.asyncio
    async def test_system_prompt_included_when_provided(self, claude, mock_anthropic_client):
        await claude.generate("Be an analyst", "q", 100)
        call_kwargs = mock_anthropic_client.messages.create.call_args.kwargs
        assert call_kwargs.get("system") == "Be an analyst"

    @pytest.mark.asyncio
    async def test_system_prompt_omitted_when_empty(self, claude, mock_anthropic_client):
        await claude.generate("", "q", 100)
        call_kwargs = mock_anthropic_client.messages.create.call_args.kwargs
        assert "system" not in call_kwargs

    @pytest.mark.asyncio
    async def test_model_and_max_tokens_passed_through(self, claude, mock_anthropic_client):
        await claude.generate("", "q", 900)
        call_kwargs = mock_anthropic_client.messages.create.call_args.kwargs
        assert call_kwargs["model"] == "claude-sonnet-4-5"
        assert call_kwargs["max_tokens"] == 900

    @pytest.mark.asyncio
    async def test_default_max_tokens(self, claude, mock_anthropic_client):
        await claude.generate("system", "user")
        call_kwargs = mock_anthropic_client.messages.create.call_args.kwargs
        assert call_kwargs["max_tokens"] == 1200


class TestGenerateResult:
    @pytest.mark.asyncio
    async def test_returns_stripped_text(self, claude):
        result = await claude.generate("", "q", 100)
        assert result == GenerationResult(text="Energy\nSteady all week.", finish_reason=FINISH_STOP)

    @pytest.mark.asyncio
    async def test_max_tokens_stop_reason_is_length(self, claude, mock_anthropic_client):
        mock_anthropic_client.messages.create.return_value.stop_reason = "max_tokens"
        result = await claude.generate("", "q", 100)
        assert result.finish_reason == FINISH_LENGTH

    @pytest.mark.asyncio
    async def test_empty_content(self, claude, mock_anthropic_client):
        mock_anthropic_client.messages.create.return_value.content = []
        assert (await claude.generate("", "q", 100)).text == ""

    @pytest.mark.asyncio
    async def test_propagates_exceptions(self, claude, mock_anthropic_client):
        mock_anthropic_client.messages.create.side_effect = Exception("API error")
        with pytest.raises(Exception, match="API error"):
            await claude.generate("system", "user")


class TestCancellation:
    @pytest.mark.asyncio
    async def test_timeout_cancels_request(self, claude, mock_anthropic_client):
        cancelled = asyncio.Event()

        async def slow_create(**kwargs):
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        mock_anthropic_client.messages.create = slow_create
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(claude.generate("s", "u"), timeout=0.05)
        assert cancelled.is_set()
