"""Async Claude API wrapper."""
from typing import Optional

import anthropic

from wellness.ai.generation import FINISH_LENGTH, FINISH_STOP, GenerationResult


class ClaudeClient:
    """
    Thin wrapper over the Anthropic async SDK.

    The request runs on the event loop, so cancelling generate() (e.g. from
    asyncio.wait_for) closes the HTTP request instead of leaving it running
    in a worker thread.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "claude-sonnet-4-5",
        timeout: Optional[float] = None,
    ):
        if timeout is not None:
            self._client = anthropic.AsyncAnthropic(api_key=api_key, timeout=timeout)
        else:
            self._client = anthropic.AsyncAnthropic(api_key=api_key)
        self.model = model

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int = 1200,
    ) -> GenerationResult:
        """Send one system+user exchange and return the text with its finish reason."""
        kwargs = {
            "model": self.model,
            "max_tokens": max_tokens,
            "messages": [{"role": "user", "content": user_prompt}],
        }
        if system_prompt:
            kwargs["system"] = system_prompt

        response = await self._client.messages.create(**kwargs)
        text = response.content[0].text if response.content else ""
        # Anthropic reports "max_tokens"; the orchestrator speaks "length"
        finish = FINISH_LENGTH if response.stop_reason == "max_tokens" else FINISH_STOP
        return GenerationResult(text=text.strip(), finish_reason=finish)
