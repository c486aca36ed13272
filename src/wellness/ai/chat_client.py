"""Async wrapper for OpenAI-compatible chat completion endpoints (DeepSeek, HF router, OpenAI)."""
from typing import Optional

import openai

from wellness.ai.generation import FINISH_STOP, GenerationResult

DEFAULT_BASE_URL = "https://api.deepseek.com"
DEFAULT_MODEL = "deepseek-chat"


class ChatCompletionClient:
    """Calls /chat/completions via the async OpenAI SDK pointed at any compatible base URL."""

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        model: str = DEFAULT_MODEL,
        temperature: float = 0.4,
        top_p: float = 0.9,
        timeout: Optional[float] = None,
    ):
        self._client = openai.AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout)
        self.model = model
        self.temperature = temperature
        self.top_p = top_p

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int = 1200,
    ) -> GenerationResult:
        """
        Send one system+user exchange. Returns the first choice's text and
        finish_reason ("length" when the budget was hit).
        """
        response = await self._client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            max_tokens=max_tokens,
            temperature=self.temperature,
            top_p=self.top_p,
            stream=False,
        )
        if not response.choices:
            raise RuntimeError("chat completion returned no choices")

        choice = response.choices[0]
        text = (choice.message.content or "").strip()
        return GenerationResult(text=text, finish_reason=(choice.finish_reason or FINISH_STOP).strip())
