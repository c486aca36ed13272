"""Text-generation capability shared by every provider client."""
from dataclasses import dataclass
from typing import Optional, Protocol

from wellness.config import Settings

FINISH_LENGTH = "length"
FINISH_STOP = "stop"


@dataclass
class GenerationResult:
    text: str
    finish_reason: str = FINISH_STOP  # "length" when the token budget was hit


class TextGenerator(Protocol):
    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
    ) -> GenerationResult:
        ...


def build_text_generator(settings: Settings) -> Optional[TextGenerator]:
    """
    Pick the provider client from settings.

    Returns None when generation is disabled or the provider has no API key.
    """
    if settings.disable_llm:
        return None

    if settings.llm_provider == "openai":
        if not settings.openai_api_key:
            return None
        from wellness.ai.chat_client import ChatCompletionClient
        return ChatCompletionClient(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            model=settings.openai_model,
            timeout=settings.llm_timeout_seconds,
        )

    if settings.llm_provider == "anthropic":
        if not settings.anthropic_api_key:
            return None
        from wellness.ai.claude_client import ClaudeClient
        return ClaudeClient(
            api_key=settings.anthropic_api_key,
            model=settings.anthropic_model,
            timeout=settings.llm_timeout_seconds,
        )

    raise ValueError(f"Unknown llm_provider: {settings.llm_provider!r}")
