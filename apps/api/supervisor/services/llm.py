"""Chat model factory for the completion provider."""

import re

from langchain_openai import ChatOpenAI

from supervisor.core.config import settings


def get_chat_model(model: str, temperature: float, max_tokens: int) -> ChatOpenAI:
    """Create a ChatOpenAI client against the configured OpenAI-compatible endpoint."""
    return ChatOpenAI(
        model=model,
        api_key=settings.openai_api_key,
        base_url=settings.openai_base_url,
        temperature=temperature,
        max_tokens=max_tokens,
        timeout=settings.provider_timeout_seconds,
        max_retries=1,
    )


def strip_code_fences(content: str) -> str:
    """Remove markdown code fences models sometimes wrap JSON in."""
    content = re.sub(r"^```(?:json)?\s*\n?", "", content.strip())
    return re.sub(r"\n?```\s*$", "", content.strip())
