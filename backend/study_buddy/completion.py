"""Text-completion collaborator used by the profile extractor."""

from __future__ import annotations

from typing import Optional, Protocol

from openai import AsyncOpenAI


class CompletionClient(Protocol):
    async def complete(
        self,
        prompt: str,
        *,
        model: str,
        max_tokens: int,
        temperature: float,
    ) -> str:  # pragma: no cover - protocol definition
        ...


class OpenAICompletionClient:
    """Single-message chat completion through the OpenAI SDK."""

    def __init__(self, client: Optional[AsyncOpenAI] = None) -> None:
        self._client = client or AsyncOpenAI()

    async def complete(self, prompt: str, *, model: str, max_tokens: int, temperature: float) -> str:
        completion = await self._client.chat.completions.create(
            model=model,
            messages=[{"role": "user", "content": prompt}],
            max_tokens=max_tokens,
            temperature=temperature,
        )
        if not completion.choices:
            return ""
        return completion.choices[0].message.content or ""


__all__ = ["CompletionClient", "OpenAICompletionClient"]
