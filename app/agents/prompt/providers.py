from __future__ import annotations

from typing import Any, Optional, Sequence

from langchain_core.messages import BaseMessage
from langchain_openai import ChatOpenAI


class ReasoningProvider:
    """Text-reasoning service used by the refine step.

    ``refine`` returns the raw text of the first candidate and may raise on any
    failure; the compile pipeline turns failures into its fallback prompt.
    """

    name = "reasoning"

    async def refine(self, messages: Sequence[BaseMessage]) -> str:
        raise NotImplementedError("Subclasses must implement refine().")


def message_text(content: Any) -> str:
    """First textual candidate from a chat message content (str or content parts)."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        for part in content:
            if isinstance(part, str) and part.strip():
                return part
            if isinstance(part, dict) and part.get("type") == "text" and str(part.get("text") or "").strip():
                return str(part["text"])
    return ""


class OpenAIReasoningProvider(ReasoningProvider):
    """Any OpenAI-compatible chat endpoint with vision input."""

    name = "openai"

    def __init__(
        self,
        model: str,
        api_key: str,
        base_url: Optional[str] = None,
        max_tokens: int = 400,
        temperature: float = 0.7,
        timeout: float = 45.0,
    ):
        self.model = model
        self.llm = ChatOpenAI(
            model=model,
            api_key=api_key,
            base_url=base_url,
            max_tokens=max_tokens,
            temperature=temperature,
            timeout=timeout,
            max_retries=1,
            streaming=False,
        )

    async def refine(self, messages: Sequence[BaseMessage]) -> str:
        response = await self.llm.ainvoke(list(messages))
        return message_text(response.content)
