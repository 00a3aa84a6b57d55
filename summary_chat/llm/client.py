# summary_chat/llm/client.py
import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, List, Optional, Union

from openai import AsyncOpenAI

from summary_chat.config import (
    LLM_MAX_TOKENS,
    LLM_MODEL,
    LLM_TEMPERATURE,
    LLM_TIMEOUT_SECONDS,
)

logger = logging.getLogger(__name__)


@dataclass
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    cached_prompt_tokens: int = 0

    def to_properties(self) -> Dict[str, int]:
        return {
            "promptTokens": self.prompt_tokens,
            "completionTokens": self.completion_tokens,
            "totalTokens": self.total_tokens,
            "cachedPromptTokens": self.cached_prompt_tokens,
        }


@dataclass
class GenerationSuccess:
    text: str
    usage: TokenUsage = field(default_factory=TokenUsage)
    latency: float = 0.0


@dataclass
class GenerationFailure:
    error: BaseException
    partial_text: str = ""


GenerationOutcome = Union[GenerationSuccess, GenerationFailure]


class StreamResult:
    """
    A streaming generation in progress.

    `deltas` yields text as it arrives. `outcome` resolves once the
    stream is exhausted, to either GenerationSuccess with the full text
    and usage, or GenerationFailure. Stream errors never escape
    `deltas`; they only show up in `outcome`.
    """

    def __init__(self, deltas: AsyncIterator[str], outcome: "asyncio.Future[GenerationOutcome]"):
        self.deltas = deltas
        self.outcome = outcome


def _usage_from(raw) -> TokenUsage:

    if raw is None:
        return TokenUsage()

    details = getattr(raw, "prompt_tokens_details", None)

    return TokenUsage(
        prompt_tokens=raw.prompt_tokens or 0,
        completion_tokens=raw.completion_tokens or 0,
        total_tokens=raw.total_tokens or 0,
        cached_prompt_tokens=(getattr(details, "cached_tokens", 0) or 0) if details else 0,
    )


class LLMClient:
    """
    Streaming client for OpenAI chat completions.
    """

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        model: str = LLM_MODEL,
        temperature: float = LLM_TEMPERATURE,
        max_tokens: int = LLM_MAX_TOKENS,
    ):
        self._client = client or AsyncOpenAI(timeout=LLM_TIMEOUT_SECONDS)
        self.model = model
        self._temperature = temperature
        self._max_tokens = max_tokens

    def generate(self, turns: List[Dict[str, str]]) -> StreamResult:
        """
        Start a streaming completion over role-tagged turns.

        Must be called from a running event loop.
        """

        outcome: "asyncio.Future[GenerationOutcome]" = asyncio.get_running_loop().create_future()

        async def _deltas() -> AsyncIterator[str]:

            parts: List[str] = []
            usage = None
            start = time.time()

            try:

                stream = await self._client.chat.completions.create(
                    model=self.model,
                    messages=turns,
                    temperature=self._temperature,
                    max_tokens=self._max_tokens,
                    stream=True,
                    stream_options={"include_usage": True},
                )

                async for chunk in stream:

                    if getattr(chunk, "usage", None) is not None:
                        usage = chunk.usage

                    if not chunk.choices:
                        continue

                    delta = chunk.choices[0].delta.content

                    if delta:
                        parts.append(delta)
                        yield delta

            except Exception as e:

                logger.warning(
                    "LLM stream failed",
                    extra={"model": self.model, "error": str(e), "error_type": type(e).__name__},
                )

                if not outcome.done():
                    outcome.set_result(GenerationFailure(error=e, partial_text="".join(parts)))

                return

            latency = time.time() - start

            logger.info(
                "LLM provider success",
                extra={"model": self.model, "latency_seconds": round(latency, 3)},
            )

            if not outcome.done():
                outcome.set_result(
                    GenerationSuccess(text="".join(parts), usage=_usage_from(usage), latency=latency)
                )

        return StreamResult(_deltas(), outcome)
