"""
revIsion RSC v1.0 — LLM Abstraction Layer

The core never calls a model directly. Every agent receives a GenerateFn:

    async (system_directive, conversation_context) -> completion_text

OpenAIGenerator is the production implementation. Callers construct one per
use (evaluation, tutoring, completion) and inject it; there is no
module-level client.
"""

import logging
import time
from dataclasses import dataclass
from typing import Optional

from openai import AsyncOpenAI

from revision_tutor import config
from revision_tutor.tutor.generation import GenerateFn

logger = logging.getLogger("revision.llm")

__all__ = ["GenerateFn", "LLMResult", "OpenAIGenerator"]


@dataclass
class LLMResult:
    text: str
    latency_ms: int
    model: str
    usage: dict


class OpenAIGenerator:
    """Async chat-completions call shaped as a GenerateFn."""

    def __init__(
        self,
        temperature: float = config.LLM_TUTOR_TEMPERATURE,
        max_tokens: int = config.LLM_TUTOR_MAX_TOKENS,
        model: str = config.LLM_MODEL,
        client: Optional[AsyncOpenAI] = None,
    ):
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.model = model
        self._client = client or AsyncOpenAI(
            api_key=config.OPENAI_API_KEY,
            timeout=config.LLM_TIMEOUT_SECONDS,
        )

    @classmethod
    def for_evaluation(cls, client: Optional[AsyncOpenAI] = None) -> "OpenAIGenerator":
        """Near-deterministic, short output."""
        return cls(config.LLM_EVAL_TEMPERATURE, config.LLM_EVAL_MAX_TOKENS, client=client)

    @classmethod
    def for_tutoring(cls, client: Optional[AsyncOpenAI] = None) -> "OpenAIGenerator":
        return cls(config.LLM_TUTOR_TEMPERATURE, config.LLM_TUTOR_MAX_TOKENS, client=client)

    @classmethod
    def for_completion(cls, client: Optional[AsyncOpenAI] = None) -> "OpenAIGenerator":
        return cls(config.LLM_COMPLETION_TEMPERATURE, config.LLM_COMPLETION_MAX_TOKENS, client=client)

    async def generate(self, system_directive: str, context: list[dict]) -> LLMResult:
        messages = [{"role": "system", "content": system_directive}, *context]
        start = time.perf_counter()
        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=messages,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
        except Exception as e:
            elapsed = int((time.perf_counter() - start) * 1000)
            logger.error(f"LLM error after {elapsed}ms: {e}")
            raise

        elapsed = int((time.perf_counter() - start) * 1000)
        content = response.choices[0].message.content
        usage = {}
        if response.usage is not None:
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }
        logger.info(f"LLM response: {elapsed}ms, {usage.get('total_tokens', '?')} tokens")
        return LLMResult(text=(content or "").strip(), latency_ms=elapsed, model=self.model, usage=usage)

    async def __call__(self, system_directive: str, context: list[dict]) -> str:
        result = await self.generate(system_directive, context)
        return result.text
