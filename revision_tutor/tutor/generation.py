"""
revIsion RSC v1.0 — Generation Output Handling

The contract every agent uses to talk to the model, and the single
retry-then-fallback loop they share. At most one identical re-prompt.
"""

import logging
from typing import Awaitable, Callable, Optional, TypeVar

from revision_tutor import config
from revision_tutor.tutor.types import GenerationOutputError

logger = logging.getLogger("revision.generation")

# (system_directive, conversation_context) -> completion_text
GenerateFn = Callable[[str, list[dict]], Awaitable[str]]

T = TypeVar("T")


def strip_markdown_fences(text: str) -> str:
    """Remove a ```json ... ``` wrapper if the model added one."""
    text = text.strip()
    if text.startswith("```"):
        first_newline = text.find("\n")
        text = text[first_newline + 1:] if first_newline != -1 else text[3:]
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
        text = text.strip()
    return text


async def generate_with_retry(
    llm_call_func: GenerateFn,
    system_directive: str,
    context: list[dict],
    parse: Callable[[str], T],
    label: str,
    max_retries: int = config.GENERATION_MAX_RETRIES,
) -> Optional[T]:
    """
    Call the generator and parse its output, re-prompting identically on failure.

    `parse` raises GenerationOutputError for malformed output. An exception
    from the generator itself also counts as a failed attempt. Returns None
    once every attempt has failed; nothing is raised to the caller.
    """
    for attempt in range(1, max_retries + 2):
        try:
            raw = await llm_call_func(system_directive, context)
        except Exception as e:
            logger.error(f"{label}: generation raised on attempt {attempt}: {e}")
            continue
        try:
            return parse(raw)
        except GenerationOutputError as e:
            logger.warning(f"{label}: malformed output on attempt {attempt}: {e}")
    return None
