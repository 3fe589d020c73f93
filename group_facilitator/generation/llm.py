"""Gemini-backed collaborators: text generation, sentiment and topics.

All three share one pattern: build a prompt, construct a chat model through
an injected ``llm_factory``, call the blocking ``invoke`` in a worker thread
so the event loop never stalls, and parse the reply.  Parsing failures raise;
callers own the fallback policy.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import re
from typing import Any, Callable

from group_facilitator.config import settings
from group_facilitator.domain.enums import PromptKind
from group_facilitator.generation.prompts import render_prompt

logger = logging.getLogger(__name__)

LLMFactory = Callable[[], Any]  # Returns a langchain BaseChatModel

_NUMBER = re.compile(r"-?\d+(?:\.\d+)?")


def default_llm_factory():
    """Create a Gemini Flash instance from environment config."""
    from langchain_google_genai import ChatGoogleGenerativeAI

    api_key = os.environ.get("GOOGLE_API_KEY") or os.environ.get("FACILITATOR_GEMINI_API_KEY")
    if not api_key:
        raise RuntimeError(
            "Gemini API key not found. Set GOOGLE_API_KEY or FACILITATOR_GEMINI_API_KEY "
            "in your environment variables."
        )

    return ChatGoogleGenerativeAI(
        model=settings.gemini_model,
        google_api_key=api_key,
        temperature=settings.gemini_temperature,
        max_output_tokens=settings.gemini_max_output_tokens,
    )


async def complete_prompt(llm_factory: LLMFactory, prompt: str) -> str:
    def _call() -> str:
        llm = llm_factory()
        response = llm.invoke(prompt)
        return response.content if hasattr(response, "content") else str(response)

    text = await asyncio.to_thread(_call)
    if isinstance(text, list):
        # Multi-part content blocks
        text = "".join(part.get("text", "") if isinstance(part, dict) else str(part) for part in text)
    return str(text).strip()


def _strip_fences(text: str) -> str:
    if text.startswith("```"):
        lines = [l for l in text.split("\n") if not l.strip().startswith("```")]
        text = "\n".join(lines).strip()
    return text


def parse_number(text: str, low: float, high: float) -> float:
    """First number in *text*, clamped to [low, high].  Raises ValueError."""
    match = _NUMBER.search(text)
    if match is None:
        raise ValueError(f"no number in model reply: {text[:80]!r}")
    value = float(match.group(0))
    return max(low, min(value, high))


def parse_topics(text: str, limit: int = 5) -> list[str]:
    """Topics from a JSON array reply, or a comma/newline separated list."""
    text = _strip_fences(text.strip())
    try:
        raw = json.loads(text)
        if isinstance(raw, list):
            items = [str(t) for t in raw]
        else:
            raise ValueError("Expected JSON array")
    except (json.JSONDecodeError, ValueError):
        items = re.split(r"[,\n]", text)
    topics = [t.strip(" -*\"'") for t in items]
    return [t for t in topics if t][:limit]


class LLMTextGenerator:
    """Free-text generation for interventions, nudges and greetings."""

    def __init__(self, llm_factory: LLMFactory | None = None) -> None:
        self._factory = llm_factory or default_llm_factory

    async def generate(self, kind: PromptKind, context: dict) -> str:
        prompt = render_prompt(kind, context)
        text = _strip_fences(await complete_prompt(self._factory, prompt))
        if not text:
            raise ValueError(f"empty {kind.value} generation")
        logger.info("Generated %s text (%d chars)", kind.value, len(text))
        return text


class LLMSentimentAnalyzer:
    """Scores message sentiment in [-1, 1]."""

    _PROMPT = (
        "Rate the emotional sentiment of this chat message on a scale from -1 "
        "(very negative) to 1 (very positive). Reply with the number only.\n\n"
        "Message: {text}"
    )

    def __init__(self, llm_factory: LLMFactory | None = None) -> None:
        self._factory = llm_factory or default_llm_factory

    async def analyze(self, text: str) -> float:
        reply = await complete_prompt(self._factory, self._PROMPT.format(text=text))
        return parse_number(reply, -1.0, 1.0)


class LLMTopicDetector:
    """Extracts up to five short discussion topics."""

    _PROMPT = (
        "List the main discussion topics (at most 5, two or three words each) in "
        "this group chat excerpt. Reply with a JSON array of strings only.\n\n{text}"
    )

    def __init__(self, llm_factory: LLMFactory | None = None, limit: int = 5) -> None:
        self._factory = llm_factory or default_llm_factory
        self._limit = limit

    async def detect(self, text: str) -> list[str]:
        reply = await complete_prompt(self._factory, self._PROMPT.format(text=text))
        return parse_topics(reply, self._limit)
