"""Gemini-backed stage-2 distress scorer."""

from __future__ import annotations

import logging

from group_facilitator.generation.llm import LLMFactory, complete_prompt, default_llm_factory, parse_number

logger = logging.getLogger(__name__)

_PROMPT = (
    "You screen messages in a peer-support group for survivors of domestic "
    "violence. Estimate the probability (0 to 1) that the author is in acute "
    "distress or danger: threats, violence, fear for their safety, or thoughts "
    "of self-harm. Reply with the number only.\n\n"
    "Message: {text}"
)


class LLMDistressScorer:
    """Returns a distress score in [0, 1]; raises on an unparseable reply."""

    def __init__(self, llm_factory: LLMFactory | None = None) -> None:
        self._factory = llm_factory or default_llm_factory

    async def score(self, text: str) -> float:
        reply = await complete_prompt(self._factory, _PROMPT.format(text=text))
        score = parse_number(reply, 0.0, 1.0)
        logger.debug("Distress scorer reply %r → %.3f", reply[:40], score)
        return score
