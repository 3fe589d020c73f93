"""Distress classifier gateway: two-stage filter in front of an external scorer.

Stage 1 is a keyword match with no external call.  A message escalates to
stage 2 (the external scorer) if stage 1 matched, OR with an independent
sampling probability (10% by default).  So roughly one in ten "clean"
messages is still deep-checked.

Failure semantics:
    The scorer is bounded by a timeout.  Any failure returns the fallback
    score (0.3): low but never zero, erring toward false positives.  The
    error is logged, not retried inline.
"""

from __future__ import annotations

import asyncio
import logging
import math
from typing import Protocol

from group_facilitator.distress.keywords import DEFAULT_DISTRESS_KEYWORDS, first_match
from group_facilitator.domain.distress import DistressAssessment, classify_tier
from group_facilitator.domain.enums import DistressStage, DistressTier
from group_facilitator.foundation.randomness import RandomSource, default_random

logger = logging.getLogger(__name__)


class DistressScorer(Protocol):
    """External text-risk scorer returning a value in [0, 1]."""

    async def score(self, text: str) -> float:
        ...


class DistressClassifier:
    """Bounded-cost distress assessment for inbound messages.

    Args:
        scorer: The external stage-2 scorer.
        keywords: Stage-1 vocabulary.
        sample_rate: Probability of deep-checking a message with no keyword.
        fallback_score: Score reported when the scorer fails.
        timeout: Seconds allowed for one scorer call.
        rng: Random source for the sampling draw.
        informational / elevated / critical: Tier thresholds.
    """

    def __init__(
        self,
        scorer: DistressScorer,
        keywords: tuple[str, ...] | list[str] = DEFAULT_DISTRESS_KEYWORDS,
        sample_rate: float = 0.10,
        fallback_score: float = 0.3,
        timeout: float = 10.0,
        rng: RandomSource | None = None,
        informational: float = 0.5,
        elevated: float = 0.7,
        critical: float = 0.9,
    ) -> None:
        if not 0.0 <= sample_rate <= 1.0:
            raise ValueError("sample_rate must be within [0, 1]")
        if not informational <= elevated <= critical:
            raise ValueError("tier thresholds must be ordered informational <= elevated <= critical")
        self._scorer = scorer
        self._keywords = tuple(keywords)
        self._sample_rate = sample_rate
        self._fallback_score = fallback_score
        self._timeout = timeout
        self._rng = rng or default_random()
        self._thresholds = (informational, elevated, critical)
        self.deep_checks = 0
        self.failures = 0

    async def assess(self, text: str) -> DistressAssessment:
        """Run the two-stage filter over one message.  Never raises."""
        keyword = first_match(text, self._keywords)
        # Drawn for every message so sampling is independent of stage 1.
        sampled = self._rng.random() < self._sample_rate

        if keyword is None and not sampled:
            return DistressAssessment(score=0.0, tier=DistressTier.NONE, stage=DistressStage.SKIPPED)

        stage = DistressStage.KEYWORD if keyword is not None else DistressStage.SAMPLED
        score, degraded = await self._deep_check(text)
        return DistressAssessment(
            score=score,
            tier=classify_tier(score, *self._thresholds),
            stage=stage,
            keyword=keyword,
            degraded=degraded,
        )

    async def _deep_check(self, text: str) -> tuple[float, bool]:
        self.deep_checks += 1
        try:
            raw = await asyncio.wait_for(self._scorer.score(text), timeout=self._timeout)
            score = float(raw)
            if math.isnan(score):
                raise ValueError("scorer returned NaN")
        except asyncio.TimeoutError:
            self.failures += 1
            logger.warning(
                "Distress scorer timed out after %.1fs, using fallback %.2f",
                self._timeout, self._fallback_score,
            )
            return self._fallback_score, True
        except Exception as exc:
            self.failures += 1
            logger.warning(
                "Distress scorer failed (%s), using fallback %.2f", exc, self._fallback_score,
            )
            return self._fallback_score, True

        if not 0.0 <= score <= 1.0:
            logger.error("Distress scorer returned %.3f outside [0, 1], clamping", score)
            score = max(0.0, min(score, 1.0))
        return score, False
