"""DecisionEngine: decides whether, and how, the facilitator speaks.

Design principles:
    1. Pure: reads a ConversationState, returns a Decision.  The caller
       holds the group lock and performs the claim.
    2. No I/O, no LLMs.  The only nondeterminism is the injected random
       source used for routine interventions.
    3. All thresholds live in an explicit DecisionPolicy.

Procedure for a message trigger, first match wins:
    - trigger key recently claimed        → suppress (one fire per key)
    - critical distress                   → CRISIS (ignores cooldown and threshold)
    - inside cooldown                     → suppress
    - elevated distress                   → CRISIS (ignores threshold)
    - too few messages since last turn    → suppress
    - run of negative messages            → SUPPORTIVE
    - support group with a single speaker → ENGAGEMENT
    - random draw under group probability → ROUTINE
    - otherwise                           → suppress

Critical crises may re-fire on back-to-back critical messages; only the
per-message key stops a duplicate.  Elevated distress waits out the
cooldown.  Both are open for product review.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from group_facilitator.domain.conversation import ConversationState
from group_facilitator.domain.decision import Decision, NudgeDecision, Trigger
from group_facilitator.domain.enums import (
    ConversationPhase,
    GroupType,
    InterventionType,
    NudgeKind,
)
from group_facilitator.domain.group import GroupProfile
from group_facilitator.foundation.randomness import RandomSource, default_random

_DEFAULT_PROBABILITIES = {
    GroupType.SUPPORT: 0.3,
    GroupType.ACTIVITY: 0.2,
    GroupType.LOCATION: 0.15,
    GroupType.INTEREST: 0.1,
}

_NUDGE_KINDS = {
    GroupType.SUPPORT: NudgeKind.SUPPORT_PROMPT,
    GroupType.ACTIVITY: NudgeKind.ACTIVITY_SUGGESTION,
    GroupType.INTEREST: NudgeKind.INTEREST_TOPIC,
    GroupType.LOCATION: NudgeKind.LOCATION_REMINDER,
}


@dataclass(frozen=True)
class DecisionPolicy:
    """Configurable thresholds for the decision procedure."""

    cooldown: timedelta = timedelta(hours=1)
    # Messages required since the last intervention
    min_messages: int = 3
    negative_trigger: int = 3
    single_speaker_min: int = 2
    probabilities: dict[GroupType, float] = field(default_factory=lambda: dict(_DEFAULT_PROBABILITIES))
    default_probability: float = 0.1
    # Idle age before a scheduled nudge fires
    idle_threshold: timedelta = timedelta(hours=6)

    def probability_for(self, group_type: GroupType) -> float:
        return self.probabilities.get(group_type, self.default_probability)


class DecisionEngine:
    """Stateless intervention decisions over per-group state."""

    def __init__(
        self,
        policy: DecisionPolicy | None = None,
        rng: RandomSource | None = None,
    ) -> None:
        self._policy = policy or DecisionPolicy()
        self._rng = rng or default_random()

    @property
    def policy(self) -> DecisionPolicy:
        return self._policy

    # ── Public API ───────────────────────────────────────────────────────

    def evaluate(
        self,
        state: ConversationState,
        group: GroupProfile,
        trigger: Trigger,
        now: datetime,
    ) -> Decision:
        """Run the decision procedure.  Does not mutate *state*."""
        p = self._policy
        phase = state.phase(now, p.cooldown, p.min_messages, p.negative_trigger)
        distress = trigger.distress
        critical = distress is not None and distress.is_critical
        crisis = distress is not None and distress.is_crisis

        if trigger.key is not None and state.has_claimed(trigger.key):
            return Decision.suppress("trigger already handled", phase)

        if critical:
            return self._fire(InterventionType.CRISIS, "critical distress", phase)

        if phase == ConversationPhase.COOLING_DOWN:
            return Decision.suppress("cooldown active", phase)

        if crisis:
            return self._fire(InterventionType.CRISIS, "elevated distress", phase)

        if phase == ConversationPhase.QUIET:
            return Decision.suppress(
                f"{state.messages_since_intervention} of {p.min_messages} messages since last intervention",
                phase,
            )

        if phase == ConversationPhase.NEEDS_INTERVENTION:
            return self._fire(
                InterventionType.SUPPORTIVE,
                f"{state.consecutive_negative} consecutive negative messages",
                phase,
            )

        if group.group_type == GroupType.SUPPORT and state.single_speaker(p.single_speaker_min):
            return self._fire(InterventionType.ENGAGEMENT, "single participant", phase)

        probability = p.probability_for(group.group_type)
        draw = self._rng.random()
        if draw < probability:
            return self._fire(
                InterventionType.ROUTINE, f"routine draw {draw:.2f} < {probability:.2f}", phase,
            )
        return Decision.suppress(f"routine draw {draw:.2f} >= {probability:.2f}", phase)

    def evaluate_idle(
        self,
        group: GroupProfile,
        last_activity: datetime | None,
        now: datetime,
    ) -> NudgeDecision:
        """Decide whether a timer tick should nudge an idle group."""
        kind = _NUDGE_KINDS.get(group.group_type, NudgeKind.GENERAL_PROMPT)
        if last_activity is None:
            return NudgeDecision(fire=True, kind=kind, idle_hours=float("inf"), reason="no recorded activity")

        idle = now - last_activity
        idle_hours = round(idle.total_seconds() / 3600, 2)
        if idle < self._policy.idle_threshold:
            return NudgeDecision(fire=False, idle_hours=idle_hours, reason="recently active")
        return NudgeDecision(fire=True, kind=kind, idle_hours=idle_hours, reason="idle")

    # ── Internals ────────────────────────────────────────────────────────

    @staticmethod
    def _fire(intervention_type: InterventionType, reason: str, phase: ConversationPhase) -> Decision:
        return Decision(fire=True, intervention_type=intervention_type, reason=reason, phase=phase)
