"""Facilitator: the message and timer paths through the engine.

Message path:
    inbound message → sentiment (outside any lock) → ConversationStore
    → DistressClassifier → DistressLedger → intervene()

intervene():
    1. Under the group lock: evaluate the decision and, if it fires, claim
       the slot (last-intervention timestamp, message count, trigger key).
       Decide and claim are one critical section, so concurrent triggers
       on the same group produce one fire.
    2. Outside the lock: compose text, send through the DispatchGateway.
    The claim stands even if the send is rate limited or fails.

Timer path:
    tick(group_id) → idle check → nudge composition → gateway
    daily scan     → new community events → one digest per relevant group

Every entry point catches and logs its own failures so one group never
stops processing for the others.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional, Protocol, Union

from pydantic import BaseModel

from group_facilitator.dispatch.gateway import DispatchGateway
from group_facilitator.distress.classifier import DistressClassifier
from group_facilitator.distress.ledger import DistressLedger
from group_facilitator.domain.decision import Decision, NudgeDecision, Trigger
from group_facilitator.domain.delivery import DeliveryResult, RateLimited
from group_facilitator.domain.enums import (
    ConversationPhase,
    InterventionType,
    OperatorEventKind,
    TriggerKind,
)
from group_facilitator.domain.events import OperatorEvent
from group_facilitator.domain.group import CommunityEvent, GroupProfile
from group_facilitator.domain.messages import InboundMessage
from group_facilitator.engine.decision import DecisionEngine
from group_facilitator.foundation.clock import utc_now
from group_facilitator.generation.composer import ComposedMessage, InterventionComposer
from group_facilitator.notify.operator_channel import OperatorChannel
from group_facilitator.store.conversation_store import ConversationStore
from group_facilitator.store.repository import EventFeed, GroupRepository

logger = logging.getLogger(__name__)


class SentimentAnalyzer(Protocol):
    async def analyze(self, text: str) -> float:
        ...


class InterventionOutcome(BaseModel):
    """What happened to one trigger."""

    group_id: str
    decision: Decision
    message: Optional[ComposedMessage] = None
    dispatch: Optional[Union[DeliveryResult, RateLimited]] = None
    private_outreach: Optional[Union[DeliveryResult, RateLimited]] = None

    model_config = {"frozen": True}

    @property
    def delivered(self) -> bool:
        return isinstance(self.dispatch, DeliveryResult)

    def summary(self) -> dict:
        return {
            "fired": self.decision.fire,
            "intervention_type": (
                self.decision.intervention_type.value if self.decision.intervention_type else None
            ),
            "reason": self.decision.reason,
            "phase": self.decision.phase.value,
            "delivered": self.delivered,
            "rate_limited": isinstance(self.dispatch, RateLimited),
        }


class Facilitator:
    """Wires the engine's collaborators into the message and timer paths."""

    def __init__(
        self,
        store: ConversationStore,
        classifier: DistressClassifier,
        ledger: DistressLedger,
        engine: DecisionEngine,
        composer: InterventionComposer,
        gateway: DispatchGateway,
        groups: GroupRepository,
        events: EventFeed,
        channel: OperatorChannel,
        sentiment: SentimentAnalyzer | None = None,
        clock: Callable[[], datetime] = utc_now,
        private_outreach_threshold: float = 0.8,
        bot_sender_id: str | None = None,
    ) -> None:
        self._store = store
        self._classifier = classifier
        self._ledger = ledger
        self._engine = engine
        self._composer = composer
        self._gateway = gateway
        self._groups = groups
        self._events = events
        self._channel = channel
        self._sentiment = sentiment
        self._clock = clock
        self._private_outreach_threshold = private_outreach_threshold
        self._bot_sender_id = bot_sender_id

    # ── Message path ─────────────────────────────────────────────────────

    async def handle_message(self, message: InboundMessage) -> Optional[InterventionOutcome]:
        """Process one inbound group message.  Never raises."""
        try:
            if self._bot_sender_id and message.sender_id == self._bot_sender_id:
                return None

            group = await self._lookup_group(message.group_id)
            if group is None:
                logger.warning("Message for unknown or inactive group %s ignored", message.group_id)
                return None

            sentiment = await self._score_sentiment(message)
            recorded = await self._store.record_message(
                group.group_id,
                message.sender_id,
                message.text,
                message.timestamp,
                sentiment,
            )
            if recorded is None:
                return None

            assessment = await self._classifier.assess(message.text)
            await self._ledger.record(assessment, message)

            trigger = Trigger(
                kind=TriggerKind.MESSAGE,
                group_id=group.group_id,
                key=message.message_id,
                distress=assessment,
                sender_id=message.sender_id,
                user_id=message.user_id,
                text=message.text,
            )
            return await self.intervene(group, trigger)
        except Exception:
            logger.error("Failed to process message %s for group %s",
                         message.message_id, message.group_id, exc_info=True)
            return None

    async def intervene(self, group: GroupProfile, trigger: Trigger) -> InterventionOutcome:
        """Decide-and-claim under the group lock, then compose and send."""
        now = self._clock()
        async with self._store.locked(group.group_id, create=True) as state:
            if state is None:
                decision = None
            else:
                decision = self._engine.evaluate(state, group, trigger, now)
                if decision.fire:
                    state.mark_intervention(now, trigger.key)
                snapshot = state.snapshot()

        if decision is None:
            logger.info("Group %s was torn down, dropping trigger %s", group.group_id, trigger.key)
            return InterventionOutcome(
                group_id=group.group_id,
                decision=Decision.suppress("group no longer monitored", ConversationPhase.QUIET),
            )

        if not decision.fire:
            logger.debug("No intervention for group %s: %s", group.group_id, decision.reason)
            return InterventionOutcome(group_id=group.group_id, decision=decision)

        logger.info(
            "Intervention %s claimed for group %s (%s)",
            decision.intervention_type.value, group.group_id, decision.reason,
        )
        composed = await self._composer.compose_intervention(
            decision.intervention_type, group, snapshot, trigger.distress,
        )
        result = await self._dispatch(group.destination_id, composed.text)

        outreach = None
        distress = trigger.distress
        if (
            decision.intervention_type == InterventionType.CRISIS
            and distress is not None
            and distress.score >= self._private_outreach_threshold
            and trigger.sender_id
        ):
            outreach = await self._dispatch(
                trigger.sender_id, self._composer.compose_private_outreach().text,
            )

        if isinstance(result, DeliveryResult):
            self._channel.publish(OperatorEvent.intervention_sent(
                group_id=group.group_id,
                intervention_type=decision.intervention_type,
                reason=decision.reason,
                degraded=composed.degraded,
                style=composed.style,
            ))
            await self._touch(group.group_id, now)

        return InterventionOutcome(
            group_id=group.group_id,
            decision=decision,
            message=composed,
            dispatch=result,
            private_outreach=outreach,
        )

    # ── Timer path ───────────────────────────────────────────────────────

    async def handle_tick(self, group_id: str) -> Optional[NudgeDecision]:
        """Recurring per-group timer callback: nudge the group if idle."""
        try:
            group = await self._lookup_group(group_id)
            if group is None:
                logger.info("Tick for unknown or inactive group %s skipped", group_id)
                return None

            now = self._clock()
            nudge = self._engine.evaluate_idle(group, await self._last_activity(group_id), now)
            if not nudge.fire:
                logger.debug("Group %s active %.1fh ago, no nudge", group_id, nudge.idle_hours)
                return nudge

            snapshot = self._store.peek(group_id)
            composed = await self._composer.compose_nudge(
                nudge.kind,
                group,
                await self._upcoming(group),
                snapshot.topics if snapshot else None,
            )
            if self._store.is_retired(group_id):
                logger.info("Group %s was torn down during tick, nudge dropped", group_id)
                return None
            result = await self._dispatch(group.destination_id, composed.text)
            if isinstance(result, DeliveryResult):
                await self._touch(group_id, now)
                self._channel.publish(OperatorEvent(
                    kind=OperatorEventKind.NUDGE_SENT,
                    group_id=group_id,
                    details={"nudge": nudge.kind.value, "degraded": composed.degraded},
                ))
            return nudge
        except Exception:
            logger.error("Scheduled tick failed for group %s", group_id, exc_info=True)
            return None

    async def run_daily_scan(self) -> int:
        """Distribute newly discovered community events.  Returns groups reached.

        Failures fetching the feed propagate to the scheduler, which logs
        them and re-arms; a failed send to one group does not stop the rest.
        """
        events = await self._events.fetch_new_events()
        if not events:
            logger.info("Daily scan: no new community events")
            return 0

        reached = 0
        for group in await self._groups.list_active():
            relevant = [e for e in events if e.is_relevant_to(group)]
            if not relevant:
                continue
            text = self._composer.format_events_message(relevant)
            result = await self._dispatch(group.destination_id, text)
            if isinstance(result, DeliveryResult):
                reached += 1
                self._channel.publish(OperatorEvent(
                    kind=OperatorEventKind.EVENTS_DISTRIBUTED,
                    group_id=group.group_id,
                    details={"events": [e.event_id for e in relevant]},
                ))
        logger.info("Daily scan: %d new events sent to %d groups", len(events), reached)
        return reached

    async def forget_group(self, group: GroupProfile) -> None:
        """Drop in-memory state and the destination bucket for a torn-down group."""
        await self._store.remove(group.group_id)
        self._gateway.forget(group.destination_id)

    async def admit_group(self, group: GroupProfile) -> None:
        """Let a (re-)registered group accumulate state again."""
        await self._store.admit(group.group_id)

    # ── Internals ────────────────────────────────────────────────────────

    async def _lookup_group(self, group_id: str) -> Optional[GroupProfile]:
        try:
            group = await self._groups.get_group(group_id)
        except Exception as exc:
            logger.warning("Group repository unavailable for %s: %s", group_id, exc)
            return None
        if group is None or not group.active:
            return None
        return group

    async def _score_sentiment(self, message: InboundMessage) -> Optional[float]:
        if self._sentiment is None:
            return None
        try:
            return await self._sentiment.analyze(message.text)
        except Exception as exc:
            logger.warning("Sentiment analysis failed for message %s: %s", message.message_id, exc)
            return None

    async def _last_activity(self, group_id: str) -> Optional[datetime]:
        candidates = []
        snapshot = self._store.peek(group_id)
        if snapshot is not None and snapshot.last_message_at is not None:
            candidates.append(snapshot.last_message_at)
        try:
            interaction = await self._groups.get_last_interaction(group_id)
        except Exception as exc:
            logger.warning("Could not read last interaction for %s: %s", group_id, exc)
            interaction = None
        if interaction is not None:
            candidates.append(interaction)
        return max(candidates) if candidates else None

    async def _upcoming(self, group: GroupProfile) -> list[CommunityEvent]:
        try:
            return await self._events.upcoming(group)
        except Exception as exc:
            logger.warning("Event feed unavailable for group %s: %s", group.group_id, exc)
            return []

    async def _dispatch(self, destination_id: str, text: str) -> Optional[Union[DeliveryResult, RateLimited]]:
        try:
            return await self._gateway.send(destination_id, text)
        except Exception as exc:
            logger.warning("Delivery to %s failed: %s", destination_id, exc)
            return None

    async def _touch(self, group_id: str, at: datetime) -> None:
        try:
            await self._groups.set_last_interaction(group_id, at)
        except Exception as exc:
            logger.warning("Could not record last interaction for %s: %s", group_id, exc)
