"""Message composition: turns a decision into outbound text.

Every compose call returns a ComposedMessage and never raises: the
language-generation collaborator is bounded by a timeout and any failure
falls back to the canned text for that kind, flagged ``degraded``.
Critical crises skip generation entirely.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Protocol

from pydantic import BaseModel

from group_facilitator.domain.conversation import ConversationSnapshot
from group_facilitator.domain.distress import DistressAssessment
from group_facilitator.domain.enums import GroupType, InterventionType, NudgeKind, PromptKind
from group_facilitator.domain.group import CommunityEvent, GroupProfile
from group_facilitator.foundation.randomness import RandomSource, default_random
from group_facilitator.generation import canned
from group_facilitator.generation.prompts import format_transcript

logger = logging.getLogger(__name__)


class TextGenerator(Protocol):
    async def generate(self, kind: PromptKind, context: dict) -> str:
        ...


class ComposedMessage(BaseModel):
    text: str
    degraded: bool = False
    style: Optional[str] = None

    model_config = {"frozen": True}


_INTERVENTION_PROMPTS = {
    InterventionType.CRISIS: PromptKind.CRISIS_RESPONSE,
    InterventionType.SUPPORTIVE: PromptKind.SUPPORTIVE,
    InterventionType.ENGAGEMENT: PromptKind.ENGAGEMENT,
    InterventionType.ROUTINE: PromptKind.ROUTINE,
}

_NUDGE_PROMPTS = {
    NudgeKind.SUPPORT_PROMPT: PromptKind.SUPPORT_PROMPT,
    NudgeKind.ACTIVITY_SUGGESTION: PromptKind.ACTIVITY_SUGGESTION,
    NudgeKind.INTEREST_TOPIC: PromptKind.INTEREST_TOPIC,
    NudgeKind.LOCATION_REMINDER: PromptKind.LOCATION_REMINDER,
}


class InterventionComposer:
    """Builds facilitator messages with a bounded generator call.

    Args:
        generator: Language-generation collaborator.
        timeout: Seconds allowed for one generation.
        rng: Random source for routine style selection.
    """

    def __init__(
        self,
        generator: TextGenerator,
        timeout: float = 15.0,
        rng: RandomSource | None = None,
    ) -> None:
        self._generator = generator
        self._timeout = timeout
        self._rng = rng or default_random()
        self.fallbacks_used = 0

    # ── Interventions ────────────────────────────────────────────────

    async def compose_intervention(
        self,
        intervention_type: InterventionType,
        group: GroupProfile,
        snapshot: ConversationSnapshot | None,
        distress: DistressAssessment | None = None,
    ) -> ComposedMessage:
        if intervention_type == InterventionType.CRISIS:
            if distress is None or distress.is_critical:
                return ComposedMessage(text=canned.crisis_message())
            return await self._generate(
                PromptKind.CRISIS_RESPONSE,
                self._conversation_context(group, snapshot),
                canned.crisis_message(),
            )

        context = self._conversation_context(group, snapshot)
        if intervention_type == InterventionType.ROUTINE:
            styles = canned.routine_styles(group.group_type)
            style = self._rng.choice(list(styles))
            context["style"] = style
            composed = await self._generate(PromptKind.ROUTINE, context, styles[style])
            return composed.model_copy(update={"style": style})

        return await self._generate(
            _INTERVENTION_PROMPTS[intervention_type],
            context,
            canned.INTERVENTION_FALLBACKS[intervention_type],
        )

    def compose_private_outreach(self) -> ComposedMessage:
        return ComposedMessage(text=canned.private_outreach_message())

    # ── Nudges ───────────────────────────────────────────────────────

    async def compose_nudge(
        self,
        kind: NudgeKind,
        group: GroupProfile,
        upcoming: list[CommunityEvent] | None = None,
        recent_topics: list[str] | None = None,
    ) -> ComposedMessage:
        """Idle-group content for *kind*.

        Activity and location nudges lead with upcoming events when the feed
        has any; the general prompt is always the fixed text.
        """
        fallback = canned.NUDGE_FALLBACKS[kind].format(location=group.location or "our area")
        if kind == NudgeKind.GENERAL_PROMPT:
            return ComposedMessage(text=fallback)
        if upcoming and kind in (NudgeKind.ACTIVITY_SUGGESTION, NudgeKind.LOCATION_REMINDER):
            return ComposedMessage(text=self.format_events_message(upcoming, "Upcoming events"))

        context = self._group_context(group)
        context["topics"] = ", ".join(recent_topics or []) or "none yet"
        return await self._generate(_NUDGE_PROMPTS[kind], context, fallback)

    @staticmethod
    def format_events_message(events: list[CommunityEvent], heading: str = "New events and activities") -> str:
        lines = [f"*{heading}*", ""]
        for event in events:
            lines.append(f"*{event.title}*")
            lines.append(f"When: {event.starts_at:%A %d %B %Y, %H:%M}")
            if event.location:
                lines.append(f"Where: {event.location}")
            if event.description:
                lines.append(event.description)
            if event.link:
                lines.append(event.link)
            lines.append("")
        lines.append("Would anyone like to join? Ideas for more activities are always welcome.")
        return "\n".join(lines)

    # ── Lifecycle greetings ──────────────────────────────────────────

    async def compose_introduction(self, group: GroupProfile) -> ComposedMessage:
        return await self._generate(
            PromptKind.GROUP_INTRODUCTION,
            self._group_context(group),
            canned.GROUP_INTRODUCTION.format(group_name=group.name),
        )

    async def compose_welcome(self, group: GroupProfile) -> ComposedMessage:
        return await self._generate(
            PromptKind.WELCOME,
            self._group_context(group),
            canned.MEMBER_WELCOME.format(group_name=group.name),
        )

    # ── Internals ────────────────────────────────────────────────────

    async def _generate(self, kind: PromptKind, context: dict, fallback: str) -> ComposedMessage:
        try:
            text = await asyncio.wait_for(
                self._generator.generate(kind, context), timeout=self._timeout,
            )
            if not isinstance(text, str) or not text.strip():
                raise ValueError("empty generation")
            return ComposedMessage(text=text.strip())
        except asyncio.TimeoutError:
            logger.warning("Generation of %s timed out after %.1fs, using canned text", kind.value, self._timeout)
        except Exception as exc:
            logger.warning("Generation of %s failed (%s), using canned text", kind.value, exc)
        self.fallbacks_used += 1
        return ComposedMessage(text=fallback, degraded=True)

    @staticmethod
    def _group_context(group: GroupProfile) -> dict:
        return {
            "group_name": group.name,
            "group_type": group.group_type.value,
            "group_description": group.description or _DEFAULT_FOCUS[group.group_type],
            "location": group.location or "our area",
            "interest_tags": ", ".join(group.interest_tags) or "shared hobbies",
        }

    def _conversation_context(self, group: GroupProfile, snapshot: ConversationSnapshot | None) -> dict:
        context = self._group_context(group)
        recent = snapshot.recent_messages if snapshot else []
        labels: dict[str, str] = {}
        lines = []
        for message in recent:
            label = labels.setdefault(message.sender, f"Member {len(labels) + 1}")
            lines.append((label, message.text))
        context["recent_messages"] = format_transcript(lines)
        context["topics"] = ", ".join(snapshot.topics) if snapshot and snapshot.topics else "none detected"
        return context


_DEFAULT_FOCUS = {
    GroupType.SUPPORT: "general mutual support",
    GroupType.ACTIVITY: "social activities",
    GroupType.INTEREST: "shared interests",
    GroupType.LOCATION: "the local community",
}
