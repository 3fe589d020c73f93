"""Controlled enumerations for the group-facilitator domain.

Every categorical field in the domain MUST reference an enum defined here.
Free-form strings are not acceptable for classification fields.
"""

from __future__ import annotations

from enum import Enum


class GroupType(str, Enum):
    """Category of a monitored peer-support group."""

    SUPPORT = "support"
    ACTIVITY = "activity"
    INTEREST = "interest"
    LOCATION = "location"


class InterventionType(str, Enum):
    """Why the facilitator speaks, in priority order."""

    CRISIS = "crisis"
    SUPPORTIVE = "supportive"
    ENGAGEMENT = "engagement"
    ROUTINE = "routine"


class NudgeKind(str, Enum):
    """Content produced for an idle group by the recurring timer."""

    SUPPORT_PROMPT = "support_prompt"
    ACTIVITY_SUGGESTION = "activity_suggestion"
    INTEREST_TOPIC = "interest_topic"
    LOCATION_REMINDER = "location_reminder"
    GENERAL_PROMPT = "general_prompt"


class DistressTier(str, Enum):
    NONE = "none"
    INFORMATIONAL = "informational"
    ELEVATED = "elevated"
    CRITICAL = "critical"


class ResolutionStatus(str, Enum):
    NEW = "new"
    ASSIGNED = "assigned"
    RESOLVED = "resolved"
    FALSE_POSITIVE = "false_positive"


class ConversationPhase(str, Enum):
    """Per-group facilitation state, derived from ConversationState."""

    QUIET = "quiet"
    NORMAL = "normal"
    NEEDS_INTERVENTION = "needs_intervention"
    COOLING_DOWN = "cooling_down"


class TriggerKind(str, Enum):
    MESSAGE = "message"
    TICK = "tick"


class DistressStage(str, Enum):
    """How far a message travelled through the two-stage distress filter."""

    SKIPPED = "skipped"
    KEYWORD = "keyword"
    SAMPLED = "sampled"


class PromptKind(str, Enum):
    """Requests understood by the language-generation collaborator."""

    CRISIS_RESPONSE = "crisis_response"
    SUPPORTIVE = "supportive"
    ENGAGEMENT = "engagement"
    ROUTINE = "routine"
    SUPPORT_PROMPT = "support_prompt"
    ACTIVITY_SUGGESTION = "activity_suggestion"
    INTEREST_TOPIC = "interest_topic"
    LOCATION_REMINDER = "location_reminder"
    GROUP_INTRODUCTION = "group_introduction"
    WELCOME = "welcome"


class OperatorEventKind(str, Enum):
    INTERVENTION_SENT = "intervention_sent"
    DISTRESS_DETECTED = "distress_detected"
    NUDGE_SENT = "nudge_sent"
    EVENTS_DISTRIBUTED = "events_distributed"
