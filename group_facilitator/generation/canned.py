"""Fixed texts used when generation is skipped or fails.

Critical distress never waits on a model: the immediate responses and
emergency resources below are sent as-is.  Every other kind has a
fallback so a failed or slow generator still yields a message.
"""

from __future__ import annotations

from group_facilitator.domain.enums import GroupType, InterventionType, NudgeKind

EMERGENCY_IMMEDIATE_RESPONSES: tuple[str, ...] = (
    "I can see you are going through something really hard. Are you somewhere safe right now?",
    "I'm here with you. What can I do to help right now?",
    "Would you like to move to a private conversation with me?",
)

EMERGENCY_RESOURCES: tuple[str, ...] = (
    "Domestic violence emergency line: 1202 / 1",
    "Police: 100",
    "Municipal welfare hotline: 106",
)

# Routine intervention styles per group type; the chosen style steers the
# generated text and its fallback is used when generation fails.
ROUTINE_STYLES: dict[GroupType, dict[str, str]] = {
    GroupType.SUPPORT: {
        "open question to the group": (
            "I'd love to hear from more of you: how has this week been for you so far?"
        ),
        "summary of key points in the discussion": (
            "Thank you all for sharing. It sounds like many of you are finding strength in small steps."
        ),
        "invitation to personal sharing": (
            "If anyone feels comfortable, you are welcome to share something that helped you lately."
        ),
        "positive reinforcement for a participant who shared": (
            "Thank you for opening up. It takes courage to share, and this group is here for you."
        ),
        "alternative point of view": (
            "Sometimes it helps to look at things from another angle. What would you tell a friend in this situation?"
        ),
    },
    GroupType.ACTIVITY: {
        "group activity suggestion": (
            "How about planning a small get-together soon? Any ideas for what we could do?"
        ),
        "feedback on a previous activity": (
            "For those who joined the last activity, what did you enjoy most?"
        ),
        "request for future activity ideas": (
            "What activities would you like to see in the coming weeks? Every idea is welcome."
        ),
    },
}

_GENERAL_ROUTINE = (
    "How is everyone doing? I hope you are enjoying the group. Would anyone like to share how their day went?"
)

INTERVENTION_FALLBACKS: dict[InterventionType, str] = {
    InterventionType.SUPPORTIVE: (
        "I can hear that things feel heavy right now. You are not alone here; "
        "this group is a safe place to share, and every small step counts."
    ),
    InterventionType.ENGAGEMENT: (
        "Thank you for sharing! I'd love to hear what others think as well. "
        "Has anyone experienced something similar?"
    ),
    InterventionType.ROUTINE: _GENERAL_ROUTINE,
}

NUDGE_FALLBACKS: dict[NudgeKind, str] = {
    NudgeKind.SUPPORT_PROMPT: (
        "Hello everyone! How are you today? I'd love it if you shared one positive "
        "experience from this week, or something you're looking forward to."
    ),
    NudgeKind.ACTIVITY_SUGGESTION: (
        "Hello everyone! How about a picnic in a nearby park? It's a lovely chance "
        "to get to know each other outdoors. Who would like to join?"
    ),
    NudgeKind.INTEREST_TOPIC: (
        "Hello everyone! Any recommendations for books, films or podcasts you enjoyed "
        "lately? I'd love to hear them."
    ),
    NudgeKind.LOCATION_REMINDER: (
        "Hello neighbours! Is there a favourite spot around {location} you'd recommend "
        "to the rest of the group?"
    ),
    NudgeKind.GENERAL_PROMPT: _GENERAL_ROUTINE,
}

GROUP_INTRODUCTION = (
    "Welcome to {group_name}! I'm the group's virtual facilitator. This is a safe, "
    "respectful space: please keep what is shared here private, and reach out to me "
    "any time you need support."
)

MEMBER_WELCOME = "A warm welcome to our new member! We're glad you're here in {group_name}."


def routine_styles(group_type: GroupType) -> dict[str, str]:
    """Style → fallback text for *group_type*; other types draw from both sets."""
    if group_type in ROUTINE_STYLES:
        return ROUTINE_STYLES[group_type]
    return {**ROUTINE_STYLES[GroupType.SUPPORT], **ROUTINE_STYLES[GroupType.ACTIVITY]}


def crisis_message() -> str:
    """Immediate crisis response with the emergency resource list."""
    lines = [EMERGENCY_IMMEDIATE_RESPONSES[0], "", "If you need help right away:"]
    lines.extend(f"- {resource}" for resource in EMERGENCY_RESOURCES)
    return "\n".join(lines)


def private_outreach_message() -> str:
    lines = [EMERGENCY_IMMEDIATE_RESPONSES[1], EMERGENCY_IMMEDIATE_RESPONSES[2], ""]
    lines.extend(f"- {resource}" for resource in EMERGENCY_RESOURCES)
    return "\n".join(lines)
