"""Prompt templates for the text-generation collaborator.

Each PromptKind maps to one template.  Templates are filled with a flat
context dict built by the composer; the LLM sees group metadata and the
recent-message buffer only, never user identifiers.
"""

from __future__ import annotations

from group_facilitator.domain.enums import PromptKind

_FACILITATOR_ROLE = (
    "You are a gentle virtual facilitator in a WhatsApp peer-support community "
    "for people who have experienced domestic violence. Write in a warm, brief, "
    "non-judgemental voice. Never give legal or medical advice. Reply with the "
    "message text only."
)

_TEMPLATES: dict[PromptKind, str] = {
    PromptKind.CRISIS_RESPONSE: (
        "A member of the group \"{group_name}\" wrote a message that may signal distress:\n\n"
        "{recent_messages}\n\n"
        "Write a short, calm reply to the group that acknowledges the feelings, "
        "asks whether the person is safe right now, and invites them to a private conversation."
    ),
    PromptKind.SUPPORTIVE: (
        "Here is the recent conversation in the support group \"{group_name}\":\n\n"
        "{recent_messages}\n\n"
        "Detected topics: {topics}\n\n"
        "Negative feelings or distress are coming up. Write a short, empathetic "
        "message that recognises the difficulty and offers support or a hopeful "
        "perspective without dismissing it."
    ),
    PromptKind.ENGAGEMENT: (
        "Here is the recent conversation in the group \"{group_name}\":\n\n"
        "{recent_messages}\n\n"
        "Only one member is taking part. Write a short, inviting message that "
        "responds to what was said and offers other members an easy way to join in."
    ),
    PromptKind.ROUTINE: (
        "Here is the recent conversation in the group \"{group_name}\" (type: {group_type}):\n\n"
        "{recent_messages}\n\n"
        "Detected topics: {topics}\n\n"
        "Step into the conversation as facilitator using this style: \"{style}\". "
        "Relate to what is being discussed. Keep it short and supportive."
    ),
    PromptKind.SUPPORT_PROMPT: (
        "Suggest a new discussion topic for the support group \"{group_name}\", which "
        "focuses on {group_description}. Recently raised topics: {topics}. The topic "
        "should encourage sharing and mutual support."
    ),
    PromptKind.ACTIVITY_SUGGESTION: (
        "Suggest a fun group activity for \"{group_name}\", which focuses on "
        "{group_description}. It should suit people rebuilding confidence and "
        "social connections.{upcoming_events}"
    ),
    PromptKind.INTEREST_TOPIC: (
        "Suggest a discussion topic for the interest group \"{group_name}\" about "
        "{interest_tags}. Keep it positive and about the shared interests, not about trauma."
    ),
    PromptKind.LOCATION_REMINDER: (
        "Write a short message for a group based around {location} that mentions "
        "interesting local places or invites members to share local experiences.{upcoming_events}"
    ),
    PromptKind.GROUP_INTRODUCTION: (
        "Write a short opening message for the new group \"{group_name}\" "
        "({group_type}): {group_description}. Welcome everyone, explain that a "
        "virtual facilitator is present, and remind members to keep the space respectful and private."
    ),
    PromptKind.WELCOME: (
        "Write a one or two sentence welcome for a new member joining the group "
        "\"{group_name}\" ({group_description})."
    ),
}


class _SafeContext(dict):
    """format_map helper that leaves unknown placeholders empty."""

    def __missing__(self, key: str) -> str:
        return ""


def render_prompt(kind: PromptKind, context: dict) -> str:
    """Fill the template for *kind* and prefix the facilitator role."""
    template = _TEMPLATES[kind]
    return f"{_FACILITATOR_ROLE}\n\n{template.format_map(_SafeContext(context))}"


def format_transcript(lines: list[tuple[str, str]]) -> str:
    """Render (speaker_label, text) pairs as a transcript block."""
    if not lines:
        return "(no recent messages)"
    return "\n".join(f"{speaker}: {text}" for speaker, text in lines)
