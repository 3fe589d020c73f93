"""Static distress vocabulary for the stage-1 filter.

Matching is a case-insensitive substring test, so multi-word phrases
are allowed.  The Hebrew entries mirror the vocabulary used by the
Israeli support groups this engine was first deployed with.
"""

from __future__ import annotations

DEFAULT_DISTRESS_KEYWORDS: tuple[str, ...] = (
    # English
    "help me",
    "afraid",
    "scared",
    "violence",
    "danger",
    "threat",
    "hurt me",
    "abuse",
    "police",
    "attacked",
    "panic",
    "anxiety",
    "depressed",
    "hopeless",
    "suicide",
    "kill myself",
    "end it all",
    "don't know what to do",
    # Hebrew
    "עזרה",
    "פחד",
    "אלימות",
    "סכנה",
    "מפחיד",
    "מאיים",
    "לא יודעת מה לעשות",
    "אני בבעיה",
    "משטרה",
    "תקיפה",
    "פגיעה",
    "איום",
    "חרדה",
    "לחץ",
    "דיכאון",
    "אובדני",
)


def first_match(text: str, keywords: tuple[str, ...] | list[str]) -> str | None:
    """Return the first keyword contained in *text*, or None."""
    lowered = text.lower()
    for keyword in keywords:
        if keyword.lower() in lowered:
            return keyword
    return None
