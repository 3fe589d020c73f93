"""Random ID generation for domain objects."""

from __future__ import annotations

from uuid import uuid4


def new_id() -> str:
    """Generate a new random hex identifier for domain objects."""
    return uuid4().hex
