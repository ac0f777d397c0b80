"""Commit-message phase markers."""

from __future__ import annotations

from enum import Enum


class Marker(str, Enum):
    """Single-glyph tag prefixed to every commit gtd (or its user) makes."""

    HUMAN = "🤦"
    PLAN = "🤖"
    BUILD = "🔨"
    LEARN = "🎓"
    CLEANUP = "🧹"
    FIX = "👷"
    SEED = "🌱"
    FEEDBACK = "💬"
    EXPLORE = "🧭"

    def __str__(self) -> str:
        return self.value


# Parse order. Glyphs share no common prefix, so order only matters for ties.
ALL_PREFIXES: tuple[Marker, ...] = (
    Marker.HUMAN,
    Marker.PLAN,
    Marker.BUILD,
    Marker.LEARN,
    Marker.CLEANUP,
    Marker.FIX,
    Marker.SEED,
    Marker.FEEDBACK,
    Marker.EXPLORE,
)

_LABELS = {
    Marker.HUMAN: "human edit",
    Marker.PLAN: "plan",
    Marker.BUILD: "build",
    Marker.LEARN: "learn",
    Marker.CLEANUP: "cleanup",
    Marker.FIX: "fix",
    Marker.SEED: "seed",
    Marker.FEEDBACK: "feedback",
    Marker.EXPLORE: "explore",
}


def parse_commit_prefix(message: str) -> Marker | None:
    """Return the marker a commit subject starts with, if any."""
    for marker in ALL_PREFIXES:
        if message.startswith(marker.value):
            return marker
    return None


def marker_label(marker: Marker | None) -> str:
    """Human readable name for a marker."""
    if marker is None:
        return "none"
    return _LABELS[marker]
