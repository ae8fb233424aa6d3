"""
prodigyhub.constants — Shared Constants & Helpers
==================================================

Single source of truth for project limits, the difficulty → XP reward
schedule, and presentation constants.  Import from here instead of
duplicating in services, routes, and embeds.
"""

from __future__ import annotations

import re

from prodigyhub.database.models import ActivityKind, Difficulty

# ---------------------------------------------------------------------------
# Project limits (validated by ProjectDraft)
# ---------------------------------------------------------------------------
TITLE_MIN_LEN = 3
TITLE_MAX_LEN = 100
DESCRIPTION_MIN_LEN = 10
DESCRIPTION_MAX_LEN = 2000
MIN_PARTICIPANTS = 2
MAX_PARTICIPANTS = 20
MAX_TAGS = 10
MAX_TAG_LEN = 30


# ---------------------------------------------------------------------------
# XP reward bounds per difficulty — inclusive (min, max)
# ---------------------------------------------------------------------------
DIFFICULTY_XP_BOUNDS: dict[str, tuple[int, int]] = {
    Difficulty.BEGINNER: (50, 100),
    Difficulty.INTERMEDIATE: (100, 300),
    Difficulty.ADVANCED: (300, 600),
    Difficulty.EXPERT: (600, 1000),
}


def xp_bounds_for(difficulty: str) -> tuple[int, int]:
    """Inclusive XP reward range for *difficulty*.

    Raises ``ValueError`` for an unknown difficulty.
    """
    return DIFFICULTY_XP_BOUNDS[Difficulty(difficulty)]


# ---------------------------------------------------------------------------
# Activity feed — kinds surfaced on the public dashboard feed
# ---------------------------------------------------------------------------
FEED_KINDS: tuple[str, ...] = (
    ActivityKind.PROJECT_CREATED,
    ActivityKind.PROJECT_JOINED,
    ActivityKind.PROJECT_COMPLETED,
    ActivityKind.LEVEL_UP,
)


# ---------------------------------------------------------------------------
# Presentation (used by Discord embeds)
# ---------------------------------------------------------------------------
DIFFICULTY_EMOJI: dict[str, str] = {
    Difficulty.BEGINNER: "\U0001f7e2",      # 🟢
    Difficulty.INTERMEDIATE: "\U0001f535",  # 🔵
    Difficulty.ADVANCED: "\U0001f7e3",      # 🟣
    Difficulty.EXPERT: "\U0001f534",        # 🔴
}

COLOR_PROJECT = 0x5865F2   # blurple
COLOR_COMPLETE = 0x57F287  # green


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------
_SLUG_STRIP = re.compile(r"[^a-z0-9]+")


def slugify(title: str, max_len: int = 90) -> str:
    """Lower-case, dash-separated identifier for channel and role names.

    ``slugify("Build a Game!") == "build-a-game"``; empty titles yield
    ``"project"``.
    """
    slug = _SLUG_STRIP.sub("-", title.lower()).strip("-")
    return slug[:max_len].rstrip("-") or "project"
