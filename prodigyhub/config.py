"""
prodigyhub.config — YAML Configuration Loader
==============================================

Reads ``config.yaml`` for soft settings (community identity, XP bonuses,
workflow timeouts).  Secrets and infrastructure (``DATABASE_URL``,
``JWT_SECRET``, ``DISCORD_BOT_TOKEN``) stay in the environment and are
loaded from ``.env`` by ``python-dotenv`` at the entry points.

Usage::

    from prodigyhub.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.community_name)    # "ProdigyHub"
    print(cfg.join_xp)           # 25
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class ProdigyConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    community_name: str = "ProdigyHub"

    # Discord: the collaboration-channel adapter is enabled only when set
    guild_id: int | None = None

    # XP bonuses (0 disables)
    join_xp: int = 25
    create_xp: int = 100

    # Completion workflow
    completion_step_timeout: float = 5.0   # seconds per participant
    channel_timeout: float = 10.0          # seconds for the adapter call
    max_fanout_workers: int = 8

    # Project channels are torn down this long after completion
    channel_teardown_hours: int = 24


def default_config() -> ProdigyConfig:
    """Built-in settings, used by tests and when no file is present in dev."""
    return ProdigyConfig()


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> ProdigyConfig:
    """Read *path* and return a :class:`ProdigyConfig` instance.

    Keys missing from the file fall back to the dataclass defaults.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    ValueError
        If a numeric setting is negative.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    defaults = default_config()
    cfg = ProdigyConfig(
        community_name=raw.get("community_name", defaults.community_name),
        guild_id=int(raw["guild_id"]) if raw.get("guild_id") else None,
        join_xp=int(raw.get("join_xp", defaults.join_xp)),
        create_xp=int(raw.get("create_xp", defaults.create_xp)),
        completion_step_timeout=float(
            raw.get("completion_step_timeout", defaults.completion_step_timeout)
        ),
        channel_timeout=float(raw.get("channel_timeout", defaults.channel_timeout)),
        max_fanout_workers=int(raw.get("max_fanout_workers", defaults.max_fanout_workers)),
        channel_teardown_hours=int(
            raw.get("channel_teardown_hours", defaults.channel_teardown_hours)
        ),
    )

    for name in ("join_xp", "create_xp", "channel_teardown_hours"):
        if getattr(cfg, name) < 0:
            raise ValueError(f"{name} must be >= 0, got {getattr(cfg, name)}")
    for name in ("completion_step_timeout", "channel_timeout", "max_fanout_workers"):
        if getattr(cfg, name) <= 0:
            raise ValueError(f"{name} must be > 0, got {getattr(cfg, name)}")
    return cfg
