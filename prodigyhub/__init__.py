"""
ProdigyHub — Project Lifecycle & Gamification Engine
=====================================================
Members form teams around projects, earn XP for joining, creating and
completing them, and level up on a tiered curve.  Every state change lands
in an activity journal and the affected members' inboxes; projects can
optionally own a chat channel in Discord.

Package layout::

    prodigyhub/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Project limits, XP reward bounds, presentation
    ├── errors.py          # Domain exception hierarchy
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + SQLite locking hooks
    │   └── models.py      # ORM models (5 tables)
    ├── engine/
    │   ├── leveling.py    # XP → level curve (pure)
    │   └── workflow.py    # Critical / best-effort step runner
    ├── services/
    │   ├── xp_service.py          # XP ledger
    │   ├── project_service.py     # Create / join / start / cancel
    │   ├── completion_service.py  # Completion workflow
    │   ├── activity_service.py    # Activity journal
    │   ├── notification_service.py # Per-user inbox
    │   ├── channel_adapter.py     # Collaboration-channel contract
    │   ├── channel_service.py     # Channel provisioning / teardown
    │   ├── discord_adapter.py     # Discord REST adapter
    │   └── embeds.py              # Discord embed builders
    └── api/
        ├── main.py        # FastAPI app factory
        ├── deps.py        # JWT auth + service injection
        ├── serializers.py # Row → JSON helpers
        └── routes/        # Projects, notifications, public, admin
"""

__version__ = "0.1.0"
