"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of prodigyhub.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

import threading  # noqa: E402
import time  # noqa: E402
from collections.abc import Sequence  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import Engine, update  # noqa: E402

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# SQLite doesn't support JSONB natively, but SQLAlchemy's JSON type works.
# We register a custom type compiler so SQLite renders JSONB as TEXT.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from prodigyhub.config import ProdigyConfig  # noqa: E402
from prodigyhub.database.engine import create_db_engine, init_db  # noqa: E402
from prodigyhub.database.models import (  # noqa: E402
    ParticipantRole,
    Project,
    ProjectParticipant,
    ProjectStatus,
    User,
)
from prodigyhub.engine.leveling import level_of  # noqa: E402
from prodigyhub.errors import DownstreamUnavailable  # noqa: E402
from prodigyhub.services.channel_adapter import ChannelRefs, ProjectSummary  # noqa: E402

_jsonb_sqlite_registered = False


def _register_jsonb_sqlite_compat():
    """Register SQLite compilation for PG JSONB type (idempotent).

    Also maps BigInteger → INTEGER so autoincrement works on SQLite.
    """
    global _jsonb_sqlite_registered
    if _jsonb_sqlite_registered:
        return
    from sqlalchemy import BigInteger
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    @compiles(BigInteger, "sqlite")
    def _compile_bigint_as_integer(type_, compiler, **kw):
        return "INTEGER"

    _jsonb_sqlite_registered = True


_register_jsonb_sqlite_compat()


@pytest.fixture
def db_engine(tmp_path) -> Engine:
    """File-backed SQLite engine with all ProdigyHub tables.

    A file (not ``:memory:``) so fan-out threads get their own connections
    and contend on the real database lock, as they would on PostgreSQL.
    """
    engine = create_db_engine(f"sqlite:///{tmp_path / 'prodigyhub.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def quiet_config() -> ProdigyConfig:
    """Config with the join / creation bonuses disabled and short timeouts."""
    return ProdigyConfig(
        join_xp=0,
        create_xp=0,
        completion_step_timeout=2.0,
        channel_timeout=1.0,
        max_fanout_workers=4,
    )


# ---------------------------------------------------------------------------
# Seed helpers: write rows directly, bypassing services (no bonus XP)
# ---------------------------------------------------------------------------
def make_user(
    engine: Engine,
    username: str,
    *,
    total_xp: int = 0,
    discord_id: str | None = None,
) -> int:
    with Session(engine) as session:
        user = User(
            username=username,
            display_name=username.title(),
            discord_id=discord_id,
            total_xp=total_xp,
            level=level_of(total_xp),
        )
        session.add(user)
        session.commit()
        return user.id


def make_project(
    engine: Engine,
    creator_id: int,
    *,
    title: str = "Build a Game",
    max_participants: int = 5,
    xp_reward: int = 150,
    difficulty: str = "intermediate",
    status: ProjectStatus = ProjectStatus.OPEN,
    channel_ref: str | None = None,
    role_ref: str | None = None,
) -> int:
    with Session(engine) as session:
        project = Project(
            title=title,
            description="A project used by the test suite.",
            slug=title.lower().replace(" ", "-"),
            creator_id=creator_id,
            status=status.value,
            difficulty=difficulty,
            max_participants=max_participants,
            current_participants=1,
            xp_reward=xp_reward,
            tags=["test"],
            channel_ref=channel_ref,
            role_ref=role_ref,
        )
        session.add(project)
        session.flush()
        session.add(ProjectParticipant(
            project_id=project.id,
            user_id=creator_id,
            role=ParticipantRole.CREATOR.value,
        ))
        session.commit()
        return project.id


def add_participant(engine: Engine, project_id: int, user_id: int) -> None:
    with Session(engine) as session:
        session.add(ProjectParticipant(project_id=project_id, user_id=user_id))
        session.execute(
            update(Project)
            .where(Project.id == project_id)
            .values(current_participants=Project.current_participants + 1)
        )
        session.commit()


def get_user(engine: Engine, user_id: int) -> User:
    with Session(engine, expire_on_commit=False) as session:
        user = session.get(User, user_id)
        session.expunge(user)
        return user


def get_project(engine: Engine, project_id: int) -> Project:
    with Session(engine, expire_on_commit=False) as session:
        project = session.get(Project, project_id)
        session.expunge(project)
        return project


# ---------------------------------------------------------------------------
# Channel adapter fake
# ---------------------------------------------------------------------------
class RecordingAdapter:
    """In-memory ChannelAdapter that records calls.

    ``fail_on`` names methods that raise ``DownstreamUnavailable``;
    ``delay`` maps method names to a sleep in seconds.
    """

    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.fail_on: set[str] = set()
        self.delay: dict[str, float] = {}
        self._lock = threading.Lock()

    def _record(self, name: str, *args) -> None:
        if name in self.delay:
            time.sleep(self.delay[name])
        with self._lock:
            self.calls.append((name, *args))
        if name in self.fail_on:
            raise DownstreamUnavailable(f"{name} unavailable")

    def names(self) -> list[str]:
        return [c[0] for c in self.calls]

    def provision(self, project: ProjectSummary, participant_ids: Sequence[int]) -> ChannelRefs:
        self._record("provision", project.project_id, tuple(participant_ids))
        return ChannelRefs(channel_ref=f"chan-{project.project_id}", role_ref=f"role-{project.project_id}")

    def add_member(self, role_ref: str, participant_id: int) -> None:
        self._record("add_member", role_ref, participant_id)

    def announce_completion(
        self, channel_ref: str, summary: ProjectSummary, participant_ids: Sequence[int]
    ) -> None:
        self._record("announce_completion", channel_ref, summary.project_id, tuple(participant_ids))

    def teardown(self, channel_ref: str, role_ref: str) -> None:
        self._record("teardown", channel_ref, role_ref)


@pytest.fixture
def adapter() -> RecordingAdapter:
    return RecordingAdapter()


# ---------------------------------------------------------------------------
# Auth + API client
# ---------------------------------------------------------------------------
def make_token(user_id: int, *, is_admin: bool = False) -> str:
    """Create a JWT for *user_id*.  Usable from any test module."""
    import jwt

    from prodigyhub.api.deps import JWT_ALGORITHM, JWT_SECRET

    return jwt.encode(
        {"sub": str(user_id), "is_admin": is_admin},
        JWT_SECRET,
        algorithm=JWT_ALGORITHM,
    )


def auth(user_id: int, *, is_admin: bool = False) -> dict:
    return {"Authorization": f"Bearer {make_token(user_id, is_admin=is_admin)}"}


@pytest.fixture
def client(db_engine, quiet_config, adapter):
    """TestClient over an app wired to the per-test engine and fake adapter."""
    from fastapi.testclient import TestClient

    from prodigyhub.api.main import create_app

    app = create_app(engine=db_engine, config=quiet_config, adapter=adapter)
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
