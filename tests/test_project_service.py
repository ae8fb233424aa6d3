"""
tests/test_project_service.py — Project State Machine Tests
============================================================
Create / join / start / cancel against SQLite, including capacity under
concurrent joins and the side effects each transition leaves behind.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest
from conftest import add_participant, get_project, get_user, make_project, make_user
from pydantic import ValidationError
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from prodigyhub.config import ProdigyConfig
from prodigyhub.database.models import (
    ActivityKind,
    ActivityLog,
    Notification,
    NotificationKind,
    ProjectParticipant,
    ProjectStatus,
)
from prodigyhub.errors import (
    AlreadyCompleted,
    AlreadyMember,
    Forbidden,
    Full,
    InvalidState,
    NotFound,
    UserNotFound,
)
from prodigyhub.services.completion_service import CompletionOrchestrator
from prodigyhub.services.project_service import ProjectDraft, ProjectService


@pytest.fixture
def service(db_engine, quiet_config, adapter):
    return ProjectService(db_engine, adapter=adapter, config=quiet_config)


def _roster_count(engine, project_id):
    with Session(engine) as session:
        return session.scalar(
            select(func.count()).select_from(ProjectParticipant)
            .where(ProjectParticipant.project_id == project_id)
        )


def _kinds(engine, model, **filters):
    with Session(engine) as session:
        stmt = select(model.kind)
        for key, value in filters.items():
            stmt = stmt.where(getattr(model, key) == value)
        return list(session.scalars(stmt).all())


# ===========================================================================
# ProjectDraft validation
# ===========================================================================
class TestProjectDraft:
    def _draft(self, **overrides):
        data = {
            "title": "Build a Game",
            "description": "A small co-op platformer.",
            "difficulty": "intermediate",
            "max_participants": 4,
        }
        data.update(overrides)
        return ProjectDraft.model_validate(data)

    def test_defaults_reward_to_range_floor(self):
        assert self._draft().xp_reward == 100
        assert self._draft(difficulty="expert").xp_reward == 600

    @pytest.mark.parametrize(
        "difficulty, reward",
        [("beginner", 50), ("beginner", 100), ("intermediate", 300),
         ("advanced", 300), ("expert", 1000)],
    )
    def test_reward_within_bounds(self, difficulty, reward):
        assert self._draft(difficulty=difficulty, xp_reward=reward).xp_reward == reward

    @pytest.mark.parametrize(
        "difficulty, reward",
        [("beginner", 49), ("beginner", 101), ("advanced", 601), ("expert", 599)],
    )
    def test_reward_out_of_bounds(self, difficulty, reward):
        with pytest.raises(ValidationError):
            self._draft(difficulty=difficulty, xp_reward=reward)

    @pytest.mark.parametrize(
        "overrides",
        [
            {"title": "ab"},
            {"title": "x" * 101},
            {"description": "too short"},
            {"max_participants": 1},
            {"max_participants": 21},
            {"difficulty": "legendary"},
            {"tags": ["ok"] * 11},
            {"tags": ["x" * 31]},
            {"tags": ["   "]},
        ],
    )
    def test_rejects_invalid_fields(self, overrides):
        with pytest.raises(ValidationError):
            self._draft(**overrides)

    def test_tags_are_stripped(self):
        assert self._draft(tags=[" godot ", "pixel-art"]).tags == ["godot", "pixel-art"]


# ===========================================================================
# create()
# ===========================================================================
class TestCreate:
    def test_creator_is_enrolled(self, db_engine, service):
        creator = make_user(db_engine, "alice")
        project = service.create(
            {"title": "Build a Game", "description": "A small co-op platformer."},
            creator,
        )

        assert project.status == ProjectStatus.OPEN
        assert project.current_participants == 1
        assert project.slug == "build-a-game"
        assert _roster_count(db_engine, project.id) == 1
        assert ActivityKind.PROJECT_CREATED in _kinds(db_engine, ActivityLog, project_id=project.id)

    def test_creation_bonus_awarded(self, db_engine, adapter):
        creator = make_user(db_engine, "alice")
        service = ProjectService(db_engine, adapter=adapter, config=ProdigyConfig(create_xp=100))
        service.create({"title": "Build a Game", "description": "A small co-op platformer."}, creator)
        assert get_user(db_engine, creator).total_xp == 100

    def test_unknown_creator(self, service):
        with pytest.raises(UserNotFound):
            service.create({"title": "Build a Game", "description": "A small co-op platformer."}, 999)


# ===========================================================================
# join()
# ===========================================================================
class TestJoin:
    def test_join_updates_roster_and_notifies_creator(self, db_engine, service):
        creator = make_user(db_engine, "alice")
        joiner = make_user(db_engine, "bob")
        pid = make_project(db_engine, creator)

        result = service.join(pid, joiner)

        assert result.current_participants == 2
        assert get_project(db_engine, pid).current_participants == 2
        assert _roster_count(db_engine, pid) == 2
        assert ActivityKind.PROJECT_JOINED in _kinds(db_engine, ActivityLog, user_id=joiner)
        with Session(db_engine) as session:
            [note] = session.scalars(
                select(Notification).where(Notification.user_id == creator)
            ).all()
        assert note.kind == NotificationKind.PROJECT_JOIN
        assert note.title == "New Team Member!"
        assert note.sender_id == joiner
        assert "Bob" in note.message

    def test_third_join_is_full(self, db_engine, service):
        creator = make_user(db_engine, "alice")
        first = make_user(db_engine, "bob")
        second = make_user(db_engine, "carol")
        pid = make_project(db_engine, creator, max_participants=2)

        service.join(pid, first)
        with pytest.raises(Full):
            service.join(pid, second)
        assert get_project(db_engine, pid).current_participants == 2
        assert _roster_count(db_engine, pid) == 2

    def test_already_member(self, db_engine, service):
        creator = make_user(db_engine, "alice")
        joiner = make_user(db_engine, "bob")
        pid = make_project(db_engine, creator)
        service.join(pid, joiner)

        with pytest.raises(AlreadyMember):
            service.join(pid, joiner)
        with pytest.raises(AlreadyMember):
            service.join(pid, creator)
        assert get_project(db_engine, pid).current_participants == 2

    def test_membership_checked_before_capacity(self, db_engine, service):
        creator = make_user(db_engine, "alice")
        joiner = make_user(db_engine, "bob")
        pid = make_project(db_engine, creator, max_participants=2)
        service.join(pid, joiner)

        with pytest.raises(AlreadyMember):
            service.join(pid, joiner)

    @pytest.mark.parametrize(
        "status", [ProjectStatus.IN_PROGRESS, ProjectStatus.CANCELLED]
    )
    def test_not_open(self, db_engine, service, status):
        creator = make_user(db_engine, "alice")
        joiner = make_user(db_engine, "bob")
        pid = make_project(db_engine, creator, status=status)
        with pytest.raises(InvalidState):
            service.join(pid, joiner)

    def test_missing_project_or_user(self, db_engine, service):
        uid = make_user(db_engine, "bob")
        with pytest.raises(NotFound):
            service.join(12345, uid)
        pid = make_project(db_engine, uid)
        with pytest.raises(UserNotFound):
            service.join(pid, 777)

    def test_join_bonus_and_channel_member(self, db_engine, adapter):
        creator = make_user(db_engine, "alice")
        joiner = make_user(db_engine, "bob")
        pid = make_project(db_engine, creator, channel_ref="chan-1", role_ref="role-1")
        service = ProjectService(db_engine, adapter=adapter, config=ProdigyConfig(join_xp=25))

        result = service.join(pid, joiner)

        assert result.bonus is not None and result.bonus.total_xp == 25
        assert get_user(db_engine, joiner).total_xp == 25
        assert ("add_member", "role-1", joiner) in adapter.calls

    def test_channel_failure_does_not_fail_join(self, db_engine, service, adapter):
        creator = make_user(db_engine, "alice")
        joiner = make_user(db_engine, "bob")
        pid = make_project(db_engine, creator, channel_ref="chan-1", role_ref="role-1")
        adapter.fail_on.add("add_member")

        result = service.join(pid, joiner)

        assert _roster_count(db_engine, pid) == 2
        assert [f.step for f in result.report.failures] == ["channel_add_member"]


class TestConcurrentJoins:
    def test_capacity_never_exceeded(self, db_engine, service):
        creator = make_user(db_engine, "creator")
        users = [make_user(db_engine, f"user{i}") for i in range(12)]
        pid = make_project(db_engine, creator, max_participants=5)

        def attempt(uid):
            try:
                service.join(pid, uid)
                return "joined"
            except Full:
                return "full"

        with ThreadPoolExecutor(max_workers=6) as pool:
            outcomes = list(pool.map(attempt, users))

        assert outcomes.count("joined") == 4
        assert outcomes.count("full") == 8
        project = get_project(db_engine, pid)
        assert project.current_participants == 5
        assert _roster_count(db_engine, pid) == 5

    def test_duplicate_racing_join_counted_once(self, db_engine, service):
        creator = make_user(db_engine, "creator")
        joiner = make_user(db_engine, "racer")
        pid = make_project(db_engine, creator, max_participants=10)

        def attempt(_):
            try:
                service.join(pid, joiner)
                return "joined"
            except AlreadyMember:
                return "dup"

        with ThreadPoolExecutor(max_workers=4) as pool:
            outcomes = list(pool.map(attempt, range(8)))

        assert outcomes.count("joined") == 1
        assert get_project(db_engine, pid).current_participants == 2
        assert _roster_count(db_engine, pid) == 2


# ===========================================================================
# start() / cancel()
# ===========================================================================
class TestStartAndCancel:
    def test_start_by_creator(self, db_engine, service):
        creator = make_user(db_engine, "alice")
        pid = make_project(db_engine, creator)
        project = service.start(pid, creator)
        assert project.status == ProjectStatus.IN_PROGRESS
        assert ActivityKind.PROJECT_STARTED in _kinds(db_engine, ActivityLog, project_id=pid)

    def test_start_forbidden_for_non_creator(self, db_engine, service):
        creator = make_user(db_engine, "alice")
        other = make_user(db_engine, "bob")
        pid = make_project(db_engine, creator)
        with pytest.raises(Forbidden):
            service.start(pid, other)
        assert get_project(db_engine, pid).status == ProjectStatus.OPEN

    def test_start_twice(self, db_engine, service):
        creator = make_user(db_engine, "alice")
        pid = make_project(db_engine, creator)
        service.start(pid, creator)
        with pytest.raises(InvalidState):
            service.start(pid, creator)

    def test_cancel_notifies_other_participants(self, db_engine, service, adapter):
        creator = make_user(db_engine, "alice")
        member = make_user(db_engine, "bob")
        pid = make_project(db_engine, creator, channel_ref="chan-9", role_ref="role-9")
        add_participant(db_engine, pid, member)

        project = service.cancel(pid, creator)

        assert project.status == ProjectStatus.CANCELLED
        assert project.completed_at is None
        assert _kinds(db_engine, Notification, user_id=member) == [NotificationKind.PROJECT_CANCELLED]
        assert _kinds(db_engine, Notification, user_id=creator) == []
        assert ("teardown", "chan-9", "role-9") in adapter.calls
        assert get_user(db_engine, member).total_xp == 0

    def test_cancel_terminal(self, db_engine, service):
        creator = make_user(db_engine, "alice")
        cancelled = make_project(db_engine, creator, status=ProjectStatus.CANCELLED)
        with pytest.raises(InvalidState):
            service.cancel(cancelled, creator)

    def test_cancel_missing(self, service):
        with pytest.raises(NotFound):
            service.cancel(4040, 1)

    @pytest.mark.parametrize("action", ["start", "cancel"])
    def test_completed_project_is_invalid_state(self, db_engine, service, action):
        creator = make_user(db_engine, "alice")
        pid = make_project(db_engine, creator)
        CompletionOrchestrator(db_engine, config=service.config).complete(pid, creator)
        with pytest.raises(InvalidState) as excinfo:
            getattr(service, action)(pid, creator)
        assert not isinstance(excinfo.value, AlreadyCompleted)
        assert excinfo.value.error_code == "InvalidState"
        assert get_project(db_engine, pid).status == ProjectStatus.COMPLETED


# ===========================================================================
# Reads
# ===========================================================================
class TestReads:
    def test_roster_in_join_order(self, db_engine, service):
        creator = make_user(db_engine, "alice")
        member = make_user(db_engine, "bob")
        pid = make_project(db_engine, creator)
        service.join(pid, member)

        roster = service.roster(pid)
        assert [r.user.username for r in roster] == ["alice", "bob"]
        assert roster[0].role == "creator"

    def test_list_for_user_scopes(self, db_engine, service):
        alice = make_user(db_engine, "alice")
        bob = make_user(db_engine, "bob")
        mine = make_project(db_engine, alice, title="Alice Project")
        theirs = make_project(db_engine, bob, title="Bob Project")
        done = make_project(db_engine, bob, title="Done Project")
        service.join(theirs, alice)
        service.join(done, alice)
        CompletionOrchestrator(db_engine, config=service.config).complete(done, bob)

        assert [p.id for p in service.list_for_user(alice, "created")] == [mine]
        assert {p.id for p in service.list_for_user(alice, "participating")} == {mine, theirs}
        assert [p.id for p in service.list_for_user(alice, "completed")] == [done]

    def test_list_for_user_bad_scope(self, service):
        with pytest.raises(ValueError):
            service.list_for_user(1, "everything")

    def test_get_missing(self, service):
        with pytest.raises(NotFound):
            service.get(31337)
