"""
prodigyhub.services.project_service — Project State Machine
============================================================

Lifecycle::

    open ──► in_progress ──► completed
      │           │
      │           └────────► cancelled
      ├──────────────────────► completed
      └──────────────────────► cancelled

``completed`` and ``cancelled`` are terminal.  Every transition is a
conditional ``UPDATE … WHERE status IN (…)`` so two racing callers can
never both win; when zero rows match, the row is re-read only to pick the
right error.  Joins bump ``current_participants`` with the same technique
and rely on the ``(project_id, user_id)`` unique constraint to reject a
racing duplicate.

Completion lives in :mod:`prodigyhub.services.completion_service`; it
reuses :func:`transition` from here.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any, NoReturn

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from sqlalchemy import Engine, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from prodigyhub.config import ProdigyConfig, default_config
from prodigyhub.constants import (
    DESCRIPTION_MAX_LEN,
    DESCRIPTION_MIN_LEN,
    MAX_PARTICIPANTS,
    MAX_TAG_LEN,
    MAX_TAGS,
    MIN_PARTICIPANTS,
    TITLE_MAX_LEN,
    TITLE_MIN_LEN,
    slugify,
    xp_bounds_for,
)
from prodigyhub.database.models import (
    ACTIVE_STATUSES,
    ActivityKind,
    Difficulty,
    NotificationKind,
    ParticipantRole,
    Project,
    ProjectParticipant,
    ProjectStatus,
    User,
)
from prodigyhub.engine.workflow import WorkflowReport, WorkflowRunner
from prodigyhub.errors import (
    AlreadyCompleted,
    AlreadyMember,
    Forbidden,
    Full,
    InvalidState,
    NotFound,
    UserNotFound,
)
from prodigyhub.services.activity_service import append_activity
from prodigyhub.services.channel_adapter import ChannelAdapter, NullChannelAdapter
from prodigyhub.services.notification_service import add_notification
from prodigyhub.services.xp_service import AwardResult, XPLedger

logger = logging.getLogger(__name__)

LIST_SCOPES = ("created", "participating", "completed")


# ---------------------------------------------------------------------------
# Write-boundary validation
# ---------------------------------------------------------------------------
class ProjectDraft(BaseModel):
    """A new project as submitted by its creator.

    ``xp_reward`` defaults to the bottom of the difficulty's range.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(min_length=TITLE_MIN_LEN, max_length=TITLE_MAX_LEN)
    description: str = Field(min_length=DESCRIPTION_MIN_LEN, max_length=DESCRIPTION_MAX_LEN)
    difficulty: Difficulty = Difficulty.BEGINNER
    max_participants: int = Field(default=5, ge=MIN_PARTICIPANTS, le=MAX_PARTICIPANTS)
    xp_reward: int | None = None
    tags: list[str] = Field(default_factory=list, max_length=MAX_TAGS)

    @field_validator("tags")
    @classmethod
    def _clean_tags(cls, tags: list[str]) -> list[str]:
        cleaned = []
        for tag in tags:
            tag = tag.strip()
            if not tag:
                raise ValueError("tags must be non-empty strings")
            if len(tag) > MAX_TAG_LEN:
                raise ValueError(f"tag {tag[:10]!r}… exceeds {MAX_TAG_LEN} characters")
            cleaned.append(tag)
        return cleaned

    @model_validator(mode="after")
    def _check_reward(self) -> ProjectDraft:
        low, high = xp_bounds_for(self.difficulty)
        if self.xp_reward is None:
            self.xp_reward = low
        elif not low <= self.xp_reward <= high:
            raise ValueError(
                f"xp_reward for {self.difficulty.value} projects must be "
                f"between {low} and {high}"
            )
        return self


@dataclass(frozen=True, slots=True)
class JoinResult:
    project_id: int
    user_id: int
    current_participants: int
    max_participants: int
    bonus: AwardResult | None = None
    report: WorkflowReport | None = field(default=None, compare=False)


# ---------------------------------------------------------------------------
# Shared transition helper
# ---------------------------------------------------------------------------
def transition(
    session: Session,
    project_id: int,
    by_user_id: int,
    *,
    to_status: ProjectStatus,
    from_statuses: Iterable[str],
    values: dict[str, Any] | None = None,
) -> None:
    """Move a project to *to_status* if *by_user_id* created it and it is
    currently in one of *from_statuses*.

    Raises
    ------
    NotFound
        The project does not exist.
    Forbidden
        *by_user_id* is not the creator.
    AlreadyCompleted
        Completing a project that is already completed.
    InvalidState
        Any other status outside *from_statuses*, including a terminal
        project that is being started or cancelled.
    """
    result = session.execute(
        update(Project)
        .where(
            Project.id == project_id,
            Project.creator_id == by_user_id,
            Project.status.in_(list(from_statuses)),
        )
        .values(status=to_status.value, **(values or {}))
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 1:
        return

    project = session.get(Project, project_id)
    if project is None:
        raise NotFound(f"Project {project_id} not found", {"project_id": project_id})
    if project.creator_id != by_user_id:
        raise Forbidden(
            "Only the project creator can do that",
            {"project_id": project_id, "user_id": by_user_id},
        )
    details = {"project_id": project_id, "status": project.status}
    if project.status == ProjectStatus.COMPLETED and to_status is ProjectStatus.COMPLETED:
        raise AlreadyCompleted("Project is already completed", details)
    raise InvalidState(
        f"Cannot move a {project.status} project to {to_status.value}", details
    )


def roster_ids(session: Session, project_id: int) -> list[int]:
    """User ids on the roster, creator included, in join order."""
    return list(session.scalars(
        select(ProjectParticipant.user_id)
        .where(ProjectParticipant.project_id == project_id)
        .order_by(ProjectParticipant.joined_at, ProjectParticipant.id)
    ).all())


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------
class ProjectService:
    """Create, join, start and cancel projects.

    Parameters
    ----------
    engine:
        SQLAlchemy engine.
    ledger:
        XP ledger for the join / creation bonuses.  Built from *engine*
        when omitted.
    adapter:
        Collaboration-channel adapter; defaults to :class:`NullChannelAdapter`.
    config:
        Bonus amounts and timeouts; defaults to :func:`default_config`.
    """

    def __init__(
        self,
        engine: Engine,
        *,
        ledger: XPLedger | None = None,
        adapter: ChannelAdapter | None = None,
        config: ProdigyConfig | None = None,
    ) -> None:
        self.engine = engine
        self.ledger = ledger or XPLedger(engine)
        self.adapter = adapter or NullChannelAdapter()
        self.config = config or default_config()

    # -----------------------------------------------------------------------
    # Create
    # -----------------------------------------------------------------------
    def create(self, draft: ProjectDraft | dict[str, Any], creator_id: int) -> Project:
        """Insert a new ``open`` project with its creator enrolled.

        The creation bonus is awarded after commit, best effort.
        """
        if not isinstance(draft, ProjectDraft):
            draft = ProjectDraft.model_validate(draft)

        with Session(self.engine, expire_on_commit=False) as session:
            creator = session.get(User, creator_id)
            if creator is None:
                raise UserNotFound(f"User {creator_id} not found", {"user_id": creator_id})

            project = Project(
                title=draft.title,
                description=draft.description,
                slug=slugify(draft.title),
                creator_id=creator_id,
                status=ProjectStatus.OPEN.value,
                difficulty=draft.difficulty.value,
                max_participants=draft.max_participants,
                current_participants=1,
                xp_reward=draft.xp_reward,
                tags=draft.tags,
            )
            session.add(project)
            session.flush()
            session.add(ProjectParticipant(
                project_id=project.id,
                user_id=creator_id,
                role=ParticipantRole.CREATOR.value,
            ))
            append_activity(
                session,
                kind=ActivityKind.PROJECT_CREATED,
                description=f'Created project "{project.title}"',
                user_id=creator_id,
                project_id=project.id,
                payload={"difficulty": project.difficulty, "xp_reward": project.xp_reward},
            )
            session.commit()
            session.refresh(project)
            session.expunge(project)

        logger.info("Project %s created by user %s: %r", project.id, creator_id, project.title)

        if self.config.create_xp > 0:
            runner = WorkflowRunner(
                "create_project",
                context={"project_id": project.id, "user_id": creator_id},
            )
            runner.best_effort(
                "creation_bonus",
                self.ledger.award,
                creator_id,
                self.config.create_xp,
                "created a project",
                project_id=project.id,
                subject=creator_id,
            )
        return project

    # -----------------------------------------------------------------------
    # Join
    # -----------------------------------------------------------------------
    def join(self, project_id: int, user_id: int) -> JoinResult:
        """Enrol *user_id* on an ``open`` project with free capacity.

        Raises
        ------
        NotFound
            Unknown project (``UserNotFound`` for an unknown user).
        InvalidState
            Project is not ``open``.
        AlreadyMember
            User is already on the roster.
        Full
            Project is at ``max_participants``.
        """
        with Session(self.engine) as session:
            joiner = session.get(User, user_id)
            if joiner is None:
                raise UserNotFound(f"User {user_id} not found", {"user_id": user_id})
            joiner_name = joiner.name

            row = session.execute(
                update(Project)
                .where(
                    Project.id == project_id,
                    Project.status == ProjectStatus.OPEN.value,
                    Project.current_participants < Project.max_participants,
                )
                .values(current_participants=Project.current_participants + 1)
                .returning(
                    Project.current_participants,
                    Project.max_participants,
                    Project.creator_id,
                    Project.title,
                    Project.role_ref,
                )
                .execution_options(synchronize_session=False)
            ).one_or_none()
            if row is None:
                self._raise_join_failure(session, project_id, user_id)

            try:
                session.add(ProjectParticipant(
                    project_id=project_id,
                    user_id=user_id,
                    role=ParticipantRole.COLLABORATOR.value,
                ))
                session.flush()
            except IntegrityError:
                session.rollback()
                raise AlreadyMember(
                    "You are already a participant in this project",
                    {"project_id": project_id, "user_id": user_id},
                ) from None

            append_activity(
                session,
                kind=ActivityKind.PROJECT_JOINED,
                description=f'Joined project "{row.title}"',
                user_id=user_id,
                project_id=project_id,
            )
            if user_id != row.creator_id:
                add_notification(
                    session,
                    user_id=row.creator_id,
                    sender_id=user_id,
                    kind=NotificationKind.PROJECT_JOIN,
                    title="New Team Member!",
                    message=f'{joiner_name} joined your project "{row.title}"',
                    payload={"project_id": project_id, "user_id": user_id},
                )
            session.commit()

        logger.info(
            "User %s joined project %s (%d/%d)",
            user_id, project_id, row.current_participants, row.max_participants,
        )

        runner = WorkflowRunner(
            "join_project", context={"project_id": project_id, "user_id": user_id}
        )
        bonus = None
        if self.config.join_xp > 0:
            bonus = runner.best_effort(
                "join_bonus",
                self.ledger.award,
                user_id,
                self.config.join_xp,
                "joined a project",
                project_id=project_id,
                subject=user_id,
            )
        if row.role_ref:
            runner.best_effort(
                "channel_add_member",
                self.adapter.add_member,
                row.role_ref,
                user_id,
                timeout=self.config.channel_timeout,
                subject=user_id,
            )

        return JoinResult(
            project_id=project_id,
            user_id=user_id,
            current_participants=row.current_participants,
            max_participants=row.max_participants,
            bonus=bonus,
            report=runner.report,
        )

    @staticmethod
    def _raise_join_failure(session: Session, project_id: int, user_id: int) -> NoReturn:
        project = session.get(Project, project_id)
        if project is None:
            raise NotFound(f"Project {project_id} not found", {"project_id": project_id})
        details = {"project_id": project_id, "status": project.status}
        if project.status != ProjectStatus.OPEN:
            raise InvalidState(f"Project is {project.status}, not open", details)
        member = session.scalar(
            select(ProjectParticipant.id).where(
                ProjectParticipant.project_id == project_id,
                ProjectParticipant.user_id == user_id,
            )
        )
        if member is not None:
            raise AlreadyMember(
                "You are already a participant in this project",
                {"project_id": project_id, "user_id": user_id},
            )
        raise Full(
            "Project is at maximum capacity",
            {"project_id": project_id, "max_participants": project.max_participants},
        )

    # -----------------------------------------------------------------------
    # Start / cancel
    # -----------------------------------------------------------------------
    def start(self, project_id: int, by_user_id: int) -> Project:
        """``open → in_progress``; creator only."""
        with Session(self.engine) as session:
            transition(
                session,
                project_id,
                by_user_id,
                to_status=ProjectStatus.IN_PROGRESS,
                from_statuses=(ProjectStatus.OPEN.value,),
            )
            append_activity(
                session,
                kind=ActivityKind.PROJECT_STARTED,
                description="Started work on the project",
                user_id=by_user_id,
                project_id=project_id,
            )
            session.commit()

        logger.info("Project %s started by user %s", project_id, by_user_id)
        return self.get(project_id)

    def cancel(self, project_id: int, by_user_id: int) -> Project:
        """Cancel an active project; creator only.  No XP side effects."""
        with Session(self.engine) as session:
            transition(
                session,
                project_id,
                by_user_id,
                to_status=ProjectStatus.CANCELLED,
                from_statuses=ACTIVE_STATUSES,
            )
            project = session.get(Project, project_id)
            title, channel_ref, role_ref = project.title, project.channel_ref, project.role_ref
            members = roster_ids(session, project_id)

            append_activity(
                session,
                kind=ActivityKind.PROJECT_CANCELLED,
                description=f'Cancelled project "{title}"',
                user_id=by_user_id,
                project_id=project_id,
            )
            for member_id in members:
                if member_id == by_user_id:
                    continue
                add_notification(
                    session,
                    user_id=member_id,
                    sender_id=by_user_id,
                    kind=NotificationKind.PROJECT_CANCELLED,
                    title="Project Cancelled",
                    message=f'"{title}" was cancelled by its creator.',
                    payload={"project_id": project_id},
                )
            session.commit()

        logger.info("Project %s cancelled by user %s", project_id, by_user_id)

        if channel_ref and role_ref:
            runner = WorkflowRunner("cancel_project", context={"project_id": project_id})
            runner.best_effort(
                "channel_teardown",
                self.adapter.teardown,
                channel_ref,
                role_ref,
                timeout=self.config.channel_timeout,
            )
        return self.get(project_id)

    # -----------------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------------
    def get(self, project_id: int) -> Project:
        with Session(self.engine, expire_on_commit=False) as session:
            project = session.get(Project, project_id)
            if project is None:
                raise NotFound(f"Project {project_id} not found", {"project_id": project_id})
            session.expunge(project)
            return project

    def roster(self, project_id: int) -> Sequence[ProjectParticipant]:
        """Roster rows with their users loaded, in join order."""
        with Session(self.engine, expire_on_commit=False) as session:
            if session.get(Project, project_id) is None:
                raise NotFound(f"Project {project_id} not found", {"project_id": project_id})
            rows = list(session.scalars(
                select(ProjectParticipant)
                .options(selectinload(ProjectParticipant.user))
                .where(ProjectParticipant.project_id == project_id)
                .order_by(ProjectParticipant.joined_at, ProjectParticipant.id)
            ).all())
            session.expunge_all()
            return rows

    def list_for_user(self, user_id: int, scope: str = "participating") -> list[Project]:
        """Projects the user created, is active in, or has completed."""
        if scope not in LIST_SCOPES:
            raise ValueError(f"scope must be one of {LIST_SCOPES}, got {scope!r}")

        stmt = select(Project)
        if scope == "created":
            stmt = stmt.where(Project.creator_id == user_id)
        else:
            stmt = stmt.join(
                ProjectParticipant, ProjectParticipant.project_id == Project.id
            ).where(ProjectParticipant.user_id == user_id)
            if scope == "participating":
                stmt = stmt.where(Project.status.in_(ACTIVE_STATUSES))
            else:
                stmt = stmt.where(Project.status == ProjectStatus.COMPLETED.value)
        stmt = stmt.order_by(Project.created_at.desc(), Project.id.desc())

        with Session(self.engine, expire_on_commit=False) as session:
            projects = list(session.scalars(stmt).all())
            session.expunge_all()
            return projects
