"""
prodigyhub.services.channel_service — Project Channel Provisioning
===================================================================

Creates the per-project collaboration space through a
:class:`~prodigyhub.services.channel_adapter.ChannelAdapter` and stores the
returned refs on the project row.  The adapter call happens outside any
database transaction; the refs are then written with a conditional update
so a racing second provisioning cannot overwrite them.
"""

from __future__ import annotations

import logging
import os
from datetime import UTC, datetime, timedelta

from sqlalchemy import Engine, select, update
from sqlalchemy.orm import Session

from prodigyhub.config import ProdigyConfig
from prodigyhub.database.models import TERMINAL_STATUSES, Project, ProjectStatus, User
from prodigyhub.engine.workflow import WorkflowRunner
from prodigyhub.errors import Forbidden, InvalidState, NotFound
from prodigyhub.services.channel_adapter import (
    ChannelAdapter,
    ChannelRefs,
    NullChannelAdapter,
    ProjectSummary,
)
from prodigyhub.services.discord_adapter import DiscordChannelAdapter
from prodigyhub.services.project_service import roster_ids

logger = logging.getLogger(__name__)


def summarize_project(project: Project) -> ProjectSummary:
    """Adapter-facing view of a project row."""
    return ProjectSummary(
        project_id=project.id,
        title=project.title,
        description=project.description,
        difficulty=project.difficulty,
        xp_reward=project.xp_reward,
        creator_id=project.creator_id,
        tags=tuple(project.tag_list),
    )


def provision_project_channel(
    engine: Engine,
    adapter: ChannelAdapter,
    project_id: int,
    by_user_id: int,
) -> ChannelRefs:
    """Create the project's channel and role; creator only.

    Raises
    ------
    NotFound
        Unknown project.
    Forbidden
        *by_user_id* is not the creator.
    InvalidState
        The project is terminal or already has a channel.
    DownstreamUnavailable
        The adapter failed; nothing is stored.
    """
    with Session(engine) as session:
        project = session.get(Project, project_id)
        if project is None:
            raise NotFound(f"Project {project_id} not found", {"project_id": project_id})
        if project.creator_id != by_user_id:
            raise Forbidden(
                "Only the project creator can set up a channel",
                {"project_id": project_id, "user_id": by_user_id},
            )
        if project.status in TERMINAL_STATUSES:
            raise InvalidState(
                f"Project is {project.status}",
                {"project_id": project_id, "status": project.status},
            )
        if project.channel_ref is not None:
            raise InvalidState(
                "Project already has a channel",
                {"project_id": project_id, "channel_ref": project.channel_ref},
            )
        summary = summarize_project(project)
        members = roster_ids(session, project_id)

    refs = adapter.provision(summary, members)

    with Session(engine) as session:
        result = session.execute(
            update(Project)
            .where(Project.id == project_id, Project.channel_ref.is_(None))
            .values(channel_ref=refs.channel_ref, role_ref=refs.role_ref)
            .execution_options(synchronize_session=False)
        )
        stored = result.rowcount == 1
        session.commit()

    if not stored:
        runner = WorkflowRunner("provision_channel", context={"project_id": project_id})
        runner.best_effort("teardown_duplicate", adapter.teardown, refs.channel_ref, refs.role_ref)
        raise InvalidState("Project already has a channel", {"project_id": project_id})

    logger.info(
        "Provisioned channel %s / role %s for project %s",
        refs.channel_ref, refs.role_ref, project_id,
    )
    return refs


def teardown_stale_channels(
    engine: Engine,
    adapter: ChannelAdapter,
    older_than_hours: int,
    *,
    timeout: float | None = None,
) -> int:
    """Tear down channels of projects completed more than *older_than_hours*
    ago and clear their refs.

    Each teardown is best effort; refs are only cleared for the ones that
    succeeded.  Returns the number of channels removed.
    """
    cutoff = datetime.now(UTC) - timedelta(hours=older_than_hours)
    with Session(engine) as session:
        rows = session.execute(
            select(Project.id, Project.channel_ref, Project.role_ref).where(
                Project.status == ProjectStatus.COMPLETED.value,
                Project.completed_at <= cutoff,
                Project.channel_ref.is_not(None),
            )
        ).all()

    removed = 0
    for project_id, channel_ref, role_ref in rows:
        runner = WorkflowRunner("channel_teardown", context={"project_id": project_id})
        runner.best_effort(
            "teardown", adapter.teardown, channel_ref, role_ref or "",
            timeout=timeout, subject=project_id,
        )
        if not runner.report.ok:
            continue
        with Session(engine) as session:
            session.execute(
                update(Project)
                .where(Project.id == project_id)
                .values(channel_ref=None, role_ref=None)
                .execution_options(synchronize_session=False)
            )
            session.commit()
        removed += 1

    if removed:
        logger.info("Tore down %d stale project channels", removed)
    return removed


def build_channel_adapter(engine: Engine, config: ProdigyConfig) -> ChannelAdapter:
    """Pick the adapter for this deployment.

    The Discord adapter is used when ``DISCORD_BOT_TOKEN`` is set and the
    config names a ``guild_id``; otherwise channels stay local.
    """
    token = os.getenv("DISCORD_BOT_TOKEN", "").strip()
    if not token or config.guild_id is None:
        logger.info("No Discord integration configured; project channels are local only")
        return NullChannelAdapter()

    def resolve_discord_id(user_id: int) -> str | None:
        with Session(engine) as session:
            return session.scalar(select(User.discord_id).where(User.id == user_id))

    logger.info("Discord channel adapter enabled for guild %s", config.guild_id)
    return DiscordChannelAdapter(
        token, config.guild_id, resolve_discord_id, timeout=config.channel_timeout
    )
