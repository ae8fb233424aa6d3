"""
prodigyhub.services.completion_service — Completion Orchestrator
=================================================================

Completing a project is a four-step workflow::

    1. transition      CRITICAL     status → completed, roster stamped
    2. award XP        BEST_EFFORT  one task per participant (thread pool)
    3. log & notify    BEST_EFFORT  per awarded participant, after its award
    4. announce        BEST_EFFORT  only when the project has a channel

Step 1 commits before anything else runs; it is the only step whose
failure reaches the caller.  Steps 2–4 are recorded on the
:class:`~prodigyhub.engine.workflow.WorkflowReport` and logged with the
project and user ids so a missed award can be replayed by hand through
``POST /api/admin/xp/award``.

Awards are local writes that commit, so they are never abandoned on a
timer: an award reported as failed has raised and rolled back.  The
per-participant timeout bounds the notification write and the channel
timeout bounds the adapter call.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from functools import partial
from typing import Any

from sqlalchemy import Engine, update
from sqlalchemy.orm import Session

from prodigyhub.config import ProdigyConfig, default_config
from prodigyhub.database.models import (
    ACTIVE_STATUSES,
    ActivityKind,
    NotificationKind,
    Project,
    ProjectParticipant,
    ProjectStatus,
)
from prodigyhub.engine.workflow import StepFailure, StepPolicy, WorkflowRunner
from prodigyhub.services.activity_service import append_activity
from prodigyhub.services.channel_adapter import ChannelAdapter, NullChannelAdapter, ProjectSummary
from prodigyhub.services.channel_service import summarize_project
from prodigyhub.services.notification_service import add_notification
from prodigyhub.services.project_service import roster_ids, transition
from prodigyhub.services.xp_service import AwardResult, XPLedger

logger = logging.getLogger(__name__)

COMPLETION_REASON = "project completion"


@dataclass(frozen=True, slots=True)
class _CompletedProject:
    """Snapshot captured inside the transition transaction."""

    summary: ProjectSummary
    participant_ids: tuple[int, ...]
    channel_ref: str | None


@dataclass(frozen=True, slots=True)
class CompletionResult:
    project_id: int
    xp_awarded: int
    participant_ids: tuple[int, ...] = ()
    awarded: dict[int, AwardResult] = field(default_factory=dict)
    failures: list[StepFailure] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "project_id": self.project_id,
            "xp_awarded": self.xp_awarded,
            "participants": len(self.participant_ids),
            "awarded": sorted(self.awarded),
            "failures": len(self.failures),
        }


class CompletionOrchestrator:
    """Runs the completion workflow for one project at a time.

    Parameters
    ----------
    engine:
        SQLAlchemy engine shared with the ledger.
    ledger:
        XP ledger; built from *engine* when omitted.
    adapter:
        Collaboration-channel adapter; defaults to :class:`NullChannelAdapter`.
    config:
        Timeouts and fan-out width; defaults to :func:`default_config`.
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

    def complete(self, project_id: int, by_user_id: int) -> CompletionResult:
        """Complete *project_id* on behalf of its creator.

        Raises ``NotFound``, ``Forbidden``, ``AlreadyCompleted`` or
        ``InvalidState`` from the transition step; never raises for
        failures in later steps.
        """
        runner = WorkflowRunner(
            "complete_project",
            context={"project_id": project_id, "by_user_id": by_user_id},
            max_workers=self.config.max_fanout_workers,
        )
        project = runner.run(
            "transition", StepPolicy.CRITICAL, self._transition, project_id, by_user_id
        )

        awarded = runner.fan_out(
            "award_xp",
            project.participant_ids,
            partial(self._reward_participant, runner, project),
        )

        if project.channel_ref:
            runner.run(
                "announce_completion",
                StepPolicy.BEST_EFFORT,
                self.adapter.announce_completion,
                project.channel_ref,
                project.summary,
                list(project.participant_ids),
                timeout=self.config.channel_timeout,
            )

        if runner.report.failures:
            logger.warning(
                "Project %s completed with %d failed follow-up steps",
                project_id, len(runner.report.failures),
            )
        return CompletionResult(
            project_id=project_id,
            xp_awarded=project.summary.xp_reward,
            participant_ids=project.participant_ids,
            awarded=awarded,
            failures=list(runner.report.failures),
        )

    # -----------------------------------------------------------------------
    # Steps
    # -----------------------------------------------------------------------
    def _transition(self, project_id: int, by_user_id: int) -> _CompletedProject:
        now = datetime.now(UTC)
        with Session(self.engine) as session:
            transition(
                session,
                project_id,
                by_user_id,
                to_status=ProjectStatus.COMPLETED,
                from_statuses=ACTIVE_STATUSES,
                values={"completed_at": now},
            )
            session.execute(
                update(ProjectParticipant)
                .where(ProjectParticipant.project_id == project_id)
                .values(completed_at=now)
                .execution_options(synchronize_session=False)
            )
            project = session.get(Project, project_id)
            snapshot = _CompletedProject(
                summary=summarize_project(project),
                participant_ids=tuple(
                    dict.fromkeys([project.creator_id, *roster_ids(session, project_id)])
                ),
                channel_ref=project.channel_ref,
            )
            session.commit()

        logger.info(
            "Project %s completed by user %s (%d participants, %d XP each)",
            project_id, by_user_id, len(snapshot.participant_ids), snapshot.summary.xp_reward,
        )
        return snapshot

    def _reward_participant(
        self, runner: WorkflowRunner, project: _CompletedProject, user_id: int
    ) -> AwardResult:
        result = self.ledger.award(
            user_id,
            project.summary.xp_reward,
            COMPLETION_REASON,
            project_id=project.summary.project_id,
        )
        runner.run(
            "log_and_notify",
            StepPolicy.BEST_EFFORT,
            self._log_and_notify,
            project.summary,
            result,
            timeout=self.config.completion_step_timeout,
            subject=user_id,
        )
        return result

    def _log_and_notify(self, summary: ProjectSummary, result: AwardResult) -> None:
        with Session(self.engine) as session:
            append_activity(
                session,
                kind=ActivityKind.PROJECT_COMPLETED,
                description=f'Completed project "{summary.title}"',
                user_id=result.user_id,
                project_id=summary.project_id,
                payload={"xp_awarded": result.amount},
            )
            add_notification(
                session,
                user_id=result.user_id,
                kind=NotificationKind.PROJECT_COMPLETED,
                title="Project Completed!",
                message=(
                    f'"{summary.title}" has been completed. '
                    f"You earned {result.amount} XP!"
                ),
                payload={"project_id": summary.project_id, "xp_awarded": result.amount},
            )
            if result.leveled_up:
                add_notification(
                    session,
                    user_id=result.user_id,
                    kind=NotificationKind.LEVEL_UP,
                    title="Level Up!",
                    message=f"You reached level {result.new_level}!",
                    payload={"old_level": result.old_level, "new_level": result.new_level},
                )
            session.commit()
