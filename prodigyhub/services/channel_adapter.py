"""
prodigyhub.services.channel_adapter — Collaboration-Channel Contract
=====================================================================

A project may own a per-project chat space (channel + role) in an external
system.  The core only talks to it through :class:`ChannelAdapter`; every
call is synchronous and raises :class:`~prodigyhub.errors.DownstreamUnavailable`
on failure.  Callers treat these calls as best effort, apart from explicit
provisioning.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ChannelRefs:
    """Opaque identifiers returned by :meth:`ChannelAdapter.provision`."""

    channel_ref: str
    role_ref: str


@dataclass(frozen=True, slots=True)
class ProjectSummary:
    """What an adapter needs to know about a project."""

    project_id: int
    title: str
    description: str
    difficulty: str
    xp_reward: int
    creator_id: int
    tags: tuple[str, ...] = field(default_factory=tuple)


@runtime_checkable
class ChannelAdapter(Protocol):
    """Interface every collaboration-channel integration implements."""

    def provision(
        self, project: ProjectSummary, participant_ids: Sequence[int]
    ) -> ChannelRefs: ...

    def add_member(self, role_ref: str, participant_id: int) -> None: ...

    def announce_completion(
        self, channel_ref: str, summary: ProjectSummary, participant_ids: Sequence[int]
    ) -> None: ...

    def teardown(self, channel_ref: str, role_ref: str) -> None: ...


class NullChannelAdapter:
    """Adapter used when no chat integration is configured.

    ``provision`` returns deterministic local refs so the rest of the
    lifecycle behaves the same with or without an integration.
    """

    def provision(
        self, project: ProjectSummary, participant_ids: Sequence[int]
    ) -> ChannelRefs:
        logger.debug("Null adapter: provision project %s", project.project_id)
        return ChannelRefs(
            channel_ref=f"local-channel-{project.project_id}",
            role_ref=f"local-role-{project.project_id}",
        )

    def add_member(self, role_ref: str, participant_id: int) -> None:
        logger.debug("Null adapter: add user %s to %s", participant_id, role_ref)

    def announce_completion(
        self, channel_ref: str, summary: ProjectSummary, participant_ids: Sequence[int]
    ) -> None:
        logger.debug("Null adapter: announce completion in %s", channel_ref)

    def teardown(self, channel_ref: str, role_ref: str) -> None:
        logger.debug("Null adapter: teardown %s / %s", channel_ref, role_ref)
