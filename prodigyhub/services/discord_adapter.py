"""
prodigyhub.services.discord_adapter — Discord REST Channel Adapter
===================================================================

Thin :class:`~prodigyhub.services.channel_adapter.ChannelAdapter` backed by
the Discord REST API (``httpx``) with message bodies built from
:mod:`discord` embeds.  It does not run a gateway connection.

Users are mapped to Discord snowflakes through *resolve_discord_id*; users
without a linked account are skipped (and logged), never an error.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import Any

import discord
import httpx

from prodigyhub.constants import slugify
from prodigyhub.errors import DownstreamUnavailable
from prodigyhub.services.channel_adapter import ChannelRefs, ProjectSummary
from prodigyhub.services.embeds import (
    build_completion_embed,
    build_project_info_embed,
)

logger = logging.getLogger(__name__)

DISCORD_API = "https://discord.com/api/v10"

# Permission bits
VIEW_CHANNEL = 1 << 10
SEND_MESSAGES = 1 << 11
READ_MESSAGE_HISTORY = 1 << 16
MEMBER_PERMISSIONS = VIEW_CHANNEL | SEND_MESSAGES | READ_MESSAGE_HISTORY

GUILD_TEXT = 0
OVERWRITE_ROLE = 0


class DiscordChannelAdapter:
    """Creates a private text channel plus a role per project.

    Parameters
    ----------
    bot_token:
        Bot token with Manage Roles / Manage Channels in *guild_id*.
    guild_id:
        Guild snowflake; also the id of its ``@everyone`` role.
    resolve_discord_id:
        Maps a ProdigyHub user id to a Discord user id (or ``None``).
    timeout:
        Per-request timeout in seconds.
    client:
        Pre-built ``httpx.Client`` (tests pass one with a mock transport).
    """

    def __init__(
        self,
        bot_token: str,
        guild_id: int,
        resolve_discord_id: Callable[[int], str | None],
        *,
        timeout: float = 10.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.guild_id = str(guild_id)
        self.resolve_discord_id = resolve_discord_id
        self._client = client or httpx.Client(
            base_url=DISCORD_API,
            timeout=timeout,
            transport=httpx.HTTPTransport(retries=1),
        )
        self._client.headers["Authorization"] = f"Bot {bot_token}"

    def close(self) -> None:
        self._client.close()

    # -----------------------------------------------------------------------
    # ChannelAdapter
    # -----------------------------------------------------------------------
    def provision(
        self, project: ProjectSummary, participant_ids: Sequence[int]
    ) -> ChannelRefs:
        slug = slugify(project.title)
        role = self._request(
            "POST",
            f"/guilds/{self.guild_id}/roles",
            json={"name": f"project-{slug}", "mentionable": True},
        )
        role_id = str(role["id"])

        channel_id: str | None = None
        try:
            channel = self._request(
                "POST",
                f"/guilds/{self.guild_id}/channels",
                json={
                    "name": slug,
                    "type": GUILD_TEXT,
                    "topic": project.description[:1024],
                    "permission_overwrites": [
                        {"id": self.guild_id, "type": OVERWRITE_ROLE, "allow": "0",
                         "deny": str(VIEW_CHANNEL)},
                        {"id": role_id, "type": OVERWRITE_ROLE,
                         "allow": str(MEMBER_PERMISSIONS), "deny": "0"},
                    ],
                },
            )
            channel_id = str(channel["id"])

            discord_ids = self._resolve_all(participant_ids)
            for did in discord_ids:
                self._add_role(did, role_id)

            embed = build_project_info_embed(project, discord_ids)
            self._post_embed(channel_id, embed)
        except DownstreamUnavailable:
            # A failed provision stores no refs; remove what was created.
            self._discard(channel_id, role_id, project.project_id)
            raise

        logger.info(
            "Discord channel %s / role %s created for project %s",
            channel_id, role_id, project.project_id,
        )
        return ChannelRefs(channel_ref=channel_id, role_ref=role_id)

    def add_member(self, role_ref: str, participant_id: int) -> None:
        did = self.resolve_discord_id(participant_id)
        if did is None:
            logger.info("User %s has no linked Discord account; skipping role", participant_id)
            return
        self._add_role(did, role_ref)

    def announce_completion(
        self, channel_ref: str, summary: ProjectSummary, participant_ids: Sequence[int]
    ) -> None:
        embed = build_completion_embed(summary, self._resolve_all(participant_ids))
        self._post_embed(channel_ref, embed)

    def teardown(self, channel_ref: str, role_ref: str) -> None:
        self._request("DELETE", f"/channels/{channel_ref}")
        if role_ref:
            self._request("DELETE", f"/guilds/{self.guild_id}/roles/{role_ref}")

    # -----------------------------------------------------------------------
    # HTTP
    # -----------------------------------------------------------------------
    def _discard(self, channel_id: str | None, role_id: str, project_id: int) -> None:
        """Best-effort removal of a half-provisioned channel and role."""
        deletions = [(f"/guilds/{self.guild_id}/roles/{role_id}", "role", role_id)]
        if channel_id is not None:
            deletions.insert(0, (f"/channels/{channel_id}", "channel", channel_id))
        for path, kind, ref in deletions:
            try:
                self._request("DELETE", path)
            except DownstreamUnavailable:
                logger.warning(
                    "Could not remove Discord %s %s after failed provision of project %s",
                    kind, ref, project_id,
                )

    def _resolve_all(self, participant_ids: Sequence[int]) -> list[str]:
        resolved = []
        for uid in participant_ids:
            did = self.resolve_discord_id(uid)
            if did is None:
                logger.info("User %s has no linked Discord account; skipping", uid)
                continue
            resolved.append(did)
        return resolved

    def _add_role(self, discord_id: str, role_id: str) -> None:
        self._request("PUT", f"/guilds/{self.guild_id}/members/{discord_id}/roles/{role_id}")

    def _post_embed(self, channel_id: str, embed: discord.Embed) -> None:
        self._request(
            "POST",
            f"/channels/{channel_id}/messages",
            json={"embeds": [embed.to_dict()]},
        )

    def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        try:
            resp = self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise DownstreamUnavailable(
                f"Discord request failed: {method} {path}",
                {"error": type(exc).__name__},
            ) from exc

        if resp.status_code >= 400:
            logger.warning("Discord %s %s → %d: %s", method, path, resp.status_code, resp.text[:200])
            raise DownstreamUnavailable(
                f"Discord returned {resp.status_code} for {method} {path}",
                {"status_code": resp.status_code},
            )
        if resp.status_code == 204 or not resp.content:
            return {}
        return resp.json()
