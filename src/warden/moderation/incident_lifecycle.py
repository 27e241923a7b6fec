"""
Incident lifecycle: turns one triage verdict into persisted state.

    Created -> Ignored
            -> VictimIntervention -> (victim decides) -> Pardon | Probation
            -> GroupIntervention + Probation
    any intervention -> Punishment, when it repeats an offense under probation

The database is authoritative. Discord side effects (marker removal, replies,
deletes, timeouts) are best-effort: their failures are logged and never stop
the state transition. Every branch records exactly one audit line.
"""

from __future__ import annotations

import asyncio
import datetime
from typing import Optional

import discord

from warden.ai.triage import TriagePolicy
from warden.configuration.moderation_settings import ModerationSettings
from warden.database.db_connection import db_connection
from warden.datatypes.incident_datatypes import (
    Incident,
    TriageGroup,
    TriageIgnore,
    TriageVictim,
)
from warden.moderation.audit_log import AuditLog
from warden.moderation.repeat_offense import RepeatOffenseMatcher
from warden.repositories.incident_repo import incident_repo
from warden.repositories.probation_repo import probation_repo
from warden.ui.victim_decision_ui import VictimDecisionView, build_victim_prompt_embed
from warden.util.discord_utils import (
    fetch_guild,
    fetch_member,
    fetch_message,
    fetch_messageable,
    is_snowflake,
    remove_flag_reaction,
    resolve_display_name,
    safe_delete_message,
    truncate,
)
from warden.util.logger import get_logger
from warden.util.timer import unix_now

logger = get_logger("incident_lifecycle")


class IncidentLifecycle:
    """Runs triage for one incident and applies the outcome."""

    def __init__(
        self,
        bot: discord.Client,
        triage_policy: TriagePolicy,
        matcher: RepeatOffenseMatcher,
        audit_log: AuditLog,
        settings: ModerationSettings,
    ) -> None:
        self._bot = bot
        self._triage = triage_policy
        self._matcher = matcher
        self._audit_log = audit_log
        self._settings = settings

    async def process(self, incident: Incident) -> None:
        message = await fetch_message(self._bot, incident.channel_id, incident.message_id)

        try:
            outcome = await self._triage.triage(incident)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            # Left unprocessed; the next duty cycle retries while inside the statute window
            logger.error("[LIFECYCLE] Triage of incident %d failed: %s", incident.id, exc)
            return

        if message is not None:
            await remove_flag_reaction(self._bot, message)

        if isinstance(outcome, TriageIgnore):
            await self._ignore(incident, outcome)
        elif isinstance(outcome, TriageVictim):
            await self._intervene_for_victim(incident, outcome, message)
        elif isinstance(outcome, TriageGroup):
            await self._intervene_for_group(incident, outcome, message)
        else:
            logger.error("[LIFECYCLE] Unknown triage outcome for incident %d: %r", incident.id, outcome)

    # ------------------------------------------------------------------
    # Ignore
    # ------------------------------------------------------------------

    async def _persist_ignore(self, incident: Incident, reason: str, *, pardoned: bool = False) -> None:
        async with db_connection.transaction() as conn:
            await incident_repo.set_ignored(conn, incident.id, reason, pardoned=pardoned)

    async def _ignore(self, incident: Incident, outcome: TriageIgnore) -> None:
        logger.info("[LIFECYCLE] Ignoring incident %d: %s", incident.id, outcome.reason)
        await self._persist_ignore(incident, outcome.reason)
        self._audit_log.log(incident, f"Ignored ({incident.categories}): {outcome.reason}", quote=incident.content)

    # ------------------------------------------------------------------
    # Victim intervention
    # ------------------------------------------------------------------

    async def _intervene_for_victim(
        self,
        incident: Incident,
        outcome: TriageVictim,
        message: Optional[discord.Message],
    ) -> None:
        raw_victim = outcome.victim_id.strip()
        if not is_snowflake(raw_victim):
            logger.warning("[LIFECYCLE] Incident %d: invalid victim id %r from triage", incident.id, raw_victim)
            await self._persist_ignore(incident, f"Policy error: invalid victim id {raw_victim!r}")
            self._audit_log.log(
                incident,
                f"Policy error: triage named an invalid victim {raw_victim!r}; no intervention.",
                quote=outcome.reasoning,
            )
            return

        victim_id = int(raw_victim)
        if victim_id == incident.offender_id:
            logger.info("[LIFECYCLE] Incident %d: offender named as their own victim", incident.id)
            await self._persist_ignore(incident, "Offender named as their own victim")
            self._audit_log.log(
                incident,
                f"Ignored: {incident.offender_id} was named as their own victim.",
                quote=outcome.reasoning,
            )
            return

        since = unix_now() - self._settings.pardon_lookback_seconds
        async with db_connection.read() as conn:
            pardoned = await incident_repo.has_pardon(conn, incident.guild_id, incident.offender_id, victim_id, since)
        if pardoned:
            logger.info(
                "[LIFECYCLE] Pardon found for offender %s by victim %s; ignoring incident %d",
                incident.offender_id, victim_id, incident.id,
            )
            await self._persist_ignore(incident, f"Pardoned by {victim_id}", pardoned=True)
            self._audit_log.log(
                incident,
                f"Ignored: {victim_id} recently forgave {incident.offender_id}.",
                quote=incident.content,
            )
            return

        if await self._matcher.match(incident, victim_id=victim_id):
            return

        async with db_connection.transaction() as conn:
            await incident_repo.create_victim_intervention(conn, incident.id, victim_id, outcome.rule, unix_now())

        victim_name = await resolve_display_name(self._bot, incident.guild_id, victim_id)
        posted = await self._post_victim_prompt(incident, outcome.rule, victim_id, victim_name, message)
        logger.info("[LIFECYCLE] Intervened in incident %d for victim %s", incident.id, victim_id)
        self._audit_log.log(
            incident,
            f"Intervened in protection of {victim_id} ({victim_name}); rule: {outcome.rule}. "
            f"Decision prompt {'posted' if posted else 'could not be posted'}.\n{outcome.reasoning}",
            quote=incident.content,
        )

    async def _post_victim_prompt(
        self,
        incident: Incident,
        rule: str,
        victim_id: int,
        victim_name: str,
        message: Optional[discord.Message],
    ) -> bool:
        embed = build_victim_prompt_embed(incident, rule, victim_name)
        view = VictimDecisionView(incident.offender_id)
        allowed_mentions = discord.AllowedMentions(everyone=False, roles=False, users=[discord.Object(id=victim_id)])
        try:
            if message is not None:
                await message.reply(content=f"<@{victim_id}>", embed=embed, view=view, allowed_mentions=allowed_mentions)
                return True
            channel = await fetch_messageable(self._bot, incident.channel_id)
            if channel is None:
                logger.warning("[LIFECYCLE] No channel to post the victim prompt of incident %d", incident.id)
                return False
            await channel.send(content=f"<@{victim_id}>", embed=embed, view=view, allowed_mentions=allowed_mentions)
            return True
        except Exception as exc:
            logger.warning("[LIFECYCLE] Could not post victim prompt for incident %d: %s", incident.id, exc)
            return False
        finally:
            # Presses are dispatched by on_interaction, not by this view
            view.stop()

    # ------------------------------------------------------------------
    # Group intervention
    # ------------------------------------------------------------------

    async def _intervene_for_group(
        self,
        incident: Incident,
        outcome: TriageGroup,
        message: Optional[discord.Message],
    ) -> None:
        status = await self._enforce_message_decision(incident, outcome, message)
        log = logger.warning if status in ("not found", "delete failed", "reply failed") else logger.info
        log("[LIFECYCLE] Message %d in channel %d %s", incident.message_id, incident.channel_id, status)

        if await self._matcher.match(incident):
            return

        await self._brief_timeout(incident, outcome.rule)

        now = unix_now()
        async with db_connection.transaction() as conn:
            await incident_repo.create_group_intervention(
                conn, incident.id, outcome.rule, outcome.delete, outcome.caution, now
            )
            await probation_repo.create(conn, incident.id, now + self._settings.probation_seconds, now)

        logger.info("[LIFECYCLE] Intervened in incident %d for group protection", incident.id)
        self._audit_log.log(
            incident,
            f"Intervened in protection of the group; rule: {outcome.rule}. Message {status}; "
            f"{incident.offender_id} is on probation.\n{outcome.reasoning}",
            quote=incident.content,
        )

    async def _enforce_message_decision(
        self,
        incident: Incident,
        outcome: TriageGroup,
        message: Optional[discord.Message],
    ) -> str:
        if message is None:
            return "not found"

        if outcome.delete:
            if not await safe_delete_message(message):
                return "delete failed"
            if outcome.notification:
                try:
                    await message.channel.send(outcome.notification, allowed_mentions=discord.AllowedMentions.none())
                except Exception as exc:
                    logger.warning("[LIFECYCLE] Could not post notification for incident %d: %s", incident.id, exc)
            return "deleted"

        notice = outcome.notification or f"I'd like everybody to know this message breaks a rule: {outcome.rule}"
        try:
            await message.reply(notice, allowed_mentions=discord.AllowedMentions.none())
        except Exception as exc:
            logger.warning("[LIFECYCLE] Could not reply to message of incident %d: %s", incident.id, exc)
            return "reply failed"
        return "replied to"

    async def _brief_timeout(self, incident: Incident, rule: str) -> None:
        """Short timeout so the offender stops and reads the probation DM."""
        seconds = self._settings.group_timeout_seconds
        if seconds <= 0:
            return
        guild = await fetch_guild(self._bot, incident.guild_id)
        if guild is None:
            return
        member = await fetch_member(guild, incident.offender_id)
        if member is None:
            return
        try:
            await member.timeout_for(
                datetime.timedelta(seconds=seconds),
                reason=f"To read my DM; rule: {truncate(rule, 40)}",
            )
        except Exception as exc:
            logger.warning("[LIFECYCLE] Failed to time out offender %s: %s", incident.offender_id, exc)
