"""
Escalation of repeat offenses committed while on probation.

A new incident matches when the offender already has an unexpired probation
in the same guild whose originating incident was of the same scope: a victim
intervention naming the same victim, or (unscoped) a group intervention. A
match records a punishment against that probation; enforcement is left to the
duty cycle.
"""

from __future__ import annotations

from typing import Optional

import discord

from warden.configuration.moderation_settings import ModerationSettings
from warden.database.db_connection import db_connection
from warden.datatypes.incident_datatypes import Incident, Punishment, PunishmentKind
from warden.moderation.audit_log import AuditLog
from warden.repositories.probation_repo import probation_repo, punishment_repo
from warden.ui.notice_embeds import build_punishment_embed
from warden.util.discord_utils import send_dm
from warden.util.logger import get_logger
from warden.util.timer import unix_now

logger = get_logger("repeat_offense")


class RepeatOffenseMatcher:
    def __init__(self, bot: discord.Client, audit_log: AuditLog, settings: ModerationSettings) -> None:
        self._bot = bot
        self._audit_log = audit_log
        self._settings = settings

    def _punishment_kind(self, prior_punishments: int) -> PunishmentKind:
        threshold = self._settings.ban_after_punishments
        if threshold and prior_punishments >= threshold:
            return "ban"
        return "mute"

    async def match(self, incident: Incident, victim_id: Optional[int] = None) -> bool:
        """
        Punish ``incident`` if it repeats an offense under active probation.

        Returns:
            bool: True if a punishment was recorded and the caller should stop.
        """
        now = unix_now()
        async with db_connection.transaction() as conn:
            probation = await probation_repo.find_active_for_offender(
                conn,
                incident.guild_id,
                incident.offender_id,
                now,
                victim_id=victim_id,
                exclude_incident_id=incident.id,
            )
            if probation is None:
                return False

            prior = await punishment_repo.count_for_offender(conn, incident.guild_id, incident.offender_id)
            punishment = await punishment_repo.create(
                conn,
                probation_id=probation.id,
                incident_id=incident.id,
                until=now + self._settings.punishment_seconds,
                kind=self._punishment_kind(prior),
                created_at=now,
            )

        logger.info(
            "[REPEAT OFFENSE] Incident %d repeats incident %d under probation %d; %s until %d",
            incident.id, probation.incident_id, probation.id, punishment.kind, punishment.until,
        )
        self._audit_log.log(
            incident,
            f"Repeat offense of incident #{probation.incident_id} by {incident.offender_id} "
            f"while on probation: {punishment.kind} until <t:{punishment.until}:t>.",
            quote=incident.content,
            alert_user_id=incident.offender_id,
        )
        await self._notify_offender(incident, punishment)
        return True

    async def _notify_offender(self, incident: Incident, punishment: Punishment) -> None:
        try:
            await send_dm(self._bot, incident.offender_id, embed=build_punishment_embed(incident, punishment))
        except Exception as exc:
            logger.warning("[REPEAT OFFENSE] Could not DM offender %s: %s", incident.offender_id, exc)
