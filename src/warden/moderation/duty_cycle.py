"""
Duty cycle: the single self-rescheduling moderation loop.

Each run, in order:

1. Triage unprocessed incidents inside the statute-of-limitations window.
2. Tell offenders their probation has started.
3. Tell offenders their probation has ended.
4. Enforce punishments that have not been executed yet.

Steps are guarded individually so one failing step never aborts the next.
Every query excludes rows that were already handled (by one-shot flags or by
the presence of child rows), so re-running a cycle with no state change in
between does nothing.

A boolean guard makes overlapping runs a no-op: an eager run triggered by a
new incident while the timer-driven run is still working is simply skipped.
After a run the guard is released and the timer re-armed for the next cycle.
"""

from __future__ import annotations

import asyncio
import datetime
from typing import Awaitable, Callable, Set, Tuple

import discord

from warden.configuration.moderation_settings import ModerationSettings
from warden.database.db_connection import db_connection
from warden.datatypes.incident_datatypes import ProbationNotice, PunishmentOrder
from warden.moderation.audit_log import AuditLog
from warden.moderation.incident_lifecycle import IncidentLifecycle
from warden.repositories.incident_repo import incident_repo
from warden.repositories.probation_repo import probation_repo, punishment_repo
from warden.ui.notice_embeds import build_probation_end_embed, build_probation_start_embed
from warden.util.discord_utils import (
    fetch_guild,
    fetch_member,
    fetch_message,
    safe_delete_message,
    send_dm,
    truncate,
)
from warden.util.logger import get_logger
from warden.util.timer import Timer, unix_now

logger = get_logger("duty_cycle")


class DutyCycle:
    """Mutually exclusive, self-rescheduling periodic moderation run."""

    def __init__(
        self,
        bot: discord.Client,
        lifecycle: IncidentLifecycle,
        audit_log: AuditLog,
        settings: ModerationSettings,
    ) -> None:
        self._bot = bot
        self._lifecycle = lifecycle
        self._audit_log = audit_log
        self._settings = settings
        self._timer = Timer(self.run, settings.duty_cycle_seconds, name="duty-cycle")
        self._running = False
        self._started = False
        self._idle = asyncio.Event()
        self._idle.set()
        # (notice kind, probation id) pairs whose delivery failure is already in the audit log
        self._reported_failures: Set[Tuple[str, int]] = set()

    @property
    def running(self) -> bool:
        return self._running

    @property
    def scheduled(self) -> bool:
        return self._timer.active

    def start(self) -> None:
        """Run once as soon as possible, then every ``duty_cycle_seconds``."""
        if self._started:
            logger.debug("[DUTY CYCLE] start() called but the duty cycle is already started")
            return
        self._started = True
        logger.info("[DUTY CYCLE] Starting (interval=%.1fs)", self._settings.duty_cycle_seconds)
        self._timer.start(0)

    async def shutdown(self) -> None:
        """Stop rescheduling and wait for a cycle that is already running."""
        self._started = False
        self._timer.cancel()
        if self._running:
            logger.info("[DUTY CYCLE] Waiting for the running cycle to finish")
            await self._idle.wait()
        logger.info("[DUTY CYCLE] Shutdown complete")

    async def run(self) -> bool:
        """
        Execute one full cycle.

        Returns:
            bool: False if a cycle was already running and this call was skipped.
        """
        if self._running:
            logger.debug("[DUTY CYCLE] Already running; skipping")
            return False

        self._running = True
        self._idle.clear()
        self._timer.cancel()
        try:
            await self._step("incidents", self.process_incidents)
            await self._step("probation start notices", self.notify_probation_starts)
            await self._step("probation end notices", self.notify_probation_ends)
            await self._step("punishments", self.execute_punishments)
        finally:
            self._running = False
            self._idle.set()
            if self._started:
                self._timer.start(self._settings.duty_cycle_seconds)
        return True

    async def _step(self, name: str, step: Callable[[], Awaitable[None]]) -> None:
        try:
            await step()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("[DUTY CYCLE] Step '%s' failed: %s", name, exc, exc_info=True)

    # ------------------------------------------------------------------
    # Step 1: incidents
    # ------------------------------------------------------------------

    async def process_incidents(self) -> None:
        since = unix_now() - self._settings.statute_of_limitations_seconds
        async with db_connection.read() as conn:
            incidents = await incident_repo.list_unprocessed(conn, since)

        if not incidents:
            logger.debug("[DUTY CYCLE] No incidents to triage")
            return

        logger.info("[DUTY CYCLE] Found %d unprocessed incident(s)", len(incidents))
        for incident in incidents:
            try:
                await self._lifecycle.process(incident)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.error("[DUTY CYCLE] Processing incident %d failed: %s", incident.id, exc, exc_info=True)

    # ------------------------------------------------------------------
    # Steps 2 and 3: probation notices
    # ------------------------------------------------------------------

    async def notify_probation_starts(self) -> None:
        async with db_connection.read() as conn:
            notices = await probation_repo.list_start_uninformed(conn)

        for notice in notices:
            if not await self._deliver_notice("start", notice, build_probation_start_embed(notice)):
                continue
            async with db_connection.transaction() as conn:
                await probation_repo.mark_start_informed(conn, notice.probation.id)
            offender_id = notice.incident.offender_id
            logger.info("[DUTY CYCLE] Notified offender %s about probation %d", offender_id, notice.probation.id)
            self._audit_log.log(
                notice.incident,
                f"{offender_id} was told they are on probation until <t:{notice.probation.expires_at}:t>.",
                alert_user_id=offender_id,
            )

    async def notify_probation_ends(self) -> None:
        async with db_connection.read() as conn:
            notices = await probation_repo.list_end_uninformed(conn, unix_now())

        for notice in notices:
            if not await self._deliver_notice("end", notice, build_probation_end_embed(notice)):
                continue
            async with db_connection.transaction() as conn:
                await probation_repo.mark_end_informed(conn, notice.probation.id)
            offender_id = notice.incident.offender_id
            logger.info("[DUTY CYCLE] Told offender %s that probation %d ended", offender_id, notice.probation.id)
            self._audit_log.log(notice.incident, f"{offender_id} was told their probation is over.")

    async def _deliver_notice(self, kind: str, notice: ProbationNotice, embed: discord.Embed) -> bool:
        """DM the offender; on failure log once to the audit channel and leave the flag unset."""
        offender_id = notice.incident.offender_id
        try:
            await send_dm(self._bot, offender_id, embed=embed)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning(
                "[DUTY CYCLE] Failed to send probation %s notice to %s: %s", kind, offender_id, exc
            )
            key = (kind, notice.probation.id)
            if key not in self._reported_failures:
                self._reported_failures.add(key)
                self._audit_log.log(
                    notice.incident,
                    f"Could not tell {offender_id} that their probation {'started' if kind == 'start' else 'ended'}: {exc}",
                )
            return False
        self._reported_failures.discard((kind, notice.probation.id))
        return True

    # ------------------------------------------------------------------
    # Step 4: punishments
    # ------------------------------------------------------------------

    async def execute_punishments(self) -> None:
        async with db_connection.read() as conn:
            orders = await punishment_repo.list_unexecuted(conn)

        for order in orders:
            try:
                outcome = await self._apply_penalty(order)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                outcome = f"failed: {exc}"

            message = await fetch_message(self._bot, order.incident.channel_id, order.incident.message_id)
            if message is not None:
                await safe_delete_message(message)

            # Marked after the attempt whatever its result, so enforcement never repeats
            async with db_connection.transaction() as conn:
                await punishment_repo.mark_executed(conn, order.punishment.id)

            logger.info("[DUTY CYCLE] Punishment %d %s", order.punishment.id, outcome)
            self._audit_log.log(order.incident, f"Punishment of {order.incident.offender_id} {outcome}.")

    async def _apply_penalty(self, order: PunishmentOrder) -> str:
        punishment, incident = order.punishment, order.incident
        if punishment.kind == "mute" and punishment.until <= unix_now():
            return "expired before it could be applied"

        guild = await fetch_guild(self._bot, incident.guild_id)
        if guild is None:
            return "skipped: guild unavailable"

        reason = f"Repeat offense; rule: {truncate(order.rule, 40)}"
        try:
            if punishment.kind == "ban":
                await guild.ban(discord.Object(id=incident.offender_id), reason=reason)
                return "applied: banned"

            member = await fetch_member(guild, incident.offender_id)
            if member is None:
                return "skipped: member unavailable"
            until = datetime.datetime.fromtimestamp(punishment.until, tz=datetime.timezone.utc)
            await member.timeout(until, reason=reason)
            return f"applied: timed out until <t:{punishment.until}:t>"
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("[DUTY CYCLE] Penalty for punishment %d failed: %s", punishment.id, exc)
            return f"failed: {exc}"
