"""
Per-incident audit trail posted to each guild's audit channel.

Lines logged against an incident accumulate in an in-memory buffer. Each new
line re-arms that incident's quiet-period timer; when the timer fires (or a
flush is forced) the buffer is taken out of the live set and its text is
posted as one batch, split into chunks that fit a Discord message.

Buffers are independent: a failing flush for one incident is logged and
leaves every other incident's buffer untouched.
"""

from __future__ import annotations

import asyncio
import functools
import re
from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Optional

import discord

from warden.configuration.moderation_settings import ModerationSettings
from warden.database.db_connection import db_connection
from warden.datatypes.incident_datatypes import Incident
from warden.repositories.guild_config_repo import guild_config_repo
from warden.util.discord_utils import fetch_messageable
from warden.util.logger import get_logger
from warden.util.timer import Timer

logger = get_logger("audit_log")

# Bare snowflakes at line start, after whitespace or after "("
SNOWFLAKE_PATTERN = re.compile(r"(^|[\s(])(\d{9,})\b")


def format_line(text: str, quote: str = "") -> str:
    """Append ``quote`` as a Markdown block quote below ``text``."""
    quote = quote.strip()
    if not quote:
        return text
    quoted = "\n".join(f"> {line}" for line in quote.split("\n"))
    return f"{text}\n{quoted}"


def mention_snowflakes(text: str) -> str:
    return SNOWFLAKE_PATTERN.sub(lambda m: f"{m.group(1)}<@{m.group(2)}>", text)


def chunk_text(text: str, size: int) -> List[str]:
    return [text[i:i + size] for i in range(0, len(text), size)] or [""]


@dataclass
class PendingAudit:
    incident: Incident
    text: str
    timer: Timer
    alert_user_id: Optional[int] = None


class AuditLog:
    """Debounced, per-incident batching of audit lines."""

    def __init__(self, bot: discord.Client, settings: ModerationSettings) -> None:
        self._bot = bot
        self._settings = settings
        self._pending: Dict[int, PendingAudit] = {}

    @property
    def pending(self) -> FrozenSet[int]:
        """Incident ids with an unflushed buffer."""
        return frozenset(self._pending)

    def log(
        self,
        incident: Incident,
        text: str,
        quote: str = "",
        alert_user_id: Optional[int] = None,
    ) -> None:
        """
        Append a line to the incident's buffer and restart its quiet period.

        Runs without suspending, so the append and the timer re-arm happen
        together; a flush can never observe one without the other.
        """
        line = format_line(text, quote)
        logger.info("[AUDIT] Incident #%d: %s", incident.id, line)

        pending = self._pending.get(incident.id)
        if pending is None:
            timer = Timer(
                functools.partial(self._attempt_flush, incident.id),
                self._settings.audit_flush_seconds,
                name=f"audit-{incident.id}",
            )
            self._pending[incident.id] = PendingAudit(incident, line, timer, alert_user_id)
            timer.start()
            return

        pending.text += f"\n{line}"
        pending.alert_user_id = pending.alert_user_id or alert_user_id
        pending.timer.start()

    async def flush(self, incident_id: int) -> None:
        """Post the incident's buffer now. Unknown ids are a no-op."""
        pending = self._pending.pop(incident_id, None)
        if pending is None:
            return
        pending.timer.cancel()
        await self._deliver(pending)

    async def flush_all(self) -> None:
        for incident_id in list(self._pending):
            await self._attempt_flush(incident_id)

    async def _attempt_flush(self, incident_id: int) -> None:
        try:
            await self.flush(incident_id)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("[AUDIT] Failed to flush audit log for incident %d: %s", incident_id, exc, exc_info=True)

    async def _deliver(self, pending: PendingAudit) -> None:
        incident = pending.incident
        async with db_connection.read() as conn:
            config = await guild_config_repo.get(conn, incident.guild_id)
        if not config.audit_channel_id:
            return

        channel = await fetch_messageable(self._bot, config.audit_channel_id)
        if channel is None:
            logger.warning(
                "[AUDIT] Audit channel %s of guild %s is unavailable; dropping incident #%d log",
                config.audit_channel_id, incident.guild_id, incident.id,
            )
            return

        chunks = chunk_text(mention_snowflakes(pending.text), self._settings.audit_chunk_size)
        first_message: Optional[discord.Message] = None
        for index, chunk in enumerate(chunks):
            if index:
                await asyncio.sleep(self._settings.audit_chunk_delay_seconds)
            header = f"__Incident #{incident.id}__"
            if len(chunks) > 1:
                header += f" ({index + 1}/{len(chunks)})"
            message = await channel.send(
                content=f"{header}\n{chunk}",
                allowed_mentions=discord.AllowedMentions.none(),
            )
            first_message = first_message or message

        if pending.alert_user_id and first_message is not None and config.alert_channel_id:
            alert_channel = await fetch_messageable(self._bot, config.alert_channel_id)
            if alert_channel is not None:
                await alert_channel.send(
                    content=f":warning: <@{pending.alert_user_id}> probation {first_message.jump_url}",
                    allowed_mentions=discord.AllowedMentions.none(),
                )
