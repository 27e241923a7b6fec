"""Embeds for the direct messages sent to offenders."""

from __future__ import annotations

import discord

from warden.datatypes.incident_datatypes import Incident, ProbationNotice, Punishment
from warden.util.discord_utils import truncate

FIELD_LIMIT = 1024


def _sent_value(incident: Incident) -> str:
    return truncate(incident.content, FIELD_LIMIT) or "(no text)"


def build_probation_start_embed(notice: ProbationNotice) -> discord.Embed:
    embed = discord.Embed(
        title="You broke a rule!",
        description=(
            f"Your behaviour will now be monitored until <t:{notice.probation.expires_at}>.\n"
            "You will be timed out if you break the same rule again."
        ),
        color=0xFFFF00,
    )
    embed.add_field(name="Broken rule:", value=truncate(notice.rule, FIELD_LIMIT) or "-", inline=False)
    embed.add_field(name="You sent:", value=_sent_value(notice.incident), inline=False)
    if notice.caution:
        embed.add_field(name="Note:", value=truncate(notice.caution, FIELD_LIMIT), inline=False)
    return embed


def build_probation_end_embed(notice: ProbationNotice) -> discord.Embed:
    embed = discord.Embed(
        title="You have been forgiven",
        description="Your probation is over. Thank you for keeping the server friendly!",
        color=0x00FF00,
    )
    embed.add_field(name="Broken rule:", value=truncate(notice.rule, FIELD_LIMIT) or "-", inline=False)
    return embed


def build_punishment_embed(incident: Incident, punishment: Punishment) -> discord.Embed:
    if punishment.kind == "ban":
        action = "banned"
    else:
        action = f"timed out until <t:{punishment.until}>"
    embed = discord.Embed(
        title="You broke a rule again!",
        description=f"You broke a rule while on probation, so you have been {action}.",
        color=0xFF0000,
    )
    embed.add_field(name="You sent:", value=_sent_value(incident), inline=False)
    return embed
