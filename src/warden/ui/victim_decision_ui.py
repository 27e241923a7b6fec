"""
Victim decision prompt for victim interventions.

When a message is judged to target one member, that member is shown a prompt
with two buttons: forgive the offender (records a pardon) or say they dislike
it (puts the offender on probation). The buttons carry the offender id in
their custom ids so a press can be resolved from the database alone, even
after a restart; they are dispatched from the events cog's ``on_interaction``
listener rather than through view callbacks.
"""

from __future__ import annotations

from typing import Literal, Optional, Tuple

import discord

from warden.configuration.moderation_settings import ModerationSettings
from warden.database.db_connection import db_connection
from warden.datatypes.incident_datatypes import Incident
from warden.moderation.audit_log import AuditLog
from warden.repositories.incident_repo import incident_repo
from warden.repositories.probation_repo import probation_repo
from warden.util.discord_utils import is_snowflake, safe_delete_message, truncate
from warden.util.logger import get_logger
from warden.util.timer import unix_now

logger = get_logger("victim_decision_ui")

CUSTOM_ID_PREFIX = "warden"

Decision = Literal["forgive", "dislike"]


def decision_custom_id(decision: Decision, offender_id: int) -> str:
    return f"{CUSTOM_ID_PREFIX}:{decision}:{offender_id}"


def parse_custom_id(custom_id: Optional[str]) -> Optional[Tuple[Decision, int]]:
    """Split ``warden:<decision>:<offender_id>``; None for anything else."""
    if not custom_id:
        return None
    parts = custom_id.split(":")
    if len(parts) != 3 or parts[0] != CUSTOM_ID_PREFIX:
        return None
    decision, offender = parts[1], parts[2]
    if decision not in ("forgive", "dislike") or not is_snowflake(offender):
        return None
    return decision, int(offender)  # type: ignore[return-value]


def build_victim_prompt_embed(incident: Incident, rule: str, victim_name: str) -> discord.Embed:
    embed = discord.Embed(
        title="Was this message aimed at you?",
        description=(
            f"{victim_name}, I think <@{incident.offender_id}>'s message may have broken a rule "
            "and been directed at you. How do you feel about it?"
        ),
        color=discord.Color.orange(),
    )
    embed.add_field(name="Rule", value=truncate(rule, 1024) or "-", inline=False)
    embed.add_field(name="Message", value=truncate(incident.content, 1024) or "(no text)", inline=False)
    embed.set_footer(text="Forgiving them means I will leave it there. Otherwise they go on probation.")
    return embed


class VictimDecisionView(discord.ui.View):
    """Forgive / dislike buttons keyed by the offender's id."""

    def __init__(self, offender_id: int):
        super().__init__(timeout=None)
        self.offender_id = offender_id
        self.add_item(
            discord.ui.Button(
                label="Forgive",
                emoji="🤝",
                style=discord.ButtonStyle.success,
                custom_id=decision_custom_id("forgive", offender_id),
            )
        )
        self.add_item(
            discord.ui.Button(
                label="I dislike it",
                emoji="👎",
                style=discord.ButtonStyle.danger,
                custom_id=decision_custom_id("dislike", offender_id),
            )
        )


async def handle_decision(
    interaction: discord.Interaction,
    audit_log: AuditLog,
    settings: ModerationSettings,
) -> bool:
    """
    Resolve a forgive/dislike button press.

    Returns:
        bool: False if the interaction is not one of ours, True otherwise.
    """
    data = interaction.data or {}
    parsed = parse_custom_id(data.get("custom_id"))
    if parsed is None:
        return False
    decision, offender_id = parsed

    if interaction.guild_id is None or interaction.user is None:
        await interaction.response.send_message("❌ This button only works in a server.", ephemeral=True)
        return True

    victim_id = interaction.user.id
    now = unix_now()
    async with db_connection.transaction() as conn:
        intervention = await incident_repo.find_pending_victim_intervention(
            conn, interaction.guild_id, offender_id, victim_id
        )
        incident = None
        if intervention is not None:
            incident = await incident_repo.get(conn, intervention.incident_id)
        if intervention is not None and incident is not None:
            if decision == "forgive":
                await incident_repo.create_pardon(conn, incident.id, intervention.id, now)
            else:
                await probation_repo.create(conn, incident.id, now + settings.probation_seconds, now)

    if intervention is None or incident is None:
        logger.info(
            "[VICTIM UI] %s pressed %s for offender %s without a pending intervention",
            victim_id, decision, offender_id,
        )
        await interaction.response.send_message(
            "❌ Only the member this message was about can choose, and only once.",
            ephemeral=True,
        )
        return True

    if decision == "forgive":
        audit_text = f"Victim {victim_id} forgave {offender_id}."
        reply = "🤝 Thank you. I will let it go."
    else:
        audit_text = f"Victim {victim_id} disliked it; {offender_id} is on probation."
        reply = "👍 Understood. They are now on probation."

    logger.info("[VICTIM UI] Incident %d: %s", incident.id, audit_text)
    audit_log.log(incident, audit_text)
    await interaction.response.send_message(reply, ephemeral=True)
    if interaction.message is not None:
        await safe_delete_message(interaction.message)
    return True
