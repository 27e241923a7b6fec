from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from fakes import (
    CHANNEL_ID,
    OFFENDER_ID,
    VICTIM_ID,
    FakeBot,
    FakeMember,
    FakeMessage,
    fast_settings,
    fetch_all,
    make_incident,
)
from warden.ai.errors import TriageError
from warden.database.db_connection import db_connection
from warden.datatypes.incident_datatypes import TriageGroup, TriageIgnore, TriageVictim
from warden.moderation.audit_log import AuditLog
from warden.moderation.incident_lifecycle import IncidentLifecycle
from warden.moderation.repeat_offense import RepeatOffenseMatcher
from warden.repositories.incident_repo import incident_repo
from warden.repositories.probation_repo import probation_repo
from warden.ui.victim_decision_ui import VictimDecisionView
from warden.util.discord_utils import FLAG_EMOJI
from warden.util.timer import unix_now

MESSAGE_ID = 800000000001


class Scene:
    """A guild with one channel holding the flagged message and the offender as a member."""

    def __init__(self, outcome=None, error=None, **settings):
        self.bot = FakeBot()
        self.channel = self.bot.add_channel(CHANNEL_ID)
        self.message = FakeMessage(MESSAGE_ID, self.channel, "you are all idiots")
        self.channel.messages[MESSAGE_ID] = self.message
        self.guild = self.bot.add_guild()
        self.offender = self.guild.members.setdefault(OFFENDER_ID, FakeMember(OFFENDER_ID, "Offender"))
        self.victim = self.guild.members.setdefault(VICTIM_ID, FakeMember(VICTIM_ID, "Victim"))

        self.settings = fast_settings(audit_flush_seconds=60, **settings)
        self.audit = AuditLog(self.bot, self.settings)
        self.matcher = RepeatOffenseMatcher(self.bot, self.audit, self.settings)
        self.policy = SimpleNamespace(triage=AsyncMock(return_value=outcome, side_effect=error))
        self.lifecycle = IncidentLifecycle(self.bot, self.policy, self.matcher, self.audit, self.settings)


async def incident_row(incident_id):
    rows = await fetch_all("SELECT * FROM incidents WHERE id = ?", (incident_id,))
    return rows[0]


@pytest.mark.asyncio
async def test_ignore_persists_reason(db):
    scene = Scene(TriageIgnore(reason="Just banter"))
    incident = await make_incident(message_id=MESSAGE_ID)

    await scene.lifecycle.process(incident)

    row = await incident_row(incident.id)
    assert row["ignored_because"] == "Just banter"
    assert row["pardoned"] == 0
    assert scene.message.removed_reactions == [FLAG_EMOJI]
    assert scene.audit.pending == {incident.id}
    await scene.audit.flush_all()


@pytest.mark.asyncio
async def test_triage_failure_leaves_incident_unprocessed(db):
    scene = Scene(error=TriageError("refused"))
    incident = await make_incident(message_id=MESSAGE_ID)

    await scene.lifecycle.process(incident)

    async with db_connection.read() as conn:
        unprocessed = await incident_repo.list_unprocessed(conn, unix_now() - 600)
    assert [i.id for i in unprocessed] == [incident.id]
    assert scene.message.removed_reactions == []
    assert scene.audit.pending == frozenset()


@pytest.mark.asyncio
@pytest.mark.parametrize("victim_id", ["the guy above", "99999999999999999999999"])
async def test_invalid_victim_id_is_a_policy_error(db, victim_id):
    scene = Scene(TriageVictim(rule="Respect others", victim_id=victim_id, reasoning="r"))
    incident = await make_incident(message_id=MESSAGE_ID)

    await scene.lifecycle.process(incident)

    row = await incident_row(incident.id)
    assert row["ignored_because"].startswith("Policy error:")
    assert await fetch_all("SELECT * FROM victim_interventions") == []
    await scene.audit.flush_all()


@pytest.mark.asyncio
async def test_offender_cannot_be_own_victim(db):
    scene = Scene(TriageVictim(rule="Respect others", victim_id=str(OFFENDER_ID), reasoning="r"))
    incident = await make_incident(message_id=MESSAGE_ID)

    await scene.lifecycle.process(incident)

    row = await incident_row(incident.id)
    assert row["ignored_because"] is not None
    assert await fetch_all("SELECT * FROM victim_interventions") == []
    await scene.audit.flush_all()


@pytest.mark.asyncio
async def test_recent_pardon_ignores_incident(db):
    scene = Scene(TriageVictim(rule="Respect others", victim_id=str(VICTIM_ID), reasoning="r"))
    prior = await make_incident(message_id=1)
    now = unix_now()
    async with db_connection.transaction() as conn:
        intervention = await incident_repo.create_victim_intervention(conn, prior.id, VICTIM_ID, "Respect others", now)
        await incident_repo.create_pardon(conn, prior.id, intervention.id, now)
    incident = await make_incident(message_id=MESSAGE_ID)

    await scene.lifecycle.process(incident)

    row = await incident_row(incident.id)
    assert row["pardoned"] == 1
    assert row["ignored_because"] is not None
    assert len(await fetch_all("SELECT * FROM victim_interventions")) == 1
    await scene.audit.flush_all()


@pytest.mark.asyncio
async def test_old_pardon_does_not_apply(db):
    scene = Scene(
        TriageVictim(rule="Respect others", victim_id=str(VICTIM_ID), reasoning="r"),
        pardon_lookback_seconds=60,
    )
    prior = await make_incident(message_id=1)
    long_ago = unix_now() - 3600
    async with db_connection.transaction() as conn:
        intervention = await incident_repo.create_victim_intervention(
            conn, prior.id, VICTIM_ID, "Respect others", long_ago
        )
        await incident_repo.create_pardon(conn, prior.id, intervention.id, long_ago)
    incident = await make_incident(message_id=MESSAGE_ID)

    await scene.lifecycle.process(incident)

    row = await incident_row(incident.id)
    assert row["pardoned"] == 0
    assert len(await fetch_all("SELECT * FROM victim_interventions WHERE incident_id = ?", (incident.id,))) == 1
    await scene.audit.flush_all()


@pytest.mark.asyncio
async def test_victim_intervention_posts_decision_prompt(db):
    scene = Scene(TriageVictim(rule="Respect others", victim_id=f" {VICTIM_ID} ", reasoning="r"))
    incident = await make_incident(message_id=MESSAGE_ID)

    await scene.lifecycle.process(incident)

    rows = await fetch_all("SELECT * FROM victim_interventions")
    assert len(rows) == 1
    assert rows[0]["victim_id"] == VICTIM_ID
    assert rows[0]["rule"] == "Respect others"

    assert len(scene.message.replies) == 1
    reply = scene.message.replies[0]
    assert reply["content"] == f"<@{VICTIM_ID}>"
    assert isinstance(reply["view"], VictimDecisionView)
    assert reply["view"].offender_id == OFFENDER_ID
    assert reply["view"].is_finished() is True
    assert "Victim" in reply["embed"].description

    row = await incident_row(incident.id)
    assert row["ignored_because"] is None
    await scene.audit.flush_all()


@pytest.mark.asyncio
async def test_victim_intervention_survives_missing_message(db):
    scene = Scene(TriageVictim(rule="Respect others", victim_id=str(VICTIM_ID), reasoning="r"))
    del scene.channel.messages[MESSAGE_ID]
    incident = await make_incident(message_id=MESSAGE_ID)

    await scene.lifecycle.process(incident)

    assert len(await fetch_all("SELECT * FROM victim_interventions")) == 1
    assert len(scene.channel.sent) == 1
    await scene.audit.flush_all()


@pytest.mark.asyncio
async def test_victim_repeat_offense_is_punished_instead(db):
    scene = Scene(TriageVictim(rule="Respect others", victim_id=str(VICTIM_ID), reasoning="r"))
    prior = await make_incident(message_id=1)
    now = unix_now()
    async with db_connection.transaction() as conn:
        await incident_repo.create_victim_intervention(conn, prior.id, VICTIM_ID, "Respect others", now)
        await probation_repo.create(conn, prior.id, now + 3600, now)
    incident = await make_incident(message_id=MESSAGE_ID)

    await scene.lifecycle.process(incident)

    punishments = await fetch_all("SELECT * FROM punishments")
    assert [p["incident_id"] for p in punishments] == [incident.id]
    assert await fetch_all("SELECT * FROM victim_interventions WHERE incident_id = ?", (incident.id,)) == []
    assert scene.message.replies == []
    await scene.audit.flush_all()


@pytest.mark.asyncio
async def test_group_intervention_deletes_and_starts_probation(db):
    scene = Scene(
        TriageGroup(rule="Keep it clean", delete=True, reasoning="r", caution="Please stop", notification="Removed."),
        probation_seconds=3600,
        group_timeout_seconds=60,
    )
    incident = await make_incident(message_id=MESSAGE_ID)

    before = unix_now()
    await scene.lifecycle.process(incident)

    assert scene.message.deleted is True
    assert scene.channel.sent[0]["content"] == "Removed."
    groups = await fetch_all("SELECT * FROM group_interventions")
    assert len(groups) == 1
    assert groups[0]["message_deleted"] == 1
    assert groups[0]["caution"] == "Please stop"
    probations = await fetch_all("SELECT * FROM probations WHERE incident_id = ?", (incident.id,))
    assert len(probations) == 1
    assert before + 3600 <= probations[0]["expires_at"] <= unix_now() + 3600
    scene.offender.timeout_for.assert_awaited_once()
    await scene.audit.flush_all()


@pytest.mark.asyncio
async def test_group_intervention_replies_when_not_deleting(db):
    scene = Scene(TriageGroup(rule="Keep it clean", delete=False, reasoning="r"))
    incident = await make_incident(message_id=MESSAGE_ID)

    await scene.lifecycle.process(incident)

    assert scene.message.deleted is False
    assert scene.message.replies[0]["content"] == "I'd like everybody to know this message breaks a rule: Keep it clean"
    assert len(await fetch_all("SELECT * FROM group_interventions")) == 1
    await scene.audit.flush_all()


@pytest.mark.asyncio
async def test_group_intervention_persists_despite_discord_failures(db):
    scene = Scene(TriageGroup(rule="Keep it clean", delete=True, reasoning="r"))
    scene.message.fail_delete = True
    scene.offender.timeout_for.side_effect = RuntimeError("missing permissions")
    incident = await make_incident(message_id=MESSAGE_ID)

    await scene.lifecycle.process(incident)

    assert len(await fetch_all("SELECT * FROM group_interventions")) == 1
    assert len(await fetch_all("SELECT * FROM probations")) == 1
    await scene.audit.flush_all()


@pytest.mark.asyncio
async def test_group_repeat_offense_skips_new_probation(db):
    scene = Scene(TriageGroup(rule="Keep it clean", delete=True, reasoning="r"))
    prior = await make_incident(message_id=1)
    now = unix_now()
    async with db_connection.transaction() as conn:
        await incident_repo.create_group_intervention(conn, prior.id, "Keep it clean", True, None, now)
        probation = await probation_repo.create(conn, prior.id, now + 3600, now)
    incident = await make_incident(message_id=MESSAGE_ID)

    await scene.lifecycle.process(incident)

    assert scene.message.deleted is True
    punishments = await fetch_all("SELECT * FROM punishments")
    assert len(punishments) == 1
    assert punishments[0]["probation_id"] == probation.id
    assert await fetch_all("SELECT * FROM probations WHERE incident_id = ?", (incident.id,)) == []
    assert await fetch_all("SELECT * FROM group_interventions WHERE incident_id = ?", (incident.id,)) == []
    scene.offender.timeout_for.assert_not_awaited()
    await scene.audit.flush_all()


@pytest.mark.asyncio
async def test_each_branch_logs_exactly_once(db):
    scene = Scene(TriageGroup(rule="Keep it clean", delete=False, reasoning="r"))
    incident = await make_incident(message_id=MESSAGE_ID)
    logged = []
    scene.audit.log = lambda inc, text, quote="", alert_user_id=None: logged.append(text)

    await scene.lifecycle.process(incident)

    assert len(logged) == 1
    assert "Keep it clean" in logged[0]
