"""
Row and value types for the incident workflow.

Row dataclasses mirror the SQLite tables one-to-one and are built with the
``from_row`` classmethods from ``aiosqlite.Row`` objects. Timestamps are
integer unix seconds.

Triage outcomes are a tagged union: each variant carries exactly the fields
its branch of the lifecycle needs.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional, Union

import aiosqlite


@dataclass
class Incident:
    """A flagged message and its processing record."""
    id: int
    guild_id: int
    channel_id: int
    message_id: int
    offender_id: int
    content: str
    context: str
    categories: str
    created_at: int
    ignored_because: Optional[str] = None
    pardoned: bool = False

    @classmethod
    def from_row(cls, row: aiosqlite.Row) -> "Incident":
        return cls(
            id=row["id"],
            guild_id=row["guild_id"],
            channel_id=row["channel_id"],
            message_id=row["message_id"],
            offender_id=row["offender_id"],
            content=row["content"],
            context=row["context"],
            categories=row["categories"],
            created_at=row["created_at"],
            ignored_because=row["ignored_because"],
            pardoned=bool(row["pardoned"]),
        )


@dataclass
class VictimIntervention:
    id: int
    incident_id: int
    victim_id: int
    rule: str
    created_at: int

    @classmethod
    def from_row(cls, row: aiosqlite.Row) -> "VictimIntervention":
        return cls(
            id=row["id"],
            incident_id=row["incident_id"],
            victim_id=row["victim_id"],
            rule=row["rule"],
            created_at=row["created_at"],
        )


@dataclass
class GroupIntervention:
    id: int
    incident_id: int
    rule: str
    message_deleted: bool
    caution: Optional[str]
    created_at: int

    @classmethod
    def from_row(cls, row: aiosqlite.Row) -> "GroupIntervention":
        return cls(
            id=row["id"],
            incident_id=row["incident_id"],
            rule=row["rule"],
            message_deleted=bool(row["message_deleted"]),
            caution=row["caution"],
            created_at=row["created_at"],
        )


@dataclass
class Probation:
    """Window during which a repeat offense escalates straight to punishment."""
    id: int
    incident_id: int
    expires_at: int
    start_informed: bool
    end_informed: bool
    created_at: int

    @classmethod
    def from_row(cls, row: aiosqlite.Row) -> "Probation":
        return cls(
            id=row["id"],
            incident_id=row["incident_id"],
            expires_at=row["expires_at"],
            start_informed=bool(row["start_informed"]),
            end_informed=bool(row["end_informed"]),
            created_at=row["created_at"],
        )


PunishmentKind = Literal["mute", "ban"]


@dataclass
class Punishment:
    """Penalty for a repeat offense; ``incident_id`` is the repeat incident."""
    id: int
    probation_id: int
    incident_id: int
    until: int
    kind: PunishmentKind
    executed: bool
    created_at: int

    @classmethod
    def from_row(cls, row: aiosqlite.Row) -> "Punishment":
        return cls(
            id=row["id"],
            probation_id=row["probation_id"],
            incident_id=row["incident_id"],
            until=row["until"],
            kind=row["kind"],
            executed=bool(row["executed"]),
            created_at=row["created_at"],
        )


@dataclass
class ProbationNotice:
    """A probation joined with what the offender needs to be told about it."""
    probation: Probation
    incident: Incident
    rule: str
    caution: Optional[str] = None


@dataclass
class PunishmentOrder:
    """An unexecuted punishment joined with the incident that triggered it."""
    punishment: Punishment
    incident: Incident
    rule: str


@dataclass
class GuildConfig:
    """Per-guild output channels. ``None`` means no output, not an error."""
    guild_id: int
    audit_channel_id: Optional[int] = None
    alert_channel_id: Optional[int] = None


@dataclass
class CachedMessage:
    message_id: int
    guild_id: int
    channel_id: int
    author_id: int
    content: str
    created_at: int


# ---------------------------------------------------------------------------
# Triage outcomes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TriageIgnore:
    """Nothing actionable; ``reason`` is persisted as the ignore reason."""
    reason: str
    kind: Literal["ignore"] = "ignore"


@dataclass(frozen=True)
class TriageVictim:
    """A rule was broken against one member.

    ``victim_id`` is kept exactly as the policy returned it; validating it is
    the lifecycle's job.
    """
    rule: str
    victim_id: str
    reasoning: str
    kind: Literal["victim"] = "victim"


@dataclass(frozen=True)
class TriageGroup:
    """A rule was broken against the channel at large."""
    rule: str
    delete: bool
    reasoning: str
    caution: Optional[str] = None
    notification: Optional[str] = None
    kind: Literal["group"] = "group"


TriageOutcome = Union[TriageIgnore, TriageVictim, TriageGroup]
