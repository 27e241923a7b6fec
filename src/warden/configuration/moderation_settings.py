from typing import Any, Dict


class ModerationSettings:
    """Typed accessors for the ``moderation`` section of the app config.

    Every value has a built-in default so a missing or partial config file
    still yields a working moderation workflow. Durations are in seconds.
    """

    def __init__(self, data: Dict[str, Any] | None = None) -> None:
        self.data: Dict[str, Any] = data or {}

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def as_dict(self) -> Dict[str, Any]:
        return self.data

    def _float(self, key: str, default: float) -> float:
        try:
            return float(self.data.get(key, default))
        except (TypeError, ValueError):
            return default

    def _int(self, key: str, default: int) -> int:
        try:
            return int(self.data.get(key, default))
        except (TypeError, ValueError):
            return default

    # Duty cycle
    @property
    def duty_cycle_seconds(self) -> float:
        return self._float("duty_cycle_seconds", 15.0)

    @property
    def statute_of_limitations_seconds(self) -> int:
        """Incidents older than this are never triaged."""
        return self._int("statute_of_limitations_seconds", 600)

    # Disciplinary windows
    @property
    def probation_seconds(self) -> int:
        return self._int("probation_seconds", 60 * 60)

    @property
    def punishment_seconds(self) -> int:
        return self._int("punishment_seconds", 10 * 60)

    @property
    def pardon_lookback_seconds(self) -> int:
        return self._int("pardon_lookback_seconds", 24 * 60 * 60)

    @property
    def group_timeout_seconds(self) -> int:
        """Short timeout given on group intervention so the offender reads their DM. 0 disables it."""
        return self._int("group_timeout_seconds", 60)

    # Audit log
    @property
    def audit_flush_seconds(self) -> float:
        return self._float("audit_flush_seconds", 10.0)

    @property
    def audit_chunk_size(self) -> int:
        return max(1, self._int("audit_chunk_size", 1500))

    @property
    def audit_chunk_delay_seconds(self) -> float:
        return self._float("audit_chunk_delay_seconds", 1.0)

    # Message cache and incident capture
    @property
    def message_cache_hours(self) -> float:
        return self._float("message_cache_hours", 24.0)

    @property
    def message_cache_per_channel(self) -> int:
        return self._int("message_cache_per_channel", 200)

    @property
    def context_messages(self) -> int:
        return self._int("context_messages", 10)

    @property
    def content_limit(self) -> int:
        return self._int("content_limit", 1000)

    @property
    def ban_after_punishments(self) -> int:
        """Prior punishments after which a repeat offense bans instead of mutes. 0 disables bans."""
        return max(0, self._int("ban_after_punishments", 0))
