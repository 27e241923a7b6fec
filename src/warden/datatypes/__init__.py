"""
Datatypes shared across Warden.

- **incident_datatypes.py**: Row dataclasses for incidents, interventions,
  pardons, probations, punishments, guild config and the message cache, plus
  the tagged ``TriageOutcome`` union returned by the triage policy.
"""
