"""
Moderation workflow.

- **audit_log.py**: Debounced per-incident audit batches posted to the audit channel.
- **repeat_offense.py**: Escalates offenses repeated under probation into punishments.
- **incident_lifecycle.py**: Applies a triage verdict to one incident.
- **duty_cycle.py**: The periodic, non-overlapping run that drives everything above.
"""
