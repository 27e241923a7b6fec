"""
Warden - Incident Triage and Probation for Discord

Warden flags potentially harmful guild messages with a moderation classifier
and lets an LLM decide, in context, whether a server rule was broken and
against whom.

Core Components:

- **Message Listener**: Caches recent messages and records flagged ones as
  incidents, together with the preceding conversation
- **Duty Cycle**: A periodic, non-overlapping run that triages incidents,
  informs offenders about probation and executes punishments
- **Incident Lifecycle**: Victim interventions (the victim chooses to forgive
  or not) and group interventions (delete or call out, then probation)
- **Repeat-Offense Matcher**: Escalates a new offense during probation
  straight to a mute or ban
- **Audit Log**: Debounced, per-incident summaries posted to a staff channel

Usage:
    from warden.main import main
    main()  # Connects to Discord and starts the duty cycle
"""
