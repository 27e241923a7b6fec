"""
OpenAI-backed collaborators.

- **classifier.py**: Cheap first-pass flagging via the moderation endpoint.
- **triage.py**: Two-step structured-output triage producing a ``TriageOutcome``.
- **errors.py**: ``ClassifierError`` and ``TriageError``.
"""
