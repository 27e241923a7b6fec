"""
Configuration management for Warden.

- **app_configuration.py**: YAML loader for ``./config/app_config.yml`` guarded by
  an fcntl shared lock. Falls back to built-in defaults when the file is missing
  or malformed.

- **ai_settings.py**: API key, endpoint and model names for the classifier and
  triage calls.

- **moderation_settings.py**: Duty-cycle interval, probation/punishment/pardon
  windows, audit batching and message cache retention.
"""
