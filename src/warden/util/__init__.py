"""
Utility helpers for Warden.

- **logger.py**: Colourised console + rotating file logging.
- **timer.py**: Cancellable, re-armable delayed callbacks and ``unix_now``.
- **discord_utils.py**: Best-effort Discord fetch/send/delete helpers.
"""
