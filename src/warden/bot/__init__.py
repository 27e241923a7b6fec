"""
Discord-facing layer.

- **services.py**: Builds the shared moderation services.
- **cogs/**: Slash commands and event listeners.
"""
