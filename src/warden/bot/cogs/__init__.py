"""Py-cord cogs. Each module exposes ``setup(bot, services)``."""
