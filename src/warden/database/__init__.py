"""
SQLite persistence for Warden.

- **db_connection.py**: Single long-lived aiosqlite connection with serialised
  write transactions.
- **db_schema.py**: Table and index creation.
- **database.py**: Startup/shutdown helpers.
"""
