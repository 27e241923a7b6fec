"""
Table-level repositories. Every method takes an open aiosqlite connection; the
caller decides whether it runs inside ``db_connection.read()`` or
``db_connection.transaction()``.
"""
