"""Database package — the declarative Base shared by every ORM model.

Invariants:
    - Engine and sessions live in infrastructure/database.py; this package
      only holds metadata

Design Decisions:
    - asyncpg driver for PostgreSQL in production, aiosqlite in tests
"""
