"""
Infrastructure layer - external system integrations.
Keeps business logic clean from implementation details.
"""

from .pg_listener import PostgresChangeFeed, asyncpg_dsn

__all__ = ['PostgresChangeFeed', 'asyncpg_dsn']
