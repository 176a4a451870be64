"""Storage layer: SQLAlchemy engine, ORM models and collaborator implementations."""

from .database import (
    Base, get_database_engine, get_session_factory, reset_database_engine,
    init_database, get_db, create_tables, drop_tables
)
from .credentials import DatabaseCredentialStore, EnvironmentCredentialStore, ChainedCredentialStore
from .files import DatabaseFileStorage

__all__ = [
    "Base", "get_database_engine", "get_session_factory", "reset_database_engine",
    "init_database", "get_db", "create_tables", "drop_tables",
    "DatabaseCredentialStore", "EnvironmentCredentialStore", "ChainedCredentialStore",
    "DatabaseFileStorage",
]
