"""Run-log database plumbing: declarative Base, engine cache, session factory."""

from beaconjobs.db.base import Base
from beaconjobs.db.engine import (
    DATABASE_URL_ENV,
    create_engine,
    create_session_factory,
    dispose_engine,
    get_engine,
    resolve_database_url,
)
from beaconjobs.errors import ConfigurationError

__all__ = [
    "Base",
    "ConfigurationError",
    "DATABASE_URL_ENV",
    "create_engine",
    "create_session_factory",
    "dispose_engine",
    "get_engine",
    "resolve_database_url",
]
