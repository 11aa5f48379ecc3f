"""Declarative base for beaconjobs ORM models."""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all beaconjobs ORM models. Exposes metadata for Alembic."""
