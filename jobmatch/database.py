"""
Database schema and connection management for the key-value store.

Any SQLAlchemy URL works; SQLite is the usual local choice.
"""

from datetime import datetime
from pathlib import Path
from typing import Union

from sqlalchemy import create_engine, Column, String, Text, DateTime
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

Base = declarative_base()


class KVEntry(Base):
    """One field of a named hash."""

    __tablename__ = "kv_entries"

    collection = Column(String, primary_key=True)  # e.g. geocoded-cities
    field = Column(String, primary_key=True)  # e.g. SAN JOSE,CA
    value = Column(Text, nullable=False)  # JSON
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)


def database_url(target: Union[str, Path]) -> str:
    """Accept either a SQLAlchemy URL or a filesystem path to a SQLite file."""
    if isinstance(target, str) and "://" in target:
        return target
    path = Path(target)
    path.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{path}"


def create_db_engine(target: Union[str, Path]) -> Engine:
    return create_engine(database_url(target))


def init_database(target: Union[str, Path]) -> Engine:
    """
    Initialize database and create tables.

    Args:
        target: SQLAlchemy URL or path to SQLite database file

    Returns:
        Engine bound to the database
    """
    engine = create_db_engine(target)
    Base.metadata.create_all(engine)
    return engine


def get_session_factory(engine: Engine):
    """
    Get a session factory for the engine.

    Args:
        engine: Engine returned by init_database

    Returns:
        SQLAlchemy sessionmaker
    """
    return sessionmaker(bind=engine)
