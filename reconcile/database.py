"""
Database schema and connection management.

Uses SQLite with SQLAlchemy as a local stand-in for the hosted record store.
"""

import uuid
from datetime import datetime
from pathlib import Path

from sqlalchemy import JSON, Column, DateTime, String, Text, create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

Base = declarative_base()


def new_id() -> str:
    return str(uuid.uuid4())


class Contact(Base):
    """Company contact."""

    __tablename__ = "contacts"

    id = Column(String, primary_key=True, default=new_id)
    company_name = Column(String, nullable=False)
    contact_name = Column(String)
    phone = Column(String)
    email = Column(String)
    street = Column(String)
    city = Column(String)
    canton = Column(String)
    postal_code = Column(String)
    notes = Column(Text)
    source_id = Column(String)  # directory entry id for synced contacts
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)


class Candidate(Base):
    """Candidate (TMA) record."""

    __tablename__ = "candidates"

    id = Column(String, primary_key=True, default=new_id)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    phone = Column(String)
    email = Column(String)
    street = Column(String)
    city = Column(String)
    postal_code = Column(String)
    position_title = Column(String)
    role_id = Column(String)
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)


class Role(Base):
    """Role tag of the organization's vocabulary."""

    __tablename__ = "roles"

    id = Column(String, primary_key=True, default=new_id)
    name = Column(String, nullable=False)
    color = Column(String)
    note = Column(Text)


class CleanupRun(Base):
    """Audit entry for an applied encoding fix or dedupe merge."""

    __tablename__ = "cleanup_runs"

    id = Column(String, primary_key=True, default=new_id)
    type = Column(String, nullable=False)  # fix_encoding, dedupe_merge
    target = Column(String, nullable=False)  # contacts, candidates
    summary = Column(JSON, nullable=False)
    status = Column(String, nullable=False)  # completed, partial
    executed_at = Column(DateTime, nullable=False, default=datetime.now)


def init_database(db_path: Path) -> None:
    """
    Initialize database and create tables.

    Args:
        db_path: Path to SQLite database file
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(engine)


def get_session(db_path: Path):
    """
    Get database session.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLAlchemy session
    """
    engine = create_engine(f"sqlite:///{db_path}")
    Session = sessionmaker(bind=engine)
    return Session()
