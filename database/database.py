"""
Database connection and session management
Postgres in production; any SQLAlchemy URL via DATABASE_URL (tests use SQLite)
"""

import os
from typing import Optional

from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

load_dotenv()

# Database URL from environment
POSTGRES_USER = os.getenv("POSTGRES_USER", "assembly_user")
POSTGRES_PASSWORD = os.getenv("POSTGRES_PASSWORD", "assembly_pass")
POSTGRES_HOST = os.getenv("POSTGRES_HOST", "localhost")
POSTGRES_PORT = os.getenv("POSTGRES_PORT", "5432")
POSTGRES_DB = os.getenv("POSTGRES_DB", "item_bank")

DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql://{POSTGRES_USER}:{POSTGRES_PASSWORD}@{POSTGRES_HOST}:{POSTGRES_PORT}/{POSTGRES_DB}",
)

# Base class for declarative models
Base = declarative_base()

_engine: Optional[Engine] = None


def get_engine(url: Optional[str] = None) -> Engine:
    """Shared engine for DATABASE_URL, or a fresh one for an explicit url."""
    global _engine
    if url is not None:
        return create_engine(url, pool_pre_ping=True)
    if _engine is None:
        _engine = create_engine(
            DATABASE_URL,
            pool_pre_ping=True,
            pool_size=5,
            max_overflow=10,
        )
    return _engine


def get_session_factory(engine: Optional[Engine] = None) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine or get_engine())


def init_db(engine: Optional[Engine] = None) -> None:
    """Create the item bank tables if they do not exist."""
    from database import models  # noqa: F401  (registers tables on Base)
    Base.metadata.create_all(bind=engine or get_engine())
