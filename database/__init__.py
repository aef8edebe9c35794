"""
Item bank persistence (SQLAlchemy)
"""

from database.database import Base, get_engine, get_session_factory, init_db
from database.crud import SqlItemStore

__all__ = ["Base", "SqlItemStore", "get_engine", "get_session_factory", "init_db"]
