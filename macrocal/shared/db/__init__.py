"""Database engine, session factory, ORM models, and the store boundary."""

from .base import Base
from .engine import build_engine, engine
from .models import Indicator, Release, RequestLog
from .session import SessionLocal, get_db
from .store import SQLAlchemyStore, coerce_history, coerce_relation

__all__ = [
    # ORM infrastructure
    "Base",
    "engine",
    "build_engine",
    "SessionLocal",
    "get_db",
    # ORM models
    "Indicator",
    "Release",
    "RequestLog",
    # Store
    "SQLAlchemyStore",
    "coerce_relation",
    "coerce_history",
]
