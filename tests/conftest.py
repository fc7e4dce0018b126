"""
Root pytest configuration.

Provides a frozen ``Settings`` snapshot with zero politeness delays and a
SQLite-backed ``SQLAlchemyStore`` per test, so nothing touches the network
or the configured database.
"""

from unittest.mock import Mock

import pytest
from sqlalchemy.orm import sessionmaker

from macrocal.reconciliation.engine import ReconciliationEngine
from macrocal.shared.config import Settings
from macrocal.shared.db import Base, SQLAlchemyStore, build_engine


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'test.db'}",
        fred_api_key="test_fred_key",
        bls_api_key=None,
        admin_upload_secret="test-secret",
        request_timeout=5,
        source_request_delay=0.0,
        max_retries=3,
        retry_base_delay=1.0,
        reconcile_chunk_size=50,
        reconcile_max_workers=4,
        log_level="WARNING",
        logs_dir=tmp_path / "logs",
        data_dir=tmp_path / "data",
    )


@pytest.fixture
def db_engine(settings):
    engine = build_engine(settings.database_url)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> sessionmaker:
    return sessionmaker(bind=db_engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def store(session_factory) -> SQLAlchemyStore:
    return SQLAlchemyStore(session_factory)


@pytest.fixture
def engine(store) -> ReconciliationEngine:
    return ReconciliationEngine(store, lookup_chunk_size=50, max_update_workers=4)


@pytest.fixture
def http_session() -> Mock:
    """Stand-in for ``requests.Session``; set ``request.return_value`` or ``side_effect``."""
    return Mock()
