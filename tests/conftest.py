"""
Pytest fixtures for the job-work ledger test suite.

Provides:
- Database sessions with per-test rollback isolation
- Deterministic clock and default voucher policy
- Common test utilities

Environment Variables:
- DATABASE_URL: SQLAlchemy URL for the test database.
  If not set, an in-memory SQLite database is used.  Tests marked
  ``postgres`` (row locking, concurrent allocation) are skipped unless
  the URL points at PostgreSQL.
"""

import json
import logging
import os
import threading
from io import StringIO
from typing import Generator

import pytest
from sqlalchemy import text
from sqlalchemy.orm import Session

from jobwork_kernel.db.base import Base
from jobwork_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from jobwork_kernel.domain.clock import DeterministicClock
from jobwork_kernel.domain.policy import VoucherPolicy
from jobwork_kernel.domain.voucher import ItemDetails
from jobwork_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from jobwork_services.change_feed import VoucherChangeFeed
from jobwork_services.payment_service import PaymentService
from jobwork_services.views import VoucherViewService
from jobwork_services.voucher_service import VoucherService
from tests.builders import BASE_TIME

DEFAULT_TEST_URL = "sqlite://"


def get_database_url() -> str:
    """Get database URL from environment, or use in-memory SQLite."""
    return os.environ.get("DATABASE_URL", DEFAULT_TEST_URL)


def _is_postgres_url(url: str) -> bool:
    return url.startswith("postgresql")


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )


def pytest_collection_modifyitems(config, items):
    if _is_postgres_url(get_database_url()):
        return
    skip_pg = pytest.mark.skip(reason="DATABASE_URL is not a PostgreSQL URL")
    for item in items:
        if "postgres" in item.keywords:
            item.add_marker(skip_pg)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture jobwork_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, voucher_service):
            voucher_service.create_voucher(...)
            logs = captured_logs()
            assert any(r["message"] == "voucher_created" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("jobwork_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Session-scoped DB infrastructure (create engine + tables ONCE per suite)
# =============================================================================


@pytest.fixture(scope="session")
def db_engine():
    """Single engine for the entire test session."""
    eng = init_engine_from_url(get_database_url(), echo=False, pool_size=10, max_overflow=10)
    yield eng
    reset_engine()


@pytest.fixture(scope="session")
def db_tables(db_engine):
    """Create all tables once per session, drop once at end."""
    drop_tables()
    create_tables()
    yield
    drop_tables()


def _truncate_all_tables(engine):
    """Delete every row; used by tests that perform real commits."""
    with engine.connect() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(text(f"DELETE FROM {table.name}"))
        conn.commit()


# =============================================================================
# Per-test session with automatic rollback
# =============================================================================


@pytest.fixture(scope="function")
def session(db_tables, db_engine) -> Generator[Session, None, None]:
    """Provide a database session for testing.

    Opens a dedicated connection with an outer transaction and joins the
    session to it; ``session.commit()`` inside the test releases a
    savepoint and the outer transaction is rolled back at teardown.
    """
    conn = db_engine.connect()
    trans = conn.begin()
    sess = Session(bind=conn, join_transaction_mode="create_savepoint", expire_on_commit=False)
    yield sess
    try:
        sess.close()
    finally:
        try:
            trans.rollback()
        finally:
            conn.close()


@pytest.fixture(scope="function")
def committing_session_factory(db_engine, db_tables):
    """Session factory whose sessions really commit.  Rows are deleted at teardown.

    Each thread should create its own session using this factory.
    """
    factory = get_session_factory()
    created_sessions: list[Session] = []
    lock = threading.Lock()

    def tracked_factory() -> Session:
        s = factory()
        with lock:
            created_sessions.append(s)
        return s

    yield tracked_factory

    for s in created_sessions:
        if s.is_active:
            s.rollback()
        s.close()
    _truncate_all_tables(db_engine)


# =============================================================================
# Clock and policy
# =============================================================================


@pytest.fixture
def deterministic_clock():
    """Provide a deterministic clock for testing."""
    return DeterministicClock(BASE_TIME)


@pytest.fixture
def policy() -> VoucherPolicy:
    return VoucherPolicy()




# =============================================================================
# Service fixtures
# =============================================================================


@pytest.fixture
def change_feed(policy) -> VoucherChangeFeed:
    return VoucherChangeFeed(policy.admin_receiver_ids)


@pytest.fixture
def voucher_service(session: Session, deterministic_clock, policy, change_feed) -> VoucherService:
    """Provide a VoucherService wired to the change feed."""
    return VoucherService(session, deterministic_clock, policy, feed=change_feed)


@pytest.fixture
def payment_service(session: Session, deterministic_clock, change_feed) -> PaymentService:
    """Provide a PaymentService wired to the change feed."""
    return PaymentService(session, deterministic_clock, feed=change_feed)


@pytest.fixture
def view_service(session: Session, policy) -> VoucherViewService:
    return VoucherViewService(session, policy)


@pytest.fixture
def create_voucher(voucher_service):
    """Create a voucher dispatching ``qty`` pieces from admin to ``receiver``."""

    def _create(qty: int = 100, receiver: str = "V1", **kwargs):
        return voucher_service.create_voucher(
            ItemDetails(item_name="Kurta", initial_quantity=qty),
            created_by="admin",
            receiver_id=receiver,
            **kwargs,
        )

    return _create
