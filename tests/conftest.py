"""
Pytest fixtures for the procurement kernel test suite.

Provides:
- A database per test (SQLite file under tmp_path, or DATABASE_URL)
- Sessions for kernel-service tests (flush-only, rolled back)
- A WorkflowCoordinator with a deterministic clock and recording notifier
- Actor factories and scenario builders

Environment Variables:
- DATABASE_URL: optional PostgreSQL URL.  If not set, every test gets a
  fresh SQLite database file, so tests never share state.
"""

import json
import logging
import os
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from procurement_config import get_active_config
from procurement_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from procurement_kernel.domain.capabilities import Actor, Role
from procurement_kernel.domain.clock import DeterministicClock
from procurement_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from procurement_services.notifications import Notification
from procurement_services.workflow_coordinator import WorkflowCoordinator
from tests.factories import FOUNDATION_ITEMS, SAMPLE_ROWS, momo_payload


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
    Capture procurement_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, coordinator):
            coordinator.send_quote_request(...)
            logs = captured_logs()
            assert any(r["message"] == "quote_request_sent" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("procurement_kernel")
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
# Database fixtures
# =============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow_locks: mark test as potentially waiting for DB locks"
    )


@pytest.fixture
def engine(tmp_path):
    """Fresh schema for each test."""
    url = os.environ.get("DATABASE_URL") or f"sqlite:///{tmp_path / 'procurement.db'}"
    eng = init_engine_from_url(url, pool_size=20, max_overflow=10, pool_timeout=30)
    create_tables()
    yield eng
    if os.environ.get("DATABASE_URL"):
        drop_tables()
    reset_engine()


@pytest.fixture
def session_factory(engine):
    return get_session_factory()


@pytest.fixture
def session(session_factory):
    """
    Session for kernel-service tests.

    Services only flush; everything is rolled back at teardown.  Do not
    combine with the ``coordinator`` fixture in one test: on SQLite an open
    write transaction here blocks the coordinator's sessions.
    """
    sess = session_factory()
    yield sess
    sess.rollback()
    sess.close()


@pytest.fixture
def deterministic_clock():
    return DeterministicClock()


@pytest.fixture
def engine_config():
    return get_active_config()


class RecordingNotifier:
    """Notifier that keeps every delivered notification in memory."""

    def __init__(self):
        self.notifications: list[Notification] = []

    def notify(self, notification: Notification) -> None:
        self.notifications.append(notification)

    def kinds(self) -> list[str]:
        return [n.kind for n in self.notifications]

    def of_kind(self, kind: str) -> list[Notification]:
        return [n for n in self.notifications if n.kind == kind]


@pytest.fixture
def recording_notifier():
    return RecordingNotifier()


@pytest.fixture
def coordinator(session_factory, engine_config, deterministic_clock, recording_notifier):
    return WorkflowCoordinator(
        session_factory,
        config=engine_config,
        clock=deterministic_clock,
        notifier=recording_notifier,
    )


# =============================================================================
# Actors
# =============================================================================


@pytest.fixture
def make_actor():
    """Factory: ``make_actor(Role.CONTRACTOR)`` returns a new Actor."""

    def _make(role: Role) -> Actor:
        return Actor(actor_id=uuid4(), role=role)

    return _make


@pytest.fixture
def homeowner(make_actor):
    return make_actor(Role.HOMEOWNER)


@pytest.fixture
def contractor(make_actor):
    return make_actor(Role.CONTRACTOR)


@pytest.fixture
def supervisor(make_actor):
    return make_actor(Role.SUPERVISOR)


@pytest.fixture
def admin(make_actor):
    return make_actor(Role.ADMIN)


@pytest.fixture
def system_actor(make_actor):
    return make_actor(Role.SYSTEM)


# =============================================================================
# Scenario builders (committed through the coordinator)
# =============================================================================


@pytest.fixture
def project(coordinator, homeowner):
    return coordinator.register_project(homeowner, uuid4(), homeowner.actor_id, "Villa Thao Dien")


@pytest.fixture
def sent_quote(coordinator, homeowner, contractor, project):
    quote = coordinator.create_quote_request(
        homeowner, project.id, "Foundation work", invitee_ids=[contractor.actor_id],
    )
    return coordinator.send_quote_request(homeowner, quote.id)


@pytest.fixture
def submitted_proposal(coordinator, contractor, sent_quote):
    return coordinator.submit_proposal(
        contractor, sent_quote.id, Decimal("50000000"), 30, FOUNDATION_ITEMS,
        terms_summary="50% upfront",
    )


@pytest.fixture
def contract(coordinator, homeowner, submitted_proposal):
    return coordinator.accept_proposal(homeowner, submitted_proposal.id)


@pytest.fixture
def active_contract(coordinator, homeowner, contractor, contract):
    coordinator.handle_payment_notification(
        momo_payload("COMM-1", contract.id, amount=500_000, purpose="commission"),
    )
    coordinator.sign_contract(homeowner, contract.id, "homeowner-signature")
    return coordinator.sign_contract(contractor, contract.id, "contractor-signature")


@pytest.fixture
def supervised_project(coordinator, homeowner, supervisor, project):
    """The project with an active supervisor contract (supervisor assigned)."""
    sc = coordinator.create_supervisor_contract(
        homeowner, project.id, supervisor.actor_id, Decimal("2000000"),
    )
    coordinator.handle_payment_notification(
        momo_payload("FEE-1", sc.id, amount=2_000_000, purpose="supervisor-fee"),
    )
    coordinator.sign_supervisor_contract(homeowner, sc.id, "homeowner-signature")
    coordinator.sign_supervisor_contract(supervisor, sc.id, "supervisor-signature")
    return coordinator.get_project(project.id)


@pytest.fixture
def pending_material_request(coordinator, contractor, supervised_project):
    request = coordinator.create_material_request(contractor, supervised_project.id)
    return coordinator.import_materials(contractor, request.id, SAMPLE_ROWS)
