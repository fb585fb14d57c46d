"""
Pytest fixtures for the backoffice kernel test suite.

Provides:
- A fresh in-memory SQLite database per test (StaticPool, so every
  session created from ``session_factory`` sees the same data)
- Immutability listeners registered for every test
- A deterministic clock fixed at 2024-01-01 12:00 UTC
- Tenant / user factories returning authenticated SessionContexts
- Service fixtures wired to the shared session and clock
- Structured log capture
"""

import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from backoffice_kernel.db.base import Base
from backoffice_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from backoffice_kernel.domain.clock import DeterministicClock
from backoffice_kernel.domain.dtos import UserRole
from backoffice_kernel.domain.policies import (
    LedgerPolicy,
    PasswordPolicy,
    RelationshipPolicy,
    TokenPolicy,
)
from backoffice_kernel.domain.session import SessionContext
from backoffice_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from backoffice_kernel.models.business import Business, User
from backoffice_kernel.services.auth_service import AuthService
from backoffice_kernel.services.authority import PermissionAuthority
from backoffice_kernel.services.inventory_ledger import InventoryLedgerService
from backoffice_kernel.services.modifier_service import ModifierService
from backoffice_kernel.services.product_service import ProductService
from backoffice_kernel.services.relationship_service import RelationshipService
from backoffice_kernel.services.supplier_service import SupplierService
from backoffice_kernel.services.transfer_service import TransferService
from backoffice_kernel.utils.hashing import hash_password
from backoffice_modules._orm_registry import import_all_orm_models

TEST_NOW = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

# Low iteration count keeps password hashing fast in tests
TEST_PASSWORDS = PasswordPolicy(min_length=8, hash_iterations=1000, temporary_password_length=12)

TEST_TOKENS = TokenPolicy(secret_key="test-secret-key", issuer="backoffice-test")


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
    Capture backoffice_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, ledger, owner):
            ledger.adjust(owner, item_id, Decimal("5"), "Delivery")
            logs = captured_logs()
            assert any(r["message"] == "stock_adjusted" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("backoffice_kernel")
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


@pytest.fixture
def engine():
    """A private in-memory database with every table created."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    import_all_orm_models()
    Base.metadata.create_all(engine)
    register_immutability_listeners()
    yield engine
    unregister_immutability_listeners()
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def session(session_factory):
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def clock():
    return DeterministicClock(TEST_NOW)


@pytest.fixture
def authority():
    return PermissionAuthority()


# =============================================================================
# Tenants and users
# =============================================================================


@pytest.fixture
def make_tenant(session):
    """
    Create a business with its owner; return the owner's SessionContext.

    Usage::

        bakery = make_tenant("Bakery")
        cafe = make_tenant("Cafe")
    """

    def _make(name: str = "Bakery", email: str | None = None) -> SessionContext:
        owner_id = uuid4()
        business = Business(name=name, is_active=True, created_by_id=owner_id)
        session.add(business)
        session.flush()
        user = User(
            id=owner_id,
            business_id=business.id,
            email=email or f"owner-{owner_id.hex[:8]}@example.com",
            full_name=f"{name} Owner",
            role=UserRole.OWNER.value,
            password_hash=hash_password("owner-password", TEST_PASSWORDS.hash_iterations),
            is_active=True,
            created_by_id=owner_id,
        )
        session.add(user)
        session.flush()
        return SessionContext.anonymous().authenticate(
            user_id=user.id,
            business_id=business.id,
            role=UserRole.OWNER,
        )

    return _make


@pytest.fixture
def make_user(session):
    """Add a user with ``role`` to the business of ``ctx``; return their context."""

    def _make(ctx: SessionContext, role: UserRole | str) -> SessionContext:
        user_id = uuid4()
        user = User(
            id=user_id,
            business_id=ctx.business_id,
            email=f"{UserRole(role).value}-{user_id.hex[:8]}@example.com",
            full_name=f"Test {UserRole(role).value.title()}",
            role=UserRole(role).value,
            password_hash=hash_password("staff-password", TEST_PASSWORDS.hash_iterations),
            is_active=True,
            created_by_id=ctx.user_id,
        )
        session.add(user)
        session.flush()
        return SessionContext.anonymous().authenticate(
            user_id=user.id,
            business_id=ctx.business_id,
            role=role,
        )

    return _make


@pytest.fixture
def owner(make_tenant):
    return make_tenant("Bakery")


@pytest.fixture
def partner(make_tenant):
    return make_tenant("Cafe")


# =============================================================================
# Services
# =============================================================================


@pytest.fixture
def ledger(session, clock, authority):
    return InventoryLedgerService(session, clock, authority, LedgerPolicy())


@pytest.fixture
def relationships(session, clock, authority):
    return RelationshipService(session, clock, authority, RelationshipPolicy())


@pytest.fixture
def transfers(session, clock, authority, ledger):
    return TransferService(session, clock, authority, ledger)


@pytest.fixture
def products(session, clock, authority):
    return ProductService(session, clock, authority)


@pytest.fixture
def modifiers(session, clock, authority):
    return ModifierService(session, clock, authority)


@pytest.fixture
def suppliers(session, clock, authority):
    return SupplierService(session, clock, authority)


@pytest.fixture
def auth(session, clock, authority):
    return AuthService(session, clock, authority, TEST_TOKENS, TEST_PASSWORDS)


# =============================================================================
# Common scenarios
# =============================================================================


@pytest.fixture
def make_item(ledger):
    """Create an inventory item for ``ctx`` with sensible defaults."""

    def _make(ctx: SessionContext, name: str = "Flour", **fields):
        fields.setdefault("unit_of_measure", "kg")
        fields.setdefault("unit_price", Decimal("2.50"))
        return ledger.create_item(ctx, name=name, **fields)

    return _make


@pytest.fixture
def linked(owner, partner, relationships, clock):
    """Two businesses with an ACTIVE relationship: (source, destination)."""
    rel = relationships.request(owner, partner.business_id)
    clock.tick()
    relationships.accept(partner, rel.id)
    clock.tick()
    return owner, partner
