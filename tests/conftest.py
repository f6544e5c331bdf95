"""Pytest fixtures for testing"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, Generator, List, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from storefront_gateway.api.dependencies import get_orchestrator
from storefront_gateway.api.main import create_app
from storefront_gateway.domain.exceptions import CollaboratorError
from storefront_gateway.domain.models import (
    ProductListing,
    PurchaseRecord,
    UserActivity,
    UserProfile,
)
from storefront_gateway.infrastructure.clients.renderer import PixInstructionRenderer
from storefront_gateway.infrastructure.database.models import (
    Base,
    LoyaltyAccountRecord,
    LoyaltyEntryRecord,
    PaymentRecord,
    ProductRecord,
)
from storefront_gateway.infrastructure.database.repositories import AuditRepository, LoyaltyRepository
from storefront_gateway.infrastructure.database.session import build_engine, build_session_factory, get_db
from storefront_gateway.infrastructure.locks import KeyedLocks
from storefront_gateway.services.loyalty_ledger import LoyaltyLedger
from storefront_gateway.services.orchestrator import TransactionOrchestrator
from storefront_gateway.services.payment_state_machine import PaymentStateMachine
from storefront_gateway.services.risk_engine import RiskEngine

START = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Controllable clock; tests move time explicitly"""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FakeCatalog:
    """In-memory stand-in for CatalogClient"""

    def __init__(self) -> None:
        self.products: Dict[str, ProductListing] = {}
        self.fail = False

    def add(self, product_id: str, price: str, name: Optional[str] = None) -> ProductListing:
        listing = ProductListing(
            id=product_id,
            name=name or f"Account {product_id}",
            price=Decimal(price),
            available=True,
            sold=False,
        )
        self.products[product_id] = listing
        return listing

    def get_product(self, product_id: str) -> Optional[ProductListing]:
        if self.fail:
            raise CollaboratorError("catalog unavailable")
        return self.products.get(product_id)


class FakeIdentity:
    """In-memory stand-in for IdentityClient that records writes"""

    def __init__(self) -> None:
        self.profiles: Dict[str, UserProfile] = {}
        self.histories: Dict[str, List[UserActivity]] = {}
        self.purchases: Dict[str, List[PurchaseRecord]] = {}
        self.recorded: List[tuple] = []
        self.blocked: Dict[str, str] = {}
        self.fail_reads = False
        self.fail_writes = False
        self.profile_calls = 0

    def add_user(
        self,
        user_id: str,
        created_at: datetime,
        email: str = "buyer@example.com",
        history: Optional[List[UserActivity]] = None,
        purchases: Optional[List[PurchaseRecord]] = None,
        is_blocked: bool = False,
    ) -> UserProfile:
        profile = UserProfile(user_id=user_id, created_at=created_at, email=email, is_blocked=is_blocked)
        self.profiles[user_id] = profile
        self.histories[user_id] = list(history or [])
        self.purchases[user_id] = list(purchases or [])
        return profile

    def get_user_profile(self, user_id: str) -> Optional[UserProfile]:
        self.profile_calls += 1
        if self.fail_reads:
            raise CollaboratorError("identity unavailable")
        return self.profiles.get(user_id)

    def get_user_history(self, user_id: str, limit: int = 100) -> List[UserActivity]:
        if self.fail_reads:
            raise CollaboratorError("identity unavailable")
        history = sorted(self.histories.get(user_id, []), key=lambda a: a.timestamp, reverse=True)
        return history[:limit]

    def get_purchase_history(self, user_id: str) -> List[PurchaseRecord]:
        if self.fail_reads:
            raise CollaboratorError("identity unavailable")
        return list(self.purchases.get(user_id, []))

    def record_activity(self, user_id: str, action: str, data: Optional[Dict[str, Any]] = None) -> None:
        if self.fail_writes:
            raise CollaboratorError("identity unavailable")
        self.recorded.append((user_id, action, data or {}))

    def block_user(self, user_id: str, reason: str, evidence: Optional[Dict[str, Any]] = None) -> None:
        if self.fail_writes:
            raise CollaboratorError("identity unavailable")
        self.blocked[user_id] = reason

    def actions(self, user_id: str) -> List[str]:
        return [action for uid, action, _ in self.recorded if uid == user_id]


class InMemoryRiskCache:
    """Dict-backed stand-in with the RiskAssessmentCache interface"""

    def __init__(self) -> None:
        self.entries: Dict[str, Any] = {}

    def get(self, user_id: str):
        return self.entries.get(user_id)

    def set(self, user_id: str, assessment) -> None:
        self.entries[user_id] = assessment

    def invalidate(self, user_id: str) -> None:
        self.entries.pop(user_id, None)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def engine(tmp_path) -> Generator[Engine, None, None]:
    """SQLite database file per test"""
    engine = build_engine(f"sqlite:///{tmp_path / 'storefront.db'}")
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker:
    return build_session_factory(engine)


class StoreView:
    """Reads stored rows in short sessions so no test holds the write lock"""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def payment(self, payment_id: str) -> Optional[PaymentRecord]:
        with self.session_factory() as session:
            return session.get(PaymentRecord, payment_id)

    def product(self, product_id: str) -> Optional[ProductRecord]:
        with self.session_factory() as session:
            return session.get(ProductRecord, product_id)

    def account(self, user_id: str) -> Optional[LoyaltyAccountRecord]:
        with self.session_factory() as session:
            return session.get(LoyaltyAccountRecord, user_id)

    def entries(self, user_id: str) -> List[LoyaltyEntryRecord]:
        with self.session_factory() as session:
            return LoyaltyRepository(session).entries(user_id)

    def audit_actions(self, target_id: str) -> List[str]:
        with self.session_factory() as session:
            return [e.action for e in AuditRepository(session).list_for_target(target_id)]


@pytest.fixture
def store(session_factory: sessionmaker) -> StoreView:
    return StoreView(session_factory)


@pytest.fixture
def catalog() -> FakeCatalog:
    catalog = FakeCatalog()
    catalog.add("prod_1", "59.90", name="Premium Account")
    catalog.add("prod_2", "20.00")
    catalog.add("prod_big", "500.00")
    catalog.add("prod_3", "35.00")
    return catalog


@pytest.fixture
def identity(clock: FrozenClock) -> FakeIdentity:
    identity = FakeIdentity()
    identity.add_user(
        "buyer_1",
        created_at=clock.now - timedelta(days=365),
        history=[UserActivity(action="LOGIN", timestamp=clock.now - timedelta(days=2))],
    )
    identity.add_user(
        "buyer_2",
        created_at=clock.now - timedelta(days=200),
        history=[UserActivity(action="LOGIN", timestamp=clock.now - timedelta(days=3))],
    )
    return identity


@pytest.fixture
def risk_cache() -> InMemoryRiskCache:
    return InMemoryRiskCache()


@pytest.fixture
def locks() -> KeyedLocks:
    return KeyedLocks()


@pytest.fixture
def payments(session_factory: sessionmaker, clock: FrozenClock, locks: KeyedLocks) -> PaymentStateMachine:
    return PaymentStateMachine(
        session_factory,
        PixInstructionRenderer(),
        clock=clock,
        locks=locks,
        expiration_seconds=1800,
    )


@pytest.fixture
def loyalty(session_factory: sessionmaker, clock: FrozenClock, locks: KeyedLocks) -> LoyaltyLedger:
    return LoyaltyLedger(session_factory, clock=clock, locks=locks, expiration_days=90)


@pytest.fixture
def risk_engine(
    identity: FakeIdentity,
    session_factory: sessionmaker,
    risk_cache: InMemoryRiskCache,
    clock: FrozenClock,
) -> RiskEngine:
    return RiskEngine(identity, session_factory, cache=risk_cache, clock=clock)


@pytest.fixture
def orchestrator(
    catalog: FakeCatalog,
    identity: FakeIdentity,
    risk_engine: RiskEngine,
    payments: PaymentStateMachine,
    loyalty: LoyaltyLedger,
) -> TransactionOrchestrator:
    return TransactionOrchestrator(
        catalog=catalog,
        identity=identity,
        risk=risk_engine,
        payments=payments,
        loyalty=loyalty,
        points_per_unit=Decimal("1"),
    )


@pytest.fixture
def listed_payment(orchestrator: TransactionOrchestrator):
    """A PENDING payment for prod_1 opened by buyer_1"""
    result = orchestrator.start_purchase("buyer_1", "Buyer One", "prod_1")
    assert result.success, result.message
    return result.payment


@pytest.fixture
def client(orchestrator: TransactionOrchestrator, session_factory: sessionmaker) -> TestClient:
    """Create FastAPI test client wired to the test orchestrator and database"""
    app = create_app()

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    return TestClient(app)
