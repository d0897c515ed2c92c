"""
Shared test configuration and fixtures.

Every test gets a fresh in-memory SQLite database and a controllable clock so
subscription expiry and daily usage windows can be exercised without waiting.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator, Callable, Dict
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from echoecho.app import create_app
from echoecho.core.dependencies import (
    get_clock,
    get_entitlement_config,
    get_notifier,
    get_payment_verifier,
)
from echoecho.core.service.auth.jwt_service import JWTService
from echoecho.core.service.entitlement.lifecycle import SubscriptionLifecycleManager
from echoecho.core.service.entitlement.models import EntitlementConfig
from echoecho.core.service.entitlement.usage_gate import UsageMeteringGate
from echoecho.core.service.notifications.notifier import MiniAppNotifier
from echoecho.core.service.payments.verifier import PaymentVerifier, VerifiedPayment
from echoecho.infra.database import DatabaseManager, get_async_session, get_database_manager
from echoecho.infra.repository.activity_repository import ActivityRepository
from echoecho.infra.repository.entitlement_store import EntitlementStore

SQLITE_URL = "sqlite+aiosqlite://"

USER_WALLET = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"
OTHER_WALLET = "0x" + "b" * 40
ADMIN_WALLET = "0x" + "ad" * 20
SUBSCRIPTION_WALLET = "0x" + "5" * 40


def tx_hash(n: int) -> str:
    """Deterministic, well-formed transaction hash"""
    return "0x" + format(n, "064x")


class FrozenClock:
    """Clock that only moves when told to"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def entitlement_config() -> EntitlementConfig:
    return EntitlementConfig(
        admin_wallets=frozenset({ADMIN_WALLET.lower()}),
        subscription_wallet=SUBSCRIPTION_WALLET.lower()
    )


@pytest.fixture
async def engine():
    engine = create_async_engine(
        SQLITE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False}
    )
    yield engine
    await engine.dispose()


@pytest.fixture
async def session(engine) -> AsyncGenerator[AsyncSession, None]:
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    async with factory() as session:
        yield session


@pytest.fixture
def store(session, entitlement_config, clock) -> EntitlementStore:
    return EntitlementStore(session, config=entitlement_config, clock=clock)


@pytest.fixture
def activity(session, clock) -> ActivityRepository:
    return ActivityRepository(session, clock=clock)


@pytest.fixture
def lifecycle(store, entitlement_config, clock) -> SubscriptionLifecycleManager:
    return SubscriptionLifecycleManager(store, entitlement_config, clock=clock)


@pytest.fixture
def gate(lifecycle, store, entitlement_config) -> UsageMeteringGate:
    return UsageMeteringGate(lifecycle, store, entitlement_config)


@pytest.fixture
def payment_verifier() -> AsyncMock:
    """Oracle double; tests set `verify.return_value` per scenario"""
    verifier = AsyncMock(spec=PaymentVerifier)
    verifier.verify.return_value = VerifiedPayment(
        tx_hash=tx_hash(1),
        payer=USER_WALLET.lower(),
        payee=SUBSCRIPTION_WALLET.lower(),
        amount_usdc=Decimal("7")
    )
    return verifier


@pytest.fixture
def notifier() -> AsyncMock:
    notifier = AsyncMock(spec=MiniAppNotifier)
    notifier.send.return_value = True
    notifier.send_to_all.return_value = 0
    return notifier


@pytest.fixture
async def db_manager():
    manager = DatabaseManager(SQLITE_URL)
    yield manager
    await manager.close()


@pytest.fixture
async def client(session, clock, entitlement_config, payment_verifier, notifier, db_manager) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app with storage, clock and external services overridden"""
    app = create_app()

    async def override_session():
        yield session

    app.dependency_overrides[get_async_session] = override_session
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_entitlement_config] = lambda: entitlement_config
    app.dependency_overrides[get_payment_verifier] = lambda: payment_verifier
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_database_manager] = lambda: db_manager

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as ac:
        yield ac


@pytest.fixture
def auth_headers() -> Callable[[str], Dict[str, str]]:
    jwt_service = JWTService()

    def _headers(wallet_address: str = USER_WALLET) -> Dict[str, str]:
        token = jwt_service.create_access_token(wallet_address).access_token
        return {"Authorization": f"Bearer {token}"}

    return _headers
