"""
Global pytest fixtures for the cardpay test suite.

Provides:
- A temporary-file SQLite database per test with the schema created
- Test settings with zero throttling delays
- A respx router standing in for the coin bank
- An in-memory entitlement sink that records every call
"""
import os
from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
import respx

# Set test environment BEFORE any cardpay imports
os.environ["TESTING"] = "true"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["MASTER_RECEIVER_CARD"] = "MASTER-CARD-0001"
os.environ["COIN_API_URL"] = "https://coin.test/"

from cardpay.shared.core.config import Settings, get_settings  # noqa: E402
from tests.utils import COIN_API_BASE, CYCLE, MASTER_CARD, NOW, FakeEntitlementSink  # noqa: E402


def _register_models():
    # Import all models to register them on Base.metadata
    from cardpay.models.tenant import Tenant  # noqa: F401
    from cardpay.models.subscription import Subscription  # noqa: F401
    from cardpay.models.payment_attempt import PaymentAttempt  # noqa: F401


_register_models()


# ============================================================================
# Settings
# ============================================================================

@pytest.fixture(autouse=True)
def _fresh_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        TESTING=True,
        COIN_API_URL="https://coin.test/",
        MASTER_RECEIVER_CARD=MASTER_CARD,
        CYCLE_SECONDS=CYCLE,
        SUBSCRIBER_CHARGE_DELAY_SECONDS=0,
        NOTIFICATION_DELAY_SECONDS=0,
        _env_file=None,
    )


# ============================================================================
# Async Database Fixtures
# ============================================================================

@pytest_asyncio.fixture
async def async_engine(tmp_path):
    """Async SQLite engine on a temporary file, schema created."""
    from cardpay.shared.db.session import build_engine, init_db

    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.sqlite'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(async_engine):
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


# ============================================================================
# Coin bank fixtures
# ============================================================================

@pytest.fixture
def coin_api():
    """respx router for the coin bank; every test declares the routes it needs."""
    with respx.mock(assert_all_called=False) as router:
        yield router


@pytest_asyncio.fixture
async def http_client() -> AsyncGenerator[httpx.AsyncClient, None]:
    async with httpx.AsyncClient(timeout=5.0) as client:
        yield client


@pytest.fixture
def coin_client(http_client):
    from cardpay.modules.billing.domain.billing.coin_client_impl import CoinBankClient

    return CoinBankClient(
        COIN_API_BASE,
        http_client_factory=lambda: http_client,
        clock_ms=lambda: NOW * 1000,
    )


@pytest.fixture
def charge_service(session_maker, coin_client):
    from cardpay.modules.billing.domain.billing.charge_service import ChargeService

    return ChargeService(session_maker, client=coin_client, clock=lambda: NOW)


# ============================================================================
# Entitlement / notification fixtures
# ============================================================================

@pytest.fixture
def sink() -> FakeEntitlementSink:
    return FakeEntitlementSink()


@pytest.fixture
def gateway(sink):
    from cardpay.modules.entitlements.domain.sink import EntitlementGateway

    return EntitlementGateway(sink)


@pytest_asyncio.fixture
async def notifications(gateway):
    from cardpay.modules.notifications.domain.notification_queue import NotificationQueue

    queue = NotificationQueue(gateway, delay_seconds=0)
    yield queue
    await queue.stop()


@pytest.fixture
def renewal_service(session_maker, charge_service, gateway, notifications, settings):
    from cardpay.modules.billing.domain.billing.renewal_service import RenewalService

    async def _no_sleep(_seconds: float) -> None:
        return None

    return RenewalService(
        session_maker,
        charge_service,
        gateway,
        notifications,
        settings=settings,
        clock=lambda: NOW,
        sleep=_no_sleep,
    )


@pytest.fixture
def registration_service(session_maker, charge_service, gateway, notifications, settings):
    from cardpay.modules.billing.domain.billing.registration_service import (
        RegistrationService,
    )

    return RegistrationService(
        session_maker,
        charge_service,
        gateway,
        notifications,
        settings=settings,
        clock=lambda: NOW,
    )
