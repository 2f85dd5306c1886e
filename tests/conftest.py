from contextlib import contextmanager
from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from libs.db.kv_store import MemoryKeyValueStore
from services.checkout_service.gateway_sdk import GatewayBridge, RelayCheckout
from services.checkout_service.services.balance_reconciler import BalanceReconciler
from services.checkout_service.services.cart_ops import CartAggregator
from services.checkout_service.services.checkout_flow import (
    CheckoutSession,
    SessionRegistry,
)
from services.checkout_service.services.transaction_ledger import TransactionLedger
from tests.fakes import FakeBackend, ScriptedSdk


def make_user(user_id: str = "emp-001", token: str = "test-token") -> AuthUser:
    return AuthUser(sub=user_id, email=f"{user_id}@example.com", token=token)


@contextmanager
def override_auth(app, user: AuthUser):
    """Temporarily authenticate every request as ``user``."""
    previous = app.dependency_overrides.get(get_current_user)
    app.dependency_overrides[get_current_user] = lambda: user
    try:
        yield
    finally:
        if previous is None:
            app.dependency_overrides.pop(get_current_user, None)
        else:
            app.dependency_overrides[get_current_user] = previous


# ---------------------------------------------------------------------------
# Engine components
# ---------------------------------------------------------------------------


@pytest.fixture
def store():
    return MemoryKeyValueStore()


@pytest.fixture
def backend():
    return FakeBackend(balance=Decimal("200"))


@pytest.fixture
def sdk():
    return ScriptedSdk()


@pytest.fixture
def bridge(sdk):
    return GatewayBridge(sdk=sdk)


@pytest.fixture
def cart():
    return CartAggregator(tax_rate=Decimal("0.05"))


@pytest.fixture
def reconciler(store):
    return BalanceReconciler(store)


@pytest.fixture
def ledger(store):
    return TransactionLedger(store, capacity=100)


@pytest.fixture
def session(backend, store, bridge):
    return CheckoutSession(backend, store, gateway=bridge)


# ---------------------------------------------------------------------------
# HTTP surface
# ---------------------------------------------------------------------------


@pytest.fixture
def checkout_app(backend):
    from services.checkout_service.app.main import create_app

    registry = SessionRegistry(
        MemoryKeyValueStore(),
        backend_factory=lambda credentials: backend,
        gateway_factory=lambda: GatewayBridge(sdk=RelayCheckout),
    )
    app = create_app(registry)
    with override_auth(app, make_user()):
        yield app


@pytest_asyncio.fixture
async def checkout_client(checkout_app):
    async with AsyncClient(
        transport=ASGITransport(app=checkout_app), base_url="http://test"
    ) as client:
        yield client
