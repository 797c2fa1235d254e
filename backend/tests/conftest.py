"""
Pytest configuration and shared fixtures for EliteVault tests.

Provides an in-memory SQLite DB, an httpx client bound to the FastAPI app,
a fake AbacatePay API behind httpx.MockTransport, and sample users,
products and keys.
"""
import os, sys
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

import itertools
import json
from decimal import Decimal
from typing import AsyncGenerator

import httpx
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from config import settings

# ── Test Configuration ───────────────────────────────────────────────
# Set test-only values for settings that would normally come from .env
settings.jwt_secret = "test-jwt-secret-for-pytest-only"
settings.bcrypt_rounds = 4
settings.abacatepay_api_key = "abc_dev_test_key"
settings.webhook_secret = "test-webhook-secret"
settings.pix_poller_enabled = False
settings.environment = "development"
settings.pix_dev_mode = True

from main import app  # noqa: E402
from database import Base, get_db  # noqa: E402
from abacatepay_client import abacatepay_client  # noqa: E402
from middleware.rate_limit import limiter  # noqa: E402

VALID_CPF = "52998224725"
CUSTOMER_PASSWORD = "secret123"
CART_SESSION = "cart-session_abc123"


# ── Database Fixtures ────────────────────────────────────────────────


@pytest.fixture(scope="function")
async def db_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """In-memory SQLite session, fresh for each test (StaticPool keeps one connection)."""
    async with session_factory() as session:
        yield session


@pytest.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """
    httpx client over ASGITransport with get_db overridden.

    ASGITransport does not run the lifespan, so no poller is started.
    """
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def reset_rate_limiter():
    limiter.reset()
    yield
    limiter.reset()


# ── AbacatePay Fake ──────────────────────────────────────────────────


class FakeAbacatePay:
    """
    In-memory stand-in for the AbacatePay PIX API.

    Charges start PENDING; `set_status()` or /pixQrCode/simulate changes them.
    Set `fail_create` / `fail_check` to make the next calls answer 500.
    """

    def __init__(self):
        self._ids = itertools.count(1)
        self.charges: dict[str, dict] = {}
        self.requests: list[httpx.Request] = []
        self.fail_create = False
        self.fail_check = False

    def set_status(self, pix_id: str, status: str) -> None:
        self.charges[pix_id]["status"] = status

    def last_json(self, suffix: str) -> dict:
        for request in reversed(self.requests):
            if request.url.path.endswith(suffix):
                return json.loads(request.content)
        raise AssertionError(f"no request to {suffix}")

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.headers.get("Authorization") != f"Bearer {settings.abacatepay_api_key}":
            return httpx.Response(401, json={"data": None, "error": "Unauthorized"})

        path = request.url.path
        if path.endswith("/pixQrCode/create"):
            if self.fail_create:
                return httpx.Response(500, json={"data": None, "error": "Internal error"})
            body = json.loads(request.content)
            pix_id = f"pix_char_{next(self._ids):06d}"
            self.charges[pix_id] = {
                "id": pix_id,
                "amount": body["amount"],
                "status": "PENDING",
                "devMode": True,
                "brCode": f"00020101021226950014br.gov.bcb.pix{pix_id}",
                "brCodeBase64": "data:image/png;base64,iVBORw0KGgoAAAANSUhEUg",
                "platformFee": 80,
                "createdAt": "2026-10-19T12:00:00.000Z",
                "updatedAt": "2026-10-19T12:00:00.000Z",
                "expiresAt": "2026-10-19T13:00:00.000Z",
            }
            return httpx.Response(200, json={"data": self.charges[pix_id], "error": None})

        if path.endswith("/pixQrCode/check"):
            if self.fail_check:
                return httpx.Response(500, json={"data": None, "error": "Internal error"})
            charge = self.charges.get(request.url.params.get("id"))
            if not charge:
                return httpx.Response(404, json={"data": None, "error": "Not found"})
            return httpx.Response(
                200,
                json={"data": {"status": charge["status"], "expiresAt": charge["expiresAt"]}, "error": None},
            )

        if path.endswith("/pixQrCode/simulate"):
            pix_id = json.loads(request.content)["id"]
            charge = self.charges.get(pix_id)
            if not charge:
                return httpx.Response(404, json={"data": None, "error": "Not found"})
            charge["status"] = "PAID"
            return httpx.Response(200, json={"data": charge, "error": None})

        return httpx.Response(404, json={"data": None, "error": "Unknown route"})


@pytest.fixture
def abacatepay():
    """Route the AbacatePay client through FakeAbacatePay."""
    fake = FakeAbacatePay()
    abacatepay_client.use_transport(httpx.MockTransport(fake.handle))
    yield fake
    abacatepay_client.use_transport(None)


# ── Test Data Fixtures ────────────────────────────────────────────────


@pytest.fixture
async def customer(db_session: AsyncSession):
    """Registered customer with WhatsApp and CPF (eligible for the AbacatePay customer block)."""
    from services import user_service

    user = await user_service.register_customer(
        db_session,
        email="Maria.Silva@Example.com",
        password=CUSTOMER_PASSWORD,
        first_name="Maria",
        last_name="Silva",
        whatsapp="(11) 98765-4321",
        tax_id="529.982.247-25",
    )
    await db_session.commit()
    return user


@pytest.fixture
async def other_customer(db_session: AsyncSession):
    from services import user_service

    user = await user_service.register_customer(
        db_session,
        email="joao@example.com",
        password=CUSTOMER_PASSWORD,
        first_name="Joao",
        last_name="Souza",
    )
    await db_session.commit()
    return user


@pytest.fixture
async def admin_user(db_session: AsyncSession):
    from services import user_service

    admin = await user_service.seed_admin_user(db_session)
    await db_session.commit()
    return admin


async def _auth_headers(db: AsyncSession, user, kind) -> dict:
    from middleware.auth import issue_access_token
    from services import user_service

    session = await user_service.create_session(db, user=user, kind=kind)
    await db.commit()
    token = issue_access_token(
        user_id=user.id, session_id=session.id, role=kind.value, expires_at=session.expires_at
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def customer_headers(db_session: AsyncSession, customer) -> dict:
    from domain.enums import SessionKind
    return await _auth_headers(db_session, customer, SessionKind.CUSTOMER)


@pytest.fixture
async def other_customer_headers(db_session: AsyncSession, other_customer) -> dict:
    from domain.enums import SessionKind
    return await _auth_headers(db_session, other_customer, SessionKind.CUSTOMER)


@pytest.fixture
async def admin_headers(db_session: AsyncSession, admin_user) -> dict:
    from domain.enums import SessionKind
    return await _auth_headers(db_session, admin_user, SessionKind.ADMIN)


@pytest.fixture
async def product(db_session: AsyncSession):
    """Active product priced R$ 9.56 with no keys."""
    from services import catalog_service

    p = await catalog_service.create_product(
        db_session,
        name="Hollow Knight",
        image_url="https://cdn.example.com/hollow-knight.jpg",
        platform="Steam",
        region="Global",
        price=Decimal("9.56"),
        original_price=Decimal("14.99"),
        discount=36,
        category="Metroidvania",
    )
    await db_session.commit()
    return p


@pytest.fixture
async def second_product(db_session: AsyncSession):
    from services import catalog_service

    p = await catalog_service.create_product(
        db_session,
        name="Forza Horizon 5",
        image_url="https://cdn.example.com/forza5.jpg",
        platform="Xbox",
        region="Brazil",
        price=Decimal("49.90"),
        original_price=Decimal("99.90"),
        discount=50,
        category="Racing",
    )
    await db_session.commit()
    return p


@pytest.fixture
async def product_keys(db_session: AsyncSession, product):
    """Three unused keys for `product`."""
    from services import catalog_service

    keys = await catalog_service.add_product_keys_bulk(
        db_session, product.id, ["HK-AAAA-0001", "HK-BBBB-0002", "HK-CCCC-0003"]
    )
    await db_session.commit()
    return keys


@pytest.fixture
async def second_product_keys(db_session: AsyncSession, second_product):
    from services import catalog_service

    keys = await catalog_service.add_product_keys_bulk(
        db_session, second_product.id, ["FH5-XXXX-0001", "FH5-YYYY-0002"]
    )
    await db_session.commit()
    return keys
