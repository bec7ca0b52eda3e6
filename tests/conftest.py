"""Shared test fixtures and configuration."""
import asyncio
import json
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional
from unittest.mock import Mock

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

# Set test environment variables before importing app
os.environ.setdefault("API_BASE_URL", "https://api.test/api/v1")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENCRYPTION_KEY", "12345678901234567890123456789012")

from storefront.main import app
from storefront.core.dependencies import get_session_registry
from storefront.db.models import Base
from storefront.services.session.client import SessionClient
from storefront.services.session.crypto import PayloadCipher
from storefront.services.session.models import REFRESH_TOKEN_KEY, TOKEN_KEY
from storefront.services.session.registry import SessionRegistry
from storefront.services.session.store import InMemoryTokenStore


BASE_URL = "https://api.test/api/v1"
TEST_ENCRYPTION_KEY = "12345678901234567890123456789012"
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


async def wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    """Yield to the event loop until ``predicate`` holds."""
    async def _poll():
        while not predicate():
            await asyncio.sleep(0)

    await asyncio.wait_for(_poll(), timeout)


def _iso(dt: datetime) -> str:
    return dt.isoformat().replace("+00:00", "Z")


class FakeUpstream:
    """Scriptable stand-in for the storefront REST API."""

    def __init__(self, cipher: PayloadCipher):
        self.cipher = cipher
        self.valid_tokens = {"access-1"}
        self.refresh_token = "refresh-1"
        self.signin_token = "access-1"
        self.issued_token = "access-2"
        self.issued_refresh_token = "refresh-2"
        self.encrypt_responses = True
        self.refresh_gate: Optional[asyncio.Event] = None
        self.refresh_status = 200
        self.refresh_payload: Optional[Dict[str, Any]] = None
        self.always_unauthorized: set = set()
        self.path_gates: Dict[str, asyncio.Event] = {}
        self.refresh_calls = 0
        self.events: List[str] = []
        self.requests: List[httpx.Request] = []

        now = datetime.now(timezone.utc)
        self.users = {
            "customer@example.com": {
                "password": "secret",
                "user": {"id": "u-1", "firstName": "Cara", "roles": ["CUSTOMER"]},
            },
            "staff@example.com": {
                "password": "secret",
                "user": {"id": "u-2", "firstName": "Sam", "roles": ["STAFF"], "workspaceId": 7},
            },
            "manager@example.com": {
                "password": "secret",
                "user": {"id": "u-3", "firstName": "Mo", "roles": ["MANAGER", "STAFF"], "workspaceId": 7},
            },
        }
        self.orders: Dict[str, Dict[str, Any]] = {
            "o-pending": {
                "id": "o-pending", "status": "PENDING", "paymentStatus": "PENDING",
                "userId": "u-1", "workspaceId": 7, "createdAt": _iso(now - timedelta(hours=1)),
            },
            "o-old": {
                "id": "o-old", "status": "PENDING", "paymentStatus": "PAID",
                "userId": "u-1", "workspaceId": 7, "createdAt": _iso(now - timedelta(hours=9)),
            },
            "o-shipped": {
                "id": "o-shipped", "status": "SHIPPED", "paymentStatus": "PAID",
                "userId": "u-1", "workspaceId": 7, "createdAt": _iso(now - timedelta(hours=2)),
            },
            "o-delivered": {
                "id": "o-delivered", "status": "DELIVERED", "paymentStatus": "PAID",
                "userId": "u-1", "workspaceId": 7, "createdAt": _iso(now - timedelta(hours=3)),
            },
        }

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def calls_to(self, path: str, token: Optional[str] = None) -> List[httpx.Request]:
        """Requests made to a path, optionally filtered by bearer token."""
        matched = [r for r in self.requests if r.url.path == f"/api/v1{path}"]
        if token is not None:
            matched = [r for r in matched if r.headers.get("Authorization") == f"Bearer {token}"]
        return matched

    def _reply(self, payload: Any, status_code: int = 200) -> httpx.Response:
        if self.encrypt_responses and isinstance(payload, dict):
            payload = self.cipher.encrypt(payload)
        return httpx.Response(status_code, json=payload)

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.removeprefix("/api/v1")
        method = request.method

        if path == "/auth/refresh-token":
            return await self._refresh(request)
        if path == "/auth/signin":
            return self._signin(request)
        if path == "/auth/signup":
            return self._signup(request)
        if path.startswith(("/auth/forgot-password", "/auth/verify-otp", "/auth/reset-password")):
            return self._password_reset(path, json.loads(request.content))

        if path in self.path_gates:
            await self.path_gates[path].wait()
        token = request.headers.get("Authorization", "").removeprefix("Bearer ")
        if token not in self.valid_tokens or path in self.always_unauthorized:
            self.events.append(f"401 {method} {path}")
            return httpx.Response(401, json={"message": "Unauthorized"})
        self.events.append(f"{method} {path} {token}")

        return self._route(method, path, request)

    async def _refresh(self, request: httpx.Request) -> httpx.Response:
        self.refresh_calls += 1
        self.events.append("refresh-start")
        if self.refresh_gate is not None:
            await self.refresh_gate.wait()
        self.events.append("refresh-done")

        if self.refresh_status != 200:
            return httpx.Response(self.refresh_status, json={"message": "Refresh failed"})
        body = json.loads(request.content)
        if body.get("refreshToken") != self.refresh_token:
            return httpx.Response(401, json={"message": "Invalid refresh token"})
        if self.refresh_payload is not None:
            return self._reply(self.refresh_payload)

        self.valid_tokens.add(self.issued_token)
        self.refresh_token = self.issued_refresh_token
        return self._reply({
            "data": {"token": self.issued_token, "refreshToken": self.issued_refresh_token},
            "message": "Token refreshed",
        })

    def _credentials(self, request: httpx.Request) -> Dict[str, Any]:
        body = json.loads(request.content)
        return self.cipher.decrypt(body["iv"], body["encryptedData"])

    def _signin(self, request: httpx.Request) -> httpx.Response:
        credentials = self._credentials(request)
        account = self.users.get(credentials.get("email"))
        if not account or account["password"] != credentials.get("password"):
            return httpx.Response(401, json={"message": "Invalid credentials"})
        return self._reply({
            "data": {"token": self.signin_token, "refreshToken": "refresh-1", "user": account["user"]},
            "message": "Login successful",
        })

    def _signup(self, request: httpx.Request) -> httpx.Response:
        details = self._credentials(request)
        user = {"id": "u-new", "firstName": details["firstName"], "roles": details["roles"]}
        return self._reply({
            "userData": {"token": "access-1", "refreshToken": "refresh-1", "user": user},
            "message": "Registered",
        })

    def _password_reset(self, path: str, body: Dict[str, Any]) -> httpx.Response:
        if path == "/auth/forgot-password":
            return httpx.Response(200, json={"message": f"OTP sent to {body['email']}"})
        if path == "/auth/verify-otp":
            if body.get("otp") != "123456":
                return httpx.Response(400, json={"message": "Invalid OTP"})
            return httpx.Response(200, json={"data": {"resetToken": "reset-1"}})
        if body.get("resetToken") != "reset-1":
            return httpx.Response(400, json={"message": "Invalid reset token"})
        return httpx.Response(200, json={"success": True, "message": "Password updated"})

    def _route(self, method: str, path: str, request: httpx.Request) -> httpx.Response:
        parts = path.strip("/").split("/")

        if method == "GET" and path == "/ping":
            return httpx.Response(200, json={"ok": True})
        if method == "GET" and path == "/auth/me":
            return httpx.Response(200, json={"user": self.users["customer@example.com"]["user"]})
        if method == "POST" and path == "/users/become-admin":
            user = {**self.users["customer@example.com"]["user"], "roles": ["CUSTOMER", "ADMIN"]}
            return self._reply({"data": {"user": user}})
        if method == "GET" and path == "/orders/payment-success":
            return httpx.Response(200, json={"success": True, "sessionId": request.url.params["session_id"]})
        if method == "GET" and parts[:2] == ["orders", "users"]:
            return httpx.Response(200, json=[o for o in self.orders.values() if o["userId"] == parts[2]])
        if method == "POST" and path.endswith("/assign-order"):
            body = json.loads(request.content)
            self.orders[body["orderId"]]["assignedStaffId"] = body["userId"]
            return httpx.Response(200, json={"data": self.orders[body["orderId"]], "message": "Assigned"})
        if method == "GET" and len(parts) == 2 and parts[0] == "orders":
            if parts[1] not in self.orders:
                return httpx.Response(404, json={"message": "Order not found"})
            return httpx.Response(200, json={"data": self.orders[parts[1]]})
        if method == "POST" and len(parts) == 3 and parts[2] == "cancel":
            return self._set_status(parts[1], "CANCELLED")
        if method == "PATCH" and parts[-1] == "status":
            body = json.loads(request.content)
            return self._set_status(parts[-2], body["status"])

        return httpx.Response(404, json={"message": f"No route for {method} {path}"})

    def _set_status(self, order_id: str, status: str) -> httpx.Response:
        order = self.orders[order_id]
        order["status"] = status
        return httpx.Response(200, json={"data": dict(order), "message": f"Order status updated to {status}"})


@pytest.fixture
def cipher():
    """Payload cipher with the shared test key."""
    return PayloadCipher(TEST_ENCRYPTION_KEY)


@pytest.fixture
def upstream(cipher):
    """Fake storefront API."""
    return FakeUpstream(cipher)


@pytest.fixture
def token_store():
    """Store holding an expired access token and a valid refresh token."""
    return InMemoryTokenStore({TOKEN_KEY: "stale-token", REFRESH_TOKEN_KEY: "refresh-1"})


@pytest.fixture
def session_invalid_callback():
    """Records session invalidation signals."""
    return Mock(return_value=None)


@pytest.fixture
async def session_client(upstream, token_store, cipher, session_invalid_callback):
    """Session client wired to the fake upstream."""
    http_client = httpx.AsyncClient(transport=upstream.transport())
    client = SessionClient(
        base_url=BASE_URL,
        store=token_store,
        cipher=cipher,
        http_client=http_client,
        on_session_invalid=session_invalid_callback,
    )
    yield client
    await http_client.aclose()


@pytest.fixture
async def test_db_engine():
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def test_session_factory(test_db_engine):
    """Session factory bound to the test database."""
    return async_sessionmaker(
        test_db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture
def test_registry(upstream, cipher):
    """Session registry talking to the fake upstream with in-memory stores."""
    return SessionRegistry(
        base_url=BASE_URL,
        cipher=cipher,
        store_factory=lambda session_id: InMemoryTokenStore(),
        transport=upstream.transport(),
    )


@pytest.fixture
def test_client(test_registry):
    """Create FastAPI test client with overrides."""
    app.dependency_overrides[get_session_registry] = lambda: test_registry

    client = TestClient(app)

    yield client

    # Clear overrides
    app.dependency_overrides.clear()


def login_as(client: TestClient, email: str) -> TestClient:
    """Log a test client in as one of the fake upstream's users."""
    response = client.post("/api/auth/login", json={"email": email, "password": "secret"})
    assert response.status_code == 200
    return client


@pytest.fixture
def customer_client(test_client):
    """Test client signed in as a customer."""
    return login_as(test_client, "customer@example.com")


@pytest.fixture
def staff_client(test_client):
    """Test client signed in as staff."""
    return login_as(test_client, "staff@example.com")
