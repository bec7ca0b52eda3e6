"""FastAPI dependencies."""
from typing import Optional

from fastapi import Depends, HTTPException, Request

from storefront.core.config import settings
from storefront.db.database import AsyncSessionLocal
from storefront.services.auth.service import AuthService
from storefront.services.orders.machine import OrderStatusMachine
from storefront.services.orders.service import OrderService
from storefront.services.session.client import SessionClient
from storefront.services.session.crypto import PayloadCipher
from storefront.services.session.registry import SessionRegistry
from storefront.services.session.sql_store import SqlTokenStore

SESSION_COOKIE_NAME = "session_id"

_registry: Optional[SessionRegistry] = None


def get_session_registry() -> SessionRegistry:
    """Get the process-wide session registry."""
    global _registry
    if _registry is None:
        _registry = SessionRegistry(
            base_url=settings.api_base_url,
            cipher=PayloadCipher(settings.encryption_key),
            store_factory=lambda session_id: SqlTokenStore(AsyncSessionLocal, session_id),
            timeout=settings.request_timeout,
            expiry_threshold_minutes=settings.token_expiry_threshold_minutes,
        )
    return _registry


def get_session_id(request: Request) -> Optional[str]:
    """Extract the browser session id from its cookie."""
    return request.cookies.get(SESSION_COOKIE_NAME)


async def require_session_client(
    request: Request,
    registry: SessionRegistry = Depends(get_session_registry),
) -> SessionClient:
    """
    Dependency to require a signed-in browser session.

    Refreshes the access token ahead of time when it is about to expire.
    """
    session_id = get_session_id(request)
    client = await registry.find_client(session_id) if session_id else None
    if client is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    await client.ensure_fresh_token()
    return client


def get_auth_service(client: SessionClient = Depends(require_session_client)) -> AuthService:
    """Get auth service for the current session."""
    return AuthService(client)


def get_order_service(client: SessionClient = Depends(require_session_client)) -> OrderService:
    """Get order service for the current session."""
    machine = OrderStatusMachine(
        client, cancellation_window_hours=settings.cancellation_window_hours
    )
    return OrderService(client, machine)
