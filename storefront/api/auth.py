"""Authentication endpoints."""
import logging
import secrets
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request, Response
from pydantic import BaseModel

from storefront.core.dependencies import (
    SESSION_COOKIE_NAME,
    get_auth_service,
    get_session_id,
    get_session_registry,
)
from storefront.services.auth.service import AuthService
from storefront.services.session.registry import SessionRegistry

router = APIRouter()
logger = logging.getLogger(__name__)

SESSION_COOKIE_MAX_AGE = 60 * 60 * 24  # 24 hours


class LoginRequest(BaseModel):
    """Login request model."""
    email: str
    password: str


class RoleRequest(BaseModel):
    """Active role switch request."""
    role: str


class SessionInfo(BaseModel):
    """Session information response."""
    authenticated: bool
    active_role: Optional[str] = None
    user: Optional[Dict[str, Any]] = None


def create_session_id() -> str:
    """Generate a secure browser session id."""
    return secrets.token_urlsafe(32)


@router.post("/api/auth/login")
async def login(
    login_req: LoginRequest,
    request: Request,
    response: Response,
    registry: SessionRegistry = Depends(get_session_registry),
):
    """Sign in upstream and bind the tokens to a new browser session."""
    previous = get_session_id(request)
    if previous:
        await registry.discard(previous)

    session_id = create_session_id()
    auth_service = AuthService(registry.get_client(session_id))
    try:
        result = await auth_service.login(login_req.email, login_req.password)
    except Exception:
        await registry.discard(session_id)
        raise

    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=session_id,
        httponly=True,
        max_age=SESSION_COOKIE_MAX_AGE,
        samesite="lax",
    )
    logger.info(f"[AUTH] Login successful - active role: {result.active_role}")
    return {
        "success": True,
        "message": result.message or "Login successful",
        "user": result.user,
        "active_role": result.active_role,
    }


@router.post("/api/auth/logout")
async def logout(
    request: Request,
    response: Response,
    registry: SessionRegistry = Depends(get_session_registry),
):
    """Logout endpoint."""
    session_id = get_session_id(request)
    if session_id:
        client = await registry.find_client(session_id)
        if client is not None:
            await AuthService(client).logout()
        await registry.discard(session_id)

    response.delete_cookie(SESSION_COOKIE_NAME)
    return {"success": True, "message": "Logged out"}


@router.get("/api/auth/session")
async def get_session_info(
    request: Request,
    registry: SessionRegistry = Depends(get_session_registry),
) -> SessionInfo:
    """Get current session information."""
    session_id = get_session_id(request)
    if not session_id:
        return SessionInfo(authenticated=False)

    client = await registry.find_client(session_id)
    if client is None:
        return SessionInfo(authenticated=False)
    auth_service = AuthService(client)

    return SessionInfo(
        authenticated=True,
        active_role=await auth_service.active_role(),
        user=await auth_service.stored_user(),
    )


@router.post("/api/auth/role")
async def switch_role(
    role_req: RoleRequest,
    auth_service: AuthService = Depends(get_auth_service),
):
    """Switch the active role."""
    role = await auth_service.switch_active_role(role_req.role)
    return {"success": True, "active_role": role}
