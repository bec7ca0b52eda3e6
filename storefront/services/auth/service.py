"""Authentication service: creates and destroys the client session."""
import json
import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from storefront.core.exceptions import AuthorizationFailed, RoleNotGranted
from storefront.services.orders.status import Role
from storefront.services.session.client import SessionClient
from storefront.services.session.envelope import decode_envelope, encrypt_payload
from storefront.services.session.models import (
    ACTIVE_ROLE_KEY,
    ALL_KEYS,
    REFRESH_TOKEN_KEY,
    TOKEN_KEY,
    USER_KEY,
    WORKSPACE_ID_KEY,
    RequestDescriptor,
)

logger = logging.getLogger(__name__)


class AuthResult(BaseModel):
    """Outcome of a login or registration."""

    user: Dict[str, Any]
    token: str
    active_role: Optional[str] = None
    message: Optional[str] = None


def resolve_active_role(roles: List[str], stored: Optional[str] = None) -> Optional[str]:
    """Pick the role a user starts in: stored choice, then ADMIN, then CUSTOMER, then the first."""
    if stored:
        return stored
    if not roles:
        return None
    if Role.ADMIN.value in roles:
        return Role.ADMIN.value
    if Role.CUSTOMER.value in roles:
        return Role.CUSTOMER.value
    return roles[0]


def _roles(user: Dict[str, Any]) -> List[str]:
    roles = user.get("roles") or []
    if isinstance(roles, str):
        roles = [roles]
    return list(roles)


class AuthService:
    """Service wrapping the upstream auth endpoints."""

    def __init__(self, client: SessionClient):
        self.client = client
        self.store = client.store

    async def _start_session(self, payload: Any) -> AuthResult:
        envelope = decode_envelope(payload, self.client.cipher)
        data = envelope.data or {}
        token = data.get("token")
        refresh_token = data.get("refreshToken")
        user = data.get("user") or {}
        if not token:
            raise AuthorizationFailed("No token in authentication response")

        active_role = resolve_active_role(_roles(user))

        await self.store.set(TOKEN_KEY, token)
        if refresh_token:
            await self.store.set(REFRESH_TOKEN_KEY, refresh_token)
        await self.store.set(USER_KEY, json.dumps(user))
        if active_role:
            await self.store.set(ACTIVE_ROLE_KEY, active_role)
        if user.get("workspaceId") is not None:
            await self.store.set(WORKSPACE_ID_KEY, str(user["workspaceId"]))

        logger.info(f"[AUTH] Session started - active role: {active_role}")
        return AuthResult(
            user=user, token=token, active_role=active_role, message=envelope.message
        )

    async def login(self, email: str, password: str) -> AuthResult:
        """Sign in with encrypted credentials."""
        body = encrypt_payload({"email": email, "password": password}, self.client.cipher)
        response = await self.client.request(
            RequestDescriptor(
                method="POST",
                url="/auth/signin",
                json_body=body.to_wire(),
                refreshable=False,
            )
        )
        return await self._start_session(response.json())

    async def register(
        self,
        first_name: str,
        last_name: str,
        email: str,
        password: str,
        roles: List[str],
        phone: str,
    ) -> AuthResult:
        """Create an account and start its session."""
        body = encrypt_payload(
            {
                "firstName": first_name,
                "lastName": last_name,
                "email": email,
                "password": password,
                "roles": roles,
                "phone": phone,
            },
            self.client.cipher,
        )
        response = await self.client.request(
            RequestDescriptor(
                method="POST",
                url="/auth/signup",
                json_body=body.to_wire(),
                refreshable=False,
            )
        )
        return await self._start_session(response.json())

    async def logout(self) -> None:
        """Clear every stored session value."""
        await self.store.clear(ALL_KEYS)
        logger.info("[AUTH] Logged out")

    async def current_user(self) -> Dict[str, Any]:
        """Fetch the signed-in user."""
        try:
            response = await self.client.get("/auth/me")
        except AuthorizationFailed:
            await self.store.delete(TOKEN_KEY)
            raise
        data = decode_envelope(response.json(), self.client.cipher).data or {}
        return data.get("user", data)

    async def stored_user(self) -> Optional[Dict[str, Any]]:
        """User saved at login, if any."""
        raw = await self.store.get(USER_KEY)
        return json.loads(raw) if raw else None

    async def active_role(self) -> Optional[str]:
        """Role the user is currently acting as."""
        stored = await self.store.get(ACTIVE_ROLE_KEY)
        user = await self.stored_user()
        return resolve_active_role(_roles(user or {}), stored)

    async def switch_active_role(self, role: str) -> str:
        """Switch to another role the user holds."""
        try:
            role = Role(role).value
        except ValueError:
            raise RoleNotGranted(role)
        user = await self.stored_user()
        if not user or role not in _roles(user):
            raise RoleNotGranted(role)
        await self.store.set(ACTIVE_ROLE_KEY, role)
        logger.info(f"[AUTH] Active role switched to {role}")
        return role

    async def become_admin(self) -> Dict[str, Any]:
        """Upgrade the current user to admin."""
        response = await self.client.post("/users/become-admin")
        data = decode_envelope(response.json(), self.client.cipher).data or {}
        user = data.get("user", {})
        await self.store.set(USER_KEY, json.dumps(user))
        return user

    async def forgot_password(self, email: str) -> Optional[str]:
        """Request a password reset code."""
        response = await self.client.post("/auth/forgot-password", json_body={"email": email})
        return response.json().get("message")

    async def verify_otp(self, email: str, otp: str) -> str:
        """Exchange a one-time code for a reset token."""
        response = await self.client.post(
            "/auth/verify-otp", json_body={"email": email, "otp": otp}
        )
        return response.json()["data"]["resetToken"]

    async def reset_password(self, reset_token: str, password: str) -> Dict[str, Any]:
        """Set a new password using a reset token."""
        response = await self.client.post(
            "/auth/reset-password",
            json_body={"resetToken": reset_token, "newPassword": password},
        )
        return response.json()
