"""Session client models."""
import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel


# Client store keys
TOKEN_KEY = "token"
REFRESH_TOKEN_KEY = "refreshToken"
USER_KEY = "user"
ACTIVE_ROLE_KEY = "activeRole"
WORKSPACE_ID_KEY = "workspaceId"

# Keys removed when the session is torn down after a failed refresh
SESSION_KEYS = (TOKEN_KEY, REFRESH_TOKEN_KEY, USER_KEY, ACTIVE_ROLE_KEY)
ALL_KEYS = SESSION_KEYS + (WORKSPACE_ID_KEY,)

REFRESH_PATH = "/auth/refresh-token"


class RefreshState(str, Enum):
    """Refresh coordination states."""

    IDLE = "idle"
    REFRESHING = "refreshing"

    def __str__(self) -> str:
        return self.value


class RequestDescriptor(BaseModel):
    """An outbound request, replayable after a token refresh."""

    method: str
    url: str
    headers: Dict[str, str] = {}
    params: Optional[Dict[str, Any]] = None
    json_body: Optional[Any] = None
    retried: bool = False
    refreshable: bool = True

    def with_token(self, token: str) -> "RequestDescriptor":
        """Copy of this request carrying a new bearer token, marked as retried."""
        headers = {**self.headers, "Authorization": f"Bearer {token}"}
        return self.model_copy(update={"headers": headers, "retried": True})

    def targets(self, path: str) -> bool:
        """Check whether the request URL points at the given API path."""
        return self.url.split("?", 1)[0].rstrip("/").endswith(path.rstrip("/"))


@dataclass
class PendingRequest:
    """A request that hit 401 while a refresh was in flight."""

    descriptor: RequestDescriptor
    future: "asyncio.Future[str]" = field(repr=False)
