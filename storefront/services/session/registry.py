"""Per-browser-session client registry."""
import logging
from typing import Callable, Dict, List, Optional

import httpx

from storefront.core.exceptions import AuthorizationFailed
from storefront.services.session.client import SessionClient
from storefront.services.session.crypto import PayloadCipher
from storefront.services.session.models import TOKEN_KEY, RefreshState
from storefront.services.session.store import TokenStore

logger = logging.getLogger(__name__)


class SessionRegistry:
    """
    Keeps one SessionClient per browser session so that concurrent requests
    from the same browser share a single refresh.
    """

    def __init__(
        self,
        base_url: str,
        cipher: PayloadCipher,
        store_factory: Callable[[str], TokenStore],
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 30.0,
        expiry_threshold_minutes: int = 5,
    ):
        self.base_url = base_url
        self.cipher = cipher
        self.store_factory = store_factory
        self.transport = transport
        self.timeout = timeout
        self.expiry_threshold_minutes = expiry_threshold_minutes
        self._clients: Dict[str, SessionClient] = {}
        # Invalidated clients may still be finishing a request; closed once idle
        self._retired: List[SessionClient] = []

    def get_client(self, session_id: str) -> SessionClient:
        """Get or create the client for a browser session."""
        client = self._clients.get(session_id)
        if client is None:
            client = self._create_client(session_id, self.store_factory(session_id))
        return client

    async def find_client(self, session_id: str) -> Optional[SessionClient]:
        """
        Get the client for a browser session that holds an access token.

        Unknown or signed-out session ids return None without registering a
        client, so arbitrary cookies cannot grow the registry.
        """
        await self.sweep()
        client = self._clients.get(session_id)
        store = client.store if client is not None else self.store_factory(session_id)
        if not await store.get(TOKEN_KEY):
            return None
        if client is None:
            client = self._create_client(session_id, store)
        return client

    def _create_client(self, session_id: str, store: TokenStore) -> SessionClient:
        client = SessionClient(
            base_url=self.base_url,
            store=store,
            cipher=self.cipher,
            transport=self.transport,
            on_session_invalid=self._invalidator(session_id),
            timeout=self.timeout,
            expiry_threshold_minutes=self.expiry_threshold_minutes,
        )
        self._clients[session_id] = client
        return client

    def _invalidator(self, session_id: str) -> Callable[[AuthorizationFailed], None]:
        def on_session_invalid(error: AuthorizationFailed) -> None:
            logger.warning(f"[SESSION] Browser session {session_id[:8]}... invalidated: {error}")
            client = self._clients.pop(session_id, None)
            if client is not None:
                self._retired.append(client)

        return on_session_invalid

    async def sweep(self) -> None:
        """Close invalidated clients that have no request left in flight."""
        retired, self._retired = self._retired, []
        closed = 0
        for client in retired:
            if client.in_flight or client.state == RefreshState.REFRESHING:
                self._retired.append(client)
            else:
                await client.aclose()
                closed += 1
        if closed:
            logger.debug(f"[SESSION] Closed {closed} retired client(s)")

    @property
    def retired_count(self) -> int:
        """Invalidated clients waiting to be closed."""
        return len(self._retired)

    async def discard(self, session_id: str) -> None:
        """Drop and close a browser session's client."""
        client = self._clients.pop(session_id, None)
        if client is not None:
            await client.aclose()
        await self.sweep()

    async def close(self) -> None:
        """Close every client."""
        for session_id in list(self._clients):
            await self.discard(session_id)
        retired, self._retired = self._retired, []
        for client in retired:
            await client.aclose()

    def __len__(self) -> int:
        return len(self._clients)
