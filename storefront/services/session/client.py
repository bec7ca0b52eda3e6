"""Authenticated HTTP client with single-flight token refresh."""
import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, List, Optional, Union

import httpx

from storefront.core.exceptions import (
    AuthorizationExpired,
    AuthorizationFailed,
)
from storefront.services.session.crypto import PayloadCipher
from storefront.services.session.envelope import decode_envelope
from storefront.services.session.models import (
    REFRESH_PATH,
    REFRESH_TOKEN_KEY,
    SESSION_KEYS,
    TOKEN_KEY,
    PendingRequest,
    RefreshState,
    RequestDescriptor,
)
from storefront.services.session.store import TokenStore
from storefront.services.session.tokens import (
    has_expiry,
    is_token_expired,
    will_token_expire_soon,
)

logger = logging.getLogger(__name__)

SessionInvalidCallback = Callable[[AuthorizationFailed], Union[None, Awaitable[None]]]


class SessionClient:
    """
    Issues upstream requests with the stored bearer token.

    A 401 on a request that has not been retried triggers one refresh of the
    access token. While that refresh is in flight, every other request that
    fails with 401 is queued and replayed once the refresh settles. A failed
    refresh tears the session down and rejects the whole queue.

    on_session_invalid runs before the queue is rejected, so it must not send
    requests through this client.
    """

    def __init__(
        self,
        base_url: str,
        store: TokenStore,
        cipher: PayloadCipher,
        http_client: Optional[httpx.AsyncClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        on_session_invalid: Optional[SessionInvalidCallback] = None,
        timeout: float = 30.0,
        expiry_threshold_minutes: int = 5,
    ):
        self.base_url = base_url.rstrip("/")
        self.store = store
        self.cipher = cipher
        self.on_session_invalid = on_session_invalid
        self.expiry_threshold_minutes = expiry_threshold_minutes
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Content-Type": "application/json"},
            timeout=timeout,
            transport=transport,
        )
        self._is_refreshing = False
        self._pending: List[PendingRequest] = []
        self._in_flight = 0

    @property
    def state(self) -> RefreshState:
        """Current refresh coordination state."""
        return RefreshState.REFRESHING if self._is_refreshing else RefreshState.IDLE

    @property
    def pending_count(self) -> int:
        """Number of requests waiting on the in-flight refresh."""
        return len(self._pending)

    @property
    def in_flight(self) -> int:
        """Number of request() calls that have not returned yet."""
        return self._in_flight

    @property
    def is_closed(self) -> bool:
        return self._http.is_closed

    async def __aenter__(self) -> "SessionClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_http:
            await self._http.aclose()

    # --- Public request API ---

    async def request(self, descriptor: RequestDescriptor) -> httpx.Response:
        """
        Send a request, recovering once from an expired access token.

        Raises:
            ValueError: if the descriptor targets the refresh endpoint
            AuthorizationFailed: if the session could not be recovered
            httpx.HTTPStatusError: for any other error status
        """
        if descriptor.targets(REFRESH_PATH):
            raise ValueError("The refresh endpoint cannot be sent through request()")

        self._in_flight += 1
        try:
            return await self._dispatch(descriptor)
        except AuthorizationExpired:
            logger.info(
                f"[SESSION] 401 for {descriptor.method} {descriptor.url} - "
                f"state: {self.state}"
            )
            return await self._recover(descriptor)
        finally:
            self._in_flight -= 1

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request(RequestDescriptor(method="GET", url=url, **kwargs))

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request(RequestDescriptor(method="POST", url=url, **kwargs))

    async def put(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request(RequestDescriptor(method="PUT", url=url, **kwargs))

    async def patch(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request(RequestDescriptor(method="PATCH", url=url, **kwargs))

    async def delete(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request(RequestDescriptor(method="DELETE", url=url, **kwargs))

    async def ensure_fresh_token(self) -> Optional[str]:
        """
        Refresh ahead of time when the stored access token expires soon.

        Opaque tokens without an ``exp`` claim are left to the 401 path.
        Joins an in-flight refresh instead of starting a second one.

        Returns:
            The usable access token, or None when no session exists
        """
        token = await self.store.get(TOKEN_KEY)
        if not token:
            return None
        if not has_expiry(token) or not will_token_expire_soon(token, self.expiry_threshold_minutes):
            return token
        if self._is_refreshing:
            return await self._enqueue(RequestDescriptor(method="GET", url=REFRESH_PATH))
        reason = "expired" if is_token_expired(token) else "expires soon"
        logger.info(f"[REFRESH] Access token {reason}, refreshing proactively")
        return await self._coordinate_refresh()

    # --- Internals ---

    def _url(self, url: str) -> str:
        if url.startswith(("http://", "https://")):
            return url
        return f"{self.base_url}/{url.lstrip('/')}"

    async def _dispatch(self, descriptor: RequestDescriptor) -> httpx.Response:
        headers = dict(descriptor.headers)
        if "Authorization" not in headers:
            token = await self.store.get(TOKEN_KEY)
            if token:
                headers["Authorization"] = f"Bearer {token}"

        response = await self._http.request(
            descriptor.method,
            self._url(descriptor.url),
            headers=headers,
            params=descriptor.params,
            json=descriptor.json_body,
        )

        if response.status_code == 401 and descriptor.refreshable:
            if descriptor.retried:
                error = AuthorizationFailed(
                    f"Request {descriptor.method} {descriptor.url} still unauthorized after refresh",
                    response=response,
                )
                logger.warning(f"[SESSION] {error}")
                if self._is_refreshing:
                    await self._teardown(error)
                else:
                    self._is_refreshing = True
                    await self._fail_refresh(error)
                raise error
            raise AuthorizationExpired("Access token expired", response=response)

        response.raise_for_status()
        return response

    async def _recover(self, descriptor: RequestDescriptor) -> httpx.Response:
        if self._is_refreshing:
            token = await self._enqueue(descriptor)
        else:
            token = await self._coordinate_refresh()
        return await self._dispatch(descriptor.with_token(token))

    async def _enqueue(self, descriptor: RequestDescriptor) -> str:
        future: "asyncio.Future[str]" = asyncio.get_running_loop().create_future()
        self._pending.append(PendingRequest(descriptor=descriptor, future=future))
        logger.debug(
            f"[REFRESH] Queued {descriptor.method} {descriptor.url} - "
            f"{len(self._pending)} waiting"
        )
        return await future

    async def _coordinate_refresh(self) -> str:
        self._is_refreshing = True
        try:
            token = await self._refresh()
        except asyncio.CancelledError:
            self._settle(error=AuthorizationFailed("Token refresh cancelled"))
            raise
        except AuthorizationFailed as e:
            await self._fail_refresh(e)
            raise
        except Exception as e:
            error = AuthorizationFailed(
                f"Token refresh failed: {e}",
                response=getattr(e, "response", None),
            )
            await self._fail_refresh(error)
            raise error from e

        self._settle(token=token)
        return token

    async def _refresh(self) -> str:
        refresh_token = await self.store.get(REFRESH_TOKEN_KEY)
        if not refresh_token:
            raise AuthorizationFailed("No refresh token available")

        logger.info("[REFRESH] Requesting new access token")
        response = await self._http.post(
            self._url(REFRESH_PATH),
            json={"refreshToken": refresh_token},
        )
        response.raise_for_status()

        envelope = decode_envelope(response.json(), self.cipher)
        data = envelope.data if isinstance(envelope.data, dict) else {}
        new_token = data.get("token")
        new_refresh_token = data.get("refreshToken")
        if not new_token:
            raise AuthorizationFailed("No new token received", response=response)

        await self.store.set(TOKEN_KEY, new_token)
        if new_refresh_token:
            await self.store.set(REFRESH_TOKEN_KEY, new_refresh_token)
        logger.info("[REFRESH] Access token refreshed")
        return new_token

    def _settle(self, token: Optional[str] = None, error: Optional[Exception] = None) -> None:
        self._is_refreshing = False
        pending, self._pending = self._pending, []
        if pending:
            logger.info(
                f"[REFRESH] Releasing {len(pending)} queued request(s) - "
                f"{'rejected' if error else 'resolved'}"
            )
        for item in pending:
            if item.future.done():
                continue
            if error is not None:
                item.future.set_exception(error)
            else:
                item.future.set_result(token)

    async def _fail_refresh(self, error: AuthorizationFailed) -> None:
        # The guard stays up until the tokens are cleared so a 401 arriving
        # mid-teardown joins the queue instead of refreshing again.
        try:
            await self._teardown(error)
        finally:
            self._settle(error=error)

    async def _teardown(self, error: AuthorizationFailed) -> None:
        logger.warning(f"[SESSION] Session invalid, clearing stored tokens - {error}")
        await self.store.clear(SESSION_KEYS)
        if self.on_session_invalid is not None:
            result = self.on_session_invalid(error)
            if inspect.isawaitable(result):
                await result
