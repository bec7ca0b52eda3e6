"""Exception handlers mapping client errors onto HTTP responses."""
import logging

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from storefront.core.config import settings
from storefront.core.exceptions import (
    AuthorizationFailed,
    EnvelopeError,
    InvalidTransition,
    OrderTransitionError,
    RoleNotGranted,
)

logger = logging.getLogger(__name__)


async def authorization_failed_handler(request: Request, exc: AuthorizationFailed) -> JSONResponse:
    """Session is gone: tell the frontend to go to the login view."""
    logger.warning(f"[SESSION] {request.method} {request.url.path} - {exc}")
    return JSONResponse(
        status_code=401,
        content={"detail": str(exc), "redirect": settings.login_path},
    )


async def order_transition_handler(request: Request, exc: OrderTransitionError) -> JSONResponse:
    status_code = 422 if isinstance(exc, InvalidTransition) else 409
    return JSONResponse(
        status_code=status_code,
        content={
            "detail": str(exc),
            "error": type(exc).__name__,
            "order_id": exc.order_id,
            "current": exc.current,
            "target": exc.target,
        },
    )


async def role_not_granted_handler(request: Request, exc: RoleNotGranted) -> JSONResponse:
    return JSONResponse(status_code=403, content={"detail": str(exc)})


async def envelope_error_handler(request: Request, exc: EnvelopeError) -> JSONResponse:
    logger.error(f"[SESSION] Undecodable upstream payload - {exc}")
    return JSONResponse(status_code=502, content={"detail": str(exc)})


async def upstream_status_handler(request: Request, exc: httpx.HTTPStatusError) -> JSONResponse:
    """Pass upstream error statuses through unchanged."""
    response = exc.response
    detail = response.text
    try:
        body = response.json()
        if isinstance(body, dict):
            detail = body.get("message") or body.get("detail") or detail
    except ValueError:
        pass
    logger.info(
        f"[UPSTREAM] {exc.request.method} {exc.request.url} - {response.status_code}"
    )
    return JSONResponse(status_code=response.status_code, content={"detail": detail})


async def upstream_unreachable_handler(request: Request, exc: httpx.RequestError) -> JSONResponse:
    logger.error(f"[UPSTREAM] Request error - {type(exc).__name__}: {exc}")
    return JSONResponse(
        status_code=503,
        content={"detail": f"Could not connect to storefront API: {exc}"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Install the handlers on an application."""
    app.add_exception_handler(AuthorizationFailed, authorization_failed_handler)
    app.add_exception_handler(OrderTransitionError, order_transition_handler)
    app.add_exception_handler(RoleNotGranted, role_not_granted_handler)
    app.add_exception_handler(EnvelopeError, envelope_error_handler)
    app.add_exception_handler(httpx.HTTPStatusError, upstream_status_handler)
    app.add_exception_handler(httpx.RequestError, upstream_unreachable_handler)
