"""Main FastAPI application."""
from contextlib import asynccontextmanager

from fastapi import FastAPI

from storefront.api import auth, errors, health, orders
from storefront.core.dependencies import get_session_registry
from storefront.core.logging import setup_logging
from storefront.db.database import init_db


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    setup_logging()
    await init_db()
    yield
    # Shutdown
    await get_session_registry().close()


app = FastAPI(
    title="Storefront BFF",
    description="Session and order status gateway for the storefront frontend",
    version="0.1.0",
    lifespan=lifespan,
)

errors.register_exception_handlers(app)

app.include_router(health.router, tags=["health"])
app.include_router(auth.router, tags=["auth"])
app.include_router(orders.router, tags=["orders"])


if __name__ == "__main__":
    import uvicorn

    from storefront.core.config import settings

    uvicorn.run("storefront.main:app", host=settings.host, port=settings.port)
