"""Shopping FastAPI application.

Serves the authoritative cart and wishlist of signed-in customers. Commands
are processed synchronously; each request runs inside the shopping domain
context.

Usage:
    uvicorn src.app:app --host 0.0.0.0 --port 8000 --reload
"""

import os
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from protean.integrations.fastapi import register_exception_handlers

from shopping.api import cart_router, wishlist_router
from shopping.domain import shopping
from storefront.utils.logging import configure_logging

logger = structlog.get_logger(__name__)

_DOMAIN_PREFIXES = ("/cart", "/wishlist")


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(log_dir=os.getenv("LOG_DIR", "logs"), log_file_prefix="shopping")
    # PROTEAN_ENV controls which config overlay is applied
    shopping.init()
    logger.info("Shopping domain initialized", domain=shopping.name)
    yield


def create_app(lifespan=lifespan) -> FastAPI:
    """Build the application. Tests pass ``lifespan=None`` when the domain is already initialized."""
    app = FastAPI(
        title="Shopping API",
        description="Authoritative cart and wishlist store with guest merge",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def domain_context_middleware(request: Request, call_next):
        """Push the shopping domain context for cart and wishlist requests."""
        if request.url.path.startswith(_DOMAIN_PREFIXES):
            with shopping.domain_context():
                return await call_next(request)
        # Health check, docs, etc.
        return await call_next(request)

    app.include_router(cart_router)
    app.include_router(wishlist_router)
    register_exception_handlers(app)

    @app.get("/health")
    async def health():
        return JSONResponse(content={"status": "ok", "domains": {"shopping": {"name": shopping.name}}})

    return app


app = create_app()
