"""Opinion Market — FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from opinion_market.config import settings
from opinion_market.database import init_db
from opinion_market.errors import register_exception_handlers
from opinion_market.logging_config import setup_logging
from opinion_market.middleware.rate_limit import limiter
from opinion_market.routers import accounts, activity, admin, assets, bets, trades
from opinion_market.services.exchange import Exchange, build_exchange

logger = logging.getLogger(__name__)


def create_app(exchange: Optional[Exchange] = None) -> FastAPI:
    """Build the app around an exchange (the default one uses DATABASE_URL)."""
    own_database = exchange is None
    exchange = exchange or build_exchange()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if own_database:
            init_db()
        logger.info(f"Opinion market ready (database {settings.DATABASE_URL.split('://')[0]})")
        yield

    app = FastAPI(
        title="Opinion Market",
        description="Pricing and settlement engine for opinion shares and portfolio bets.",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.exchange = exchange

    # Rate limiting
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    register_exception_handlers(app)

    # CORS
    cors_origins = [o.strip() for o in settings.ALLOWED_ORIGINS.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    app.include_router(assets.router)
    app.include_router(accounts.router)
    app.include_router(trades.router)
    app.include_router(bets.router)
    app.include_router(activity.router)
    app.include_router(admin.router)

    @app.get("/api/health")
    def health():
        return {
            "status": "ok",
            "activity": exchange.activity.health_check().status,
        }

    return app


setup_logging()
app = create_app()
