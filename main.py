"""
Team Registration Ledger - FastAPI Backend
Main application entry point
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from ledger.core.config import Settings
from ledger.core.db import atomic, build_engine, build_session_factory, init_db
from ledger.core.errors import LedgerError
from ledger.api import routes_admin, routes_archives, routes_payment, routes_public
from ledger.services.notifier import build_notifier
from ledger.services.settings_service import SettingsService
from ledger.services.sumup_client import build_gateway
from ledger.services.team_directory import TeamDirectory
from ledger.utils.responses import ledger_error_handler

logger = logging.getLogger(__name__)

def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the application around its own engine, session factory, gateway and notifier"""
    config = settings or Settings()

    # Configure logging
    logging.basicConfig(level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO))

    engine = build_engine(config.DATABASE_URL, config.SQLITE_BUSY_TIMEOUT)
    session_factory = build_session_factory(engine)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan management"""
        init_db(engine)
        db = session_factory()
        try:
            with atomic(db):
                added = SettingsService.seed_defaults(db)
                TeamDirectory.ensure_organisation_team(db, config.ORGANISATION_PASSWORD)
        finally:
            db.close()
        if added:
            logger.info(f"{added} default setting(s) seeded")
        yield
        if app.state.gateway is not None:
            app.state.gateway.close()
        if app.state.notifier is not None:
            app.state.notifier.close()
        engine.dispose()
        logger.info("Application shutdown")

    app = FastAPI(
        title="Team Registration Ledger",
        description="Team registration, payments, attendance and archives for a capacity-limited event",
        version="1.0.0",
        lifespan=lifespan
    )

    app.state.config = config
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.gateway = build_gateway(config)
    app.state.notifier = build_notifier(config)

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.ALLOW_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(LedgerError, ledger_error_handler)

    # Include routers
    app.include_router(routes_public.router, prefix="/api", tags=["public"])
    app.include_router(routes_payment.router, prefix="/api/payment", tags=["payment"])
    app.include_router(routes_admin.router, prefix="/api/admin", tags=["admin"])
    app.include_router(routes_archives.router, prefix="/api/admin", tags=["archives"])

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app

app = create_app()

# Note: Run this ASGI app directly with Uvicorn or Hypercorn. For Gunicorn,
# use `uvicorn.workers.UvicornWorker` instead of wrapping the app.

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="127.0.0.1",
        port=8000,
        reload=True
    )
