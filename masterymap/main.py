# =============================================================================================
# MASTERYMAP/MAIN.PY - FASTAPI APPLICATION FACTORY
# =============================================================================================
# Entry point of the MasteryMap auth core.
#
# ARCHITECTURE:
# - Relational store (SQLAlchemy): users + auth_tokens (refresh-token ledger)
# - JWT: access tokens (minutes) and refresh tokens (days), separate secrets
# - Cookies: the only transport for tokens
#
# FLOW:
# 1. User registers or logs in → access + refresh cookies set
# 2. Every protected request → access cookie verified, identity loaded
# 3. Access token expires → POST /auth/refresh rotates the pair
# 4. Logout → refresh token deleted from the ledger, cookies cleared
#
# RUN:
#   uvicorn masterymap.main:create_app --factory --reload
#
# No application is built at import time; importing this module has no side
# effects (no logging setup, no engine).
# =============================================================================================

import logging

from fastapi import FastAPI

from masterymap.core.config import Settings, get_settings
from masterymap.core.db import create_db_engine, init_db, make_session_factory
from masterymap.core.errors import register_exception_handlers
from masterymap.core.security import PasswordHasher, TokenService
from masterymap.routers import auth

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    """
    Build an application around one Settings object.

    Everything that depends on configuration (engine, token service, password
    hasher) is created here and stored on app.state; request dependencies
    read it from there. Tests call create_app(Settings(...)) with their own
    secrets and an in-memory database.
    """
    settings = settings or get_settings()

    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # basicConfig is a no-op once the root logger has handlers
    logging.getLogger("masterymap").setLevel(settings.LOG_LEVEL.upper())

    app = FastAPI(
        title="MasteryMap Auth",
        description="Credential issuance, rotating refresh tokens and role-based access",
        version="1.0.0",
    )

    engine = create_db_engine(settings.DATABASE_URL)
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = make_session_factory(engine)
    app.state.token_service = TokenService(settings)
    app.state.password_hasher = PasswordHasher.from_settings(settings)

    @app.on_event("startup")
    def on_startup():
        """Create users / auth_tokens tables if missing (use migrations in production)."""
        init_db(engine)
        logger.info("MasteryMap auth started (environment=%s)", settings.ENVIRONMENT)

    register_exception_handlers(app)
    app.include_router(auth.router)

    return app

