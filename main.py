# main.py
import os
import logging
import time
from typing import Optional

if os.getenv("DEBUGPY", "0") == "1":
    import debugpy
    debugpy.listen(("0.0.0.0", 5678))

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded
from sqlalchemy.orm import sessionmaker

from config.logging_config import configure_logging
from config.settings import Settings, load_settings
from database import Base, create_db_engine, create_session_factory
from middleware.rate_limit import configure_rate_limit, limiter, rate_limit_exceeded_handler
from middleware.request_logging import RequestLoggingMiddleware
from routers.auth_routes import router as auth_router
from routers.errors import register_exception_handlers
from routers.plaid_routes import router as plaid_router
from routers.system_routes import router as system_router
from services.plaid.plaid_client import PlaidProviderClient
from services.plaid.plaid_config import build_plaid_api

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    provider_client: Optional[PlaidProviderClient] = None,
    session_factory: Optional[sessionmaker] = None,
) -> FastAPI:
    # Missing required configuration is fatal here, before anything is served
    settings = settings or load_settings()

    if session_factory is None:
        engine = create_db_engine(settings.database_url)
        import models  # noqa: F401  registers every table on Base.metadata
        Base.metadata.create_all(bind=engine)
        session_factory = create_session_factory(engine)

    if provider_client is None:
        provider_client = PlaidProviderClient(
            build_plaid_api(settings),
            country_codes=settings.plaid_country_codes,
            default_redirect_uri=settings.plaid_redirect_uri,
        )

    app = FastAPI(title="TradeLog Gateway")
    app.state.settings = settings
    app.state.session_factory = session_factory
    app.state.provider_client = provider_client
    app.state.started_at = time.monotonic()

    configure_rate_limit(settings)
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    register_exception_handlers(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.allowed_origins),
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    # Include routers
    app.include_router(system_router)
    app.include_router(auth_router)
    app.include_router(plaid_router)

    logger.info(
        "TradeLog gateway configured: env=%s plaid_env=%s origins=%d",
        settings.app_env, settings.plaid_env, len(settings.allowed_origins),
    )
    return app


def build_app() -> FastAPI:
    configure_logging()
    return create_app()


# uvicorn main:build_app --factory
