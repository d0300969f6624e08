"""
Workspace integrations service — application entry point.
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncEngine

from api.middleware import register_middleware
from auth.tokens import TokenVerifier
from config.settings import Settings, config
from connectors.encryption import TokenCipher
from connectors.orchestrator import IntegrationOrchestrator
from connectors.registry import build_registry
from connectors.routes import router as integrations_router
from connectors.state import StateCodec
from database.credential_store import (
    MEMORY_URL,
    CredentialStore,
    InMemoryCredentialStore,
    SqlCredentialStore,
)
from database.session import create_engine, create_session_factory, create_tables

logger = logging.getLogger(__name__)


def configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s  %(levelname)-8s  %(name)s — %(message)s",
        stream=sys.stdout,
    )
    for _noisy in ("httpcore", "httpx", "urllib3", "sqlalchemy.engine"):
        logging.getLogger(_noisy).setLevel(logging.WARNING)


def build_orchestrator(
    settings: Settings,
    store: CredentialStore,
) -> IntegrationOrchestrator:
    return IntegrationOrchestrator(
        registry=build_registry(settings),
        store=store,
        cipher=TokenCipher.from_config_key(settings.token_encryption_key),
        state_codec=StateCodec(
            settings.oauth_state_secret or None,
            ttl_seconds=settings.oauth_state_ttl,
        ),
        frontend_url=settings.frontend_url,
    )


def create_app(
    settings: Settings = config,
    *,
    orchestrator: Optional[IntegrationOrchestrator] = None,
    token_verifier: Optional[TokenVerifier] = None,
) -> FastAPI:
    """
    Build the FastAPI app.  Collaborators default to ones built from
    *settings*; tests pass their own.
    """
    engine: Optional[AsyncEngine] = None
    if orchestrator is None:
        if settings.database_url == MEMORY_URL:
            logger.warning("DATABASE_URL=memory://, credentials are not persisted")
            store: CredentialStore = InMemoryCredentialStore()
        else:
            engine = create_engine(settings.database_url)
            store = SqlCredentialStore(create_session_factory(engine))
        orchestrator = build_orchestrator(settings, store)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if engine is not None:
            await create_tables(engine)
        logger.info(
            "Integrations ready: %s",
            ", ".join(orchestrator.registry.list_registered()) or "(none configured)",
        )
        yield
        if engine is not None:
            await engine.dispose()

    app = FastAPI(
        title="Workspace Integrations",
        version="1.0.0",
        description="OAuth account linking and project discovery for GitHub, Notion and Slack.",
        lifespan=lifespan,
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_middleware(app)

    app.state.orchestrator = orchestrator
    app.state.token_verifier = token_verifier or TokenVerifier(
        settings.jwt_secret, expiry_seconds=settings.jwt_expiry_seconds
    )

    # Routes
    app.include_router(integrations_router, prefix=settings.integrations_prefix)

    return app


if __name__ == "__main__":
    configure_logging(config.debug)
    uvicorn.run(
        create_app(),
        host=config.host,
        port=config.port,
        log_level="debug" if config.debug else "info",
    )
