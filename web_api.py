from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from deviceauth.api.http_setup import register_exception_handlers, register_http_middleware
from deviceauth.audit.router import create_audit_router
from deviceauth.audit.service import AuditLogger
from deviceauth.audit.worker import AuditWorker
from deviceauth.auth.challenges import ChallengeStore
from deviceauth.auth.diagnostics import create_diagnostics_router
from deviceauth.auth.repository import CredentialRepository
from deviceauth.auth.router import create_auth_router
from deviceauth.auth.service import AuthService
from deviceauth.auth.sessions import SessionRepository
from deviceauth.auth.signatures import SignatureVerifier
from deviceauth.auth.tokens import TokenIssuer
from deviceauth.core.config import AppConfig
from deviceauth.core.context import AppContext
from deviceauth.core.logging import setup_logging

load_dotenv()
APP_CONFIG = AppConfig.from_env()
setup_logging(APP_CONFIG.logging.level)
LOGGER = logging.getLogger(__name__)

APP_ROOT = Path(__file__).resolve().parent


def create_app(config: AppConfig = APP_CONFIG, *, app_root: Path = APP_ROOT) -> FastAPI:
    context = AppContext.build(config, app_root=app_root)
    audit_logger = AuditLogger(
        context.database,
        context.cipher,
        retention_days=config.audit.retention_days,
    )
    audit_worker = AuditWorker(audit_logger, max_size=config.audit.queue_max_size)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        await audit_worker.start()
        LOGGER.info("audit_worker_started", extra={"action": config.environment})
        try:
            yield
        finally:
            await audit_worker.stop()
            context.close()

    app = FastAPI(title="Device Auth API", version="1.0.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.security.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Admin-Token"],
    )
    register_http_middleware(app, config=config, logger=LOGGER)
    register_exception_handlers(app, logger=LOGGER)

    users = CredentialRepository(context.database)
    verifier = SignatureVerifier(
        allow_raw_message=config.challenge.allow_raw_message_signatures
    )
    auth_service = AuthService(
        challenges=ChallengeStore(context.database, ttl_seconds=config.challenge.ttl_seconds),
        users=users,
        verifier=verifier,
        tokens=TokenIssuer(config.auth, SessionRepository(context.database), users),
        audit=audit_worker,
    )

    app.include_router(create_auth_router(auth_service))
    app.include_router(create_audit_router(audit_logger, config.audit.admin_token))
    if not config.is_production:
        app.include_router(
            create_diagnostics_router(
                verifier, challenge_ttl_seconds=config.challenge.ttl_seconds
            )
        )

    return app


app = create_app()
