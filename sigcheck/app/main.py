"""
FastAPI entrypoint for the signature check service.

Accepts base64-encoded word-processing packages and reports which
signature lines embedded in the document body have been satisfied by an
attached digital signature.

The application is stateless: every request opens, inspects and discards
its own package. Correlation is textual only and never a statement about
cryptographic validity.
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from importlib.metadata import PackageNotFoundError, version
from typing import Optional

from fastapi import FastAPI
from fastapi.responses import ORJSONResponse

from sigcheck.app.api.routes import router as check_router
from sigcheck.app.config import Settings, get_settings
from sigcheck.app.coordinator.coordinator import SignatureCheckCoordinator
from sigcheck.app.events import LoggingEventEmitter

logger = logging.getLogger("sigcheck.main")


def get_app_version() -> str:
    """
    Resolve application version deterministically.

    Falls back to the source version when the distribution is not installed.
    """
    try:
        return version("docx-sigcheck")
    except PackageNotFoundError:
        return "0.3.0"


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Application factory.

    settings may be injected by tests; otherwise configuration is loaded
    from the environment at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Guarantees:
        - Fail-fast startup if configuration is invalid
        - Configuration is loaded once and immutable for the process lifetime
        """
        try:
            resolved = settings if settings is not None else get_settings()
        except Exception:
            logger.exception("invalid_sigcheck_configuration")
            raise

        logging.getLogger("sigcheck").setLevel(resolved.log_level)

        app.state.settings = resolved
        app.state.coordinator = SignatureCheckCoordinator.from_settings(resolved)
        app.state.event_emitter = LoggingEventEmitter()

        logger.info(
            "sigcheck_startup_complete",
            extra={
                "service": "sigcheck",
                "version": get_app_version(),
                "tolerate_malformed_signature_parts": (
                    resolved.tolerate_malformed_signature_parts
                ),
            },
        )

        try:
            yield
        finally:
            logger.info("sigcheck_shutdown")

    app = FastAPI(
        title="Signature Check Service",
        description=(
            "Correlates signature lines in .docx documents with the "
            "digital signatures attached to the package"
        ),
        version=get_app_version(),
        redoc_url=None,
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )

    app.include_router(check_router)

    @app.get(
        "/health",
        tags=["Monitoring"],
        summary="Service health check",
    )
    async def health_check() -> ORJSONResponse:
        """Liveness probe. Performs no document processing."""
        return ORJSONResponse(
            content={
                "status": "ok",
                "service": "sigcheck",
                "version": app.version,
                "runtime": f"python {sys.version.split()[0]}",
            }
        )

    return app


app = create_app()
