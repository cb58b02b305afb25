"""
FastAPI application entry point.
Sets up the API with lifespan events for the initial Drive authentication.
"""
import functools
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.responses import Response
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST

from gateway import __version__
from gateway.api.router import api_router
from gateway.config import Settings, settings as default_settings
from gateway.middleware.body_limit import BodyLimitMiddleware
from gateway.middleware.metrics_middleware import MetricsMiddleware
from gateway.services.dual_sink_writer import DualSinkWriter
from gateway.services.upload_service import UploadService
from gateway.storage.credential_store import Authenticator, CredentialStore
from gateway.storage.drive_client import authenticate
from gateway.utils.logging import configure_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup/shutdown events.
    - Startup: configure logging, authenticate against Drive (best effort)
    - Shutdown: nothing to release; uvicorn drains in-flight requests
    """
    settings: Settings = app.state.settings
    configure_logging('drive-gateway', settings.log_level)

    try:
        settings.data_folder.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        # Local writes will fail per field and be reported as such
        logger.error(f"Could not create data folder {settings.data_folder}: {e}")

    handle = await app.state.credential_store.refresh()
    if handle.usable:
        logger.info("Authentication successful!")
    else:
        logger.error(f"Authentication failed! {handle.error}")

    yield

    logger.info("Application shutdown complete")


def create_app(
    settings: Optional[Settings] = None,
    authenticator: Optional[Authenticator] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Configuration read once at startup (defaults to the environment)
        authenticator: Coroutine function minting a fresh remote client
            (defaults to the Drive service-account flow)
    """
    settings = settings or default_settings
    authenticator = authenticator or functools.partial(
        authenticate,
        settings.identity_file,
        timeout=settings.drive_timeout_seconds,
    )

    credential_store = CredentialStore(authenticator)
    writer = DualSinkWriter(
        data_folder=settings.data_folder,
        drive_id=settings.drive_id or "",
        parent_id=settings.parent_id or "",
        credential_store=credential_store,
        mime_type=settings.remote_mime_type,
    )

    app = FastAPI(
        title="Drive Upload Gateway",
        description="Receives multipart uploads and stores them locally and on Google Drive",
        version=__version__,
        lifespan=lifespan
    )
    app.state.settings = settings
    app.state.credential_store = credential_store
    app.state.upload_service = UploadService(settings.upload_token, writer)

    app.add_middleware(BodyLimitMiddleware, max_body_bytes=settings.max_body_bytes)

    # Metrics middleware (outermost, so rejected bodies are counted too)
    app.add_middleware(MetricsMiddleware)

    app.include_router(api_router)

    @app.get("/metrics")
    async def metrics():
        """Prometheus metrics endpoint."""
        return Response(
            content=generate_latest(),
            media_type=CONTENT_TYPE_LATEST
        )

    return app
