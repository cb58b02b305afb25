"""
FastAPI dependencies.
Everything here is built once at startup and read from app.state.
"""
from fastapi import Request

from gateway.config import Settings
from gateway.services.upload_service import UploadService


def get_settings(request: Request) -> Settings:
    """Settings injected by create_app()."""
    return request.app.state.settings


def get_upload_service(request: Request) -> UploadService:
    """Upload orchestrator bound to the configured sinks."""
    return request.app.state.upload_service
