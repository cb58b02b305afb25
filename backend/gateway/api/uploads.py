"""
Upload endpoint.

POST /upload?token=<token> with a multipart/form-data body. Every part is
one file: the part's field name is the file name, its content the file
bytes. The response is plain text describing how many files reached both
sinks, one sink, or none.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import PlainTextResponse

from gateway.api.dependencies import get_settings, get_upload_service
from gateway.config import Settings
from gateway.middleware.body_limit import read_body_limited
from gateway.services.upload_service import UploadService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/upload", response_class=PlainTextResponse)
async def receive_file(
    request: Request,
    token: Optional[str] = Query(None, description="Upload token"),
    settings: Settings = Depends(get_settings),
    service: UploadService = Depends(get_upload_service),
):
    """
    Save every uploaded field locally and to Google Drive.
    
    Status codes:
    - 200: every field reached at least one sink
    - 400: missing/invalid Content-Type, boundary, or first field
    - 401: wrong or missing token
    - 413: body larger than the configured limit
    - 500: first field unparsable, or at least one field reached no sink
    """
    requester = request.client.host if request.client else "unknown"
    
    async def read_body() -> bytes:
        return await read_body_limited(request, settings.max_body_bytes)
    
    result = await service.handle(
        token=token,
        content_type=request.headers.get("content-type"),
        read_body=read_body,
        requester=requester,
    )
    return PlainTextResponse(result.message, status_code=result.status_code)
