"""
Request body size limit.

The declared Content-Length is checked by middleware before the route runs;
bodies without a usable Content-Length are capped while they are streamed.
"""
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import PlainTextResponse

from gateway.services.upload_service import BodyTooLargeError


class BodyLimitMiddleware(BaseHTTPMiddleware):
    """Reject requests whose declared body exceeds max_body_bytes."""
    
    def __init__(self, app, max_body_bytes: int):
        super().__init__(app)
        self.max_body_bytes = max_body_bytes
    
    async def dispatch(self, request: Request, call_next):
        declared = request.headers.get("content-length")
        if declared and declared.isdigit() and int(declared) > self.max_body_bytes:
            return PlainTextResponse(
                str(BodyTooLargeError(self.max_body_bytes)),
                status_code=413
            )
        return await call_next(request)


async def read_body_limited(request: Request, max_body_bytes: int) -> bytes:
    """
    Read the whole request body, refusing to buffer more than the limit.
    
    Raises:
        BodyTooLargeError: If the streamed body grows past max_body_bytes
    """
    chunks = []
    size = 0
    async for chunk in request.stream():
        size += len(chunk)
        if size > max_body_bytes:
            raise BodyTooLargeError(max_body_bytes)
        chunks.append(chunk)
    return b"".join(chunks)
