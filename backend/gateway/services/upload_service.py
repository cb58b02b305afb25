"""
Upload request orchestration.

One call to UploadService.handle() walks a request through
AuthCheck -> BoundaryDetect -> FirstField -> SubsequentFields -> Respond.
Request-level problems short-circuit with a 4xx before any sink I/O; field
and sink problems only affect the tally.
"""
import asyncio
import hmac
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from fastapi import status

from gateway.services.dual_sink_writer import DualSinkWriter
from gateway.services.field_extractor import (
    BoundaryError,
    FieldParseError,
    MultipartFieldReader,
    MultipartReadError,
    UploadField,
    extract_boundary,
    extract_field,
)
from gateway.services.result_aggregator import Tally, classify, render_tally
from gateway.utils.logging import (
    log_auth_failed,
    log_field_parse_failed,
    log_upload_outcome,
    log_upload_request,
)
from gateway.utils.metrics import upload_fields_total

logger = logging.getLogger(__name__)

BodyReader = Callable[[], Awaitable[bytes]]


class BodyTooLargeError(Exception):
    """The request body is larger than the configured limit."""

    def __init__(self, limit: int):
        super().__init__(f"Request body exceeds {limit} bytes")
        self.limit = limit


@dataclass(frozen=True)
class UploadResponse:
    """Plain-text response of the upload endpoint."""
    status_code: int
    message: str


class UploadService:
    """Runs one upload request end to end."""

    def __init__(self, expected_token: str, writer: DualSinkWriter):
        self._expected_token = expected_token
        self.writer = writer

    def is_authorized(self, token: Optional[str]) -> bool:
        # A missing token is compared as the literal "Null"
        candidate = token if token is not None else "Null"
        return hmac.compare_digest(
            candidate.encode("utf-8"), self._expected_token.encode("utf-8")
        )

    async def _process(self, upload: UploadField, tally: Tally, requester: str) -> None:
        outcome = await self.writer.write(upload, requester)
        bucket = classify(outcome)
        tally.record(bucket)
        upload_fields_total.labels(bucket=bucket.value).inc()
        log_upload_outcome(
            logger,
            field_name=upload.name,
            requester=requester,
            local_ok=outcome.local_ok,
            remote_ok=outcome.remote_ok,
            bucket=bucket.value,
        )

    async def handle(
        self,
        token: Optional[str],
        content_type: Optional[str],
        read_body: BodyReader,
        requester: str,
    ) -> UploadResponse:
        """
        Process one POST /upload request.

        Args:
            token: Value of the ?token= query parameter (None if absent)
            content_type: Raw Content-Type header (None if absent)
            read_body: Coroutine function returning the request body
            requester: Client address, for log context

        Returns:
            UploadResponse with the status code and message to send
        """
        if not self.is_authorized(token):
            log_auth_failed(logger, requester)
            return UploadResponse(status.HTTP_401_UNAUTHORIZED, "Authentication failed")

        try:
            boundary = extract_boundary(content_type)
        except BoundaryError as e:
            return UploadResponse(status.HTTP_400_BAD_REQUEST, str(e))

        try:
            body = await read_body()
        except BodyTooLargeError as e:
            return UploadResponse(status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, str(e))

        reader = await asyncio.to_thread(MultipartFieldReader, body, boundary)

        # The first field is mandatory
        try:
            part = reader.next_part()
        except MultipartReadError as e:
            log_field_parse_failed(logger, requester, str(e), first_field=True)
            return UploadResponse(status.HTTP_400_BAD_REQUEST, "Could not extract field in body")

        if part is None:
            return UploadResponse(status.HTTP_400_BAD_REQUEST, "Failed to read field")

        try:
            first = extract_field(part)
        except FieldParseError as e:
            log_field_parse_failed(logger, requester, str(e), first_field=True)
            return UploadResponse(
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                "Failed to parse fields, no files uploaded!"
            )

        tally = Tally()
        await self._process(first, tally, requester)

        while True:
            try:
                part = reader.next_part()
            except MultipartReadError as e:
                log_field_parse_failed(logger, requester, str(e))
                return UploadResponse(status.HTTP_400_BAD_REQUEST, "Could not extract field in body")

            if part is None:
                break

            try:
                upload = extract_field(part)
            except FieldParseError as e:
                log_field_parse_failed(logger, requester, str(e))
                continue

            await self._process(upload, tally, requester)

        code, message = render_tally(tally)
        log_upload_request(
            logger,
            requester=requester,
            fields=tally.fields,
            success=tally.success,
            partial=tally.partial,
            total=tally.total,
            message=message,
        )
        return UploadResponse(code, message)
