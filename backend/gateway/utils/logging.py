"""
Structured JSON logging for the upload gateway.

Provides event-specific logging functions with mandatory fields:
- timestamp (ISO8601)
- level
- service
- event

Optional fields (included when applicable):
- field_name
- requester
- duration_ms

Usage:
    from gateway.utils.logging import configure_logging, log_upload_outcome

    configure_logging('drive-gateway', 'INFO')
    log_upload_outcome(logger, field_name='report.txt', requester='10.0.0.7',
                       local_ok=True, remote_ok=True, bucket='success')
"""
import logging
import sys
from typing import Optional, Dict, Any
from pythonjsonlogger import jsonlogger

# Third-party loggers that log every connection or token exchange
NOISY_LOGGERS = (
    "httpx",
    "httpcore",
    "urllib3",
    "google.auth",
    "multipart",
    "python_multipart",
)


class StructuredLogger:
    """Structured JSON logger with mandatory fields."""

    _service_name = None
    _configured = False

    @classmethod
    def configure(cls, service_name: str, log_level: str = "INFO"):
        """
        Configure structured JSON logging for the application.

        Args:
            service_name: Service identifier
            log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        """
        if cls._configured:
            return  # Already configured

        cls._service_name = service_name

        # Remove default handlers
        root_logger = logging.getLogger()
        root_logger.handlers = []

        formatter = jsonlogger.JsonFormatter(
            '%(timestamp)s %(level)s %(name)s %(message)s',
            timestamp=True,
            json_ensure_ascii=False
        )

        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(formatter)

        root_logger.addHandler(handler)
        root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

        # Add service name to all log records via filter
        class ServiceFilter(logging.Filter):
            def filter(self, record):
                record.service = cls._service_name
                return True

        handler.addFilter(ServiceFilter())

        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

        cls._configured = True

    @classmethod
    def reset(cls):
        """Allow configure() to run again (used by tests)."""
        cls._configured = False
        cls._service_name = None


def _build_log_extra(
    event: str,
    field_name: Optional[str] = None,
    requester: Optional[str] = None,
    duration_ms: Optional[float] = None,
    **kwargs
) -> Dict[str, Any]:
    """
    Build extra fields for structured logging.

    Args:
        event: Event name (mandatory)
        field_name: Optional multipart field name
        requester: Optional client address
        duration_ms: Optional duration in milliseconds
        **kwargs: Additional fields

    Returns:
        Dictionary of extra fields
    """
    extra = {
        "event": event,
        **kwargs
    }

    if field_name is not None:
        extra["field_name"] = field_name
    if requester:
        extra["requester"] = requester
    if duration_ms is not None:
        extra["duration_ms"] = round(duration_ms, 2)

    return extra


# Upload event functions

def log_upload_outcome(
    logger: logging.Logger,
    field_name: str,
    requester: str,
    local_ok: bool,
    remote_ok: bool,
    bucket: str,
    **kwargs
):
    """
    Log the result of one field passing through both sinks.

    Successful uploads are logged at INFO, anything else at ERROR.
    """
    extra = _build_log_extra(
        event="upload_outcome",
        field_name=field_name,
        requester=requester,
        local_ok=local_ok,
        remote_ok=remote_ok,
        bucket=bucket,
        **kwargs
    )

    if local_ok and remote_ok:
        logger.info(f'Upload of "{field_name}" from {requester} succeeded', extra=extra)
    elif local_ok:
        logger.error(
            f'Upload of "{field_name}" from {requester} saved locally, Drive upload failed!',
            extra=extra
        )
    elif remote_ok:
        logger.error(
            f'Upload of "{field_name}" from {requester} saved to Drive, local write failed!',
            extra=extra
        )
    else:
        logger.error(
            f'Upload of "{field_name}" from {requester} failed completely!',
            extra=extra
        )


def log_upload_request(
    logger: logging.Logger,
    requester: str,
    fields: int,
    success: int,
    partial: int,
    total: int,
    message: str,
    **kwargs
):
    """Log the tally of one finished upload request."""
    extra = _build_log_extra(
        event="upload_request",
        requester=requester,
        fields=fields,
        success=success,
        partial=partial,
        total=total,
        **kwargs
    )
    logger.info(f"Processed {fields} field(s) from {requester}: {message}", extra=extra)


def log_sink_failure(
    logger: logging.Logger,
    sink: str,
    field_name: str,
    requester: str,
    error: str,
    **kwargs
):
    """
    Log a failed local or remote write.

    Args:
        logger: Logger instance
        sink: "local" or "remote"
        field_name: Field being written (required)
        requester: Client address (required)
        error: Error message (required)
        **kwargs: Additional fields
    """
    extra = _build_log_extra(
        event="sink_failure",
        field_name=field_name,
        requester=requester,
        sink=sink,
        error=str(error),
        **kwargs
    )
    logger.error(f'{sink.capitalize()} write of "{field_name}" from {requester} failed: {error}', extra=extra)


def log_field_parse_failed(
    logger: logging.Logger,
    requester: str,
    error: str,
    first_field: bool = False,
    **kwargs
):
    """Log a multipart field that could not be turned into an upload."""
    extra = _build_log_extra(
        event="field_parse_failed",
        requester=requester,
        error=str(error),
        first_field=first_field,
        **kwargs
    )
    logger.error(f"Error when parsing fields in request from {requester}: {error}", extra=extra)


def log_auth_failed(logger: logging.Logger, requester: str, **kwargs):
    """Log a request rejected for a wrong or missing token."""
    extra = _build_log_extra(event="auth_failed", requester=requester, **kwargs)
    logger.info(f"Failed authentication from {requester}", extra=extra)


# Credential event functions

def log_credential_refresh(
    logger: logging.Logger,
    success: bool,
    version: int,
    duration_ms: Optional[float] = None,
    error: Optional[str] = None,
    **kwargs
):
    """
    Log the outcome of one authentication round-trip.

    Args:
        logger: Logger instance
        success: Whether a new remote client was installed
        version: Version of the handle installed by this refresh
        duration_ms: Optional duration in milliseconds
        error: Error message when the refresh failed
        **kwargs: Additional fields
    """
    extra = _build_log_extra(
        event="credential_refresh",
        duration_ms=duration_ms,
        status="success" if success else "failed",
        version=version,
        **kwargs
    )
    if success:
        logger.info("Refreshing authentication successful!", extra=extra)
    else:
        extra["error"] = str(error)
        logger.error(f"Refreshing authentication failed! {error}", extra=extra)


# Convenience alias matching the worker/api entry points
def configure_logging(service_name: str, log_level: str = "INFO"):
    """Configure logging (alias for StructuredLogger.configure)."""
    StructuredLogger.configure(service_name, log_level)
