"""
Dual-sink writer: one uploaded field goes to the local data folder and to
the remote Drive folder.

The two sinks are independent. A failed local write never blocks the remote
attempt, and neither failure is raised to the caller; both are reported as
booleans in the returned UploadOutcome.
"""
import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path

from gateway.services.field_extractor import UploadField
from gateway.storage.credential_store import CredentialStore, RemoteClient
from gateway.storage.drive_client import DriveUploadError
from gateway.utils.logging import log_sink_failure
from gateway.utils.metrics import local_write_failures_total, remote_upload_attempts_total

logger = logging.getLogger(__name__)

# Upload attempts per field, including the one after a credential refresh
MAX_REMOTE_ATTEMPTS = 2


@dataclass(frozen=True)
class UploadOutcome:
    """Per-field result of both sinks."""
    local_ok: bool
    remote_ok: bool


class DualSinkWriter:
    """Writes fields to disk and to the remote store."""

    def __init__(
        self,
        data_folder: Path,
        drive_id: str,
        parent_id: str,
        credential_store: CredentialStore,
        mime_type: str = "text/plain",
    ):
        self.data_folder = Path(data_folder)
        self.drive_id = drive_id
        self.parent_id = parent_id
        self.credential_store = credential_store
        self.mime_type = mime_type

    async def write(self, upload: UploadField, requester: str) -> UploadOutcome:
        """
        Write one field to both sinks.

        Args:
            upload: Validated field (name + bytes)
            requester: Client address, used for log context

        Returns:
            UploadOutcome with one flag per sink
        """
        local_ok = await self.write_local(upload, requester)
        remote_ok = await self.write_remote(upload, requester)
        return UploadOutcome(local_ok=local_ok, remote_ok=remote_ok)

    def _write_file(self, upload: UploadField) -> None:
        self.data_folder.mkdir(parents=True, exist_ok=True)
        with open(self.data_folder / upload.name, "wb") as fh:
            fh.write(upload.content)

    async def write_local(self, upload: UploadField, requester: str) -> bool:
        """Create the data folder if needed and (over)write the file."""
        try:
            await asyncio.to_thread(self._write_file, upload)
        except OSError as e:
            local_write_failures_total.inc()
            log_sink_failure(logger, "local", upload.name, requester, str(e))
            return False
        return True

    async def _upload(self, client: RemoteClient, upload: UploadField, requester: str) -> bool:
        try:
            await client.upload(
                self.drive_id,
                self.parent_id,
                upload.name,
                self.mime_type,
                upload.content,
            )
        except DriveUploadError as e:
            remote_upload_attempts_total.labels(result="failed").inc()
            log_sink_failure(logger, "remote", upload.name, requester, str(e))
            return False
        except Exception as e:
            # Any other failure of the remote capability only costs this attempt
            remote_upload_attempts_total.labels(result="failed").inc()
            log_sink_failure(logger, "remote", upload.name, requester, str(e))
            return False
        remote_upload_attempts_total.labels(result="success").inc()
        return True

    async def write_remote(self, upload: UploadField, requester: str) -> bool:
        """
        Upload to Drive with at most MAX_REMOTE_ATTEMPTS calls.

        Each iteration reads the shared handle. A usable, unexpired handle is
        used for one upload attempt; an expired handle or a failed attempt
        triggers a credential refresh before the next iteration. A handle in
        the error state fails the field at once, after one refresh so that
        later requests may recover.
        """
        for attempt in range(1, MAX_REMOTE_ATTEMPTS + 1):
            handle = await self.credential_store.read()

            if not handle.usable:
                log_sink_failure(
                    logger,
                    "remote",
                    upload.name,
                    requester,
                    f"Could not get value of client: {handle.error}",
                )
                await self.credential_store.refresh()
                return False

            if handle.client.is_expired():
                logger.info(
                    f"Credential v{handle.version} expired before uploading \"{upload.name}\" "
                    f"(attempt {attempt}/{MAX_REMOTE_ATTEMPTS})"
                )
            elif await self._upload(handle.client, upload, requester):
                return True

            await self.credential_store.refresh()

        return False
