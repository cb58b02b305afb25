"""
Google Drive v3 client used as the remote sink.

Authentication uses the service-account file through the Firebase Admin SDK
credential loader, scoped down to drive.file, and exchanges it for a bearer
token. A DriveClient is bound to exactly one token: when the token expires a
new client is minted with authenticate() rather than mutating this one.
"""
import asyncio
import json
import logging
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

import httpx
from firebase_admin import credentials
from google.auth import exceptions as google_auth_exceptions
from google.auth.transport import requests as google_auth_requests

logger = logging.getLogger(__name__)

DRIVE_SCOPE = "https://www.googleapis.com/auth/drive.file"
FILES_URL = "https://www.googleapis.com/drive/v3/files"
UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3/files"

# Treat a token as expired slightly before Google does
EXPIRY_MARGIN = timedelta(seconds=30)


class CredentialError(Exception):
    """The service credential could not be turned into a usable client."""


class DriveUploadError(Exception):
    """The remote upload call failed (transport or HTTP status)."""


def _utc(moment: datetime) -> datetime:
    # google-auth reports expiry as a naive UTC datetime
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def _escape_query_value(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


def _related_body(metadata: dict, content: bytes, mime_type: str) -> tuple[bytes, str]:
    """Build a multipart/related payload (metadata part + media part)."""
    boundary = f"gateway-{uuid.uuid4().hex}"
    head = (
        f"--{boundary}\r\n"
        "Content-Type: application/json; charset=UTF-8\r\n\r\n"
        f"{json.dumps(metadata)}\r\n"
        f"--{boundary}\r\n"
        f"Content-Type: {mime_type}\r\n\r\n"
    ).encode("utf-8")
    tail = f"\r\n--{boundary}--\r\n".encode("utf-8")
    return head + content + tail, f"multipart/related; boundary={boundary}"


class DriveClient:
    """
    Minimal Drive v3 client bound to one access token.

    Only the create-or-update upload used by the gateway is implemented.
    """

    def __init__(
        self,
        access_token: str,
        expires_at: Optional[datetime] = None,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._access_token = access_token
        self._expires_at = _utc(expires_at) if expires_at else None
        self._timeout = timeout
        self._transport = transport

    @property
    def expires_at(self) -> Optional[datetime]:
        return self._expires_at

    def is_expired(self) -> bool:
        """True once the bearer token is (about to be) rejected by Google."""
        if self._expires_at is None:
            return False
        return datetime.now(timezone.utc) >= self._expires_at - EXPIRY_MARGIN

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            headers={"Authorization": f"Bearer {self._access_token}"},
            timeout=self._timeout,
            transport=self._transport,
        )

    async def _find_existing(
        self,
        client: httpx.AsyncClient,
        drive_id: str,
        folder_id: str,
        name: str,
    ) -> Optional[str]:
        q = (
            f"name = '{_escape_query_value(name)}' "
            f"and '{_escape_query_value(folder_id)}' in parents "
            "and trashed = false"
        )
        response = await client.get(
            FILES_URL,
            params={
                "q": q,
                "corpora": "drive",
                "driveId": drive_id,
                "includeItemsFromAllDrives": "true",
                "supportsAllDrives": "true",
                "fields": "files(id,name)",
                "pageSize": 1,
            },
        )
        response.raise_for_status()
        files = response.json().get("files", [])
        return files[0]["id"] if files else None

    async def upload(
        self,
        drive_id: str,
        folder_id: str,
        name: str,
        mime_type: str,
        content: bytes,
    ) -> dict:
        """
        Create or update a file named *name* inside *folder_id*.

        Args:
            drive_id: Shared drive ID
            folder_id: Parent folder ID inside the drive
            name: File name in Drive
            mime_type: MIME type of the media part
            content: File bytes

        Returns:
            Drive file resource (id, name) returned by the API

        Raises:
            DriveUploadError: On any transport or HTTP error, or an unreadable reply
        """
        try:
            async with self._client() as client:
                file_id = await self._find_existing(client, drive_id, folder_id, name)

                if file_id:
                    body, content_type = _related_body(
                        {"name": name, "mimeType": mime_type}, content, mime_type
                    )
                    response = await client.patch(
                        f"{UPLOAD_URL}/{file_id}",
                        params={"uploadType": "multipart", "supportsAllDrives": "true"},
                        content=body,
                        headers={"Content-Type": content_type},
                    )
                else:
                    body, content_type = _related_body(
                        {"name": name, "mimeType": mime_type, "parents": [folder_id]},
                        content,
                        mime_type,
                    )
                    response = await client.post(
                        UPLOAD_URL,
                        params={"uploadType": "multipart", "supportsAllDrives": "true"},
                        content=body,
                        headers={"Content-Type": content_type},
                    )
                response.raise_for_status()

                logger.debug(f"Drive response: {response.status_code} for {name}")
                return response.json()

        except (httpx.HTTPError, ValueError, KeyError) as e:
            raise DriveUploadError(f"Unable to upload file to Google Drive: {e}") from e


async def authenticate(
    identity_file: Path,
    timeout: float = 60.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> DriveClient:
    """
    Run the full authentication flow and return a fresh DriveClient.

    1. Read the service-account credentials file
    2. Request an access token for the drive.file scope
    3. Construct a DriveClient bound to that token

    Raises:
        CredentialError: If the file cannot be read or no token is issued
    """
    try:
        certificate = credentials.Certificate(str(identity_file))
    except (OSError, ValueError) as e:
        raise CredentialError("Error reading credentials file") from e

    scoped = certificate.get_credential().with_scopes([DRIVE_SCOPE])

    try:
        # google-auth refresh is blocking
        await asyncio.to_thread(scoped.refresh, google_auth_requests.Request())
    except google_auth_exceptions.GoogleAuthError as e:
        raise CredentialError("Error acquiring token") from e

    return DriveClient(
        access_token=scoped.token,
        expires_at=scoped.expiry,
        timeout=timeout,
        transport=transport,
    )
