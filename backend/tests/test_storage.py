"""
Tests for the credential store and the Drive client.
"""
import asyncio
import json
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import httpx
import pytest
from google.auth.exceptions import RefreshError

from gateway.storage.credential_store import CredentialHandle, CredentialStore
from gateway.storage.drive_client import (
    FILES_URL,
    UPLOAD_URL,
    CredentialError,
    DriveClient,
    DriveUploadError,
    authenticate,
)
from tests.fakes import TEST_DRIVE_ID, TEST_PARENT_ID, FakeAuthenticator


class GatedAuthenticator:
    """Authenticator that blocks until released, to observe lock behaviour."""

    def __init__(self, client):
        self.client = client
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        self.started.set()
        await self.release.wait()
        return self.client


class TestCredentialStore:
    """Tests for CredentialStore."""

    @pytest.mark.asyncio
    async def test_initial_handle_unusable(self, authenticator):
        store = CredentialStore(authenticator)

        handle = await store.read()

        assert handle.version == 0
        assert handle.client is None
        assert not handle.usable
        assert authenticator.calls == 0

    @pytest.mark.asyncio
    async def test_refresh_installs_client(self, authenticator, drive):
        store = CredentialStore(authenticator)

        handle = await store.refresh()

        assert handle.usable
        assert handle.client is drive
        assert handle.error is None
        assert handle.version == 1
        assert await store.read() is handle

    @pytest.mark.asyncio
    async def test_failed_refresh_installs_error(self, failing_authenticator):
        """Test authentication errors never escape refresh()."""
        store = CredentialStore(failing_authenticator)

        handle = await store.refresh()

        assert not handle.usable
        assert handle.client is None
        assert handle.error == "Error acquiring token"
        assert handle.version == 1

    @pytest.mark.asyncio
    async def test_failed_refresh_replaces_working_client(self, drive):
        store = CredentialStore(FakeAuthenticator(drive, CredentialError("Error reading credentials file")))
        await store.refresh()

        handle = await store.refresh()

        assert handle.client is None
        assert handle.error == "Error reading credentials file"
        assert handle.version == 2

    def test_handle_is_immutable(self, drive):
        handle = CredentialHandle(client=drive, error=None, version=1)

        with pytest.raises(AttributeError):
            handle.version = 2

    @pytest.mark.asyncio
    async def test_readers_blocked_during_refresh(self, drive):
        """Test no reader observes the handle while it is being replaced."""
        gated = GatedAuthenticator(drive)
        store = CredentialStore(gated)

        refresh = asyncio.create_task(store.refresh())
        await gated.started.wait()
        reader = asyncio.create_task(store.read())
        await asyncio.sleep(0.01)

        assert store.lock.writer_active
        assert not reader.done()

        gated.release.set()
        await refresh
        handle = await reader

        assert handle.version == 1
        assert handle.client is drive

    @pytest.mark.asyncio
    async def test_concurrent_readers(self, credential_store):
        """Test shared access is not exclusive."""
        async with credential_store.lock.read():
            async with credential_store.lock.read():
                assert credential_store.lock.readers == 2

        assert credential_store.lock.readers == 0

    @pytest.mark.asyncio
    async def test_refresh_waits_for_readers(self, authenticator):
        store = CredentialStore(authenticator)

        async with store.lock.read():
            refresh = asyncio.create_task(store.refresh())
            await asyncio.sleep(0.01)
            assert authenticator.calls == 0

        handle = await refresh
        assert authenticator.calls == 1
        assert handle.version == 1

    @pytest.mark.asyncio
    async def test_concurrent_refreshes_each_run(self, authenticator):
        """Test refreshes are serialized, not coalesced."""
        store = CredentialStore(authenticator)

        await asyncio.gather(store.refresh(), store.refresh())

        assert authenticator.calls == 2
        assert (await store.read()).version == 2


def drive_transport(existing_id=None, upload_status=200):
    """MockTransport answering the search and upload calls; records requests."""
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.method == "GET" and str(request.url).startswith(FILES_URL):
            files = [{"id": existing_id, "name": "report.txt"}] if existing_id else []
            return httpx.Response(200, json={"files": files})
        if upload_status != 200:
            return httpx.Response(upload_status, json={"error": {"message": "denied"}})
        return httpx.Response(200, json={"id": existing_id or "new-id", "name": "report.txt"})

    return httpx.MockTransport(handler), requests


class TestDriveClient:
    """Tests for DriveClient create-or-update."""

    @pytest.mark.asyncio
    async def test_creates_new_file(self):
        transport, requests = drive_transport()
        client = DriveClient("token-123", transport=transport)

        result = await client.upload(TEST_DRIVE_ID, TEST_PARENT_ID, "report.txt", "text/plain", b"hello")

        assert result["id"] == "new-id"
        search, create = requests
        assert search.headers["Authorization"] == "Bearer token-123"
        assert search.url.params["driveId"] == TEST_DRIVE_ID
        assert search.url.params["corpora"] == "drive"
        assert "name = 'report.txt'" in search.url.params["q"]
        assert create.method == "POST"
        assert str(create.url).startswith(UPLOAD_URL)
        assert create.url.params["supportsAllDrives"] == "true"
        assert create.headers["Content-Type"].startswith("multipart/related; boundary=")
        assert json.dumps({"name": "report.txt", "mimeType": "text/plain", "parents": [TEST_PARENT_ID]}).encode() in create.content
        assert b"hello" in create.content

    @pytest.mark.asyncio
    async def test_updates_existing_file(self):
        transport, requests = drive_transport(existing_id="file-9")
        client = DriveClient("token-123", transport=transport)

        result = await client.upload(TEST_DRIVE_ID, TEST_PARENT_ID, "report.txt", "text/plain", b"v2")

        assert result["id"] == "file-9"
        update = requests[1]
        assert update.method == "PATCH"
        assert update.url.path.endswith("/files/file-9")
        assert b'"parents"' not in update.content

    @pytest.mark.asyncio
    async def test_http_error_raises(self):
        transport, _ = drive_transport(upload_status=403)
        client = DriveClient("token-123", transport=transport)

        with pytest.raises(DriveUploadError):
            await client.upload(TEST_DRIVE_ID, TEST_PARENT_ID, "report.txt", "text/plain", b"x")

    @pytest.mark.asyncio
    async def test_transport_error_raises(self):
        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        client = DriveClient("token-123", transport=httpx.MockTransport(handler))

        with pytest.raises(DriveUploadError):
            await client.upload(TEST_DRIVE_ID, TEST_PARENT_ID, "report.txt", "text/plain", b"x")

    @pytest.mark.asyncio
    async def test_unreadable_upload_reply_raises(self):
        """Test a 200 reply that is not JSON is reported as an upload failure."""
        def handler(request):
            if request.method == "GET":
                return httpx.Response(200, json={"files": []})
            return httpx.Response(200, text="<html>ok</html>")

        client = DriveClient("token-123", transport=httpx.MockTransport(handler))

        with pytest.raises(DriveUploadError):
            await client.upload(TEST_DRIVE_ID, TEST_PARENT_ID, "report.txt", "text/plain", b"x")

    @pytest.mark.asyncio
    async def test_search_result_without_id_raises(self):
        def handler(request):
            return httpx.Response(200, json={"files": [{"name": "report.txt"}]})

        client = DriveClient("token-123", transport=httpx.MockTransport(handler))

        with pytest.raises(DriveUploadError):
            await client.upload(TEST_DRIVE_ID, TEST_PARENT_ID, "report.txt", "text/plain", b"x")

    def test_expiry(self):
        now = datetime.now(timezone.utc)

        assert not DriveClient("t").is_expired()
        assert not DriveClient("t", expires_at=now + timedelta(hours=1)).is_expired()
        assert DriveClient("t", expires_at=now - timedelta(seconds=1)).is_expired()
        # Inside the safety margin
        assert DriveClient("t", expires_at=now + timedelta(seconds=5)).is_expired()

    def test_naive_expiry_treated_as_utc(self):
        naive = datetime.now(timezone.utc).replace(tzinfo=None) + timedelta(hours=1)

        client = DriveClient("t", expires_at=naive)

        assert client.expires_at.tzinfo is timezone.utc
        assert not client.is_expired()


class TestAuthenticate:
    """Tests for the service-account authentication flow."""

    @staticmethod
    def scoped_credential(refresh_error=None):
        scoped = MagicMock()
        scoped.token = "ya29.token"
        scoped.expiry = datetime.now(timezone.utc).replace(tzinfo=None) + timedelta(hours=1)
        if refresh_error is not None:
            scoped.refresh.side_effect = refresh_error
        certificate = MagicMock()
        certificate.get_credential.return_value.with_scopes.return_value = scoped
        return certificate, scoped

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path):
        with pytest.raises(CredentialError, match="Error reading credentials file"):
            await authenticate(tmp_path / "missing.json")

    @pytest.mark.asyncio
    async def test_malformed_file(self, tmp_path):
        identity = tmp_path / "credentials.json"
        identity.write_text(json.dumps({"type": "authorized_user"}))

        with pytest.raises(CredentialError, match="Error reading credentials file"):
            await authenticate(identity)

    @pytest.mark.asyncio
    async def test_token_not_issued(self, tmp_path):
        certificate, _ = self.scoped_credential(refresh_error=RefreshError("invalid_grant"))

        with patch("gateway.storage.drive_client.credentials.Certificate", return_value=certificate):
            with pytest.raises(CredentialError, match="Error acquiring token"):
                await authenticate(tmp_path / "credentials.json")

    @pytest.mark.asyncio
    async def test_success_returns_client(self, tmp_path):
        certificate, scoped = self.scoped_credential()

        with patch("gateway.storage.drive_client.credentials.Certificate", return_value=certificate):
            client = await authenticate(tmp_path / "credentials.json", timeout=5.0)

        assert isinstance(client, DriveClient)
        assert not client.is_expired()
        certificate.get_credential.return_value.with_scopes.assert_called_once_with(
            ["https://www.googleapis.com/auth/drive.file"]
        )
        scoped.refresh.assert_called_once()
