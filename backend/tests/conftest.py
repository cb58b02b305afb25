"""
Test configuration and fixtures.
The remote Drive capability is replaced by in-memory fakes; local writes go
to a pytest tmp_path.
"""
import os

# Set test environment before any imports
os.environ["ENVIRONMENT"] = "test"

import pytest
from typing import AsyncGenerator

from fastapi import FastAPI
from httpx import AsyncClient, ASGITransport

from gateway.config import Settings
from gateway.main import create_app
from gateway.storage.credential_store import CredentialStore
from gateway.storage.drive_client import CredentialError
from tests.fakes import (
    TEST_DRIVE_ID,
    TEST_PARENT_ID,
    TEST_TOKEN,
    FakeAuthenticator,
    FakeDriveClient,
)


@pytest.fixture
def data_folder(tmp_path):
    """Destination folder for local writes (not created yet)."""
    return tmp_path / "uploads"


@pytest.fixture
def test_settings(data_folder, tmp_path) -> Settings:
    """Settings pointing at the tmp data folder and a fake drive."""
    return Settings(
        upload_token=TEST_TOKEN,
        data_folder=data_folder,
        drive_id=TEST_DRIVE_ID,
        parent_id=TEST_PARENT_ID,
        identity_file=tmp_path / "credentials.json",
    )


@pytest.fixture
def drive() -> FakeDriveClient:
    """Healthy fake Drive client."""
    return FakeDriveClient()


@pytest.fixture
def authenticator(drive: FakeDriveClient) -> FakeAuthenticator:
    """Authenticator that always hands out the fake drive."""
    return FakeAuthenticator(drive)


@pytest.fixture
def failing_authenticator() -> FakeAuthenticator:
    """Authenticator that never obtains a token."""
    return FakeAuthenticator(CredentialError("Error acquiring token"))


@pytest.fixture
async def credential_store(authenticator: FakeAuthenticator) -> CredentialStore:
    """Credential store that has completed its initial authentication."""
    store = CredentialStore(authenticator)
    await store.refresh()
    return store


@pytest.fixture
def app(test_settings: Settings, authenticator: FakeAuthenticator) -> FastAPI:
    """Application wired to the fake authenticator."""
    return create_app(test_settings, authenticator=authenticator)


@pytest.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Create async HTTP client for API testing."""
    # ASGITransport does not run the lifespan; do its authentication step here
    await app.state.credential_store.refresh()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
