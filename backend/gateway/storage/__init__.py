"""
Remote storage module.

The remote sink is a Google Drive shared folder. The access token behind it
is held in a single CredentialStore shared by every request.
"""
from gateway.storage.credential_store import CredentialHandle, CredentialStore, ReadWriteLock
from gateway.storage.drive_client import (
    CredentialError,
    DriveClient,
    DriveUploadError,
    authenticate,
)

__all__ = [
    "CredentialHandle",
    "CredentialStore",
    "ReadWriteLock",
    "CredentialError",
    "DriveClient",
    "DriveUploadError",
    "authenticate",
]
