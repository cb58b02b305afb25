"""
Process-wide holder for the shared remote-client credential.

There is exactly one CredentialHandle per process. Readers take a snapshot
under a shared lock; refresh() holds the lock exclusively while it runs the
whole authentication flow and then swaps in a new immutable handle.
Refreshes are demand-driven and not coalesced: concurrent callers each run
their own authentication and the last one to finish wins.
"""
from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import AsyncIterator, Awaitable, Callable, Optional, Protocol

from gateway.storage.drive_client import CredentialError
from gateway.utils.logging import log_credential_refresh
from gateway.utils.metrics import credential_refreshes_total

logger = logging.getLogger(__name__)


class RemoteClient(Protocol):
    """Capability the writer needs from the remote store."""

    def is_expired(self) -> bool: ...

    async def upload(
        self,
        drive_id: str,
        folder_id: str,
        name: str,
        mime_type: str,
        content: bytes,
    ) -> object: ...


Authenticator = Callable[[], Awaitable[RemoteClient]]


@dataclass(frozen=True)
class CredentialHandle:
    """Immutable snapshot of the current credential."""

    client: Optional[RemoteClient] = None
    error: Optional[str] = "Not authenticated"
    version: int = 0
    obtained_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def usable(self) -> bool:
        return self.client is not None and self.error is None


class ReadWriteLock:
    """
    asyncio read/write lock.

    Any number of readers may hold it at once; a writer waits for the
    readers to drain and blocks new readers until it releases.
    """

    def __init__(self) -> None:
        self._condition = asyncio.Condition()
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @property
    def readers(self) -> int:
        return self._readers

    @property
    def writer_active(self) -> bool:
        return self._writer

    @asynccontextmanager
    async def read(self) -> AsyncIterator[None]:
        async with self._condition:
            await self._condition.wait_for(
                lambda: not self._writer and self._writers_waiting == 0
            )
            self._readers += 1
        try:
            yield
        finally:
            async with self._condition:
                self._readers -= 1
                if self._readers == 0:
                    self._condition.notify_all()

    @asynccontextmanager
    async def write(self) -> AsyncIterator[None]:
        async with self._condition:
            self._writers_waiting += 1
            try:
                await self._condition.wait_for(
                    lambda: not self._writer and self._readers == 0
                )
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            async with self._condition:
                self._writer = False
                self._condition.notify_all()


class CredentialStore:
    """Holds the single shared CredentialHandle."""

    def __init__(self, authenticator: Authenticator):
        self._authenticator = authenticator
        self._lock = ReadWriteLock()
        self._handle = CredentialHandle()

    @property
    def lock(self) -> ReadWriteLock:
        return self._lock

    async def read(self) -> CredentialHandle:
        """Return the current handle (shared access)."""
        async with self._lock.read():
            return self._handle

    async def refresh(self) -> CredentialHandle:
        """
        Re-authenticate and install the result as the new handle.

        On failure the new handle carries the error and no client, so later
        readers see the remote store as unusable until a refresh succeeds.
        Never raises for authentication failures.
        """
        async with self._lock.write():
            start = time.monotonic()
            version = self._handle.version + 1
            try:
                client = await self._authenticator()
            except CredentialError as e:
                self._handle = CredentialHandle(client=None, error=str(e), version=version)
                credential_refreshes_total.labels(status="failed").inc()
                log_credential_refresh(
                    logger,
                    success=False,
                    version=version,
                    duration_ms=(time.monotonic() - start) * 1000,
                    error=str(e),
                )
            else:
                self._handle = CredentialHandle(client=client, error=None, version=version)
                credential_refreshes_total.labels(status="success").inc()
                log_credential_refresh(
                    logger,
                    success=True,
                    version=version,
                    duration_ms=(time.monotonic() - start) * 1000,
                )
            return self._handle
