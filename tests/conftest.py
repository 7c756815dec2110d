"""
Shared fixtures for the Auth Session Client tests.
"""

from typing import Dict, Optional, Set
from unittest.mock import AsyncMock, MagicMock

import pytest

from authclient.auth.session_manager import SessionManager
from authshared.exceptions import StorageError, ErrorCode
from authshared.interfaces import ICredentialTransport, IKeyValueStore
from authshared.logging_config import AuditLogger
from authshared.models import TransportResult


class MemoryStore(IKeyValueStore):
    """In-memory key-value store with switchable faults."""

    def __init__(self, values: Optional[Dict[str, str]] = None):
        self.values: Dict[str, str] = dict(values or {})
        self.raise_on_get = False
        self.fail_set_keys: Set[str] = set()  # each fails once
        self.set_calls = []
        self.delete_calls = []

    async def get(self, key: str) -> Optional[str]:
        if self.raise_on_get:
            raise RuntimeError("backend unavailable")
        return self.values.get(key)

    async def set(self, key: str, value: str) -> None:
        self.set_calls.append((key, value))
        if key in self.fail_set_keys:
            self.fail_set_keys.discard(key)
            raise StorageError(f"cannot store {key}", ErrorCode.STORAGE_WRITE_FAILED, key=key)
        self.values[key] = value

    async def delete(self, key: str) -> None:
        self.delete_calls.append(key)
        self.values.pop(key, None)


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def transport():
    mock = AsyncMock(spec=ICredentialTransport)
    mock.login.return_value = TransportResult.ok({'access': 'access-1', 'refresh': 'refresh-1'})
    mock.register.return_value = TransportResult.ok({'id': 1, 'username': 'bob'})
    return mock


@pytest.fixture
def audit_logger():
    return MagicMock(spec=AuditLogger)


@pytest.fixture
def session_manager(transport, memory_store, audit_logger):
    return SessionManager(transport, memory_store, audit_logger=audit_logger)
