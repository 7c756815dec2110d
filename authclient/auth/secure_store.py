"""
Secure key-value storage for the Auth Session Client.

This module provides durable storage of named string values using the system
keyring, or an encrypted file when no usable keyring is present. The backend
is chosen once, when the store is created; callers only see IKeyValueStore.
"""

import asyncio
import json
import logging
import os
from enum import Enum
from pathlib import Path
from typing import Dict, Optional, Union

import keyring
from keyring.errors import PasswordDeleteError
from cryptography.fernet import Fernet

from authshared.exceptions import StorageError, ConfigurationError, ErrorCode, ErrorSeverity
from authshared.interfaces import IKeyValueStore
from authshared.logging_config import log_structured_error

logger = logging.getLogger(__name__)

DEFAULT_SERVICE_NAME = "auth-session-client"


def _log_tolerated_fault(message: str, error_code: ErrorCode, key: str, cause: Exception) -> None:
    """Log a read or delete failure that the store reports as absence."""
    error = StorageError(message, error_code, key=key, severity=ErrorSeverity.LOW, cause=cause)
    log_structured_error(logger, error, level=logging.WARNING)


def _write_private_file(path: Path, data: bytes) -> None:
    """Create ``path`` readable by the owner only and write ``data`` to it."""
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
    with os.fdopen(fd, 'wb') as f:
        f.write(data)


class StorageBackend(Enum):
    """Credential storage backends."""
    AUTO = "auto"
    KEYRING = "keyring"
    FILE = "file"


def default_storage_dir() -> Path:
    """Get the directory used for file-backed storage."""
    xdg_config = os.environ.get('XDG_CONFIG_HOME')
    if xdg_config:
        return Path(xdg_config) / 'auth-session'
    return Path.home() / '.config' / 'auth-session'


def is_keyring_available(service_name: str = DEFAULT_SERVICE_NAME) -> bool:
    """Check if the system keyring can store, read and delete a value."""
    try:
        test_key = f"{service_name}_availability_check"
        keyring.set_password(service_name, test_key, "ok")
        result = keyring.get_password(service_name, test_key)
        keyring.delete_password(service_name, test_key)
        return result == "ok"
    except Exception as e:
        logger.debug(f"Keyring not available: {e}")
        return False


class KeyringStore(IKeyValueStore):
    """
    Store backed by the platform secure storage through ``keyring``.

    Keyring calls block, so they run in a worker thread.
    """

    def __init__(self, service_name: str = DEFAULT_SERVICE_NAME):
        self.service_name = service_name

    async def get(self, key: str) -> Optional[str]:
        try:
            return await asyncio.to_thread(keyring.get_password, self.service_name, key)
        except Exception as e:
            _log_tolerated_fault(f"Failed to read '{key}' from keyring: {e}", ErrorCode.STORAGE_READ_FAILED, key, e)
            return None

    async def set(self, key: str, value: str) -> None:
        try:
            await asyncio.to_thread(keyring.set_password, self.service_name, key, value)
        except Exception as e:
            raise StorageError(
                f"Failed to store '{key}' in keyring: {e}",
                ErrorCode.STORAGE_WRITE_FAILED,
                key=key,
                cause=e
            )

    async def delete(self, key: str) -> None:
        try:
            await asyncio.to_thread(keyring.delete_password, self.service_name, key)
        except PasswordDeleteError:
            # Not stored
            pass
        except Exception as e:
            _log_tolerated_fault(f"Failed to delete '{key}' from keyring: {e}", ErrorCode.STORAGE_DELETE_FAILED, key, e)


class EncryptedFileStore(IKeyValueStore):
    """
    File-backed store for environments without a usable keyring.

    All values live in one JSON document encrypted with Fernet. The key sits
    next to the data file, so this protects against casual reads only.
    """

    def __init__(self, storage_dir: Union[str, Path, None] = None, file_name: str = 'credentials.enc'):
        directory = Path(storage_dir) if storage_dir else default_storage_dir()
        self.storage_path = directory / file_name
        self.key_path = directory / f"{Path(file_name).stem}.key"
        self._fernet: Optional[Fernet] = None

    def _get_fernet(self) -> Fernet:
        """Load the encryption key, creating it on first use."""
        if self._fernet:
            return self._fernet

        if self.key_path.exists():
            key = self.key_path.read_bytes().strip()
        else:
            self.key_path.parent.mkdir(parents=True, exist_ok=True)
            key = Fernet.generate_key()
            _write_private_file(self.key_path, key)

        self._fernet = Fernet(key)
        return self._fernet

    def _read_all(self) -> Dict[str, str]:
        if not self.storage_path.exists():
            return {}

        encrypted_data = self.storage_path.read_bytes()
        decrypted_data = self._get_fernet().decrypt(encrypted_data).decode()
        return json.loads(decrypted_data)

    def _write_all(self, values: Dict[str, str]) -> None:
        if not values:
            if self.storage_path.exists():
                self.storage_path.unlink()
            return

        self.storage_path.parent.mkdir(parents=True, exist_ok=True)
        encrypted_data = self._get_fernet().encrypt(json.dumps(values).encode())

        tmp_path = self.storage_path.with_suffix(self.storage_path.suffix + '.tmp')
        # Left over from an interrupted write
        if tmp_path.exists():
            tmp_path.unlink()
        _write_private_file(tmp_path, encrypted_data)
        os.replace(tmp_path, self.storage_path)

    def _get_sync(self, key: str) -> Optional[str]:
        return self._read_all().get(key)

    def _set_sync(self, key: str, value: str) -> None:
        try:
            values = self._read_all()
        except Exception as e:
            logger.warning(f"Failed to load existing values, starting fresh: {e}")
            values = {}

        values[key] = value
        self._write_all(values)

    def _delete_sync(self, key: str) -> None:
        values = self._read_all()
        if key not in values:
            return

        del values[key]
        self._write_all(values)

    async def get(self, key: str) -> Optional[str]:
        try:
            return await asyncio.to_thread(self._get_sync, key)
        except Exception as e:
            _log_tolerated_fault(
                f"Failed to read '{key}' from {self.storage_path}: {e}", ErrorCode.STORAGE_READ_FAILED, key, e
            )
            return None

    async def set(self, key: str, value: str) -> None:
        try:
            await asyncio.to_thread(self._set_sync, key, value)
        except Exception as e:
            raise StorageError(
                f"Failed to store '{key}' in {self.storage_path}: {e}",
                ErrorCode.STORAGE_WRITE_FAILED,
                key=key,
                cause=e
            )

    async def delete(self, key: str) -> None:
        try:
            await asyncio.to_thread(self._delete_sync, key)
        except Exception as e:
            _log_tolerated_fault(
                f"Failed to delete '{key}' from {self.storage_path}: {e}", ErrorCode.STORAGE_DELETE_FAILED, key, e
            )


def create_key_value_store(
    backend: Union[str, StorageBackend] = StorageBackend.AUTO,
    service_name: str = DEFAULT_SERVICE_NAME,
    storage_dir: Union[str, Path, None] = None
) -> IKeyValueStore:
    """
    Create the credential store for this environment.

    Args:
        backend: 'auto', 'keyring' or 'file'
        service_name: Keyring service name
        storage_dir: Directory for the encrypted file backend

    Returns:
        Store instance

    Raises:
        ConfigurationError: If the backend name is unknown
    """
    try:
        selected = StorageBackend(backend)
    except ValueError:
        raise ConfigurationError(
            f"Unknown storage backend: {backend}",
            ErrorCode.CONFIG_INVALID_VALUE,
            config_key='storage.backend'
        )

    if selected == StorageBackend.AUTO:
        selected = StorageBackend.KEYRING if is_keyring_available(service_name) else StorageBackend.FILE

    if selected == StorageBackend.KEYRING:
        logger.info(f"Credential storage initialized (keyring service: {service_name})")
        return KeyringStore(service_name)

    store = EncryptedFileStore(storage_dir)
    logger.info(f"Credential storage initialized (file: {store.storage_path})")
    return store
