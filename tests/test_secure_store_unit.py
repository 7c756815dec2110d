#!/usr/bin/env python3
"""
Unit tests for the credential key-value stores.

Tests the encrypted file backend against a temporary directory, the keyring
backend against an in-memory keyring, and backend selection.
"""

import logging
import os
import stat

import pytest
from keyring.errors import KeyringError, PasswordDeleteError

from authclient.auth import secure_store
from authclient.auth.secure_store import (
    EncryptedFileStore, KeyringStore, StorageBackend,
    create_key_value_store, is_keyring_available
)
from authshared.exceptions import ConfigurationError, ErrorCode, ErrorSeverity, StorageError


@pytest.fixture
def fake_keyring(monkeypatch):
    """Replace keyring calls with a dict keyed by (service, key)."""
    passwords = {}

    def get_password(service, key):
        return passwords.get((service, key))

    def set_password(service, key, value):
        passwords[(service, key)] = value

    def delete_password(service, key):
        if (service, key) not in passwords:
            raise PasswordDeleteError("not found")
        del passwords[(service, key)]

    monkeypatch.setattr(secure_store.keyring, 'get_password', get_password)
    monkeypatch.setattr(secure_store.keyring, 'set_password', set_password)
    monkeypatch.setattr(secure_store.keyring, 'delete_password', delete_password)
    return passwords


@pytest.fixture
def broken_keyring(monkeypatch):
    def fail(*args):
        raise KeyringError("no backend")

    monkeypatch.setattr(secure_store.keyring, 'get_password', fail)
    monkeypatch.setattr(secure_store.keyring, 'set_password', fail)
    monkeypatch.setattr(secure_store.keyring, 'delete_password', fail)


class TestEncryptedFileStore:
    """Test the file-backed store."""

    @pytest.mark.asyncio
    async def test_set_get_delete(self, tmp_path):
        store = EncryptedFileStore(tmp_path)

        assert await store.get('accessToken') is None

        await store.set('accessToken', 'abc')
        await store.set('refreshToken', 'def')
        assert await store.get('accessToken') == 'abc'
        assert await store.get('refreshToken') == 'def'

        await store.set('accessToken', 'xyz')
        assert await store.get('accessToken') == 'xyz'

        await store.delete('accessToken')
        assert await store.get('accessToken') is None
        assert await store.get('refreshToken') == 'def'

    @pytest.mark.asyncio
    async def test_values_are_encrypted_on_disk(self, tmp_path):
        store = EncryptedFileStore(tmp_path)
        await store.set('accessToken', 'very-secret-token')

        raw = store.storage_path.read_bytes()
        assert b'very-secret-token' not in raw
        assert b'accessToken' not in raw

    @pytest.mark.asyncio
    async def test_files_have_restrictive_permissions(self, tmp_path):
        store = EncryptedFileStore(tmp_path)
        await store.set('accessToken', 'abc')

        for path in (store.storage_path, store.key_path):
            mode = stat.S_IMODE(os.stat(path).st_mode)
            assert mode == 0o600

    @pytest.mark.asyncio
    async def test_values_survive_new_instance(self, tmp_path):
        await EncryptedFileStore(tmp_path).set('refreshToken', 'persisted')

        assert await EncryptedFileStore(tmp_path).get('refreshToken') == 'persisted'

    @pytest.mark.asyncio
    async def test_delete_missing_key_is_noop(self, tmp_path):
        store = EncryptedFileStore(tmp_path)

        await store.delete('accessToken')
        await store.set('refreshToken', 'def')
        await store.delete('accessToken')

        assert await store.get('refreshToken') == 'def'

    @pytest.mark.asyncio
    async def test_file_removed_when_empty(self, tmp_path):
        store = EncryptedFileStore(tmp_path)
        await store.set('accessToken', 'abc')

        await store.delete('accessToken')

        assert not store.storage_path.exists()

    @pytest.mark.asyncio
    async def test_corrupt_file_reads_as_absent(self, tmp_path):
        store = EncryptedFileStore(tmp_path)
        await store.set('accessToken', 'abc')
        store.storage_path.write_bytes(b'garbage')

        assert await store.get('accessToken') is None

    @pytest.mark.asyncio
    async def test_corrupt_file_faults_are_logged_with_codes(self, tmp_path, caplog):
        store = EncryptedFileStore(tmp_path)
        await store.set('accessToken', 'abc')
        store.storage_path.write_bytes(b'garbage')

        with caplog.at_level(logging.WARNING, logger=secure_store.__name__):
            await store.get('accessToken')
            await store.delete('accessToken')

        errors = [record.error_info for record in caplog.records if hasattr(record, 'error_info')]
        assert [error.error_code for error in errors] == [
            ErrorCode.STORAGE_READ_FAILED, ErrorCode.STORAGE_DELETE_FAILED
        ]
        assert all(error.severity == ErrorSeverity.LOW for error in errors)
        assert errors[0].context['key'] == 'accessToken'

    @pytest.mark.asyncio
    async def test_files_created_owner_only(self, tmp_path, monkeypatch):
        opened = []
        real_open = os.open

        def recording_open(path, flags, mode=0o777, *args, **kwargs):
            opened.append((str(path), flags, mode))
            return real_open(path, flags, mode, *args, **kwargs)

        monkeypatch.setattr(secure_store.os, 'open', recording_open)
        store = EncryptedFileStore(tmp_path)

        await store.set('accessToken', 'abc')

        tmp_file = str(store.storage_path) + '.tmp'
        created = {path: (flags, mode) for path, flags, mode in opened}
        for path in (str(store.key_path), tmp_file):
            flags, mode = created[path]
            assert flags & os.O_CREAT and flags & os.O_EXCL
            assert mode == 0o600

    @pytest.mark.asyncio
    async def test_stale_temp_file_is_replaced(self, tmp_path):
        store = EncryptedFileStore(tmp_path)
        stale = tmp_path / 'credentials.enc.tmp'
        stale.write_bytes(b'partial')

        await store.set('accessToken', 'abc')

        assert not stale.exists()
        assert await store.get('accessToken') == 'abc'

    @pytest.mark.asyncio
    async def test_set_failure_raises_storage_error(self, tmp_path):
        blocker = tmp_path / 'not-a-directory'
        blocker.write_text('file in the way')
        store = EncryptedFileStore(blocker)

        with pytest.raises(StorageError):
            await store.set('accessToken', 'abc')


class TestKeyringStore:
    """Test the keyring-backed store."""

    @pytest.mark.asyncio
    async def test_set_get_delete(self, fake_keyring):
        store = KeyringStore('test-service')

        await store.set('accessToken', 'abc')
        assert fake_keyring[('test-service', 'accessToken')] == 'abc'
        assert await store.get('accessToken') == 'abc'

        await store.delete('accessToken')
        assert await store.get('accessToken') is None

    @pytest.mark.asyncio
    async def test_delete_missing_key_is_noop(self, fake_keyring):
        store = KeyringStore('test-service')

        await store.delete('accessToken')

    @pytest.mark.asyncio
    async def test_backend_failure(self, broken_keyring):
        store = KeyringStore('test-service')

        assert await store.get('accessToken') is None
        await store.delete('accessToken')
        with pytest.raises(StorageError):
            await store.set('accessToken', 'abc')

    @pytest.mark.asyncio
    async def test_backend_failure_logged_with_codes(self, broken_keyring, caplog):
        store = KeyringStore('test-service')

        with caplog.at_level(logging.WARNING, logger=secure_store.__name__):
            await store.get('accessToken')
            await store.delete('refreshToken')

        errors = [record.error_info for record in caplog.records if hasattr(record, 'error_info')]
        assert [(error.error_code, error.context['key']) for error in errors] == [
            (ErrorCode.STORAGE_READ_FAILED, 'accessToken'),
            (ErrorCode.STORAGE_DELETE_FAILED, 'refreshToken'),
        ]


class TestBackendSelection:
    """Test choosing a backend at construction time."""

    def test_keyring_check(self, fake_keyring):
        assert is_keyring_available('test-service') is True
        assert fake_keyring == {}

    def test_keyring_check_failure(self, broken_keyring):
        assert is_keyring_available('test-service') is False

    def test_auto_prefers_keyring(self, fake_keyring, tmp_path):
        store = create_key_value_store('auto', 'test-service', tmp_path)
        assert isinstance(store, KeyringStore)
        assert store.service_name == 'test-service'

    def test_auto_falls_back_to_file(self, broken_keyring, tmp_path):
        store = create_key_value_store(StorageBackend.AUTO, 'test-service', tmp_path)
        assert isinstance(store, EncryptedFileStore)
        assert store.storage_path.parent == tmp_path

    def test_explicit_file_backend(self, fake_keyring, tmp_path):
        store = create_key_value_store('file', storage_dir=tmp_path)
        assert isinstance(store, EncryptedFileStore)

    def test_explicit_keyring_backend(self, broken_keyring):
        store = create_key_value_store('keyring')
        assert isinstance(store, KeyringStore)

    def test_unknown_backend(self):
        with pytest.raises(ConfigurationError):
            create_key_value_store('floppy')

    def test_default_storage_dir_uses_xdg(self, monkeypatch, tmp_path):
        monkeypatch.setenv('XDG_CONFIG_HOME', str(tmp_path))
        assert secure_store.default_storage_dir() == tmp_path / 'auth-session'
