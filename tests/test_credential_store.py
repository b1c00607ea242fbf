"""
Tests for the credential store — round trips, overwrite, delete and
encryption at rest.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from cryptography.fernet import Fernet
from sqlalchemy import select

from connectors.credential_store import CredentialStore
from connectors.encryption import TokenCipher
from connectors.errors import CredentialNotFound, StorageError
from database.models import CredentialRecord
from utils.schemas import Credential, TokenKind

ISSUED = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def _credential(value="ya29.access", kind=TokenKind.ACCESS, provider="google-sheets", expires_at=None):
    return Credential(
        user_id="user-1",
        provider=provider,
        token_kind=kind,
        token_value=value,
        issued_at=ISSUED,
        expires_at=expires_at,
    )


class TestCredentialStoreReadWrite:
    @pytest.mark.asyncio
    async def test_put_then_get_returns_same_credential(self, store):
        expires = ISSUED + timedelta(hours=1)
        await store.put(_credential(expires_at=expires))

        loaded = await store.get("user-1", "google-sheets", TokenKind.ACCESS)

        assert loaded.token_value == "ya29.access"
        assert loaded.issued_at == ISSUED
        assert loaded.expires_at == expires
        assert loaded.token_kind == TokenKind.ACCESS

    @pytest.mark.asyncio
    async def test_missing_credential_raises(self, store):
        with pytest.raises(CredentialNotFound):
            await store.get("user-1", "google-sheets", TokenKind.ACCESS)

    @pytest.mark.asyncio
    async def test_put_overwrites_whole_record(self, store):
        await store.put(_credential("first", expires_at=ISSUED + timedelta(hours=1)))
        await store.put(_credential("second"))

        loaded = await store.get("user-1", "google-sheets", TokenKind.ACCESS)

        assert loaded.token_value == "second"
        assert loaded.expires_at is None

    @pytest.mark.asyncio
    async def test_concurrent_puts_on_new_key_all_succeed(self, store, session_factory):
        await asyncio.gather(*(store.put(_credential(f"v{i}")) for i in range(8)))

        loaded = await store.get("user-1", "google-sheets", TokenKind.ACCESS)
        assert loaded.token_value in {f"v{i}" for i in range(8)}
        async with session_factory() as session:
            rows = (await session.execute(select(CredentialRecord))).scalars().all()
        assert len(rows) == 1

    @pytest.mark.asyncio
    async def test_kinds_are_stored_separately(self, store):
        await store.put_many([_credential("acc"), _credential("ref", kind=TokenKind.REFRESH)])

        assert (await store.get("user-1", "google-sheets", TokenKind.ACCESS)).token_value == "acc"
        assert (await store.get("user-1", "google-sheets", TokenKind.REFRESH)).token_value == "ref"

    @pytest.mark.asyncio
    async def test_exists(self, store):
        assert await store.exists("user-1", "google-sheets", TokenKind.ACCESS) is False
        await store.put(_credential())
        assert await store.exists("user-1", "google-sheets", TokenKind.ACCESS) is True
        assert await store.exists("user-1", "google-sheets", TokenKind.REFRESH) is False

    @pytest.mark.asyncio
    async def test_empty_token_rejected_before_any_write(self, store):
        bad = Credential(
            user_id="user-1",
            provider="google-sheets",
            token_kind=TokenKind.REFRESH,
            token_value="",
        )
        with pytest.raises(ValueError):
            await store.put_many([_credential(), bad])

        assert await store.exists("user-1", "google-sheets", TokenKind.ACCESS) is False


class TestCredentialStoreDelete:
    @pytest.mark.asyncio
    async def test_delete_removes_every_kind_for_provider(self, store):
        await store.put_many([_credential(), _credential("ref", kind=TokenKind.REFRESH)])
        await store.put(_credential("docs", provider="google-docs"))

        deleted = await store.delete("user-1", "google-sheets")

        assert deleted == 2
        assert await store.exists("user-1", "google-sheets", TokenKind.ACCESS) is False
        assert await store.exists("user-1", "google-docs", TokenKind.ACCESS) is True

    @pytest.mark.asyncio
    async def test_delete_missing_returns_zero(self, store):
        assert await store.delete("user-1", "plaid") == 0


class TestCredentialEncryption:
    @pytest.mark.asyncio
    async def test_token_is_encrypted_at_rest(self, store, session_factory):
        await store.put(_credential("plain-secret"))

        async with session_factory() as session:
            raw = (await session.execute(select(CredentialRecord.token_value))).scalar_one()

        assert raw != "plain-secret"
        assert "plain-secret" not in raw

    @pytest.mark.asyncio
    async def test_wrong_key_raises_storage_error(self, store, session_factory):
        await store.put(_credential())
        other = CredentialStore(session_factory, TokenCipher(Fernet.generate_key().decode()))

        with pytest.raises(StorageError):
            await other.get("user-1", "google-sheets", TokenKind.ACCESS)

    def test_cipher_without_key_is_passthrough(self):
        cipher = TokenCipher(None)
        assert cipher.enabled is False
        assert cipher.encrypt("abc") == "abc"
        assert cipher.decrypt("abc") == "abc"

    def test_invalid_key_rejected(self):
        with pytest.raises(ValueError):
            TokenCipher("not-a-fernet-key")
