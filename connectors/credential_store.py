"""
CredentialStore — durable CRUD over the ``credentials`` table.

One row per (user_id, provider, token_kind).  Writes always replace the
whole row; a grant or a refresh writes its rows through ``put_many`` so
readers see either every new row or none of them.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, Optional

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from connectors.encryption import TokenCipher
from connectors.errors import CredentialNotFound, StorageError
from database.models import CredentialRecord
from utils.schemas import Credential, TokenKind

logger = logging.getLogger(__name__)

# Dialects with INSERT .. ON CONFLICT DO UPDATE
_INSERTS = {"postgresql": pg_insert, "sqlite": sqlite_insert}


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _check(credential: Credential) -> None:
    if not credential.user_id or not credential.provider or not credential.token_value:
        raise ValueError("Credential requires user_id, provider and token_value")


class CredentialStore:
    """Async store for encrypted credentials."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cipher: Optional[TokenCipher] = None,
    ) -> None:
        self._session_factory = session_factory
        self._cipher = cipher or TokenCipher(None)

    # ── Reads ───────────────────────────────────────────────────────────

    async def get(self, user_id: str, provider: str, kind: TokenKind) -> Credential:
        """Return the credential or raise ``CredentialNotFound``."""
        try:
            async with self._session_factory() as session:
                row = await session.get(CredentialRecord, (user_id, provider, kind.value))
        except SQLAlchemyError as exc:
            logger.error("Credential read failed for %s/%s: %s", provider, user_id, exc)
            raise StorageError(f"Credential store unavailable: {exc}") from exc

        if row is None:
            raise CredentialNotFound(f"No {kind.value} credential for '{provider}'")

        return Credential(
            user_id=row.user_id,
            provider=row.provider,
            token_kind=TokenKind(row.token_kind),
            token_value=self._cipher.decrypt(row.token_value),
            issued_at=_as_utc(row.issued_at),
            expires_at=_as_utc(row.expires_at),
        )

    async def exists(self, user_id: str, provider: str, kind: TokenKind) -> bool:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(CredentialRecord.user_id).where(
                        CredentialRecord.user_id == user_id,
                        CredentialRecord.provider == provider,
                        CredentialRecord.token_kind == kind.value,
                    )
                )
                return result.first() is not None
        except SQLAlchemyError as exc:
            raise StorageError(f"Credential store unavailable: {exc}") from exc

    # ── Writes ──────────────────────────────────────────────────────────

    async def put(self, credential: Credential) -> None:
        """Upsert one credential (full overwrite)."""
        await self.put_many([credential])

    async def put_many(self, credentials: Iterable[Credential]) -> None:
        """Upsert several credentials in a single transaction."""
        batch = list(credentials)
        for credential in batch:
            _check(credential)

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    insert = _INSERTS.get(session.bind.dialect.name, pg_insert)
                    for credential in batch:
                        values = {
                            "token_value": self._cipher.encrypt(credential.token_value),
                            "issued_at": credential.issued_at,
                            "expires_at": credential.expires_at,
                        }
                        stmt = insert(CredentialRecord).values(
                            user_id=credential.user_id,
                            provider=credential.provider,
                            token_kind=credential.token_kind.value,
                            **values,
                        ).on_conflict_do_update(
                            index_elements=["user_id", "provider", "token_kind"],
                            set_=values,
                        )
                        await session.execute(stmt)
        except SQLAlchemyError as exc:
            logger.error("Credential write failed: %s", exc)
            raise StorageError(f"Credential write failed: {exc}") from exc

    async def delete(self, user_id: str, provider: str) -> int:
        """Remove every row of a grant.  Returns the number of rows deleted."""
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        delete(CredentialRecord).where(
                            CredentialRecord.user_id == user_id,
                            CredentialRecord.provider == provider,
                        )
                    )
        except SQLAlchemyError as exc:
            logger.error("Credential delete failed for %s/%s: %s", provider, user_id, exc)
            raise StorageError(f"Credential delete failed: {exc}") from exc

        logger.info("Deleted %d credential rows for %s/%s", result.rowcount, provider, user_id)
        return result.rowcount
