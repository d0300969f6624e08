"""
Credential store — durable home of the encrypted integration tokens.

Records are keyed by ``(user_id, provider)``.  ``upsert`` has document
merge semantics: the scalar fields (``status``, ``token``,
``connected_at``) are replaced when given, every other field lands in the
provider metadata dict, which is merged into the stored one (or replaced
outright with ``merge=False``).  Concurrent writers get last-write-wins.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, Tuple

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from connectors.errors import StorageError
from connectors.models import Credential
from database.models import IntegrationCredential

logger = logging.getLogger(__name__)

_SCALAR_FIELDS = ("status", "token", "connected_at")

MEMORY_URL = "memory://"


class CredentialStore(Protocol):
    async def get(self, user_id: str, provider_id: str) -> Optional[Credential]:
        ...

    async def upsert(
        self,
        user_id: str,
        provider_id: str,
        fields: Dict[str, Any],
        *,
        merge: bool = True,
    ) -> Credential:
        ...

    async def delete(self, user_id: str, provider_id: str) -> None:
        ...

    async def list_for_user(self, user_id: str) -> List[Credential]:
        ...


def merge_fields(
    existing: Optional[Credential],
    provider_id: str,
    fields: Dict[str, Any],
    *,
    merge: bool = True,
) -> Credential:
    """Apply *fields* on top of *existing* and return the resulting record."""
    scalars = {k: fields[k] for k in _SCALAR_FIELDS if k in fields}
    meta = {k: v for k, v in fields.items() if k not in _SCALAR_FIELDS}

    if existing is None or not merge:
        return Credential(provider_id=provider_id, metadata=meta, **scalars)

    merged_meta = {**existing.metadata, **meta}
    return existing.model_copy(update={**scalars, "metadata": merged_meta})


# ── In-memory store (tests, local development) ─────────────────────────


class InMemoryCredentialStore:
    """Process-local store; selected with ``DATABASE_URL=memory://``."""

    def __init__(self) -> None:
        self._records: Dict[Tuple[str, str], Credential] = {}

    async def get(self, user_id: str, provider_id: str) -> Optional[Credential]:
        return self._records.get((user_id, provider_id))

    async def upsert(
        self,
        user_id: str,
        provider_id: str,
        fields: Dict[str, Any],
        *,
        merge: bool = True,
    ) -> Credential:
        key = (user_id, provider_id)
        record = merge_fields(self._records.get(key), provider_id, fields, merge=merge)
        self._records[key] = record
        return record

    async def delete(self, user_id: str, provider_id: str) -> None:
        self._records.pop((user_id, provider_id), None)

    async def list_for_user(self, user_id: str) -> List[Credential]:
        return [c for (uid, _), c in self._records.items() if uid == user_id]


# ── SQL store ──────────────────────────────────────────────────────────


def _to_credential(row: IntegrationCredential) -> Credential:
    return Credential(
        provider_id=row.provider,
        token=row.token,
        status=row.status,
        connected_at=row.connected_at.isoformat() if row.connected_at else None,
        metadata=dict(row.provider_meta or {}),
    )


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class SqlCredentialStore:
    """SQLAlchemy-backed store (PostgreSQL in production)."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, user_id: str, provider_id: str) -> Optional[Credential]:
        try:
            async with self._session_factory() as session:
                row = await session.get(IntegrationCredential, (user_id, provider_id))
                return _to_credential(row) if row else None
        except SQLAlchemyError as exc:
            logger.error("credential get error: %s", exc)
            raise StorageError("Failed to read integration credential") from exc

    async def upsert(
        self,
        user_id: str,
        provider_id: str,
        fields: Dict[str, Any],
        *,
        merge: bool = True,
    ) -> Credential:
        try:
            async with self._session_factory() as session:
                row = await session.get(IntegrationCredential, (user_id, provider_id))
                record = merge_fields(
                    _to_credential(row) if row else None, provider_id, fields, merge=merge
                )
                if row is None:
                    row = IntegrationCredential(user_id=user_id, provider=provider_id)
                    session.add(row)
                row.status = record.status
                row.token = record.token
                row.connected_at = _parse_timestamp(record.connected_at)
                row.provider_meta = record.metadata
                await session.commit()
                logger.info("Stored %s credential for user %s", provider_id, user_id)
                return record
        except SQLAlchemyError as exc:
            logger.error("credential upsert error: %s", exc)
            raise StorageError("Failed to save integration credential") from exc

    async def delete(self, user_id: str, provider_id: str) -> None:
        try:
            async with self._session_factory() as session:
                await session.execute(
                    delete(IntegrationCredential).where(
                        IntegrationCredential.user_id == user_id,
                        IntegrationCredential.provider == provider_id,
                    )
                )
                await session.commit()
        except SQLAlchemyError as exc:
            logger.error("credential delete error: %s", exc)
            raise StorageError("Failed to delete integration credential") from exc

    async def list_for_user(self, user_id: str) -> List[Credential]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(IntegrationCredential).where(
                        IntegrationCredential.user_id == user_id
                    )
                )
                return [_to_credential(row) for row in result.scalars().all()]
        except SQLAlchemyError as exc:
            logger.error("credential list error: %s", exc)
            raise StorageError("Failed to list integration credentials") from exc
