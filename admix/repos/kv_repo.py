from __future__ import annotations

import copy
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Protocol

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from admix.core.errors import StoreUnavailableError
from admix.models import KvEntry


class KeyValueStore(Protocol):
    async def get(self, key: str) -> Any | None:
        ...

    async def set(self, key: str, value: Any) -> None:
        ...

    async def delete(self, key: str) -> None:
        ...

    async def list_keys(self, prefix: str) -> list[str]:
        ...

    def transaction(self):
        """Async context manager; writes inside it land together or not at all."""
        ...

    def savepoint(self):
        """Nested scope inside a transaction; a failure rolls back only this scope."""
        ...


class SqlKeyValueStore:
    """
    Key-value records in the `kv_entries` table.

    Every SQLAlchemy failure is reported as StoreUnavailableError so callers
    never see driver exceptions.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, key: str) -> Any | None:
        try:
            res = await self.db.execute(select(KvEntry.value).where(KvEntry.key == key))
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"store read failed for {key}: {e}") from e
        return res.scalar_one_or_none()

    async def set(self, key: str, value: Any) -> None:
        try:
            entry = await self.db.get(KvEntry, key)
            if entry is None:
                self.db.add(KvEntry(key=key, value=value))
            else:
                entry.value = value
            await self.db.flush()
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"store write failed for {key}: {e}") from e

    async def delete(self, key: str) -> None:
        try:
            await self.db.execute(delete(KvEntry).where(KvEntry.key == key))
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"store delete failed for {key}: {e}") from e

    async def list_keys(self, prefix: str) -> list[str]:
        try:
            res = await self.db.execute(
                select(KvEntry.key)
                .where(KvEntry.key.startswith(prefix, autoescape=True))
                .order_by(KvEntry.key.asc())
            )
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"store scan failed for {prefix}: {e}") from e
        return list(res.scalars().all())

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        try:
            async with self.db.begin():
                yield
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"store transaction failed: {e}") from e

    @asynccontextmanager
    async def savepoint(self) -> AsyncIterator[None]:
        # a failed statement aborts the whole postgres transaction unless it ran under a SAVEPOINT
        try:
            async with self.db.begin_nested():
                yield
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"store savepoint failed: {e}") from e


class InMemoryKeyValueStore:
    """In-memory implementation for dev/tests; same contract as SqlKeyValueStore."""

    def __init__(self) -> None:
        self._data: dict[str, Any] = {}

    async def get(self, key: str) -> Any | None:
        value = self._data.get(key)
        return copy.deepcopy(value)

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def list_keys(self, prefix: str) -> list[str]:
        return sorted(k for k in self._data if k.startswith(prefix))

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        snapshot = dict(self._data)
        try:
            yield
        except BaseException:
            self._data = snapshot
            raise

    # values are never mutated in place, so a shallow snapshot is a full one
    savepoint = transaction
