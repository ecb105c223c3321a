from __future__ import annotations

from collections.abc import AsyncGenerator

from fastapi import HTTPException

from admix.core.config import settings
from admix.core.db import get_db
from admix.core.errors import (
    AdMixError,
    IncompleteContentError,
    NotFoundError,
    StoreUnavailableError,
)
from admix.repos.kv_repo import InMemoryKeyValueStore, KeyValueStore, SqlKeyValueStore

# process-wide store for STORE_BACKEND=memory
memory_store = InMemoryKeyValueStore()


async def get_store() -> AsyncGenerator[KeyValueStore, None]:
    if settings.STORE_BACKEND == "memory":
        yield memory_store
        return
    async for session in get_db():
        yield SqlKeyValueStore(session)


def http_error(exc: AdMixError) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, IncompleteContentError):
        return HTTPException(
            status_code=400,
            detail={"error": str(exc), "missing_count": exc.missing_count},
        )
    if isinstance(exc, StoreUnavailableError):
        return HTTPException(status_code=503, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))
