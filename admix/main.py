import logging

from fastapi import FastAPI

from admix.api.v1.router import router as v1_router
from admix.core import settings

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="admix API", version="0.1.0")
app.include_router(v1_router, prefix="/v1")


@app.on_event("startup")
async def startup_event():
    """Create the kv table directly when migrations are not in use (local dev)."""
    if settings.STORE_BACKEND == "postgres" and settings.AUTO_CREATE_TABLES:
        from admix.core.db import engine
        from admix.models import Base

        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
