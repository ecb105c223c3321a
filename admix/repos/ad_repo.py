from __future__ import annotations

import time

from admix.repos.keys import AdKeys, check_id
from admix.repos.kv_repo import KeyValueStore


class AdRepo:
    def __init__(self, store: KeyValueStore):
        self.store = store

    async def get_ad(self, ad_id: str) -> dict | None:
        check_id(ad_id, "ad id")
        return await self.store.get(AdKeys.meta(ad_id))

    async def create_ad(self, ad_id: str, *, name: str = "") -> dict:
        """Create the ad record; an existing ad is returned unchanged."""
        existing = await self.get_ad(ad_id)
        if existing is not None:
            return existing
        meta = {
            "ad_id": ad_id,
            "name": name,
            "created_at": int(time.time() * 1000),
        }
        await self.store.set(AdKeys.meta(ad_id), meta)
        return meta
