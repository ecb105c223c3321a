from __future__ import annotations

import logging
import uuid

from admix.core.errors import MalformedInputError, NotFoundError
from admix.repos.ad_repo import AdRepo
from admix.repos.keys import check_id
from admix.repos.kv_repo import KeyValueStore
from admix.repos.version_repo import VersionRepo
from admix.runtime.ad_locks import ad_lock
from admix.schemas.mixer import MixerState
from admix.schemas.version import STREAMS, AdOut, StreamType, Version, VersionListOut
from admix.services.mixer_service import MixerService

logger = logging.getLogger(__name__)


def parse_stream(stream: str) -> StreamType:
    if stream not in STREAMS:
        raise MalformedInputError(f"unknown stream {stream!r}; expected one of {', '.join(STREAMS)}")
    return stream  # type: ignore[return-value]


class VersionService:
    """
    Consumer-facing version operations for one ad.

    Pointer changes (freeze/activate, deleting the active version, removing a
    stream) hold the ad lock and commit before the mixer rebuild starts, so the
    rebuild always reads the pointer it is meant to reflect.
    """

    def __init__(self, store: KeyValueStore):
        self.store = store
        self.ads = AdRepo(store)
        self.versions = VersionRepo(store)
        self.mixer_svc = MixerService(store)

    # --- ads ---
    async def create_ad(self, *, ad_id: str | None = None, name: str = "") -> AdOut:
        ad_id = check_id(ad_id, "ad id") if ad_id is not None else uuid.uuid4().hex
        async with self.store.transaction():
            meta = await self.ads.create_ad(ad_id, name=name)
        return AdOut(**meta)

    async def get_ad(self, ad_id: str) -> AdOut:
        async with self.store.transaction():
            meta = await self._require_ad(ad_id)
        return AdOut(**meta)

    # --- versions ---
    async def create_draft(self, ad_id: str, stream: str, payload: dict) -> tuple[str, Version]:
        stream = parse_stream(stream)
        async with self.store.transaction():
            await self.ads.create_ad(ad_id)  # lazily, like a first edit in a fresh ad
            return await self.versions.create_version(ad_id, stream, payload)

    async def get_version(self, ad_id: str, stream: str, version_id: str) -> Version:
        stream = parse_stream(stream)
        async with self.store.transaction():
            await self._require_ad(ad_id)
            return await self.versions.require_version(ad_id, stream, version_id)

    async def list_versions(self, ad_id: str, stream: str) -> VersionListOut:
        stream = parse_stream(stream)
        async with self.store.transaction():
            await self._require_ad(ad_id)
            ids = await self.versions.list_versions(ad_id, stream)
            active = await self.versions.get_active(ad_id, stream)
            data: dict[str, Version] = {}
            for version_id in ids:
                version = await self.versions.get_version(ad_id, stream, version_id)
                if version is not None:
                    data[version_id] = version
        return VersionListOut(versions=ids, active=active, versions_data=data)

    async def update_draft(self, ad_id: str, stream: str, version_id: str, updates: dict) -> Version:
        stream = parse_stream(stream)
        async with self.store.transaction():
            await self._require_ad(ad_id)
            return await self.versions.update_version(ad_id, stream, version_id, updates)

    async def freeze_or_activate(self, ad_id: str, stream: str, version_id: str) -> tuple[Version, MixerState]:
        stream = parse_stream(stream)
        async with ad_lock(ad_id):
            async with self.store.transaction():
                await self._require_ad(ad_id)
                version = await self.versions.freeze_or_activate(ad_id, stream, version_id)
            mixer = await self.mixer_svc.rebuild(ad_id)
        return version, mixer

    async def delete_version(self, ad_id: str, stream: str, version_id: str) -> tuple[bool, MixerState | None]:
        """Returns (was_active, mixer); the mixer is rebuilt only when the active version went away."""
        stream = parse_stream(stream)
        async with ad_lock(ad_id):
            async with self.store.transaction():
                await self._require_ad(ad_id)
                was_active = await self.versions.delete_version(ad_id, stream, version_id)
            mixer = await self.mixer_svc.rebuild(ad_id) if was_active else None
        return was_active, mixer

    async def clone_version(self, ad_id: str, stream: str, version_id: str) -> tuple[str, Version]:
        stream = parse_stream(stream)
        async with self.store.transaction():
            await self._require_ad(ad_id)
            return await self.versions.clone_version(ad_id, stream, version_id)

    async def remove_stream(self, ad_id: str, stream: str) -> MixerState:
        """Take music or sound effects out of the mix by clearing the stream's active pointer."""
        stream = parse_stream(stream)
        if stream == "voices":
            raise MalformedInputError("voice tracks cannot be removed from the mix; edit the voice version instead")
        async with ad_lock(ad_id):
            async with self.store.transaction():
                await self._require_ad(ad_id)
                await self.versions.clear_active(ad_id, stream)
            logger.info("Removed %s stream from mixer of ad %s", stream, ad_id)
            return await self.mixer_svc.rebuild(ad_id)

    async def _require_ad(self, ad_id: str) -> dict:
        meta = await self.ads.get_ad(ad_id)
        if meta is None:
            raise NotFoundError(f"ad {ad_id} not found")
        return meta
