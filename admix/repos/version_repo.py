from __future__ import annotations

import logging
import re
import time

from pydantic import ValidationError

from admix.core.errors import (
    IncompleteContentError,
    InvalidStateError,
    MalformedInputError,
    NotFoundError,
)
from admix.repos.keys import AdKeys, check_id
from admix.repos.kv_repo import KeyValueStore
from admix.schemas.version import (
    VERSION_MODELS,
    StreamType,
    Version,
    VersionAdapter,
    VoiceVersion,
    resolved_url,
)

logger = logging.getLogger(__name__)

# never taken from a create/update payload
_SYSTEM_FIELDS = ("stream", "status", "created_at")
# preserved across draft updates
_IMMUTABLE_FIELDS = ("created_at", "created_by", "parent_version_id")

_VERSION_NO = re.compile(r"^v(\d+)$")


def _now_ms() -> int:
    return int(time.time() * 1000)


def _version_sort_key(version_id: str) -> tuple[int, str]:
    m = _VERSION_NO.match(version_id)
    return (int(m.group(1)) if m else 2**31, version_id)


def _migrate_legacy_urls(data: dict) -> dict:
    """Fold the legacy generated_urls array into the per-item URLs."""
    legacy = data.get("generated_urls") or []
    if legacy:
        stream = data.get("stream")
        if stream == "music":
            if not data.get("generated_url") and legacy[0]:
                data["generated_url"] = legacy[0]
        else:
            items_key = "voice_tracks" if stream == "voices" else "sound_fx_prompts"
            for i, item in enumerate(data.get(items_key) or []):
                url = resolved_url(item.get("generated_url"), legacy, i)
                if url:
                    item["generated_url"] = url
    data["generated_urls"] = []
    return data


class VersionRepo:
    """
    Version lifecycle for the three streams of an ad.

    Records live under "{ad_id}:{stream}:version:{version_id}" and the active
    pointer under "{ad_id}:{stream}:active". Transactions are the caller's
    business; every method here assumes it already runs inside one.
    """

    def __init__(self, store: KeyValueStore):
        self.store = store

    # --- reads ---
    async def get_version(self, ad_id: str, stream: StreamType, version_id: str) -> Version | None:
        check_id(ad_id, "ad id")
        check_id(version_id, "version id")
        raw = await self.store.get(AdKeys.version(ad_id, stream, version_id))
        if raw is None:
            return None
        try:
            # older records carry no stream tag; the key already says which stream it is
            return VersionAdapter.validate_python({**raw, "stream": stream})
        except ValidationError as e:
            raise MalformedInputError(f"stored {stream} version {version_id} is malformed: {e}") from e

    async def require_version(self, ad_id: str, stream: StreamType, version_id: str) -> Version:
        version = await self.get_version(ad_id, stream, version_id)
        if version is None:
            raise NotFoundError(f"{stream} version {version_id} not found for ad {ad_id}")
        return version

    async def list_versions(self, ad_id: str, stream: StreamType) -> list[str]:
        check_id(ad_id, "ad id")
        prefix = AdKeys.version_prefix(ad_id, stream)
        keys = await self.store.list_keys(prefix)
        return sorted((k[len(prefix):] for k in keys), key=_version_sort_key)

    async def get_active(self, ad_id: str, stream: StreamType) -> str | None:
        check_id(ad_id, "ad id")
        return await self.store.get(AdKeys.active(ad_id, stream)) or None

    # --- writes ---
    async def create_version(self, ad_id: str, stream: StreamType, payload: dict) -> tuple[str, Version]:
        """Create a draft from a caller payload; returns (version_id, version)."""
        check_id(ad_id, "ad id")
        if payload.get("generated_urls"):
            raise MalformedInputError("generated_urls is read-only; set generated_url on each item")

        data = {k: v for k, v in payload.items() if k not in _SYSTEM_FIELDS}
        data.update(stream=stream, status="draft", created_at=_now_ms(), generated_urls=[])
        version = self._validate(stream, data)

        version_id = await self._next_version_id(ad_id, stream)
        await self._save(ad_id, stream, version_id, version)
        logger.info("Created %s version %s for ad %s", stream, version_id, ad_id)
        return version_id, version

    async def update_version(self, ad_id: str, stream: StreamType, version_id: str, updates: dict) -> Version:
        current = await self.require_version(ad_id, stream, version_id)
        if current.status != "draft":
            raise InvalidStateError(f"{stream} version {version_id} is {current.status}; only drafts can be edited")
        if updates.get("generated_urls"):
            raise MalformedInputError("generated_urls is read-only; set generated_url on each item")

        merged = current.model_dump(mode="json")
        merged.update({
            k: v for k, v in updates.items()
            if k not in _SYSTEM_FIELDS and k not in _IMMUTABLE_FIELDS and k != "generated_urls"
        })
        version = self._validate(stream, merged)

        await self._save(ad_id, stream, version_id, version)
        logger.info("Updated %s version %s for ad %s", stream, version_id, ad_id)
        return version

    async def freeze_or_activate(self, ad_id: str, stream: StreamType, version_id: str) -> Version:
        """Freeze (if still a draft) and point the stream's active pointer at the version."""
        version = await self.require_version(ad_id, stream, version_id)
        if isinstance(version, VoiceVersion):
            check_voice_audio(version)

        if version.status != "frozen":
            version = version.model_copy(update={"status": "frozen"})
            await self._save(ad_id, stream, version_id, version)
        await self.store.set(AdKeys.active(ad_id, stream), version_id)
        logger.info("Activated %s version %s for ad %s", stream, version_id, ad_id)
        return version

    async def delete_version(self, ad_id: str, stream: StreamType, version_id: str) -> bool:
        """Delete a version; returns True when it was the active one (pointer cleared)."""
        await self.require_version(ad_id, stream, version_id)
        was_active = (await self.get_active(ad_id, stream)) == version_id

        await self.store.delete(AdKeys.version(ad_id, stream, version_id))
        if was_active:
            await self.store.delete(AdKeys.active(ad_id, stream))
        logger.info("Deleted %s version %s for ad %s (was_active=%s)", stream, version_id, ad_id, was_active)
        return was_active

    async def clone_version(self, ad_id: str, stream: StreamType, version_id: str) -> tuple[str, Version]:
        source = await self.require_version(ad_id, stream, version_id)

        data = _migrate_legacy_urls(source.model_dump(mode="json"))
        data.update(
            status="draft",
            created_at=_now_ms(),
            created_by="user",
            parent_version_id=version_id,
        )
        version = self._validate(stream, data)

        new_id = await self._next_version_id(ad_id, stream)
        await self._save(ad_id, stream, new_id, version)
        logger.info("Cloned %s version %s -> %s for ad %s", stream, version_id, new_id, ad_id)
        return new_id, version

    async def clear_active(self, ad_id: str, stream: StreamType) -> None:
        check_id(ad_id, "ad id")
        await self.store.delete(AdKeys.active(ad_id, stream))

    # --- internals ---
    def _validate(self, stream: StreamType, data: dict) -> Version:
        try:
            return VERSION_MODELS[stream].model_validate(data)
        except ValidationError as e:
            raise MalformedInputError(f"invalid {stream} version payload: {e}") from e

    async def _save(self, ad_id: str, stream: StreamType, version_id: str, version: Version) -> None:
        await self.store.set(AdKeys.version(ad_id, stream, version_id), version.model_dump(mode="json"))

    async def _next_version_id(self, ad_id: str, stream: StreamType) -> str:
        # counter never goes back, so ids of deleted versions are not reused
        seq = await self.store.get(AdKeys.seq(ad_id, stream))
        if seq is None:
            existing = await self.list_versions(ad_id, stream)
            seq = max((_version_sort_key(v)[0] for v in existing if _VERSION_NO.match(v)), default=0)
        seq = int(seq) + 1
        await self.store.set(AdKeys.seq(ad_id, stream), seq)
        return f"v{seq}"


def check_voice_audio(version: VoiceVersion) -> None:
    """Raise unless every voice line has generated audio (own URL or legacy array entry)."""
    legacy = version.generated_urls
    if legacy and len(legacy) != len(version.voice_tracks):
        raise MalformedInputError(
            f"legacy generated_urls has {len(legacy)} entries for {len(version.voice_tracks)} voice tracks"
        )
    missing = sum(
        1 for i, line in enumerate(version.voice_tracks)
        if not resolved_url(line.generated_url, legacy, i)
    )
    if missing:
        raise IncompleteContentError(missing, len(version.voice_tracks))
