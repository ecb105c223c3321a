from __future__ import annotations

import math

from pydantic import ValidationError

from admix.core.errors import MalformedInputError
from admix.repos.keys import AdKeys
from admix.repos.kv_repo import KeyValueStore
from admix.schemas.mixer import MixerState


class MixerRepo:
    def __init__(self, store: KeyValueStore):
        self.store = store

    async def get_state(self, ad_id: str) -> MixerState | None:
        raw = await self.store.get(AdKeys.mixer(ad_id))
        if raw is None:
            return None
        try:
            return MixerState.model_validate(raw)
        except ValidationError as e:
            raise MalformedInputError(f"stored mixer state for {ad_id} is malformed: {e}") from e

    async def save_state(self, ad_id: str, state: MixerState) -> None:
        await self.store.set(AdKeys.mixer(ad_id), state.model_dump(mode="json"))

    async def get_measured_durations(self, ad_id: str) -> dict[str, float]:
        raw = await self.store.get(AdKeys.durations(ad_id)) or {}
        return {str(k): float(v) for k, v in raw.items()}

    async def merge_measured_durations(self, ad_id: str, durations: dict[str, float]) -> dict[str, float]:
        """Merge playback measurements into the stored map; non-finite or non-positive values are dropped."""
        merged = await self.get_measured_durations(ad_id)
        for track_id, seconds in durations.items():
            if seconds is not None and math.isfinite(seconds) and seconds > 0:
                merged[track_id] = float(seconds)
        await self.store.set(AdKeys.durations(ad_id), merged)
        return merged
