from __future__ import annotations

import logging
import time

from admix.core.config import settings
from admix.core.errors import MalformedInputError, NotFoundError, StoreUnavailableError
from admix.repos.ad_repo import AdRepo
from admix.repos.kv_repo import KeyValueStore
from admix.repos.mixer_repo import MixerRepo
from admix.repos.version_repo import VersionRepo
from admix.runtime.ad_locks import ad_lock
from admix.schemas.mixer import ActiveVersions, MixerState, MixerTrack, TrackMetadata
from admix.schemas.version import (
    STREAMS,
    StreamType,
    Version,
    MusicVersion,
    SfxPlacement,
    SfxVersion,
    VoiceVersion,
    resolved_url,
)
from admix.timeline.calculator import TimelineCalculator

logger = logging.getLogger(__name__)

MUSIC_LABEL_PROMPT_CHARS = 40
SFX_LABEL_CHARS = 50


def _now_ms() -> int:
    return int(time.time() * 1000)


def voice_tracks_from(version: VoiceVersion, version_id: str, volume: float | None = None) -> list[MixerTrack]:
    tracks: list[MixerTrack] = []
    for index, line in enumerate(version.voice_tracks):
        url = resolved_url(line.generated_url, version.generated_urls, index)
        if not url:
            continue  # still waiting for generation
        tracks.append(MixerTrack(
            id=f"voice-{version_id}-{index}",
            url=url,
            label=line.voice.name if line.voice else f"Voice {index + 1}",
            type="voice",
            volume=volume,
            duration=line.generated_duration,
            play_after=line.play_after,
            overlap=line.overlap,
            is_concurrent=line.is_concurrent,
            concurrent_group=line.concurrent_group,
            metadata=TrackMetadata(
                voice_id=line.voice.id if line.voice else None,
                voice_provider=line.track_provider or (line.voice.provider if line.voice else None),
                script_text=line.text,
            ),
        ))
    return tracks


def music_label(version: MusicVersion) -> str:
    prompt = version.music_prompt.strip()
    if version.provider == "custom":
        # custom uploads keep the file name in the prompt field
        return prompt or "Custom track"
    provider = version.provider[:1].upper() + version.provider[1:]
    if not prompt:
        return provider
    preview = prompt[:MUSIC_LABEL_PROMPT_CHARS]
    if len(prompt) > MUSIC_LABEL_PROMPT_CHARS:
        preview += "..."
    return f"{provider} - {preview}"


def music_tracks_from(version: MusicVersion, version_id: str, volume: float | None = None) -> list[MixerTrack]:
    url = version.generated_url or resolved_url(None, version.generated_urls, 0)
    if not url:
        return []
    return [MixerTrack(
        id=f"music-{version_id}",
        url=url,
        label=music_label(version),
        type="music",
        volume=volume,
        duration=version.duration,
        metadata=TrackMetadata(prompt_text=version.music_prompt, source=version.provider),
    )]


def resolve_placement(placement: SfxPlacement | None, voice_ids: list[str]) -> str | None:
    """Map a placement intent onto a play_after value against the emitted voice tracks."""
    if placement is None:
        return None
    if placement.type in ("before_voices", "start", "with_first_voice"):
        return "start"
    if placement.type == "after_voice":
        index = placement.index or 0
        for candidate in (index, index - 1, index + 1):
            if 0 <= candidate < len(voice_ids):
                return voice_ids[candidate]
        # no line near the requested one: same as "end"
    # "end"
    return voice_ids[-1] if voice_ids else None


def sfx_tracks_from(
    version: SfxVersion,
    version_id: str,
    voice_ids: list[str],
    volume: float | None = None,
) -> list[MixerTrack]:
    tracks: list[MixerTrack] = []
    for index, prompt in enumerate(version.sound_fx_prompts):
        url = resolved_url(prompt.generated_url, version.generated_urls, index)
        if not url:
            continue
        tracks.append(MixerTrack(
            id=f"sfx-{version_id}-{index}",
            url=url,
            label=prompt.description[:SFX_LABEL_CHARS],
            type="soundfx",
            volume=volume,
            duration=prompt.duration,
            play_after=prompt.play_after or resolve_placement(prompt.placement, voice_ids),
            overlap=prompt.overlap,
            metadata=TrackMetadata(prompt_text=prompt.description, original_duration=prompt.duration),
        ))
    return tracks


class MixerService:
    """
    Rebuilds the per-ad mix from the active version of each stream.

    The stored MixerState is a materialised view: it is replaced wholesale on
    every rebuild and can always be derived again from the active versions.
    """

    def __init__(self, store: KeyValueStore):
        self.store = store
        self.ads = AdRepo(store)
        self.versions = VersionRepo(store)
        self.mixer = MixerRepo(store)
        self.calculator = TimelineCalculator()

    async def rebuild_mixer(
        self,
        ad_id: str,
        measured_durations: dict[str, float] | None = None,
    ) -> MixerState:
        async with ad_lock(ad_id):
            return await self.rebuild(ad_id, measured_durations)

    async def rebuild(
        self,
        ad_id: str,
        measured_durations: dict[str, float] | None = None,
    ) -> MixerState:
        """Rebuild without taking the ad lock; callers that already hold it use this."""
        async with self.store.transaction():
            await self._require_ad(ad_id)
            return await self._rebuild(ad_id, measured_durations)

    async def get_mixer_state(self, ad_id: str) -> MixerState:
        async with self.store.transaction():
            await self._require_ad(ad_id)
            state = await self.mixer.get_state(ad_id)
        if state is None:
            return MixerState(last_calculated=_now_ms())
        return state

    async def record_measured_durations(self, ad_id: str, durations: dict[str, float]) -> MixerState:
        """Store durations reported by a playback client and re-time the current tracks."""
        async with ad_lock(ad_id):
            async with self.store.transaction():
                await self._require_ad(ad_id)
                state = await self.mixer.get_state(ad_id)
                if state is None:
                    return await self._rebuild(ad_id, durations)

                merged = await self.mixer.merge_measured_durations(ad_id, durations)
                result = self.calculator.calculate(state.tracks, merged)
                state = state.model_copy(update={
                    "calculated_tracks": result.calculated_tracks,
                    "total_duration": result.total_duration,
                    "last_calculated": _now_ms(),
                })
                await self.mixer.save_state(ad_id, state)
        logger.info("Re-timed mixer for ad %s with %d measured duration(s)", ad_id, len(durations))
        return state

    # ---------- internals ----------

    async def _require_ad(self, ad_id: str) -> dict:
        ad = await self.ads.get_ad(ad_id)
        if ad is None:
            raise NotFoundError(f"ad {ad_id} not found")
        return ad

    async def _rebuild(self, ad_id: str, measured_durations: dict[str, float] | None) -> MixerState:
        active = {stream: await self.versions.get_active(ad_id, stream) for stream in STREAMS}
        logger.info(
            "Rebuilding mixer for ad %s (voices=%s music=%s sfx=%s)",
            ad_id, active["voices"] or "none", active["music"] or "none", active["sfx"] or "none",
        )

        volumes = settings.default_volumes
        tracks: list[MixerTrack] = []

        voice_version = await self._active_version(ad_id, "voices", active["voices"])
        if isinstance(voice_version, VoiceVersion):
            tracks += voice_tracks_from(voice_version, active["voices"], volumes["voice"])
        voice_ids = [t.id for t in tracks]

        music_version = await self._active_version(ad_id, "music", active["music"])
        if isinstance(music_version, MusicVersion):
            tracks += music_tracks_from(music_version, active["music"], volumes["music"])

        sfx_version = await self._active_version(ad_id, "sfx", active["sfx"])
        if isinstance(sfx_version, SfxVersion):
            tracks += sfx_tracks_from(sfx_version, active["sfx"], voice_ids, volumes["soundfx"])

        if measured_durations:
            durations = await self.mixer.merge_measured_durations(ad_id, measured_durations)
        else:
            durations = await self.mixer.get_measured_durations(ad_id)

        result = self.calculator.calculate(tracks, durations)
        state = MixerState(
            tracks=tracks,
            calculated_tracks=result.calculated_tracks,
            total_duration=result.total_duration,
            volumes={},
            active_versions=ActiveVersions(**active),
            last_calculated=_now_ms(),
        )
        await self.mixer.save_state(ad_id, state)
        logger.info("Mixer for ad %s rebuilt: %d track(s), %ds", ad_id, len(tracks), result.total_duration)
        return state

    async def _active_version(self, ad_id: str, stream: StreamType, version_id: str | None) -> Version | None:
        """Best-effort read of one stream; a broken stream contributes nothing instead of failing the mix."""
        if not version_id:
            return None
        try:
            async with self.store.savepoint():
                version = await self.versions.get_version(ad_id, stream, version_id)
        except (StoreUnavailableError, MalformedInputError) as e:
            logger.warning("Skipping %s stream of ad %s: %s", stream, ad_id, e)
            return None
        if version is None:
            logger.warning("Active %s version %s of ad %s is missing; skipping", stream, version_id, ad_id)
        return version
