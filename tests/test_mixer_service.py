import pytest

from admix.core.errors import NotFoundError, StoreUnavailableError
from admix.repos.keys import AdKeys
from admix.schemas.version import MusicVersion, SfxPlacement, SfxVersion
from admix.services.mixer_service import music_label, resolve_placement, sfx_tracks_from
from tests.factories import voice_line

AD = "winter-promo"


async def activate(versions, stream, payload):
    vid, _ = await versions.create_draft(AD, stream, payload)
    await versions.freeze_or_activate(AD, stream, vid)
    return vid


@pytest.mark.asyncio
async def test_rebuild_unknown_ad(mixer):
    with pytest.raises(NotFoundError):
        await mixer.rebuild_mixer("ghost")


@pytest.mark.asyncio
async def test_mixer_state_before_any_rebuild(versions, mixer):
    await versions.create_ad(ad_id=AD)
    state = await mixer.get_mixer_state(AD)
    assert state.tracks == []
    assert state.total_duration == 0


@pytest.mark.asyncio
async def test_rebuild_combines_active_streams(versions, mixer):
    voices = await activate(versions, "voices", {"voice_tracks": [
        voice_line("Ava", "Winter is here", url="https://x/1.mp3", duration=4.0),
        voice_line("Ben", "Save big", url="https://x/2.mp3", duration=6.0),
    ]})
    music = await activate(versions, "music", {
        "music_prompt": "Cozy acoustic guitar by the fireplace with soft snow",
        "provider": "loudly",
        "generated_url": "https://x/m.mp3",
        "duration": 30.0,
    })
    sfx = await activate(versions, "sfx", {"sound_fx_prompts": [
        {"description": "sleigh bells", "generated_url": "https://x/bells.mp3", "duration": 2.0,
         "placement": {"type": "after_voice", "index": 0}},
        {"description": "not generated yet"},
    ]})

    state = await mixer.rebuild_mixer(AD)

    assert [t.id for t in state.tracks] == [
        f"voice-{voices}-0", f"voice-{voices}-1", f"music-{music}", f"sfx-{sfx}-0",
    ]
    assert [t.label for t in state.tracks] == [
        "Ava", "Ben", "Loudly - Cozy acoustic guitar by the fireplace wi...", "sleigh bells",
    ]
    assert [t.volume for t in state.tracks] == [1.0, 1.0, 0.25, 0.7]
    assert state.active_versions.model_dump() == {"voices": voices, "music": music, "sfx": sfx}

    timed = {t.id: t for t in state.calculated_tracks}
    assert timed[f"sfx-{sfx}-0"].actual_start_time == 4.0
    assert timed[f"music-{music}"].actual_duration == 13.0
    assert state.total_duration == 13


@pytest.mark.asyncio
async def test_rebuild_is_repeatable(versions, mixer):
    await activate(versions, "voices", {"voice_tracks": [voice_line("Ava", "Hi", url="https://x/1.mp3", duration=3.0)]})
    first = await mixer.rebuild_mixer(AD)
    second = await mixer.rebuild_mixer(AD)
    assert first.model_dump(exclude={"last_calculated"}) == second.model_dump(exclude={"last_calculated"})


@pytest.mark.asyncio
async def test_measured_durations_retime_tracks(versions, mixer):
    vid = await activate(versions, "voices", {"voice_tracks": [
        voice_line("Ava", "one", url="https://x/1.mp3"),
        voice_line("Ben", "two", url="https://x/2.mp3"),
    ]})
    state = await mixer.get_mixer_state(AD)
    assert state.total_duration == 6  # both fall back to 3s

    state = await mixer.record_measured_durations(AD, {f"voice-{vid}-0": 5.0, f"voice-{vid}-1": float("nan")})
    timed = {t.id: t for t in state.calculated_tracks}
    assert timed[f"voice-{vid}-0"].actual_duration == 5.0
    assert timed[f"voice-{vid}-1"].actual_start_time == 5.0
    assert state.total_duration == 8

    # measurements survive a full rebuild
    rebuilt = await mixer.rebuild_mixer(AD)
    assert rebuilt.total_duration == 8


def test_resolve_placement():
    ids = ["voice-v1-0", "voice-v1-1"]
    assert resolve_placement(None, ids) is None
    assert resolve_placement(SfxPlacement(type="before_voices"), ids) == "start"
    assert resolve_placement(SfxPlacement(type="with_first_voice"), ids) == "start"
    assert resolve_placement(SfxPlacement(type="after_voice", index=1), ids) == "voice-v1-1"
    assert resolve_placement(SfxPlacement(type="after_voice", index=2), ids) == "voice-v1-1"
    assert resolve_placement(SfxPlacement(type="after_voice", index=7), ids) == "voice-v1-1"
    assert resolve_placement(SfxPlacement(type="after_voice", index=0), []) is None
    assert resolve_placement(SfxPlacement(type="after_voice", index=1), ["voice-v2-0"]) == "voice-v2-0"
    assert resolve_placement(SfxPlacement(type="end"), ids) == "voice-v1-1"
    assert resolve_placement(SfxPlacement(type="end"), []) is None


def test_explicit_play_after_beats_placement():
    version = SfxVersion(created_at=1, sound_fx_prompts=[{
        "description": "pop", "generated_url": "https://x/p.mp3",
        "play_after": "previous", "placement": {"type": "end"},
    }])
    [track] = sfx_tracks_from(version, "v1", ["voice-v1-0"])
    assert track.play_after == "previous"


def test_music_labels():
    assert music_label(MusicVersion(created_at=1, music_prompt="my-upload.mp3")) == "my-upload.mp3"
    assert music_label(MusicVersion(created_at=1)) == "Custom track"
    assert music_label(MusicVersion(created_at=1, provider="mubert", music_prompt="calm")) == "Mubert - calm"


@pytest.mark.asyncio
async def test_broken_stream_does_not_block_the_others(store, versions, mixer):
    vid = await activate(versions, "voices", {"voice_tracks": [
        voice_line("Ava", "one", url="https://x/1.mp3", duration=4.0),
        voice_line("Ben", "two", url="https://x/2.mp3", duration=6.0),
    ]})
    await store.set(AdKeys.version(AD, "music", "v1"), {"created_at": "yesterday", "music_prompt": "jazz"})
    await store.set(AdKeys.active(AD, "music"), "v1")

    state = await mixer.rebuild_mixer(AD)

    timed = {t.id: t.actual_start_time for t in state.calculated_tracks}
    assert timed == {f"voice-{vid}-0": 0.0, f"voice-{vid}-1": 4.0}
    assert state.total_duration == 10
    assert state.active_versions.music == "v1"


@pytest.mark.asyncio
async def test_failed_rebuild_persists_nothing(store, versions, mixer):
    vid = await activate(versions, "voices", {"voice_tracks": [
        voice_line("Ava", "one", url="https://x/1.mp3", duration=3.0),
    ]})
    before = await mixer.get_mixer_state(AD)

    async def save_fails(ad_id, state):
        raise StoreUnavailableError("write failed")

    mixer.mixer.save_state = save_fails
    with pytest.raises(StoreUnavailableError):
        await mixer.rebuild_mixer(AD, {f"voice-{vid}-0": 9.0})

    assert await mixer.get_mixer_state(AD) == before
    assert await store.get(AdKeys.durations(AD)) is None
