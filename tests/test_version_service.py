import pytest

from admix.core.errors import (
    IncompleteContentError,
    InvalidStateError,
    MalformedInputError,
    NotFoundError,
)
from admix.repos.keys import AdKeys
from tests.factories import voice_line

AD = "spring-sale"


def voices_payload(*lines):
    return {"voice_tracks": list(lines)}


@pytest.mark.asyncio
async def test_create_draft_creates_ad_and_numbers_versions(versions):
    vid1, v1 = await versions.create_draft(AD, "voices", voices_payload(voice_line("Ava", "Hello")))
    vid2, _ = await versions.create_draft(AD, "voices", voices_payload(voice_line("Ava", "Hi")))

    assert (vid1, vid2) == ("v1", "v2")
    assert v1.status == "draft"
    assert v1.created_by == "user"
    ad = await versions.get_ad(AD)
    assert ad.ad_id == AD


@pytest.mark.asyncio
async def test_create_ignores_caller_status(versions):
    _, version = await versions.create_draft(AD, "music", {"music_prompt": "jazz", "status": "frozen"})
    assert version.status == "draft"


@pytest.mark.asyncio
async def test_create_rejects_legacy_url_array(versions):
    with pytest.raises(MalformedInputError):
        await versions.create_draft(AD, "sfx", {"sound_fx_prompts": [], "generated_urls": ["https://x"]})


@pytest.mark.asyncio
async def test_unknown_stream_and_bad_ids(versions):
    with pytest.raises(MalformedInputError):
        await versions.create_draft(AD, "jingles", {})
    with pytest.raises(MalformedInputError):
        await versions.create_draft("a:b", "voices", {})
    with pytest.raises(MalformedInputError):
        await versions.create_draft("", "voices", {})


@pytest.mark.asyncio
async def test_unknown_ad_and_version(versions):
    with pytest.raises(NotFoundError):
        await versions.get_version("nobody", "voices", "v1")
    await versions.create_ad(ad_id=AD)
    with pytest.raises(NotFoundError):
        await versions.get_version(AD, "voices", "v9")


@pytest.mark.asyncio
async def test_update_draft_keeps_lineage_fields(versions):
    vid, original = await versions.create_draft(AD, "music", {"music_prompt": "jazz"})
    updated = await versions.update_draft(
        AD, "music", vid, {"music_prompt": "lofi", "created_at": 1, "status": "frozen"}
    )
    assert updated.music_prompt == "lofi"
    assert updated.created_at == original.created_at
    assert updated.status == "draft"


@pytest.mark.asyncio
async def test_frozen_versions_are_immutable(versions):
    vid, _ = await versions.create_draft(AD, "music", {"music_prompt": "jazz", "generated_url": "https://x/m.mp3"})
    await versions.freeze_or_activate(AD, "music", vid)
    with pytest.raises(InvalidStateError):
        await versions.update_draft(AD, "music", vid, {"music_prompt": "rock"})


@pytest.mark.asyncio
async def test_freeze_refuses_voices_without_audio(versions):
    vid, _ = await versions.create_draft(AD, "voices", voices_payload(
        voice_line("Ava", "one", url="https://x/1.mp3", duration=2.0),
        voice_line("Ben", "two"),
    ))
    with pytest.raises(IncompleteContentError) as exc:
        await versions.freeze_or_activate(AD, "voices", vid)
    assert exc.value.missing_count == 1

    listing = await versions.list_versions(AD, "voices")
    assert listing.active is None
    assert listing.versions_data[vid].status == "draft"


@pytest.mark.asyncio
async def test_freeze_accepts_legacy_url_array(store, versions):
    await versions.create_ad(ad_id=AD)
    await store.set(AdKeys.version(AD, "voices", "v1"), {
        "status": "draft",
        "created_at": 1,
        "voice_tracks": [{"text": "one"}, {"text": "two"}],
        "generated_urls": ["https://x/1.mp3", "https://x/2.mp3"],
    })
    version, mixer = await versions.freeze_or_activate(AD, "voices", "v1")
    assert version.status == "frozen"
    assert [t.url for t in mixer.tracks] == ["https://x/1.mp3", "https://x/2.mp3"]


@pytest.mark.asyncio
async def test_activate_sets_pointer_and_rebuilds_mixer(versions):
    vid, _ = await versions.create_draft(AD, "voices", voices_payload(
        voice_line("Ava", "one", url="https://x/1.mp3", duration=4.0),
    ))
    _, mixer = await versions.freeze_or_activate(AD, "voices", vid)

    listing = await versions.list_versions(AD, "voices")
    assert listing.active == vid
    assert mixer.active_versions.voices == vid
    assert [t.id for t in mixer.tracks] == [f"voice-{vid}-0"]
    assert mixer.total_duration == 4


@pytest.mark.asyncio
async def test_deleting_active_version_clears_it_from_mix(versions):
    vid, _ = await versions.create_draft(AD, "music", {"music_prompt": "jazz", "generated_url": "https://x/m.mp3", "duration": 8})
    await versions.freeze_or_activate(AD, "music", vid)

    was_active, mixer = await versions.delete_version(AD, "music", vid)

    assert was_active is True
    assert mixer.tracks == []
    assert mixer.active_versions.music is None
    assert (await versions.list_versions(AD, "music")).active is None


@pytest.mark.asyncio
async def test_deleting_inactive_version_leaves_mixer(versions):
    vid, _ = await versions.create_draft(AD, "music", {"music_prompt": "jazz"})
    was_active, mixer = await versions.delete_version(AD, "music", vid)
    assert was_active is False
    assert mixer is None


@pytest.mark.asyncio
async def test_version_ids_are_not_reused(versions):
    await versions.create_draft(AD, "sfx", {})
    vid2, _ = await versions.create_draft(AD, "sfx", {})
    await versions.delete_version(AD, "sfx", vid2)
    vid3, _ = await versions.create_draft(AD, "sfx", {})
    assert vid3 == "v3"
    assert (await versions.list_versions(AD, "sfx")).versions == ["v1", "v3"]


@pytest.mark.asyncio
async def test_clone_records_parent_and_migrates_legacy_urls(store, versions):
    await versions.create_ad(ad_id=AD)
    await store.set(AdKeys.version(AD, "voices", "v1"), {
        "status": "frozen",
        "created_at": 1,
        "created_by": "llm",
        "voice_tracks": [{"text": "one"}, {"text": "two", "generated_url": "https://x/own.mp3"}],
        "generated_urls": ["https://x/1.mp3", "https://x/2.mp3"],
    })

    new_id, clone = await versions.clone_version(AD, "voices", "v1")

    assert new_id == "v2"
    assert clone.status == "draft"
    assert clone.created_by == "user"
    assert clone.parent_version_id == "v1"
    assert clone.generated_urls == []
    assert [line.generated_url for line in clone.voice_tracks] == ["https://x/1.mp3", "https://x/own.mp3"]


@pytest.mark.asyncio
async def test_remove_stream(versions):
    vid, _ = await versions.create_draft(AD, "music", {"music_prompt": "jazz", "generated_url": "https://x/m.mp3"})
    await versions.freeze_or_activate(AD, "music", vid)

    mixer = await versions.remove_stream(AD, "music")
    assert mixer.tracks == []
    assert mixer.active_versions.music is None
    # the version itself survives
    assert (await versions.get_version(AD, "music", vid)).status == "frozen"

    with pytest.raises(MalformedInputError):
        await versions.remove_stream(AD, "voices")
