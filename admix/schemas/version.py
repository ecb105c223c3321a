from __future__ import annotations

from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter

StreamType = Literal["voices", "music", "sfx"]
STREAMS: tuple[StreamType, ...] = ("voices", "music", "sfx")

VersionStatus = Literal["draft", "frozen"]
CreatedBy = Literal["user", "llm"]


class VoiceRef(BaseModel):
    id: str
    name: str
    provider: Optional[str] = None


class VoiceLine(BaseModel):
    voice: Optional[VoiceRef] = None
    text: str = ""
    generated_url: Optional[str] = None
    generated_duration: Optional[float] = Field(default=None, ge=0)
    track_provider: Optional[str] = None

    play_after: Optional[str] = None
    overlap: Optional[float] = Field(default=None, ge=0)
    is_concurrent: Optional[bool] = None
    concurrent_group: Optional[str] = None


class SfxPlacement(BaseModel):
    """Where a sound effect should land relative to the voice lines."""
    type: Literal["before_voices", "start", "with_first_voice", "after_voice", "end"]
    index: Optional[int] = Field(default=None, ge=0)   # only for after_voice


class SfxPrompt(BaseModel):
    description: str
    duration: Optional[float] = Field(default=None, ge=0)
    play_after: Optional[str] = None
    overlap: Optional[float] = Field(default=None, ge=0)
    placement: Optional[SfxPlacement] = None
    generated_url: Optional[str] = None


class VersionBase(BaseModel):
    status: VersionStatus = "draft"
    created_at: int                               # epoch ms
    created_by: CreatedBy = "user"
    parent_version_id: Optional[str] = None
    prompt_context: Optional[str] = None

    # legacy records kept URLs beside the content items; read-only fallback
    generated_urls: List[str] = []


class VoiceVersion(VersionBase):
    stream: Literal["voices"] = "voices"
    voice_tracks: List[VoiceLine] = []


class MusicVersion(VersionBase):
    stream: Literal["music"] = "music"
    music_prompt: str = ""
    provider: str = "custom"
    generated_url: str = ""
    duration: Optional[float] = Field(default=None, ge=0)


class SfxVersion(VersionBase):
    stream: Literal["sfx"] = "sfx"
    sound_fx_prompts: List[SfxPrompt] = []


Version = Annotated[Union[VoiceVersion, MusicVersion, SfxVersion], Field(discriminator="stream")]
VersionAdapter: TypeAdapter[Version] = TypeAdapter(Version)

VERSION_MODELS: dict[str, type[VersionBase]] = {
    "voices": VoiceVersion,
    "music": MusicVersion,
    "sfx": SfxVersion,
}


# ---- API payloads ----

class AdCreateIn(BaseModel):
    ad_id: Optional[str] = None
    name: str = ""


class AdOut(BaseModel):
    ad_id: str
    name: str
    created_at: int


class VersionCreateOut(BaseModel):
    version_id: str
    status: VersionStatus = "draft"


class VersionListOut(BaseModel):
    versions: List[str]
    active: Optional[str]
    versions_data: Dict[str, Version]


class VersionOut(BaseModel):
    version_id: str
    version: Version


def resolved_url(item_url: Optional[str], legacy_urls: List[str], index: int) -> Optional[str]:
    """Per-item URL, falling back to the legacy parallel array of older records."""
    if item_url:
        return item_url
    if index < len(legacy_urls) and legacy_urls[index]:
        return legacy_urls[index]
    return None
