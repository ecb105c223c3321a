from __future__ import annotations

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, model_validator

from admix.schemas.version import StreamType

TrackType = Literal["voice", "music", "soundfx"]


class TrackMetadata(BaseModel):
    voice_id: Optional[str] = None
    voice_provider: Optional[str] = None
    script_text: Optional[str] = None
    prompt_text: Optional[str] = None
    source: Optional[str] = None
    original_duration: Optional[float] = None


class MixerTrack(BaseModel):
    id: str
    url: str
    label: str
    type: TrackType
    volume: Optional[float] = Field(default=None, ge=0)

    start_time: Optional[float] = Field(default=None, ge=0)
    duration: Optional[float] = Field(default=None, ge=0)

    # "start" | "previous" | <track id>
    play_after: Optional[str] = None
    overlap: Optional[float] = Field(default=None, ge=0)

    is_concurrent: Optional[bool] = None
    concurrent_group: Optional[str] = None

    metadata: Optional[TrackMetadata] = None

    @model_validator(mode="after")
    def _group_implies_concurrent(self) -> "MixerTrack":
        if self.concurrent_group and self.is_concurrent is None:
            self.is_concurrent = True
        return self


class CalculatedTrack(MixerTrack):
    actual_start_time: float = Field(ge=0)
    actual_duration: float = Field(ge=0)


class ActiveVersions(BaseModel):
    voices: Optional[str] = None
    music: Optional[str] = None
    sfx: Optional[str] = None


class MixerState(BaseModel):
    tracks: List[MixerTrack] = []
    calculated_tracks: List[CalculatedTrack] = []
    total_duration: int = 0
    volumes: Dict[str, float] = {}
    active_versions: ActiveVersions = Field(default_factory=ActiveVersions)
    last_calculated: int = 0


# ---- API payloads ----

class MeasuredDurationsIn(BaseModel):
    durations: Dict[str, float]


class RebuildIn(BaseModel):
    durations: Dict[str, float] = {}


class RemoveStreamIn(BaseModel):
    stream: StreamType


class ActivateOut(BaseModel):
    active: str
    mixer: MixerState


class DeleteVersionOut(BaseModel):
    was_active: bool
    mixer: Optional[MixerState] = None
