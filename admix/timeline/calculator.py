"""
Timeline calculator.

Turns an untimed list of mixer tracks into positioned tracks. Pure and
deterministic: the only inputs are the tracks and a map of measured audio
durations, and ties are always broken by input order.

Placement runs in fixed passes, each touching only tracks that an earlier
pass left unplaced:

1. explicit `start_time`
2. voice sequencing (`play_after` / `overlap` against earlier voices)
3. concurrent groups (all members share one start time)
4. music (anchored at 0, trimmed to the voice end plus a tail)
5. sound effects (`start`, `previous`, a track id, or the intro default)
6. catch-all (appended after the latest end so no track is ever dropped)
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Mapping, Sequence

from admix.schemas.mixer import CalculatedTrack, MixerTrack


@dataclass(frozen=True)
class TimelineResult:
    calculated_tracks: list[CalculatedTrack]
    total_duration: int


@dataclass
class _Slot:
    origin: int                     # index in the input list
    track: MixerTrack
    duration: float
    start: float | None = None
    original_duration: float | None = None

    @property
    def placed(self) -> bool:
        return self.start is not None

    @property
    def end(self) -> float:
        return (self.start or 0.0) + self.duration


def _usable(value: float | None) -> bool:
    return value is not None and math.isfinite(value) and value > 0


class TimelineCalculator:
    FALLBACK_DURATION_S = 3.0
    MUSIC_TAIL_S = 3.0

    def __init__(self) -> None:
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def resolve_duration(self, track: MixerTrack, measured_durations: Mapping[str, float]) -> float:
        """Declared duration, then the measured one, then the fixed fallback."""
        if _usable(track.duration):
            return float(track.duration)
        measured = measured_durations.get(track.id)
        if _usable(measured):
            return float(measured)
        return self.FALLBACK_DURATION_S

    def calculate(
        self,
        tracks: Sequence[MixerTrack],
        measured_durations: Mapping[str, float] | None = None,
    ) -> TimelineResult:
        measured = measured_durations or {}
        if not tracks:
            return TimelineResult(calculated_tracks=[], total_duration=0)

        slots = [
            _Slot(origin=i, track=t, duration=self.resolve_duration(t, measured))
            for i, t in enumerate(tracks)
        ]
        by_id: dict[str, _Slot] = {}
        for slot in slots:
            by_id.setdefault(slot.track.id, slot)  # first occurrence wins

        self._place_explicit(slots)
        self._place_voices(slots, by_id)
        self._place_concurrent_groups(slots, by_id)
        self._place_music(slots)
        self._place_sound_effects(slots, by_id)
        self._place_remaining(slots)

        calculated = [self._to_calculated(slot) for slot in slots]
        latest_end = max(slot.end for slot in slots)
        # float noise like 9.000000000000002 must not add a second; real fractions still do
        total_duration = math.ceil(round(latest_end, 9))
        return TimelineResult(calculated_tracks=calculated, total_duration=total_duration)

    # ---------- passes ----------

    def _place_explicit(self, slots: list[_Slot]) -> None:
        for slot in slots:
            if slot.track.start_time is not None:
                self._place(slot, float(slot.track.start_time), "explicit")

    def _place_voices(self, slots: list[_Slot], by_id: dict[str, _Slot]) -> None:
        sequenced = [
            s for s in slots
            if s.track.type == "voice" and not s.placed and not s.track.is_concurrent
        ]
        previous: _Slot | None = None
        for slot in sequenced:
            if previous is None:
                self._place(slot, 0.0, "first voice")
                previous = slot
                continue

            play_after = slot.track.play_after
            if play_after == "previous":
                self._place(slot, self._after(previous, slot.track.overlap), "after previous voice")
            elif self._is_track_ref(play_after) and self._placed_ref(by_id, play_after, slot) is not None:
                ref = by_id[play_after]
                self._place(slot, self._after(ref, slot.track.overlap), f"after {ref.track.id}")
            else:
                # "start" on a voice line means no explicit anchor
                self._place(slot, self._voice_end(slots), "voice cursor")
            previous = slot

    def _place_concurrent_groups(self, slots: list[_Slot], by_id: dict[str, _Slot]) -> None:
        groups: dict[tuple[str, str], list[_Slot]] = {}
        for slot in slots:
            if slot.placed or not slot.track.is_concurrent:
                continue
            if slot.track.concurrent_group:
                key = ("group", slot.track.concurrent_group)
            else:
                key = ("track", slot.track.id)
            groups.setdefault(key, []).append(slot)

        for (_, name), members in groups.items():
            start = self._group_start(members, slots, by_id)
            for member in members:
                self._place(member, start, f"group {name}")

    def _place_music(self, slots: list[_Slot]) -> None:
        voices = [s for s in slots if s.track.type == "voice" and s.placed]
        for slot in slots:
            if slot.placed or slot.track.type != "music":
                continue
            if voices:
                cap = max(v.end for v in voices) + self.MUSIC_TAIL_S
                if slot.duration > cap:
                    slot.original_duration = slot.duration
                    slot.duration = cap
            self._place(slot, 0.0, "music bed")

    def _place_sound_effects(self, slots: list[_Slot], by_id: dict[str, _Slot]) -> None:
        for slot in slots:
            if slot.placed or slot.track.type != "soundfx":
                continue

            play_after = slot.track.play_after
            if play_after is None or play_after == "start":
                self._place(slot, 0.0, "intro")
            elif play_after == "previous":
                pred = self._previous_sound_effect(slot, slots)
                if pred is not None and pred.placed:
                    self._place(slot, self._after(pred, slot.track.overlap), f"after {pred.track.id}")
                else:
                    self._place(slot, self._voice_end(slots), "after voices")
            else:
                ref = self._placed_ref(by_id, play_after, slot)
                if ref is not None:
                    self._place(slot, self._after(ref, slot.track.overlap), f"after {ref.track.id}")
                else:
                    self._place(slot, self._voice_end(slots), "orphaned reference, after voices")

    def _place_remaining(self, slots: list[_Slot]) -> None:
        for slot in slots:
            if slot.placed:
                continue
            placed = [s.end for s in slots if s.placed]
            self._place(slot, max(placed) if placed else 0.0, "catch-all")

    # ---------- helpers ----------

    def _group_start(self, members: list[_Slot], slots: list[_Slot], by_id: dict[str, _Slot]) -> float:
        if not any(s.placed for s in slots):
            return 0.0

        lead = members[0]
        play_after = lead.track.play_after
        if play_after == "start":
            return 0.0
        if play_after == "previous":
            prev = self._previous_placed_voice(lead, slots)
            if prev is not None:
                return self._after(prev, lead.track.overlap)
            return self._voice_end(slots)
        if self._is_track_ref(play_after):
            ref = self._placed_ref(by_id, play_after, lead)
            if ref is not None and ref not in members:
                return self._after(ref, lead.track.overlap)
        return self._voice_end(slots)

    def _previous_placed_voice(self, slot: _Slot, slots: list[_Slot]) -> _Slot | None:
        for candidate in reversed(slots[: slot.origin]):
            if candidate.track.type == "voice" and candidate.placed:
                return candidate
        return None

    def _previous_sound_effect(self, slot: _Slot, slots: list[_Slot]) -> _Slot | None:
        # "previous" on a sound effect chains to the effect before it, never to voices or music
        for candidate in reversed(slots[: slot.origin]):
            if candidate.track.type == "soundfx" and candidate.placed:
                return candidate
        return None

    def _placed_ref(self, by_id: dict[str, _Slot], track_id: str | None, slot: _Slot) -> _Slot | None:
        if track_id is None:
            return None
        ref = by_id.get(track_id)
        if ref is None or ref is slot or not ref.placed:
            return None
        return ref

    @staticmethod
    def _is_track_ref(play_after: str | None) -> bool:
        return bool(play_after) and play_after not in ("start", "previous")

    @staticmethod
    def _after(ref: _Slot, overlap: float | None) -> float:
        # overlap pulls the start earlier but never before the reference starts
        ref_start = ref.start or 0.0
        if overlap is not None and overlap > 0:
            return max(ref_start, ref.end - overlap)
        return ref.end

    @staticmethod
    def _voice_end(slots: list[_Slot]) -> float:
        ends = [s.end for s in slots if s.track.type == "voice" and s.placed]
        return max(ends) if ends else 0.0

    def _place(self, slot: _Slot, start: float, reason: str) -> None:
        slot.start = max(0.0, start)
        self.logger.debug(
            "Placed %s at %.2fs for %.2fs (%s)", slot.track.id, slot.start, slot.duration, reason
        )

    @staticmethod
    def _to_calculated(slot: _Slot) -> CalculatedTrack:
        data = slot.track.model_dump()
        if slot.original_duration is not None:
            metadata = dict(data.get("metadata") or {})
            metadata["original_duration"] = slot.original_duration
            data["metadata"] = metadata
        data["actual_start_time"] = slot.start
        data["actual_duration"] = slot.duration
        return CalculatedTrack.model_validate(data)


def calculate_timeline(
    tracks: Sequence[MixerTrack],
    measured_durations: Mapping[str, float] | None = None,
) -> TimelineResult:
    return TimelineCalculator().calculate(tracks, measured_durations)
