from fastapi import APIRouter, Body, Depends

from admix.api.deps import get_store, http_error
from admix.core.errors import AdMixError
from admix.repos.kv_repo import KeyValueStore
from admix.schemas.mixer import MeasuredDurationsIn, MixerState, RebuildIn, RemoveStreamIn
from admix.services.mixer_service import MixerService
from admix.services.version_service import VersionService

router = APIRouter()


@router.get("/{ad_id}/mixer", response_model=MixerState)
async def get_mixer(
    ad_id: str,
    store: KeyValueStore = Depends(get_store),
) -> MixerState:
    svc = MixerService(store)
    try:
        return await svc.get_mixer_state(ad_id)
    except AdMixError as e:
        raise http_error(e)


@router.post("/{ad_id}/mixer/rebuild", response_model=MixerState)
async def rebuild_mixer(
    ad_id: str,
    body: RebuildIn | None = Body(default=None),
    store: KeyValueStore = Depends(get_store),
) -> MixerState:
    svc = MixerService(store)
    try:
        return await svc.rebuild_mixer(ad_id, body.durations if body else None)
    except AdMixError as e:
        raise http_error(e)


@router.post("/{ad_id}/mixer/durations", response_model=MixerState)
async def report_durations(
    ad_id: str,
    body: MeasuredDurationsIn,
    store: KeyValueStore = Depends(get_store),
) -> MixerState:
    """Playback clients report measured audio lengths; the timeline is re-timed with them."""
    svc = MixerService(store)
    try:
        return await svc.record_measured_durations(ad_id, body.durations)
    except AdMixError as e:
        raise http_error(e)


@router.post("/{ad_id}/mixer/remove-stream", response_model=MixerState)
async def remove_stream(
    ad_id: str,
    body: RemoveStreamIn,
    store: KeyValueStore = Depends(get_store),
) -> MixerState:
    svc = VersionService(store)
    try:
        return await svc.remove_stream(ad_id, body.stream)
    except AdMixError as e:
        raise http_error(e)
