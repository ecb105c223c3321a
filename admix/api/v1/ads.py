from fastapi import APIRouter, Depends, status

from admix.api.deps import get_store, http_error
from admix.core.errors import AdMixError
from admix.repos.kv_repo import KeyValueStore
from admix.schemas.version import AdCreateIn, AdOut
from admix.services.version_service import VersionService

router = APIRouter()


@router.post("", response_model=AdOut, status_code=status.HTTP_201_CREATED)
async def create_ad(
    body: AdCreateIn,
    store: KeyValueStore = Depends(get_store),
) -> AdOut:
    svc = VersionService(store)
    try:
        return await svc.create_ad(ad_id=body.ad_id, name=body.name)
    except AdMixError as e:
        raise http_error(e)


@router.get("/{ad_id}", response_model=AdOut)
async def get_ad(
    ad_id: str,
    store: KeyValueStore = Depends(get_store),
) -> AdOut:
    svc = VersionService(store)
    try:
        return await svc.get_ad(ad_id)
    except AdMixError as e:
        raise http_error(e)
