from typing import Any

from fastapi import APIRouter, Body, Depends, status

from admix.api.deps import get_store, http_error
from admix.core.errors import AdMixError
from admix.repos.kv_repo import KeyValueStore
from admix.schemas.mixer import ActivateOut, DeleteVersionOut
from admix.schemas.version import StreamType, VersionCreateOut, VersionListOut, VersionOut
from admix.services.version_service import VersionService

router = APIRouter()


@router.get("/{ad_id}/{stream}", response_model=VersionListOut)
async def list_versions(
    ad_id: str,
    stream: StreamType,
    store: KeyValueStore = Depends(get_store),
) -> VersionListOut:
    svc = VersionService(store)
    try:
        return await svc.list_versions(ad_id, stream)
    except AdMixError as e:
        raise http_error(e)


@router.post("/{ad_id}/{stream}", response_model=VersionCreateOut, status_code=status.HTTP_201_CREATED)
async def create_version(
    ad_id: str,
    stream: StreamType,
    payload: dict[str, Any] = Body(...),
    store: KeyValueStore = Depends(get_store),
) -> VersionCreateOut:
    svc = VersionService(store)
    try:
        version_id, version = await svc.create_draft(ad_id, stream, payload)
    except AdMixError as e:
        raise http_error(e)
    return VersionCreateOut(version_id=version_id, status=version.status)


@router.get("/{ad_id}/{stream}/{version_id}", response_model=VersionOut)
async def get_version(
    ad_id: str,
    stream: StreamType,
    version_id: str,
    store: KeyValueStore = Depends(get_store),
) -> VersionOut:
    svc = VersionService(store)
    try:
        version = await svc.get_version(ad_id, stream, version_id)
    except AdMixError as e:
        raise http_error(e)
    return VersionOut(version_id=version_id, version=version)


@router.patch("/{ad_id}/{stream}/{version_id}", response_model=VersionOut)
async def update_version(
    ad_id: str,
    stream: StreamType,
    version_id: str,
    updates: dict[str, Any] = Body(...),
    store: KeyValueStore = Depends(get_store),
) -> VersionOut:
    svc = VersionService(store)
    try:
        version = await svc.update_draft(ad_id, stream, version_id, updates)
    except AdMixError as e:
        raise http_error(e)
    return VersionOut(version_id=version_id, version=version)


@router.delete("/{ad_id}/{stream}/{version_id}", response_model=DeleteVersionOut)
async def delete_version(
    ad_id: str,
    stream: StreamType,
    version_id: str,
    store: KeyValueStore = Depends(get_store),
) -> DeleteVersionOut:
    svc = VersionService(store)
    try:
        was_active, mixer = await svc.delete_version(ad_id, stream, version_id)
    except AdMixError as e:
        raise http_error(e)
    return DeleteVersionOut(was_active=was_active, mixer=mixer)


@router.post("/{ad_id}/{stream}/{version_id}/freeze", response_model=ActivateOut)
@router.post("/{ad_id}/{stream}/{version_id}/activate", response_model=ActivateOut)
async def freeze_version(
    ad_id: str,
    stream: StreamType,
    version_id: str,
    store: KeyValueStore = Depends(get_store),
) -> ActivateOut:
    """Freeze the version (if still a draft), make it active and rebuild the mixer."""
    svc = VersionService(store)
    try:
        _version, mixer = await svc.freeze_or_activate(ad_id, stream, version_id)
    except AdMixError as e:
        raise http_error(e)
    return ActivateOut(active=version_id, mixer=mixer)


@router.post("/{ad_id}/{stream}/{version_id}/clone", response_model=VersionCreateOut, status_code=status.HTTP_201_CREATED)
async def clone_version(
    ad_id: str,
    stream: StreamType,
    version_id: str,
    store: KeyValueStore = Depends(get_store),
) -> VersionCreateOut:
    svc = VersionService(store)
    try:
        new_id, version = await svc.clone_version(ad_id, stream, version_id)
    except AdMixError as e:
        raise http_error(e)
    return VersionCreateOut(version_id=new_id, status=version.status)
