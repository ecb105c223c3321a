from fastapi import APIRouter
from admix.api.v1 import ads, mixer, versions

router = APIRouter()
router.include_router(ads.router, prefix="/ads", tags=["ads"])
# mixer routes first: "/ads/{ad_id}/mixer" must not be read as a stream name
router.include_router(mixer.router, prefix="/ads", tags=["mixer"])
router.include_router(versions.router, prefix="/ads", tags=["versions"])
