from fastapi import APIRouter
from callplane.api import calls
from callplane.api import features
from callplane.api import quota

router = APIRouter()


@router.get("/health")
async def health():
    return {"status": "ok"}


router.include_router(calls.router)
router.include_router(features.router)
router.include_router(quota.router)
