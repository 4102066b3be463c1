from fastapi import APIRouter

from nfc_ips.api.codec import router as codec_router
from nfc_ips.api.health import router as health_router

router = APIRouter()
router.include_router(health_router, tags=["health"])
router.include_router(codec_router, prefix="/v1", tags=["codec"])
