from fastapi import APIRouter, Depends

from nfc_ips.core.config import get_settings
from nfc_ips.core.context import CodecContext, load_codec_context

router = APIRouter()


@router.get("/health")
def health_check(context: CodecContext = Depends(load_codec_context)) -> dict:
    """서비스 헬스 상태와 로드된 스키마를 반환"""
    return {
        "status": "정상",
        "version": get_settings().version,
        "schemas": [context.coderef_schema.full_name, context.legacy_schema.full_name],
        "terminology": context.terminology.version,
    }
