from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from nfc_ips.codec.transport import describe_binary
from nfc_ips.core.context import CodecContext, load_codec_context
from nfc_ips.core.errors import PipelineError
from nfc_ips.core.pipeline import (
    decode_fragment_to_bundle,
    decode_fragment_to_view_model,
    encode_bundle_to_fragment,
)
from nfc_ips.models.view import ViewModel

router = APIRouter()


class DecodeRequest(BaseModel):
    """디코딩 요청 (전송 문자열, URL 조각 또는 JSON 문자열)"""

    payload: str = Field(..., description="디코딩할 원본 입력")
    label: str = Field(default="NFC Payload", description="표시 라벨")


class BundleResponse(BaseModel):
    schema_version: str
    provenance: str
    bundle: dict[str, Any]


class EncodeResponse(BaseModel):
    fragment: str
    coderef: dict[str, Any]
    binary: str


def _unprocessable(exc: PipelineError) -> HTTPException:
    return HTTPException(status_code=422, detail={"code": exc.code, "message": exc.message})


@router.post("/decode", response_model=ViewModel)
def decode_payload(
    request: DecodeRequest, context: CodecContext = Depends(load_codec_context)
) -> ViewModel:
    """전송 문자열을 뷰 모델로 디코딩

    Args:
        request: 디코딩 요청
        context: 코덱 컨텍스트

    Returns:
        뷰 모델
    """
    try:
        return decode_fragment_to_view_model(request.payload, context, label=request.label)
    except PipelineError as exc:
        raise _unprocessable(exc) from exc


@router.post("/bundle", response_model=BundleResponse)
def decode_bundle(
    request: DecodeRequest, context: CodecContext = Depends(load_codec_context)
) -> BundleResponse:
    """전송 문자열을 FHIR 번들로 변환"""
    try:
        decoded, document = decode_fragment_to_bundle(request.payload, context)
    except PipelineError as exc:
        raise _unprocessable(exc) from exc
    return BundleResponse(
        schema_version=decoded.schema_version,
        provenance=document.provenance,
        bundle=document.resource,
    )


@router.post("/encode", response_model=EncodeResponse)
def encode_bundle(
    bundle: dict[str, Any], context: CodecContext = Depends(load_codec_context)
) -> EncodeResponse:
    """FHIR 번들을 전송 문자열로 인코딩

    Args:
        bundle: FHIR Bundle 또는 Patient 리소스
        context: 코덱 컨텍스트

    Returns:
        전송 문자열, 코드 참조 페이로드, 바이너리 덤프
    """
    try:
        fragment, payload = encode_bundle_to_fragment(bundle, context)
    except PipelineError as exc:
        raise _unprocessable(exc) from exc
    return EncodeResponse(
        fragment=fragment,
        coderef=payload.model_dump(mode="json", exclude_none=True),
        binary=describe_binary(payload, context),
    )
