from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any
from urllib.parse import unquote

from pydantic import ValidationError

from nfc_ips.codec.negotiation import decode_fragment
from nfc_ips.codec.transport import decode_base64url, encode_payload
from nfc_ips.codec.wire import SCHEMA_VERSION
from nfc_ips.core.context import CodecContext
from nfc_ips.core.errors import ParseError, PipelineError, TransportDecodeError
from nfc_ips.core.logger import log_event
from nfc_ips.models.coderef import CodeRefPayload, DecodedPayload
from nfc_ips.models.view import ViewModel
from nfc_ips.transforms.fhir.inbound import to_coderef
from nfc_ips.transforms.fhir.outbound import BundleDocument, to_bundle
from nfc_ips.views.builder import build_view_model

FHIR_INPUT_TYPES = ("Bundle", "Patient")


def _elapsed_ms(start: datetime) -> int:
    return int((datetime.now(timezone.utc) - start).total_seconds() * 1000)


def _strip_fragment(raw: str) -> str:
    """URL 인코딩과 앞쪽 '#'을 제거"""
    text = unquote(raw.strip())
    if "#" in text:
        text = text.split("#", 1)[1]
    return text.strip()


def _from_json(data: Any) -> CodeRefPayload:
    """JSON 입력을 코드 참조 페이로드로 변환 (FHIR 리소스 또는 코드 참조 JSON)

    Raises:
        ParseError: 지원하지 않는 JSON 구조
        MissingPatientResource: FHIR 번들에 Patient가 없는 경우
    """
    if not isinstance(data, dict):
        raise ParseError("payload", "JSON 객체가 아님")
    if data.get("resourceType") in FHIR_INPUT_TYPES:
        return to_coderef(data)
    try:
        return CodeRefPayload.model_validate(data)
    except ValidationError as exc:
        raise ParseError("payload", f"코드 참조 JSON 형식 오류: {exc.error_count()}건") from exc


def _json_candidate(text: str) -> Any | None:
    try:
        return json.loads(text)
    except ValueError:
        return None


def _base64_json_candidate(text: str) -> Any | None:
    try:
        decoded = decode_base64url(text).decode("utf-8")
    except (TransportDecodeError, UnicodeDecodeError):
        return None
    decoded = decoded.strip()
    if not decoded.startswith(("{", "[")):
        return None
    return _json_candidate(decoded)


def load_payload(raw_input: str, context: CodecContext) -> DecodedPayload:
    """원본 입력 형식을 판별해 디코딩

    JSON, Base64 인코딩 JSON, 전송 문자열(URL 조각 포함)을 순서대로 판별한다.

    Args:
        raw_input: 사용자 입력 문자열
        context: 코덱 컨텍스트

    Returns:
        디코딩 결과

    Raises:
        ParseError: 입력이 비어 있거나 JSON 구조가 잘못된 경우
        TransportDecodeError: 전송 문자열 디코딩 실패 시
    """
    if raw_input is None or raw_input.strip() == "":
        raise ParseError("input", "입력이 비어 있음")
    text = raw_input.strip()

    data = _json_candidate(text) if text.startswith(("{", "[")) else None
    if data is None:
        data = _base64_json_candidate(_strip_fragment(text))
    if data is not None:
        log_event("input_detected", "DEBUG", "load", "JSON 입력")
        return DecodedPayload(payload=_from_json(data), schema_version=SCHEMA_VERSION)

    log_event("input_detected", "DEBUG", "load", "전송 문자열 입력")
    return decode_fragment(_strip_fragment(text), context)


def decode_fragment_to_view_model(
    raw_input: str, context: CodecContext, label: str = "NFC Payload"
) -> ViewModel:
    """입력을 디코딩해 뷰 모델을 구성

    Args:
        raw_input: 전송 문자열 또는 JSON
        context: 코덱 컨텍스트
        label: 표시 라벨

    Returns:
        뷰 모델
    """
    start = datetime.now(timezone.utc)
    log_event("decode_start", "INFO", "decode", "디코딩 시작")
    try:
        decoded = load_payload(raw_input, context)
        view_model = build_view_model(
            decoded,
            context,
            label=label,
            raw_payload=decoded.payload.model_dump(mode="json", exclude_none=True),
        )
    except PipelineError as exc:
        log_event(
            "decode_failed",
            "ERROR",
            "decode",
            exc.message,
            error_code=exc.code,
            duration_ms=_elapsed_ms(start),
        )
        raise
    log_event(
        "decode_complete",
        "INFO",
        "decode",
        "디코딩 완료",
        schema=decoded.schema_version,
        duration_ms=_elapsed_ms(start),
        record_count=sum(
            (
                view_model.summary.totals.vitals,
                view_model.summary.totals.conditions,
                view_model.summary.totals.events,
            )
        ),
    )
    return view_model


def decode_fragment_to_bundle(
    raw_input: str, context: CodecContext
) -> tuple[DecodedPayload, BundleDocument]:
    """입력을 디코딩해 FHIR 번들로 변환

    Args:
        raw_input: 전송 문자열 또는 JSON
        context: 코덱 컨텍스트

    Returns:
        (디코딩 결과, 번들 문서)
    """
    start = datetime.now(timezone.utc)
    try:
        decoded = load_payload(raw_input, context)
        document = to_bundle(decoded.payload, context)
    except PipelineError as exc:
        log_event(
            "bundle_failed",
            "ERROR",
            "bundle",
            exc.message,
            error_code=exc.code,
            duration_ms=_elapsed_ms(start),
        )
        raise
    log_event(
        "bundle_complete",
        "INFO",
        "bundle",
        f"번들 변환 완료 ({document.provenance})",
        schema=decoded.schema_version,
        duration_ms=_elapsed_ms(start),
        record_count=len(document.resource.get("entry", [])),
    )
    return decoded, document


def encode_bundle_to_fragment(
    bundle: dict, context: CodecContext
) -> tuple[str, CodeRefPayload]:
    """FHIR 번들을 전송 문자열로 인코딩

    Args:
        bundle: FHIR Bundle 또는 Patient 리소스
        context: 코덱 컨텍스트

    Returns:
        (전송 문자열, 코드 참조 페이로드)

    Raises:
        MissingPatientResource: Patient 리소스가 없는 경우
        SerializationError: 스키마로 표현할 수 없는 값이 있는 경우
    """
    start = datetime.now(timezone.utc)
    try:
        payload = to_coderef(bundle)
        fragment = encode_payload(payload, context)
    except PipelineError as exc:
        log_event(
            "encode_failed",
            "ERROR",
            "encode",
            exc.message,
            error_code=exc.code,
            duration_ms=_elapsed_ms(start),
        )
        raise
    log_event(
        "encode_complete",
        "INFO",
        "encode",
        "인코딩 완료",
        schema=SCHEMA_VERSION,
        duration_ms=_elapsed_ms(start),
        record_count=len(fragment),
    )
    return fragment, payload
