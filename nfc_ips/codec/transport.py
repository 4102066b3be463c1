from __future__ import annotations

import base64
import binascii
import re
import zlib

from nfc_ips.codec.wire import encode_message
from nfc_ips.core.context import CodecContext
from nfc_ips.core.errors import TransportDecodeError
from nfc_ips.core.logger import log_event
from nfc_ips.models.coderef import CodeRefPayload
from nfc_ips.utils.parsing import epoch_minutes, utc_now

_WHITESPACE = re.compile(r"\s+")

# (이름, wbits) 순서대로 시도
INFLATE_MODES = (
    ("zlib", zlib.MAX_WBITS),
    ("raw", -zlib.MAX_WBITS),
)


def decode_base64url(text: str) -> bytes:
    """Base64URL(패딩 유무 무관) 문자열을 바이트로 디코딩

    Args:
        text: 전송 문자열

    Returns:
        원본 바이트

    Raises:
        TransportDecodeError: Base64 형식이 아닌 경우
    """
    cleaned = _WHITESPACE.sub("", text or "").replace("-", "+").replace("_", "/")
    if cleaned == "":
        raise TransportDecodeError("base64", "빈 전송 문자열")
    padded = cleaned + "=" * (-len(cleaned) % 4)
    try:
        return base64.b64decode(padded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise TransportDecodeError("base64", f"Base64URL 형식 아님: {exc}") from exc


def encode_base64url(data: bytes) -> str:
    """바이트를 패딩 없는 Base64URL 문자열로 인코딩"""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def inflation_candidates(data: bytes) -> list[bytes]:
    """압축 해제 후보 버퍼 목록을 생성

    zlib 헤더 inflate, raw inflate, 원본 바이트 순서로 성공한 후보를 모두 유지한다.

    Args:
        data: Base64 디코딩된 바이트

    Returns:
        후보 버퍼 목록

    Raises:
        TransportDecodeError: 사용 가능한 후보가 없는 경우
    """
    candidates: list[bytes] = []
    for name, wbits in INFLATE_MODES:
        try:
            candidates.append(zlib.decompress(data, wbits))
        except zlib.error as exc:
            log_event("inflate_skipped", "DEBUG", "inflate", f"{name} inflate 실패: {exc}")
    candidates.append(data)
    candidates = [candidate for candidate in candidates if candidate]
    if not candidates:
        raise TransportDecodeError("inflate", "압축 해제 후보 없음")
    return candidates


def serialize_payload(payload: CodeRefPayload, context: CodecContext) -> bytes:
    """페이로드를 현재 스키마 바이너리로 직렬화 (생성 시각이 없으면 채움)"""
    if payload.t is None:
        payload = payload.model_copy(update={"t": epoch_minutes(utc_now())})
    return encode_message(payload, context.coderef_schema)


def encode_payload(payload: CodeRefPayload, context: CodecContext) -> str:
    """페이로드를 전송 문자열로 인코딩

    Args:
        payload: 코드 참조 페이로드
        context: 코덱 컨텍스트

    Returns:
        DEFLATE 압축 후 Base64URL 인코딩된 문자열

    Raises:
        SerializationError: 스키마로 표현할 수 없는 값이 있는 경우
    """
    return encode_base64url(zlib.compress(serialize_payload(payload, context), 9))


def describe_binary(payload: CodeRefPayload, context: CodecContext) -> str:
    """현재 스키마 바이너리를 16진수 덤프로 표시"""
    buffer = serialize_payload(payload, context)
    hex_string = " ".join(f"{byte:02x}" for byte in buffer)
    return (
        f"// Protobuf binary representation ({len(buffer)} bytes)\n"
        f"// Hex format:\n{hex_string}"
    )
