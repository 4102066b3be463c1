"""전송 문자열 디코딩과 스키마 협상

매직 넘버가 없으므로 후보 버퍼마다 현재 스키마, 레거시 스키마 순서로 시도하고
처음 성공한 결과를 스키마 태그와 함께 반환한다.
"""

from __future__ import annotations

from typing import Callable, Iterable, NamedTuple

from nfc_ips.codec import legacy, wire
from nfc_ips.codec.schema import parse_message
from nfc_ips.codec.transport import decode_base64url, inflation_candidates
from nfc_ips.core.context import CodecContext
from nfc_ips.core.errors import SchemaMismatch, UnsupportedPayloadFormat
from nfc_ips.core.logger import log_event
from nfc_ips.models.coderef import CodeRefPayload, DecodedPayload


class SchemaParser(NamedTuple):
    """실패 가능한 단일 스키마 파서"""

    version: str
    parse: Callable[[bytes], CodeRefPayload]


def build_parsers(context: CodecContext) -> list[SchemaParser]:
    """시도 순서대로 스키마 파서 목록을 구성

    Args:
        context: 코덱 컨텍스트

    Returns:
        현재 스키마, 레거시 스키마 순서의 파서 목록
    """

    def parse_current(buffer: bytes) -> CodeRefPayload:
        message = parse_message(context.coderef_schema, buffer, wire.SCHEMA_VERSION)
        return wire.decode_message(message)

    def parse_legacy(buffer: bytes) -> CodeRefPayload:
        message = parse_message(context.legacy_schema, buffer, legacy.SCHEMA_VERSION)
        return legacy.from_legacy_message(message)

    return [
        SchemaParser(wire.SCHEMA_VERSION, parse_current),
        SchemaParser(legacy.SCHEMA_VERSION, parse_legacy),
    ]


def attempt(parser: SchemaParser, buffer: bytes) -> CodeRefPayload | None:
    """파서를 실행하고 스키마 불일치는 None으로 변환"""
    try:
        return parser.parse(buffer)
    except SchemaMismatch as exc:
        log_event(
            "schema_mismatch",
            "DEBUG",
            "schema",
            exc.message,
            schema=parser.version,
            error_code=exc.code,
        )
        return None


def first_success(
    parsers: list[SchemaParser], candidates: Iterable[bytes]
) -> DecodedPayload:
    """후보 버퍼와 파서를 순서대로 조합해 처음 성공한 결과를 반환

    Args:
        parsers: 시도 순서의 파서 목록
        candidates: 시도 순서의 후보 버퍼

    Returns:
        일치한 스키마 태그가 포함된 디코딩 결과

    Raises:
        UnsupportedPayloadFormat: 어떤 조합도 일치하지 않는 경우
    """
    tried = 0
    for index, candidate in enumerate(candidates):
        for parser in parsers:
            tried += 1
            payload = attempt(parser, candidate)
            if payload is not None:
                log_event(
                    "schema_matched",
                    "INFO",
                    "schema",
                    f"후보 {index}에서 스키마 일치",
                    schema=parser.version,
                )
                return DecodedPayload(payload=payload, schema_version=parser.version)
    raise UnsupportedPayloadFormat(f"{tried}개 조합 모두 스키마 불일치")


def decode_fragment(fragment: str, context: CodecContext) -> DecodedPayload:
    """전송 문자열을 코드 참조 페이로드로 디코딩

    Args:
        fragment: Base64URL 전송 문자열
        context: 코덱 컨텍스트

    Returns:
        디코딩 결과

    Raises:
        TransportDecodeError: base64, inflate 또는 schema 단계 실패 시
    """
    candidates = inflation_candidates(decode_base64url(fragment))
    return first_success(build_parsers(context), candidates)
