"""현재 와이어 스키마와 캐노니컬 모델 사이의 단일 어댑터

와이어 쪽 필드 이름(`sys`, `dose_value`, `dose_text`, 문자열 int64)은 이 모듈
밖으로 나가지 않는다.
"""

from __future__ import annotations

from google.protobuf import json_format
from google.protobuf.message import EncodeError, Message
from pydantic import ValidationError

from nfc_ips.codec.schema import CompiledSchema
from nfc_ips.core.errors import SchemaMismatch, SerializationError
from nfc_ips.models.coderef import CareStage, CodeRefPayload

SCHEMA_VERSION = "coderef"


def to_wire_dict(payload: CodeRefPayload) -> dict:
    """캐노니컬 페이로드를 와이어 필드 이름의 딕셔너리로 변환

    Args:
        payload: 코드 참조 페이로드

    Returns:
        와이어 딕셔너리
    """
    data = payload.model_dump(by_alias=True, exclude_none=True)
    for stage in CareStage:
        for event in data.get(stage.value, {}).get("events", []):
            dose = event.pop("dose", None)
            if dose is None:
                continue
            if isinstance(dose, str):
                event["dose_text"] = dose
            else:
                event["dose_value"] = dose
    return data


def from_wire_dict(data: dict) -> CodeRefPayload:
    """와이어 딕셔너리를 캐노니컬 페이로드로 변환

    Args:
        data: MessageToDict 결과

    Returns:
        코드 참조 페이로드
    """
    for stage in CareStage:
        for event in data.get(stage.value, {}).get("events", []):
            if "dose_value" in event:
                event["dose"] = event.pop("dose_value")
            elif "dose_text" in event:
                event["dose"] = event.pop("dose_text")
    if "t" in data:
        data["t"] = int(data["t"])
    return CodeRefPayload.model_validate(data)


def encode_message(payload: CodeRefPayload, schema: CompiledSchema) -> bytes:
    """페이로드를 현재 스키마 바이너리로 직렬화

    Args:
        payload: 코드 참조 페이로드
        schema: 현재 와이어 스키마

    Returns:
        직렬화된 바이트

    Raises:
        SerializationError: 스키마로 표현할 수 없는 값이 있는 경우
    """
    try:
        message = json_format.ParseDict(to_wire_dict(payload), schema.new_message())
        return message.SerializeToString()
    except json_format.ParseError as exc:
        raise SerializationError(schema.full_name, str(exc)) from exc
    except EncodeError as exc:
        raise SerializationError(schema.full_name, str(exc)) from exc


def decode_message(message: Message) -> CodeRefPayload:
    """현재 스키마 메시지를 캐노니컬 페이로드로 변환

    Raises:
        SchemaMismatch: 캐노니컬 모델로 변환할 수 없는 경우
    """
    try:
        data = json_format.MessageToDict(message, preserving_proto_field_name=True)
        return from_wire_dict(data)
    except (ValidationError, ValueError, UnicodeDecodeError) as exc:
        raise SchemaMismatch(SCHEMA_VERSION, f"캐노니컬 변환 실패: {exc}") from exc
