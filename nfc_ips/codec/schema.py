from __future__ import annotations

from pathlib import Path

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory
from google.protobuf.message import DecodeError, Message
from pydantic import BaseModel, ConfigDict

from nfc_ips.core.config import load_yaml_resource
from nfc_ips.core.errors import ConfigError, SchemaMismatch

_FIELD = descriptor_pb2.FieldDescriptorProto

SCALAR_TYPES = {
    "string": _FIELD.TYPE_STRING,
    "bytes": _FIELD.TYPE_BYTES,
    "bool": _FIELD.TYPE_BOOL,
    "double": _FIELD.TYPE_DOUBLE,
    "float": _FIELD.TYPE_FLOAT,
    "int32": _FIELD.TYPE_INT32,
    "int64": _FIELD.TYPE_INT64,
    "uint32": _FIELD.TYPE_UINT32,
    "uint64": _FIELD.TYPE_UINT64,
}


class CompiledSchema(BaseModel):
    """컴파일된 와이어 스키마 (읽기 전용)"""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    full_name: str
    message_class: type[Message]

    def new_message(self) -> Message:
        return self.message_class()


def build_file_descriptor(definition: dict, source: str) -> descriptor_pb2.FileDescriptorProto:
    """YAML 스키마 정의를 proto2 파일 디스크립터로 변환

    Args:
        definition: 스키마 정의 딕셔너리
        source: 에러 메시지에 사용할 정의 출처

    Returns:
        파일 디스크립터

    Raises:
        ConfigError: 정의가 잘못된 경우
    """
    package = str(definition.get("package", "")).strip()
    messages = definition.get("messages") or {}
    if not package or not messages:
        raise ConfigError(source, "package와 messages 필요")

    file_proto = descriptor_pb2.FileDescriptorProto(
        name=str(definition.get("file") or f"{package}.proto"),
        package=package,
        syntax="proto2",
    )
    for message_name, fields in messages.items():
        message_proto = file_proto.message_type.add(name=message_name)
        oneofs: dict[str, int] = {}
        for field in fields or []:
            try:
                field_proto = message_proto.field.add(
                    name=field["name"], number=int(field["number"])
                )
                type_name = field["type"]
            except (KeyError, TypeError, ValueError) as exc:
                raise ConfigError(source, f"{message_name} 필드 정의 오류: {field}") from exc
            field_proto.label = (
                _FIELD.LABEL_REPEATED if field.get("repeated") else _FIELD.LABEL_OPTIONAL
            )
            if type_name in SCALAR_TYPES:
                field_proto.type = SCALAR_TYPES[type_name]
            elif type_name in messages:
                field_proto.type = _FIELD.TYPE_MESSAGE
                field_proto.type_name = f".{package}.{type_name}"
            else:
                raise ConfigError(source, f"알 수 없는 타입: {type_name}")
            oneof = field.get("oneof")
            if oneof:
                if oneof not in oneofs:
                    oneofs[oneof] = len(message_proto.oneof_decl)
                    message_proto.oneof_decl.add(name=oneof)
                field_proto.oneof_index = oneofs[oneof]
    return file_proto


def compile_schema(definition: dict, source: str = "<memory>") -> CompiledSchema:
    """스키마 정의를 메시지 클래스로 컴파일

    Args:
        definition: 스키마 정의 딕셔너리
        source: 정의 출처

    Returns:
        컴파일된 스키마
    """
    file_proto = build_file_descriptor(definition, source)
    root = str(definition.get("root", "")).strip()
    if not root:
        raise ConfigError(source, "root 메시지 필요")
    full_name = f"{file_proto.package}.{root}"

    pool = descriptor_pool.DescriptorPool()
    try:
        pool.AddSerializedFile(file_proto.SerializeToString())
        descriptor = pool.FindMessageTypeByName(full_name)
    except (TypeError, KeyError) as exc:
        raise ConfigError(source, f"스키마 컴파일 실패: {exc}") from exc
    return CompiledSchema(
        name=file_proto.name,
        full_name=full_name,
        message_class=message_factory.GetMessageClass(descriptor),
    )


def load_schema(path: Path) -> CompiledSchema:
    """YAML 파일에서 스키마를 로드하고 컴파일"""
    return compile_schema(load_yaml_resource(path), str(path))


def parse_message(schema: CompiledSchema, buffer: bytes, version: str) -> Message:
    """버퍼를 스키마로 파싱하고 형태를 검증

    알려진 필드가 하나 이상 있고 알 수 없는 필드가 없어야 일치로 본다.

    Args:
        schema: 컴파일된 스키마
        buffer: 후보 바이트 버퍼
        version: 스키마 버전 태그

    Returns:
        파싱된 메시지

    Raises:
        SchemaMismatch: 파싱 또는 형태 검증 실패 시
    """
    message = schema.new_message()
    try:
        message.ParseFromString(buffer)
    except DecodeError as exc:
        raise SchemaMismatch(version, f"디코딩 실패: {exc}") from exc
    if not message.ListFields():
        raise SchemaMismatch(version, "알려진 필드 없음")
    stripped = schema.new_message()
    stripped.CopyFrom(message)
    stripped.DiscardUnknownFields()
    if stripped.ByteSize() != message.ByteSize():
        raise SchemaMismatch(version, "알 수 없는 필드 포함")
    return message
