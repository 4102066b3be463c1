"""레거시 인덱스 스키마 디코딩

공유 코드 사전을 해석한 직후 캐노니컬 모델로 변환하므로, 이후 단계는 레거시
형식의 존재를 알지 못한다.
"""

from __future__ import annotations

from google.protobuf.message import Message

from nfc_ips.core.errors import ParseError, SchemaMismatch
from nfc_ips.core.logger import log_event
from nfc_ips.models.coderef import (
    CodeRef,
    CodeRefPayload,
    Condition,
    Event,
    Patient,
    StageData,
    Vital,
)
from nfc_ips.transforms.fhir.mapping import normalize_care_stage
from nfc_ips.utils.parsing import format_dob_value, parse_dose, parse_float, trim_text

SCHEMA_VERSION = "legacy"


def build_code_dictionary(entries) -> list[CodeRef]:
    """레거시 코드 사전을 구성

    Args:
        entries: (sys, code) 메시지 목록

    Returns:
        인덱스 순서의 코드 참조 목록
    """
    dictionary: list[CodeRef] = []
    for index, entry in enumerate(entries):
        if entry.sys and entry.code:
            dictionary.append(CodeRef(system=entry.sys, code=entry.code))
        else:
            dictionary.append(CodeRef.placeholder(index))
    return dictionary


def resolve_legacy_code(dictionary: list[CodeRef], index: int | None) -> CodeRef:
    """사전 인덱스를 코드 참조로 해석 (범위를 벗어나면 플레이스홀더)

    Args:
        dictionary: 코드 사전
        index: 사전 인덱스

    Returns:
        코드 참조
    """
    if index is None:
        return CodeRef(system="", code="Unknown")
    if 0 <= index < len(dictionary):
        return dictionary[index]
    return CodeRef.placeholder(index)


def _arg(args: list[str], position: int) -> str | None:
    if position < len(args):
        return trim_text(args[position])
    return None


def _row_index(row: Message) -> int | None:
    return row.i if row.HasField("i") else None


def _legacy_patient(message: Message, dictionary: list[CodeRef]) -> Patient:
    names = [name for name in message.n if name]
    given = " ".join(names[:-1]) if len(names) > 1 else (names[0] if names else None)
    family = names[-1] if len(names) > 1 else None
    return Patient(
        given=given,
        family=family,
        rank=trim_text(message.r) if message.HasField("r") else None,
        dob=format_dob_value(message.dob) if message.HasField("dob") else None,
        nhs_id=CodeRef(system="nhs", code=message.nhs) if message.nhs else None,
        service_id=CodeRef(system="mil", code=message.sn) if message.sn else None,
        blood_group=(
            resolve_legacy_code(dictionary, message.bg) if message.HasField("bg") else None
        ),
    )


def _legacy_vital(row: Message, dictionary: list[CodeRef]) -> Vital:
    args = list(row.a)
    raw_value = _arg(args, 0)
    value = None
    if raw_value is not None:
        try:
            value = parse_float(raw_value, "value")
        except ParseError as exc:
            log_event("item_degraded", "WARNING", "legacy", exc.message, schema=SCHEMA_VERSION)
    return Vital(
        code=resolve_legacy_code(dictionary, _row_index(row)),
        value=value,
        unit=_arg(args, 1),
    )


def _legacy_condition(row: Message, dictionary: list[CodeRef]) -> Condition:
    return Condition(
        code=resolve_legacy_code(dictionary, _row_index(row)),
        onset=_arg(list(row.a), 0),
    )


def _legacy_event(row: Message, dictionary: list[CodeRef]) -> Event:
    args = list(row.a)
    return Event(
        code=resolve_legacy_code(dictionary, _row_index(row)),
        time=_arg(args, 0),
        dose=parse_dose(_arg(args, 1)),
        route=_arg(args, 2),
    )


_ROW_BUILDERS = (
    ("V", "vitals", _legacy_vital),
    ("C", "conditions", _legacy_condition),
    ("E", "events", _legacy_event),
)


def from_legacy_message(message: Message) -> CodeRefPayload:
    """레거시 메시지를 캐노니컬 페이로드로 변환

    Args:
        message: 레거시 스키마 메시지

    Returns:
        코드 참조 페이로드

    Raises:
        SchemaMismatch: 변환 불가능한 경우
    """
    try:
        dictionary = build_code_dictionary(message.D)
        stages: dict[str, StageData] = {}
        for field, data_type, builder in _ROW_BUILDERS:
            for stage_rows in getattr(message, field):
                stage = normalize_care_stage(stage_rows.s)
                if stage is None:
                    log_event(
                        "stage_unknown",
                        "WARNING",
                        "legacy",
                        f"알 수 없는 치료 단계 행 무시: {stage_rows.s!r}",
                        schema=SCHEMA_VERSION,
                    )
                    continue
                section = stages.setdefault(stage.value, StageData())
                getattr(section, data_type).extend(
                    builder(row, dictionary) for row in stage_rows.r
                )
        return CodeRefPayload(
            patient=_legacy_patient(message.P, dictionary) if message.HasField("P") else None,
            t=message.t if message.HasField("t") else None,
            **stages,
        )
    except (ValueError, TypeError) as exc:
        raise SchemaMismatch(SCHEMA_VERSION, f"캐노니컬 변환 실패: {exc}") from exc
