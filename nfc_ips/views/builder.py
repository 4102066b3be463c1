"""뷰 모델 구성

치료 단계마다 시간순 정렬을 한 번씩 실행하고 유형별 합계와 요약 시각을 계산한다.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

from nfc_ips.core.context import CodecContext
from nfc_ips.models.coderef import CareStage, CodeRefPayload, DecodedPayload
from nfc_ips.models.view import StageSection, Summary, Totals, ViewModel
from nfc_ips.transforms.fhir.outbound import patient_to_fhir
from nfc_ips.utils.parsing import from_epoch_minutes, parse_datetime, sort_key
from nfc_ips.views.chronology import group_chronologically
from nfc_ips.views.pills import build_pill

# 요약 작성 시각 = 마지막 R2 항목 + 15분
SUMMARY_OFFSET = timedelta(minutes=15)
SUMMARY_STAGE = CareStage.R2


def build_stage_section(
    stage: CareStage, payload: CodeRefPayload, context: CodecContext
) -> StageSection:
    data = payload.stage(stage)
    pills = [
        build_pill(entry, context.terminology)
        for entry in group_chronologically(data.vitals, data.conditions, data.events)
    ]
    return StageSection(
        stage=stage,
        vitals=[pill for pill in pills if pill.data_type == "vitals"],
        conditions=[pill for pill in pills if pill.data_type == "conditions"],
        events=[pill for pill in pills if pill.data_type == "events"],
        all_pills=pills,
    )


def _latest_stage_timestamp(payload: CodeRefPayload, stage: CareStage) -> datetime | None:
    data = payload.stage(stage)
    raw_values = [
        *(vital.time for vital in data.vitals),
        *(condition.onset for condition in data.conditions),
        *(event.time for event in data.events),
    ]
    parsed = [value for value in (parse_datetime(raw) for raw in raw_values) if value is not None]
    if not parsed:
        return None
    return max(parsed, key=sort_key)


def _creation_timestamp(value: int | str | None) -> datetime | None:
    """페이로드 생성 시각 (숫자는 epoch 분, 문자열은 ISO)"""
    if value is None:
        return None
    if isinstance(value, int):
        try:
            return from_epoch_minutes(value)
        except (OverflowError, OSError, ValueError):
            return None
    return parse_datetime(value)


def build_summary(payload: CodeRefPayload, totals: Totals) -> Summary:
    """합계와 요약 시각을 계산

    Args:
        payload: 코드 참조 페이로드
        totals: 유형별 합계

    Returns:
        요약 정보
    """
    latest = _latest_stage_timestamp(payload, SUMMARY_STAGE)
    if latest is not None:
        return Summary(totals=totals, timestamp=latest + SUMMARY_OFFSET)
    return Summary(totals=totals, timestamp=_creation_timestamp(payload.t))


def build_view_model(
    decoded: DecodedPayload,
    context: CodecContext,
    label: str = "NFC Payload",
    raw_payload: Any = None,
) -> ViewModel:
    """디코딩 결과로 뷰 모델을 구성

    Args:
        decoded: 스키마 태그가 포함된 디코딩 결과
        context: 코덱 컨텍스트
        label: 표시 라벨
        raw_payload: 검사용 원본 전달 값

    Returns:
        뷰 모델
    """
    payload = decoded.payload
    stages = [build_stage_section(stage, payload, context) for stage in CareStage]
    totals = Totals(
        vitals=sum(len(section.vitals) for section in stages),
        conditions=sum(len(section.conditions) for section in stages),
        events=sum(len(section.events) for section in stages),
    )
    return ViewModel(
        label=label,
        schema_version=decoded.schema_version,
        patient=(
            patient_to_fhir(payload.patient, context.terminology)
            if payload.patient is not None
            else None
        ),
        allergies=payload.allergies,
        stages=stages,
        summary=build_summary(payload, totals),
        raw_payload=raw_payload,
    )
