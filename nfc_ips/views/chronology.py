"""치료 단계 내 항목의 시간순 정렬과 날짜 표시 정책

타임스탬프가 있는 항목은 오래된 순서로 정렬하고, 데이터 유형별로 마지막 날짜
커서를 따로 유지해 날짜가 바뀌는 첫 항목만 전체 날짜를 표시한다.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Union

from pydantic import BaseModel

from nfc_ips.core.logger import log_event
from nfc_ips.models.coderef import Condition, Event, Vital
from nfc_ips.models.view import DataType
from nfc_ips.utils.parsing import format_date_key, parse_datetime, sort_key, trim_text

StageItem = Union[Vital, Condition, Event]


class TimelineEntry(BaseModel):
    """정렬된 단일 항목과 표시 플래그"""

    data_type: DataType
    item: StageItem
    index: int
    timestamp: datetime | None = None
    raw_timestamp: str | None = None
    is_row_first: bool = False
    no_timestamp: bool = False


def _field(item: Any, name: str) -> Any:
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)


def extract_timestamp(item: Any) -> str | None:
    """항목의 타임스탬프 (time, onset, raw 데이터 datetime 순서)"""
    for name in ("time", "onset"):
        value = trim_text(_field(item, name))
        if value is not None:
            return value
    raw = _field(item, "raw") or _field(item, "raw_data")
    if raw is not None:
        return trim_text(_field(raw, "datetime") or _field(raw, "date_time"))
    return None


def _entry(data_type: DataType, item: StageItem, index: int) -> TimelineEntry:
    raw_timestamp = extract_timestamp(item)
    timestamp = parse_datetime(raw_timestamp)
    if raw_timestamp is not None and timestamp is None:
        log_event(
            "timestamp_invalid",
            "WARNING",
            data_type,
            f"해석할 수 없는 타임스탬프, 날짜 없음으로 처리: {raw_timestamp!r}",
        )
    return TimelineEntry(
        data_type=data_type,
        item=item,
        index=index,
        timestamp=timestamp,
        raw_timestamp=raw_timestamp,
    )


def group_chronologically(
    vitals: list[Vital], conditions: list[Condition], events: list[Event]
) -> list[TimelineEntry]:
    """세 목록을 하나의 시간순 목록으로 병합

    Args:
        vitals: 생체신호 목록
        conditions: 상태 목록
        events: 이벤트 목록

    Returns:
        타임스탬프 항목(오름차순) 뒤에 타임스탬프 없는 항목(입력 순서)이 이어지는 목록
    """
    entries = [
        *(_entry("vitals", item, index) for index, item in enumerate(vitals)),
        *(_entry("conditions", item, index) for index, item in enumerate(conditions)),
        *(_entry("events", item, index) for index, item in enumerate(events)),
    ]
    timestamped = sorted(
        (entry for entry in entries if entry.timestamp is not None),
        key=lambda entry: sort_key(entry.timestamp),
    )
    untimestamped = [entry for entry in entries if entry.timestamp is None]

    last_date: dict[str, str | None] = {}
    ordered: list[TimelineEntry] = []
    for entry in timestamped:
        current = format_date_key(entry.timestamp)
        is_row_first = current != last_date.get(entry.data_type)
        if is_row_first:
            last_date[entry.data_type] = current
        ordered.append(entry.model_copy(update={"is_row_first": is_row_first}))

    for position, entry in enumerate(untimestamped):
        ordered.append(
            entry.model_copy(update={"is_row_first": position == 0, "no_timestamp": True})
        )
    return ordered
