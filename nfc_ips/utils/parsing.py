from __future__ import annotations

import math
import re
from datetime import datetime, timezone

from nfc_ips.core.errors import ParseError

MONTH_ABBREVIATIONS = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)
BULLET = "•"

_NUMERIC_DOSE = re.compile(r"^[0-9]+(?:\.[0-9]+)?$")


def trim_text(value: object) -> str | None:
    """문자열 정리

    Args:
        value: 원본 값

    Returns:
        정리된 문자열 또는 None
    """
    if value is None:
        return None
    text = str(value).strip()
    if text == "":
        return None
    return text


def parse_float(value: str | int | float | None, field: str) -> float:
    """값을 실수로 파싱

    Args:
        value: 원본 값
        field: 에러 메시지에 사용할 필드명

    Returns:
        파싱된 실수 값

    Raises:
        ParseError: 파싱 실패 시
    """
    if value is None:
        raise ParseError(field, "값이 필요함")
    try:
        return float(str(value).strip())
    except ValueError as exc:
        raise ParseError(field, f"실수가 아님: {value}") from exc


def parse_dose(value: object) -> float | str | None:
    """용량을 숫자 또는 자유 텍스트로 구분

    Args:
        value: 원본 용량 값

    Returns:
        숫자 용량, 텍스트 용량 또는 None
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip()
    if text == "":
        return None
    if _NUMERIC_DOSE.match(text):
        return float(text)
    return text


def parse_datetime(value: object) -> datetime | None:
    """ISO8601 문자열을 datetime으로 파싱

    Args:
        value: 원본 타임스탬프 값

    Returns:
        datetime 또는 파싱 실패 시 None
    """
    if isinstance(value, datetime):
        return value
    text = trim_text(value)
    if text is None:
        return None
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def sort_key(value: datetime) -> float:
    """naive/aware 혼합 비교를 위한 정렬 키 (naive는 UTC로 간주)"""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.timestamp()


def format_dob_value(value: int | str | None) -> str | None:
    """정수 생년월일(YYYYMMDD)을 YYYY-MM-DD로 변환

    Args:
        value: 8자리 생년월일

    Returns:
        ISO 날짜 문자열 또는 None
    """
    if value is None:
        return None
    text = str(value).strip().zfill(8)
    return f"{text[0:4]}-{text[4:6]}-{text[6:8]}"


def format_date_key(value: datetime) -> str:
    """날짜 비교용 축약 날짜 (15 Jan 24)"""
    return f"{value.day} {MONTH_ABBREVIATIONS[value.month - 1]} {value.year % 100:02d}"


def format_time_only(value: datetime) -> str:
    """시각만 표시 (14:30)"""
    return f"{value.hour:02d}:{value.minute:02d}"


def format_datetime_with_bullet(value: datetime) -> str:
    """전체 날짜와 시각 표시 (15 Jan 24 • 14:30)"""
    return f"{format_date_key(value)} {BULLET} {format_time_only(value)}"


def format_number(value: float | int) -> str:
    """정수 값은 소수점 없이 숫자를 문자열로 변환"""
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return str(int(value))
    return str(value)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    """현재 시각을 UTC ISO8601 문자열로 반환"""
    return utc_now().isoformat().replace("+00:00", "Z")


def epoch_minutes(value: datetime) -> int:
    """datetime을 epoch 분으로 변환"""
    return int(sort_key(value) // 60)


def from_epoch_minutes(value: int) -> datetime:
    """epoch 분을 UTC datetime으로 변환"""
    return datetime.fromtimestamp(value * 60, tz=timezone.utc)
