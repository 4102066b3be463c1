from __future__ import annotations

import re

from nfc_ips.clients.terminology import TerminologyResolver
from nfc_ips.models.coderef import CodeRef
from nfc_ips.models.view import Pill
from nfc_ips.utils.parsing import (
    BULLET,
    format_datetime_with_bullet,
    format_number,
    format_time_only,
)
from nfc_ips.views.chronology import TimelineEntry

NO_DATE = "No Date"
NO_TIMESTAMP_TOOLTIP = "No timestamp available"

TYPE_LABELS = {"vitals": "Vitals", "conditions": "Condition", "events": "Event"}

_NUMERIC_DOSE = re.compile(r"^[0-9]+(?:\.[0-9]+)?$")
_MANUAL_ROUTE = re.compile(r"^manual(?:\b|\s)", re.IGNORECASE)

_VALUE_SEPARATOR = f" {BULLET} "
_TOOLTIP_SEPARATOR = " | "


def format_temperature(value: float, unit: str | None) -> str:
    """섭씨/화씨 이중 표시 (37.0°C [98.6°F])

    단위가 없거나 °F이면 화씨로 간주한다. 그 밖의 단위는 변환하지 않는다.
    """
    if not unit or unit == "°F":
        celsius = f"{(value - 32) * 5 / 9:.1f}"
        return f"{celsius}°C [{format_number(value)}°F]"
    if unit == "°C":
        fahrenheit = f"{value * 9 / 5 + 32:.1f}"
        return f"{format_number(value)}°C [{fahrenheit}°F]"
    return f"{format_number(value)} {unit}"


def _join(parts: list[str], separator: str) -> str:
    return separator.join(part for part in parts if part)


def _vital_content(entry: TimelineEntry, code: CodeRef, terminology: TerminologyResolver) -> str:
    vital = entry.item
    if vital.value is None:
        return ""
    if terminology.is_temperature(code.system, code.code):
        return format_temperature(vital.value, vital.unit)
    unit = vital.unit or terminology.infer_unit(code.system, code.code) or ""
    return f"{format_number(vital.value)} {unit}".strip()


def _event_parts(
    entry: TimelineEntry, code: CodeRef, description: str, terminology: TerminologyResolver
) -> list[str]:
    event = entry.item
    if isinstance(event.dose, float):
        dose = format_number(event.dose)
    else:
        dose = (event.dose or "").strip()
    matches_description = bool(dose) and dose.lower() == description.strip().lower()
    has_dose = dose != "" and dose.lower() != "nan" and not matches_description

    parts: list[str] = []
    if has_dose:
        unit = event.unit or ""
        if not unit and _NUMERIC_DOSE.match(dose):
            unit = terminology.infer_unit(code.system, code.code) or ""
        parts.append(f"{dose} {unit}" if unit else dose)
    route = (event.route or "").strip()
    if route and not _MANUAL_ROUTE.match(route):
        parts.append(route)
    return parts


def build_pill(entry: TimelineEntry, terminology: TerminologyResolver) -> Pill:
    """정렬된 항목 하나를 표시용 필로 변환

    Args:
        entry: 시간순 정렬 결과 항목
        terminology: 용어 리졸버

    Returns:
        필
    """
    item = entry.item
    code = item.code if item.code is not None and item.code.code else CodeRef.placeholder(
        entry.index
    )
    description = terminology.resolve_display_name(code.system, code.code)

    if entry.data_type == "vitals":
        value_content = _vital_content(entry, code, terminology)
        tooltip_value = _join([description, value_content], _TOOLTIP_SEPARATOR)
    elif entry.data_type == "events":
        parts = _event_parts(entry, code, description, terminology)
        value_content = _join(parts, _VALUE_SEPARATOR)
        tooltip_value = _join([description, *parts], _TOOLTIP_SEPARATOR)
    else:
        value_content = ""
        tooltip_value = description

    if entry.timestamp is not None:
        full_date = format_datetime_with_bullet(entry.timestamp)
        date_display = full_date if entry.is_row_first else format_time_only(entry.timestamp)
        tooltip_date = full_date
    elif entry.no_timestamp and entry.is_row_first:
        date_display = NO_DATE
        tooltip_date = NO_TIMESTAMP_TOOLTIP
    else:
        date_display = ""
        tooltip_date = ""

    prefix = terminology.code_prefix(code.system) if code.system else ""
    code_label = f"{prefix}:{code.code}" if prefix else code.code

    return Pill(
        label=f"{TYPE_LABELS[entry.data_type]} {BULLET} {description}",
        value=_join([value_content, date_display], _VALUE_SEPARATOR),
        tooltip=_join([code_label, tooltip_value, tooltip_date], _TOOLTIP_SEPARATOR),
        is_row_first=entry.is_row_first,
        no_timestamp=entry.no_timestamp,
        raw_timestamp=entry.raw_timestamp,
        data_type=entry.data_type,
        code=code.key,
        description=description,
        dose=getattr(item, "dose", None),
        unit=getattr(item, "unit", None),
        route=getattr(item, "route", None),
    )
