from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from nfc_ips.models.coderef import Allergy, CareStage

DataType = Literal["vitals", "conditions", "events"]


class Pill(BaseModel):
    """화면 표시 단위 (생성 후 변경하지 않음)"""

    model_config = ConfigDict(frozen=True)

    label: str = Field(..., description="유형과 표시 이름")
    value: str = Field(..., description="값과 날짜 표시 문자열")
    tooltip: str = Field(..., description="코드, 상세, 전체 날짜")
    is_row_first: bool = Field(default=False, description="유형별 날짜 행의 첫 항목 여부")
    no_timestamp: bool = Field(default=False, description="타임스탬프 없음")
    raw_timestamp: str | None = Field(default=None, description="원본 타임스탬프")
    data_type: DataType
    code: str = Field(default="", description="system:code 키")
    description: str = ""
    dose: float | str | None = None
    unit: str | None = None
    route: str | None = None


class StageSection(BaseModel):
    """치료 단계별 필 목록"""

    stage: CareStage
    vitals: list[Pill] = Field(default_factory=list)
    conditions: list[Pill] = Field(default_factory=list)
    events: list[Pill] = Field(default_factory=list)
    all_pills: list[Pill] = Field(default_factory=list, description="시간순 전체 필")


class Totals(BaseModel):
    """유형별 항목 수"""

    vitals: int = 0
    conditions: int = 0
    events: int = 0


class Summary(BaseModel):
    """요약 정보 (합계, 파생 작성 시각)"""

    totals: Totals = Field(default_factory=Totals)
    timestamp: datetime | None = None


class ViewModel(BaseModel):
    """화면 계층에 전달되는 뷰 모델"""

    label: str = "NFC Payload"
    schema_version: str | None = None
    patient: dict[str, Any] | None = Field(default=None, description="FHIR Patient 리소스")
    allergies: list[Allergy] = Field(default_factory=list)
    stages: list[StageSection] = Field(default_factory=list)
    summary: Summary = Field(default_factory=Summary)
    raw_payload: Any = None
