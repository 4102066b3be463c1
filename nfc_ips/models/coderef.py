from __future__ import annotations

from enum import Enum
from typing import Iterator, Literal

from pydantic import BaseModel, ConfigDict, Field

PLACEHOLDER_PREFIX = "Code #"


class CareStage(str, Enum):
    """치료 단계 버킷 (후송 순서대로 정렬)"""

    POI = "poi"
    CASEVAC = "casevac"
    AXP = "axp"
    MEDEVAC = "medevac"
    R1 = "r1"
    FWD_TACEVAC = "fwd_tacevac"
    R2 = "r2"
    REAR_TACEVAC = "rear_tacevac"
    R3 = "r3"


class CodeRef(BaseModel):
    """용어 체계 코드 참조"""

    model_config = ConfigDict(populate_by_name=True)

    system: str = Field(default="", alias="sys", description="용어 체계 별칭(sct, loinc 등)")
    code: str = Field(default="", description="코드 값")

    @classmethod
    def placeholder(cls, index: int | str) -> "CodeRef":
        """해석되지 않은 코드를 위한 플레이스홀더 생성"""
        return cls(system="", code=f"{PLACEHOLDER_PREFIX}{index}")

    @property
    def key(self) -> str:
        """`system:code` 식별 키"""
        if self.system:
            return f"{self.system}:{self.code}"
        return self.code


class Patient(BaseModel):
    """환자 인적 정보"""

    given: str | None = Field(default=None, description="이름")
    family: str | None = Field(default=None, description="성")
    rank: str | None = Field(default=None, description="계급")
    title: str | None = Field(default=None, description="호칭")
    nationality: str | None = Field(default=None, description="국적")
    dob: str | None = Field(default=None, description="생년월일(YYYY-MM-DD)")
    gender: CodeRef | None = Field(default=None, description="성별 코드")
    blood_group: CodeRef | None = Field(default=None, description="혈액형 코드")
    nhs_id: CodeRef | None = Field(default=None, description="국가 보건 식별자")
    service_id: CodeRef | None = Field(default=None, description="군번")


class Vital(BaseModel):
    """생체신호 측정값"""

    code: CodeRef | None = None
    value: float | None = None
    unit: str | None = None
    time: str | None = None


class Condition(BaseModel):
    """진단 또는 상태"""

    code: CodeRef | None = None
    onset: str | None = None


class Event(BaseModel):
    """투약 또는 처치 이벤트"""

    code: CodeRef | None = None
    time: str | None = None
    dose: float | str | None = Field(default=None, description="숫자 용량 또는 자유 텍스트")
    unit: str | None = None
    route: str | None = None


class StageData(BaseModel):
    """단일 치료 단계의 항목 목록"""

    vitals: list[Vital] = Field(default_factory=list)
    conditions: list[Condition] = Field(default_factory=list)
    events: list[Event] = Field(default_factory=list)


class Allergy(BaseModel):
    """알레르기 정보"""

    code: CodeRef | None = None
    category: str | None = None
    criticality: str | None = None
    recorded: str | None = None
    reaction: str | None = Field(default=None, description="반응 코드(SNOMED)")
    severity: str | None = None


class BundleMetadata(BaseModel):
    """원본 번들 재현을 위해 보존한 직렬화 조각 (해석하지 않음)"""

    id: str | None = None
    meta_json: str | None = None
    identifier_json: str | None = None
    type: str | None = None
    timestamp: str | None = None
    composition_full_url: str | None = None
    composition_json: str | None = None
    entries_json: str | None = None


class CodeRefPayload(BaseModel):
    """코드 참조 페이로드 (캐노니컬 내부 모델)"""

    patient: Patient | None = None
    poi: StageData = Field(default_factory=StageData)
    casevac: StageData = Field(default_factory=StageData)
    axp: StageData = Field(default_factory=StageData)
    medevac: StageData = Field(default_factory=StageData)
    r1: StageData = Field(default_factory=StageData)
    fwd_tacevac: StageData = Field(default_factory=StageData)
    r2: StageData = Field(default_factory=StageData)
    rear_tacevac: StageData = Field(default_factory=StageData)
    r3: StageData = Field(default_factory=StageData)
    allergies: list[Allergy] = Field(default_factory=list)
    bundle_metadata: BundleMetadata | None = None
    t: int | str | None = Field(default=None, description="생성 시각(epoch 분 또는 ISO 문자열)")

    def stage(self, stage: CareStage) -> StageData:
        return getattr(self, stage.value)

    def iter_stages(self) -> Iterator[tuple[CareStage, StageData]]:
        """치료 단계 순서대로 (단계, 데이터) 쌍을 반환"""
        for stage in CareStage:
            yield stage, self.stage(stage)


class DecodedPayload(BaseModel):
    """스키마 협상 결과 (일치한 스키마 태그 포함)"""

    payload: CodeRefPayload
    schema_version: Literal["coderef", "legacy"]
