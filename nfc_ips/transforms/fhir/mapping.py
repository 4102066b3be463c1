from __future__ import annotations

import re

from nfc_ips.models.coderef import CareStage, CodeRef

CARE_STAGE_EXTENSION = "http://example.org/fhir/StructureDefinition/care-stage"
MILITARY_RANK_EXTENSION = "http://example.org/fhir/StructureDefinition/military-rank"
BLOOD_GROUP_EXTENSION = "http://example.org/fhir/StructureDefinition/blood-group"
NATIONALITY_EXTENSION = "http://example.org/fhir/StructureDefinition/nationality"

IPS_BUNDLE_PROFILE = "http://hl7.org/fhir/uv/ips/StructureDefinition/Bundle-uv-ips"
PROVENANCE_TAG_SYSTEM = "urn:medis:nfc:provenance"

SYSTEM_URLS = {
    "sct": "http://snomed.info/sct",
    "loinc": "http://loinc.org",
    "icd": "http://hl7.org/fhir/sid/icd-10",
    "ucum": "http://unitsofmeasure.org",
}
URN_CODE_PREFIX = "urn:code:"

NHS_IDENTIFIER_TYPE = "NH"
SERVICE_IDENTIFIER_TYPE = "MIL"
NHS_IDENTIFIER_SYSTEM = "https://fhir.nhs.uk/Id/nhs-number"
IDENTIFIER_TYPE_SYSTEM = "http://terminology.hl7.org/CodeSystem/v2-0203"

VITAL_SIGNS_CATEGORY = "vital-signs"
SYSTOLIC_CODE = "8480-6"

# 인코딩 경로 전용 2개 항목 양방향 표
GENDER_TO_CODE = {
    "male": CodeRef(system="sct", code="248153007"),
    "female": CodeRef(system="sct", code="248152002"),
}
OPAQUE_GENDER_SYSTEM = "gender"

# 표시 경로 전용 (unknown 폴백 허용)
GENDER_DISPLAY = {
    "sct:248153007": "male",
    "sct:248152002": "female",
    "sct:337915000": "other",
    "sct:184115007": "unknown",
}

FHIR_GENDERS = frozenset(GENDER_DISPLAY.values())

DEFAULT_BLOOD_GROUP = CodeRef(system="sct", code="278152006")
NATIONALITY_SYSTEM = "urn:iso:std:iso:3166"
PROCEDURE_DEFAULT_ROUTE = "Manual"

PATIENT_SUMMARY_CODE = {
    "system": "http://loinc.org",
    "code": "60591-5",
    "display": "Patient summary Document",
}
OBSERVATION_CATEGORY_SYSTEM = "http://terminology.hl7.org/CodeSystem/observation-category"
CONDITION_CLINICAL_SYSTEM = "http://terminology.hl7.org/CodeSystem/condition-clinical"
ALLERGY_CLINICAL_SYSTEM = "http://terminology.hl7.org/CodeSystem/allergyintolerance-clinical"
ALLERGY_VERIFICATION_SYSTEM = (
    "http://terminology.hl7.org/CodeSystem/allergyintolerance-verification"
)

STAGE_BUNDLE_CODES = {
    CareStage.POI: "poi",
    CareStage.CASEVAC: "casevac",
    CareStage.AXP: "axp",
    CareStage.MEDEVAC: "medevac",
    CareStage.R1: "r1",
    CareStage.FWD_TACEVAC: "fwdTacevac",
    CareStage.R2: "r2",
    CareStage.REAR_TACEVAC: "rearTacevac",
    CareStage.R3: "r3",
}

CARE_STAGE_ALIASES = {
    "poi": CareStage.POI,
    "casevac": CareStage.CASEVAC,
    "axp": CareStage.AXP,
    "mevac": CareStage.MEDEVAC,
    "medevac": CareStage.MEDEVAC,
    "r1": CareStage.R1,
    "fwdtacevac": CareStage.FWD_TACEVAC,
    "fwd-tacevac": CareStage.FWD_TACEVAC,
    "fwd_tacevac": CareStage.FWD_TACEVAC,
    "forwardtacevac": CareStage.FWD_TACEVAC,
    "forward-tacevac": CareStage.FWD_TACEVAC,
    "r2": CareStage.R2,
    "reartacevac": CareStage.REAR_TACEVAC,
    "rear-tacevac": CareStage.REAR_TACEVAC,
    "rear_tacevac": CareStage.REAR_TACEVAC,
    "r3": CareStage.R3,
}

_ROUTE_SUFFIX = re.compile(r"\s*route$", re.IGNORECASE)


def normalize_care_stage(value: object) -> CareStage | None:
    """치료 단계 값을 정규화

    Args:
        value: 확장 또는 레거시 행의 원본 단계 값

    Returns:
        치료 단계 또는 None
    """
    if value is None:
        return None
    text = str(value).strip()
    if text == "":
        return None
    return CARE_STAGE_ALIASES.get(text.lower().replace(" ", ""))


def system_alias(url: str | None) -> str:
    """용어 체계 URL을 별칭으로 변환

    Args:
        url: FHIR coding.system

    Returns:
        별칭(sct, loinc 등), 알 수 없는 URL은 그대로
    """
    if not url:
        return "unknown"
    for alias, system_url in SYSTEM_URLS.items():
        if url == system_url:
            return alias
    if "snomed" in url:
        return "sct"
    if "loinc" in url:
        return "loinc"
    if url.startswith(URN_CODE_PREFIX):
        return url[len(URN_CODE_PREFIX):]
    return url


def system_url(alias: str | None) -> str | None:
    """별칭을 용어 체계 URL로 변환 (system_alias의 역)"""
    if not alias:
        return None
    if alias in SYSTEM_URLS:
        return SYSTEM_URLS[alias]
    if "://" in alias or alias.startswith("urn:"):
        return alias
    return f"{URN_CODE_PREFIX}{alias}"


def normalize_route(value: object) -> str | None:
    """투여 경로 끝의 'route' 단어를 제거

    Args:
        value: 원본 경로 문자열

    Returns:
        정리된 경로 또는 None
    """
    if value is None:
        return None
    text = _ROUTE_SUFFIX.sub("", str(value).strip())
    return text or None
