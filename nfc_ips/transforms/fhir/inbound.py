"""FHIR 번들 -> 코드 참조 변환

환자, 알레르기, 치료 단계별 임상 리소스를 캐노니컬 페이로드로 매핑하고 원본 번들
조각을 그대로 보존한다.
"""

from __future__ import annotations

import json
from typing import Any

from nfc_ips.core.errors import DegradedItem, MissingPatientResource, ParseError
from nfc_ips.core.logger import log_event
from nfc_ips.models.coderef import (
    Allergy,
    BundleMetadata,
    CareStage,
    CodeRef,
    CodeRefPayload,
    Condition,
    Event,
    Patient,
    StageData,
    Vital,
)
from nfc_ips.models.view import DataType
from nfc_ips.transforms.fhir.mapping import (
    BLOOD_GROUP_EXTENSION,
    CARE_STAGE_EXTENSION,
    DEFAULT_BLOOD_GROUP,
    GENDER_TO_CODE,
    MILITARY_RANK_EXTENSION,
    NATIONALITY_EXTENSION,
    NHS_IDENTIFIER_TYPE,
    OPAQUE_GENDER_SYSTEM,
    PROCEDURE_DEFAULT_ROUTE,
    SERVICE_IDENTIFIER_TYPE,
    SYSTOLIC_CODE,
    VITAL_SIGNS_CATEGORY,
    normalize_care_stage,
    normalize_route,
    system_alias,
)
from nfc_ips.utils.parsing import epoch_minutes, parse_dose, parse_float, trim_text, utc_now

STAGE_RESOURCE_TYPES = ("Condition", "Observation", "MedicationAdministration", "Procedure")


def _dump_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def _first(items: Any) -> Any:
    if isinstance(items, list) and items:
        return items[0]
    return None


def _as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


def _as_dict(value: Any) -> dict:
    """딕셔너리가 아니면 빈 딕셔너리 (목록이면 첫 원소)"""
    if isinstance(value, list):
        value = _first(value)
    return value if isinstance(value, dict) else {}


def _first_coding(concept: Any) -> dict:
    if not isinstance(concept, dict):
        return {}
    coding = _first(concept.get("coding"))
    return coding if isinstance(coding, dict) else {}


def _find_extension(resource: dict, url: str) -> dict | None:
    for extension in _as_list(resource.get("extension")):
        if isinstance(extension, dict) and extension.get("url") == url:
            return extension
    return None


def _extension_value(extension: dict | None) -> str | None:
    """확장의 값을 문자열로 추출 (valueCode, valueString, 코딩 순서)"""
    if extension is None:
        return None
    for key in ("valueCode", "valueString", "value"):
        if extension.get(key):
            return trim_text(extension[key])
    return trim_text(_first_coding(extension.get("valueCodeableConcept")).get("code"))


def extract_code(concept: Any, item: str) -> CodeRef:
    """CodeableConcept의 첫 코딩을 코드 참조로 변환

    Args:
        concept: FHIR CodeableConcept
        item: 에러 메시지에 사용할 항목 이름

    Returns:
        코드 참조

    Raises:
        DegradedItem: 코드가 없는 경우
    """
    coding = _first_coding(concept)
    code = trim_text(coding.get("code"))
    if code is None:
        raise DegradedItem(item, "코드 없음")
    return CodeRef(system=system_alias(coding.get("system")), code=code)


def _code_or_placeholder(concept: Any, item: str, index: int, stage: str) -> CodeRef:
    try:
        return extract_code(concept, item)
    except DegradedItem as exc:
        log_event(
            "item_degraded",
            "WARNING",
            stage,
            exc.message,
            error_code=exc.code,
        )
        return CodeRef.placeholder(index)


def care_stage_of(resource: dict) -> CareStage | None:
    """리소스의 치료 단계 확장을 해석"""
    return normalize_care_stage(_extension_value(_find_extension(resource, CARE_STAGE_EXTENSION)))


def _is_vital_sign(resource: dict) -> bool:
    for category in _as_list(resource.get("category")):
        if not isinstance(category, dict):
            continue
        for coding in _as_list(category.get("coding")):
            if isinstance(coding, dict) and coding.get("code") == VITAL_SIGNS_CATEGORY:
                return True
    return False


def classify_resource(resource: dict) -> tuple[CareStage, DataType] | None:
    """임상 리소스를 (치료 단계, 데이터 유형)으로 분류

    Args:
        resource: FHIR 리소스

    Returns:
        분류 결과 또는 단계 항목이 아니면 None
    """
    resource_type = resource.get("resourceType")
    if resource_type not in STAGE_RESOURCE_TYPES:
        return None
    if resource_type == "Observation" and not _is_vital_sign(resource):
        return None
    stage = care_stage_of(resource)
    if stage is None:
        return None
    if resource_type == "Condition":
        return stage, "conditions"
    if resource_type == "Observation":
        return stage, "vitals"
    return stage, "events"


def _patient_identifiers(resource: dict) -> dict[str, CodeRef]:
    identifiers: dict[str, CodeRef] = {}
    for identifier in _as_list(resource.get("identifier")):
        if not isinstance(identifier, dict):
            continue
        type_code = _first_coding(identifier.get("type")).get("code")
        value = trim_text(identifier.get("value"))
        if value is None:
            continue
        if type_code == NHS_IDENTIFIER_TYPE:
            identifiers["nhs_id"] = CodeRef(system="nhs", code=value)
        elif type_code == SERVICE_IDENTIFIER_TYPE:
            identifiers["service_id"] = CodeRef(system="mil", code=value)
        else:
            log_event(
                "identifier_dropped",
                "DEBUG",
                "patient",
                f"매핑되지 않는 식별자 유형: {type_code!r}",
            )
    return identifiers


def _patient_gender(value: Any) -> CodeRef | None:
    text = trim_text(value)
    if text is None:
        return None
    if text in GENDER_TO_CODE:
        return GENDER_TO_CODE[text]
    return CodeRef(system=OPAQUE_GENDER_SYSTEM, code=text)


def _patient_blood_group(resource: dict) -> CodeRef:
    extension = _find_extension(resource, BLOOD_GROUP_EXTENSION)
    if extension is None:
        return DEFAULT_BLOOD_GROUP
    coding = _first_coding(extension.get("valueCodeableConcept"))
    code = trim_text(coding.get("code"))
    if code is None:
        return DEFAULT_BLOOD_GROUP
    system = system_alias(coding.get("system")) if coding.get("system") else "sct"
    return CodeRef(system=system, code=code)


def patient_from_fhir(resource: dict) -> Patient:
    """FHIR Patient 리소스를 환자 모델로 변환

    Args:
        resource: FHIR Patient 리소스

    Returns:
        환자 모델
    """
    name = _as_dict(resource.get("name"))
    given = [str(part).strip() for part in _as_list(name.get("given")) if trim_text(part)]
    prefixes = [str(part).strip() for part in _as_list(name.get("prefix")) if trim_text(part)]

    title = None
    rank = _extension_value(_find_extension(resource, MILITARY_RANK_EXTENSION))
    if rank is not None:
        others = [prefix for prefix in prefixes if prefix != rank]
        title = others[0] if others else None
    elif len(prefixes) >= 2:
        title, rank = prefixes[0], prefixes[-1]
    elif prefixes:
        rank = prefixes[0]

    return Patient(
        given=" ".join(given) or None,
        family=trim_text(name.get("family")),
        rank=rank,
        title=title,
        nationality=_extension_value(_find_extension(resource, NATIONALITY_EXTENSION)),
        dob=trim_text(resource.get("birthDate")),
        gender=_patient_gender(resource.get("gender")),
        blood_group=_patient_blood_group(resource),
        **_patient_identifiers(resource),
    )


def allergy_from_fhir(resource: dict, index: int) -> Allergy:
    reaction = _as_dict(resource.get("reaction"))
    manifestation = _first(reaction.get("manifestation"))
    return Allergy(
        code=_code_or_placeholder(resource.get("code"), "AllergyIntolerance", index, "allergy"),
        category=trim_text(_first(resource.get("category"))),
        criticality=trim_text(resource.get("criticality")),
        recorded=trim_text(resource.get("recordedDate")),
        reaction=trim_text(_first_coding(manifestation).get("code")),
        severity=trim_text(reaction.get("severity")),
    )


def _quantity(resource: dict) -> dict:
    quantity = resource.get("valueQuantity")
    if isinstance(quantity, dict):
        return quantity
    for component in _as_list(resource.get("component")):
        if not isinstance(component, dict):
            continue
        if _first_coding(component.get("code")).get("code") == SYSTOLIC_CODE:
            return _as_dict(component.get("valueQuantity"))
    return {}


def vital_from_fhir(resource: dict, index: int, stage: str) -> Vital:
    """생체신호 Observation을 변환 (혈압 패널은 수축기 성분 사용)"""
    quantity = _quantity(resource)
    value = None
    if quantity.get("value") is not None:
        try:
            value = parse_float(quantity["value"], "valueQuantity.value")
        except ParseError as exc:
            log_event("item_degraded", "WARNING", stage, exc.message, error_code=exc.code)
    return Vital(
        code=_code_or_placeholder(resource.get("code"), "Observation", index, stage),
        value=value,
        unit=trim_text(quantity.get("unit")),
        time=trim_text(resource.get("effectiveDateTime")),
    )


def condition_from_fhir(resource: dict, index: int, stage: str) -> Condition:
    return Condition(
        code=_code_or_placeholder(resource.get("code"), "Condition", index, stage),
        onset=trim_text(resource.get("onsetDateTime")),
    )


def _route_text(concept: Any) -> str | None:
    if not isinstance(concept, dict):
        return None
    coding = _first_coding(concept)
    return trim_text(coding.get("display")) or trim_text(concept.get("text")) or trim_text(
        coding.get("code")
    )


def medication_from_fhir(resource: dict, index: int, stage: str) -> Event:
    dosage = _as_dict(resource.get("dosage"))
    dose = _as_dict(dosage.get("dose"))
    return Event(
        code=_code_or_placeholder(
            resource.get("medicationCodeableConcept"), "MedicationAdministration", index, stage
        ),
        time=trim_text(resource.get("effectiveDateTime")),
        dose=parse_dose(dose.get("value")),
        unit=trim_text(dose.get("unit")),
        route=normalize_route(_route_text(dosage.get("route"))),
    )


def procedure_from_fhir(resource: dict, index: int, stage: str) -> Event:
    """Procedure를 이벤트로 변환 (메모는 텍스트 용량, 부위는 경로)"""
    note = _first(resource.get("note"))
    dose = trim_text(note.get("text")) if isinstance(note, dict) else trim_text(note)
    route = (
        _route_text(_first(resource.get("bodySite")))
        or trim_text(resource.get("performedString"))
        or PROCEDURE_DEFAULT_ROUTE
    )
    return Event(
        code=_code_or_placeholder(resource.get("code"), "Procedure", index, stage),
        time=trim_text(resource.get("performedDateTime")),
        dose=dose,
        route=normalize_route(route),
    )


def bundle_metadata_from_fhir(bundle: dict) -> BundleMetadata:
    """역변환에서 그대로 재현할 번들 조각을 보존"""
    entries = _as_list(bundle.get("entry"))
    composition_entry = next(
        (
            entry
            for entry in entries
            if isinstance(entry, dict)
            and _as_dict(entry.get("resource")).get("resourceType") == "Composition"
        ),
        None,
    )
    return BundleMetadata(
        id=trim_text(bundle.get("id")),
        meta_json=_dump_json(bundle.get("meta") or {}),
        identifier_json=_dump_json(bundle.get("identifier") or {}),
        type=trim_text(bundle.get("type")) or "document",
        timestamp=trim_text(bundle.get("timestamp")),
        composition_full_url=composition_entry.get("fullUrl") if composition_entry else None,
        composition_json=(
            _dump_json(composition_entry.get("resource")) if composition_entry else None
        ),
        entries_json=_dump_json(entries),
    )


def _resources(bundle: dict) -> list[dict]:
    if bundle.get("resourceType") == "Patient":
        return [bundle]
    resources = []
    for entry in _as_list(bundle.get("entry")):
        resource = entry.get("resource") if isinstance(entry, dict) else None
        if isinstance(resource, dict):
            resources.append(resource)
    return resources


_PLACEHOLDER_ITEMS = {"vitals": Vital, "conditions": Condition, "events": Event}


def _stage_item(
    resource: dict, data_type: DataType, index: int, stage: str
) -> Vital | Condition | Event:
    if data_type == "conditions":
        return condition_from_fhir(resource, index, stage)
    if data_type == "vitals":
        return vital_from_fhir(resource, index, stage)
    if resource.get("resourceType") == "MedicationAdministration":
        return medication_from_fhir(resource, index, stage)
    return procedure_from_fhir(resource, index, stage)


def _log_malformed(resource: dict, stage: str, exc: Exception) -> None:
    degraded = DegradedItem(str(resource.get("resourceType")), f"형식 오류: {exc}")
    log_event("item_degraded", "WARNING", stage, degraded.message, error_code=degraded.code)


def to_coderef(bundle: dict) -> CodeRefPayload:
    """FHIR 번들(또는 단독 Patient)을 코드 참조 페이로드로 변환

    Args:
        bundle: FHIR Bundle 또는 Patient 리소스

    Returns:
        코드 참조 페이로드

    Raises:
        MissingPatientResource: Patient 리소스가 없는 경우
    """
    resources = _resources(bundle)
    patient_resource = next(
        (resource for resource in resources if resource.get("resourceType") == "Patient"),
        None,
    )
    if patient_resource is None:
        raise MissingPatientResource()

    stages: dict[CareStage, StageData] = {stage: StageData() for stage in CareStage}
    allergies: list[Allergy] = []
    skipped = 0
    for resource in resources:
        resource_type = resource.get("resourceType")
        if resource_type == "AllergyIntolerance":
            index = len(allergies)
            try:
                allergies.append(allergy_from_fhir(resource, index))
            except (AttributeError, TypeError, ValueError) as exc:
                _log_malformed(resource, "allergy", exc)
                allergies.append(Allergy(code=CodeRef.placeholder(index)))
            continue
        classified = classify_resource(resource)
        if classified is None:
            if resource_type in STAGE_RESOURCE_TYPES:
                skipped += 1
                log_event(
                    "stage_missing",
                    "DEBUG",
                    "bundle",
                    f"치료 단계 없는 {resource_type} 제외: {resource.get('id')}",
                )
            continue
        stage, data_type = classified
        items = getattr(stages[stage], data_type)
        index = len(items)
        try:
            items.append(_stage_item(resource, data_type, index, stage.value))
        except (AttributeError, TypeError, ValueError) as exc:
            _log_malformed(resource, stage.value, exc)
            items.append(_PLACEHOLDER_ITEMS[data_type](code=CodeRef.placeholder(index)))

    if skipped:
        log_event(
            "stage_missing",
            "INFO",
            "bundle",
            "치료 단계 없는 리소스 제외",
            record_count=skipped,
        )

    return CodeRefPayload(
        patient=patient_from_fhir(patient_resource),
        allergies=allergies,
        bundle_metadata=(
            bundle_metadata_from_fhir(bundle) if bundle.get("resourceType") != "Patient" else None
        ),
        t=epoch_minutes(utc_now()),
        **{stage.value: data for stage, data in stages.items()},
    )
