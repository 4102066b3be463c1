"""코드 참조 -> FHIR 번들 변환

보존된 번들 메타데이터가 있으면 문서 골격과 임상 데이터가 아닌 항목을 그대로
재현하고, 없으면 최소 문서 골격을 합성해 재구성 출처로 표시한다.
"""

from __future__ import annotations

import json
import uuid
from typing import Any, Literal

from pydantic import BaseModel

from nfc_ips.clients.terminology import TerminologyResolver
from nfc_ips.core.context import CodecContext
from nfc_ips.core.errors import DegradedItem
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
    Vital,
)
from nfc_ips.transforms.fhir.inbound import classify_resource
from nfc_ips.transforms.fhir.mapping import (
    ALLERGY_CLINICAL_SYSTEM,
    ALLERGY_VERIFICATION_SYSTEM,
    BLOOD_GROUP_EXTENSION,
    CARE_STAGE_EXTENSION,
    CONDITION_CLINICAL_SYSTEM,
    FHIR_GENDERS,
    GENDER_DISPLAY,
    IDENTIFIER_TYPE_SYSTEM,
    IPS_BUNDLE_PROFILE,
    MILITARY_RANK_EXTENSION,
    NATIONALITY_EXTENSION,
    NATIONALITY_SYSTEM,
    NHS_IDENTIFIER_SYSTEM,
    NHS_IDENTIFIER_TYPE,
    OBSERVATION_CATEGORY_SYSTEM,
    OPAQUE_GENDER_SYSTEM,
    PATIENT_SUMMARY_CODE,
    PROVENANCE_TAG_SYSTEM,
    SERVICE_IDENTIFIER_TYPE,
    STAGE_BUNDLE_CODES,
    VITAL_SIGNS_CATEGORY,
    system_url,
)
from nfc_ips.utils.parsing import utc_now_iso

Provenance = Literal["preserved", "reconstructed"]
PATIENT_ID = "patient-example"


class BundleDocument(BaseModel):
    """역변환 결과 번들과 문서 골격의 출처"""

    resource: dict[str, Any]
    provenance: Provenance


def _coding(ref: CodeRef, terminology: TerminologyResolver) -> dict:
    coding: dict[str, Any] = {}
    url = system_url(ref.system)
    if url:
        coding["system"] = url
    coding["code"] = ref.code
    coding["display"] = terminology.resolve_display_name(ref.system, ref.code)
    return coding


def _concept(ref: CodeRef, terminology: TerminologyResolver) -> dict:
    return {"coding": [_coding(ref, terminology)]}


def _stage_extension(stage: CareStage) -> list[dict]:
    return [{"url": CARE_STAGE_EXTENSION, "valueCode": STAGE_BUNDLE_CODES[stage]}]


def _require_code(ref: CodeRef | None, item: str, index: int, stage: str) -> CodeRef:
    if ref is not None and ref.code:
        return ref
    degraded = DegradedItem(item, "코드 없음")
    log_event("item_degraded", "WARNING", stage, degraded.message, error_code=degraded.code)
    return CodeRef.placeholder(index)


def _gender_text(ref: CodeRef) -> str:
    if ref.system == OPAQUE_GENDER_SYSTEM and ref.code in FHIR_GENDERS:
        return ref.code
    return GENDER_DISPLAY.get(ref.key, "unknown")


def patient_to_fhir(
    patient: Patient, terminology: TerminologyResolver, patient_id: str = PATIENT_ID
) -> dict:
    """환자 모델을 FHIR Patient 리소스로 변환

    Args:
        patient: 환자 모델
        terminology: 용어 리졸버
        patient_id: 리소스 id

    Returns:
        FHIR Patient 리소스
    """
    resource: dict[str, Any] = {"resourceType": "Patient", "id": patient_id}

    if patient.given or patient.family or patient.title or patient.rank:
        name: dict[str, Any] = {"use": "official"}
        prefixes = [prefix for prefix in (patient.title, patient.rank) if prefix]
        if prefixes:
            name["prefix"] = prefixes
        if patient.given:
            name["given"] = patient.given.split()
        if patient.family:
            name["family"] = patient.family
        resource["name"] = [name]

    if patient.gender is not None:
        resource["gender"] = _gender_text(patient.gender)
    if patient.dob:
        resource["birthDate"] = patient.dob

    identifiers = []
    if patient.nhs_id is not None:
        identifiers.append(
            {
                "use": "official",
                "type": {
                    "coding": [
                        {
                            "system": IDENTIFIER_TYPE_SYSTEM,
                            "code": NHS_IDENTIFIER_TYPE,
                            "display": "NHS Number",
                        }
                    ]
                },
                "system": NHS_IDENTIFIER_SYSTEM,
                "value": patient.nhs_id.code,
            }
        )
    if patient.service_id is not None:
        identifiers.append(
            {
                "use": "secondary",
                "type": {
                    "coding": [
                        {
                            "system": IDENTIFIER_TYPE_SYSTEM,
                            "code": SERVICE_IDENTIFIER_TYPE,
                            "display": "Military ID number",
                        }
                    ]
                },
                "system": system_url(patient.service_id.system),
                "value": patient.service_id.code,
            }
        )
    if identifiers:
        resource["identifier"] = identifiers

    extensions = []
    if patient.blood_group is not None:
        extensions.append(
            {
                "url": BLOOD_GROUP_EXTENSION,
                "valueCodeableConcept": _concept(patient.blood_group, terminology),
            }
        )
    if patient.nationality:
        extensions.append(
            {
                "url": NATIONALITY_EXTENSION,
                "valueCodeableConcept": {
                    "coding": [
                        {
                            "system": NATIONALITY_SYSTEM,
                            "code": patient.nationality,
                            "display": patient.nationality,
                        }
                    ]
                },
            }
        )
    if patient.rank:
        extensions.append({"url": MILITARY_RANK_EXTENSION, "valueString": patient.rank})
    if extensions:
        resource["extension"] = extensions
    return resource


def allergy_to_fhir(
    allergy: Allergy, index: int, terminology: TerminologyResolver, patient_ref: str
) -> dict:
    resource: dict[str, Any] = {
        "resourceType": "AllergyIntolerance",
        "clinicalStatus": {"coding": [{"system": ALLERGY_CLINICAL_SYSTEM, "code": "active"}]},
        "verificationStatus": {
            "coding": [{"system": ALLERGY_VERIFICATION_SYSTEM, "code": "confirmed"}]
        },
        "code": _concept(
            _require_code(allergy.code, "AllergyIntolerance", index, "allergy"), terminology
        ),
        "patient": {"reference": patient_ref},
    }
    if allergy.category:
        resource["category"] = [allergy.category]
    if allergy.criticality:
        resource["criticality"] = allergy.criticality
    if allergy.recorded:
        resource["recordedDate"] = allergy.recorded
    if allergy.reaction:
        reaction: dict[str, Any] = {
            "manifestation": [
                _concept(CodeRef(system="sct", code=allergy.reaction), terminology)
            ]
        }
        if allergy.severity:
            reaction["severity"] = allergy.severity
        resource["reaction"] = [reaction]
    return resource


def vital_to_fhir(
    vital: Vital,
    index: int,
    stage: CareStage,
    terminology: TerminologyResolver,
    patient_ref: str,
) -> dict:
    code = _require_code(vital.code, "Observation", index, stage.value)
    resource: dict[str, Any] = {
        "resourceType": "Observation",
        "status": "final",
        "category": [
            {
                "coding": [
                    {
                        "system": OBSERVATION_CATEGORY_SYSTEM,
                        "code": VITAL_SIGNS_CATEGORY,
                        "display": "Vital Signs",
                    }
                ]
            }
        ],
        "code": _concept(code, terminology),
        "subject": {"reference": patient_ref},
        "extension": _stage_extension(stage),
    }
    if vital.time:
        resource["effectiveDateTime"] = vital.time
    if vital.value is not None:
        unit = vital.unit or terminology.infer_unit(code.system, code.code)
        quantity: dict[str, Any] = {"value": vital.value}
        if unit:
            quantity["unit"] = unit
        resource["valueQuantity"] = quantity
    return resource


def condition_to_fhir(
    condition: Condition,
    index: int,
    stage: CareStage,
    terminology: TerminologyResolver,
    patient_ref: str,
) -> dict:
    code = _require_code(condition.code, "Condition", index, stage.value)
    resource: dict[str, Any] = {
        "resourceType": "Condition",
        "clinicalStatus": {"coding": [{"system": CONDITION_CLINICAL_SYSTEM, "code": "active"}]},
        "code": _concept(code, terminology),
        "subject": {"reference": patient_ref},
        "extension": _stage_extension(stage),
    }
    if condition.onset:
        resource["onsetDateTime"] = condition.onset
    return resource


def event_to_fhir(
    event: Event,
    index: int,
    stage: CareStage,
    terminology: TerminologyResolver,
    patient_ref: str,
) -> dict:
    """이벤트를 리소스로 변환

    숫자 용량(0 제외)은 MedicationAdministration, 나머지는 Procedure로 만든다.
    """
    code = _require_code(event.code, "Event", index, stage.value)
    if isinstance(event.dose, float) and event.dose:
        dosage: dict[str, Any] = {"dose": {"value": event.dose}}
        if event.unit:
            dosage["dose"]["unit"] = event.unit
        if event.route:
            dosage["route"] = {"text": event.route}
        resource: dict[str, Any] = {
            "resourceType": "MedicationAdministration",
            "status": "completed",
            "medicationCodeableConcept": _concept(code, terminology),
            "subject": {"reference": patient_ref},
            "dosage": dosage,
            "extension": _stage_extension(stage),
        }
        if event.time:
            resource["effectiveDateTime"] = event.time
        return resource

    resource = {
        "resourceType": "Procedure",
        "status": "completed",
        "code": _concept(code, terminology),
        "subject": {"reference": patient_ref},
        "extension": _stage_extension(stage),
    }
    if event.time:
        resource["performedDateTime"] = event.time
    if isinstance(event.dose, str) and event.dose:
        resource["note"] = [{"text": event.dose}]
    if event.route:
        resource["bodySite"] = [{"text": event.route}]
    return resource


def is_captured(resource: dict) -> bool:
    """코드 참조 페이로드로 다시 생성되는 리소스인지 확인"""
    if resource.get("resourceType") in ("Patient", "AllergyIntolerance"):
        return True
    return classify_resource(resource) is not None


def _composition_placeholder(patient_ref: str) -> dict:
    return {
        "resourceType": "Composition",
        "id": "composition-example",
        "status": "final",
        "type": {"coding": [dict(PATIENT_SUMMARY_CODE)]},
        "subject": {"reference": patient_ref},
        "date": utc_now_iso(),
        "title": "International Patient Summary",
        "section": [],
    }


def _reconstructed_shell(patient_ref: str) -> tuple[dict, list[dict]]:
    now = utc_now_iso()
    shell = {
        "resourceType": "Bundle",
        "id": str(uuid.uuid4()),
        "meta": {
            "lastUpdated": now,
            "profile": [IPS_BUNDLE_PROFILE],
            "tag": [{"system": PROVENANCE_TAG_SYSTEM, "code": "reconstructed"}],
        },
        "type": "document",
        "timestamp": now,
    }
    entries = [
        {
            "fullUrl": f"urn:uuid:{uuid.uuid4()}",
            "resource": _composition_placeholder(patient_ref),
        }
    ]
    return shell, entries


def _preserved_shell(metadata: BundleMetadata) -> tuple[dict, list[dict] | None]:
    """보존된 메타데이터에서 문서 골격과 원본 항목 목록을 복원

    Raises:
        ValueError: 보존된 JSON 조각이 손상된 경우
    """
    shell: dict[str, Any] = {"resourceType": "Bundle"}
    if metadata.id:
        shell["id"] = metadata.id
    meta = json.loads(metadata.meta_json) if metadata.meta_json else {}
    if meta:
        shell["meta"] = meta
    identifier = json.loads(metadata.identifier_json) if metadata.identifier_json else {}
    if identifier:
        shell["identifier"] = identifier
    shell["type"] = metadata.type or "document"
    if metadata.timestamp:
        shell["timestamp"] = metadata.timestamp
    entries = json.loads(metadata.entries_json) if metadata.entries_json else None
    if entries is None and metadata.composition_json:
        composition = json.loads(metadata.composition_json)
        if composition:
            entry: dict[str, Any] = {"resource": composition}
            if metadata.composition_full_url:
                entry = {"fullUrl": metadata.composition_full_url, **entry}
            entries = [entry]
    if entries is not None and not isinstance(entries, list):
        raise ValueError("entries_json은 배열이어야 함")
    return shell, entries


def _patient_reference(entries: list[dict] | None) -> tuple[str, str]:
    """보존된 Patient 항목의 (fullUrl, id), 없으면 기본값"""
    for entry in entries or []:
        if not isinstance(entry, dict):
            continue
        resource = entry.get("resource") or {}
        if resource.get("resourceType") == "Patient" and entry.get("fullUrl"):
            return entry["fullUrl"], resource.get("id") or PATIENT_ID
    return f"urn:uuid:{PATIENT_ID}", PATIENT_ID


def to_bundle(payload: CodeRefPayload, context: CodecContext) -> BundleDocument:
    """코드 참조 페이로드를 FHIR 번들로 변환

    Args:
        payload: 코드 참조 페이로드
        context: 코덱 컨텍스트

    Returns:
        번들 리소스와 출처(preserved 또는 reconstructed)
    """
    terminology = context.terminology
    shell: dict[str, Any] | None = None
    entries: list[dict] | None = None
    provenance: Provenance = "reconstructed"

    if payload.bundle_metadata is not None:
        try:
            shell, entries = _preserved_shell(payload.bundle_metadata)
            provenance = "preserved"
        except ValueError as exc:
            log_event(
                "metadata_invalid",
                "WARNING",
                "bundle",
                f"보존 메타데이터 손상, 골격 재구성: {exc}",
            )
            shell, entries = None, None

    patient_ref, patient_id = _patient_reference(entries)
    if shell is None:
        shell, entries = _reconstructed_shell(patient_ref)
    bundle_entries = [
        entry
        for entry in entries or []
        if not (isinstance(entry, dict) and is_captured(entry.get("resource") or {}))
    ]

    if payload.patient is not None:
        bundle_entries.append(
            {
                "fullUrl": patient_ref,
                "resource": patient_to_fhir(payload.patient, terminology, patient_id),
            }
        )
    for index, allergy in enumerate(payload.allergies):
        bundle_entries.append(
            {
                "fullUrl": f"urn:uuid:allergy-{index}",
                "resource": allergy_to_fhir(allergy, index, terminology, patient_ref),
            }
        )
    for stage, data in payload.iter_stages():
        code = STAGE_BUNDLE_CODES[stage]
        for index, vital in enumerate(data.vitals):
            bundle_entries.append(
                {
                    "fullUrl": f"urn:uuid:{code}-vital-{index}",
                    "resource": vital_to_fhir(vital, index, stage, terminology, patient_ref),
                }
            )
        for index, condition in enumerate(data.conditions):
            bundle_entries.append(
                {
                    "fullUrl": f"urn:uuid:{code}-condition-{index}",
                    "resource": condition_to_fhir(condition, index, stage, terminology, patient_ref),
                }
            )
        for index, event in enumerate(data.events):
            bundle_entries.append(
                {
                    "fullUrl": f"urn:uuid:{code}-event-{index}",
                    "resource": event_to_fhir(event, index, stage, terminology, patient_ref),
                }
            )

    log_event(
        "bundle_built",
        "INFO",
        "bundle",
        f"번들 생성 ({provenance})",
        record_count=len(bundle_entries),
    )
    return BundleDocument(resource={**shell, "entry": bundle_entries}, provenance=provenance)
