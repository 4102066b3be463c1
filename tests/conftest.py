import pytest

from nfc_ips.core.config import Settings
from nfc_ips.core.context import build_codec_context


@pytest.fixture(scope="session")
def context():
    return build_codec_context(Settings())


@pytest.fixture
def ips_bundle() -> dict:
    return {
        "resourceType": "Bundle",
        "id": "ips-001",
        "meta": {"lastUpdated": "2024-01-15T09:00:00Z"},
        "identifier": {"system": "urn:oid:2.16.840.1.113883.4.3.2.1", "value": "IPS-001"},
        "type": "document",
        "timestamp": "2024-01-15T09:00:00Z",
        "entry": [
            {
                "fullUrl": "urn:uuid:composition-1",
                "resource": {
                    "resourceType": "Composition",
                    "id": "composition-1",
                    "status": "final",
                    "title": "International Patient Summary",
                },
            },
            {
                "fullUrl": "urn:uuid:patient-1",
                "resource": {
                    "resourceType": "Patient",
                    "id": "patient-1",
                    "name": [
                        {
                            "family": "Smith",
                            "given": ["John", "Paul"],
                            "prefix": ["Mr", "Cpl"],
                        }
                    ],
                    "gender": "male",
                    "birthDate": "1990-01-01",
                    "identifier": [
                        {
                            "type": {"coding": [{"code": "NH"}]},
                            "value": "9434765919",
                        },
                        {
                            "type": {"coding": [{"code": "MIL"}]},
                            "value": "30098765",
                        },
                        {
                            "type": {"coding": [{"code": "PPN"}]},
                            "value": "P1234567",
                        },
                    ],
                },
            },
            {
                "fullUrl": "urn:uuid:allergy-1",
                "resource": {
                    "resourceType": "AllergyIntolerance",
                    "code": {
                        "coding": [{"system": "http://snomed.info/sct", "code": "372687004"}]
                    },
                    "category": ["medication"],
                    "criticality": "high",
                    "recordedDate": "2023-06-01",
                    "reaction": [
                        {
                            "manifestation": [
                                {"coding": [{"system": "http://snomed.info/sct", "code": "271807003"}]}
                            ],
                            "severity": "moderate",
                        }
                    ],
                },
            },
            {
                "fullUrl": "urn:uuid:obs-1",
                "resource": {
                    "resourceType": "Observation",
                    "category": [{"coding": [{"code": "vital-signs"}]}],
                    "code": {"coding": [{"system": "http://loinc.org", "code": "8867-4"}]},
                    "effectiveDateTime": "2024-01-15T10:00:00Z",
                    "valueQuantity": {"value": 88, "unit": "bpm"},
                    "extension": [
                        {
                            "url": "http://example.org/fhir/StructureDefinition/care-stage",
                            "valueCode": "poi",
                        }
                    ],
                },
            },
            {
                "fullUrl": "urn:uuid:obs-2",
                "resource": {
                    "resourceType": "Observation",
                    "category": [{"coding": [{"code": "vital-signs"}]}],
                    "code": {"coding": [{"system": "http://loinc.org", "code": "85354-9"}]},
                    "effectiveDateTime": "2024-01-15T10:05:00Z",
                    "component": [
                        {
                            "code": {"coding": [{"code": "8480-6"}]},
                            "valueQuantity": {"value": 120, "unit": "mmHg"},
                        },
                        {
                            "code": {"coding": [{"code": "8462-4"}]},
                            "valueQuantity": {"value": 80, "unit": "mmHg"},
                        },
                    ],
                    "extension": [
                        {
                            "url": "http://example.org/fhir/StructureDefinition/care-stage",
                            "valueCode": "poi",
                        }
                    ],
                },
            },
            {
                "fullUrl": "urn:uuid:condition-1",
                "resource": {
                    "resourceType": "Condition",
                    "code": {
                        "coding": [{"system": "http://snomed.info/sct", "code": "125605004"}]
                    },
                    "onsetDateTime": "2024-01-15T09:45:00Z",
                    "extension": [
                        {
                            "url": "http://example.org/fhir/StructureDefinition/care-stage",
                            "valueCode": "mevac",
                        }
                    ],
                },
            },
            {
                "fullUrl": "urn:uuid:med-1",
                "resource": {
                    "resourceType": "MedicationAdministration",
                    "medicationCodeableConcept": {
                        "coding": [{"system": "http://snomed.info/sct", "code": "387207008"}]
                    },
                    "effectiveDateTime": "2024-01-15T10:10:00Z",
                    "dosage": {
                        "dose": {"value": 10, "unit": "mg"},
                        "route": {"coding": [{"display": "Intravenous route"}]},
                    },
                    "extension": [
                        {
                            "url": "http://example.org/fhir/StructureDefinition/care-stage",
                            "valueCode": "r2",
                        }
                    ],
                },
            },
            {
                "fullUrl": "urn:uuid:proc-1",
                "resource": {
                    "resourceType": "Procedure",
                    "code": {
                        "coding": [{"system": "http://snomed.info/sct", "code": "182777000"}]
                    },
                    "performedDateTime": "2024-01-15T10:20:00Z",
                    "note": [{"text": "Tourniquet applied"}],
                    "extension": [
                        {
                            "url": "http://example.org/fhir/StructureDefinition/care-stage",
                            "valueCode": "Rear TACEVAC",
                        }
                    ],
                },
            },
            {
                "fullUrl": "urn:uuid:obs-3",
                "resource": {
                    "resourceType": "Observation",
                    "category": [{"coding": [{"code": "vital-signs"}]}],
                    "code": {"coding": [{"system": "http://loinc.org", "code": "9279-1"}]},
                    "valueQuantity": {"value": 18},
                },
            },
        ],
    }
