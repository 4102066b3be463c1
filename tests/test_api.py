import pytest
from fastapi.testclient import TestClient

from nfc_ips.core.config import get_settings
from nfc_ips.core.context import reset_codec_context
from nfc_ips.main import create_app


def _make_client(monkeypatch: pytest.MonkeyPatch) -> TestClient:
    monkeypatch.setenv("LOG_LEVEL", "WARNING")
    get_settings.cache_clear()
    reset_codec_context()
    return TestClient(create_app())


def test_health(monkeypatch):
    client = _make_client(monkeypatch)
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "정상"
    assert body["schemas"] == ["medis.nfc.NFCPayload", "medis.nfc.legacy.NFCPayload"]


def test_encode_then_decode(monkeypatch, ips_bundle):
    client = _make_client(monkeypatch)
    encoded = client.post("/v1/encode", json=ips_bundle)
    assert encoded.status_code == 200
    fragment = encoded.json()["fragment"]
    assert encoded.json()["coderef"]["patient"]["family"] == "Smith"
    assert encoded.json()["binary"].startswith("// Protobuf binary representation")

    decoded = client.post("/v1/decode", json={"payload": f"https://example.org/ips#{fragment}"})
    assert decoded.status_code == 200
    body = decoded.json()
    assert body["schema_version"] == "coderef"
    assert body["summary"]["totals"] == {"vitals": 2, "conditions": 1, "events": 2}
    assert len(body["stages"]) == 9


def test_bundle_endpoint_reports_provenance(monkeypatch, ips_bundle):
    client = _make_client(monkeypatch)
    fragment = client.post("/v1/encode", json=ips_bundle).json()["fragment"]
    response = client.post("/v1/bundle", json={"payload": fragment})
    assert response.status_code == 200
    body = response.json()
    assert body["provenance"] == "preserved"
    assert body["bundle"]["id"] == "ips-001"


def test_decode_accepts_bundle_json(monkeypatch, ips_bundle):
    import json

    client = _make_client(monkeypatch)
    response = client.post("/v1/decode", json={"payload": json.dumps(ips_bundle)})
    assert response.status_code == 200
    assert response.json()["patient"]["name"][0]["family"] == "Smith"


def test_decode_failure_returns_error_code(monkeypatch):
    client = _make_client(monkeypatch)
    response = client.post("/v1/decode", json={"payload": "@@@"})
    assert response.status_code == 422
    assert response.json()["detail"]["code"] == "TX_DECODE_BASE64"


def test_encode_without_patient_returns_error_code(monkeypatch):
    client = _make_client(monkeypatch)
    response = client.post("/v1/encode", json={"resourceType": "Bundle", "entry": []})
    assert response.status_code == 422
    assert response.json()["detail"]["code"] == "FHIR_PATIENT_001"


def test_encode_tolerates_malformed_item(monkeypatch, ips_bundle):
    client = _make_client(monkeypatch)
    ips_bundle["entry"][7]["resource"]["note"] = ["Tourniquet applied"]
    response = client.post("/v1/encode", json=ips_bundle)
    assert response.status_code == 200
    procedure = response.json()["coderef"]["rear_tacevac"]["events"][0]
    assert procedure["dose"] == "Tourniquet applied"
