import zlib

import pytest

from nfc_ips.codec.legacy import build_code_dictionary, resolve_legacy_code
from nfc_ips.codec.negotiation import SchemaParser, decode_fragment, first_success
from nfc_ips.codec.transport import encode_base64url, encode_payload
from nfc_ips.core.errors import (
    SchemaMismatch,
    SerializationError,
    TransportDecodeError,
    UnsupportedPayloadFormat,
)
from nfc_ips.models.coderef import (
    Allergy,
    BundleMetadata,
    CodeRef,
    CodeRefPayload,
    Condition,
    Event,
    Patient,
    StageData,
    Vital,
)


def _full_payload() -> CodeRefPayload:
    return CodeRefPayload(
        patient=Patient(
            given="John Paul",
            family="Smith",
            rank="Cpl",
            title="Mr",
            nationality="GB",
            dob="1990-01-01",
            gender=CodeRef(system="sct", code="248153007"),
            blood_group=CodeRef(system="sct", code="278155008"),
            nhs_id=CodeRef(system="nhs", code="9434765919"),
            service_id=CodeRef(system="mil", code="30098765"),
        ),
        poi=StageData(
            vitals=[
                Vital(
                    code=CodeRef(system="loinc", code="8867-4"),
                    value=88.0,
                    unit="bpm",
                    time="2024-01-15T10:00:00Z",
                )
            ],
            conditions=[
                Condition(code=CodeRef(system="sct", code="125605004"), onset="2024-01-15T09:45:00Z")
            ],
        ),
        r2=StageData(
            events=[
                Event(
                    code=CodeRef(system="sct", code="387207008"),
                    time="2024-01-15T10:10:00Z",
                    dose=10.0,
                    unit="mg",
                    route="Intravenous",
                ),
                Event(
                    code=CodeRef(system="sct", code="182777000"),
                    time="2024-01-15T10:20:00Z",
                    dose="Tourniquet applied",
                    route="Manual",
                ),
            ]
        ),
        allergies=[
            Allergy(
                code=CodeRef(system="sct", code="372687004"),
                category="medication",
                criticality="high",
                recorded="2023-06-01",
                reaction="271807003",
                severity="moderate",
            )
        ],
        bundle_metadata=BundleMetadata(id="ips-001", type="document", entries_json="[]"),
        t=28412345,
    )


def _legacy_fragment(context, build) -> str:
    message = context.legacy_schema.new_message()
    build(message)
    return encode_base64url(zlib.compress(message.SerializeToString(), 9))


def test_round_trip_preserves_every_field(context):
    payload = _full_payload()
    decoded = decode_fragment(encode_payload(payload, context), context)
    assert decoded.schema_version == "coderef"
    assert decoded.payload == payload


def test_round_trip_keeps_empty_strings_and_zero(context):
    payload = CodeRefPayload(
        patient=Patient(given="", family="Doe"),
        r1=StageData(vitals=[Vital(code=CodeRef(system="loinc", code="8867-4"), value=0.0)]),
        t=1,
    )
    decoded = decode_fragment(encode_payload(payload, context), context)
    assert decoded.payload == payload


def test_round_trip_regenerates_missing_creation_time(context):
    payload = CodeRefPayload(patient=Patient(given="John"))
    decoded = decode_fragment(encode_payload(payload, context), context)
    assert isinstance(decoded.payload.t, int)
    assert decoded.payload.model_copy(update={"t": None}) == payload


def test_uncompressed_fragment_is_accepted(context):
    payload = CodeRefPayload(patient=Patient(given="John"), t=5)
    message = context.coderef_schema.new_message()
    message.patient.given = "John"
    message.t = 5
    decoded = decode_fragment(encode_base64url(message.SerializeToString()), context)
    assert decoded.payload.patient == payload.patient
    assert decoded.payload.t == 5


def test_legacy_payload_decodes_into_canonical_model(context):
    def build(message):
        for system, code in (("sct", "278155008"), ("loinc", "8867-4"), ("sct", "125605004")):
            entry = message.D.add()
            entry.sys = system
            entry.code = code
        message.P.n.extend(["John", "Paul", "Smith"])
        message.P.r = "Cpl"
        message.P.dob = 19900101
        message.P.nhs = "9434765919"
        message.P.sn = "30098765"
        message.P.bg = 0
        vitals = message.V.add(s="poi")
        vitals.r.add(i=1, a=["88", "bpm"])
        conditions = message.C.add(s="mevac")
        conditions.r.add(i=2, a=["2024-01-15T09:45:00Z"])
        events = message.E.add(s="r1")
        events.r.add(i=9, a=["2024-01-15T10:10:00Z", "10", "IV"])
        message.t = 28412345

    decoded = decode_fragment(_legacy_fragment(context, build), context)
    payload = decoded.payload

    assert decoded.schema_version == "legacy"
    assert payload.patient.given == "John Paul"
    assert payload.patient.family == "Smith"
    assert payload.patient.dob == "1990-01-01"
    assert payload.patient.blood_group == CodeRef(system="sct", code="278155008")
    assert payload.patient.nhs_id == CodeRef(system="nhs", code="9434765919")
    assert payload.poi.vitals == [
        Vital(code=CodeRef(system="loinc", code="8867-4"), value=88.0, unit="bpm")
    ]
    assert payload.medevac.conditions[0].onset == "2024-01-15T09:45:00Z"
    event = payload.r1.events[0]
    assert event.code == CodeRef.placeholder(9)
    assert event.dose == 10.0
    assert event.route == "IV"
    assert payload.allergies == []
    assert payload.bundle_metadata is None
    assert payload.t == 28412345


def test_ambiguous_buffer_prefers_current_schema(context):
    def build(message):
        entry = message.D.add()
        entry.sys = "sct"
        entry.code = "248153007"

    decoded = decode_fragment(_legacy_fragment(context, build), context)
    assert decoded.schema_version == "coderef"
    assert decoded.payload.patient.given == "sct"
    assert decoded.payload.patient.family == "248153007"


def test_unmatched_payload_raises_unsupported_format(context):
    with pytest.raises(UnsupportedPayloadFormat) as exc_info:
        decode_fragment(encode_base64url(b"\xff\xff\xff\xff"), context)
    assert isinstance(exc_info.value, TransportDecodeError)
    assert exc_info.value.stage == "schema"
    assert exc_info.value.code == "TX_FORMAT_001"


def test_invalid_text_fails_at_base64_stage(context):
    with pytest.raises(TransportDecodeError) as exc_info:
        decode_fragment("@@@", context)
    assert exc_info.value.stage == "base64"


def test_first_success_tries_parsers_per_candidate_in_order():
    calls = []
    payload = CodeRefPayload(t=1)

    def failing(name):
        def parse(buffer):
            calls.append((name, buffer))
            raise SchemaMismatch(name, "불일치")

        return parse

    def legacy(buffer):
        calls.append(("legacy", buffer))
        if buffer == b"second":
            return payload
        raise SchemaMismatch("legacy", "불일치")

    parsers = [SchemaParser("coderef", failing("coderef")), SchemaParser("legacy", legacy)]
    decoded = first_success(parsers, [b"first", b"second", b"third"])

    assert decoded.schema_version == "legacy"
    assert decoded.payload == payload
    assert calls == [
        ("coderef", b"first"),
        ("legacy", b"first"),
        ("coderef", b"second"),
        ("legacy", b"second"),
    ]


def test_encode_rejects_value_outside_schema_domain(context):
    with pytest.raises(SerializationError) as exc_info:
        encode_payload(CodeRefPayload(patient=Patient(given="John"), t=2**70), context)
    assert exc_info.value.code == "TX_ENCODE_001"


def test_legacy_dictionary_out_of_range_resolves_to_placeholder():
    dictionary = build_code_dictionary([])
    assert resolve_legacy_code(dictionary, 7) == CodeRef(system="", code="Code #7")
    assert resolve_legacy_code(dictionary, -1).code == "Code #-1"
