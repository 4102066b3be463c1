import pytest

from nfc_ips.codec.schema import compile_schema
from nfc_ips.core.config import Settings, get_settings, load_yaml_resource
from nfc_ips.core.context import (
    build_codec_context,
    load_codec_context,
    reset_codec_context,
)
from nfc_ips.core.errors import ConfigError


def test_settings_read_environment(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("TERMINOLOGY_FILE", "custom.yaml")
    get_settings.cache_clear()
    settings = get_settings()
    assert settings.log_level == "DEBUG"
    assert settings.resource_path(settings.terminology_file).name == "custom.yaml"
    get_settings.cache_clear()


def test_load_yaml_resource_missing_file(tmp_path):
    with pytest.raises(ConfigError) as exc_info:
        load_yaml_resource(tmp_path / "missing.yaml")
    assert exc_info.value.code == "CFG_LOAD_001"


def test_load_yaml_resource_rejects_non_mapping(tmp_path):
    path = tmp_path / "list.yaml"
    path.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_yaml_resource(path)


def test_compile_schema_rejects_unknown_type():
    definition = {
        "package": "test.pkg",
        "root": "Root",
        "messages": {"Root": [{"name": "x", "number": 1, "type": "Missing"}]},
    }
    with pytest.raises(ConfigError):
        compile_schema(definition)


def test_compile_schema_builds_message_class():
    definition = {
        "package": "test.pkg",
        "root": "Root",
        "messages": {"Root": [{"name": "x", "number": 1, "type": "string"}]},
    }
    schema = compile_schema(definition)
    message = schema.new_message()
    message.x = "value"
    assert schema.full_name == "test.pkg.Root"
    assert message.SerializeToString() == b"\x0a\x05value"


def test_build_codec_context_with_missing_terminology(tmp_path):
    settings = Settings(terminology_file=str(tmp_path / "missing.yaml"))
    with pytest.raises(ConfigError):
        build_codec_context(settings)


def test_terminology_resolver(context):
    terminology = context.terminology
    assert terminology.resolve_display_name("loinc", "8867-4") == "Heart rate"
    assert terminology.resolve_display_name("sct", "000") == "000"
    assert terminology.infer_unit("loinc", "8310-5") == "°F"
    assert terminology.infer_unit("loinc", "000") is None
    assert terminology.is_temperature("loinc", "8310-5")
    assert terminology.code_prefix("sct") == "snomed"
    assert terminology.code_prefix("nhs") == "nhs"


def test_load_codec_context_is_memoized():
    reset_codec_context()
    first = load_codec_context()
    assert load_codec_context() is first
    reset_codec_context()
    assert load_codec_context() is not first
