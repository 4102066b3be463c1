import logging

from nfc_ips.core.logger import LOGGER_NAME, log_event
from nfc_ips.core.logging import configure_logging


def test_configure_logging_adds_single_handler():
    logger = configure_logging("info")
    configure_logging("debug")
    assert logger.name == LOGGER_NAME
    assert logger.level == logging.DEBUG
    assert len([h for h in logger.handlers if isinstance(h, logging.StreamHandler)]) == 1


def test_formatter_renders_defaults_and_metrics():
    logger = configure_logging("INFO")
    formatter = logger.handlers[0].formatter
    record = logging.LogRecord(LOGGER_NAME, logging.INFO, __file__, 1, "plain", None, None)
    assert "event=system schema=- stage=-" in formatter.format(record)

    record = logging.LogRecord(LOGGER_NAME, logging.ERROR, __file__, 1, "failed", None, None)
    record.event = "decode_failed"
    record.error_code = "TX_DECODE_BASE64"
    record.duration_ms = 3
    rendered = formatter.format(record)
    assert "event=decode_failed" in rendered
    assert rendered.endswith("failed error_code=TX_DECODE_BASE64 duration_ms=3")


def test_log_event_emits_structured_extras(caplog):
    with caplog.at_level(logging.WARNING, logger=LOGGER_NAME):
        log_event("item_degraded", "WARNING", "poi", "코드 없음", schema="coderef")
    record = caplog.records[-1]
    assert record.event == "item_degraded"
    assert record.schema == "coderef"
    assert record.stage == "poi"
