import logging

from nfc_ips.core.logger import LOGGER_NAME

_FORMAT = (
    "%(asctime)s %(levelname)s %(name)s "
    "event=%(event)s schema=%(schema)s stage=%(stage)s %(message)s"
)
_DEFAULTS = {"event": "system", "schema": "-", "stage": "-"}
_METRIC_FIELDS = ("error_code", "duration_ms", "record_count")


class _SafeFormatter(logging.Formatter):
    """extra 필드가 없는 레코드도 포맷하고 측정값은 뒤에 붙임"""

    def format(self, record: logging.LogRecord) -> str:
        for key, default in _DEFAULTS.items():
            if not hasattr(record, key):
                setattr(record, key, default)
        message = super().format(record)
        metrics = [
            f"{key}={getattr(record, key)}"
            for key in _METRIC_FIELDS
            if getattr(record, key, None) is not None
        ]
        if metrics:
            message = f"{message} {' '.join(metrics)}"
        return message


def configure_logging(level: str) -> logging.Logger:
    """코덱 로거를 설정 (반복 호출해도 핸들러는 하나)

    Args:
        level: 로깅 레벨 문자열

    Returns:
        설정된 로거
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level.upper())
    if not any(isinstance(handler.formatter, _SafeFormatter) for handler in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(_SafeFormatter(_FORMAT))
        logger.addHandler(handler)
    return logger
