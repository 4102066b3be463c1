from __future__ import annotations

import threading
from functools import lru_cache

from pydantic import BaseModel, ConfigDict

from nfc_ips.clients.terminology import TerminologyResolver
from nfc_ips.codec.schema import CompiledSchema, load_schema
from nfc_ips.core.config import Settings, get_settings
from nfc_ips.core.logger import log_event

_context_lock = threading.Lock()


class CodecContext(BaseModel):
    """변환 호출마다 명시적으로 전달하는 불변 컨텍스트"""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    coderef_schema: CompiledSchema
    legacy_schema: CompiledSchema
    terminology: TerminologyResolver


def build_codec_context(settings: Settings) -> CodecContext:
    """설정에서 스키마와 용어 표를 로드해 컨텍스트를 구성

    Args:
        settings: 애플리케이션 설정

    Returns:
        코덱 컨텍스트

    Raises:
        ConfigError: 리소스 로드 실패 시
    """
    context = CodecContext(
        coderef_schema=load_schema(settings.resource_path(settings.coderef_schema_file)),
        legacy_schema=load_schema(settings.resource_path(settings.legacy_schema_file)),
        terminology=TerminologyResolver.from_file(
            settings.resource_path(settings.terminology_file)
        ),
    )
    log_event(
        "context_loaded",
        "INFO",
        "startup",
        f"스키마 로드 완료: {context.coderef_schema.full_name}, "
        f"{context.legacy_schema.full_name}",
    )
    return context


@lru_cache
def _cached_codec_context() -> CodecContext:
    return build_codec_context(get_settings())


def load_codec_context() -> CodecContext:
    """프로세스 전체에서 한 번만 구성되는 컨텍스트를 반환"""
    with _context_lock:
        return _cached_codec_context()


def reset_codec_context() -> None:
    """컨텍스트 캐시를 초기화"""
    with _context_lock:
        _cached_codec_context.cache_clear()
