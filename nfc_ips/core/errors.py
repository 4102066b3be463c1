class PipelineError(Exception):
    """파이프라인 예외의 기본 클래스"""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


class ParseError(PipelineError):
    """파싱 또는 정규화 실패 시 발생"""

    def __init__(self, field: str, message: str) -> None:
        super().__init__("TX_PARSE_001", f"{field}: {message}")


class ConfigError(PipelineError):
    """설정 또는 리소스 파일 로드 실패 시 발생"""

    def __init__(self, path: str, message: str) -> None:
        super().__init__("CFG_LOAD_001", f"{path}: {message}")
        self.path = path


class TransportDecodeError(PipelineError):
    """전송 문자열 디코딩 실패 (base64, inflate, schema 단계)"""

    def __init__(self, stage: str, message: str) -> None:
        super().__init__(f"TX_DECODE_{stage.upper()}", message)
        self.stage = stage


class UnsupportedPayloadFormat(TransportDecodeError):
    """어떤 후보 버퍼도 스키마와 일치하지 않을 때 발생"""

    def __init__(self, message: str = "지원하지 않는 페이로드 형식") -> None:
        super().__init__("schema", message)
        self.code = "TX_FORMAT_001"


class SchemaMismatch(PipelineError):
    """버퍼가 특정 와이어 스키마와 일치하지 않음 (협상 중 내부 사용)"""

    def __init__(self, schema: str, message: str) -> None:
        super().__init__("TX_SCHEMA_001", f"{schema}: {message}")
        self.schema = schema


class MissingPatientResource(PipelineError):
    """번들에 Patient 리소스가 없을 때 발생"""

    def __init__(self, message: str = "번들에 Patient 리소스가 없음") -> None:
        super().__init__("FHIR_PATIENT_001", message)


class SerializationError(PipelineError):
    """인코딩 시 스키마 범위를 벗어난 필드가 있을 때 발생"""

    def __init__(self, field: str, message: str) -> None:
        super().__init__("TX_ENCODE_001", f"{field}: {message}")
        self.field = field


class DegradedItem(PipelineError):
    """단일 항목 변환 실패. 호출자가 잡아서 플레이스홀더로 대체"""

    def __init__(self, item: str, message: str) -> None:
        super().__init__("ITEM_DEGRADED_001", f"{item}: {message}")
        self.item = item
