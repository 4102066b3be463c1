from functools import lru_cache
from pathlib import Path
from typing import Literal

import yaml
from pydantic_settings import BaseSettings, SettingsConfigDict

from nfc_ips.core.errors import ConfigError

RESOURCES_DIR = Path(__file__).resolve().parent.parent / "resources"


class Settings(BaseSettings):
    """환경 변수에서 애플리케이션 설정을 로드"""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    environment: Literal["local", "dev", "prod"] = "local"
    version: str = "0.1.0"
    log_level: str = "INFO"
    resources_dir: str = str(RESOURCES_DIR)
    coderef_schema_file: str = "coderef_schema.yaml"
    legacy_schema_file: str = "legacy_schema.yaml"
    terminology_file: str = "terminology.yaml"

    def resource_path(self, name: str) -> Path:
        """리소스 파일 경로를 구성

        Args:
            name: 파일 이름 또는 절대 경로

        Returns:
            리소스 파일 경로
        """
        path = Path(name)
        if path.is_absolute():
            return path
        return Path(self.resources_dir) / path


@lru_cache
def get_settings() -> Settings:
    """캐시된 설정 인스턴스를 반환"""
    return Settings()


def load_yaml_resource(path: Path) -> dict:
    """YAML 리소스 파일을 로드

    Args:
        path: 파일 경로

    Returns:
        파싱된 딕셔너리

    Raises:
        ConfigError: 파일이 없거나 형식이 잘못된 경우
    """
    try:
        with open(path, "r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except FileNotFoundError as exc:
        raise ConfigError(str(path), "파일 없음") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(str(path), f"YAML 파싱 실패: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(str(path), "최상위 항목은 매핑이어야 함")
    return data
