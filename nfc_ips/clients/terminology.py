from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from nfc_ips.core.config import load_yaml_resource


class TerminologyResolver(BaseModel):
    """용어 표시 이름과 단위를 조회하는 읽기 전용 리졸버"""

    model_config = ConfigDict(frozen=True)

    version: str = ""
    display: dict[str, str] = Field(default_factory=dict)
    units: dict[str, str] = Field(default_factory=dict)
    temperature: frozenset[str] = Field(default_factory=frozenset)
    code_prefixes: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_file(cls, path: Path) -> "TerminologyResolver":
        """YAML 용어 표를 로드

        Args:
            path: 용어 파일 경로

        Returns:
            리졸버 인스턴스
        """
        data = load_yaml_resource(path)
        return cls(
            version=str(data.get("version", "")),
            display={str(k): str(v) for k, v in (data.get("display") or {}).items()},
            units={str(k): str(v) for k, v in (data.get("units") or {}).items()},
            temperature=frozenset(str(key) for key in data.get("temperature") or []),
            code_prefixes={
                str(k): str(v) for k, v in (data.get("code_prefixes") or {}).items()
            },
        )

    def resolve_display_name(self, system: str, code: str) -> str:
        """표시 이름을 조회 (없으면 코드 그대로)"""
        return self.display.get(f"{system}:{code}", code)

    def infer_unit(self, system: str, code: str) -> str | None:
        """코드에 대한 기본 단위를 추론"""
        return self.units.get(f"{system}:{code}")

    def is_temperature(self, system: str, code: str) -> bool:
        return f"{system}:{code}" in self.temperature

    def code_prefix(self, system: str) -> str:
        """툴팁용 용어 체계 접두어 (sct -> snomed)"""
        return self.code_prefixes.get(system, system)
