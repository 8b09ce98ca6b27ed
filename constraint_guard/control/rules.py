"""
Constraint Guard - Constraint Rules (Pydantic 스키마)

제약 정의 문서 구조:
  constraints:  [{id, pattern, message, severity, enabled, suggestion, group}]
  enforcement:  {enabled, blocking_levels, warning_levels, info_levels, report_non_blocking}
  scoring:      {penalties, high_error_threshold, medium_error_threshold, medium_violation_threshold}
  skills:       {<name>: {exempts: [...], ttl_minutes}}
"""
from __future__ import annotations

import re
from enum import Enum
from typing import Any, Dict, List, Optional, Pattern

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    PrivateAttr,
    field_validator,
    model_validator,
)


class Severity(str, Enum):
    """위반 심각도 (info < warning < error < critical)"""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return SEVERITY_ORDER.index(self)


SEVERITY_ORDER = (Severity.INFO, Severity.WARNING, Severity.ERROR, Severity.CRITICAL)

DEFAULT_PENALTIES = {
    Severity.INFO: 0.5,
    Severity.WARNING: 1.0,
    Severity.ERROR: 2.0,
    Severity.CRITICAL: 3.0,
}


def _lower(value: Any) -> Any:
    return value.strip().lower() if isinstance(value, str) else value


class Constraint(BaseModel):
    """
    단일 제약 규칙

    pattern 은 로드 시점에 컴파일된다. 컴파일 실패는 평가 시점이 아니라
    로드 시점 에러 (ConfigError) 로 드러난다.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: str = Field(min_length=1)
    pattern: str = Field(min_length=1)
    message: str = ""
    severity: Severity = Severity.WARNING
    enabled: bool = True
    group_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("group_id", "groupId", "group"),
    )
    suggestion: Optional[str] = None

    _regex: Optional[Pattern] = PrivateAttr(default=None)

    @field_validator("severity", mode="before")
    @classmethod
    def _normalize_severity(cls, value: Any) -> Any:
        return _lower(value)

    @field_validator("pattern")
    @classmethod
    def _compile_pattern(cls, value: str) -> str:
        try:
            re.compile(value)
        except re.error as e:
            raise ValueError(f"invalid pattern: {e}") from e
        return value

    @model_validator(mode="before")
    @classmethod
    def _default_message(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("message") and data.get("id"):
            data = {**data, "message": f"Constraint violation: {data['id']}"}
        return data

    def model_post_init(self, context: Any) -> None:
        self._regex = re.compile(self.pattern)

    @property
    def regex(self) -> Pattern:
        return self._regex

    def count_matches(self, content: str) -> int:
        """겹치지 않는 매치 개수"""
        return sum(1 for _ in self._regex.finditer(content))


class EnforcementPolicy(BaseModel):
    """차단 정책"""
    model_config = ConfigDict(frozen=True, extra="ignore")

    enabled: bool = True
    blocking_levels: List[Severity] = Field(
        default_factory=lambda: [Severity.CRITICAL, Severity.ERROR]
    )
    warning_levels: List[Severity] = Field(default_factory=lambda: [Severity.WARNING])
    info_levels: List[Severity] = Field(default_factory=lambda: [Severity.INFO])
    report_non_blocking: bool = True

    @field_validator("blocking_levels", "warning_levels", "info_levels", mode="before")
    @classmethod
    def _normalize_levels(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = [value]
        return [_lower(v) for v in value] if isinstance(value, list) else value

    def is_blocking(self, severity: Severity) -> bool:
        return severity in self.blocking_levels


class ScoringPolicy(BaseModel):
    """
    점수/위험도 정책

    penalties 는 심각도 순위에 대해 엄격히 증가해야 한다 (critical > error > warning > info).
    """
    model_config = ConfigDict(frozen=True, extra="ignore")

    penalties: Dict[Severity, float] = Field(default_factory=lambda: dict(DEFAULT_PENALTIES))
    high_error_threshold: int = Field(default=3, ge=1)
    medium_error_threshold: int = Field(default=1, ge=1)
    medium_violation_threshold: int = Field(default=6, ge=1)

    @field_validator("penalties", mode="before")
    @classmethod
    def _normalize_penalty_keys(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {_lower(k): v for k, v in value.items()}
        return value

    @field_validator("penalties")
    @classmethod
    def _monotonic_penalties(cls, value: Dict[Severity, float]) -> Dict[Severity, float]:
        merged = {**DEFAULT_PENALTIES, **value}
        previous = None
        for severity in SEVERITY_ORDER:
            weight = merged[severity]
            if weight < 0:
                raise ValueError(f"penalty for {severity.value} must be >= 0")
            if previous is not None and weight <= previous:
                raise ValueError("penalties must strictly increase with severity")
            previous = weight
        return merged

    def penalty(self, severity: Severity) -> float:
        return self.penalties[severity]


class SkillDefinition(BaseModel):
    """Skill 이 활성 상태일 때 면제되는 제약 목록"""
    model_config = ConfigDict(frozen=True, extra="ignore")

    exempts: List[str] = Field(default_factory=list)
    ttl_minutes: Optional[float] = Field(default=None, gt=0)
    description: str = ""


class ConstraintDocument(BaseModel):
    """제약 정의 문서 전체"""
    model_config = ConfigDict(extra="ignore")

    constraints: List[Constraint] = Field(default_factory=list)
    enforcement: EnforcementPolicy = Field(default_factory=EnforcementPolicy)
    scoring: ScoringPolicy = Field(default_factory=ScoringPolicy)
    skills: Dict[str, SkillDefinition] = Field(default_factory=dict)

    @field_validator("enforcement", "scoring", "skills", mode="before")
    @classmethod
    def _none_is_default(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("constraints", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @model_validator(mode="after")
    def _unique_ids(self) -> "ConstraintDocument":
        seen = set()
        for constraint in self.constraints:
            if constraint.id in seen:
                raise ValueError(f"duplicate constraint id: {constraint.id}")
            seen.add(constraint.id)
        return self
