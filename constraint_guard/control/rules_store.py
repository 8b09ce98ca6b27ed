"""
Constraint Guard - Rules Store
제약 정의 YAML/JSON 로딩 + 활성 규칙 계산

- load(): 소스 전체를 새 RuleSet 으로 생성 (부분 패치 없음)
- reload(): 실패 시 last-known-good 유지
- active_rules(): enabled 이고 억제되지 않은 규칙만 (선언 순서 유지)
"""
from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, FrozenSet, Iterable, Iterator, List, Optional, Tuple, Union

import yaml
from pydantic import ValidationError

from ..errors import ConfigError
from .rules import (
    Constraint,
    ConstraintDocument,
    EnforcementPolicy,
    ScoringPolicy,
    SkillDefinition,
)

logger = logging.getLogger(__name__)


# =============================================================================
# 내장 기본 규칙 (설정 파일이 없을 때)
# =============================================================================

DEFAULT_CONSTRAINTS: List[dict] = [
    {
        "id": "no-console-log",
        "pattern": r"console\.log",
        "message": "Use Logger.log() instead of console.log for better log management",
        "severity": "warning",
        "suggestion": "Replace with: Logger.log('info', 'category', message)",
    },
    {
        "id": "no-var-declarations",
        "pattern": r"\bvar\s+",
        "message": "Use 'let' or 'const' instead of 'var'",
        "severity": "warning",
        "suggestion": "Use 'let' for mutable variables, 'const' for immutable",
    },
    {
        "id": "proper-error-handling",
        "pattern": r"catch\s*\([^)]*\)\s*\{\s*\}",
        "message": "Empty catch blocks should be avoided",
        "severity": "error",
        "suggestion": "Add proper error handling or at minimum log the error",
    },
    {
        "id": "no-hardcoded-secrets",
        "pattern": r"(api[_-]?key|password|secret|token)\s*[=:]\s*['\"][^'\"]{8,}['\"]",
        "message": "Potential hardcoded secret detected",
        "severity": "critical",
        "suggestion": "Use environment variables or secure key management",
    },
    {
        "id": "no-eval-usage",
        "pattern": r"\beval\s*\(",
        "message": "eval() usage detected - security risk",
        "severity": "critical",
        "suggestion": "Avoid eval() - use safer alternatives for dynamic code execution",
    },
    {
        "id": "proper-function-naming",
        "pattern": r"function\s+[a-z]",
        "message": "Function names should start with a verb (camelCase)",
        "severity": "info",
        "suggestion": "Use descriptive verb-based names: getUserData(), processResults()",
    },
]


@dataclass(frozen=True)
class RuleSet:
    """
    로드된 규칙 묶음 (불변)

    constraints 는 선언 순서를 유지한다. 정책 (enforcement / scoring / skills) 도
    같은 소스에서 함께 로드되어 하나의 스냅샷으로 취급된다.
    """
    constraints: Tuple[Constraint, ...] = ()
    enforcement: EnforcementPolicy = field(default_factory=EnforcementPolicy)
    scoring: ScoringPolicy = field(default_factory=ScoringPolicy)
    skills: Dict[str, SkillDefinition] = field(default_factory=dict)
    source: str = "<builtin>"

    @classmethod
    def from_document(cls, document: ConstraintDocument, source: str) -> "RuleSet":
        return cls(
            constraints=tuple(document.constraints),
            enforcement=document.enforcement,
            scoring=document.scoring,
            skills=dict(document.skills),
            source=source,
        )

    @classmethod
    def from_constraints(
        cls,
        constraints: Iterable[Union[Constraint, dict]],
        **kwargs,
    ) -> "RuleSet":
        """테스트/임베딩용 간편 생성 (중복 id 검증 포함)"""
        document = ConstraintDocument(constraints=list(constraints))
        return replace(cls.from_document(document, kwargs.pop("source", "<inline>")), **kwargs)

    def __iter__(self) -> Iterator[Constraint]:
        return iter(self.constraints)

    def __len__(self) -> int:
        return len(self.constraints)

    def ids(self) -> List[str]:
        return [c.id for c in self.constraints]

    def get(self, constraint_id: str) -> Optional[Constraint]:
        for constraint in self.constraints:
            if constraint.id == constraint_id:
                return constraint
        return None

    def groups(self) -> Dict[str, List[str]]:
        """group_id → 제약 id 목록 (그룹 없는 규칙은 'ungrouped')"""
        grouped: Dict[str, List[str]] = {}
        for constraint in self.constraints:
            grouped.setdefault(constraint.group_id or "ungrouped", []).append(constraint.id)
        return grouped

    def canonical_json(self) -> str:
        return json.dumps(
            {
                "constraints": [c.model_dump(mode="json") for c in self.constraints],
                "enforcement": self.enforcement.model_dump(mode="json"),
                "scoring": self.scoring.model_dump(mode="json"),
                "skills": {k: v.model_dump(mode="json") for k, v in sorted(self.skills.items())},
            },
            ensure_ascii=False,
            sort_keys=True,
        )

    def rules_hash(self) -> str:
        """감사 추적용 해시 (어떤 규정 버전에서 판정됐는지)"""
        return hashlib.sha256(self.canonical_json().encode("utf-8")).hexdigest()[:16]


class ConstraintStore:
    """
    제약 정의 저장소

    운영 중에는 읽기 전용. 갱신은 reload() 로 전체 교체만 한다.
    """

    def __init__(self, source: Optional[Union[str, Path]] = None):
        self.source = Path(source) if source else None
        self._rules: Optional[RuleSet] = None

    @property
    def rules(self) -> RuleSet:
        """현재 RuleSet (최초 접근 시 로드, 실패하면 ConfigError)"""
        if self._rules is None:
            self._rules = self.load(self.source)
        return self._rules

    @property
    def loaded(self) -> bool:
        return self._rules is not None

    def load(self, source: Optional[Union[str, Path]] = None) -> RuleSet:
        """
        소스에서 RuleSet 생성 (저장소 상태는 바꾸지 않음)

        Raises:
            ConfigError: 파일 없음 / 파싱 실패 / 스키마 위반 / 중복 id / 패턴 컴파일 실패
        """
        if source is None:
            document = ConstraintDocument(constraints=DEFAULT_CONSTRAINTS)
            return RuleSet.from_document(document, "<builtin>")

        path = Path(source)
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigError(f"Cannot read constraint config: {e}", str(path)) from e

        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ConfigError(f"Malformed constraint config: {e}", str(path)) from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError("Constraint config must be a mapping", str(path))

        try:
            document = ConstraintDocument.model_validate(data)
        except ValidationError as e:
            raise ConfigError(f"Invalid constraint config: {e}", str(path)) from e

        rule_set = RuleSet.from_document(document, str(path))
        logger.info(f"Loaded {len(rule_set)} constraint rules from {path}")
        return rule_set

    def reload(self, source: Optional[Union[str, Path]] = None) -> bool:
        """
        전체 재로드

        Returns:
            True: 새 RuleSet 적용
            False: 로드 실패, 이전 RuleSet 유지

        Raises:
            ConfigError: 실패했는데 유지할 이전 RuleSet 도 없음
        """
        if source is not None:
            self.source = Path(source)
        try:
            rule_set = self.load(self.source)
        except ConfigError:
            if self._rules is None:
                raise
            logger.error("Constraint reload failed, keeping last-known-good rules", exc_info=True)
            return False
        self._rules = rule_set
        return True

    @staticmethod
    def active_rules(rule_set: RuleSet, suppressed: Iterable[str] = ()) -> RuleSet:
        """enabled 이고 suppressed 에 없는 규칙만 남긴 RuleSet"""
        blocked: FrozenSet[str] = frozenset(suppressed)
        active = tuple(c for c in rule_set.constraints if c.enabled and c.id not in blocked)
        return replace(rule_set, constraints=active)
