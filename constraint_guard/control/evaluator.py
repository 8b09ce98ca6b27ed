"""
Constraint Guard - Rule Evaluator
텍스트 → 위반 목록 + 준수 점수 + 위험도

순수 함수: I/O 없음, 공유 가변 상태 없음 → 동시 호출 안전.

- 규칙 1개당 매치가 1개 이상이면 Violation 1건 (matches = 전체 매치 수)
- 위반 순서 = 규칙 선언 순서 (매치 위치 아님)
- 점수 = 10.0 - Σ penalty(severity), 최저 0.0
- 위험도 = critical > high > medium > low (카운트 기반, 단조)
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Tuple

from ..errors import EvaluationError
from .rules import Severity, ScoringPolicy
from .rules_store import RuleSet

MAX_SCORE = 10.0


class RiskLevel(str, Enum):
    """위험도"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return RISK_ORDER.index(self)


RISK_ORDER = (RiskLevel.LOW, RiskLevel.MEDIUM, RiskLevel.HIGH, RiskLevel.CRITICAL)


@dataclass(frozen=True)
class Violation:
    """
    규칙 1개 × 콘텐츠 1개 평가 결과 (값 객체)

    timestamp 는 동등성 비교에서 제외된다 (같은 입력이면 같은 위반).
    """
    constraint_id: str
    severity: Severity
    message: str
    matches: int
    content_length: int
    pattern: str = ""
    suggestion: Optional[str] = None
    group_id: Optional[str] = None
    timestamp: str = field(default="", compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "constraint_id": self.constraint_id,
            "severity": self.severity.value,
            "message": self.message,
            "matches": self.matches,
            "content_length": self.content_length,
            "pattern": self.pattern,
            "suggestion": self.suggestion,
            "group_id": self.group_id,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class EvaluationResult:
    """평가 결과"""
    violations: Tuple[Violation, ...] = ()
    compliance_score: float = MAX_SCORE
    risk: RiskLevel = RiskLevel.LOW
    total_constraints: int = 0

    @property
    def violated_constraints(self) -> int:
        return len(self.violations)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "violations": [v.to_dict() for v in self.violations],
            "compliance": self.compliance_score,
            "risk": self.risk.value,
            "total_constraints": self.total_constraints,
            "violated_constraints": self.violated_constraints,
        }


def compute_score(violations: Iterable[Violation], scoring: ScoringPolicy) -> float:
    """10.0 에서 심각도 가중 감점, 0.0 하한, 소수 1자리"""
    score = MAX_SCORE - sum(scoring.penalty(v.severity) for v in violations)
    return round(max(0.0, score), 1)


def classify_risk(violations: Iterable[Violation], scoring: ScoringPolicy) -> RiskLevel:
    """
    위험도 분류

    모든 위반 목록은 정확히 하나의 등급으로 매핑되고, 위반 추가는 등급을 낮추지 않는다
    (각 조건이 카운트에 대해 단조 증가).
    """
    total = 0
    errors = 0
    for v in violations:
        if v.severity == Severity.CRITICAL:
            return RiskLevel.CRITICAL
        total += 1
        if v.severity == Severity.ERROR:
            errors += 1

    if errors >= scoring.high_error_threshold:
        return RiskLevel.HIGH
    if errors >= scoring.medium_error_threshold or total >= scoring.medium_violation_threshold:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


class RuleEvaluator:
    """
    Rule Evaluator

    사용법:
        evaluator = RuleEvaluator()
        result = evaluator.evaluate(content, store.rules)
    """

    def evaluate(
        self,
        content: Optional[str],
        rules: RuleSet,
        timestamp: Optional[str] = None,
    ) -> EvaluationResult:
        """
        콘텐츠를 규칙 집합에 대해 평가

        Args:
            content: 검사할 텍스트 (None 은 빈 문자열)
            rules: 평가할 RuleSet (disabled 규칙은 건너뜀)
            timestamp: Violation 에 기록할 시각 (기본: 현재 UTC)

        Raises:
            EvaluationError: 매칭 중 예기치 못한 실패
        """
        content = content or ""
        if not content:
            return EvaluationResult(total_constraints=len(rules))

        stamp = timestamp or datetime.now(timezone.utc).isoformat()
        violations = []

        for constraint in rules:
            if not constraint.enabled:
                continue
            try:
                matches = constraint.count_matches(content)
            except Exception as e:
                raise EvaluationError(
                    f"Failed to evaluate constraint {constraint.id}: {e}", constraint.id
                ) from e

            if matches:
                violations.append(Violation(
                    constraint_id=constraint.id,
                    severity=constraint.severity,
                    message=constraint.message,
                    matches=matches,
                    content_length=len(content),
                    pattern=constraint.pattern,
                    suggestion=constraint.suggestion,
                    group_id=constraint.group_id,
                    timestamp=stamp,
                ))

        return EvaluationResult(
            violations=tuple(violations),
            compliance_score=compute_score(violations, rules.scoring),
            risk=classify_risk(violations, rules.scoring),
            total_constraints=len(rules),
        )
