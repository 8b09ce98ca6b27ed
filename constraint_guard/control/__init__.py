"""
Constraint Guard - Control Module

- Rules: 제약 스키마 (Pydantic)
- Rules Store: YAML/JSON 로딩 + 활성 규칙
- Evaluator: 패턴 매칭 → 위반 / 점수 / 위험도
- Violation Log: JSONL 위반 기록
- Status: 준수 점수 스냅샷 + 상태줄
"""

from .rules import (
    Constraint,
    ConstraintDocument,
    EnforcementPolicy,
    ScoringPolicy,
    Severity,
    SkillDefinition,
    SEVERITY_ORDER,
)
from .rules_store import ConstraintStore, RuleSet, DEFAULT_CONSTRAINTS
from .evaluator import (
    EvaluationResult,
    RiskLevel,
    RuleEvaluator,
    Violation,
    classify_risk,
    compute_score,
)
from .audit_log import ViolationLog
from .status import StatusAggregator

__all__ = [
    # Rules
    "Constraint",
    "ConstraintDocument",
    "EnforcementPolicy",
    "ScoringPolicy",
    "Severity",
    "SkillDefinition",
    "SEVERITY_ORDER",
    # Store
    "ConstraintStore",
    "RuleSet",
    "DEFAULT_CONSTRAINTS",
    # Evaluator
    "EvaluationResult",
    "RiskLevel",
    "RuleEvaluator",
    "Violation",
    "classify_risk",
    "compute_score",
    # Collaborators
    "ViolationLog",
    "StatusAggregator",
]
