"""
Constraint Guard - Enforcement Coordinator
1회 집행 판정 오케스트레이션

실행 순서:
┌──────────────────────────────────────────────────────────────┐
│  1. 억제 집합 = 명시 override ∪ 세션 override ∪ skill 면제   │
│  2. 활성 규칙 = enabled - 억제 집합                          │
│  3. Evaluator 실행                                           │
│  4. blocking / non-blocking 분리                             │
│  5. blocking 있으면 DENY + 교정 메시지                       │
│  6. 모든 위반 → violation log, 점수 → status (best-effort)   │
│  7. 1~4 단계 예외 → ALLOW (fail-open)                        │
└──────────────────────────────────────────────────────────────┘
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Optional, Sequence, Tuple

from ..control.audit_log import ViolationLog
from ..control.evaluator import EvaluationResult, RiskLevel, RuleEvaluator, Violation
from ..control.rules_store import ConstraintStore, RuleSet
from ..control.status import StatusAggregator
from .session_state import OverrideStore, SkillStore

logger = logging.getLogger(__name__)


class Decision(str, Enum):
    ALLOW = "allow"
    DENY = "deny"


@dataclass(frozen=True)
class Verdict:
    """
    집행 판정 (Allowed | Denied)

    message 는 DENY 일 때만 채워진다.
    error 는 fail-open 으로 내려진 ALLOW 에서만 채워진다.
    """
    decision: Decision
    violations: Tuple[Violation, ...] = ()
    blocking_violations: Tuple[Violation, ...] = ()
    compliance_score: float = 10.0
    risk: RiskLevel = RiskLevel.LOW
    suppressed: FrozenSet[str] = frozenset()
    message: str = ""
    error: Optional[str] = None

    @property
    def allowed(self) -> bool:
        return self.decision == Decision.ALLOW

    @property
    def degraded(self) -> bool:
        """검사 실패로 인한 fail-open 판정 여부"""
        return self.error is not None

    @property
    def non_blocking_violations(self) -> Tuple[Violation, ...]:
        blocking = {v.constraint_id for v in self.blocking_violations}
        return tuple(v for v in self.violations if v.constraint_id not in blocking)

    @classmethod
    def allow(
        cls,
        result: Optional[EvaluationResult] = None,
        suppressed: Iterable[str] = (),
    ) -> "Verdict":
        if result is None:
            return cls(decision=Decision.ALLOW, suppressed=frozenset(suppressed))
        return cls(
            decision=Decision.ALLOW,
            violations=result.violations,
            compliance_score=result.compliance_score,
            risk=result.risk,
            suppressed=frozenset(suppressed),
        )

    @classmethod
    def deny(
        cls,
        result: EvaluationResult,
        blocking: Sequence[Violation],
        message: str,
        suppressed: Iterable[str] = (),
    ) -> "Verdict":
        return cls(
            decision=Decision.DENY,
            violations=result.violations,
            blocking_violations=tuple(blocking),
            compliance_score=result.compliance_score,
            risk=result.risk,
            suppressed=frozenset(suppressed),
            message=message,
        )

    @classmethod
    def fail_open(cls, error: BaseException) -> "Verdict":
        return cls(decision=Decision.ALLOW, error=f"{type(error).__name__}: {error}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "decision": self.decision.value,
            "allowed": self.allowed,
            "violations": [v.to_dict() for v in self.violations],
            "blocking_violations": [v.constraint_id for v in self.blocking_violations],
            "compliance": self.compliance_score,
            "risk": self.risk.value,
            "suppressed": sorted(self.suppressed),
            "message": self.message,
            "error": self.error,
        }


@dataclass
class EnforcementContext:
    """1회 집행 컨텍스트"""
    session_id: str = "unknown"
    override_request: Tuple[str, ...] = ()
    file_path: Optional[str] = None
    source: str = "prompt"  # prompt, tool_call
    tool_name: Optional[str] = None


def format_violation_message(blocking: Sequence[Violation]) -> str:
    """차단 사유 메시지 (위반 항목별 심각도 / 제안 / 패턴)"""
    lines = [
        "🚫 **CONSTRAINT VIOLATION DETECTED - EXECUTION BLOCKED**",
        "",
        "The following constraint violations must be corrected before proceeding:",
        "",
    ]

    for index, v in enumerate(blocking, start=1):
        lines.append(f"**{index}. {v.severity.value.upper()}: [{v.constraint_id}] {v.message}**")
        if v.suggestion:
            lines.append(f"   💡 Suggestion: {v.suggestion}")
        if v.pattern:
            lines.append(f"   🔍 Pattern: `{v.pattern}`")
        lines.append("")

    lines.append("Please modify your request to comply with these constraints and try again.")
    lines.append(
        "To proceed anyway, include `OVERRIDE_CONSTRAINT: <constraint-id>` in your next prompt."
    )
    return "\n".join(lines)


class EnforcementCoordinator:
    """
    Enforcement Coordinator

    사용법:
        coordinator = EnforcementCoordinator(store, RuleEvaluator(), overrides, skills)
        verdict = coordinator.enforce(content, EnforcementContext(session_id="abc"))
        if not verdict.allowed:
            print(verdict.message)
    """

    def __init__(
        self,
        store: ConstraintStore,
        evaluator: RuleEvaluator,
        overrides: OverrideStore,
        skills: SkillStore,
        violation_log: Optional[ViolationLog] = None,
        status: Optional[StatusAggregator] = None,
    ):
        self.store = store
        self.evaluator = evaluator
        self.overrides = overrides
        self.skills = skills
        self.violation_log = violation_log
        self.status = status

    def resolve_suppressed(self, rule_set: RuleSet, context: EnforcementContext) -> FrozenSet[str]:
        """명시 override ∪ 세션 override ∪ 활성 skill 면제"""
        suppressed = set(context.override_request)

        directive = self.overrides.read(context.session_id)
        if directive is not None:
            suppressed.update(directive.constraint_ids)

        for skill_name in self.skills.active(context.session_id):
            definition = rule_set.skills.get(skill_name)
            if definition is not None:
                suppressed.update(definition.exempts)

        return frozenset(suppressed)

    def enforce(self, content: Optional[str], context: Optional[EnforcementContext] = None) -> Verdict:
        context = context or EnforcementContext()

        try:
            rule_set = self.store.rules
            if not rule_set.enforcement.enabled:
                return Verdict.allow()

            suppressed = self.resolve_suppressed(rule_set, context)
            active = ConstraintStore.active_rules(rule_set, suppressed)
            result = self.evaluator.evaluate(content, active)
            blocking = [v for v in result.violations if rule_set.enforcement.is_blocking(v.severity)]
        except Exception as e:
            logger.exception(
                "Constraint check failed, allowing action (fail-open)",
                extra={"session_id": context.session_id},
            )
            return Verdict.fail_open(e)

        if suppressed:
            logger.info(
                f"Suppressed constraints: {', '.join(sorted(suppressed))}",
                extra={"session_id": context.session_id},
            )

        if blocking:
            verdict = Verdict.deny(result, blocking, format_violation_message(blocking), suppressed)
        else:
            verdict = Verdict.allow(result, suppressed)

        self._record(verdict, context, rule_set)
        return verdict

    def _record(self, verdict: Verdict, context: EnforcementContext, rule_set: RuleSet) -> None:
        """위반 기록 + 상태 갱신 (실패해도 판정 유지)"""
        if self.violation_log is not None and verdict.violations:
            try:
                self.violation_log.append(
                    verdict.violations,
                    session_id=context.session_id,
                    file_path=context.file_path,
                    source=context.source,
                    tool_name=context.tool_name,
                    rules_hash=rule_set.rules_hash(),
                )
            except Exception:
                logger.warning("Violation log write failed", exc_info=True,
                               extra={"session_id": context.session_id})

        if self.status is not None:
            try:
                self.status.update(
                    compliance=verdict.compliance_score,
                    violations=len(verdict.violations),
                    blocking=len(verdict.blocking_violations),
                    risk=verdict.risk.value,
                    session_id=context.session_id,
                    blocked=not verdict.allowed,
                )
            except Exception:
                logger.warning("Status update failed", exc_info=True,
                               extra={"session_id": context.session_id})
