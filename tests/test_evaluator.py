"""
Rule Evaluator 테스트
결정성, 단조성, 점수/위험도, 대표 시나리오
"""
import pytest

from constraint_guard.control.evaluator import (
    RISK_ORDER,
    RiskLevel,
    RuleEvaluator,
    Violation,
    classify_risk,
    compute_score,
)
from constraint_guard.control.rules import Constraint, ScoringPolicy, Severity
from constraint_guard.control.rules_store import RuleSet
from constraint_guard.errors import EvaluationError


def violation(severity: Severity, constraint_id: str = "x") -> Violation:
    return Violation(
        constraint_id=constraint_id,
        severity=severity,
        message="m",
        matches=1,
        content_length=10,
    )


class TestScenarios:
    """대표 시나리오"""

    def test_clean_content(self):
        """console.log 규칙만 있을 때 깨끗한 코드"""
        rules = RuleSet.from_constraints([
            {"id": "no-console-log", "pattern": r"console\.log", "severity": "warning"},
        ])
        result = RuleEvaluator().evaluate("const x = 1;", rules)

        assert result.violations == ()
        assert result.compliance_score == 10.0
        assert result.risk == RiskLevel.LOW

    def test_single_critical(self, eval_rules):
        """critical 1건은 점수 7.0, 위험도 CRITICAL"""
        result = RuleEvaluator().evaluate('eval("2+2")', eval_rules)

        assert [v.constraint_id for v in result.violations] == ["no-eval-usage"]
        assert result.violations[0].matches == 1
        assert result.violations[0].severity == Severity.CRITICAL
        assert result.violations[0].suggestion == "Avoid eval()"
        assert result.compliance_score == 7.0
        assert result.risk == RiskLevel.CRITICAL

    def test_match_count_and_declaration_order(self, eval_rules):
        """규칙당 위반 1건 + 매치 수 합산, 순서는 선언 순서"""
        content = "function run() { console.log(1); console.log(2); eval('x'); }"
        result = RuleEvaluator().evaluate(content, eval_rules)

        assert [v.constraint_id for v in result.violations] == [
            "no-eval-usage", "no-console-log", "proper-function-naming",
        ]
        assert result.violations[1].matches == 2
        assert result.violations[0].content_length == len(content)
        # 10 - 3.0 - 1.0 - 0.5
        assert result.compliance_score == 5.5

    def test_empty_content(self, eval_rules):
        """빈 내용은 위반 없음"""
        for content in ("", None):
            result = RuleEvaluator().evaluate(content, eval_rules)
            assert result.violations == ()
            assert result.compliance_score == 10.0
            assert result.risk == RiskLevel.LOW

    def test_disabled_rules_skipped(self):
        """비활성 규칙은 평가하지 않음"""
        rules = RuleSet.from_constraints([
            {"id": "a", "pattern": "foo", "enabled": False},
        ])
        assert RuleEvaluator().evaluate("foo", rules).violations == ()

    def test_score_floor(self):
        """점수 하한 0"""
        rules = RuleSet.from_constraints([
            {"id": f"c{i}", "pattern": "x", "severity": "critical"} for i in range(5)
        ])
        assert RuleEvaluator().evaluate("x", rules).compliance_score == 0.0


class TestDeterminism:
    def test_repeated_calls_identical(self, eval_rules):
        """같은 입력 같은 결과"""
        content = "var a = 1; console.log(a); eval(a);"
        evaluator = RuleEvaluator()
        first = evaluator.evaluate(content, eval_rules)
        second = evaluator.evaluate(content, eval_rules)

        assert first.violations == second.violations
        assert first.compliance_score == second.compliance_score
        assert first.risk == second.risk


class TestMonotonicity:
    """위반 추가 시 점수는 오르지 않고 위험도는 내려가지 않음"""

    @pytest.mark.parametrize("base", [
        [],
        [Severity.INFO],
        [Severity.WARNING, Severity.INFO],
        [Severity.ERROR],
        [Severity.ERROR, Severity.ERROR],
    ])
    @pytest.mark.parametrize("added", list(Severity))
    def test_adding_violation(self, base, added):
        """위반 추가 시 점수 비증가, 위험도 비감소"""
        scoring = ScoringPolicy()
        before = [violation(s, f"b{i}") for i, s in enumerate(base)]
        after = before + [violation(added, "added")]

        assert compute_score(after, scoring) <= compute_score(before, scoring)
        assert classify_risk(after, scoring).rank >= classify_risk(before, scoring).rank

    def test_adding_matching_rule_through_evaluator(self, eval_rules):
        """매칭 규칙 추가 시 평가 결과도 단조"""
        content = "console.log(x); function go() {}"
        evaluator = RuleEvaluator()
        before = evaluator.evaluate(content, eval_rules)

        extended = RuleSet.from_constraints(
            [c.model_dump() for c in eval_rules]
            + [{"id": "no-go", "pattern": r"go\(", "severity": "error"}]
        )
        after = evaluator.evaluate(content, extended)

        assert after.compliance_score <= before.compliance_score
        assert after.risk.rank >= before.risk.rank


class TestRiskClassification:
    def test_thresholds(self):
        """기본 위험도 임계값"""
        scoring = ScoringPolicy()
        assert classify_risk([], scoring) == RiskLevel.LOW
        assert classify_risk([violation(Severity.WARNING)], scoring) == RiskLevel.LOW
        assert classify_risk([violation(Severity.ERROR)], scoring) == RiskLevel.MEDIUM
        assert classify_risk([violation(Severity.INFO)] * 6, scoring) == RiskLevel.MEDIUM
        assert classify_risk([violation(Severity.ERROR)] * 3, scoring) == RiskLevel.HIGH
        assert classify_risk([violation(Severity.CRITICAL)], scoring) == RiskLevel.CRITICAL

    def test_configurable_thresholds(self):
        """scoring 설정으로 임계값 조정"""
        scoring = ScoringPolicy(high_error_threshold=1)
        assert classify_risk([violation(Severity.ERROR)], scoring) == RiskLevel.HIGH

    def test_risk_order(self):
        """위험도 순서"""
        assert [r.rank for r in RISK_ORDER] == [0, 1, 2, 3]


class TestEvaluationError:
    def test_matching_failure_wrapped(self):
        """매칭 중 예외는 EvaluationError 로 감싸짐"""

        class BrokenConstraint(Constraint):
            def count_matches(self, content):
                raise RuntimeError("regex engine exploded")

        rules = RuleSet(constraints=(BrokenConstraint(id="no-eval-usage", pattern="eval"),))
        with pytest.raises(EvaluationError) as exc:
            RuleEvaluator().evaluate("anything", rules)
        assert exc.value.constraint_id == "no-eval-usage"
