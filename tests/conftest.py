"""
공용 fixture

- FakeClock: 시간 주입 (TTL 테스트)
- guard: 메모리 세션 저장소 + tmp_path 로그 경로를 쓰는 GuardContext
"""
import pytest

from constraint_guard.config import Settings
from constraint_guard.control.rules_store import RuleSet
from constraint_guard.core.context import GuardContext
from constraint_guard.core.session_state import MemoryStateStore


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory_store(clock):
    return MemoryStateStore(clock=clock)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        project_dir=tmp_path,
        constraints_path=None,
        state_dir=tmp_path / "state",
        log_dir=tmp_path / "logs",
        violation_log_path=tmp_path / "violations.jsonl",
        status_path=tmp_path / "status.json",
    )


@pytest.fixture
def guard(settings, memory_store, clock):
    return GuardContext.from_settings(settings, state_store=memory_store, clock=clock)


@pytest.fixture
def eval_rules():
    return RuleSet.from_constraints([
        {
            "id": "no-eval-usage",
            "pattern": r"\beval\s*\(",
            "message": "eval() usage detected - security risk",
            "severity": "critical",
            "suggestion": "Avoid eval()",
        },
        {
            "id": "no-console-log",
            "pattern": r"console\.log",
            "message": "Use Logger.log() instead of console.log",
            "severity": "warning",
        },
        {
            "id": "proper-function-naming",
            "pattern": r"function\s+[a-z]",
            "message": "Function names should start with a verb",
            "severity": "info",
        },
    ])
