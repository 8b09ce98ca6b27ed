"""
Constraint Guard - Error Taxonomy
실패 유형 분류

- ConfigError: 제약 정의 로드 실패 (치명적, 단 last-known-good 유지)
- EvaluationError: 매칭 중 예기치 못한 실패 (위반 0건으로 처리)
- StateStoreError: 세션 상태 파일 손상 (override/skill 없음으로 처리)
- BlockSignal: 에러가 아닌 "차단" 의사 전달용 (exit 2 의 유일한 경로)
"""
from __future__ import annotations


class GuardError(Exception):
    """Constraint Guard 공통 베이스"""


class ConfigError(GuardError):
    """제약 정의 소스가 없거나 잘못됨"""

    def __init__(self, message: str, source: str = ""):
        super().__init__(message)
        self.source = source

    def __str__(self) -> str:
        base = super().__str__()
        return f"{base} ({self.source})" if self.source else base


class EvaluationError(GuardError):
    """규칙 매칭 중 실패"""

    def __init__(self, message: str, constraint_id: str = ""):
        super().__init__(message)
        self.constraint_id = constraint_id


class StateStoreError(GuardError):
    """세션 상태 읽기/쓰기 실패"""

    def __init__(self, message: str, key: str = ""):
        super().__init__(message)
        self.key = key


class HookTimeoutError(GuardError):
    """Hook 처리 시간 초과 (fail-open 대상)"""

    def __init__(self, timeout_seconds: float, phase: str = "enforce"):
        super().__init__(f"{phase} exceeded {timeout_seconds:.1f}s")
        self.timeout_seconds = timeout_seconds
        self.phase = phase


class BlockSignal(GuardError):
    """
    차단 신호

    실패가 아니라 의도된 deny 를 어댑터 경계 너머로 전달한다.
    message 는 에이전트에게 그대로 전달되는 교정 메시지.
    """

    def __init__(self, message: str, constraint_ids=()):
        super().__init__(message)
        self.message = message
        self.constraint_ids = tuple(constraint_ids)
