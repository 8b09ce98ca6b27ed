"""
Constraint Guard - Hook Base Classes
Hook 인터페이스 추상 클래스
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import TYPE_CHECKING, List, Optional

from ..core.enforcer import EnforcementContext, Verdict
from ..errors import BlockSignal

if TYPE_CHECKING:
    from ..core.context import GuardContext
    from .request import HookRequest


class HookStage(str, Enum):
    """Hook 실행 단계"""
    PROMPT = "prompt"  # UserPromptSubmit
    TOOL = "tool"      # PreToolUse


class ExitCode(IntEnum):
    """호출자가 구분하는 세 가지 종료 조건"""
    SILENT_ALLOW = 0
    ALLOW_WITH_DIAGNOSTIC = 1
    BLOCKED = 2


@dataclass
class HookResult:
    """
    Hook 실행 결과

    verdict 가 없으면 (skipped) 검사할 내용이 없었던 것.
    notices 는 허용된 경우에도 stderr 로 전달할 안내문.
    """
    stage: HookStage
    verdict: Optional[Verdict] = None
    notices: List[str] = field(default_factory=list)
    skipped: bool = False

    @property
    def blocked(self) -> bool:
        return self.verdict is not None and not self.verdict.allowed

    def raise_for_block(self) -> None:
        """DENY 판정이면 BlockSignal 로 어댑터 경계에 전달"""
        if self.blocked:
            raise BlockSignal(
                self.verdict.message,
                [v.constraint_id for v in self.verdict.blocking_violations],
            )

    def __repr__(self) -> str:
        if self.skipped:
            return f"HookResult(⏭️ {self.stage.value})"
        status = "🚫" if self.blocked else "✅"
        return f"HookResult({status} {self.stage.value} notices={len(self.notices)})"


class Hook(ABC):
    """
    Hook 추상 베이스 클래스

    각 단계 Hook 은 요청에서 검사 대상 텍스트를 뽑아 Coordinator 에 넘긴다.
    """

    def __init__(self, guard: "GuardContext"):
        self.guard = guard

    @property
    @abstractmethod
    def stage(self) -> HookStage:
        """Hook 단계"""

    @property
    def name(self) -> str:
        return self.__class__.__name__

    @abstractmethod
    def execute(self, request: "HookRequest") -> HookResult:
        """
        Hook 실행

        Raises:
            BlockSignal 을 직접 던지지 않는다. DENY 는 HookResult.verdict 로 반환.
        """

    def validate(self, request: "HookRequest") -> bool:
        """
        실행 전 유효성 검증 (오버라이드 가능)

        Returns:
            True: 실행 진행
            False: 스킵 (SILENT_ALLOW)
        """
        return request.stage == self.stage

    def on_error(self, request: "HookRequest", error: Exception) -> HookResult:
        """에러 발생 시 처리 (기본: fail-open 판정 + 진단)"""
        verdict = Verdict.fail_open(error)
        return HookResult(stage=self.stage, verdict=verdict, notices=self.notices_for(verdict))

    def context_for(self, request: "HookRequest", **kwargs) -> EnforcementContext:
        return EnforcementContext(
            session_id=request.session_id,
            override_request=request.override_request,
            file_path=request.file_path,
            source="prompt" if self.stage == HookStage.PROMPT else "tool_call",
            tool_name=request.tool_name,
            **kwargs,
        )

    def notices_for(self, verdict: Verdict) -> List[str]:
        """허용 판정에 붙일 안내문 (report_non_blocking 일 때 warning 수준 위반)"""
        if verdict.degraded:
            return [f"⚠️ Constraint check unavailable, action allowed: {verdict.error}"]
        if not verdict.allowed:
            return []

        policy = self.guard.store.rules.enforcement
        if not policy.report_non_blocking:
            return []

        notices = []
        for v in verdict.non_blocking_violations:
            if v.severity in policy.warning_levels:
                line = f"⚠️ {v.severity.value.upper()}: [{v.constraint_id}] {v.message}"
                if v.suggestion:
                    line += f" 💡 {v.suggestion}"
                notices.append(line)
        return notices
