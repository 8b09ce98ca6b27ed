"""
Constraint Guard - Hook Protocol Adapter
stdin JSON → Hook → 종료 코드 + stderr 진단

상태 흐름:
┌─────────────────────────────────────────────────────────────────┐
│ AWAITING_INPUT → PARSING → ENFORCING → RESPONDING → TERMINATED  │
│                                                                 │
│  입력 없음 / TTY        → SILENT_ALLOW (0)                      │
│  JSON 파싱 실패         → ALLOW_WITH_DIAGNOSTIC (1)             │
│  BlockSignal            → BLOCKED (2)                           │
│  그 외 예외 / 시간 초과 → ALLOW_WITH_DIAGNOSTIC (1)             │
└─────────────────────────────────────────────────────────────────┘

읽기 + 집행 전체가 timeout_seconds 안에 끝나지 않으면 허용으로 종료한다.
작업 스레드는 daemon 이라 마감 이후 프로세스 종료를 막지 않는다.
"""
from __future__ import annotations

import json
import logging
import sys
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import IO, Any, Callable, Dict, Optional, TypeVar

from ..core.context import GuardContext
from ..core.enforcer import Verdict
from ..errors import BlockSignal, GuardError, HookTimeoutError
from ..utils.server_logger import log_hook_outcome
from .base import ExitCode, Hook, HookResult, HookStage
from .prompt_hook import PromptHook
from .request import HookRequest, normalize_request
from .tool_hook import ToolHook

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AdapterState(str, Enum):
    AWAITING_INPUT = "awaiting_input"
    PARSING = "parsing"
    ENFORCING = "enforcing"
    RESPONDING = "responding"
    TERMINATED = "terminated"


@dataclass
class AdapterOutcome:
    """1회 호출 결과 (종료 코드 + stderr 텍스트)"""
    exit_code: ExitCode
    diagnostic: str = ""
    last_state: AdapterState = AdapterState.AWAITING_INPUT
    session_id: Optional[str] = None
    verdict: Optional[Verdict] = None

    def __repr__(self) -> str:
        return f"AdapterOutcome({self.exit_code.name} from {self.last_state.value})"


def run_with_deadline(func: Callable[[], T], timeout_seconds: float, phase: str) -> T:
    """
    daemon 스레드에서 실행, 마감 시간 초과 시 HookTimeoutError

    작업 스레드의 예외는 호출자 스레드에서 다시 발생한다.
    """
    outcome: Dict[str, Any] = {}

    def target():
        try:
            outcome["value"] = func()
        except Exception as e:
            outcome["error"] = e
        except BaseException as e:
            outcome["error"] = GuardError(f"{phase} worker exited: {e!r}")

    worker = threading.Thread(target=target, name=f"constraint-guard-{phase}", daemon=True)
    worker.start()
    worker.join(max(0.0, timeout_seconds))

    if worker.is_alive():
        raise HookTimeoutError(timeout_seconds, phase)
    if "error" in outcome:
        raise outcome["error"]
    return outcome["value"]


class HookAdapter:
    """
    Hook Protocol Adapter

    사용법:
        adapter = HookAdapter.with_default_hooks(GuardContext.from_settings())
        sys.exit(adapter.run(HookStage.TOOL))
    """

    def __init__(
        self,
        guard: GuardContext,
        timeout_seconds: Optional[float] = None,
        max_input_bytes: Optional[int] = None,
    ):
        self.guard = guard
        self.timeout_seconds = (
            timeout_seconds if timeout_seconds is not None else guard.settings.hook_timeout_seconds
        )
        self.max_input_bytes = (
            max_input_bytes if max_input_bytes is not None else guard.settings.max_input_bytes
        )
        self._hooks: Dict[HookStage, Hook] = {}

    @classmethod
    def with_default_hooks(cls, guard: GuardContext, **kwargs) -> "HookAdapter":
        return cls(guard, **kwargs).register(PromptHook(guard)).register(ToolHook(guard))

    def register(self, hook: Hook) -> "HookAdapter":
        """
        단계별 Hook 등록 (같은 단계는 교체)

        Returns:
            self (체이닝용)
        """
        self._hooks[hook.stage] = hook
        return self

    # =========================================================================
    # 실행
    # =========================================================================

    def run(self, stage: HookStage, stdin: Optional[IO] = None, stderr: Optional[IO] = None) -> int:
        """1회 호출 처리 후 종료 코드 반환 (진단은 stderr 로만)"""
        stdin = stdin if stdin is not None else sys.stdin
        stderr = stderr if stderr is not None else sys.stderr

        outcome = self.handle(stage, stdin)
        if outcome.diagnostic:
            stderr.write(outcome.diagnostic.rstrip("\n") + "\n")
            stderr.flush()
        return int(outcome.exit_code)

    def handle(self, stage: HookStage, stream: Optional[IO]) -> AdapterOutcome:
        start = time.monotonic()
        outcome = self._handle(stage, stream, start)

        violations = len(outcome.verdict.violations) if outcome.verdict else 0
        log_hook_outcome(
            stage.value,
            int(outcome.exit_code),
            session_id=outcome.session_id,
            duration_ms=int((time.monotonic() - start) * 1000),
            violations=violations,
        )
        return outcome

    def _remaining(self, start: float) -> float:
        return self.timeout_seconds - (time.monotonic() - start)

    def _handle(self, stage: HookStage, stream: Optional[IO], start: float) -> AdapterOutcome:
        state = AdapterState.AWAITING_INPUT

        # AWAITING_INPUT
        try:
            raw = run_with_deadline(lambda: self._read(stream), self._remaining(start), "read")
        except HookTimeoutError as e:
            logger.warning(f"Hook input not received in time: {e}")
            return AdapterOutcome(ExitCode.SILENT_ALLOW, last_state=state)
        except Exception as e:
            logger.warning(f"Hook input unreadable: {e}")
            return self._diagnostic(f"⚠️ Could not read hook input: {e}", state)

        if not raw.strip():
            return AdapterOutcome(ExitCode.SILENT_ALLOW, last_state=state)

        # PARSING
        state = AdapterState.PARSING
        try:
            request = normalize_request(stage, json.loads(raw))
        except (ValueError, TypeError) as e:
            logger.warning(f"Invalid hook data format: {e}")
            return self._diagnostic("⚠️ Invalid hook data format", state)

        hook = self._hooks.get(stage)
        if hook is None:
            logger.error(f"No hook registered for stage {stage.value}")
            return self._diagnostic(f"⚠️ No constraint hook for {stage.value}", state, request)
        if not hook.validate(request):
            logger.debug(f"Skipping {hook.name} (nothing to check)", extra={"session_id": request.session_id})
            return AdapterOutcome(ExitCode.SILENT_ALLOW, last_state=state, session_id=request.session_id)

        # ENFORCING
        state = AdapterState.ENFORCING
        result = None
        try:
            result = run_with_deadline(
                lambda: self._execute(hook, request), self._remaining(start), "enforce"
            )
            result.raise_for_block()
        except BlockSignal as signal:
            return AdapterOutcome(
                ExitCode.BLOCKED,
                diagnostic=signal.message,
                last_state=AdapterState.RESPONDING,
                session_id=request.session_id,
                verdict=result.verdict if result is not None else None,
            )
        except HookTimeoutError as e:
            logger.warning(f"Constraint check timed out, allowing: {e}",
                           extra={"session_id": request.session_id})
            return self._diagnostic(f"⚠️ Constraint check timed out ({e}), action allowed", state, request)
        except Exception as e:
            logger.exception("Hook failed, allowing action (fail-open)",
                             extra={"session_id": request.session_id})
            return self._diagnostic(f"⚠️ {stage.value} hook error: {e}", state, request)

        # RESPONDING
        state = AdapterState.RESPONDING
        if result.notices:
            return AdapterOutcome(
                ExitCode.ALLOW_WITH_DIAGNOSTIC,
                diagnostic="\n".join(result.notices),
                last_state=state,
                session_id=request.session_id,
                verdict=result.verdict,
            )
        return AdapterOutcome(
            ExitCode.SILENT_ALLOW,
            last_state=state,
            session_id=request.session_id,
            verdict=result.verdict,
        )

    # =========================================================================
    # 내부
    # =========================================================================

    def _read(self, stream: Optional[IO]) -> str:
        """최대 max_input_bytes 까지 읽기 (TTY 는 입력 없음)"""
        if stream is None:
            return ""
        isatty = getattr(stream, "isatty", None)
        if isatty is not None and isatty():
            return ""

        source = getattr(stream, "buffer", stream)
        data = source.read(self.max_input_bytes + 1)
        if len(data) > self.max_input_bytes:
            raise ValueError(f"input exceeds {self.max_input_bytes} bytes")
        if isinstance(data, bytes):
            data = data.decode("utf-8", errors="replace")
        return data or ""

    @staticmethod
    def _execute(hook: Hook, request: HookRequest) -> HookResult:
        try:
            return hook.execute(request)
        except BlockSignal:
            raise
        except Exception as e:
            logger.exception(f"{hook.name} failed", extra={"session_id": request.session_id})
            return hook.on_error(request, e)

    @staticmethod
    def _diagnostic(
        message: str,
        state: AdapterState,
        request: Optional[HookRequest] = None,
    ) -> AdapterOutcome:
        return AdapterOutcome(
            ExitCode.ALLOW_WITH_DIAGNOSTIC,
            diagnostic=message,
            last_state=state,
            session_id=request.session_id if request else None,
        )
