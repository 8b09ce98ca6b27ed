"""
Constraint Guard - Hook System

구조:
- PromptHook: 프롬프트 제출 시 override / skill 지시 처리 + 검사
- ToolHook: 도구 실행 전 쓰여질 내용 검사
- HookAdapter: stdin JSON → 종료 코드 (0 허용 / 1 진단 / 2 차단)

사용법:
    from constraint_guard.hooks import HookAdapter, HookStage
    from constraint_guard.core import GuardContext

    adapter = HookAdapter.with_default_hooks(GuardContext.from_settings())
    exit_code = adapter.run(HookStage.TOOL)
"""

from .base import ExitCode, Hook, HookResult, HookStage
from .request import HookRequest, normalize_request
from .prompt_hook import PromptHook
from .tool_hook import ToolHook, extract_content
from .adapter import AdapterOutcome, AdapterState, HookAdapter, run_with_deadline

__all__ = [
    # Base
    "ExitCode",
    "Hook",
    "HookResult",
    "HookStage",
    # Request
    "HookRequest",
    "normalize_request",
    # Hooks
    "PromptHook",
    "ToolHook",
    "extract_content",
    # Adapter
    "AdapterOutcome",
    "AdapterState",
    "HookAdapter",
    "run_with_deadline",
]
