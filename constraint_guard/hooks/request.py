"""
Constraint Guard - Hook Request
Hook 입력 JSON 정규화 (필드명 변형은 이 모듈에서만 처리)

  prompt      ← prompt | text | content | message
  tool_name   ← tool_name | name | toolName
  tool_input  ← tool_input | parameters | arguments | input
  session_id  ← session_id | sessionId | $CLAUDE_SESSION_ID | "unknown"
  override    ← override_request | overrideRequest | tool_input._constraint_override
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple

from ..core.overrides import coerce_constraint_ids
from .base import HookStage

PROMPT_FIELDS = ("prompt", "text", "content", "message")
TOOL_NAME_FIELDS = ("tool_name", "name", "toolName")
TOOL_INPUT_FIELDS = ("tool_input", "parameters", "arguments", "input")
SESSION_FIELDS = ("session_id", "sessionId")
OVERRIDE_FIELDS = ("override_request", "overrideRequest")
FILE_PATH_FIELDS = ("file_path", "notebook_path", "path", "filePath")

TOOL_OVERRIDE_KEY = "_constraint_override"


@dataclass(frozen=True)
class HookRequest:
    """정규화된 Hook 요청 (1회 호출당 1개)"""
    stage: HookStage
    session_id: str = "unknown"
    prompt: str = ""
    tool_name: Optional[str] = None
    tool_input: Dict[str, Any] = field(default_factory=dict)
    file_path: Optional[str] = None
    cwd: Optional[str] = None
    override_request: Tuple[str, ...] = ()
    event_name: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


def _first(payload: Mapping[str, Any], names) -> Any:
    for name in names:
        value = payload.get(name)
        if value is not None:
            return value
    return None


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def normalize_request(
    stage: HookStage,
    payload: Mapping[str, Any],
    environ: Optional[Mapping[str, str]] = None,
) -> HookRequest:
    """
    원시 JSON 객체 → HookRequest

    Raises:
        TypeError: payload 가 JSON 객체가 아님
    """
    if not isinstance(payload, Mapping):
        raise TypeError(f"Hook payload must be a JSON object, got {type(payload).__name__}")

    environ = os.environ if environ is None else environ

    session_id = _first(payload, SESSION_FIELDS) or environ.get("CLAUDE_SESSION_ID") or "unknown"

    tool_input = _first(payload, TOOL_INPUT_FIELDS)
    if not isinstance(tool_input, Mapping):
        tool_input = {}
    tool_input = dict(tool_input)

    override = coerce_constraint_ids(_first(payload, OVERRIDE_FIELDS))
    override += tuple(
        i for i in coerce_constraint_ids(tool_input.get(TOOL_OVERRIDE_KEY)) if i not in override
    )

    file_path = _first(tool_input, FILE_PATH_FIELDS) or payload.get("file_path")

    tool_name = _first(payload, TOOL_NAME_FIELDS)

    return HookRequest(
        stage=stage,
        session_id=_as_text(session_id),
        prompt=_as_text(_first(payload, PROMPT_FIELDS)) if stage == HookStage.PROMPT else "",
        tool_name=_as_text(tool_name) if tool_name is not None else None,
        tool_input=tool_input,
        file_path=_as_text(file_path) if file_path else None,
        cwd=payload.get("cwd"),
        override_request=override,
        event_name=payload.get("hook_event_name"),
        raw=dict(payload),
    )
