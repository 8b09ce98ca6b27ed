"""
Constraint Guard - Tool Hook (PreToolUse)

검사 대상 추출:
  Write / Edit / MultiEdit / NotebookEdit → 새로 쓰여질 내용 + 파일 경로
  Skill                                   → skill 권한 기록 후 호출 JSON 검사
  그 외                                   → {"tool": .., "parameters": ..} JSON
"""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

from ..errors import StateStoreError
from .base import Hook, HookResult, HookStage
from .request import TOOL_OVERRIDE_KEY, HookRequest

logger = logging.getLogger(__name__)

FILE_WRITE_TOOLS = frozenset({"Write", "Edit", "MultiEdit", "NotebookEdit"})
SKILL_TOOL = "Skill"
SKILL_NAME_FIELDS = ("skill", "command", "name")


def _parameters(tool_input: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in tool_input.items() if k != TOOL_OVERRIDE_KEY}


def extract_content(tool_name: Optional[str], tool_input: Dict[str, Any]) -> str:
    """도구 호출에서 검사할 텍스트 추출"""
    if tool_name in FILE_WRITE_TOOLS:
        parts = [
            tool_input.get("content") or tool_input.get("new_string")
            or tool_input.get("new_source") or ""
        ]
        edits = tool_input.get("edits")
        if isinstance(edits, list):
            for edit in edits:
                if isinstance(edit, dict):
                    parts.append(edit.get("new_string") or "")

        file_path = tool_input.get("file_path") or tool_input.get("notebook_path")
        if file_path:
            parts.append(str(file_path))
        return "\n".join(str(p) for p in parts if p)

    return json.dumps(
        {"tool": tool_name, "parameters": _parameters(tool_input)},
        ensure_ascii=False,
        indent=2,
        default=str,
    )


def skill_name_from(tool_input: Dict[str, Any]) -> Optional[str]:
    for field_name in SKILL_NAME_FIELDS:
        value = tool_input.get(field_name)
        if isinstance(value, str) and value.strip():
            return value.strip().lstrip("/")
    return None


class ToolHook(Hook):
    """도구 실행 전 Hook"""

    @property
    def stage(self) -> HookStage:
        return HookStage.TOOL

    def validate(self, request: HookRequest) -> bool:
        return super().validate(request) and bool(request.tool_name)

    def execute(self, request: HookRequest) -> HookResult:
        notices = []

        if request.tool_name == SKILL_TOOL:
            skill_name = skill_name_from(request.tool_input)
            if skill_name:
                self._record_skill(request.session_id, skill_name)

        content = extract_content(request.tool_name, request.tool_input)
        verdict = self.guard.coordinator.enforce(content, self.context_for(request))
        notices.extend(self.notices_for(verdict))
        return HookResult(stage=self.stage, verdict=verdict, notices=notices)

    def _record_skill(self, session_id: str, skill_name: str) -> None:
        definition = self.guard.store.rules.skills.get(skill_name)
        ttl = definition.ttl_minutes * 60 if definition and definition.ttl_minutes else None
        try:
            self.guard.skills.record(session_id, skill_name, ttl_seconds=ttl)
        except StateStoreError:
            logger.warning(f"Could not persist skill grant {skill_name}", exc_info=True,
                           extra={"session_id": session_id})
