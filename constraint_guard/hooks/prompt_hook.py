"""
Constraint Guard - Prompt Hook (UserPromptSubmit)

1. OVERRIDE_CONSTRAINT 지시 → 세션 override 기록
2. /<skill> 명령 (설정된 skill 만) → skill 권한 기록
3. 프롬프트 텍스트 검사
"""
from __future__ import annotations

import logging

from ..core.overrides import parse_override_directives, parse_skill_command
from ..errors import StateStoreError
from .base import Hook, HookResult, HookStage
from .request import HookRequest

logger = logging.getLogger(__name__)


class PromptHook(Hook):
    """
    프롬프트 제출 Hook

    override 지시가 포함된 프롬프트 자체도 검사 대상이지만,
    방금 요청된 제약은 override_request 로 억제된다.
    """

    @property
    def stage(self) -> HookStage:
        return HookStage.PROMPT

    def validate(self, request: HookRequest) -> bool:
        return super().validate(request) and bool(request.prompt.strip())

    def execute(self, request: HookRequest) -> HookResult:
        notices = []
        requested = list(request.override_request)

        directive_ids = parse_override_directives(request.prompt)
        if directive_ids:
            try:
                directive = self.guard.overrides.write(request.session_id, directive_ids)
            except StateStoreError:
                logger.warning("Could not persist override directive", exc_info=True,
                               extra={"session_id": request.session_id})
            else:
                minutes = self.guard.overrides.ttl_seconds / 60
                notices.append(f"✅ Constraint override active for: {', '.join(directive.constraint_ids)}")
                notices.append(f"   Valid for {directive.max_prompts} prompts or {minutes:g} minutes")
            requested.extend(i for i in directive_ids if i not in requested)

        skill_name = parse_skill_command(request.prompt)
        if skill_name:
            self._record_skill(request.session_id, skill_name, notices)

        context = self.context_for(request)
        context.override_request = tuple(requested)

        verdict = self.guard.coordinator.enforce(request.prompt, context)
        notices.extend(self.notices_for(verdict))
        return HookResult(stage=self.stage, verdict=verdict, notices=notices)

    def _record_skill(self, session_id: str, skill_name: str, notices: list) -> None:
        definition = self.guard.store.rules.skills.get(skill_name)
        if definition is None:
            logger.debug(f"/{skill_name} is not a configured skill", extra={"session_id": session_id})
            return

        ttl = definition.ttl_minutes * 60 if definition.ttl_minutes else None
        try:
            grant = self.guard.skills.record(session_id, skill_name, ttl_seconds=ttl)
        except StateStoreError:
            logger.warning(f"Could not persist skill grant {skill_name}", exc_info=True,
                           extra={"session_id": session_id})
            return

        if definition.exempts:
            minutes = (grant.expires_at - grant.invoked_at) / 60
            notices.append(
                f"🔓 Skill {skill_name} active for {minutes:g} minutes, "
                f"exempting: {', '.join(definition.exempts)}"
            )
