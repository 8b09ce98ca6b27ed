"""
Constraint Guard - Core Module

- Session State: override 지시 / skill 권한 (TTL)
- Overrides: 프롬프트 지시 파싱
- Enforcer: 1회 집행 판정 (Verdict)
- Context: 프로세스 단위 조립
"""

from .session_state import (
    KeyValueStore,
    MemoryStateStore,
    FileStateStore,
    OverrideDirective,
    OverrideStore,
    SkillGrant,
    SkillStore,
)
from .overrides import coerce_constraint_ids, parse_override_directives, parse_skill_command
from .enforcer import (
    Decision,
    EnforcementContext,
    EnforcementCoordinator,
    Verdict,
    format_violation_message,
)
from .context import GuardContext

__all__ = [
    # Session State
    "KeyValueStore",
    "MemoryStateStore",
    "FileStateStore",
    "OverrideDirective",
    "OverrideStore",
    "SkillGrant",
    "SkillStore",
    # Overrides
    "coerce_constraint_ids",
    "parse_override_directives",
    "parse_skill_command",
    # Enforcer
    "Decision",
    "EnforcementContext",
    "EnforcementCoordinator",
    "Verdict",
    "format_violation_message",
    # Context
    "GuardContext",
]
