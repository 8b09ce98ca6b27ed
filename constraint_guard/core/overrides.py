"""
Constraint Guard - Prompt Directive Parser
프롬프트에서 override / skill 지시 추출

  OVERRIDE_CONSTRAINT: no-eval-usage      → override 요청
  /refactor-legacy ...                    → skill 호출 (설정된 skill 만 의미 있음)
"""
from __future__ import annotations

import re
from typing import Any, List, Optional, Tuple

OVERRIDE_PATTERN = re.compile(r"OVERRIDE_CONSTRAINT:\s*([A-Za-z0-9_-]+)")
SKILL_COMMAND_PATTERN = re.compile(r"^\s*/([A-Za-z0-9_:-]+)")


def parse_override_directives(text: Optional[str]) -> List[str]:
    """OVERRIDE_CONSTRAINT 지시의 제약 id 목록 (순서 유지, 중복 제거)"""
    if not text:
        return []
    return list(dict.fromkeys(m.group(1) for m in OVERRIDE_PATTERN.finditer(text)))


def parse_skill_command(text: Optional[str]) -> Optional[str]:
    """프롬프트 맨 앞 /<skill> 명령의 이름"""
    if not text:
        return None
    m = SKILL_COMMAND_PATTERN.match(text)
    return m.group(1) if m else None


def coerce_constraint_ids(value: Any) -> Tuple[str, ...]:
    """
    명시적 override 값 정규화

    "a", "a, b", ["a", "b"] 모두 허용. 그 외 형태는 빈 튜플.
    """
    if value is None:
        return ()
    if isinstance(value, str):
        items = [part.strip() for part in re.split(r"[,\s]+", value)]
    elif isinstance(value, (list, tuple, set, frozenset)):
        items = [str(part).strip() for part in value if part is not None]
    else:
        return ()
    return tuple(dict.fromkeys(item for item in items if item))
