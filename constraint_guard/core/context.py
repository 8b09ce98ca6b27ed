"""
Constraint Guard - Guard Context
프로세스 단위 조립 객체 (전역 싱글톤 대신 명시적으로 전달)

Settings → ConstraintStore / 세션 상태 / Violation Log / Status → EnforcementCoordinator
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Optional

from ..config import Settings
from ..control.audit_log import ViolationLog
from ..control.evaluator import RuleEvaluator
from ..control.rules_store import ConstraintStore
from ..control.status import StatusAggregator
from .enforcer import EnforcementCoordinator
from .session_state import Clock, FileStateStore, KeyValueStore, OverrideStore, SkillStore


@dataclass
class GuardContext:
    settings: Settings
    store: ConstraintStore
    overrides: OverrideStore
    skills: SkillStore
    violation_log: ViolationLog
    status: StatusAggregator
    coordinator: EnforcementCoordinator
    clock: Clock = time.time

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        state_store: Optional[KeyValueStore] = None,
        clock: Clock = time.time,
    ) -> "GuardContext":
        """
        설정으로부터 전체 구성 요소 생성

        Args:
            settings: 프로세스 설정 (None 이면 환경 변수에서)
            state_store: 세션 상태 저장소 (None 이면 settings.state_dir 파일 저장소)
            clock: 시간 함수 (테스트용 주입)
        """
        settings = settings or Settings.from_env()
        state_store = state_store or FileStateStore(settings.state_dir, clock=clock)

        store = ConstraintStore(settings.constraints_path)
        overrides = OverrideStore(
            state_store,
            clock=clock,
            ttl_seconds=settings.override_ttl_seconds,
            max_prompts=settings.override_max_prompts,
        )
        skills = SkillStore(state_store, clock=clock, ttl_seconds=settings.skill_ttl_seconds)
        violation_log = ViolationLog(settings.violation_log_path)
        status = StatusAggregator(settings.status_path)

        coordinator = EnforcementCoordinator(
            store=store,
            evaluator=RuleEvaluator(),
            overrides=overrides,
            skills=skills,
            violation_log=violation_log,
            status=status,
        )
        return cls(
            settings=settings,
            store=store,
            overrides=overrides,
            skills=skills,
            violation_log=violation_log,
            status=status,
            coordinator=coordinator,
            clock=clock,
        )
