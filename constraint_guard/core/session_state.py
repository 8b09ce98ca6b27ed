"""
Constraint Guard - Session State
세션 단위 임시 상태 (override 지시 / skill 권한)

저장소는 교체 가능 (테스트: MemoryStateStore, 운영: FileStateStore).
만료 판정 로직은 OverrideStore / SkillStore 에 있으므로 어떤 저장소든 동일하게 동작한다.

- Override: now < expires_at AND prompt_count < max_prompts 일 때만 유효.
  읽을 때 무효면 삭제, 유효하면 prompt_count 1 증가.
- Skill: now < expires_at 일 때만 활성. 읽을 때 만료분을 걸러 다시 저장.
- 손상/읽기 실패: 로그 남기고 "없음" 으로 취급 (파일은 지우지 않음).
- 같은 세션 파일 동시 쓰기는 보장하지 않음 (last write wins).
"""
from __future__ import annotations

import copy
import json
import logging
import os
import re
import tempfile
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Callable, Dict, FrozenSet, Iterable, Optional, Tuple, Union

from ..errors import StateStoreError

logger = logging.getLogger(__name__)

Clock = Callable[[], float]

OVERRIDE_KEY_PREFIX = "constraint-override"
SKILL_KEY_PREFIX = "constraint-skills"

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


# =============================================================================
# Key-Value Store
# =============================================================================

class KeyValueStore(ABC):
    """TTL 지원 key/value 저장소"""

    @abstractmethod
    def get(self, key: str) -> Optional[Dict[str, Any]]:
        """값 조회 (없거나 TTL 만료면 None, 손상이면 StateStoreError)"""

    @abstractmethod
    def put(self, key: str, value: Dict[str, Any], ttl_seconds: Optional[float] = None) -> None:
        """값 저장 (ttl_seconds 가 있으면 그 이후 자동 만료)"""

    @abstractmethod
    def delete(self, key: str) -> None:
        """값 삭제 (없어도 에러 아님)"""


class MemoryStateStore(KeyValueStore):
    def __init__(self, clock: Clock = time.time):
        self._clock = clock
        self._data: Dict[str, Tuple[Dict[str, Any], Optional[float]]] = {}

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            return None
        return copy.deepcopy(value)

    def put(self, key: str, value: Dict[str, Any], ttl_seconds: Optional[float] = None) -> None:
        expires_at = self._clock() + ttl_seconds if ttl_seconds is not None else None
        self._data[key] = (copy.deepcopy(value), expires_at)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._data


class FileStateStore(KeyValueStore):
    """
    임시 디렉토리 JSON 파일 저장소

    파일 구조: {"expires_at": <epoch|null>, "value": {...}}
    쓰기는 임시 파일 → os.replace 로 원자적 교체.
    """

    def __init__(self, base_dir: Optional[Union[str, Path]] = None, clock: Clock = time.time):
        self.base_dir = Path(base_dir) if base_dir else Path(tempfile.gettempdir())
        self._clock = clock

    def path_for(self, key: str) -> Path:
        return self.base_dir / f"{_UNSAFE_KEY_CHARS.sub('_', key)}.json"

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        path = self.path_for(key)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            raise StateStoreError(f"Cannot read state file {path}: {e}", key) from e

        try:
            envelope = json.loads(raw)
        except json.JSONDecodeError as e:
            raise StateStoreError(f"Corrupt state file {path}: {e}", key) from e

        if not isinstance(envelope, dict) or not isinstance(envelope.get("value"), dict):
            raise StateStoreError(f"Unexpected state file layout in {path}", key)

        expires_at = envelope.get("expires_at")
        if expires_at is not None:
            try:
                expires_at = float(expires_at)
            except (TypeError, ValueError) as e:
                raise StateStoreError(f"Invalid expires_at in {path}: {e}", key) from e
        if expires_at is not None and self._clock() >= expires_at:
            self.delete(key)
            return None
        return envelope["value"]

    def put(self, key: str, value: Dict[str, Any], ttl_seconds: Optional[float] = None) -> None:
        path = self.path_for(key)
        envelope = {
            "expires_at": self._clock() + ttl_seconds if ttl_seconds is not None else None,
            "value": value,
        }
        tmp = path.with_name(f"{path.name}.{os.getpid()}.tmp")
        try:
            self.base_dir.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(envelope, ensure_ascii=False, indent=2), encoding="utf-8")
            os.replace(tmp, path)
        except OSError as e:
            raise StateStoreError(f"Cannot write state file {path}: {e}", key) from e

    def delete(self, key: str) -> None:
        path = self.path_for(key)
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StateStoreError(f"Cannot delete state file {path}: {e}", key) from e


# =============================================================================
# Override Directive
# =============================================================================

@dataclass(frozen=True)
class OverrideDirective:
    """세션 단위 제약 억제 지시"""
    session_id: str
    constraint_ids: Tuple[str, ...]
    created_at: float
    expires_at: float
    prompt_count: int = 0
    max_prompts: int = 3

    def is_valid(self, now: float) -> bool:
        return now < self.expires_at and self.prompt_count < self.max_prompts

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "constraint_ids": list(self.constraint_ids),
            "created_at": self.created_at,
            "expires_at": self.expires_at,
            "prompt_count": self.prompt_count,
            "max_prompts": self.max_prompts,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OverrideDirective":
        try:
            ids = data["constraint_ids"]
            if isinstance(ids, str) or not isinstance(ids, (list, tuple)):
                raise TypeError("constraint_ids must be a list")
            return cls(
                session_id=str(data["session_id"]),
                constraint_ids=tuple(str(i) for i in ids),
                created_at=float(data["created_at"]),
                expires_at=float(data["expires_at"]),
                prompt_count=int(data.get("prompt_count", 0)),
                max_prompts=int(data.get("max_prompts", 3)),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise StateStoreError(f"Malformed override directive: {e}") from e


class OverrideStore:
    """
    Override 지시 저장소

    사용법:
        overrides = OverrideStore(FileStateStore())
        overrides.write("session-1", ["no-eval-usage"])
        directive = overrides.read("session-1")   # prompt_count 1 증가
    """

    def __init__(
        self,
        store: KeyValueStore,
        clock: Clock = time.time,
        ttl_seconds: float = 5 * 60,
        max_prompts: int = 3,
    ):
        self._store = store
        self._clock = clock
        self.ttl_seconds = ttl_seconds
        self.max_prompts = max_prompts

    @staticmethod
    def key(session_id: str) -> str:
        return f"{OVERRIDE_KEY_PREFIX}-{session_id}"

    def write(
        self,
        session_id: str,
        constraint_ids: Iterable[str],
        max_prompts: Optional[int] = None,
    ) -> OverrideDirective:
        """
        새 지시 생성 (기존 지시는 병합 없이 덮어씀)

        Raises:
            StateStoreError: 저장 실패
        """
        now = self._clock()
        directive = OverrideDirective(
            session_id=session_id,
            constraint_ids=tuple(dict.fromkeys(constraint_ids)),
            created_at=now,
            expires_at=now + self.ttl_seconds,
            prompt_count=0,
            max_prompts=max_prompts if max_prompts is not None else self.max_prompts,
        )
        self._store.put(self.key(session_id), directive.to_dict(), ttl_seconds=self.ttl_seconds)
        logger.info(
            f"Override recorded for {', '.join(directive.constraint_ids)}",
            extra={"session_id": session_id},
        )
        return directive

    def read(self, session_id: str) -> Optional[OverrideDirective]:
        """
        유효한 지시 조회 + 사용 횟수 1 증가

        무효 (시간/횟수 만료) 면 삭제 후 None. 읽기 실패는 None.
        """
        key = self.key(session_id)
        try:
            data = self._store.get(key)
            if data is None:
                return None
            directive = OverrideDirective.from_dict(data)
        except StateStoreError:
            logger.warning("Ignoring unreadable override state", exc_info=True,
                           extra={"session_id": session_id})
            return None

        now = self._clock()
        if not directive.is_valid(now):
            try:
                self._store.delete(key)
            except StateStoreError:
                logger.warning("Failed to delete expired override", exc_info=True,
                               extra={"session_id": session_id})
            logger.info("Override expired", extra={"session_id": session_id})
            return None

        directive = replace(directive, prompt_count=directive.prompt_count + 1)
        try:
            self._store.put(key, directive.to_dict(), ttl_seconds=max(0.0, directive.expires_at - now))
        except StateStoreError:
            logger.warning("Failed to persist override usage", exc_info=True,
                           extra={"session_id": session_id})
        return directive


# =============================================================================
# Skill Grant
# =============================================================================

@dataclass(frozen=True)
class SkillGrant:
    """시간 제한 skill 권한"""
    skill_name: str
    invoked_at: float
    expires_at: float

    def is_active(self, now: float) -> bool:
        return now < self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        return {"invoked_at": self.invoked_at, "expires_at": self.expires_at}


class SkillStore:
    """
    Skill 권한 저장소 (세션당 여러 skill, 이름으로 구분)

    파일 값 구조: {"grants": {<skill>: {"invoked_at": .., "expires_at": ..}}}
    """

    def __init__(self, store: KeyValueStore, clock: Clock = time.time, ttl_seconds: float = 30 * 60):
        self._store = store
        self._clock = clock
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def key(session_id: str) -> str:
        return f"{SKILL_KEY_PREFIX}-{session_id}"

    def _load(self, session_id: str) -> Dict[str, SkillGrant]:
        data = self._store.get(self.key(session_id))
        if data is None:
            return {}
        grants = data.get("grants")
        if not isinstance(grants, dict):
            raise StateStoreError("Malformed skill state: missing grants", self.key(session_id))
        try:
            return {
                name: SkillGrant(
                    skill_name=name,
                    invoked_at=float(entry["invoked_at"]),
                    expires_at=float(entry["expires_at"]),
                )
                for name, entry in grants.items()
            }
        except (KeyError, TypeError, ValueError) as e:
            raise StateStoreError(f"Malformed skill grant: {e}", self.key(session_id)) from e

    def _save(self, session_id: str, grants: Dict[str, SkillGrant], now: float) -> None:
        key = self.key(session_id)
        if not grants:
            self._store.delete(key)
            return
        ttl = max(g.expires_at for g in grants.values()) - now
        self._store.put(
            key,
            {"grants": {name: g.to_dict() for name, g in grants.items()}},
            ttl_seconds=max(0.0, ttl),
        )

    def grants(self, session_id: str) -> Dict[str, SkillGrant]:
        """활성 권한 조회 (만료분은 제거 후 저장)"""
        try:
            grants = self._load(session_id)
        except StateStoreError:
            logger.warning("Ignoring unreadable skill state", exc_info=True,
                           extra={"session_id": session_id})
            return {}

        now = self._clock()
        active = {name: g for name, g in grants.items() if g.is_active(now)}
        if len(active) != len(grants):
            try:
                self._save(session_id, active, now)
            except StateStoreError:
                logger.warning("Failed to persist skill purge", exc_info=True,
                               extra={"session_id": session_id})
        return active

    def active(self, session_id: str) -> FrozenSet[str]:
        """활성 skill 이름 집합"""
        return frozenset(self.grants(session_id))

    def record(self, session_id: str, skill_name: str, ttl_seconds: Optional[float] = None) -> SkillGrant:
        """
        skill 호출 기록 (같은 이름은 만료 갱신, 다른 skill 은 유지)

        Raises:
            StateStoreError: 저장 실패
        """
        now = self._clock()
        try:
            grants = self._load(session_id)
        except StateStoreError:
            logger.warning("Replacing unreadable skill state", exc_info=True,
                           extra={"session_id": session_id})
            grants = {}

        grants = {name: g for name, g in grants.items() if g.is_active(now)}
        grant = SkillGrant(
            skill_name=skill_name,
            invoked_at=now,
            expires_at=now + (ttl_seconds if ttl_seconds is not None else self.ttl_seconds),
        )
        grants[skill_name] = grant
        self._save(session_id, grants, now)
        logger.info(f"Skill {skill_name} active", extra={"session_id": session_id})
        return grant
