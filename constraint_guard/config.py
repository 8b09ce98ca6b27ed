"""
Constraint Guard - Process Settings
환경 변수 + .env 기반 프로세스 설정

우선순위: 명시 인자 > 환경 변수 (CONSTRAINT_GUARD_*) > .env > 기본값
제약 정의 파일 탐색:
  1. CONSTRAINT_GUARD_CONFIG
  2. <project>/.constraint-monitor.yaml
  3. $CODING_REPO/.constraint-monitor.yaml
  4. 없으면 내장 기본 규칙
"""
from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv


CONFIG_FILENAMES = (".constraint-monitor.yaml", ".constraint-monitor.yml", ".constraint-monitor.json")

DEFAULT_HOME = Path.home() / ".constraint-guard"


def _env_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_float(value: Optional[str], default: float) -> float:
    try:
        return float(value) if value else default
    except ValueError:
        return default


def _env_int(value: Optional[str], default: int) -> int:
    try:
        return int(value) if value else default
    except ValueError:
        return default


def find_constraint_config(project_dir: Path, environ: Mapping[str, str]) -> Optional[Path]:
    """제약 정의 파일 탐색 (없으면 None → 내장 기본 규칙)"""
    explicit = environ.get("CONSTRAINT_GUARD_CONFIG")
    if explicit:
        return Path(explicit).expanduser()

    search_dirs = [project_dir]
    coding_repo = environ.get("CODING_REPO")
    if coding_repo:
        search_dirs.append(Path(coding_repo).expanduser())

    for directory in search_dirs:
        for name in CONFIG_FILENAMES:
            candidate = directory / name
            if candidate.is_file():
                return candidate
    return None


@dataclass
class Settings:
    """프로세스 단위 설정 (GuardContext 생성 시 1회)"""
    project_dir: Path = field(default_factory=Path.cwd)
    constraints_path: Optional[Path] = None

    # 세션 상태 (override / skill) - 임시 디렉토리 JSON 파일
    state_dir: Path = field(default_factory=lambda: Path(tempfile.gettempdir()))

    # 로그 / 위반 기록 / 상태 스냅샷
    log_dir: Path = DEFAULT_HOME / "logs"
    violation_log_path: Path = DEFAULT_HOME / "violations.jsonl"
    status_path: Path = DEFAULT_HOME / "status.json"
    log_level: str = "INFO"
    log_console: bool = False

    # Hook 프로토콜 경계
    hook_timeout_seconds: float = 3.0
    max_input_bytes: int = 1024 * 1024

    # Override / Skill 기본 TTL
    override_ttl_seconds: float = 5 * 60
    override_max_prompts: int = 3
    skill_ttl_seconds: float = 30 * 60

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        project_dir: Optional[Path] = None,
    ) -> "Settings":
        """
        환경 변수에서 설정 생성

        Args:
            environ: 환경 변수 매핑 (None 이면 .env 로드 후 os.environ)
            project_dir: 프로젝트 루트 (None 이면 PWD / cwd)
        """
        if environ is None:
            base = Path(os.environ.get("PWD") or os.getcwd())
            load_dotenv(base / ".env", override=False)
            environ = os.environ

        project = Path(project_dir or environ.get("PWD") or os.getcwd())
        home = Path(environ.get("CONSTRAINT_GUARD_HOME") or DEFAULT_HOME).expanduser()

        return cls(
            project_dir=project,
            constraints_path=find_constraint_config(project, environ),
            state_dir=Path(environ.get("CONSTRAINT_GUARD_STATE_DIR") or tempfile.gettempdir()),
            log_dir=Path(environ.get("CONSTRAINT_GUARD_LOG_DIR") or home / "logs"),
            violation_log_path=Path(
                environ.get("CONSTRAINT_GUARD_VIOLATION_LOG") or home / "violations.jsonl"
            ),
            status_path=Path(environ.get("CONSTRAINT_GUARD_STATUS_FILE") or home / "status.json"),
            log_level=(environ.get("CONSTRAINT_GUARD_LOG_LEVEL") or "INFO").upper(),
            log_console=_env_bool(environ.get("CONSTRAINT_GUARD_LOG_CONSOLE")),
            hook_timeout_seconds=_env_float(environ.get("CONSTRAINT_GUARD_TIMEOUT"), 3.0),
            max_input_bytes=_env_int(environ.get("CONSTRAINT_GUARD_MAX_INPUT_BYTES"), 1024 * 1024),
            override_ttl_seconds=_env_float(environ.get("CONSTRAINT_GUARD_OVERRIDE_TTL"), 5 * 60),
            override_max_prompts=_env_int(environ.get("CONSTRAINT_GUARD_OVERRIDE_MAX_PROMPTS"), 3),
            skill_ttl_seconds=_env_float(environ.get("CONSTRAINT_GUARD_SKILL_TTL"), 30 * 60),
        )
