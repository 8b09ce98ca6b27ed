"""
Constraint Guard - Server Logger
장애 대응을 위한 구조화된 로깅

로그 구조:
  <log_dir>/
  ├── guard.log            # 전체 로그 (INFO+)
  └── error.log            # 에러만 (ERROR+)

stderr 는 Hook 진단 채널이므로 콘솔 핸들러는 opt-in (CONSTRAINT_GUARD_LOG_CONSOLE=1).

사용법:
    from constraint_guard.utils.server_logger import setup_logger, log_hook_outcome

    setup_logger(settings.log_dir, settings.log_level)
    log_hook_outcome("tool", exit_code=2, session_id="abc", duration_ms=12)
"""
import json
import logging
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

ROOT_LOGGER_NAME = "constraint_guard"

_EXTRA_FIELDS = (
    "session_id",
    "stage",
    "constraint_id",
    "exit_code",
    "duration_ms",
    "violations",
    "error_type",
)


# =============================================================================
# 커스텀 포매터
# =============================================================================

class JsonFormatter(logging.Formatter):
    """JSON 형식 로그 포매터"""

    def format(self, record):
        log_data = {
            "timestamp": datetime.now().isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for name in _EXTRA_FIELDS:
            if hasattr(record, name):
                log_data[name] = getattr(record, name)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """사람이 읽기 좋은 포매터 (stderr 용)"""

    def format(self, record):
        timestamp = datetime.now().strftime("%H:%M:%S")
        msg = f"[{timestamp}] {record.levelname:8} {record.getMessage()}"

        extras = [f"{name}={getattr(record, name)}" for name in _EXTRA_FIELDS if hasattr(record, name)]
        if extras:
            msg += f" | {' '.join(extras)}"

        if record.exc_info:
            msg += f"\n{self.formatException(record.exc_info)}"

        return msg


# =============================================================================
# 로거 설정
# =============================================================================

def setup_logger(
    log_dir: Optional[Path] = None,
    level: str = "INFO",
    console: bool = False,
) -> logging.Logger:
    """
    패키지 루트 로거 설정

    하위 모듈은 logging.getLogger(__name__) 으로 전파받는다.
    로그 디렉토리 생성 실패 시 파일 핸들러 없이 동작 (Hook 은 로그 때문에 죽지 않는다).
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(getattr(logging, str(level).upper(), logging.INFO))

    # 중복 핸들러 방지
    if logger.handlers:
        return logger

    if console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.DEBUG)
        console_handler.setFormatter(ReadableFormatter())
        logger.addHandler(console_handler)

    if log_dir is not None:
        try:
            log_dir = Path(log_dir)
            log_dir.mkdir(parents=True, exist_ok=True)

            # 전체 로그 (JSON, 10MB 로테이션, 5개 보관)
            guard_handler = RotatingFileHandler(
                log_dir / "guard.log",
                maxBytes=10 * 1024 * 1024,
                backupCount=5,
                encoding="utf-8",
            )
            guard_handler.setLevel(logging.DEBUG)
            guard_handler.setFormatter(JsonFormatter())
            logger.addHandler(guard_handler)

            # 에러 전용 (JSON, 5MB 로테이션, 10개 보관)
            error_handler = RotatingFileHandler(
                log_dir / "error.log",
                maxBytes=5 * 1024 * 1024,
                backupCount=10,
                encoding="utf-8",
            )
            error_handler.setLevel(logging.ERROR)
            error_handler.setFormatter(JsonFormatter())
            logger.addHandler(error_handler)
        except OSError:
            # 로그 디렉토리 사용 불가 → 아래 NullHandler 로 대체
            logger.handlers = [h for h in logger.handlers if not isinstance(h, RotatingFileHandler)]

    if not logger.handlers:
        logger.addHandler(logging.NullHandler())

    return logger


def reset_logger() -> None:
    """핸들러 제거 (테스트용)"""
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


# =============================================================================
# 헬퍼 함수
# =============================================================================

def log_hook_outcome(
    stage: str,
    exit_code: int,
    session_id: Optional[str] = None,
    duration_ms: int = 0,
    violations: int = 0,
):
    """
    Hook 1회 처리 결과 로그

    Args:
        stage: prompt / tool
        exit_code: 0 (silent) / 1 (diagnostic) / 2 (blocked)
        session_id: 세션 ID
        duration_ms: 처리 시간 (밀리초)
        violations: 탐지된 위반 수
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    extra = {
        "stage": stage,
        "exit_code": exit_code,
        "duration_ms": duration_ms,
        "violations": violations,
    }
    if session_id:
        extra["session_id"] = session_id

    if exit_code == 2:
        logger.warning(f"Hook {stage} -> BLOCKED", extra=extra)
    else:
        logger.info(f"Hook {stage} -> exit {exit_code}", extra=extra)


def log_error(
    message: str,
    session_id: Optional[str] = None,
    error_type: Optional[str] = None,
    exc_info: bool = True,
):
    """에러 로그 (자동 스택트레이스)"""
    extra = {}
    if session_id:
        extra["session_id"] = session_id
    if error_type:
        extra["error_type"] = error_type

    logging.getLogger(ROOT_LOGGER_NAME).error(message, extra=extra, exc_info=exc_info)
