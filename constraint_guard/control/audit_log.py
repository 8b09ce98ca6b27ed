"""
Constraint Guard - Violation Log
JSONL 위반 기록 (append-only, best-effort)

기록 실패는 이미 내려진 allow/deny 판정을 바꾸지 않는다.
"""
from __future__ import annotations

import json
import logging
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from .evaluator import Violation

logger = logging.getLogger(__name__)


class ViolationLog:
    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def append(
        self,
        violations: Iterable[Violation],
        session_id: str = "unknown",
        file_path: Optional[str] = None,
        source: str = "prompt",
        tool_name: Optional[str] = None,
        rules_hash: str = "",
    ) -> int:
        """
        위반 기록 추가

        Returns:
            기록된 건수 (쓰기 실패 시 0)
        """
        now = datetime.now(timezone.utc).isoformat()
        violations = list(violations)
        lines = []
        for v in violations:
            record: Dict[str, Any] = {
                "id": f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:6]}",
                "timestamp": v.timestamp or now,
                "session_id": session_id,
                "constraint_id": v.constraint_id,
                "message": v.message,
                "severity": v.severity.value,
                "matches": v.matches,
                "pattern": v.pattern,
                "group_id": v.group_id,
                "file_path": file_path,
                "source": source,
                "tool_name": tool_name,
                "rules_hash": rules_hash,
                "detected_at": now,
            }
            lines.append(json.dumps(record, ensure_ascii=False))

        if not lines:
            return 0

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as f:
                f.write("\n".join(lines) + "\n")
        except OSError as e:
            logger.warning(f"Failed to write violation log {self.path}: {e}")
            return 0

        for v in violations:
            logger.info(
                f"Logged violation {v.constraint_id} ({v.severity.value})",
                extra={"session_id": session_id, "constraint_id": v.constraint_id},
            )
        return len(lines)

    def read(self, limit: Optional[int] = None, session_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """최근 위반 기록 조회 (손상된 줄은 건너뜀)"""
        if not self.path.exists():
            return []

        records = []
        with self.path.open("r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    record = json.loads(line)
                except json.JSONDecodeError:
                    logger.debug(f"Skipping malformed violation record in {self.path}")
                    continue
                if session_id and record.get("session_id") != session_id:
                    continue
                records.append(record)

        if limit is not None:
            records = records[-limit:]
        return records
