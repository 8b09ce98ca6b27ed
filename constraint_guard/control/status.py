"""
Constraint Guard - Status Aggregator
최근 준수 점수 / 위반 수 / 위험도 스냅샷 + 상태줄 렌더링

매 사이클 후 갱신되지만, 쓰기 실패가 Hook 판정을 막지 않는다.
"""
from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Union

logger = logging.getLogger(__name__)

ICONS = {
    "shield": "🛡️",
    "warning": "⚠️",
    "blocked": "🚫",
}


class StatusAggregator:
    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def update(
        self,
        compliance: float,
        violations: int,
        blocking: int,
        risk: str,
        session_id: str = "unknown",
        blocked: bool = False,
    ) -> Dict[str, Any]:
        """스냅샷 갱신 (원자적 교체)"""
        snapshot = {
            "compliance": compliance,
            "violations": violations,
            "blocking": blocking,
            "risk": risk,
            "session_id": session_id,
            "blocked": blocked,
            "last_check": datetime.now(timezone.utc).isoformat(),
        }

        tmp = self.path.with_name(f"{self.path.name}.{os.getpid()}.tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(snapshot, ensure_ascii=False, indent=2), encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError as e:
            logger.warning(f"Failed to update status snapshot {self.path}: {e}")
        return snapshot

    def read(self) -> Optional[Dict[str, Any]]:
        try:
            return json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.warning(f"Unreadable status snapshot {self.path}: {e}")
            return None

    @staticmethod
    def render(snapshot: Optional[Dict[str, Any]]) -> str:
        """
        상태줄 텍스트

        예: "🛡️ 85% ⚠️2 [medium]", 스냅샷 없으면 "🛡️ --"
        """
        if not snapshot:
            return f"{ICONS['shield']} --"

        compliance = float(snapshot.get("compliance", 10.0))
        parts = [f"{ICONS['shield']} {compliance * 10:.0f}%"]

        violations = int(snapshot.get("violations", 0))
        if violations > 0:
            parts.append(f"{ICONS['warning']}{violations}")

        if snapshot.get("blocked"):
            parts.append(ICONS["blocked"])

        risk = snapshot.get("risk")
        if risk and risk != "low":
            parts.append(f"[{risk}]")

        return " ".join(parts)

    def status_line(self) -> str:
        return self.render(self.read())
