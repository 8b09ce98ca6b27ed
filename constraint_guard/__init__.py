"""
Constraint Guard
코딩 에이전트 Hook 용 실시간 제약 집행 엔진

- control: 제약 정의 / 평가 / 위반 기록 / 상태
- core: 세션 상태 / 집행 판정 / 조립
- hooks: Hook 프로토콜 어댑터
"""

__version__ = "0.1.0"
