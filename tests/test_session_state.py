"""
Session State Store 테스트
Override TTL / 사용 횟수, Skill TTL, 저장소 구현 (메모리 / 파일)
"""
import json

import pytest

from constraint_guard.core.session_state import (
    FileStateStore,
    MemoryStateStore,
    OverrideDirective,
    OverrideStore,
    SkillStore,
)
from constraint_guard.errors import StateStoreError


@pytest.fixture(params=["memory", "file"])
def kv_store(request, clock, tmp_path):
    """두 저장소 구현에서 같은 만료 로직이 동작해야 함"""
    if request.param == "memory":
        return MemoryStateStore(clock=clock)
    return FileStateStore(tmp_path / "state", clock=clock)


class TestKeyValueStore:
    def test_put_get_delete(self, kv_store):
        """저장 / 조회 / 삭제"""
        kv_store.put("k", {"a": 1})
        assert kv_store.get("k") == {"a": 1}
        kv_store.delete("k")
        assert kv_store.get("k") is None

    def test_delete_missing_is_noop(self, kv_store):
        """없는 키 삭제는 무시"""
        kv_store.delete("never-written")

    def test_ttl_expiry(self, kv_store, clock):
        """TTL 경과 후 조회 불가"""
        kv_store.put("k", {"a": 1}, ttl_seconds=10)
        clock.advance(9)
        assert kv_store.get("k") == {"a": 1}
        clock.advance(2)
        assert kv_store.get("k") is None

    def test_memory_store_copies_values(self, clock):
        """메모리 저장소는 값 복사본 보관"""
        store = MemoryStateStore(clock=clock)
        value = {"items": [1]}
        store.put("k", value)
        value["items"].append(2)
        assert store.get("k") == {"items": [1]}


class TestFileStateStore:
    def test_key_sanitized(self, tmp_path, clock):
        """키의 경로 문자 치환"""
        store = FileStateStore(tmp_path, clock=clock)
        path = store.path_for("constraint-override-../../etc")
        assert path.parent == tmp_path
        assert "/" not in path.name

    def test_corrupt_file_raises(self, tmp_path, clock):
        """깨진 JSON 은 StateStoreError"""
        store = FileStateStore(tmp_path, clock=clock)
        store.path_for("k").write_text("{not json", encoding="utf-8")
        with pytest.raises(StateStoreError):
            store.get("k")

    @pytest.mark.parametrize("raw", [
        b"\xff\xfe\x00garbage",
        json.dumps({"expires_at": "garbage", "value": {}}).encode("utf-8"),
        json.dumps({"expires_at": [1], "value": {}}).encode("utf-8"),
    ])
    def test_undecodable_file_raises(self, tmp_path, clock, raw):
        """UTF-8 아님 / 숫자 아닌 expires_at 도 StateStoreError"""
        store = FileStateStore(tmp_path, clock=clock)
        store.path_for("k").write_bytes(raw)
        with pytest.raises(StateStoreError):
            store.get("k")

    def test_unexpected_layout_raises(self, tmp_path, clock):
        """예상 밖 구조는 StateStoreError"""
        store = FileStateStore(tmp_path, clock=clock)
        store.path_for("k").write_text(json.dumps(["a"]), encoding="utf-8")
        with pytest.raises(StateStoreError):
            store.get("k")

    def test_envelope_written(self, tmp_path, clock):
        """만료 시각 + 값 봉투로 저장"""
        store = FileStateStore(tmp_path, clock=clock)
        store.put("k", {"a": 1}, ttl_seconds=60)
        envelope = json.loads(store.path_for("k").read_text(encoding="utf-8"))
        assert envelope == {"expires_at": clock.now + 60, "value": {"a": 1}}


class TestOverrideStore:
    """Override 지시 테스트"""

    def test_usage_cap(self, kv_store, clock):
        """max_prompts=3: 읽기 1~3 유효, 4번째 무효"""
        overrides = OverrideStore(kv_store, clock=clock)
        overrides.write("s1", ["no-eval-usage"])

        counts = [overrides.read("s1") for _ in range(3)]
        assert [d.prompt_count for d in counts] == [1, 2, 3]
        assert all(d.constraint_ids == ("no-eval-usage",) for d in counts)

        assert overrides.read("s1") is None
        assert kv_store.get(OverrideStore.key("s1")) is None

    def test_ttl_expired_not_honored(self, kv_store, clock):
        """5분 지난 override 무효"""
        overrides = OverrideStore(kv_store, clock=clock, ttl_seconds=300)
        overrides.write("s1", ["a"])

        clock.advance(299)
        assert overrides.read("s1") is not None
        clock.advance(2)
        assert overrides.read("s1") is None

    def test_expired_directive_deleted_on_read(self, clock):
        """저장소 TTL 과 무관하게 만료된 지시는 읽는 순간 삭제"""
        store = MemoryStateStore(clock=clock)
        overrides = OverrideStore(store, clock=clock)
        stale = OverrideDirective(
            session_id="s1",
            constraint_ids=("a",),
            created_at=clock.now - 600,
            expires_at=clock.now - 300,
        )
        store.put(OverrideStore.key("s1"), stale.to_dict())

        assert overrides.read("s1") is None
        assert OverrideStore.key("s1") not in store

    def test_write_replaces_previous(self, kv_store, clock):
        """새 지시가 이전 지시 대체"""
        overrides = OverrideStore(kv_store, clock=clock)
        overrides.write("s1", ["a"])
        overrides.read("s1")
        overrides.write("s1", ["b", "b", "c"])

        directive = overrides.read("s1")
        assert directive.constraint_ids == ("b", "c")
        assert directive.prompt_count == 1

    def test_sessions_isolated(self, kv_store, clock):
        """세션 간 격리"""
        overrides = OverrideStore(kv_store, clock=clock)
        overrides.write("s1", ["a"])
        assert overrides.read("s2") is None

    def test_corrupt_state_treated_as_absent(self, tmp_path, clock):
        """손상된 파일은 override 없음 (파일은 남김)"""
        store = FileStateStore(tmp_path, clock=clock)
        path = store.path_for(OverrideStore.key("s1"))
        path.write_text("garbage", encoding="utf-8")

        assert OverrideStore(store, clock=clock).read("s1") is None
        assert path.exists()

    def test_malformed_directive_treated_as_absent(self, clock):
        """형식 잘못된 지시는 없는 것으로"""
        store = MemoryStateStore(clock=clock)
        store.put(OverrideStore.key("s1"), {"constraint_ids": "a"})
        assert OverrideStore(store, clock=clock).read("s1") is None

    def test_directive_validity(self):
        """만료 / 사용 횟수 기준 유효성"""
        directive = OverrideDirective("s", ("a",), created_at=0, expires_at=100, prompt_count=2)
        assert directive.is_valid(50)
        assert not directive.is_valid(100)
        assert not OverrideDirective("s", ("a",), 0, 100, prompt_count=3).is_valid(50)


class TestSkillStore:
    """Skill 권한 테스트"""

    def test_thirty_minute_ttl(self, kv_store, clock):
        """+29분 활성, +31분 비활성"""
        skills = SkillStore(kv_store, clock=clock)
        skills.record("s1", "refactor")

        clock.advance(29 * 60)
        assert skills.active("s1") == frozenset({"refactor"})
        clock.advance(2 * 60)
        assert skills.active("s1") == frozenset()

    def test_multiple_skills_per_session(self, kv_store, clock):
        """세션당 여러 skill"""
        skills = SkillStore(kv_store, clock=clock)
        skills.record("s1", "a", ttl_seconds=60)
        skills.record("s1", "b", ttl_seconds=600)

        clock.advance(120)
        assert skills.active("s1") == frozenset({"b"})

    def test_reinvocation_refreshes_expiry(self, kv_store, clock):
        """재호출 시 만료 갱신"""
        skills = SkillStore(kv_store, clock=clock, ttl_seconds=60)
        skills.record("s1", "a")
        clock.advance(50)
        skills.record("s1", "a")
        clock.advance(50)
        assert skills.active("s1") == frozenset({"a"})

    def test_corrupt_state_treated_as_absent(self, tmp_path, clock):
        """손상된 skill 상태는 활성 skill 없음"""
        store = FileStateStore(tmp_path, clock=clock)
        store.path_for(SkillStore.key("s1")).write_text("[1, 2", encoding="utf-8")
        skills = SkillStore(store, clock=clock)

        assert skills.active("s1") == frozenset()
        skills.record("s1", "a")
        assert skills.active("s1") == frozenset({"a"})
