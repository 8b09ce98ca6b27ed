"""
CLI 테스트 (constraint-guard 진입점)
"""
import io
import json

import pytest

from constraint_guard import cli
from constraint_guard.utils.server_logger import reset_logger


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """홈 / 상태 디렉토리를 tmp_path 로 격리"""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("PWD", str(tmp_path))
    monkeypatch.setenv("CONSTRAINT_GUARD_HOME", str(tmp_path / "home"))
    monkeypatch.setenv("CONSTRAINT_GUARD_STATE_DIR", str(tmp_path / "state"))
    monkeypatch.delenv("CONSTRAINT_GUARD_CONFIG", raising=False)
    monkeypatch.delenv("CODING_REPO", raising=False)
    monkeypatch.delenv("CLAUDE_SESSION_ID", raising=False)
    reset_logger()
    yield
    reset_logger()


def run_hook(monkeypatch, stage, data):
    monkeypatch.setattr("sys.stdin", io.StringIO(json.dumps(data)))
    return cli.main(["hook", stage])


class TestHookCommand:
    def test_tool_blocked(self, monkeypatch, capsys):
        """hook tool 차단 시 종료 코드 2, stdout 비어 있음"""
        code = run_hook(monkeypatch, "tool", {
            "session_id": "s1", "tool_name": "Write", "tool_input": {"content": 'eval("2+2")'},
        })
        captured = capsys.readouterr()

        assert code == 2
        assert "no-eval-usage" in captured.err
        assert captured.out == ""

    def test_prompt_override_then_tool_allowed(self, monkeypatch, capsys):
        """프롬프트 override 가 다음 도구 호출에서 적용 (파일 상태 공유)"""
        assert run_hook(monkeypatch, "prompt", {
            "session_id": "s1", "prompt": "OVERRIDE_CONSTRAINT: no-eval-usage",
        }) == 1
        assert "override active" in capsys.readouterr().err

        assert run_hook(monkeypatch, "tool", {
            "session_id": "s1", "tool_name": "Write", "tool_input": {"content": 'eval("2+2")'},
        }) == 0

    def test_malformed_input(self, monkeypatch, capsys):
        """잘못된 stdin 은 종료 코드 1"""
        monkeypatch.setattr("sys.stdin", io.StringIO("{oops"))
        assert cli.main(["hook", "tool"]) == 1
        assert "Invalid hook data format" in capsys.readouterr().err

    def test_violation_logged_under_home(self, monkeypatch, tmp_path):
        """위반 기록은 CONSTRAINT_GUARD_HOME 아래"""
        run_hook(monkeypatch, "tool", {
            "session_id": "s1", "tool_name": "Write", "tool_input": {"content": "console.log(1)"},
        })
        lines = (tmp_path / "home" / "violations.jsonl").read_text(encoding="utf-8").splitlines()
        assert json.loads(lines[0])["constraint_id"] == "no-console-log"


class TestCheckCommand:
    def test_check_text(self, capsys):
        """텍스트 검사 요약 출력"""
        assert cli.main(["check", "const a = 1;"]) == 0
        assert "Compliance: 10.0/10" in capsys.readouterr().out

    def test_check_file_json(self, tmp_path, capsys):
        """파일 검사 JSON 출력 + 차단 종료 코드"""
        target = tmp_path / "a.js"
        target.write_text('eval("x")', encoding="utf-8")

        assert cli.main(["check", "--file", str(target), "--json"]) == 2
        data = json.loads(capsys.readouterr().out)
        assert data["violations"][0]["constraint_id"] == "no-eval-usage"

    def test_check_with_config(self, tmp_path, capsys):
        """--config 로 규칙 파일 지정"""
        config = tmp_path / "rules.yaml"
        config.write_text("constraints:\n  - {id: no-foo, pattern: foo, severity: info}\n", encoding="utf-8")
        assert cli.main(["--config", str(config), "check", 'eval("foo")']) == 0
        assert "no-foo" in capsys.readouterr().out


class TestValidateCommand:
    def test_valid(self, tmp_path, capsys):
        """유효한 규칙 파일 요약"""
        config = tmp_path / "rules.yaml"
        config.write_text(
            "constraints:\n  - {id: a, pattern: x, group: security}\n", encoding="utf-8"
        )
        assert cli.main(["validate", str(config)]) == 0
        out = capsys.readouterr().out
        assert "1 constraints" in out
        assert "[security] a" in out

    def test_invalid(self, tmp_path, capsys):
        """잘못된 정규식은 검증 실패"""
        config = tmp_path / "rules.yaml"
        config.write_text("constraints:\n  - {id: a, pattern: '('}\n", encoding="utf-8")
        assert cli.main(["validate", str(config)]) == 1
        assert "Invalid constraint config" in capsys.readouterr().err


class TestStatusCommands:
    def test_status_before_any_check(self, capsys):
        """검사 전 상태 표시"""
        assert cli.main(["status"]) == 0
        assert capsys.readouterr().out.strip() == "🛡️ --"

    def test_status_after_hook(self, monkeypatch, capsys):
        """Hook 실행 후 상태 라인 갱신"""
        run_hook(monkeypatch, "tool", {"tool_name": "Write", "tool_input": {"content": "console.log(1)"}})
        capsys.readouterr()

        cli.main(["status"])
        assert capsys.readouterr().out.strip() == "🛡️ 90% ⚠️1"

    def test_violations_listing(self, monkeypatch, capsys):
        """세션별 위반 목록 조회"""
        run_hook(monkeypatch, "tool", {
            "session_id": "s9", "tool_name": "Write", "tool_input": {"content": "console.log(1)"},
        })
        capsys.readouterr()

        assert cli.main(["violations", "--session", "s9"]) == 0
        assert "no-console-log" in capsys.readouterr().out
