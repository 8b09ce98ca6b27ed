"""
Constraint Guard - CLI

사용법:
    constraint-guard hook prompt < payload.json     # UserPromptSubmit
    constraint-guard hook tool < payload.json       # PreToolUse
    constraint-guard check --file app.js            # 단발 검사
    constraint-guard validate .constraint-monitor.yaml
    constraint-guard status
    constraint-guard violations --limit 20
"""
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import List, Optional

from .config import Settings
from .control.audit_log import ViolationLog
from .control.evaluator import RuleEvaluator
from .control.rules_store import ConstraintStore
from .control.status import StatusAggregator
from .core.context import GuardContext
from .errors import ConfigError
from .hooks.adapter import HookAdapter
from .hooks.base import ExitCode, HookStage
from .utils.server_logger import log_error, setup_logger


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="constraint-guard",
        description="Real-time constraint enforcement for coding agent hooks",
    )
    parser.add_argument("--config", type=str, help="Constraint definition file (YAML/JSON)")
    sub = parser.add_subparsers(dest="command", required=True)

    hook = sub.add_parser("hook", help="Run as an agent hook (reads JSON from stdin)")
    hook.add_argument("stage", choices=[s.value for s in HookStage])

    check = sub.add_parser("check", help="Evaluate text or a file against the constraints")
    check.add_argument("text", nargs="?", help="Text to check (default: stdin)")
    check.add_argument("--file", type=str, help="File to check")
    check.add_argument("--json", action="store_true", help="Print the result as JSON")

    validate = sub.add_parser("validate", help="Validate a constraint definition file")
    validate.add_argument("path", nargs="?", help="File to validate (default: discovered config)")

    status = sub.add_parser("status", help="Print the compliance status line")
    status.add_argument("--json", action="store_true", help="Print the raw snapshot")

    violations = sub.add_parser("violations", help="Show recent violation records")
    violations.add_argument("--limit", type=int, default=20)
    violations.add_argument("--session", type=str, help="Filter by session id")

    return parser


def _settings(args: argparse.Namespace) -> Settings:
    settings = Settings.from_env()
    if args.config:
        settings.constraints_path = Path(args.config).expanduser()
    return settings


# =============================================================================
# Commands
# =============================================================================

def cmd_hook(args: argparse.Namespace) -> int:
    """Hook 모드: 어떤 실패도 차단으로 이어지지 않는다"""
    stage = HookStage(args.stage)
    try:
        settings = _settings(args)
        setup_logger(settings.log_dir, settings.log_level, console=settings.log_console)

        adapter = HookAdapter.with_default_hooks(GuardContext.from_settings(settings))
    except Exception as e:
        log_error(f"Hook setup failed: {e}", error_type=type(e).__name__)
        sys.stderr.write(f"⚠️ {stage.value} hook setup error: {e}\n")
        return int(ExitCode.ALLOW_WITH_DIAGNOSTIC)

    return adapter.run(stage)


def cmd_check(args: argparse.Namespace) -> int:
    settings = _settings(args)
    if args.file:
        content = Path(args.file).read_text(encoding="utf-8")
    elif args.text is not None:
        content = args.text
    else:
        content = sys.stdin.read()

    try:
        rules = ConstraintStore(settings.constraints_path).rules
    except ConfigError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1

    result = RuleEvaluator().evaluate(content, rules)
    blocking = [v for v in result.violations if rules.enforcement.is_blocking(v.severity)]

    if args.json:
        print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))
    else:
        for v in result.violations:
            marker = "🚫" if v in blocking else "⚠️"
            print(f"{marker} {v.severity.value.upper():8} {v.constraint_id}: {v.message} (x{v.matches})")
            if v.suggestion:
                print(f"   💡 {v.suggestion}")
        print(f"Compliance: {result.compliance_score}/10  Risk: {result.risk.value}")

    return int(ExitCode.BLOCKED) if blocking else int(ExitCode.SILENT_ALLOW)


def cmd_validate(args: argparse.Namespace) -> int:
    settings = _settings(args)
    path = Path(args.path).expanduser() if args.path else settings.constraints_path

    try:
        rules = ConstraintStore().load(path)
    except ConfigError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1

    print(f"✅ {rules.source}: {len(rules)} constraints, {len(rules.skills)} skills")
    print(f"   rules_hash: {rules.rules_hash()}")
    for group, ids in rules.groups().items():
        print(f"   [{group}] {', '.join(ids)}")
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    aggregator = StatusAggregator(_settings(args).status_path)
    if args.json:
        print(json.dumps(aggregator.read(), ensure_ascii=False, indent=2))
    else:
        print(aggregator.status_line())
    return 0


def cmd_violations(args: argparse.Namespace) -> int:
    records = ViolationLog(_settings(args).violation_log_path).read(
        limit=args.limit, session_id=args.session
    )
    for record in records:
        print(
            f"{record.get('timestamp', '?')} {record.get('severity', '?'):8} "
            f"{record.get('constraint_id', '?')} [{record.get('session_id', '?')}] "
            f"{record.get('file_path') or ''}"
        )
    if not records:
        print("No violations recorded")
    return 0


COMMANDS = {
    "hook": cmd_hook,
    "check": cmd_check,
    "validate": cmd_validate,
    "status": cmd_status,
    "violations": cmd_violations,
}


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    return COMMANDS[args.command](args)


if __name__ == "__main__":
    sys.exit(main())
