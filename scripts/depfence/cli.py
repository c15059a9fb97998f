"""Command-line interface for dep-fence."""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from enum import IntEnum
from pathlib import Path
from typing import Optional, TextIO

from scripts.depfence import git
from scripts.depfence.config import ConfigError, load_guard_config, resolve_config_path
from scripts.depfence.engine import run_rules
from scripts.depfence.hook_utils import graceful_hook, log_error, log_record
from scripts.depfence.install import install_hooks
from scripts.depfence.locks import LockManager, parse_ref_updates, resolve_pusher
from scripts.depfence.models import GUARD_MODES, Annotation
from scripts.depfence.policy import POLICY_PATH, PolicyLoadError, load_policy_file
from scripts.depfence.tokens import TokenFormatError, new_token, resolve_namespace


class ExitCode(IntEnum):
    """Process exit codes shared by every command."""

    SUCCESS = 0
    FAILURES = 1
    CONFIG_ERROR = 2


def _repo_root_or(cwd: Path) -> Path:
    try:
        return git.repo_root(cwd)
    except git.CommandError:
        return cwd


def _print_annotation(prefix: str, a: Annotation, stream: TextIO) -> None:
    print(f"{prefix} [{a.name}] {a.message}", file=stream)
    for f in a.files or []:
        print(f"  - {f}", file=stream)


@graceful_hook(blocking=True, name="guard")
def cmd_check(args: argparse.Namespace) -> int:
    cwd = Path(args.cwd or Path.cwd())
    config_path = Path(args.config) if args.config else resolve_config_path(cwd, _repo_root_or(cwd))
    try:
        config = load_guard_config(config_path)
    except ConfigError as e:
        print(f"dep-fence: {e}", file=sys.stderr)
        log_record("ERROR", e.message, error=e.error_type, file=e.file, line=e.line)
        return ExitCode.CONFIG_ERROR

    result = run_rules(config.rules_for(args.mode), args.mode, cwd)

    for w in result.warnings:
        _print_annotation("WARN", w, sys.stdout)
        log_record("WARNING", w.message, rule=w.name, files=w.files, meta=w.meta)
    for f in result.failures:
        _print_annotation("ERROR", f, sys.stderr)
        log_record("ERROR", f.message, rule=f.name, files=f.files, meta=f.meta)

    return ExitCode.SUCCESS if result.ok else ExitCode.FAILURES


@graceful_hook(blocking=True, name="pre-receive")
def cmd_pre_receive(args: argparse.Namespace) -> int:
    cwd = Path(args.cwd or Path.cwd())
    text = sys.stdin.read()
    try:
        updates = parse_ref_updates(text)
    except ValueError as e:
        print(f"pre-receive: {e}", file=sys.stderr)
        return ExitCode.CONFIG_ERROR
    if not updates:
        return ExitCode.SUCCESS

    pusher = resolve_pusher()
    manager = LockManager(cwd, namespace=args.namespace or resolve_namespace())
    try:
        decision = manager.evaluate(updates, pusher)
    except PolicyLoadError as e:
        print(f"pre-receive: invalid lock policy: {e}", file=sys.stderr)
        log_record("ERROR", e.message, error="policy_invalid", source=e.source)
        return ExitCode.CONFIG_ERROR

    for rejection in decision.rejections:
        print(f"pre-receive: {rejection.message}", file=sys.stderr)
        log_record("ERROR", rejection.message, ref=rejection.ref, pusher=pusher)
    return ExitCode.SUCCESS if decision.accepted else ExitCode.FAILURES


def cmd_install_hooks(args: argparse.Namespace) -> int:
    cwd = Path(args.cwd or Path.cwd())
    try:
        results = install_hooks(cwd, server=args.server, force=args.force, command=args.hook_command)
    except git.CommandError as e:
        log_error(f"Not a git repository? {e}")
        return ExitCode.CONFIG_ERROR
    for r in results:
        print(r.message)
    return ExitCode.SUCCESS if all(r.installed or r.path.exists() for r in results) else ExitCode.FAILURES


def cmd_locks_list(args: argparse.Namespace) -> int:
    cwd = Path(args.cwd or Path.cwd())
    manager = LockManager(cwd, namespace=args.namespace or resolve_namespace())
    try:
        tokens = manager.list_tokens(args.key) if args.key else manager.list_all_tokens()
    except git.CommandError as e:
        log_error(str(e))
        return ExitCode.CONFIG_ERROR
    now = time.time()
    rows = [
        {
            "key": t.key,
            "owner": t.owner,
            "expiry": t.expiry,
            "valid": t.is_valid(now),
            "ref": t.ref,
        }
        for t in tokens
    ]
    if args.json:
        print(json.dumps(rows, indent=2))
    elif not rows:
        print("No lock tokens found.")
    else:
        for row in rows:
            state = "valid" if row["valid"] else "expired"
            print(f"{row['key']}\t{row['owner']}\t{row['expiry']}\t{state}\t{row['ref']}")
    return ExitCode.SUCCESS


def cmd_locks_token(args: argparse.Namespace) -> int:
    cwd = Path(args.cwd or Path.cwd())
    ttl = args.ttl
    if ttl is None:
        try:
            policy = load_policy_file(_repo_root_or(cwd) / POLICY_PATH)
        except PolicyLoadError as e:
            print(f"dep-fence: {e}", file=sys.stderr)
            return ExitCode.CONFIG_ERROR
        ttl = policy.key(args.key).ttl_seconds

    owner = args.owner or resolve_pusher()
    try:
        token = new_token(args.key, owner, ttl_seconds=ttl,
                          namespace=args.namespace or resolve_namespace())
    except TokenFormatError as e:
        print(f"dep-fence: {e}", file=sys.stderr)
        return ExitCode.CONFIG_ERROR
    print(token.ref)
    return ExitCode.SUCCESS


def _add_common_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--cwd", help="Repository directory (default: current directory)")


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="dep-fence",
        description="Guard checks and git-ref locks for shared repositories",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    check_parser = subparsers.add_parser("check", help="Run guard rules")
    _add_common_args(check_parser)
    check_parser.add_argument("--mode", choices=GUARD_MODES, default="pre-commit")
    check_parser.add_argument(
        "--config",
        help="Path to guard config (default: $DEP_FENCE_CONFIG, .mrtask/dep-fence.yaml, dep-fence.yaml)",
    )
    check_parser.set_defaults(func=cmd_check)

    receive_parser = subparsers.add_parser("pre-receive", help="Enforce locks on an incoming push (reads stdin)")
    _add_common_args(receive_parser)
    receive_parser.add_argument("--namespace", help="Lock ref namespace (default: mrtask)")
    receive_parser.set_defaults(func=cmd_pre_receive)

    install_parser = subparsers.add_parser("install-hooks", help="Install git hooks")
    _add_common_args(install_parser)
    install_parser.add_argument("--server", action="store_true", help="Install the pre-receive hook")
    install_parser.add_argument("--force", action="store_true", help="Overwrite existing hooks")
    install_parser.add_argument("--command", dest="hook_command", help="Command the hooks invoke (default: dep-fence)")
    install_parser.set_defaults(func=cmd_install_hooks)

    locks_parser = subparsers.add_parser("locks", help="Inspect lock tokens")
    locks_sub = locks_parser.add_subparsers(dest="locks_command", required=True)

    list_parser = locks_sub.add_parser("list", help="List lock tokens in the local ref store")
    _add_common_args(list_parser)
    list_parser.add_argument("--key", help="Only tokens for this key")
    list_parser.add_argument("--namespace", help="Lock ref namespace (default: mrtask)")
    list_parser.add_argument("--json", action="store_true", help="Output JSON")
    list_parser.set_defaults(func=cmd_locks_list)

    token_parser = locks_sub.add_parser("token", help="Print a new token ref name to push")
    _add_common_args(token_parser)
    token_parser.add_argument("key", help="Lock key")
    token_parser.add_argument("--owner", help="Owner identity (default: resolved pusher)")
    token_parser.add_argument("--ttl", type=int, help="Seconds until expiry (default: policy ttlSeconds)")
    token_parser.add_argument("--namespace", help="Lock ref namespace (default: mrtask)")
    token_parser.set_defaults(func=cmd_locks_token)

    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s", stream=sys.stderr)

    return int(args.func(args))


if __name__ == "__main__":
    sys.exit(main())
