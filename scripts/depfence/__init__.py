"""dep-fence: guard checks for commits and pushes, and git-ref based locks.

Guard side::

    from scripts.depfence import load_guard_config, run_rules
    config = load_guard_config(".mrtask/dep-fence.yaml")
    result = run_rules(config.rules_for("pre-commit"), "pre-commit", repo_dir)

Lock side::

    from scripts.depfence import LockManager, parse_ref_updates
    decision = LockManager(repo_dir).evaluate(parse_ref_updates(stdin_text), pusher)
"""

from scripts.depfence.config import ConfigError, GuardConfig, load_guard_config, write_guard_config
from scripts.depfence.engine import run_rules
from scripts.depfence.git import CommandError
from scripts.depfence.globs import GlobSet, compile_globs, matches
from scripts.depfence.locks import (
    LockManager,
    PushDecision,
    RefUpdate,
    decide_branch_update,
    decide_lock_update,
    parse_ref_updates,
    resolve_pusher,
)
from scripts.depfence.models import Annotation, Rule, RuleContext, RunResult
from scripts.depfence.policy import (
    KeyPolicy,
    LockPolicy,
    PolicyLoadError,
    dump_policy,
    load_policy_file,
    parse_policy,
    save_policy,
)
from scripts.depfence.rules import allowed_dirs_rule, mtime_compare_rule, upstream_conflict_rule
from scripts.depfence.tokens import LockToken, format_token_ref, parse_token_ref

__version__ = "0.1.0"

__all__ = [
    "Annotation",
    "CommandError",
    "ConfigError",
    "GlobSet",
    "GuardConfig",
    "KeyPolicy",
    "LockManager",
    "LockPolicy",
    "LockToken",
    "PolicyLoadError",
    "PushDecision",
    "RefUpdate",
    "Rule",
    "RuleContext",
    "RunResult",
    "allowed_dirs_rule",
    "compile_globs",
    "decide_branch_update",
    "decide_lock_update",
    "dump_policy",
    "format_token_ref",
    "load_guard_config",
    "load_policy_file",
    "matches",
    "mtime_compare_rule",
    "parse_policy",
    "parse_ref_updates",
    "parse_token_ref",
    "resolve_pusher",
    "run_rules",
    "save_policy",
    "upstream_conflict_rule",
    "write_guard_config",
]
