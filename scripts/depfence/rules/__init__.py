"""Built-in guard rules and the registry used by the config loader."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

from scripts.depfence.rules.allowed_dirs import AllowedDirsRule, allowed_dirs_rule
from scripts.depfence.rules.mtime_compare import MtimeCompareRule, mtime_compare_rule
from scripts.depfence.rules.upstream_conflict import UpstreamConflictRule, upstream_conflict_rule


@dataclass(frozen=True)
class OptionSpec:
    """A config option: the factory keyword it feeds and its accepted types."""

    kwarg: str
    types: tuple[type, ...]
    required: bool = False
    list_of_str: bool = False


@dataclass(frozen=True)
class RuleSpec:
    name: str
    factory: Callable[..., Any]
    options: dict[str, OptionSpec]


_STR_LIST = (list,)
_NUMBER = (int, float)

RULES: dict[str, RuleSpec] = {
    "allowed-dirs": RuleSpec(
        name="allowed-dirs",
        factory=allowed_dirs_rule,
        options={
            "allow": OptionSpec("allow", _STR_LIST, required=True, list_of_str=True),
        },
    ),
    "mtime-compare": RuleSpec(
        name="mtime-compare",
        factory=mtime_compare_rule,
        options={
            "group_a": OptionSpec("group_a", _STR_LIST, required=True, list_of_str=True),
            "groupA": OptionSpec("group_a", _STR_LIST, required=True, list_of_str=True),
            "group_b": OptionSpec("group_b", _STR_LIST, required=True, list_of_str=True),
            "groupB": OptionSpec("group_b", _STR_LIST, required=True, list_of_str=True),
            "epsilon_ms": OptionSpec("epsilon_ms", _NUMBER),
            "epsilonMs": OptionSpec("epsilon_ms", _NUMBER),
            "only_tracked": OptionSpec("only_tracked", (bool,)),
            "onlyTracked": OptionSpec("only_tracked", (bool,)),
        },
    ),
    "upstream-conflict": RuleSpec(
        name="upstream-conflict",
        factory=upstream_conflict_rule,
        options={
            "watch": OptionSpec("watch", _STR_LIST, required=True, list_of_str=True),
            "base_ref": OptionSpec("base_ref", (str,)),
            "baseRef": OptionSpec("base_ref", (str,)),
            "allowed_authors": OptionSpec("allowed_authors", _STR_LIST, list_of_str=True),
            "allowedAuthors": OptionSpec("allowed_authors", _STR_LIST, list_of_str=True),
        },
    ),
}

ALIASES: dict[str, str] = {
    "allowed-directories": "allowed-dirs",
    "modification-time-ordering": "mtime-compare",
    "upstream-authorship-conflict": "upstream-conflict",
}


def get_rule_spec(name: str) -> RuleSpec:
    """Look up a rule by name or alias.

    Raises:
        KeyError: If no rule has that name.
    """
    return RULES[ALIASES.get(name, name)]


__all__ = [
    "ALIASES",
    "AllowedDirsRule",
    "MtimeCompareRule",
    "OptionSpec",
    "RULES",
    "RuleSpec",
    "UpstreamConflictRule",
    "allowed_dirs_rule",
    "get_rule_spec",
    "mtime_compare_rule",
    "upstream_conflict_rule",
]
