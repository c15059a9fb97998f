"""Guard configuration loading and validation.

The guard config is a YAML document listing rule instances in evaluation
order::

    rules:
      - rule: allowed-dirs
        action: error
        modes: [pre-commit]
        allow: ["src/**", "!src/generated/**"]
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

from scripts.depfence.models import ACTIONS, GUARD_MODES, GuardMode, Rule
from scripts.depfence.rules import get_rule_spec

CONFIG_ENV_VAR = "DEP_FENCE_CONFIG"
DEFAULT_CONFIG_PATH = ".mrtask/dep-fence.yaml"
ROOT_CONFIG_PATH = "dep-fence.yaml"

# Keys handled by the loader rather than passed to the rule factory
_RESERVED_KEYS = ("rule", "action", "modes")


class ConfigError(Exception):
    """Error in guard configuration."""

    def __init__(
        self,
        message: str,
        file: Optional[str] = None,
        line: Optional[int] = None,
        error_type: str = "config_invalid",
    ):
        super().__init__(message)
        self.message = message
        self.file = file
        self.line = line
        self.error_type = error_type

    def to_json(self) -> dict[str, Any]:
        """Serialize error to JSON format for machine parsing."""
        result: dict[str, Any] = {
            "error": self.error_type,
            "message": self.message,
        }
        if self.file:
            result["file"] = self.file
        if self.line:
            result["line"] = self.line
        return result

    def __str__(self) -> str:
        parts = [self.message]
        if self.file:
            parts.append(f"file: {self.file}")
        if self.line:
            parts.append(f"line: {self.line}")
        return " | ".join(parts)


@dataclass
class RuleEntry:
    """One configured rule and the modes it applies to."""

    rule: Rule
    modes: tuple[str, ...] = GUARD_MODES

    def applies_to(self, mode: GuardMode) -> bool:
        return mode in self.modes


@dataclass
class GuardConfig:
    entries: list[RuleEntry] = field(default_factory=list)
    source: Optional[str] = None

    def rules_for(self, mode: GuardMode) -> list[Rule]:
        """Rules active in ``mode``, in configured order."""
        return [e.rule for e in self.entries if e.applies_to(mode)]


def resolve_config_path(cwd: Path | str, root: Optional[Path | str] = None,
                        environ: Optional[Mapping[str, str]] = None) -> Path:
    """Find the guard config.

    Search order:
    1. ``DEP_FENCE_CONFIG`` (relative paths resolve against ``cwd``)
    2. ``.mrtask/dep-fence.yaml`` under ``cwd``
    3. ``dep-fence.yaml`` at the repository root (``root``, default ``cwd``)

    The last candidate is returned even if missing so the caller can report it.
    """
    env = os.environ if environ is None else environ
    cwd = Path(cwd)
    override = env.get(CONFIG_ENV_VAR)
    if override:
        return (cwd / override).resolve()

    in_tree = cwd / DEFAULT_CONFIG_PATH
    if in_tree.exists():
        return in_tree

    return Path(root if root is not None else cwd) / ROOT_CONFIG_PATH


def _str_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(v, str) for v in value)


def _parse_modes(value: Any, where: str, config_file: Optional[str]) -> tuple[str, ...]:
    if value is None:
        return GUARD_MODES
    if isinstance(value, str):
        value = [value]
    if not _str_list(value):
        raise ConfigError(f"{where}: 'modes' must be a list of strings", file=config_file)
    unknown = [m for m in value if m not in GUARD_MODES]
    if unknown:
        raise ConfigError(
            f"{where}: unknown mode(s) {', '.join(unknown)}; expected {', '.join(GUARD_MODES)}",
            file=config_file,
        )
    return tuple(value)


def _parse_entry(raw: Any, index: int, config_file: Optional[str] = None) -> RuleEntry:
    """Parse one item of the ``rules`` list into a RuleEntry."""
    where = f"rules[{index}]"
    if not isinstance(raw, dict):
        raise ConfigError(f"{where}: each rule must be a mapping", file=config_file)

    name = raw.get("rule")
    if not isinstance(name, str) or not name:
        raise ConfigError(f"{where}: missing 'rule' name", file=config_file)
    try:
        spec = get_rule_spec(name)
    except KeyError:
        raise ConfigError(f"{where}: unknown rule '{name}'", file=config_file, error_type="rule_unknown")

    action = raw.get("action", "error")
    if action not in ACTIONS:
        raise ConfigError(
            f"{where}: action must be one of {', '.join(ACTIONS)}, got {action!r}",
            file=config_file,
        )

    kwargs: dict[str, Any] = {"action": action}
    for key, value in raw.items():
        if key in _RESERVED_KEYS:
            continue
        option = spec.options.get(key)
        if option is None:
            raise ConfigError(f"{where}: unknown option '{key}' for rule '{spec.name}'", file=config_file)
        if option.list_of_str:
            ok = _str_list(value)
        else:
            # bool is an int subclass; only accept it where bool is expected
            ok = isinstance(value, option.types) and (
                bool in option.types or not isinstance(value, bool)
            )
        if not ok:
            raise ConfigError(f"{where}: invalid value for '{key}': {value!r}", file=config_file)
        if option.kwarg in kwargs:
            raise ConfigError(f"{where}: option '{key}' given twice", file=config_file)
        kwargs[option.kwarg] = value

    missing = sorted({o.kwarg for o in spec.options.values() if o.required} - set(kwargs))
    if missing:
        raise ConfigError(
            f"{where}: rule '{spec.name}' requires {', '.join(missing)}",
            file=config_file,
        )

    try:
        rule = spec.factory(**kwargs)
    except ValueError as e:
        raise ConfigError(f"{where}: {e}", file=config_file)

    return RuleEntry(rule=rule, modes=_parse_modes(raw.get("modes"), where, config_file))


def parse_guard_config(data: Any, config_file: Optional[str] = None) -> GuardConfig:
    """Build a GuardConfig from already-parsed YAML data."""
    if not isinstance(data, dict):
        raise ConfigError("Top-level guard config must be a mapping", file=config_file)
    raw_rules = data.get("rules")
    if raw_rules is None:
        raw_rules = []
    if not isinstance(raw_rules, list):
        raise ConfigError("'rules' must be a list", file=config_file)
    entries = [_parse_entry(raw, i, config_file) for i, raw in enumerate(raw_rules)]
    return GuardConfig(entries=entries, source=config_file)


def load_guard_config(config_path: Path | str) -> GuardConfig:
    """Load the guard config from a YAML file.

    Raises:
        ConfigError: If the file is missing, unreadable or invalid.
    """
    config_path = Path(config_path)
    config_file = str(config_path)

    if not config_path.is_file():
        raise ConfigError("Guard config not found", file=config_file, error_type="config_missing")

    try:
        content = config_path.read_text(encoding="utf-8")
        data = yaml.safe_load(content)
    except OSError as e:
        raise ConfigError(f"Cannot read config: {e}", file=config_file, error_type="config_unreadable")
    except yaml.YAMLError as e:
        line = None
        mark = getattr(e, "problem_mark", None)
        if mark is not None:
            line = mark.line + 1
        raise ConfigError(f"Invalid YAML: {e}", file=config_file, line=line)

    if data is None:
        data = {}
    return parse_guard_config(data, config_file)


def write_guard_config(root: Path | str, allow: list[str], level: str) -> Optional[Path]:
    """Write an allowed-dirs-only guard config under ``root``.

    Used when a worktree is set up for a task: ``allow`` lists the directory
    globs the task may touch. ``level`` is ``ignore``, ``warn`` or ``error``;
    ``ignore`` (or an empty allow list) removes any existing config.

    Returns:
        The path written, or None if the config was removed.
    """
    if level not in ("ignore", *ACTIONS):
        raise ValueError(f"level must be ignore, warn or error, got {level!r}")

    config_path = Path(root) / DEFAULT_CONFIG_PATH
    if level == "ignore" or not allow:
        config_path.unlink(missing_ok=True)
        return None

    config_path.parent.mkdir(parents=True, exist_ok=True)
    data = {
        "rules": [
            {"rule": "allowed-dirs", "action": level, "allow": sorted(set(allow))},
        ]
    }
    config_path.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
    return config_path
