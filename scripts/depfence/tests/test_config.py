"""Tests for guard configuration loading and validation."""

import pytest
import yaml

from scripts.depfence.config import (
    DEFAULT_CONFIG_PATH,
    ConfigError,
    load_guard_config,
    parse_guard_config,
    resolve_config_path,
    write_guard_config,
)
from scripts.depfence.rules import AllowedDirsRule, MtimeCompareRule, UpstreamConflictRule


def _write(tmp_path, data, name="dep-fence.yaml"):
    path = tmp_path / name
    path.write_text(yaml.safe_dump(data) if not isinstance(data, str) else data)
    return path


class TestParseGuardConfig:
    """Tests for turning YAML data into rule entries."""

    def test_builds_rules_in_order(self):
        config = parse_guard_config({
            "rules": [
                {"rule": "allowed-dirs", "allow": ["src/**"]},
                {"rule": "mtime-compare", "group_a": ["src/**"], "group_b": ["cfg/**"]},
                {"rule": "upstream-conflict", "watch": ["pkg/**"], "action": "warn"},
            ]
        })
        rules = config.rules_for("manual")
        assert [type(r) for r in rules] == [AllowedDirsRule, MtimeCompareRule, UpstreamConflictRule]
        assert rules[0].action == "error"
        assert rules[2].action == "warn"

    def test_camel_case_options(self):
        config = parse_guard_config({
            "rules": [{
                "rule": "mtime-compare",
                "groupA": ["a/**"],
                "groupB": ["b/**"],
                "epsilonMs": 0,
                "onlyTracked": False,
            }]
        })
        rule = config.rules_for("pre-commit")[0]
        assert rule.group_a == ["a/**"]
        assert rule.epsilon_ms == 0
        assert rule.only_tracked is False

    def test_descriptive_aliases(self):
        config = parse_guard_config({
            "rules": [
                {"rule": "allowed-directories", "allow": ["src/**"]},
                {"rule": "upstream-authorship-conflict", "watch": ["x"], "baseRef": "origin/dev"},
            ]
        })
        rules = config.rules_for("manual")
        assert rules[0].name == "allowed-dirs"
        assert rules[1].base_ref == "origin/dev"

    def test_modes_filter_rules(self):
        config = parse_guard_config({
            "rules": [
                {"rule": "allowed-dirs", "allow": ["src/**"], "modes": ["pre-commit"]},
                {"rule": "upstream-conflict", "watch": ["x"], "modes": "pre-push"},
            ]
        })
        assert [r.name for r in config.rules_for("pre-commit")] == ["allowed-dirs"]
        assert [r.name for r in config.rules_for("pre-push")] == ["upstream-conflict"]
        assert config.rules_for("manual") == []

    def test_empty_config_has_no_rules(self):
        assert parse_guard_config({}).rules_for("pre-commit") == []
        assert parse_guard_config({"rules": None}).entries == []

    @pytest.mark.parametrize("data,fragment", [
        ([], "must be a mapping"),
        ({"rules": {}}, "'rules' must be a list"),
        ({"rules": ["allowed-dirs"]}, "each rule must be a mapping"),
        ({"rules": [{"allow": ["x"]}]}, "missing 'rule' name"),
        ({"rules": [{"rule": "allowed-dirs", "allow": ["x"], "action": "block"}]}, "action must be one of"),
        ({"rules": [{"rule": "allowed-dirs"}]}, "requires allow"),
        ({"rules": [{"rule": "allowed-dirs", "allow": "src/**"}]}, "invalid value for 'allow'"),
        ({"rules": [{"rule": "allowed-dirs", "allow": ["x"], "extra": 1}]}, "unknown option 'extra'"),
        ({"rules": [{"rule": "mtime-compare", "groupA": ["a"], "groupB": ["b"], "epsilonMs": True}]},
         "invalid value for 'epsilonMs'"),
        ({"rules": [{"rule": "mtime-compare", "groupA": ["a"], "group_a": ["a"], "groupB": ["b"]}]},
         "given twice"),
        ({"rules": [{"rule": "mtime-compare", "groupA": ["a"], "groupB": ["b"], "epsilonMs": -5}]},
         "epsilon_ms must be >= 0"),
        ({"rules": [{"rule": "allowed-dirs", "allow": ["x"], "modes": ["commit"]}]}, "unknown mode"),
    ])
    def test_invalid_configs(self, data, fragment):
        with pytest.raises(ConfigError) as exc:
            parse_guard_config(data, "cfg.yaml")
        assert fragment in exc.value.message
        assert exc.value.file == "cfg.yaml"

    def test_unknown_rule_has_own_error_type(self):
        with pytest.raises(ConfigError) as exc:
            parse_guard_config({"rules": [{"rule": "no-such-rule"}]})
        assert exc.value.error_type == "rule_unknown"


class TestLoadGuardConfig:
    """Tests for reading config files."""

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError) as exc:
            load_guard_config(tmp_path / "nope.yaml")
        assert exc.value.error_type == "config_missing"

    def test_valid_file(self, tmp_path):
        path = _write(tmp_path, {"rules": [{"rule": "allowed-dirs", "allow": ["src/**"]}]})
        config = load_guard_config(path)
        assert config.source == str(path)
        assert len(config.entries) == 1

    def test_empty_file_means_no_rules(self, tmp_path):
        config = load_guard_config(_write(tmp_path, ""))
        assert config.entries == []

    def test_invalid_yaml_reports_line(self, tmp_path):
        path = _write(tmp_path, "rules:\n  - rule: allowed-dirs\n    allow: [src/**\n")
        with pytest.raises(ConfigError) as exc:
            load_guard_config(path)
        assert "Invalid YAML" in exc.value.message
        assert exc.value.line is not None

    def test_error_serializes(self):
        err = ConfigError("bad", file="x.yaml", line=3)
        assert err.to_json() == {"error": "config_invalid", "message": "bad", "file": "x.yaml", "line": 3}
        assert str(err) == "bad | file: x.yaml | line: 3"


class TestResolveConfigPath:
    """Tests for config discovery order."""

    def test_env_override_wins(self, tmp_path):
        (tmp_path / ".mrtask").mkdir()
        (tmp_path / DEFAULT_CONFIG_PATH).write_text("rules: []\n")
        path = resolve_config_path(tmp_path, environ={"DEP_FENCE_CONFIG": "custom.yaml"})
        assert path == (tmp_path / "custom.yaml").resolve()

    def test_in_tree_config_before_root(self, tmp_path):
        (tmp_path / ".mrtask").mkdir()
        (tmp_path / DEFAULT_CONFIG_PATH).write_text("rules: []\n")
        assert resolve_config_path(tmp_path, environ={}) == tmp_path / DEFAULT_CONFIG_PATH

    def test_falls_back_to_repo_root(self, tmp_path):
        sub = tmp_path / "pkg"
        sub.mkdir()
        assert resolve_config_path(sub, root=tmp_path, environ={}) == tmp_path / "dep-fence.yaml"


class TestWriteGuardConfig:
    """Tests for generating an allowed-dirs config."""

    def test_writes_sorted_unique_allow_list(self, tmp_path):
        path = write_guard_config(tmp_path, ["src/**", "docs/**", "src/**"], "warn")
        assert path == tmp_path / DEFAULT_CONFIG_PATH
        data = yaml.safe_load(path.read_text())
        assert data == {"rules": [{"rule": "allowed-dirs", "action": "warn", "allow": ["docs/**", "src/**"]}]}
        rule = load_guard_config(path).rules_for("pre-commit")[0]
        assert rule.allow == ["docs/**", "src/**"]

    def test_ignore_removes_existing(self, tmp_path):
        write_guard_config(tmp_path, ["src/**"], "error")
        assert write_guard_config(tmp_path, ["src/**"], "ignore") is None
        assert not (tmp_path / DEFAULT_CONFIG_PATH).exists()

    def test_empty_allow_removes(self, tmp_path):
        write_guard_config(tmp_path, ["src/**"], "error")
        assert write_guard_config(tmp_path, [], "error") is None
        assert not (tmp_path / DEFAULT_CONFIG_PATH).exists()

    def test_bad_level(self, tmp_path):
        with pytest.raises(ValueError):
            write_guard_config(tmp_path, ["src/**"], "loud")
