"""Tests for the rule engine."""

import asyncio

from scripts.depfence.engine import run_rules
from scripts.depfence.models import Annotation, RunResult


class RecordingRule:
    def __init__(self, name, calls, action=None):
        self.name = name
        self.calls = calls
        self.action = action

    def run(self, ctx):
        self.calls.append(self.name)
        if self.action == "warn":
            ctx.warn(self.name, f"{self.name} warned", ["a.txt"])
        elif self.action == "fail":
            ctx.fail(self.name, f"{self.name} failed", meta={"n": 1})


class ExplodingRule:
    name = "boom"

    def run(self, ctx):
        raise RuntimeError("kaboom")


class AsyncRule:
    name = "async"

    async def run(self, ctx):
        await asyncio.sleep(0)
        ctx.warn(self.name, "from coroutine")


class TestRunRules:
    """Tests for run_rules."""

    def test_no_rules_is_ok(self, tmp_path):
        """An empty rule list produces an empty, passing result."""
        result = run_rules([], "manual", tmp_path)
        assert result == RunResult()
        assert result.ok

    def test_rules_run_in_order(self, tmp_path):
        calls = []
        rules = [RecordingRule(n, calls) for n in ("one", "two", "three")]
        run_rules(rules, "pre-commit", tmp_path)
        assert calls == ["one", "two", "three"]

    def test_warnings_do_not_fail(self, tmp_path):
        calls = []
        result = run_rules([RecordingRule("w", calls, "warn")], "pre-commit", tmp_path)
        assert result.ok
        assert result.warnings == [Annotation("w", "w warned", ["a.txt"], None)]

    def test_failures_recorded_in_order(self, tmp_path):
        calls = []
        rules = [
            RecordingRule("first", calls, "fail"),
            RecordingRule("middle", calls, "warn"),
            RecordingRule("last", calls, "fail"),
        ]
        result = run_rules(rules, "pre-push", tmp_path)
        assert not result.ok
        assert [f.name for f in result.failures] == ["first", "last"]
        assert result.failures[0].meta == {"n": 1}

    def test_exception_becomes_failure_and_run_continues(self, tmp_path):
        """A raising rule is reported under its name; later rules still run."""
        calls = []
        result = run_rules([ExplodingRule(), RecordingRule("after", calls)], "manual", tmp_path)
        assert calls == ["after"]
        assert result.failures == [Annotation("boom", "kaboom")]

    def test_coroutine_rule_is_awaited(self, tmp_path):
        result = run_rules([AsyncRule()], "manual", tmp_path)
        assert [w.message for w in result.warnings] == ["from coroutine"]

    def test_context_carries_mode_and_cwd(self, tmp_path):
        seen = {}

        class Recorder:
            name = "recorder"

            def run(self, ctx):
                seen["mode"] = ctx.mode
                seen["cwd"] = ctx.cwd

        run_rules([Recorder()], "pre-push", tmp_path)
        assert seen == {"mode": "pre-push", "cwd": str(tmp_path)}


class TestAnnotation:
    """Tests for Annotation serialization."""

    def test_to_json_omits_empty_fields(self):
        assert Annotation("r", "msg").to_json() == {"name": "r", "message": "msg"}

    def test_to_json_includes_files_and_meta(self):
        data = Annotation("r", "msg", ["x"], {"k": 2}).to_json()
        assert data == {"name": "r", "message": "msg", "files": ["x"], "meta": {"k": 2}}
