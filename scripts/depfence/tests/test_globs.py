"""Tests for glob compilation and matching."""

import itertools

import pytest

from scripts.depfence.globs import (
    any_match,
    compile_globs,
    filter_matching,
    glob_to_regex,
    matches,
)


class TestGlobToRegex:
    """Tests for single-pattern translation."""

    def test_double_star_slash_matches_zero_segments(self):
        """'**/' may match no directory at all."""
        r = glob_to_regex("**/utils/*.py")
        assert r.match("utils/a.py")
        assert r.match("src/lib/utils/a.py")
        assert not r.match("src/utils/deep/a.py")

    def test_trailing_double_star_matches_everything_below(self):
        r = glob_to_regex("src/**")
        assert r.match("src/a.ts")
        assert r.match("src/nested/deep/b.ts")
        assert not r.match("lib/src/a.ts")

    def test_single_star_stays_in_segment(self):
        r = glob_to_regex("tests/*")
        assert r.match("tests/test_auth.py")
        assert not r.match("tests/unit/test_auth.py")

    def test_question_mark_matches_one_non_separator(self):
        r = glob_to_regex("docs/?.md")
        assert r.match("docs/a.md")
        assert not r.match("docs/ab.md")
        assert not r.match("docs//.md")

    def test_patterns_are_anchored(self):
        r = glob_to_regex("README.md")
        assert r.match("README.md")
        assert not r.match("docs/README.md")
        assert not r.match("README.md.bak")

    def test_trailing_newline_does_not_match(self):
        """The end anchor rejects a path that only differs by a final newline."""
        assert not glob_to_regex("README.md").match("README.md\n")
        assert not glob_to_regex("docs/*.md").match("docs/x.md\n")

    @pytest.mark.parametrize("pattern,path", [
        ("a.b", "a.b"),
        ("a+b(c)", "a+b(c)"),
        ("x[1]", "x[1]"),
        ("{a,b}", "{a,b}"),
        ("$HOME|^", "$HOME|^"),
    ])
    def test_regex_metacharacters_are_literal(self, pattern, path):
        assert glob_to_regex(pattern).match(path)

    def test_dot_is_not_a_wildcard(self):
        assert not glob_to_regex("a.b").match("axb")


class TestGlobSet:
    """Tests for include/exclude composition."""

    def test_include_and_exclude(self):
        s = compile_globs(["src/**", "!src/generated/**"])
        assert matches("src/app.ts", s)
        assert not matches("src/generated/types.ts", s)
        assert not matches("docs/readme.md", s)

    def test_newline_suffixed_path_not_allowed(self):
        assert not matches("README.md\n", compile_globs(["README.md"]))
        assert not matches("x.md\n", compile_globs(["*.md"]))

    def test_negation_only_matches_nothing(self):
        s = compile_globs(["!dist/**"])
        assert not matches("src/a.ts", s)
        assert not matches("dist/a.js", s)

    def test_empty_patterns_are_ignored(self):
        s = compile_globs(["", "src/**"])
        assert len(s.include) == 1
        assert matches("src/a", s)

    def test_backslash_paths_are_normalized(self):
        s = compile_globs(["src/**"])
        assert matches("src\\win\\file.ts", s)

    def test_order_does_not_change_result(self):
        patterns = ["src/**", "!src/gen/**", "docs/*.md", "!docs/draft.md", "**/*.json"]
        paths = ["src/a.ts", "src/gen/b.ts", "docs/x.md", "docs/draft.md", "cfg/app.json", "other"]
        expected = [matches(p, compile_globs(patterns)) for p in paths]
        for perm in itertools.permutations(patterns):
            s = compile_globs(list(perm))
            assert [matches(p, s) for p in paths] == expected

    def test_filter_and_any_match(self):
        s = compile_globs(["packages/**"])
        files = ["README.md", "packages/app/file.ts", "packages\\lib\\x.ts"]
        assert filter_matching(files, s) == ["packages/app/file.ts", "packages/lib/x.ts"]
        assert any_match(files, s)
        assert not any_match(["README.md"], s)
