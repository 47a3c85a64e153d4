"""test_testcases.py - Unit tests for test-case matching and templates.

Covers:
    - match_uri(): exact, regex (with #...#flags), prefix, invalid patterns
    - Definition order decides which matching entry wins
    - Start/end hooks and success/error templates
    - Code entries: replace, suppress (and the "not" alias), bare strings
    - Variables: {{name}} substitution, sensitive keys dropped
    - Broken files and entries are ignored
"""

import textwrap

from steplog.testcases import TestCase, TestCaseBook, compile_pattern, match_uri


class Recorder:
    def __init__(self):
        self.started = 0

    def on_start(self):
        self.started += 1


class Outcome:
    def __init__(self, ok):
        self.ok = ok

    def on_end(self):
        return self.ok


class Upper:
    def replace(self, message):
        return str(message).upper()


class SkipWarmup:
    def suppress(self, message):
        return "warmup" in str(message)


def _load(tmp_path, body, hooks=None):
    path = tmp_path / "testcases.yaml"
    path.write_text(textwrap.dedent(body), encoding="utf-8")
    lines = []
    book = TestCaseBook.load(path, hooks or {}, sink=lines.append)
    return book, lines


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------


class TestMatchUri:
    def test_slash_is_exact(self):
        """Patterns starting with / match the whole URI."""
        assert match_uri("/checkout", "/checkout")
        assert not match_uri("/checkout", "/checkout/confirm")

    def test_delimited_regex_with_flags(self):
        """#...#flags is a regex with its flags."""
        assert match_uri(r"#^/api/v\d+#i", "/API/v2/orders")
        assert not match_uri(r"#^/api/v\d+#", "/API/v2/orders")

    def test_bare_regex_leaders(self):
        """Patterns starting with a regex character are regexes."""
        assert match_uri("(orders|invoices)", "/api/orders")
        assert match_uri("^/api", "/api/x")
        assert match_uri("[0-9]+", "/page/7")

    def test_other_patterns_are_prefixes(self):
        """Anything else matches as a prefix."""
        assert match_uri("cli", "cli/run")
        assert not match_uri("cli", "/cli")

    def test_empty_and_invalid(self):
        """Empty and uncompilable patterns never match."""
        assert not match_uri("", "/")
        assert not match_uri("([", "/")
        assert compile_pattern("#abc#q") is None

    def test_first_definition_wins(self, tmp_path):
        """Both entries match; the earlier one is used."""
        book, lines = _load(tmp_path, """
            "#^/api#":
              start: first
            "#^/api/orders#":
              start: second
        """)
        book.start("/api/orders")
        assert lines == ["first"]


# ---------------------------------------------------------------------------
# URI lifecycle
# ---------------------------------------------------------------------------


class TestLifecycle:
    def test_start_hook_and_variables(self, tmp_path):
        """The start hook runs and its variables fill the template."""
        recorder = Recorder()
        book, lines = _load(tmp_path, """
            /checkout:
              start: "checkout for {{user}}"
              start_hook: recorder
        """, {"recorder": recorder})
        book.set_var("user", "ann")
        case = book.start("/checkout")

        assert isinstance(case, TestCase)
        assert recorder.started == 1
        assert lines == ["checkout for ann"]

    def test_end_hook_selects_template(self, tmp_path):
        body = """
            /pay:
              success: paid
              error: not paid
              end_hook: outcome
        """
        for ok, expected in ((True, "paid"), (False, "not paid")):
            book, lines = _load(tmp_path, body, {"outcome": Outcome(ok)})
            book.start("/pay")
            book.end()
            assert lines == [expected]

    def test_end_without_hook_logs_nothing(self, tmp_path):
        book, lines = _load(tmp_path, """
            /pay:
              success: paid
        """)
        book.start("/pay")
        book.end()
        assert lines == []

    def test_no_match(self, tmp_path):
        book, lines = _load(tmp_path, """
            /pay:
              start: paid
        """)
        assert book.start("/other") is None
        book.end()
        assert lines == []


# ---------------------------------------------------------------------------
# Code entries
# ---------------------------------------------------------------------------


class TestCodes:
    BODY = """
        cache-miss:
          text: "miss: {{message}}"
          replace: upper
          suppress_if: skip
        slow-query: "slow {{message}}"
        legacy:
          text: "legacy {{message}}"
          not: skip
    """
    HOOKS = {"upper": Upper(), "skip": SkipWarmup()}

    def test_replace_then_log(self, tmp_path):
        """Replacements are applied before the line is logged."""
        book, lines = _load(tmp_path, self.BODY, self.HOOKS)
        book.test("cache-miss", "users:7")
        assert lines == ["miss: USERS:7"]

    def test_suppress(self, tmp_path):
        """Suppression sees the replaced message."""
        book, lines = _load(tmp_path, self.BODY, self.HOOKS)
        book.test("cache-miss", "warmup")
        book.test("legacy", "warmup run")
        assert lines == ["miss: WARMUP"]

    def test_not_alias(self, tmp_path):
        """not skips the matching value."""
        book, lines = _load(tmp_path, self.BODY, self.HOOKS)
        book.test("legacy", "warmup")
        book.test("legacy", "real")
        assert lines == ["legacy real"]

    def test_bare_string_entry(self, tmp_path):
        """A bare string is the log template."""
        book, lines = _load(tmp_path, self.BODY, self.HOOKS)
        book.test("slow-query", 1.5)
        assert lines == ["slow 1.5"]

    def test_unknown_code(self, tmp_path):
        """Unknown codes log nothing."""
        book, lines = _load(tmp_path, self.BODY, self.HOOKS)
        book.test("nope", "x")
        assert lines == []


# ---------------------------------------------------------------------------
# Variables and broken input
# ---------------------------------------------------------------------------


class TestVariablesAndErrors:
    def test_sensitive_keys_dropped(self):
        """token and ip never reach a rendered template."""
        book = TestCaseBook()
        book.set_var("user", {"name": "ann", "token": "secret", "ip": "10.0.0.1"})
        assert book.render("{{user}}") == "[name => ann]"

    def test_render_extra_overrides(self):
        """Values passed to render() win over stored variables."""
        book = TestCaseBook()
        book.set_var("message", "old")
        assert book.render("{{message}}", {"message": "new"}) == "new"

    def test_missing_file_gives_empty_book(self, tmp_path):
        """A missing or unset file gives an empty book."""
        assert len(TestCaseBook.load(tmp_path / "missing.yaml")) == 0
        assert len(TestCaseBook.load(None)) == 0

    def test_malformed_yaml_ignored(self, tmp_path):
        """Unparseable YAML gives an empty book."""
        book, _ = _load(tmp_path, "key: [unclosed\n")
        assert len(book) == 0

    def test_bad_entries_skipped(self, tmp_path):
        """Unknown hooks, non-text templates and non-mapping entries are dropped."""
        book, _ = _load(tmp_path, """
            /a:
              start: ok
            /b:
              end_hook: missing
            /c:
              start: [1, 2]
            /d: 42
        """)
        assert len(book) == 1
        assert book.find("/a") is not None

    def test_hook_must_implement_protocol(self, tmp_path):
        book, _ = _load(tmp_path, """
            /a:
              end_hook: upper
        """, {"upper": Upper()})
        assert len(book) == 0
