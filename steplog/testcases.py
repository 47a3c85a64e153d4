"""testcases.py - Lifecycle-conditioned logging driven by test-case definitions.

Definitions are loaded once from a YAML file. Each top-level key is either a
URI pattern or an opaque code:

    # testcases.yaml
    /checkout:                       # exact URI
      start: "checkout started for {{user}}"
      success: "checkout ok"
      error: "checkout FAILED"
      end_hook: order_saved          # name resolved in the host's hook registry
    "#^/api/v\\d+/orders#i":         # delimited regex
      start: "orders api hit"
    /static:                         # any other leading char: prefix match
      start: "static"
    cache-miss:                      # code entry, used by Engine.test()
      text: "cache miss: {{message}}"
      suppress_if: ignore_warmup
    slow-query: "slow query {{message}}"   # bare string = code entry text

URI entries are tried in definition order and the first match wins. Hooks are
host objects implementing the small protocols below; the book only calls
them, it never looks inside.

Diagnostic logging must never break the host request, so a missing or
malformed file, a bad entry, an unknown hook name or an invalid regex is
skipped silently (DEBUG on this module's logger).
"""

import logging
import re
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Pattern, Protocol, Union, runtime_checkable

import yaml

from .serializer import to_display_text
from .values import coerce

logger = logging.getLogger(__name__)

REGEX_LEADERS = "#|([^"
SENSITIVE_KEYS = frozenset({"oauth_token", "token", "ip", "expires", "expires_at", "created_at"})
_REGEX_FLAGS = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL, "x": re.VERBOSE}
_TEMPLATE_FIELDS = ("start", "success", "error", "text")


@runtime_checkable
class StartHook(Protocol):
    def on_start(self) -> None: ...


@runtime_checkable
class EndHook(Protocol):
    def on_end(self) -> bool: ...


@runtime_checkable
class ReplaceHook(Protocol):
    def replace(self, message: Any) -> Any: ...


@runtime_checkable
class SuppressHook(Protocol):
    def suppress(self, message: Any) -> bool: ...


_HOOK_FIELDS = {
    "start_hook": StartHook,
    "end_hook": EndHook,
    "replace": ReplaceHook,
    "suppress_if": SuppressHook,
}


class TestCase:
    """One loaded definition. Treated as immutable after loading."""

    __test__ = False  # not a pytest class
    __slots__ = ("key", "start", "success", "error", "text", "start_hook", "end_hook", "replace", "suppress_if")

    def __init__(
        self,
        key: str,
        start: Optional[str] = None,
        success: Optional[str] = None,
        error: Optional[str] = None,
        text: Optional[str] = None,
        start_hook: Optional[StartHook] = None,
        end_hook: Optional[EndHook] = None,
        replace: Optional[ReplaceHook] = None,
        suppress_if: Optional[SuppressHook] = None,
    ) -> None:
        self.key = key
        self.start = start
        self.success = success
        self.error = error
        self.text = text
        self.start_hook = start_hook
        self.end_hook = end_hook
        self.replace = replace
        self.suppress_if = suppress_if

    def __repr__(self) -> str:  # pragma: no cover
        return f"TestCase({self.key!r})"


def compile_pattern(pattern: str) -> Optional[Pattern[str]]:
    """Compile a regex-style URI pattern, or return None if it is invalid.

    ``#body#flags`` is unwrapped; any other pattern is the regex body itself.
    """
    flags = 0
    body = pattern
    if pattern.startswith("#"):
        end = pattern.rfind("#")
        if end > 0:
            body = pattern[1:end]
            for flag in pattern[end + 1:]:
                if flag not in _REGEX_FLAGS:
                    logger.debug("Unsupported regex flag %r in %r", flag, pattern)
                    return None
                flags |= _REGEX_FLAGS[flag]
        else:
            body = pattern[1:]
    try:
        return re.compile(body, flags)
    except re.error as e:
        logger.debug("Ignoring invalid test-case pattern %r: %s", pattern, e)
        return None


def match_uri(pattern: str, uri: str) -> bool:
    """Structural URI match: exact for ``/...``, regex for ``# | ( [ ^``, else prefix."""
    if not pattern:
        return False
    first = pattern[0]
    if first == "/":
        return uri == pattern
    if first in REGEX_LEADERS:
        regex = compile_pattern(pattern)
        return regex is not None and regex.search(uri) is not None
    return uri.startswith(pattern)


def _parse_entry(key: str, entry: Any, hooks: Mapping[str, Any]) -> Optional[TestCase]:
    if isinstance(entry, str):
        return TestCase(key, text=entry)
    if not isinstance(entry, dict):
        logger.debug("Ignoring test case %r: expected a mapping or string", key)
        return None

    kwargs: Dict[str, Any] = {}
    for name in _TEMPLATE_FIELDS:
        template = entry.get(name)
        if template is not None and not isinstance(template, str):
            logger.debug("Ignoring test case %r: %s must be text", key, name)
            return None
        kwargs[name] = template

    # "not" is accepted as an alias of suppress_if
    hook_names = dict(entry)
    if "not" in hook_names and "suppress_if" not in hook_names:
        hook_names["suppress_if"] = hook_names["not"]

    for name, protocol in _HOOK_FIELDS.items():
        hook_name = hook_names.get(name)
        if hook_name is None:
            continue
        hook = hooks.get(str(hook_name))
        if hook is None or not isinstance(hook, protocol):
            logger.debug("Ignoring test case %r: unknown %s %r", key, name, hook_name)
            return None
        kwargs[name] = hook

    return TestCase(key, **kwargs)


class TestCaseBook:
    """Loaded test cases plus the variable table used for templates.

    Attributes:
        _cases (dict): Definitions in file order, keyed by pattern or code.
        _vars (dict): ``{{name}}`` substitutions set through ``set_var``.
        _current (TestCase): URI case matched by ``start()``, ended by ``end()``.
        _sink (callable): Receives every rendered line.
    """

    __test__ = False

    def __init__(
        self,
        cases: Optional[Mapping[str, TestCase]] = None,
        sink: Optional[Callable[[str], None]] = None,
    ) -> None:
        self._cases: Dict[str, TestCase] = dict(cases or {})
        self._vars: Dict[str, str] = {}
        self._current: Optional[TestCase] = None
        self._sink = sink or logger.info

    @classmethod
    def load(
        cls,
        path: Optional[Union[str, Path]],
        hooks: Optional[Mapping[str, Any]] = None,
        sink: Optional[Callable[[str], None]] = None,
    ) -> "TestCaseBook":
        """Load definitions from YAML. Any problem yields an empty or partial book."""
        if path is None:
            return cls(sink=sink)

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except (OSError, UnicodeDecodeError, yaml.YAMLError) as e:
            logger.debug("Ignoring test-case definitions %s: %s", path, e)
            return cls(sink=sink)

        if not isinstance(data, dict):
            logger.debug("Ignoring test-case definitions %s: not a mapping", path)
            return cls(sink=sink)

        cases: Dict[str, TestCase] = {}
        for key, entry in data.items():
            if key is None or str(key) == "":
                continue
            case = _parse_entry(str(key), entry, hooks or {})
            if case is not None:
                cases[str(key)] = case

        logger.debug("Loaded %d test cases from %s", len(cases), path)
        return cls(cases, sink=sink)

    def __len__(self) -> int:
        return len(self._cases)

    @property
    def current(self) -> Optional[TestCase]:
        return self._current

    def find(self, uri: str) -> Optional[TestCase]:
        """Return the first case whose pattern matches ``uri``."""
        for pattern, case in self._cases.items():
            if match_uri(pattern, uri):
                return case
        return None

    def start(self, uri: str) -> Optional[TestCase]:
        case = self.find(uri)
        if case is None:
            return None

        self._current = case
        if case.start_hook is not None:
            case.start_hook.on_start()
        if case.start:
            self._sink(self.render(case.start))
        return case

    def end(self) -> None:
        """Finish the current URI case; the end hook picks success or error."""
        case = self._current
        if case is None or case.end_hook is None:
            return

        succeeded = bool(case.end_hook.on_end())
        text = case.success if succeeded else case.error
        if text:
            self._sink(self.render(text))

    def test(self, code: str, message: Any = None) -> None:
        """Log the template registered under ``code`` with ``{{message}}`` filled in."""
        case = self._cases.get(code)
        if case is None:
            return

        if case.replace is not None:
            message = case.replace.replace(message)
        if case.suppress_if is not None and case.suppress_if.suppress(message):
            return

        self._sink(self.render(case.text or "", {"message": to_display_text(coerce(message))}))

    def set_var(self, name: str, value: Any) -> None:
        """Store ``value``'s display text for ``{{name}}``, minus sensitive keys."""
        if isinstance(value, dict):
            value = {k: v for k, v in value.items() if k not in SENSITIVE_KEYS}
        self._vars[name] = to_display_text(coerce(value))

    def render(self, template: str, extra: Optional[Mapping[str, str]] = None) -> str:
        variables = dict(self._vars)
        if extra:
            variables.update(extra)
        for key, value in variables.items():
            template = template.replace("{{" + key + "}}", value)
        return template
