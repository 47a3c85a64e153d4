"""context.py - Ambient request context handed to the Engine.

RequestContext is built once by the host (web framework, CLI entry point,
test) and passed into ``Engine``. Core components read the request only
through it; nothing below the host queries ``os.environ``, ``sys.argv`` or a
framework request object directly.

The context is used for two things:

    Discriminator:  ``uri_METHODactionargv1argv2argv3``, a stable string that
                    names the run directory and drives URI-based rules.

    Path cleanup:   ``server_root`` is stripped from captured frame paths in
                    addition to the configured document root.
"""

import re
import sys
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence
from urllib.parse import parse_qsl

_UNSAFE_CHARS = re.compile(r"[^a-z0-9_.-]", re.IGNORECASE)


def sanitize_file_name(name: str, limit: int = 120) -> str:
    """Reduce ``name`` to ``[A-Za-z0-9_.-]`` and cap it at ``limit`` characters.

    Over-long names keep their head and the last 14 characters, joined by a
    dot, so distinguishing suffixes survive truncation.

    Example:
        >>> sanitize_file_name("/api/users?id=1_GET")
        'api_users_id_1_GET'
    """
    clean = _UNSAFE_CHARS.sub("_", name).strip("_")
    if len(clean) <= limit:
        return clean
    return clean[: limit - 15] + "." + clean[-14:]


class RequestContext:
    """Immutable description of the request being instrumented.

    Attributes:
        uri (str): Original request URI, or the script path for CLI runs.
        method (str): HTTP method; empty for CLI runs.
        params (dict): Query/form parameters of interest (``action`` is used
            in the discriminator).
        argv (list): Process arguments; entries 1-3 join the discriminator.
        server_root (str): Server document root stripped from frame paths.
        environ (dict): Server/environment variables dumped by
            ``Engine.bootstrap()`` as ``start_server``.

    Example:
        >>> ctx = RequestContext(uri="/orders", method="POST", params={"action": "pay"})
        >>> ctx.discriminator
        '/orders_POSTpay'
    """

    __slots__ = ("uri", "method", "params", "argv", "server_root", "environ")

    def __init__(
        self,
        uri: str = "cli",
        method: str = "",
        params: Optional[Mapping[str, Any]] = None,
        argv: Optional[Sequence[str]] = None,
        server_root: str = "",
        environ: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self.uri = uri
        self.method = method
        self.params: Dict[str, Any] = dict(params or {})
        self.argv: List[str] = list(argv or [])
        self.server_root = server_root
        self.environ: Dict[str, Any] = dict(environ or {})

    @classmethod
    def from_cli(cls, argv: Optional[Sequence[str]] = None, environ: Optional[Mapping[str, Any]] = None) -> "RequestContext":
        """Build a context for a command-line process (defaults to ``sys.argv``)."""
        argv = list(sys.argv if argv is None else argv)
        return cls(uri=argv[0] if argv else "cli", argv=argv, environ=environ)

    @classmethod
    def from_wsgi(cls, environ: Mapping[str, Any]) -> "RequestContext":
        """Build a context from a WSGI ``environ`` dict."""
        uri = environ.get("REQUEST_URI") or environ.get("PATH_INFO") or ""
        query = environ.get("QUERY_STRING", "")
        if query and "?" not in uri:
            uri = f"{uri}?{query}"
        return cls(
            uri=uri or environ.get("SCRIPT_NAME", "") or "cli",
            method=environ.get("REQUEST_METHOD", ""),
            params=dict(parse_qsl(query)),
            server_root=environ.get("DOCUMENT_ROOT", ""),
            environ={k: v for k, v in environ.items() if isinstance(v, (str, int, float, bool))},
        )

    @property
    def discriminator(self) -> str:
        action = str(self.params.get("action", ""))
        extra = "".join(self.argv[1:4])
        return f"{self.uri}_{self.method}{action}{extra}"

    def run_directory_name(self, now: datetime) -> str:
        """Relative directory for a timestamped run.

        The first segment counts down with the hour and the second with the
        minute/second, so a plain lexical listing shows the newest run first.
        """
        hour_key = int(now.strftime("%Y%m%d%H"))
        counter = (6000 - int(now.strftime("%M%S"))) % 10000
        return (
            f"{9999123124 - hour_key}_{now.strftime('%Y_%m_%d__%H')}/"
            f"{counter:04d}__{now.strftime('%M_%S')}_{sanitize_file_name(self.discriminator)}"
        )
