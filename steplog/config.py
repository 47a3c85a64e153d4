"""config.py - Engine configuration.

Config is a plain dataclass holding every recognized option. Hosts either
construct it directly or load it from the ``steplog:`` section of a YAML file:

    # steplog.yaml
    steplog:
      base_path: /var/log/app/steplog
      layout: profiling
      data_format: dump
      disable_uris: ["/health", "/metrics"]

    config = Config.from_yaml(Path("steplog.yaml"))
"""

import dataclasses
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Mapping, Optional, Union

import yaml

from .exceptions import ConfigError
from .formatter import LayoutMode
from .serializer import DataFormat, DumpBudget

logger = logging.getLogger(__name__)

CONFIG_SECTION = "steplog"
DEFAULT_MEMORY_LIMIT = 256 * 1024 * 1024


@dataclass
class Config:
    """Recognized options.

    Attributes:
        disabled: Block every call (checked by the resource/disable guard).
        enable_write: Buffer formatted lines for the registered channels.
        enable_output: Echo formatted lines to the live output stream.
        enable_time_by_name: Accumulate step durations per label.
        create_new_section: Provision a run directory on the first section switch.
            Each engine provisions its own; the option itself is never cleared.
        use_name_as_dir: Use ``<base>/<section>`` instead of a timestamped run dir.
        skip_vendor: Drop third-party frames from traces and the included-files list.
        defer_server_info: Skip section/server-info/test-log setup in ``bootstrap()``.
        throw_errors: Let FailureObserver re-raise observed failures.
        disable_uris: URI prefixes that permanently disable the engine.
        base_path: Root of all run directories.
        document_root: Prefix stripped from captured frame paths.
        stack_depth: Frames skipped above ``Engine.instrument``'s caller.
        max_frames: Frames kept after the skipped ones.
        layout: Message-layout mode.
        data_format: Data format for logged values.
        memory_limit: RSS ceiling in bytes for the resource guard.
        vendor_prefix: Cleaned-path prefix treated as third-party code, in
            addition to ``site-packages``/``dist-packages``.
        test_cases_path: YAML file with test-case definitions.
        test_log_path: File test-case templates are appended to. Defaults to
            ``<base_path>/testcases.log``.
        csv_encoding: Target encoding for CSV exports.
    """

    disabled: bool = False
    enable_write: bool = True
    enable_output: bool = False
    enable_time_by_name: bool = True
    create_new_section: bool = True
    use_name_as_dir: bool = False
    skip_vendor: bool = False
    defer_server_info: bool = False
    throw_errors: bool = False
    disable_uris: List[str] = field(default_factory=list)
    base_path: str = "./logs"
    document_root: str = "/var/www/"
    stack_depth: int = 0
    max_frames: int = 5
    layout: LayoutMode = LayoutMode.MINIMAL
    data_format: DataFormat = DataFormat.CONCAT
    memory_limit: int = DEFAULT_MEMORY_LIMIT
    vendor_prefix: str = "vendor/"
    test_cases_path: Optional[str] = None
    test_log_path: Optional[str] = None
    csv_encoding: str = "cp1251"
    dump_max_depth: int = 3
    dump_max_elements: int = 10
    dump_max_total: int = 100

    def __post_init__(self) -> None:
        try:
            self.layout = LayoutMode(self.layout)
            self.data_format = DataFormat(self.data_format)
        except ValueError as e:
            raise ConfigError(str(e)) from e
        if self.stack_depth < 0 or self.max_frames < 0:
            raise ConfigError("stack_depth and max_frames must be >= 0")

    @property
    def dump_budget(self) -> DumpBudget:
        return DumpBudget(self.dump_max_depth, self.dump_max_elements, self.dump_max_total)

    def resolved_base_path(self) -> Path:
        """Absolute base path; relative values resolve against the working directory."""
        return Path(self.base_path or "./logs").expanduser().resolve()

    def resolved_test_log_path(self) -> Path:
        if self.test_log_path:
            return Path(self.test_log_path).expanduser().resolve()
        return self.resolved_base_path() / "testcases.log"

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Config":
        """Build a Config from a plain mapping, rejecting unknown keys."""
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown steplog options: {', '.join(unknown)}")
        return cls(**dict(data))

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "Config":
        """Load the ``steplog:`` section of a YAML file.

        Raises:
            ConfigError: If the file is missing, is not valid YAML, or has no
                ``steplog`` section.
        """
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"steplog configuration not found: {path}")

        try:
            with path.open("r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse steplog configuration {path}: {e}") from e

        section = data.get(CONFIG_SECTION) if isinstance(data, dict) else None
        if not isinstance(section, dict):
            raise ConfigError(f"No '{CONFIG_SECTION}' section found in {path}")

        config = cls.from_mapping(section)
        logger.debug("steplog configuration loaded from %s", path)
        return config
