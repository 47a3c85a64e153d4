"""test_config.py - Unit tests for Config.

Covers:
    - Defaults and string-to-enum coercion
    - Validation errors raise ConfigError
    - from_mapping() rejects unknown keys
    - from_yaml(): happy path, missing file, invalid YAML, missing section
    - Derived paths and the dump budget
"""

import pytest

from steplog.config import DEFAULT_MEMORY_LIMIT, Config
from steplog.exceptions import ConfigError
from steplog.formatter import LayoutMode
from steplog.serializer import DataFormat


class TestDefaults:
    def test_defaults(self):
        """Out of the box: write on, no echo, minimal layout, concat data, 256 MiB ceiling."""
        config = Config()
        assert config.enable_write is True
        assert config.enable_output is False
        assert config.layout is LayoutMode.MINIMAL
        assert config.data_format is DataFormat.CONCAT
        assert config.memory_limit == DEFAULT_MEMORY_LIMIT == 256 * 1024 * 1024

    def test_strings_are_coerced(self):
        """Layout and data format accept their string names."""
        config = Config(layout="profiling", data_format="dump")
        assert config.layout is LayoutMode.PROFILING
        assert config.data_format is DataFormat.DUMP

    def test_dump_budget(self):
        """The three dump limits are bundled into one budget."""
        budget = Config(dump_max_depth=2, dump_max_elements=4, dump_max_total=8).dump_budget
        assert (budget.max_depth, budget.max_elements, budget.max_total) == (2, 4, 8)

    def test_test_log_defaults_under_base(self, tmp_path):
        """Without an explicit path the test-case log sits in the base directory."""
        config = Config(base_path=str(tmp_path))
        assert config.resolved_test_log_path() == tmp_path.resolve() / "testcases.log"


class TestValidation:
    def test_bad_layout(self):
        """An unknown layout name is a ConfigError."""
        with pytest.raises(ConfigError):
            Config(layout="fancy")

    def test_negative_depth(self):
        """A negative stack depth is rejected."""
        with pytest.raises(ConfigError):
            Config(stack_depth=-1)

    def test_unknown_keys(self):
        """Unknown keys are reported by name."""
        with pytest.raises(ConfigError, match="colour"):
            Config.from_mapping({"colour": "red"})


class TestFromYaml:
    def test_loads_section(self, tmp_path):
        """Only the steplog: section of the file is read."""
        path = tmp_path / "steplog.yaml"
        path.write_text(
            "steplog:\n"
            "  base_path: /var/log/app\n"
            "  layout: verbose\n"
            "  disable_uris: [/health, /metrics]\n"
            "other: ignored\n",
            encoding="utf-8",
        )
        config = Config.from_yaml(path)
        assert config.base_path == "/var/log/app"
        assert config.layout is LayoutMode.VERBOSE
        assert config.disable_uris == ["/health", "/metrics"]

    def test_missing_file(self, tmp_path):
        """A missing file raises ConfigError."""
        with pytest.raises(ConfigError, match="not found"):
            Config.from_yaml(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, tmp_path):
        """A YAML syntax error raises ConfigError."""
        path = tmp_path / "bad.yaml"
        path.write_text("steplog: [unclosed\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="Failed to parse"):
            Config.from_yaml(path)

    def test_missing_section(self, tmp_path):
        """A file without a steplog: section raises ConfigError."""
        path = tmp_path / "other.yaml"
        path.write_text("app:\n  debug: true\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="No 'steplog' section"):
            Config.from_yaml(path)
