"""test_tables.py - Unit tests for CSV export.

Covers:
    - quote_field() doubles embedded quotes
    - encode_field() targets cp1251 and falls back to UTF-8
    - extract_keys() / extract_values() flatten nested records
    - CsvExporter writes the header once per channel, then one row per call
"""

import doctest

from steplog import tables
from steplog.config import Config
from steplog.sections import BufferedWriter, SectionRegistry
from steplog.tables import CsvExporter, encode_field, extract_keys, extract_values, quote_field
from steplog.values import coerce

from conftest import MemoryExporter


class TestFields:
    def test_quote_doubling(self):
        """Embedded quotes are doubled and the field is wrapped in quotes."""
        assert quote_field('He said "hi"') == '"He said ""hi"""'

    def test_docstring_example_runs(self):
        """The documented quote_field() example holds."""
        finder = doctest.DocTestFinder()
        runner = doctest.DocTestRunner()
        for test in finder.find(tables):
            runner.run(test)
        results = runner.summarize(verbose=False)
        assert results.attempted >= 1
        assert results.failed == 0

    def test_encode_cp1251(self):
        """Cyrillic text is re-encoded to the target code page."""
        assert encode_field("заказ", "cp1251") == '"заказ"'.encode("cp1251")

    def test_encode_falls_back_to_utf8(self):
        """Text the code page cannot hold is kept as UTF-8."""
        assert encode_field("ok ☃", "cp1251") == '"ok ☃"'.encode("utf-8")

    def test_unknown_encoding_falls_back(self):
        """An unknown codec falls back to UTF-8."""
        assert encode_field("a", "no-such-codec") == b'"a"'


class TestFlatten:
    def test_keys_skip_numeric_positions(self):
        """List positions are not used as header keys."""
        record = coerce({"id": 1, "customer": {"name": "Ann"}, "lines": [{"sku": "A"}]})
        assert extract_keys(record) == ["id", "name", "sku"]

    def test_digit_keys_are_not_headers(self):
        """Keys made of digits are left out of the header."""
        assert extract_keys(coerce({"0": "a", "name": "b"})) == ["name"]

    def test_values_in_key_order(self):
        """Leaf values follow the header order."""
        record = coerce({"id": 1, "customer": {"name": "Ann"}, "paid": True})
        assert extract_values(record) == ["1", "Ann", "true"]


class TestCsvExporter:
    def _exporter(self, tmp_path):
        config = Config(base_path=str(tmp_path), create_new_section=False)
        registry = SectionRegistry(config)
        memory = MemoryExporter()
        writer = BufferedWriter(registry, config, memory)
        return CsvExporter(writer), memory, registry.prefix / "orders.csv"

    def test_header_written_once(self, tmp_path):
        """The header is written only with the first row."""
        csv, memory, path = self._exporter(tmp_path)
        csv.export("orders", {"id": 1, "note": 'He said "hi"'})
        csv.export("orders", {"id": 2, "note": "ok"})
        assert memory.files[str(path)] == (
            b'"id";"note"\n'
            b'"1";"He said ""hi"""\n'
            b'"2";"ok"\n'
        )

    def test_scalar_record_has_no_header(self, tmp_path):
        """A scalar record is a single quoted field with no header."""
        csv, memory, path = self._exporter(tmp_path)
        csv.export("orders", "plain")
        assert memory.files[str(path)] == b'"plain"\n'
