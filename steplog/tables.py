"""tables.py - Semicolon-separated table export.

``CsvExporter.export(channel, record)`` appends one row to ``<channel>.csv``
in the run directory. The first call for a channel also writes a header line
made of the record's leaf keys. Nested mappings are flattened depth-first;
numeric keys (sequence positions) contribute values but no header.

Fields are wrapped in double quotes with embedded quotes doubled, then encoded
to the target encoding (``cp1251`` by default, for spreadsheet tools that
expect it). A field that cannot be represented there is written as UTF-8
unchanged rather than failing the export.
"""

import logging
from typing import Any, List, Set

from .sections import CSV_SUFFIX, BufferedWriter
from .serializer import to_display_text
from .values import Map, Seq, Value, coerce

logger = logging.getLogger(__name__)


def quote_field(text: str) -> str:
    '''Quote one CSV field.

    Example:
        >>> quote_field('He said "hi"')
        '"He said ""hi"""'
    '''
    return '"' + text.replace('"', '""') + '"'


def encode_field(text: str, encoding: str) -> bytes:
    quoted = quote_field(text)
    try:
        return quoted.encode(encoding)
    except (UnicodeEncodeError, LookupError):
        logger.debug("CSV field not representable in %s, keeping UTF-8", encoding)
        return quoted.encode("utf-8")


def extract_keys(value: Value) -> List[str]:
    """Flattened non-numeric leaf keys of ``value``."""
    keys: List[str] = []
    if isinstance(value, Map):
        for key, child in value.items:
            if isinstance(child, (Map, Seq)):
                keys.extend(extract_keys(child))
            elif not key.isdigit():
                keys.append(key)
    elif isinstance(value, Seq):
        for child in value.items:
            if isinstance(child, (Map, Seq)):
                keys.extend(extract_keys(child))
    return keys


def extract_values(value: Value) -> List[str]:
    """Flattened leaf display texts of ``value``, in key order."""
    if isinstance(value, Map):
        children = [child for _, child in value.items]
    elif isinstance(value, Seq):
        children = list(value.items)
    else:
        return [to_display_text(value)]

    values: List[str] = []
    for child in children:
        values.extend(extract_values(child))
    return values


class CsvExporter:
    """Append rows to per-channel CSV files through a BufferedWriter.

    Attributes:
        _writer (BufferedWriter): Performs the immediate file append.
        _encoding (str): Target encoding for every field.
        _headers_written (set): Channels whose header line is already out.
    """

    def __init__(self, writer: BufferedWriter, encoding: str = "cp1251") -> None:
        self._writer = writer
        self._encoding = encoding
        self._headers_written: Set[str] = set()

    def export(self, channel: str, record: Any) -> None:
        value = coerce(record)

        if channel not in self._headers_written:
            self._headers_written.add(channel)
            keys = extract_keys(value)
            if keys:
                self._write_line(channel, keys)

        values = extract_values(value)
        if values:
            self._write_line(channel, values)

    def _write_line(self, channel: str, fields: List[str]) -> None:
        line = b";".join(encode_field(f, self._encoding) for f in fields) + b"\n"
        self._writer.write_file(channel, line, CSV_SUFFIX)
