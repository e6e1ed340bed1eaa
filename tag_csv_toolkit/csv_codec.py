"""
CSV codec for tag records.

Two dialects share one configurable single-character field separator:

- **plain**: fields are joined by the separator with no quoting and no
  escaping.  A value containing the separator corrupts its row, so callers
  must reject such values before writing (the exporter does).
- **wrapped**: every field is enclosed in double quotes and embedded quotes
  are doubled (``a"b`` -> ``"a""b"``).

Readers detect the dialect from the header line: when any header column
starts and ends with a double quote, the whole file is parsed as wrapped.
Each data row becomes a ``{column: raw value}`` mapping, so column order in
the file does not matter.
"""

from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Sequence

from .errors import FormatError
from .models import TagRecord
from .schema import CSV_COLUMNS, QUOTE_CHAR
from .utils import strip_bom

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Writing
# ---------------------------------------------------------------------------

def format_row(
    fields: Sequence[str],
    field_separator: str,
    wrap_fields: bool = False,
    quote_char: str = QUOTE_CHAR,
) -> str:
    """Join *fields* into one CSV line (without the line terminator)."""
    if not wrap_fields:
        return field_separator.join(fields)
    doubled = quote_char * 2
    return field_separator.join(
        f"{quote_char}{value.replace(quote_char, doubled)}{quote_char}"
        for value in fields
    )


class CsvTagWriter:
    """Line-oriented CSV writer for tag records.

    The file is opened (and truncated) on construction and released by
    :meth:`close`, or on leaving a ``with`` block::

        with CsvTagWriter(path, ';', wrap_fields=True) as writer:
            writer.write_header()
            for record in records:
                writer.write_record(record)
    """

    def __init__(
        self,
        file_path: str,
        field_separator: str = ';',
        wrap_fields: bool = False,
        quote_char: str = QUOTE_CHAR,
    ):
        self.field_separator = field_separator
        self.wrap_fields = wrap_fields
        self.quote_char = quote_char
        self.rows_written = 0
        self._fh = open(file_path, 'w', encoding='utf-8', newline='')

    def write_row(self, fields: Sequence[str]) -> None:
        line = format_row(fields, self.field_separator, self.wrap_fields, self.quote_char)
        self._fh.write(line + '\r\n')
        self.rows_written += 1

    def write_header(self) -> None:
        self.write_row(CSV_COLUMNS)

    def write_record(self, record: TagRecord) -> None:
        self.write_row(record.to_row())

    def close(self) -> None:
        if not self._fh.closed:
            self._fh.close()

    def __enter__(self) -> 'CsvTagWriter':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def write_records(
    file_path: str,
    records: Iterable[TagRecord],
    field_separator: str = ';',
    wrap_fields: bool = False,
) -> int:
    """Write a header and *records* to *file_path*.

    Returns:
        The number of records written (header excluded).
    """
    count = 0
    with CsvTagWriter(file_path, field_separator, wrap_fields) as writer:
        writer.write_header()
        for record in records:
            writer.write_record(record)
            count += 1
    return count


# ---------------------------------------------------------------------------
# Reading
# ---------------------------------------------------------------------------

@dataclass
class CsvRow:
    """One data row: its 1-based line number and column values."""
    line: int
    values: Dict[str, str]


@dataclass
class CsvTable:
    """Header and data rows read from a CSV file."""
    header: List[str]
    wrapped: bool = False
    rows: List[CsvRow] = field(default_factory=list)


def _is_wrapped(column: str, quote_char: str) -> bool:
    return len(column) >= 2 and column.startswith(quote_char) and column.endswith(quote_char)


def split_line(
    line: str,
    field_separator: str,
    wrapped: bool,
    quote_char: str = QUOTE_CHAR,
) -> List[str]:
    """Split one CSV line into raw field values.

    Plain lines are split on every separator.  Wrapped lines are parsed
    with quote awareness, so separators and doubled quotes inside a quoted
    field are kept as data.
    """
    if not wrapped:
        return line.split(field_separator)
    reader = csv.reader(
        [line],
        delimiter=field_separator,
        quotechar=quote_char,
        doublequote=True,
        strict=False,
    )
    return next(reader, [])


def parse_lines(
    lines: Iterable[str],
    field_separator: str,
    quote_char: str = QUOTE_CHAR,
) -> CsvTable:
    """Parse CSV text lines into a :class:`CsvTable`.

    Blank lines after the header are skipped.

    Raises:
        FormatError: If there is no header line, or a data row's field
            count differs from the header's.
    """
    iterator = iter(lines)
    header_line = next(iterator, None)
    if header_line is None or not header_line.strip():
        raise FormatError("CSV file is empty or has no header.", line=1)
    header_line = header_line.rstrip('\r\n')

    raw_columns = header_line.split(field_separator)
    wrapped = any(_is_wrapped(col, quote_char) for col in raw_columns)
    if wrapped:
        logger.info("Text wrapping detected, trimming double quotes from data")
    header = split_line(header_line, field_separator, wrapped, quote_char)

    if len(set(header)) != len(header):
        logger.warning("CSV header contains duplicate column names: %s", header)

    table = CsvTable(header=header, wrapped=wrapped)
    for line_no, line in enumerate(iterator, start=2):
        line = line.rstrip('\r\n')
        if not line.strip():
            continue
        fields = split_line(line, field_separator, wrapped, quote_char)
        if len(fields) != len(header):
            raise FormatError(
                f"Line {line_no}: expected {len(header)} field(s), "
                f"found {len(fields)}",
                line=line_no,
            )
        table.rows.append(CsvRow(line=line_no, values=dict(zip(header, fields))))
    return table


def read_table(file_path: str, field_separator: str = ';') -> CsvTable:
    """Read a CSV file into a :class:`CsvTable`.

    The file is decoded as UTF-8; a leading BOM is ignored.

    Raises:
        OSError: If the file cannot be opened.
        FormatError: If the file is not valid UTF-8, or see
            :func:`parse_lines`.
    """
    with open(file_path, 'rb') as fh:
        raw = strip_bom(fh.read())
    try:
        text = raw.decode('utf-8')
    except UnicodeDecodeError as e:
        line = raw.count(b'\n', 0, e.start) + 1
        raise FormatError(
            f"Line {line}: file is not valid UTF-8 text ({e.reason})",
            line=line,
        ) from None
    return parse_lines(io.StringIO(text, newline=''), field_separator)
