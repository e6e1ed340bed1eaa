"""
Exception hierarchy for tag import/export.

Every error raised by the toolkit derives from :class:`TagCsvError`.  Each
concrete class also inherits the built-in exception callers would expect
for that kind of failure (``ValueError`` for bad input, ``KeyError`` for a
missing column or unknown type, ``RuntimeError`` for store failures), so
code written against plain built-ins keeps working.
"""


class TagCsvError(Exception):
    """Base class for all tag import/export errors."""


class ConfigurationError(TagCsvError, ValueError):
    """Missing or invalid driver reference, CSV path, or field separator.

    Raised before any file or tree I/O happens.
    """


class FormatError(TagCsvError, ValueError):
    """The CSV file cannot be read: no header, or a malformed row."""

    def __init__(self, message: str, line: int = 0):
        super().__init__(message)
        self.line = line


class SchemaError(TagCsvError, KeyError):
    """A row does not fit the record schema (missing column, bad value,
    unsupported data type)."""

    def __str__(self) -> str:
        # KeyError quotes its argument; report the plain message instead.
        return str(self.args[0]) if self.args else ''


class StoreError(TagCsvError, RuntimeError):
    """A folder, structure, or tag could not be created in the tree store."""


class TransferCancelled(TagCsvError):
    """Raised inside a pass when its cancellation signal has been set."""
