"""
Shared data models, enumerations, and typed structures for the toolkit.

Provides:
- ``str``-based enums for data types, array update modes, node kinds and
  transfer directions.  These compare equal to plain strings
  (``DataType.INT32 == "Int32"``), so values read straight from a CSV cell
  or an XML attribute can be compared without conversion.
- :class:`TagRecord`, the flat one-row-per-tag unit exchanged between the
  CSV codec and the tree store.
- Result dataclasses returned by export and import passes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional

from .errors import SchemaError
from .schema import (
    ARRAY_UPDATE_ELEMENT,
    COLUMN_ARRAY_ELEMENTS,
    COLUMN_ARRAY_UPDATE_MODE,
    COLUMN_IS_STRUCTURE,
    COLUMN_NAME,
    COLUMN_PATH,
    COLUMN_SYMBOL_NAME,
    COLUMN_TYPE,
    PATH_SEPARATOR,
    SUPPORTED_DATA_TYPES,
)

# ===================================================================
# Enumerations
# ===================================================================

class DataType(str, Enum):
    """Primitive data types supported for device tags."""
    BOOLEAN = "Boolean"
    INT16 = "Int16"
    INT32 = "Int32"
    INT64 = "Int64"
    UINT16 = "UInt16"
    UINT32 = "UInt32"
    UINT64 = "UInt64"
    FLOAT = "Float"
    DOUBLE = "Double"
    STRING = "String"
    BYTE = "Byte"
    SBYTE = "SByte"


class ArrayUpdateMode(str, Enum):
    """How writes to an array tag are observed by the driver."""
    ELEMENT = "Element"
    ARRAY = "Array"

    @classmethod
    def from_text(cls, text: str) -> 'ArrayUpdateMode':
        """Map a textual mode to an enum member.

        Only the exact string ``'Element'`` selects element-wise updates;
        every other value means whole-array updates.
        """
        if text == ARRAY_UPDATE_ELEMENT:
            return cls.ELEMENT
        return cls.ARRAY


class NodeKind(str, Enum):
    """Kind of a node in the project tree."""
    LEAF = "leaf"
    STRUCTURE = "structure"
    FOLDER = "folder"
    OBJECT = "object"
    OTHER = "other"

    @property
    def is_leaf(self) -> bool:
        return self is NodeKind.LEAF

    @property
    def is_container(self) -> bool:
        return self in (NodeKind.STRUCTURE, NodeKind.FOLDER, NodeKind.OBJECT)


class Direction(str, Enum):
    """Transfer direction of a background pass."""
    EXPORT = "export"
    IMPORT = "import"


def resolve_data_type(name: str) -> DataType:
    """Return the :class:`DataType` for a Type column value.

    Raises:
        SchemaError: If *name* is not one of the supported types.
    """
    if name not in SUPPORTED_DATA_TYPES:
        raise SchemaError(
            f'DataType "{name}" is not supported. '
            f"Supported: {', '.join(sorted(SUPPORTED_DATA_TYPES))}"
        )
    return DataType(name)


def plain_text(value) -> str:
    """Return the string form of *value*, unwrapping enum members."""
    if isinstance(value, Enum):
        return value.value
    return str(value)


def split_path(path: str) -> list[str]:
    """Split a slash-separated tree path into its non-empty segments."""
    return [seg for seg in path.split(PATH_SEPARATOR) if seg]


def join_path(*segments: str) -> str:
    """Join path segments, ignoring empty ones."""
    return PATH_SEPARATOR.join(seg for seg in segments if seg)


# ===================================================================
# TagRecord
# ===================================================================

def _row_value(row: Mapping[str, str], column: str) -> str:
    try:
        return row[column]
    except KeyError:
        raise SchemaError(
            f'Cannot read value of property from CSV file. Key name: {column}'
        ) from None


def _parse_bool(text: str, column: str) -> bool:
    lowered = text.strip().lower()
    if lowered == 'true':
        return True
    if lowered == 'false':
        return False
    raise SchemaError(f"Column {column}: expected 'true' or 'false', got {text!r}")


def _parse_unsigned(text: str, column: str) -> int:
    stripped = text.strip()
    if not stripped.isdigit():
        raise SchemaError(
            f"Column {column}: expected an unsigned integer, got {text!r}"
        )
    return int(stripped)


@dataclass(frozen=True)
class TagRecord:
    """One device tag, flattened to a single CSV row.

    ``path`` is the slash-separated chain from the project root to the
    tag's direct parent.  For structure members the last segment of
    ``path`` is the structure group's name.
    """
    name: str
    path: str
    is_structure: bool = False
    data_type: str = DataType.INT32.value
    array_elements: int = 0
    array_update_mode: str = ArrayUpdateMode.ELEMENT.value
    symbol_name: str = ""

    @property
    def full_path(self) -> str:
        """Path of the tag node itself (``path/name``)."""
        return join_path(self.path, self.name)

    @property
    def structure_name(self) -> Optional[str]:
        """Name of the owning structure group, or None for plain tags."""
        if not self.is_structure:
            return None
        segments = split_path(self.path)
        return segments[-1] if segments else None

    @property
    def container_path(self) -> str:
        """Path of the folder the tag (or its structure group) lives in."""
        if not self.is_structure:
            return self.path
        return join_path(*split_path(self.path)[:-1])

    @property
    def is_array(self) -> bool:
        return self.array_elements > 0

    def to_row(self) -> list[str]:
        """Return the field values in CSV column order."""
        return [
            self.name,
            self.path,
            'true' if self.is_structure else 'false',
            plain_text(self.data_type),
            str(self.array_elements),
            plain_text(self.array_update_mode),
            self.symbol_name,
        ]

    @classmethod
    def from_row(cls, row: Mapping[str, str]) -> 'TagRecord':
        """Build a record from a ``{column: raw value}`` mapping.

        Raises:
            SchemaError: If a required column is missing or a value cannot
                be parsed.
        """
        return cls(
            name=_row_value(row, COLUMN_NAME),
            path=_row_value(row, COLUMN_PATH),
            is_structure=_parse_bool(
                _row_value(row, COLUMN_IS_STRUCTURE), COLUMN_IS_STRUCTURE,
            ),
            data_type=_row_value(row, COLUMN_TYPE),
            array_elements=_parse_unsigned(
                _row_value(row, COLUMN_ARRAY_ELEMENTS), COLUMN_ARRAY_ELEMENTS,
            ),
            array_update_mode=_row_value(row, COLUMN_ARRAY_UPDATE_MODE),
            symbol_name=_row_value(row, COLUMN_SYMBOL_NAME),
        )

    def to_dict(self) -> dict:
        """Serialize to a plain dict (for JSON compatibility)."""
        return {
            "name": self.name,
            "path": self.path,
            "is_structure": self.is_structure,
            "data_type": plain_text(self.data_type),
            "array_elements": self.array_elements,
            "array_update_mode": plain_text(self.array_update_mode),
            "symbol_name": self.symbol_name,
        }


# ===================================================================
# Dataclasses -- pass results
# ===================================================================

@dataclass
class ExportResult:
    """Outcome of an export pass."""
    csv_path: str
    exported: int = 0
    skipped: list[str] = field(default_factory=list)
    error: Optional[str] = None
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and not self.cancelled

    def to_dict(self) -> dict:
        d: dict[str, Any] = {
            "csv_path": self.csv_path,
            "exported": self.exported,
            "skipped": self.skipped,
            "cancelled": self.cancelled,
        }
        if self.error is not None:
            d["error"] = self.error
        return d


@dataclass
class ImportResult:
    """Outcome of an import pass.

    ``imported`` counts rows applied to the tree.  When the pass aborted,
    ``error`` holds the message and ``rolled_back`` tells whether the tree
    was restored to its state before the pass.
    """
    csv_path: str
    imported: int = 0
    structures_created: int = 0
    folders_created: int = 0
    skipped_rows: list[str] = field(default_factory=list)
    error: Optional[str] = None
    cancelled: bool = False
    rolled_back: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and not self.cancelled

    def to_dict(self) -> dict:
        d: dict[str, Any] = {
            "csv_path": self.csv_path,
            "imported": self.imported,
            "structures_created": self.structures_created,
            "folders_created": self.folders_created,
            "cancelled": self.cancelled,
        }
        if self.skipped_rows:
            d["skipped_rows"] = self.skipped_rows
        if self.error is not None:
            d["error"] = self.error
            d["rolled_back"] = self.rolled_back
        return d
