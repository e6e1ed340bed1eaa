"""
Pre-flight validation of tag records.

Checks a batch of records (usually a CSV file about to be imported) without
touching the project tree, so that problems are reported all at once instead
of aborting an import half way.

Error severity:
    - **errors**: Rows an import will reject (bad values, unsupported
      types, missing columns) or a file it cannot read at all.
    - **warnings**: Rows that import but probably not as intended
      (duplicates that overwrite each other, structure groups split into
      several runs, unknown update modes that fall back to whole-array).
"""

from __future__ import annotations

from typing import Iterable, Optional

from .csv_codec import read_table
from .errors import FormatError, SchemaError
from .models import TagRecord
from .schema import PATH_SEPARATOR, SUPPORTED_DATA_TYPES, VALID_ARRAY_UPDATE_MODES


# ---------------------------------------------------------------------------
# Validation result container
# ---------------------------------------------------------------------------

class ValidationResult:
    """Container for validation results.

    Collects errors (fatal) and warnings (non-fatal).  The
    :attr:`is_valid` property is True when no errors were recorded.

    Usage::

        result = validate_records(records)
        if not result.is_valid:
            for err in result.errors:
                print(f"ERROR: {err}")
    """

    def __init__(self) -> None:
        self.errors: list[str] = []
        self.warnings: list[str] = []
        self.record_count = 0

    @property
    def is_valid(self) -> bool:
        """Return True if no errors were recorded."""
        return len(self.errors) == 0

    def add_error(self, message: str) -> None:
        self.errors.append(message)

    def add_warning(self, message: str) -> None:
        self.warnings.append(message)

    def merge(self, other: "ValidationResult") -> None:
        """Append all errors and warnings from *other* to this result."""
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)
        self.record_count += other.record_count

    def to_dict(self) -> dict:
        return {
            "is_valid": self.is_valid,
            "record_count": self.record_count,
            "error_count": len(self.errors),
            "warning_count": len(self.warnings),
            "errors": self.errors,
            "warnings": self.warnings,
        }

    def __str__(self) -> str:
        lines: list[str] = []
        if self.errors:
            lines.append(f"=== ERRORS ({len(self.errors)}) ===")
            for i, err in enumerate(self.errors, 1):
                lines.append(f"  {i}. {err}")
        if self.warnings:
            lines.append(f"=== WARNINGS ({len(self.warnings)}) ===")
            for i, warn in enumerate(self.warnings, 1):
                lines.append(f"  {i}. {warn}")
        if not self.errors and not self.warnings:
            lines.append("Validation passed: no errors or warnings.")
        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"ValidationResult(errors={len(self.errors)}, "
            f"warnings={len(self.warnings)})"
        )


# ---------------------------------------------------------------------------
# Record checks
# ---------------------------------------------------------------------------

def validate_record(record: TagRecord, label: str = '') -> ValidationResult:
    """Check a single record in isolation."""
    result = ValidationResult()
    where = f"{label}: " if label else ''

    if not record.name:
        result.add_error(f"{where}tag name is empty")
    elif PATH_SEPARATOR in record.name:
        result.add_error(
            f"{where}tag name '{record.name}' contains '{PATH_SEPARATOR}'"
        )

    if record.data_type not in SUPPORTED_DATA_TYPES:
        result.add_error(
            f'{where}DataType "{record.data_type}" is not supported'
        )

    if record.is_structure and not record.structure_name:
        result.add_error(
            f"{where}structure tag '{record.name}' has no structure name in its path"
        )

    if record.array_update_mode not in VALID_ARRAY_UPDATE_MODES:
        result.add_warning(
            f"{where}unknown ArrayUpdateMode '{record.array_update_mode}', "
            f"whole-array updates will be used"
        )

    return result


def validate_records(
    records: Iterable[TagRecord],
    labels: Optional[Iterable[str]] = None,
) -> ValidationResult:
    """Check a sequence of records as an import would apply them.

    Args:
        records: Records in file order.
        labels: Optional per-record labels used in messages (e.g.
            ``'line 4'``).  Defaults to ``'record N'``.
    """
    result = ValidationResult()
    label_iter = iter(labels) if labels is not None else None

    seen_paths: dict[str, str] = {}
    closed_groups: set[str] = set()
    current_group: Optional[str] = None

    for index, record in enumerate(records, 1):
        label = next(label_iter) if label_iter is not None else f"record {index}"
        result.record_count += 1
        result.merge(validate_record(record, label))

        previous = seen_paths.get(record.full_path)
        if previous is not None:
            result.add_warning(
                f"{label}: '{record.full_path}' already defined at {previous}, "
                f"the later row wins"
            )
        seen_paths[record.full_path] = label

        group = record.path if record.is_structure else None
        if group != current_group:
            if current_group is not None:
                closed_groups.add(current_group)
            if group is not None and group in closed_groups:
                result.add_warning(
                    f"{label}: structure '{group}' appears again after other "
                    f"rows; a new group will replace the earlier one"
                )
            current_group = group

    return result


def analyze_csv(file_path: str, field_separator: str = ';') -> ValidationResult:
    """Read a CSV file and validate its rows without importing them."""
    result = ValidationResult()
    try:
        table = read_table(file_path, field_separator)
    except (FormatError, OSError) as e:
        result.add_error(str(e))
        return result

    records = []
    labels = []
    for row in table.rows:
        try:
            records.append(TagRecord.from_row(row.values))
            labels.append(f"line {row.line}")
        except SchemaError as e:
            result.add_error(f"line {row.line}: {e}")
            result.record_count += 1
    result.merge(validate_records(records, labels))
    return result
