"""
Transfer configuration.

A :class:`TransferConfig` carries the four settings every export or import
pass needs (driver reference, CSV location, field separator, wrap mode)
plus two import policies.  :meth:`TransferConfig.validate` checks the
settings against a store before any file is opened.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional, TYPE_CHECKING

from .errors import ConfigurationError
from .schema import DEFAULT_FIELD_SEPARATOR
from .utils import normalize_path

if TYPE_CHECKING:
    from .store import TagStore, TreeNode

logger = logging.getLogger(__name__)

# Host variable names accepted by from_mapping(), alongside field names.
_MAPPING_ALIASES = {
    'MicroControllerDriver': 'driver_reference',
    'CsvPath': 'csv_path',
    'FieldSeparator': 'field_separator',
    'WrapFields': 'wrap_fields',
    'StopOnError': 'stop_on_error',
    'Atomic': 'atomic',
}

_TRUE_STRINGS = frozenset({'1', 'true', 'yes', 'on'})


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return bool(value)


@dataclass
class TransferConfig:
    """Settings for one export or import pass.

    Attributes:
        driver_reference: Path of the driver node whose tags are exported.
            May include the project name as first segment.
        csv_path: Filesystem path or ``file://`` URI of the CSV file.
        field_separator: Exactly one character.
        wrap_fields: Quote every field on export.
        stop_on_error: Abort an import at the first row that fails with a
            schema error.  When False such rows are logged and skipped.
        atomic: Restore the tree to its pre-import state if the import
            aborts.
    """
    driver_reference: str = ''
    csv_path: str = ''
    field_separator: str = DEFAULT_FIELD_SEPARATOR
    wrap_fields: bool = False
    stop_on_error: bool = True
    atomic: bool = False

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> 'TransferConfig':
        """Build a config from a mapping of host variables or field names.

        Unknown keys are ignored with a debug log entry.
        """
        kwargs: dict[str, Any] = {}
        for key, value in values.items():
            name = _MAPPING_ALIASES.get(key, key)
            if name not in cls.__dataclass_fields__:
                logger.debug("Ignoring unknown configuration key %r", key)
                continue
            kwargs[name] = value
        for flag in ('wrap_fields', 'stop_on_error', 'atomic'):
            if flag in kwargs:
                kwargs[flag] = _as_bool(kwargs[flag])
        for text in ('driver_reference', 'csv_path', 'field_separator'):
            if text in kwargs and kwargs[text] is None:
                kwargs[text] = ''
        return cls(**kwargs)

    @property
    def resolved_csv_path(self) -> str:
        """The CSV location as an absolute filesystem path ('' if unset)."""
        return normalize_path(self.csv_path or '')

    def validate(self, store: Optional['TagStore'] = None) -> Optional['TreeNode']:
        """Check the settings and resolve the driver node.

        Args:
            store: When given, the driver reference must resolve to a
                container node in this store.

        Returns:
            The resolved driver node, or None when no store was given.

        Raises:
            ConfigurationError: On the first invalid setting.
        """
        if not self.driver_reference:
            raise ConfigurationError(
                "Driver reference is empty or invalid, please check settings"
            )
        if not self.resolved_csv_path:
            raise ConfigurationError("Invalid CSV file path, please check settings")
        if not isinstance(self.field_separator, str) or len(self.field_separator) != 1:
            raise ConfigurationError(
                "Wrong Field Separator configuration. "
                "Please insert a single valid character"
            )
        if self.field_separator in ('"', '\r', '\n'):
            raise ConfigurationError(
                f"Field separator {self.field_separator!r} cannot be used"
            )

        if store is None:
            return None
        driver = store.get(store.relative_path(self.driver_reference))
        if driver is None or not (driver.is_container or driver.is_root):
            raise ConfigurationError(
                f"Driver '{self.driver_reference}' not found in project, "
                f"please check settings"
            )
        return driver
