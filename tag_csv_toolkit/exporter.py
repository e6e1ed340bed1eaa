"""
Tag export: flatten a project subtree into CSV rows.

The exporter walks the children of the configured driver node depth first.
Leaf tags become one :class:`~tag_csv_toolkit.models.TagRecord` each;
folders, structure groups and generic objects are descended into; every
other node kind is skipped.  Rows are written in traversal order.

With the plain (unwrapped) dialect a name or path containing the field
separator would corrupt its row, so such nodes, and everything below them,
are left out of the export with a warning.
"""

from __future__ import annotations

import logging
import threading
from typing import List, Optional

from .config import TransferConfig
from .csv_codec import CsvTagWriter
from .errors import SchemaError, TagCsvError, TransferCancelled
from .models import ExportResult, NodeKind, TagRecord, join_path, resolve_data_type
from .store import TagStore, TreeNode

logger = logging.getLogger(__name__)


def collect_tags(
    store: TagStore,
    root_path: str,
    field_separator: str,
    wrap_fields: bool,
    skipped: Optional[List[str]] = None,
) -> List[TreeNode]:
    """Return every exportable leaf tag below *root_path*, depth first.

    Args:
        store: The project tree.
        root_path: Project-relative path of the node to start from.
        field_separator: Separator of the target dialect.
        wrap_fields: Whether the target dialect quotes fields.  When False,
            nodes whose name or path contains *field_separator* are
            excluded.
        skipped: Optional list that receives the paths of excluded nodes.

    Returns:
        The leaf tag nodes, in traversal order.
    """
    root = store.get(root_path)
    if root is None:
        return []

    tags: List[TreeNode] = []
    for child in store.children(root):
        child_path = join_path(root_path, child.name)
        if not wrap_fields:
            if field_separator in child.name:
                logger.warning(
                    'Tag name "%s" cannot contain the separator character, '
                    'please enable the WrapFields option. '
                    'This tag will not be exported.',
                    child.name,
                )
                if skipped is not None:
                    skipped.append(child_path)
                continue
            if field_separator in child_path:
                logger.warning(
                    'Tag path "%s" cannot contain the separator character, '
                    'please enable the WrapFields option. '
                    'This tag will not be exported.',
                    child_path,
                )
                if skipped is not None:
                    skipped.append(child_path)
                continue

        if child.is_leaf:
            tags.append(child)
        elif child.is_container:
            tags.extend(
                collect_tags(store, child_path, field_separator, wrap_fields, skipped)
            )
        else:
            logger.debug("Skipping object %s", child_path)
    return tags


def flatten_tag(store: TagStore, node: TreeNode) -> TagRecord:
    """Convert a leaf tag node into a :class:`TagRecord`.

    A row can only name the structure group its tag sits in directly, so
    tags with a structure group further up their ancestry (nested groups,
    folders inside a group) have no CSV form.

    Raises:
        SchemaError: If the tag's data type is not supported, its array
            dimensions are malformed, or it lies below a nested group.
    """
    parent = node.parent
    path = store.path_of(parent) if parent is not None else ''
    ancestor = parent.parent if parent is not None else None
    while ancestor is not None:
        if ancestor.kind is NodeKind.STRUCTURE:
            raise SchemaError(
                f"Tag '{join_path(path, node.name)}' lies inside nested "
                f"structure '{store.path_of(ancestor)}'"
            )
        ancestor = ancestor.parent
    data_type = resolve_data_type(node.data_type)
    dimensions = node.array_dimensions
    return TagRecord(
        name=node.name,
        path=path,
        is_structure=parent is not None and parent.kind is NodeKind.STRUCTURE,
        data_type=data_type.value,
        array_elements=dimensions[0] if dimensions else 0,
        array_update_mode=node.array_update_mode,
        symbol_name=node.symbol_name,
    )


def flatten_tags(
    store: TagStore,
    nodes: List[TreeNode],
    skipped: Optional[List[str]] = None,
) -> List[TagRecord]:
    """Flatten *nodes*, leaving out (and logging) tags with no CSV form."""
    records = []
    for node in nodes:
        try:
            records.append(flatten_tag(store, node))
        except SchemaError as e:
            logger.warning("%s. This tag will not be exported.", e)
            if skipped is not None:
                skipped.append(store.path_of(node))
    return records


def export_records(
    store: TagStore,
    root_path: str,
    field_separator: str = ';',
    wrap_fields: bool = False,
) -> List[TagRecord]:
    """Return the records an export of *root_path* would write."""
    nodes = collect_tags(store, root_path, field_separator, wrap_fields)
    return flatten_tags(store, nodes)


def export_tags(
    store: TagStore,
    config: TransferConfig,
    cancel_event: Optional[threading.Event] = None,
) -> ExportResult:
    """Export the driver's tags to the configured CSV file.

    Errors are logged and reported in the result, never raised.  A set
    *cancel_event* stops the pass between two rows; rows already written
    stay in the file.

    Returns:
        An :class:`ExportResult` with the number of rows written.
    """
    result = ExportResult(csv_path=config.resolved_csv_path)
    try:
        driver = config.validate(store)
        with store.lock:
            root_path = store.path_of(driver)
            nodes = collect_tags(
                store, root_path, config.field_separator, config.wrap_fields,
                skipped=result.skipped,
            )
            records = flatten_tags(store, nodes, result.skipped)

        logger.info("Writing %d variable(s) to CSV file %s", len(records), result.csv_path)
        with CsvTagWriter(
            result.csv_path, config.field_separator, config.wrap_fields,
        ) as writer:
            writer.write_header()
            for record in records:
                if cancel_event is not None and cancel_event.is_set():
                    raise TransferCancelled("Export cancelled")
                writer.write_record(record)
                result.exported += 1
    except TransferCancelled:
        result.cancelled = True
        logger.warning(
            "Export cancelled after %d tag(s) written to %s",
            result.exported, result.csv_path,
        )
    except (TagCsvError, OSError) as e:
        result.error = str(e)
        logger.error("Unable to export tags: %s", e)
    else:
        logger.info("Finished exporting %d tag(s) to CSV file", result.exported)
    return result
