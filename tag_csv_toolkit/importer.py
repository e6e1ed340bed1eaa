"""
Tag import: replay CSV rows against a project tree.

Each row becomes a :class:`~tag_csv_toolkit.models.TagRecord` that is
applied by :func:`apply_record`:

1. A new typed tag node is built (an unsupported data type fails the row
   before the tree is touched).
2. Missing folders along the record's container path are created.
3. Any node already at ``path/name`` is removed and the new tag takes its
   place, keeping its position among its siblings.

Structure members (``IsStructure=true``) are grouped by file order.  The
last segment of ``path`` names the structure group.  The first row of a
contiguous run of rows with the same structure path replaces any existing
group of that name with a fresh one; the following rows of the run are
added to that fresh group.  A structure path that shows up again after a
different row starts a new group, which replaces the earlier one.

The "current group" is carried from row to row in an immutable
:class:`GroupState` accumulator, so a whole import is a fold::

    state = GroupState()
    for record in records:
        state = apply_record(store, record, state)
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from typing import Iterable, Optional

from .config import TransferConfig
from .csv_codec import CsvRow, read_table
from .errors import SchemaError, StoreError, TagCsvError, TransferCancelled
from .models import ImportResult, NodeKind, TagRecord
from .store import TagStore, TreeNode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GroupState:
    """Cross-row state of an import pass.

    Attributes:
        group_path: Structure path of the run the previous row belonged
            to, or None when the previous row was not a structure member.
        group: The structure group node created for that run.
        folders_created: Folders created so far in this pass.
        structures_created: Structure groups created so far in this pass.
    """
    group_path: Optional[str] = None
    group: Optional[TreeNode] = None
    folders_created: int = 0
    structures_created: int = 0


def build_tag(record: TagRecord) -> TreeNode:
    """Build the detached tag node described by *record*.

    Raises:
        SchemaError: If the record's data type is not supported.
        StoreError: If the record's name is not a valid node name.
    """
    dimensions = [record.array_elements] if record.is_array else None
    return TagStore.make_tag(
        record.name,
        record.data_type,
        array_dimensions=dimensions,
        array_update_mode=record.array_update_mode,
        symbol_name=record.symbol_name,
    )


def _replace_child(store: TagStore, parent: TreeNode, node: TreeNode) -> None:
    existing = store.child(parent, node.name)
    index = store.delete(existing) if existing is not None else None
    store.add_child(parent, node, index)


def apply_record(
    store: TagStore,
    record: TagRecord,
    state: GroupState = GroupState(),
) -> GroupState:
    """Apply one record to *store* and return the state for the next row.

    Raises:
        SchemaError: If the record cannot become a tag (unsupported type,
            structure member without a structure name).
        StoreError: If a folder, group or tag cannot be placed in the tree.
    """
    tag = build_tag(record)

    if not record.is_structure:
        folders = store.ensure_folders(record.path)
        parent = store.get(record.path)
        _replace_child(store, parent, tag)
        return replace(
            state,
            group_path=None,
            group=None,
            folders_created=state.folders_created + folders,
        )

    group_name = record.structure_name
    if not group_name:
        raise SchemaError(
            f"Structure tag '{record.name}' has no structure name in its path"
        )

    folders = store.ensure_folders(record.container_path)
    if state.group_path == record.path and state.group is not None:
        _replace_child(store, state.group, tag)
        return replace(state, folders_created=state.folders_created + folders)

    container = store.get(record.container_path)
    existing = store.child(container, group_name)
    index = None
    if existing is not None:
        if existing.kind is not NodeKind.STRUCTURE:
            raise StoreError(
                f"Cannot create structure '{record.path}': "
                f"a {existing.kind.value} node with that name exists"
            )
        index = store.delete(existing)
    group = store.make_structure(group_name)
    store.add_child(group, tag)
    store.add_child(container, group, index)
    logger.debug("Created structure %s", record.path)
    return GroupState(
        group_path=record.path,
        group=group,
        folders_created=state.folders_created + folders,
        structures_created=state.structures_created + 1,
    )


def import_rows(
    store: TagStore,
    rows: Iterable[CsvRow],
    result: ImportResult,
    stop_on_error: bool = True,
    cancel_event: Optional[threading.Event] = None,
) -> GroupState:
    """Apply parsed CSV rows in file order, updating *result* as it goes.

    The cancellation signal is checked before each row.

    Raises:
        TransferCancelled: If *cancel_event* is set.
        SchemaError: On a bad row when *stop_on_error* is True.
        StoreError: On any tree failure.
    """
    state = GroupState()
    for row in rows:
        if cancel_event is not None and cancel_event.is_set():
            raise TransferCancelled("Import cancelled")
        try:
            record = TagRecord.from_row(row.values)
            with store.lock:
                state = apply_record(store, record, state)
        except SchemaError as e:
            if stop_on_error:
                raise SchemaError(f"Line {row.line}: {e}") from e
            logger.warning("Skipping line %d: %s", row.line, e)
            result.skipped_rows.append(f"line {row.line}: {e}")
            continue
        finally:
            result.folders_created = state.folders_created
            result.structures_created = state.structures_created
        result.imported += 1
    return state


def import_tags(
    store: TagStore,
    config: TransferConfig,
    cancel_event: Optional[threading.Event] = None,
) -> ImportResult:
    """Import tags from the configured CSV file into *store*.

    Errors are logged and reported in the result, never raised.  Rows
    applied before a failure stay in the tree unless ``config.atomic`` is
    set, in which case the tree is restored to its state before the pass.

    Returns:
        An :class:`ImportResult` with the number of rows applied.
    """
    result = ImportResult(csv_path=config.resolved_csv_path)
    snapshot = None
    try:
        config.validate(store)
        logger.info('Importing tag(s) from CSV file at: "%s"', result.csv_path)
        table = read_table(result.csv_path, config.field_separator)
        if config.atomic:
            with store.lock:
                snapshot = store.snapshot()
        import_rows(store, table.rows, result, config.stop_on_error, cancel_event)
    except TransferCancelled:
        result.cancelled = True
        logger.warning("Import cancelled after %d tag(s)", result.imported)
        _rollback(store, snapshot, result)
    except (TagCsvError, OSError) as e:
        result.error = str(e)
        logger.error("Import of %s failed: %s", result.csv_path, e)
        _rollback(store, snapshot, result)
    else:
        logger.info("Successfully imported %d tag(s) from CSV file", result.imported)
    return result


def _rollback(store: TagStore, snapshot, result: ImportResult) -> None:
    if snapshot is None:
        return
    with store.lock:
        store.restore(snapshot)
    logger.info("Rolled back %d imported tag(s)", result.imported)
    result.rolled_back = True
    result.imported = 0
    result.folders_created = 0
    result.structures_created = 0
