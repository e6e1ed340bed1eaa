"""
MCP Server for the Tag CSV Toolkit.

Exposes tag import/export over the Model Context Protocol so that any
MCP-compatible client can load a project tree, export a driver's tags to
CSV, import a CSV back, and follow or cancel long-running transfers.

Usage:
    python -m tag_csv_toolkit.mcp_server
    # or, once installed
    tag-csv-mcp-server
"""

from __future__ import annotations

import fnmatch
import json
import logging
import sys
from typing import Optional

from mcp.server.fastmcp import FastMCP

# ---------------------------------------------------------------------------
# Toolkit imports
# ---------------------------------------------------------------------------
from .config import TransferConfig
from .exporter import export_tags
from .importer import import_tags
from .models import Direction
from .store import TagStore
from .tasks import TransferManager
from .utils import normalize_path
from . import validator as _validator

# ---------------------------------------------------------------------------
# Logging (stderr only -- stdout is reserved for MCP protocol)
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    stream=sys.stderr,
)
log = logging.getLogger("tag-csv-mcp")

# ---------------------------------------------------------------------------
# MCP Server
# ---------------------------------------------------------------------------
mcp = FastMCP(
    "Tag CSV Toolkit",
    instructions=(
        "Tools for exporting device tags from a project tree to CSV files "
        "and importing them back.\n\n"
        "Call load_project (or new_project) first.  Imports and exports "
        "accept background=true to run as a cancellable task; poll it with "
        "get_transfer_status and stop it with cancel_transfer.  Changes "
        "stay in memory until save_project is called."
    ),
)

# ---------------------------------------------------------------------------
# Server state
# ---------------------------------------------------------------------------
_store: Optional[TagStore] = None
_store_path: Optional[str] = None
_transfers = TransferManager()


def _require_store() -> TagStore:
    """Return the loaded project or raise an error."""
    if _store is None:
        raise RuntimeError(
            "No project loaded. Call load_project first."
        )
    return _store


def _parse_direction(direction: str) -> Direction:
    try:
        return Direction(direction.strip().lower())
    except ValueError:
        raise ValueError(
            f"Unknown direction '{direction}'. Use 'export' or 'import'."
        ) from None


def _make_config(
    driver_reference: str,
    csv_path: str,
    field_separator: str,
    wrap_fields: bool,
    stop_on_error: bool = True,
    atomic: bool = False,
) -> TransferConfig:
    return TransferConfig(
        driver_reference=driver_reference,
        csv_path=csv_path,
        field_separator=field_separator,
        wrap_fields=wrap_fields,
        stop_on_error=stop_on_error,
        atomic=atomic,
    )


# ===================================================================
# 1. Project file operations
# ===================================================================

@mcp.tool()
def new_project(name: str = "Project") -> str:
    """Create an empty project tree in memory.

    Args:
        name: Project name (the root node's name).
    """
    global _store, _store_path
    try:
        _store = TagStore.new(name)
        _store_path = None
        return f"Created empty project: {name}"
    except Exception as e:
        return f"Error creating project: {e}"


@mcp.tool()
def load_project(file_path: str) -> str:
    """Load a project XML file into memory.

    Args:
        file_path: Path or file:// URI of the project file.
    """
    global _store, _store_path
    try:
        resolved = normalize_path(file_path)
        log.info("Resolved path: %s -> %s", file_path, resolved)
        _store = TagStore(resolved)
        _store_path = resolved
        summary = _store.summary()
        return (
            f"Loaded: {summary['project_name']}\n"
            f"Folders: {summary['folder_count']}, "
            f"Structures: {summary['structure_count']}, "
            f"Tags: {summary['tag_count']}"
        )
    except Exception as e:
        _store = None
        _store_path = None
        return f"Error loading project: {e}"


@mcp.tool()
def save_project(file_path: str = "") -> str:
    """Save the current project to an XML file.

    Args:
        file_path: Destination path. If empty, overwrites the loaded file.
    """
    global _store_path
    try:
        store = _require_store()
        dest = normalize_path(file_path) if file_path else _store_path
        if not dest:
            return "Error: No file path specified and no original path available."
        with store.lock:
            store.write(dest)
        _store_path = dest
        return f"Project saved to: {dest}"
    except Exception as e:
        return f"Error saving project: {e}"


@mcp.tool()
def get_project_summary() -> str:
    """Return node counts for the loaded project."""
    try:
        store = _require_store()
        with store.lock:
            return json.dumps(store.summary(), indent=2)
    except Exception as e:
        return f"Error: {e}"


@mcp.tool()
def list_nodes(path: str = "", name_filter: str = "") -> str:
    """List the children of a node.

    Args:
        path: Project-relative path of the node ('' for the project root).
        name_filter: Optional glob pattern applied to child names.
    """
    try:
        store = _require_store()
        with store.lock:
            node = store.get(store.relative_path(path))
            if node is None:
                return f"Error: Node '{path}' not found."
            children = []
            for child in store.children(node):
                if name_filter and not fnmatch.fnmatch(child.name, name_filter):
                    continue
                entry = {"name": child.name, "kind": child.kind.value}
                if child.is_leaf:
                    entry["data_type"] = child.data_type
                    entry["array_dimensions"] = child.array_dimensions
                    entry["symbol_name"] = child.symbol_name
                children.append(entry)
        return json.dumps({"path": path, "children": children}, indent=2)
    except Exception as e:
        return f"Error listing nodes: {e}"


# ===================================================================
# 2. Import / export
# ===================================================================

@mcp.tool()
def export_tags_csv(
    driver_reference: str,
    csv_path: str,
    field_separator: str = ";",
    wrap_fields: bool = False,
    background: bool = False,
) -> str:
    """Export every tag below a driver node to a CSV file.

    Args:
        driver_reference: Path of the driver node.
        csv_path: Destination CSV path or file:// URI.
        field_separator: Single-character field separator.
        wrap_fields: Quote every field (needed when names contain the
            separator).
        background: Run as a cancellable background task and return
            immediately.
    """
    try:
        store = _require_store()
        config = _make_config(driver_reference, csv_path, field_separator, wrap_fields)
        if background:
            _transfers.start_export(store, config)
            return "Export started. Use get_transfer_status('export') to follow it."
        result = export_tags(store, config)
        return json.dumps(result.to_dict(), indent=2)
    except Exception as e:
        return f"Error exporting tags: {e}"


@mcp.tool()
def import_tags_csv(
    driver_reference: str,
    csv_path: str,
    field_separator: str = ";",
    stop_on_error: bool = True,
    atomic: bool = False,
    background: bool = False,
) -> str:
    """Import tags from a CSV file into the loaded project.

    Existing tags with the same path and name are replaced.  Quoted
    (wrapped) files are detected from the header automatically.

    Args:
        driver_reference: Path of the driver node.
        csv_path: Source CSV path or file:// URI.
        field_separator: Single-character field separator.
        stop_on_error: Abort at the first bad row instead of skipping it.
        atomic: Undo all changes if the import aborts.
        background: Run as a cancellable background task and return
            immediately.
    """
    try:
        store = _require_store()
        config = _make_config(
            driver_reference, csv_path, field_separator, False,
            stop_on_error=stop_on_error, atomic=atomic,
        )
        if background:
            _transfers.start_import(store, config)
            return "Import started. Use get_transfer_status('import') to follow it."
        result = import_tags(store, config)
        return json.dumps(result.to_dict(), indent=2)
    except Exception as e:
        return f"Error importing tags: {e}"


@mcp.tool()
def analyze_csv(csv_path: str, field_separator: str = ";") -> str:
    """Dry-run validation of a CSV file without importing it.

    Args:
        csv_path: CSV path or file:// URI.
        field_separator: Single-character field separator.
    """
    try:
        result = _validator.analyze_csv(normalize_path(csv_path), field_separator)
        output = result.to_dict()
        output["errors"] = output["errors"][:50]
        output["warnings"] = output["warnings"][:50]
        return json.dumps(output, indent=2)
    except Exception as e:
        return f"Error analyzing CSV: {e}"


@mcp.tool()
def get_transfer_status(direction: str = "export") -> str:
    """Report the state of the latest background export or import.

    Args:
        direction: 'export' or 'import'.
    """
    try:
        task = _transfers.get(_parse_direction(direction))
        if task is None:
            return f"No {direction} task has been started."
        return json.dumps(task.status(), indent=2)
    except Exception as e:
        return f"Error: {e}"


@mcp.tool()
def cancel_transfer(direction: str = "export") -> str:
    """Cancel the running background export or import.

    Args:
        direction: 'export' or 'import'.
    """
    try:
        if _transfers.cancel(_parse_direction(direction)):
            return f"Cancellation requested for the running {direction} task."
        return f"No {direction} task is running."
    except Exception as e:
        return f"Error: {e}"


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main():
    """Run the MCP server on stdio transport."""
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
