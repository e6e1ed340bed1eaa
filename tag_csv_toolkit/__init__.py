"""
Tag CSV Toolkit - import and export of device tag trees as CSV files.

A project tree holds folders, generic objects (drivers, stations),
structure groups and typed leaf tags.  The toolkit flattens the tags below
a driver node into one CSV row each, and rebuilds the tree from such a file,
creating folders and structure groups as needed.

Usage:
    from tag_csv_toolkit import TagStore, TransferConfig
    from tag_csv_toolkit.exporter import export_tags
    from tag_csv_toolkit.importer import import_tags

    store = TagStore('path/to/project.xml')
    config = TransferConfig(
        driver_reference='CommDrivers/MicroController1',
        csv_path='tags.csv',
        field_separator=';',
        wrap_fields=True,
    )

    # Export every tag below the driver
    result = export_tags(store, config)
    print(result.exported, result.skipped)

    # Import the file back (existing tags are replaced)
    result = import_tags(store, config)
    store.write('path/to/project.xml')

    # Long-running passes can run in the background
    from tag_csv_toolkit.tasks import TransferManager
    manager = TransferManager()
    task = manager.start_import(store, config)
    task.join()

    # Dry-run validation of a CSV file
    from tag_csv_toolkit import validator
    print(validator.analyze_csv('tags.csv', ';'))
"""

__version__ = '0.1.0'


def __getattr__(name):
    """Lazy import so that ``import tag_csv_toolkit`` stays cheap."""
    if name == 'TagStore':
        from .store import TagStore
        return TagStore
    if name == 'TransferConfig':
        from .config import TransferConfig
        return TransferConfig
    if name == 'TagRecord':
        from .models import TagRecord
        return TagRecord
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    'TagStore',
    'TransferConfig',
    'TagRecord',
]
