"""
Tag CSV Schema Constants.

Defines the CSV column layout, the supported primitive data types, and the
XML element names used by the project tree store.
"""

# CSV header columns, in export order.
# Import looks columns up by name, so readers tolerate any order.
COLUMN_NAME = 'VariableName'
COLUMN_PATH = 'Path'
COLUMN_IS_STRUCTURE = 'IsStructure'
COLUMN_TYPE = 'Type'
COLUMN_ARRAY_ELEMENTS = 'ArrayElements'
COLUMN_ARRAY_UPDATE_MODE = 'ArrayUpdateMode'
COLUMN_SYMBOL_NAME = 'SymbolName'

CSV_COLUMNS = [
    COLUMN_NAME,
    COLUMN_PATH,
    COLUMN_IS_STRUCTURE,
    COLUMN_TYPE,
    COLUMN_ARRAY_ELEMENTS,
    COLUMN_ARRAY_UPDATE_MODE,
    COLUMN_SYMBOL_NAME,
]

# Quote character used by the wrapped dialect.
QUOTE_CHAR = '"'

DEFAULT_FIELD_SEPARATOR = ';'

# Separator between path segments in the tree store.
PATH_SEPARATOR = '/'

# Primitive data types a device tag can carry, as written to the Type column.
SUPPORTED_DATA_TYPES = frozenset({
    'Boolean',
    'SByte',
    'Byte',
    'Int16',
    'UInt16',
    'Int32',
    'UInt32',
    'Int64',
    'UInt64',
    'Float',
    'Double',
    'String',
})

# Array update modes.  Anything other than 'Element' maps to 'Array' on
# import.
ARRAY_UPDATE_ELEMENT = 'Element'
ARRAY_UPDATE_ARRAY = 'Array'
VALID_ARRAY_UPDATE_MODES = frozenset({ARRAY_UPDATE_ELEMENT, ARRAY_UPDATE_ARRAY})

# ---------------------------------------------------------------------------
# Project tree XML vocabulary
# ---------------------------------------------------------------------------

PROJECT_ELEMENT = 'Project'
FOLDER_ELEMENT = 'Folder'
STRUCTURE_ELEMENT = 'TagStructure'
TAG_ELEMENT = 'Tag'

# Generic objects (drivers, stations, plain objects) that may hold tags.
OBJECT_ELEMENTS = frozenset({
    'Object',
    'Driver',
    'Station',
})

# Tag element attributes.
ATTR_NAME = 'Name'
ATTR_DATA_TYPE = 'DataType'
ATTR_ARRAY_DIMENSIONS = 'ArrayDimensions'
ATTR_ARRAY_UPDATE_MODE = 'ArrayUpdateMode'
ATTR_SYMBOL_NAME = 'SymbolName'
