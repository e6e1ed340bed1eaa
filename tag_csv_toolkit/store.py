"""
Project Tree Store - path-addressable model of folders, structures and tags.

Loads a project XML file into memory, provides lookup and mutation by
slash-separated path, and writes the tree back to disk.  The document looks
like::

    <Project Name="Plant">
      <Folder Name="CommDrivers">
        <Driver Name="MicroController1">
          <Folder Name="Tags">
            <Tag Name="Speed" DataType="Int32" ArrayUpdateMode="Element"
                 SymbolName="Program:Main.Speed"/>
            <TagStructure Name="Motor">
              <Tag Name="Run" DataType="Boolean" ArrayUpdateMode="Element"
                   SymbolName="Motor.Run"/>
            </TagStructure>
          </Folder>
        </Driver>
      </Folder>
    </Project>

Paths are relative to the project root and never include the project name
(``CommDrivers/MicroController1/Tags/Speed``).  Every node is exposed as a
:class:`TreeNode`, a thin view whose :attr:`TreeNode.kind` tells the caller
whether it is a leaf tag, a structure group, a folder, a generic object, or
something else.
"""

from __future__ import annotations

import logging
import os
import threading
from typing import Iterator, List, Optional

from lxml import etree

from .errors import SchemaError, StoreError
from .models import (
    ArrayUpdateMode,
    NodeKind,
    join_path,
    plain_text,
    resolve_data_type,
    split_path,
)
from .schema import (
    ATTR_ARRAY_DIMENSIONS,
    ATTR_ARRAY_UPDATE_MODE,
    ATTR_DATA_TYPE,
    ATTR_NAME,
    ATTR_SYMBOL_NAME,
    FOLDER_ELEMENT,
    OBJECT_ELEMENTS,
    PATH_SEPARATOR,
    PROJECT_ELEMENT,
    STRUCTURE_ELEMENT,
    TAG_ELEMENT,
)
from .utils import deep_copy, strip_bom

logger = logging.getLogger(__name__)


def _kind_of(element: etree._Element) -> NodeKind:
    tag = element.tag
    if tag == TAG_ELEMENT:
        return NodeKind.LEAF
    if tag == STRUCTURE_ELEMENT:
        return NodeKind.STRUCTURE
    if tag == FOLDER_ELEMENT:
        return NodeKind.FOLDER
    if tag in OBJECT_ELEMENTS:
        return NodeKind.OBJECT
    return NodeKind.OTHER


def _element_children(element: etree._Element) -> list:
    # Skip comments and processing instructions.
    return [child for child in element if isinstance(child.tag, str)]


def _validate_node_name(name: str) -> None:
    if not name:
        raise StoreError("Node name must not be empty")
    if PATH_SEPARATOR in name:
        raise StoreError(
            f"Node name '{name}' must not contain '{PATH_SEPARATOR}'"
        )


class TreeNode:
    """View over one element of the project tree.

    Two views are equal when they wrap the same underlying element.
    """

    __slots__ = ('element',)

    def __init__(self, element: etree._Element):
        self.element = element

    @property
    def name(self) -> str:
        return self.element.get(ATTR_NAME, '')

    @property
    def kind(self) -> NodeKind:
        return _kind_of(self.element)

    @property
    def is_leaf(self) -> bool:
        return self.kind.is_leaf

    @property
    def is_container(self) -> bool:
        return self.kind.is_container

    @property
    def is_root(self) -> bool:
        return self.element.tag == PROJECT_ELEMENT

    @property
    def parent(self) -> Optional['TreeNode']:
        parent = self.element.getparent()
        return TreeNode(parent) if parent is not None else None

    # -- leaf tag attributes ------------------------------------------

    @property
    def data_type(self) -> str:
        return self.element.get(ATTR_DATA_TYPE, '')

    @property
    def array_dimensions(self) -> List[int]:
        """Array lengths, empty for a scalar.

        Raises:
            SchemaError: If the attribute is not a list of unsigned integers.
        """
        raw = self.element.get(ATTR_ARRAY_DIMENSIONS, '')
        parts = [part.strip() for part in raw.split(',') if part.strip()]
        if not all(part.isdigit() for part in parts):
            raise SchemaError(
                f"Tag '{self.name}' has invalid ArrayDimensions {raw!r}"
            )
        return [int(part) for part in parts]

    @property
    def array_update_mode(self) -> str:
        return self.element.get(ATTR_ARRAY_UPDATE_MODE, ArrayUpdateMode.ELEMENT.value)

    @property
    def symbol_name(self) -> str:
        return self.element.get(ATTR_SYMBOL_NAME, '')

    def __eq__(self, other) -> bool:
        if not isinstance(other, TreeNode):
            return NotImplemented
        return self.element is other.element

    def __hash__(self) -> int:
        return id(self.element)

    def __repr__(self) -> str:
        return f"TreeNode({self.kind.value}, name={self.name!r})"


class TagStore:
    """In-memory project tree backed by an lxml element tree.

    Operations take paths relative to the project root.  The empty path
    addresses the project root itself.  Mutations are not synchronised
    internally; background passes hold :attr:`lock` while they touch the
    tree.
    """

    def __init__(self, file_path: Optional[str] = None):
        """Load a project file or create an empty model named ``Project``.

        Args:
            file_path: Path to a project XML file.  If None, an empty
                project is created.

        Raises:
            FileNotFoundError: If *file_path* does not exist.
            ValueError: If the file is not a project document.
        """
        self._file_path: Optional[str] = None
        self._root: etree._Element = etree.Element(
            PROJECT_ELEMENT, attrib={ATTR_NAME: 'Project'},
        )
        self.lock = threading.RLock()

        if file_path is not None:
            self.load(file_path)

    @classmethod
    def new(cls, name: str) -> 'TagStore':
        """Create an empty project with the given name."""
        _validate_node_name(name)
        store = cls()
        store._root.set(ATTR_NAME, name)
        return store

    @classmethod
    def from_element(cls, root: etree._Element) -> 'TagStore':
        """Wrap a pre-built ``<Project>`` element.

        Raises:
            ValueError: If *root* is not a ``Project`` element.
        """
        if root.tag != PROJECT_ELEMENT:
            raise ValueError(
                f"Expected '{PROJECT_ELEMENT}' root, got '{root.tag}'"
            )
        store = cls()
        store._root = root
        return store

    @classmethod
    def from_string(cls, xml_text: str) -> 'TagStore':
        """Parse a project document held in a string."""
        parser = etree.XMLParser(remove_blank_text=True)
        return cls.from_element(etree.fromstring(xml_text.encode('utf-8'), parser))

    # ------------------------------------------------------------------
    # File I/O
    # ------------------------------------------------------------------

    def load(self, file_path: str) -> None:
        """Load a project file, replacing the current tree.

        Raises:
            FileNotFoundError: If the file does not exist.
            ValueError: If the root element is not ``Project``.
            etree.XMLSyntaxError: If the XML is malformed.
        """
        if not os.path.isfile(file_path):
            raise FileNotFoundError(f"Project file not found: {file_path}")

        logger.info("Loading project file: %s", file_path)
        with open(file_path, 'rb') as fh:
            raw = strip_bom(fh.read())

        parser = etree.XMLParser(remove_blank_text=True, recover=False)
        root = etree.fromstring(raw, parser=parser)
        if root.tag != PROJECT_ELEMENT:
            raise ValueError(
                f"Expected root element '{PROJECT_ELEMENT}', got '{root.tag}'"
            )
        self._root = root
        self._file_path = os.path.abspath(file_path)
        logger.info("Loaded project: %s", self.project_name)

    def write(self, file_path: str) -> None:
        """Write the project tree to *file_path* as indented UTF-8 XML."""
        etree.indent(self._root, space='  ')
        xml_bytes = etree.tostring(
            self._root,
            xml_declaration=True,
            encoding='UTF-8',
            pretty_print=True,
        )
        with open(file_path, 'wb') as fh:
            fh.write(xml_bytes)
        self._file_path = os.path.abspath(file_path)
        logger.info("Saved project to: %s", file_path)

    def to_string(self) -> str:
        """Serialize the tree to a string (no XML declaration)."""
        return etree.tostring(self._root, encoding='unicode')

    @property
    def file_path(self) -> Optional[str]:
        return self._file_path

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    @property
    def root(self) -> TreeNode:
        return TreeNode(self._root)

    @property
    def project_name(self) -> str:
        return self._root.get(ATTR_NAME, '')

    def relative_path(self, path: str) -> str:
        """Strip a leading ``<project name>/`` from *path*, if present."""
        prefix = self.project_name + PATH_SEPARATOR
        index = path.find(prefix)
        if index == -1:
            return path
        if index != 0 and path[index - 1] != PATH_SEPARATOR:
            return path
        return path[index + len(prefix):]

    def get(self, path: str) -> Optional[TreeNode]:
        """Return the node at *path*, or None if any segment is missing."""
        element = self._root
        for segment in split_path(path):
            element = self._find_child_element(element, segment)
            if element is None:
                return None
        return TreeNode(element)

    def children(self, node: TreeNode) -> List[TreeNode]:
        """Return the child nodes of *node*, in document order."""
        return [TreeNode(child) for child in _element_children(node.element)]

    def child(self, node: TreeNode, name: str) -> Optional[TreeNode]:
        element = self._find_child_element(node.element, name)
        return TreeNode(element) if element is not None else None

    def path_of(self, node: TreeNode) -> str:
        """Return the project-relative path of *node*."""
        names = []
        element = node.element
        while element is not None and element is not self._root:
            names.append(element.get(ATTR_NAME, ''))
            element = element.getparent()
        return join_path(*reversed(names))

    def iter_tags(self, path: str = '') -> Iterator[TreeNode]:
        """Yield every leaf tag below *path*, depth first."""
        start = self.get(path)
        if start is None:
            return
        for element in start.element.iter(TAG_ELEMENT):
            if element is not start.element:
                yield TreeNode(element)

    def summary(self) -> dict:
        """Return node counts for the whole project."""
        return {
            'project_name': self.project_name,
            'folder_count': len(self._root.findall(f'.//{FOLDER_ELEMENT}')),
            'structure_count': len(self._root.findall(f'.//{STRUCTURE_ELEMENT}')),
            'tag_count': len(self._root.findall(f'.//{TAG_ELEMENT}')),
        }

    @staticmethod
    def _find_child_element(
        parent: etree._Element, name: str
    ) -> Optional[etree._Element]:
        for child in _element_children(parent):
            if child.get(ATTR_NAME) == name:
                return child
        return None

    # ------------------------------------------------------------------
    # Node construction (detached nodes)
    # ------------------------------------------------------------------

    @staticmethod
    def make_folder(name: str) -> TreeNode:
        _validate_node_name(name)
        return TreeNode(etree.Element(FOLDER_ELEMENT, attrib={ATTR_NAME: name}))

    @staticmethod
    def make_structure(name: str) -> TreeNode:
        _validate_node_name(name)
        return TreeNode(etree.Element(STRUCTURE_ELEMENT, attrib={ATTR_NAME: name}))

    @staticmethod
    def make_tag(
        name: str,
        data_type: str,
        array_dimensions: Optional[List[int]] = None,
        array_update_mode: str = ArrayUpdateMode.ELEMENT.value,
        symbol_name: str = '',
    ) -> TreeNode:
        """Build a detached leaf tag node.

        Args:
            name: Tag name.
            data_type: One of the supported primitive type names.
            array_dimensions: Array lengths, or None/empty for a scalar.
            array_update_mode: Textual update mode; ``'Element'`` selects
                element-wise updates, anything else whole-array updates.
            symbol_name: Driver symbol the tag is linked to.

        Raises:
            SchemaError: If *data_type* is not supported.
            StoreError: If *name* is not a valid node name.
        """
        _validate_node_name(name)
        resolved = resolve_data_type(data_type)
        attrib = {
            ATTR_NAME: name,
            ATTR_DATA_TYPE: resolved.value,
        }
        if array_dimensions:
            attrib[ATTR_ARRAY_DIMENSIONS] = ','.join(str(d) for d in array_dimensions)
        attrib[ATTR_ARRAY_UPDATE_MODE] = ArrayUpdateMode.from_text(
            plain_text(array_update_mode)
        ).value
        attrib[ATTR_SYMBOL_NAME] = symbol_name
        return TreeNode(etree.Element(TAG_ELEMENT, attrib=attrib))

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def add(
        self, parent_path: str, node: TreeNode, index: Optional[int] = None
    ) -> TreeNode:
        """Attach *node* under the node at *parent_path*.

        Raises:
            StoreError: If the parent is missing or cannot hold children,
                or if it already has a child with the same name.
        """
        parent = self.get(parent_path)
        if parent is None:
            raise StoreError(f"Parent '{parent_path}' not found in project")
        return self.add_child(parent, node, index)

    def add_child(
        self, parent: TreeNode, node: TreeNode, index: Optional[int] = None
    ) -> TreeNode:
        """Attach *node* to *parent*, at *index* or at the end."""
        if not (parent.is_root or parent.is_container):
            raise StoreError(
                f"Cannot add '{node.name}' to '{self.path_of(parent)}': "
                f"a {parent.kind.value} node cannot hold children"
            )
        if self._find_child_element(parent.element, node.name) is not None:
            raise StoreError(
                f"'{node.name}' already exists in '{self.path_of(parent)}'"
            )
        if index is None:
            parent.element.append(node.element)
        else:
            parent.element.insert(index, node.element)
        return node

    def delete(self, node: TreeNode) -> int:
        """Detach *node* from its parent and return the index it occupied.

        Raises:
            StoreError: If *node* is the project root or is not attached.
        """
        parent = node.element.getparent()
        if parent is None:
            raise StoreError(f"Cannot delete '{node.name}': node is not attached")
        index = parent.index(node.element)
        parent.remove(node.element)
        return index

    def ensure_folders(self, path: str) -> int:
        """Create every missing folder along *path*.

        Existing container nodes along the way are reused unchanged.

        Returns:
            The number of folders created.

        Raises:
            StoreError: If a segment names an existing node that cannot
                hold children.
        """
        created = 0
        current = self.root
        for segment in split_path(path):
            existing = self.child(current, segment)
            if existing is None:
                existing = self.add_child(current, self.make_folder(segment))
                logger.debug("Created folder %s", self.path_of(existing))
                created += 1
            elif not existing.is_container:
                raise StoreError(
                    f"Cannot create folder '{self.path_of(existing)}': "
                    f"a {existing.kind.value} node with that name exists"
                )
            current = existing
        return created

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def snapshot(self) -> etree._Element:
        """Return an independent copy of the whole tree."""
        return deep_copy(self._root)

    def restore(self, snapshot: etree._Element) -> None:
        """Replace the tree with a copy previously taken by :meth:`snapshot`."""
        self._root = snapshot

    # ------------------------------------------------------------------
    # Dunder Methods
    # ------------------------------------------------------------------

    def __repr__(self) -> str:
        if self._file_path:
            return (
                f"TagStore(file='{os.path.basename(self._file_path)}', "
                f"project='{self.project_name}')"
            )
        return f"TagStore(project='{self.project_name}')"
