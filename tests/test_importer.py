"""Tests for tag import (tree building, structure grouping, error policies)."""

import threading

import pytest

from tag_csv_toolkit.config import TransferConfig
from tag_csv_toolkit.csv_codec import CsvRow
from tag_csv_toolkit.errors import SchemaError, StoreError
from tag_csv_toolkit.exporter import export_records, export_tags
from tag_csv_toolkit.importer import GroupState, apply_record, build_tag, import_rows, import_tags
from tag_csv_toolkit.models import ImportResult, NodeKind, TagRecord
from tag_csv_toolkit.store import TagStore


SOURCE_XML = """\
<Project Name="Plant">
  <Folder Name="CommDrivers">
    <Driver Name="MC1">
      <Folder Name="Tags">
        <Tag Name="Speed" DataType="Int32" ArrayUpdateMode="Element" SymbolName="Main.Speed"/>
        <Tag Name="Buffer" DataType="Byte" ArrayDimensions="16" ArrayUpdateMode="Array" SymbolName="Main.Buffer"/>
        <TagStructure Name="Motor">
          <Tag Name="Run" DataType="Boolean" ArrayUpdateMode="Element" SymbolName="Motor.Run"/>
          <Tag Name="Current" DataType="Float" ArrayUpdateMode="Element" SymbolName="Motor.Current"/>
        </TagStructure>
        <Folder Name="Line2">
          <Tag Name="Count" DataType="UInt16" ArrayUpdateMode="Element" SymbolName="L2.Count"/>
        </Folder>
      </Folder>
    </Driver>
  </Folder>
</Project>
"""

EMPTY_XML = """\
<Project Name="Plant">
  <Folder Name="CommDrivers">
    <Driver Name="MC1"/>
  </Folder>
</Project>
"""

HEADER = "VariableName;Path;IsStructure;Type;ArrayElements;ArrayUpdateMode;SymbolName"
DRIVER = "CommDrivers/MC1"


@pytest.fixture
def store():
    return TagStore.from_string(EMPTY_XML)


def _config(csv_path, **kwargs):
    return TransferConfig(
        driver_reference=DRIVER, csv_path=str(csv_path), field_separator=";", **kwargs
    )


def _write_csv(path, *lines):
    path.write_text("\r\n".join((HEADER,) + lines) + "\r\n", encoding="utf-8")
    return path


def _rows(*records):
    header = ["VariableName", "Path", "IsStructure", "Type",
              "ArrayElements", "ArrayUpdateMode", "SymbolName"]
    return [
        CsvRow(line=i, values=dict(zip(header, r.to_row())))
        for i, r in enumerate(records, 2)
    ]


class TestBuildTag:
    def test_scalar(self):
        tag = build_tag(TagRecord("Speed", "Tags", data_type="Int64", symbol_name="s"))
        assert tag.data_type == "Int64"
        assert tag.array_dimensions == []
        assert tag.symbol_name == "s"

    def test_array(self):
        tag = build_tag(TagRecord("Buf", "Tags", data_type="Byte", array_elements=4,
                                  array_update_mode="Array"))
        assert tag.array_dimensions == [4]
        assert tag.array_update_mode == "Array"

    def test_unsupported_type(self):
        with pytest.raises(SchemaError, match='DataType "DINT" is not supported'):
            build_tag(TagRecord("X", "Tags", data_type="DINT"))


class TestApplyRecord:
    def test_plain_tag_creates_folders(self, store):
        state = apply_record(store, TagRecord("Speed", "CommDrivers/MC1/A/B"))
        assert state.folders_created == 2
        assert state.group is None
        assert store.get("CommDrivers/MC1/A/B/Speed").is_leaf

    def test_overwrite_keeps_position(self, store):
        apply_record(store, TagRecord("One", "CommDrivers/MC1"))
        apply_record(store, TagRecord("Two", "CommDrivers/MC1"))
        apply_record(store, TagRecord("One", "CommDrivers/MC1", data_type="Double"))
        driver = store.get(DRIVER)
        assert [c.name for c in store.children(driver)] == ["One", "Two"]
        assert store.get("CommDrivers/MC1/One").data_type == "Double"

    def test_structure_run_shares_group(self, store):
        state = GroupState()
        state = apply_record(store, TagRecord("A", "CommDrivers/MC1/G", is_structure=True), state)
        state = apply_record(store, TagRecord("B", "CommDrivers/MC1/G", is_structure=True), state)
        assert state.structures_created == 1
        group = store.get("CommDrivers/MC1/G")
        assert group.kind is NodeKind.STRUCTURE
        assert [c.name for c in store.children(group)] == ["A", "B"]

    def test_first_member_replaces_existing_group(self, store):
        state = apply_record(store, TagRecord("Old", "CommDrivers/MC1/G", is_structure=True))
        state = apply_record(store, TagRecord("X", "CommDrivers/MC1"), state)
        apply_record(store, TagRecord("New", "CommDrivers/MC1/G", is_structure=True), state)
        group = store.get("CommDrivers/MC1/G")
        assert [c.name for c in store.children(group)] == ["New"]

    def test_same_group_name_in_other_folder_starts_new_group(self, store):
        state = apply_record(store, TagRecord("x", "CommDrivers/MC1/a/S", is_structure=True))
        state = apply_record(store, TagRecord("y", "CommDrivers/MC1/b/S", is_structure=True), state)
        assert state.structures_created == 2
        assert [c.name for c in store.children(store.get("CommDrivers/MC1/a/S"))] == ["x"]
        assert [c.name for c in store.children(store.get("CommDrivers/MC1/b/S"))] == ["y"]

    def test_structure_without_name(self, store):
        with pytest.raises(SchemaError, match="no structure name"):
            apply_record(store, TagRecord("A", "", is_structure=True))

    def test_group_name_taken_by_folder(self, store):
        store.ensure_folders("CommDrivers/MC1/G")
        with pytest.raises(StoreError, match="Cannot create structure"):
            apply_record(store, TagRecord("A", "CommDrivers/MC1/G", is_structure=True))

    def test_path_through_leaf(self, store):
        apply_record(store, TagRecord("Speed", "CommDrivers/MC1"))
        with pytest.raises(StoreError):
            apply_record(store, TagRecord("X", "CommDrivers/MC1/Speed"))

    def test_unsupported_type_leaves_tree_untouched(self, store):
        before = store.to_string()
        with pytest.raises(SchemaError):
            apply_record(store, TagRecord("X", "CommDrivers/MC1/New", data_type="Real"))
        assert store.to_string() == before


class TestImportRows:
    def test_split_runs_create_separate_groups(self, store):
        result = ImportResult(csv_path="")
        rows = _rows(
            TagRecord("a", "CommDrivers/MC1/p/G", is_structure=True),
            TagRecord("b", "CommDrivers/MC1/p/G", is_structure=True),
            TagRecord("c", "CommDrivers/MC1/p/H", is_structure=True),
            TagRecord("d", "CommDrivers/MC1/p/G", is_structure=True),
        )
        import_rows(store, rows, result)
        assert result.imported == 4
        assert result.structures_created == 3
        assert result.folders_created == 1
        parent = store.get("CommDrivers/MC1/p")
        assert [c.name for c in store.children(parent)] == ["G", "H"]
        assert [c.name for c in store.children(store.get("CommDrivers/MC1/p/G"))] == ["d"]

    def test_stop_on_error(self, store):
        result = ImportResult(csv_path="")
        rows = _rows(
            TagRecord("a", "CommDrivers/MC1"),
            TagRecord("b", "CommDrivers/MC1", data_type="DINT"),
            TagRecord("c", "CommDrivers/MC1"),
        )
        with pytest.raises(SchemaError, match="Line 3"):
            import_rows(store, rows, result)
        assert result.imported == 1
        assert store.get("CommDrivers/MC1/c") is None

    def test_skip_bad_rows(self, store):
        result = ImportResult(csv_path="")
        rows = _rows(
            TagRecord("a", "CommDrivers/MC1"),
            TagRecord("b", "CommDrivers/MC1", data_type="DINT"),
            TagRecord("c", "CommDrivers/MC1"),
        )
        import_rows(store, rows, result, stop_on_error=False)
        assert result.imported == 2
        assert len(result.skipped_rows) == 1
        assert result.skipped_rows[0].startswith("line 3")

    def test_missing_column(self, store):
        rows = [CsvRow(line=2, values={"VariableName": "a", "Path": "CommDrivers/MC1"})]
        with pytest.raises(SchemaError, match="Key name: IsStructure"):
            import_rows(store, rows, ImportResult(csv_path=""))


class TestImportTags:
    def test_round_trip(self, tmp_path):
        source = TagStore.from_string(SOURCE_XML)
        csv_path = tmp_path / "tags.csv"
        assert export_tags(source, _config(csv_path)).exported == 6

        target = TagStore.from_string(EMPTY_XML)
        result = import_tags(target, _config(csv_path))
        assert result.ok
        assert result.imported == 6
        assert result.structures_created == 1
        assert export_records(target, DRIVER) == export_records(source, DRIVER)

    def test_import_is_idempotent(self, store, tmp_path):
        source = TagStore.from_string(SOURCE_XML)
        csv_path = tmp_path / "tags.csv"
        export_tags(source, _config(csv_path))

        import_tags(store, _config(csv_path))
        first = store.to_string()
        import_tags(store, _config(csv_path))
        assert store.to_string() == first

    def test_header_order_does_not_matter(self, store, tmp_path):
        path = tmp_path / "tags.csv"
        path.write_text(
            "SymbolName;Type;VariableName;Path;IsStructure;ArrayUpdateMode;ArrayElements\r\n"
            "S1;Float;Level;CommDrivers/MC1/Tanks;false;Element;0\r\n",
            encoding="utf-8",
        )
        result = import_tags(store, _config(path))
        assert result.imported == 1
        tag = store.get("CommDrivers/MC1/Tanks/Level")
        assert tag.data_type == "Float"
        assert tag.symbol_name == "S1"

    def test_wrapped_file(self, store, tmp_path):
        path = tmp_path / "tags.csv"
        path.write_text(
            '"VariableName";"Path";"IsStructure";"Type";"ArrayElements";'
            '"ArrayUpdateMode";"SymbolName"\r\n'
            '"Flow;Rate";"CommDrivers/MC1";"false";"Double";"0";"Element";"F"\r\n',
            encoding="utf-8",
        )
        result = import_tags(store, _config(path))
        assert result.imported == 1
        assert store.get("CommDrivers/MC1/Flow;Rate") is not None

    def test_empty_file(self, store, tmp_path):
        path = tmp_path / "tags.csv"
        path.write_text("", encoding="utf-8")
        result = import_tags(store, _config(path))
        assert result.imported == 0
        assert "no header" in result.error

    def test_missing_file(self, store, tmp_path):
        result = import_tags(store, _config(tmp_path / "missing.csv"))
        assert result.error is not None

    def test_unknown_driver(self, store, tmp_path):
        path = _write_csv(tmp_path / "tags.csv")
        result = import_tags(store, TransferConfig(
            driver_reference="CommDrivers/Other", csv_path=str(path),
        ))
        assert "not found" in result.error

    def test_partial_import_by_default(self, store, tmp_path):
        path = _write_csv(
            tmp_path / "tags.csv",
            "a;CommDrivers/MC1;false;Int16;0;Element;",
            "b;CommDrivers/MC1;false;LREAL;0;Element;",
        )
        result = import_tags(store, _config(path))
        assert result.imported == 1
        assert 'DataType "LREAL" is not supported' in result.error
        assert not result.rolled_back
        assert store.get("CommDrivers/MC1/a") is not None

    def test_atomic_rollback(self, store, tmp_path):
        path = _write_csv(
            tmp_path / "tags.csv",
            "a;CommDrivers/MC1/New;false;Int16;0;Element;",
            "b;CommDrivers/MC1;false;LREAL;0;Element;",
        )
        before = store.to_string()
        result = import_tags(store, _config(path, atomic=True))
        assert result.rolled_back
        assert result.imported == 0
        assert store.to_string() == before

    def test_row_length_mismatch(self, store, tmp_path):
        path = _write_csv(tmp_path / "tags.csv", "a;CommDrivers/MC1;false")
        result = import_tags(store, _config(path))
        assert "Line 2" in result.error
        assert result.imported == 0

    def test_cancelled(self, store, tmp_path):
        path = _write_csv(tmp_path / "tags.csv", "a;CommDrivers/MC1;false;Int16;0;Element;")
        cancel = threading.Event()
        cancel.set()
        result = import_tags(store, _config(path), cancel)
        assert result.cancelled
        assert result.imported == 0
        assert store.get("CommDrivers/MC1/a") is None

    def test_invalid_utf8(self, store, tmp_path):
        path = tmp_path / "tags.csv"
        path.write_bytes(HEADER.encode() + b"\r\n\xff\xfe;CommDrivers/MC1;false;Int16;0;Element;\r\n")
        result = import_tags(store, _config(path))
        assert result.imported == 0
        assert "not valid UTF-8" in result.error

    def test_nested_structure_round_trip(self, store, tmp_path):
        source = TagStore.from_string("""\
<Project Name="Plant">
  <Folder Name="CommDrivers">
    <Driver Name="MC1">
      <TagStructure Name="Outer">
        <TagStructure Name="Inner">
          <Tag Name="b" DataType="Int16" ArrayUpdateMode="Element" SymbolName="b"/>
        </TagStructure>
        <Tag Name="a" DataType="Int16" ArrayUpdateMode="Element" SymbolName="a"/>
      </TagStructure>
    </Driver>
  </Folder>
</Project>
""")
        csv_path = tmp_path / "tags.csv"
        exported = export_tags(source, _config(csv_path))
        assert exported.skipped == ["CommDrivers/MC1/Outer/Inner/b"]

        result = import_tags(store, _config(csv_path))
        assert result.ok
        assert result.imported == 1
        assert store.get("CommDrivers/MC1/Outer").kind is NodeKind.STRUCTURE
        assert export_records(store, DRIVER) == export_records(source, DRIVER)
