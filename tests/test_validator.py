"""Tests for pre-flight record validation."""

from tag_csv_toolkit.models import TagRecord
from tag_csv_toolkit.validator import (
    ValidationResult,
    analyze_csv,
    validate_record,
    validate_records,
)


HEADER = "VariableName;Path;IsStructure;Type;ArrayElements;ArrayUpdateMode;SymbolName"


class TestValidateRecord:
    def test_valid(self):
        result = validate_record(TagRecord("Speed", "Tags"))
        assert result.is_valid
        assert result.warnings == []

    def test_empty_name(self):
        assert not validate_record(TagRecord("", "Tags")).is_valid

    def test_slash_in_name(self):
        result = validate_record(TagRecord("a/b", "Tags"))
        assert "contains '/'" in result.errors[0]

    def test_unsupported_type(self):
        result = validate_record(TagRecord("A", "Tags", data_type="REAL"), "line 3")
        assert result.errors == ['line 3: DataType "REAL" is not supported']

    def test_structure_without_group(self):
        result = validate_record(TagRecord("A", "", is_structure=True))
        assert "no structure name" in result.errors[0]

    def test_unknown_update_mode_warns(self):
        result = validate_record(TagRecord("A", "Tags", array_update_mode="element"))
        assert result.is_valid
        assert "whole-array" in result.warnings[0]


class TestValidateRecords:
    def test_duplicate_paths(self):
        result = validate_records([TagRecord("A", "Tags"), TagRecord("A", "Tags")])
        assert result.record_count == 2
        assert "record 1" in result.warnings[0]
        assert "later row wins" in result.warnings[0]

    def test_split_structure_run(self):
        records = [
            TagRecord("a", "p/G", is_structure=True),
            TagRecord("b", "p/H", is_structure=True),
            TagRecord("c", "p/G", is_structure=True),
        ]
        result = validate_records(records, labels=["line 2", "line 3", "line 4"])
        assert len(result.warnings) == 1
        assert result.warnings[0].startswith("line 4: structure 'p/G'")

    def test_contiguous_run_is_fine(self):
        records = [
            TagRecord("a", "p/G", is_structure=True),
            TagRecord("b", "p/G", is_structure=True),
        ]
        assert validate_records(records).warnings == []


class TestAnalyzeCsv:
    def test_bad_values(self, tmp_path):
        path = tmp_path / "tags.csv"
        path.write_text(
            HEADER + "\r\n"
            "A;Tags;maybe;Int16;0;Element;\r\n"
            "B;Tags;false;Int16;-1;Element;\r\n"
            "C;Tags;false;Int16;0;Element;\r\n",
            encoding="utf-8",
        )
        result = analyze_csv(str(path))
        assert result.record_count == 3
        assert len(result.errors) == 2
        assert result.errors[0].startswith("line 2")
        assert "ArrayElements" in result.errors[1]

    def test_unreadable_file(self, tmp_path):
        path = tmp_path / "tags.csv"
        path.write_text(HEADER + "\r\nA;Tags\r\n", encoding="utf-8")
        result = analyze_csv(str(path))
        assert not result.is_valid
        assert "Line 2" in result.errors[0]

    def test_invalid_utf8(self, tmp_path):
        path = tmp_path / "tags.csv"
        path.write_bytes(HEADER.encode() + b"\r\n\xff\xfe;Tags\r\n")
        result = analyze_csv(str(path))
        assert not result.is_valid
        assert "not valid UTF-8" in result.errors[0]


class TestValidationResult:
    def test_merge_and_str(self):
        a = ValidationResult()
        a.add_error("bad")
        b = ValidationResult()
        b.add_warning("meh")
        b.record_count = 2
        a.merge(b)
        assert a.record_count == 2
        text = str(a)
        assert "ERRORS (1)" in text
        assert "WARNINGS (1)" in text

    def test_clean_str(self):
        assert "passed" in str(ValidationResult())

