import csv
import io

import pytest

from core.errors import Conflict, InvalidWorkbook, NotFound, ValidationFailed
from services import workbook_service as wb


def test_new_workbook_has_default_sheet():
    assert wb.sheet_names(wb.new_workbook()) == ["Sheet1"]


def test_add_sheet_appends_with_marker():
    workbook = wb.new_workbook()
    assert wb.add_sheet(workbook, "Budget") == ["Sheet1", "Budget"]
    assert workbook["Budget"]["A1"].value == wb.NEW_SHEET_MARKER


def test_add_existing_sheet_conflicts_unless_overwrite():
    workbook = wb.new_workbook()
    wb.add_sheet(workbook, "Budget")
    workbook["Budget"]["B2"] = "keep?"
    with pytest.raises(Conflict) as exc:
        wb.add_sheet(workbook, "Budget")
    assert exc.value.detail == "Sheet already exists"

    wb.add_sheet(workbook, "Budget", overwrite=True)
    assert workbook["Budget"]["B2"].value is None
    assert workbook["Budget"]["A1"].value == wb.NEW_SHEET_MARKER


@pytest.mark.parametrize("name", ["", "   ", "a" * 32, "bad/name", "what?"])
def test_invalid_sheet_names(name):
    with pytest.raises(ValidationFailed):
        wb.add_sheet(wb.new_workbook(), name)


def test_delete_last_sheet_recreates_default():
    workbook = wb.new_workbook()
    assert wb.delete_sheet(workbook, "Sheet1") == ["Sheet1"]


def test_delete_missing_sheet():
    with pytest.raises(NotFound):
        wb.delete_sheet(wb.new_workbook(), "Nope")


def test_overwrite_sheet_replaces_content():
    workbook = wb.new_workbook()
    workbook["Sheet1"]["C3"] = 42
    wb.overwrite_sheet(workbook, "Sheet1")
    assert workbook["Sheet1"]["A1"].value == wb.OVERWRITE_MARKER
    assert wb.used_extent(workbook["Sheet1"]) == (1, 1)


def test_save_all_pads_ragged_rows():
    workbook = wb.new_workbook()
    rows, cols = wb.save_all(workbook, "Sheet1", [[1, 2, 3], [4], "solo"])
    assert (rows, cols) == (3, 3)
    ws = workbook["Sheet1"]
    assert ws["A3"].value == "solo"
    assert ws["B2"].value is None


def test_save_all_shrink_clears_old_area():
    workbook = wb.new_workbook()
    wb.save_all(workbook, "Sheet1", [[1, 2, 3], [4, 5, 6], [7, 8, 9]])
    wb.save_all(workbook, "Sheet1", [["a"]])
    assert wb.used_extent(workbook["Sheet1"]) == (1, 1)
    assert wb.grid_values(workbook["Sheet1"]) == [["a"]]


def test_save_all_empty_grid_clears_sheet():
    workbook = wb.new_workbook()
    wb.save_all(workbook, "Sheet1", [[1, 2], [3, 4]])
    assert wb.save_all(workbook, "Sheet1", []) == (0, 0)
    assert wb.used_extent(workbook["Sheet1"]) == (0, 0)


def test_save_all_creates_missing_sheet():
    workbook = wb.new_workbook()
    wb.save_all(workbook, "Report", [["x"]])
    assert "Report" in workbook.sheetnames


def test_save_all_formula_cells():
    workbook = wb.new_workbook()
    wb.save_all(workbook, "Sheet1", [[1, 2, {"formula": "SUM(A1:B1)"}]])
    assert workbook["Sheet1"]["C1"].value == "=SUM(A1:B1)"


def test_save_all_rejects_non_list():
    with pytest.raises(ValidationFailed):
        wb.save_all(wb.new_workbook(), "Sheet1", {"a": 1})


def test_to_cell_value_stringifies_nested_values():
    assert wb.to_cell_value([1, 2]) == "[1, 2]"
    assert wb.to_cell_value(None) is None
    assert wb.to_cell_value({"value": 5}) == 5


def test_get_cell_and_address_validation():
    workbook = wb.new_workbook()
    workbook["Sheet1"]["B2"] = "hello"
    assert wb.get_cell(workbook, "Sheet1", "b2") == "hello"
    for bad in ("", "2B", "A0", "ZZZZ1"):
        with pytest.raises(ValidationFailed):
            wb.parse_address(bad)


def test_preview_of_empty_sheet():
    result = wb.preview(wb.new_workbook(), "Sheet1")
    assert result == {"sheet": "Sheet1", "preview": [[None]], "rows": 0, "cols": 0}


def test_merged_sheet_names_preserve_order():
    assert wb.merged_sheet_names(["A", "B"], ["B", "C", "A"]) == ["A", "B", "C"]


def test_parse_xlsx_rejects_garbage():
    with pytest.raises(InvalidWorkbook):
        wb.parse_xlsx(b"definitely not a zip")


def test_convert_csv_upload():
    data = "name,qty\nPens,10\n".encode("utf-8")
    workbook, xlsx_bytes, preview_rows = wb.convert_upload("stock.csv", data)
    assert preview_rows == [["name", "qty"], ["Pens", "10"]]
    reloaded = wb.parse_xlsx(xlsx_bytes)
    assert reloaded.active["A2"].value == "Pens"


def test_convert_non_utf8_csv_fails():
    with pytest.raises(ValidationFailed):
        wb.convert_upload("latin.csv", "caf\xe9".encode("latin-1"))


def test_convert_rejects_pdf_and_unknown_types():
    with pytest.raises(ValidationFailed):
        wb.convert_upload("scan.pdf", b"%PDF-1.4")
    with pytest.raises(ValidationFailed) as exc:
        wb.convert_upload("notes.txt", b"hi")
    assert exc.value.detail == "Unsupported file type"


def test_stored_filename_and_unique_key():
    assert wb.stored_filename("C:\\tmp\\stock.csv") == "stock.xlsx"
    existing = ["users/u1/report.xlsx", "users/u1/report 1.xlsx"]
    assert wb.unique_key(existing, "users/u1", "report.xlsx") == "users/u1/report 2.xlsx"
    assert wb.unique_key(existing, "users/u1", "other.xlsx") == "users/u1/other.xlsx"


def test_store_roundtrip_and_version_conflict(storage):
    store = wb.WorkbookStore(storage, "excel")
    workbook, version = store.load_or_create("users/u1/book.xlsx")
    assert version is None
    first = store.save("users/u1/book.xlsx", workbook)

    loaded, loaded_version = store.load("users/u1/book.xlsx")
    assert loaded_version == first
    loaded["Sheet1"]["A1"] = "changed"
    store.save("users/u1/book.xlsx", loaded, expected_version=first)

    with pytest.raises(Conflict) as exc:
        store.save("users/u1/book.xlsx", workbook, expected_version=first)
    assert exc.value.status_code == 409


def test_store_load_missing(storage):
    with pytest.raises(NotFound):
        wb.WorkbookStore(storage, "excel").load("users/nobody/book.xlsx")
