"""
Worksheet discovery, header extraction and row loading.
"""

import pytest
from openpyxl import Workbook
from openpyxl.utils.datetime import CALENDAR_MAC_1904

from catalog_import.errors import ConfigurationError
from catalog_import.ingestion.readers import RowLoader, SheetReader, apply_mapping, detect_encoding
from catalog_import.ingestion.worksheet_analyzer import WorksheetAnalyzer, build_preview


def test_build_preview_adds_ellipsis_past_three_headers():
    assert build_preview(["SKU", "Name"]) == "SKU, Name"
    assert build_preview(["SKU", "Name", "Colour", "Size"]) == "SKU, Name, Colour..."


def test_csv_is_one_implicit_worksheet(settings, write_csv):
    path = write_csv(["SKU", "Name", "Price"], [["A-1", "Blind", "10"], ["A-2", "Blind", "12"]])

    analysis = WorksheetAnalyzer(settings).analyze(path)

    assert len(analysis.worksheets) == 1
    sheet = analysis.worksheets[0]
    assert sheet.name == "Sheet1"
    assert sheet.headers == ["SKU", "Name", "Price"]
    assert sheet.row_count == 2
    assert sheet.row_count_estimated is False
    assert sheet.preview == "SKU, Name, Price"


def test_workbook_sheets_are_analyzed_in_order(settings, write_xlsx):
    path = write_xlsx(
        {
            "Blinds": [["SKU", "Name"], ["045-001", "Roller Blind"], [None, None], ["045-002", "Roller Blind"]],
            "Curtains": [["SKU", "Name", "Colour", "Drop"], ["C-1", "Curtain", "Red", "120"]],
        }
    )

    analysis = WorksheetAnalyzer(settings).analyze(path)

    assert [w.name for w in analysis.worksheets] == ["Blinds", "Curtains"]
    assert analysis.worksheets[0].row_count == 2  # blank row not counted
    assert analysis.worksheets[1].headers == ["SKU", "Name", "Colour", "Drop"]
    assert analysis.worksheets[1].preview == "SKU, Name, Colour..."


def test_headers_stop_at_first_blank(settings, write_xlsx):
    path = write_xlsx({"Sheet": [["SKU", "Name", None, "Ignored"], ["A", "B", "C", "D"]]})
    assert WorksheetAnalyzer(settings).analyze(path).worksheets[0].headers == ["SKU", "Name"]


def test_large_sheet_row_count_is_estimated(settings, write_csv):
    settings.exact_row_count_threshold = 10
    path = write_csv(["SKU"], [[f"S-{i}"] for i in range(25)])

    sheet = WorksheetAnalyzer(settings).analyze(path).worksheets[0]

    assert sheet.row_count_estimated is True
    assert sheet.row_count == 25


def test_worksheet_count_is_capped(settings, write_xlsx):
    settings.max_worksheets = 2
    path = write_xlsx({f"S{i}": [["SKU"], ["A"]] for i in range(4)})

    analysis = WorksheetAnalyzer(settings).analyze(path)

    assert [w.name for w in analysis.worksheets] == ["S0", "S1"]
    assert analysis.truncated is True


def test_load_headers_reads_first_selected_sheet_only(settings, write_xlsx):
    rows = [["SKU", "Name"]] + [[f"A-{i}", f"Blind {i}"] for i in range(10)]
    path = write_xlsx({"Other": [["X"], ["y"]], "Products": rows})

    headers = WorksheetAnalyzer(settings).load_headers_for_selected_sheets(path, ["Products", "Other"])

    assert headers.sheet_name == "Products"
    assert headers.headers == ["SKU", "Name"]
    assert len(headers.sample_rows) == 5
    assert headers.sample_rows[0] == ["A-0", "Blind 0"]


def test_load_headers_requires_a_selection(settings, write_csv):
    path = write_csv(["SKU"], [["A"]])
    with pytest.raises(ConfigurationError, match="No worksheets selected"):
        WorksheetAnalyzer(settings).load_headers_for_selected_sheets(path, [])


def test_load_headers_unknown_sheet(settings, write_xlsx):
    path = write_xlsx({"Products": [["SKU"], ["A"]]})
    with pytest.raises(ConfigurationError, match="Worksheet not found"):
        WorksheetAnalyzer(settings).load_headers_for_selected_sheets(path, ["Missing"])


def test_missing_file_fails_fast(settings, tmp_path):
    with pytest.raises(ConfigurationError):
        WorksheetAnalyzer(settings).analyze(str(tmp_path / "nope.csv"))


def test_unsupported_suffix_fails_fast(tmp_path):
    path = tmp_path / "catalog.pdf"
    path.write_bytes(b"%PDF")
    with pytest.raises(ConfigurationError, match="Unsupported file type"):
        SheetReader(str(path))


def test_ascii_detected_as_utf8(write_csv):
    path = write_csv(["SKU"], [["A-1"]])
    assert detect_encoding(path) == "utf-8"


def test_row_loader_numbers_rows_from_the_sheet(write_csv):
    path = write_csv(["SKU", "Name"], [["A-1", "Blind"], ["", ""], ["A-2", "Shade"]])

    rows = list(RowLoader(path).load_rows(["Sheet1"]))

    assert [r.row_number for r in rows] == [2, 4]
    assert rows[1].values == ["A-2", "Shade"]


def test_row_loader_caps_rows_across_sheets(write_xlsx):
    path = write_xlsx({"A": [["SKU"], [1], [2]], "B": [["SKU"], [3], [4]]})

    rows = list(RowLoader(path).load_rows(["A", "B"], max_rows=3))

    assert [r.values[0] for r in rows] == [1, 2, 3]


def test_apply_mapping_skips_unmapped_columns(write_csv):
    path = write_csv(["SKU", "Notes", "Name"], [["A-1", "ignore me", "Blind"]])
    row = next(RowLoader(path).load_rows(["Sheet1"]))

    mapped = apply_mapping(row, {0: "variant_sku", 2: "product_name"})

    assert mapped == {"_row_number": 2, "variant_sku": "A-1", "product_name": "Blind"}


def test_load_mapped_requires_mapping(write_csv):
    path = write_csv(["SKU"], [["A-1"]])
    with pytest.raises(ConfigurationError, match="Column mapping is empty"):
        RowLoader(path).load_mapped(["Sheet1"], {})


def test_undecodable_byte_past_detection_sample_is_replaced(tmp_path):
    path = tmp_path / "late_latin1.csv"
    lines = [b"SKU,Name\n"] + [f"A-{i},Roller Blind\n".encode() for i in range(2000)]
    path.write_bytes(b"".join(lines) + b"Z-1,Caf\xe9\n")

    rows = RowLoader(str(path)).load_mapped(["Sheet1"], {0: "variant_sku", 1: "product_name"})

    assert len(rows) == 2001
    assert rows[-1]["product_name"] == "Caf\ufffd"


@pytest.mark.parametrize(
    "sheets, message",
    [(["Products"], "Worksheet not found: Products"), (["Sheet1", "Sheet1"], "selected more than once: Sheet1")],
)
def test_csv_rejects_other_sheet_selections(write_csv, sheets, message):
    path = write_csv(["SKU"], [["A-1"]])
    with pytest.raises(ConfigurationError, match=message):
        list(RowLoader(path).load_rows(sheets))


def test_reader_reports_1904_date_system(tmp_path, write_xlsx):
    workbook = Workbook()
    workbook.epoch = CALENDAR_MAC_1904
    workbook.active.append(["SKU"])
    mac_path = tmp_path / "mac.xlsx"
    workbook.save(mac_path)
    windows_path = write_xlsx({"Products": [["SKU"], ["A-1"]]})

    with SheetReader(str(mac_path)) as reader:
        assert reader.date_1904
    with SheetReader(windows_path) as reader:
        assert not reader.date_1904
