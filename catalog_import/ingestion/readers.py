"""
Sheet Readers
Forward-only access to rows of delimited text and .xlsx workbooks.
"""

import logging
import math
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

import chardet
import numpy as np
import pandas as pd
from openpyxl import load_workbook
from openpyxl.utils.datetime import CALENDAR_MAC_1904
from openpyxl.utils.exceptions import InvalidFileException

from catalog_import.errors import ConfigurationError
from catalog_import.models.rows import RawRow

logger = logging.getLogger(__name__)

DELIMITED_SUFFIXES = {".csv": ",", ".txt": ",", ".tsv": "\t"}
WORKBOOK_SUFFIXES = {".xlsx", ".xlsm"}
CSV_SHEET_NAME = "Sheet1"


def detect_encoding(file_path: str) -> str:
    """
    Detect text file encoding using chardet.

    Args:
        file_path: Path to a delimited file

    Returns:
        Detected encoding string
    """
    with open(file_path, "rb") as f:
        raw_data = f.read(10000)  # Read first 10KB
        result = chardet.detect(raw_data)
        encoding = result["encoding"]
        confidence = result["confidence"] or 0

        # ASCII is a subset of UTF-8
        if encoding and encoding.lower() == "ascii":
            encoding = "utf-8"
            logger.debug("Detected ASCII, using UTF-8 (ASCII superset)")
        elif encoding:
            logger.info(f"Detected encoding: {encoding} (confidence: {confidence:.2%})")

        return encoding if encoding else "utf-8"


def normalize_cell(value: Any) -> Any:
    """Spreadsheet cell -> plain Python value. Blank cells become None."""
    if value is None:
        return None
    if isinstance(value, (np.integer, np.floating, np.bool_)):
        value = value.item()
    if isinstance(value, float):
        if math.isnan(value):
            return None
        if value.is_integer():
            return int(value)
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    if isinstance(value, str) and value.strip() == "":
        return None
    return value


def header_names(cells: List[Any]) -> List[str]:
    """Header row up to the first empty header cell."""
    headers = []
    for cell in cells:
        if cell is None or str(cell).strip() == "":
            break
        headers.append(str(cell).strip())
    return headers


def is_empty_row(values: Tuple[Any, ...]) -> bool:
    return all(normalize_cell(v) is None for v in values)


class SheetReader:
    """
    Opens a tabular file once and hands out rows sheet by sheet.

    Delimited text files expose one implicit sheet named "Sheet1".

    Usage:
        with SheetReader("catalog.xlsx") as reader:
            for row in reader.iter_rows("Products"):
                ...
    """

    def __init__(self, file_path: str):
        self.path = Path(file_path)
        if not self.path.is_file():
            raise ConfigurationError(f"File not found or unreadable: {file_path}")

        self.suffix = self.path.suffix.lower()
        if self.suffix not in DELIMITED_SUFFIXES and self.suffix not in WORKBOOK_SUFFIXES:
            raise ConfigurationError(f"Unsupported file type: {self.suffix or 'none'}")

        self._workbook = None
        self._encoding: Optional[str] = None

    def __enter__(self) -> "SheetReader":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.close()
        return False

    @property
    def is_delimited(self) -> bool:
        return self.suffix in DELIMITED_SUFFIXES

    @property
    def workbook(self):
        if self._workbook is None:
            try:
                self._workbook = load_workbook(self.path, read_only=True, data_only=True)
            except (InvalidFileException, OSError, KeyError, ValueError) as e:
                raise ConfigurationError(f"Cannot open workbook {self.path.name}: {e}") from e
        return self._workbook

    @property
    def encoding(self) -> str:
        if self._encoding is None:
            self._encoding = detect_encoding(str(self.path))
        return self._encoding

    @property
    def date_1904(self) -> bool:
        """True for workbooks saved with the 1904 date system."""
        if self.is_delimited:
            return False
        return self.workbook.epoch == CALENDAR_MAC_1904

    def sheet_names(self) -> List[str]:
        if self.is_delimited:
            return [CSV_SHEET_NAME]
        return list(self.workbook.sheetnames)

    def highest_row(self, sheet_name: str) -> int:
        """Last populated row index including the header, without reading cells where possible."""
        if self.is_delimited:
            with open(self.path, encoding=self.encoding, errors="replace") as f:
                return sum(1 for _ in f)

        worksheet = self._worksheet(sheet_name)
        if worksheet.max_row is None:
            worksheet.calculate_dimension(force=True)
        return worksheet.max_row or 0

    def iter_values(self, sheet_name: str, min_row: int = 1) -> Iterator[Tuple[int, Tuple[Any, ...]]]:
        """(row number, raw cell tuple) pairs starting at min_row."""
        if self.is_delimited:
            if sheet_name != CSV_SHEET_NAME:
                raise ConfigurationError(f"Worksheet not found: {sheet_name}")
            yield from self._iter_delimited(min_row)
            return

        worksheet = self._worksheet(sheet_name)
        for offset, values in enumerate(worksheet.iter_rows(min_row=min_row, values_only=True)):
            yield min_row + offset, values

    def read_headers(self, sheet_name: str) -> List[str]:
        for _, values in self.iter_values(sheet_name, min_row=1):
            return header_names(list(values))
        return []

    def iter_rows(self, sheet_name: str, max_rows: Optional[int] = None) -> Iterator[RawRow]:
        """
        Data rows (header skipped), fully empty rows dropped.

        Args:
            sheet_name: Worksheet to read
            max_rows: Stop after this many data rows

        Yields:
            RawRow with the spreadsheet row number (header is row 1)
        """
        emitted = 0
        for row_number, values in self.iter_values(sheet_name, min_row=2):
            if is_empty_row(values):
                continue
            yield RawRow(row_number=row_number, values=[normalize_cell(v) for v in values])
            emitted += 1
            if max_rows is not None and emitted >= max_rows:
                break

    def close(self) -> None:
        if self._workbook is not None:
            self._workbook.close()
            self._workbook = None

    def _worksheet(self, sheet_name: str):
        if sheet_name not in self.workbook.sheetnames:
            raise ConfigurationError(f"Worksheet not found: {sheet_name}")
        return self.workbook[sheet_name]

    def _iter_delimited(self, min_row: int) -> Iterator[Tuple[int, Tuple[Any, ...]]]:
        try:
            chunk_iterator = pd.read_csv(
                self.path,
                sep=DELIMITED_SUFFIXES[self.suffix],
                header=None,
                dtype=str,
                keep_default_na=False,
                skip_blank_lines=False,
                chunksize=1000,
                encoding=self.encoding,
                encoding_errors="replace",
                on_bad_lines="skip",
            )
        except pd.errors.EmptyDataError:
            return

        try:
            row_number = 0
            for chunk_df in chunk_iterator:
                for values in chunk_df.itertuples(index=False, name=None):
                    row_number += 1
                    if row_number >= min_row:
                        yield row_number, values
        except pd.errors.EmptyDataError:
            return
        finally:
            chunk_iterator.close()


def apply_mapping(row: RawRow, mapping: Dict[int, str]) -> Dict[str, Any]:
    """
    Positional raw row -> {canonical field: raw value}.

    The mapping is trusted as given; columns mapped to an empty name are skipped.
    """
    mapped: Dict[str, Any] = {"_row_number": row.row_number}
    for column_index, field_name in mapping.items():
        if not field_name:
            continue
        mapped[field_name] = row.cell(int(column_index))
    return mapped


def format_cell_for_preview(value: Any) -> Any:
    value = normalize_cell(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value


class RowLoader:
    """
    Data rows of the selected sheets, in sheet then file order.

    max_rows caps the total across all sheets.
    """

    def __init__(self, file_path: str):
        self.file_path = file_path
        # Set once the file is opened
        self.date_1904 = False

    def load_rows(self, sheets: List[str], max_rows: Optional[int] = None) -> Iterator[RawRow]:
        if not sheets:
            raise ConfigurationError("No worksheets selected")
        duplicates = sorted({name for name in sheets if sheets.count(name) > 1})
        if duplicates:
            raise ConfigurationError(f"Worksheet selected more than once: {', '.join(duplicates)}")

        remaining = max_rows
        with SheetReader(self.file_path) as reader:
            self.date_1904 = reader.date_1904
            for sheet_name in sheets:
                if remaining is not None and remaining <= 0:
                    break
                for row in reader.iter_rows(sheet_name, max_rows=remaining):
                    yield row
                    if remaining is not None:
                        remaining -= 1

    def load_mapped(
        self, sheets: List[str], mapping: Dict[int, str], max_rows: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        if not mapping:
            raise ConfigurationError("Column mapping is empty")
        rows = [apply_mapping(row, mapping) for row in self.load_rows(sheets, max_rows)]
        logger.info(f"Loaded {len(rows)} rows from {self.file_path} ({', '.join(sheets)})")
        return rows
