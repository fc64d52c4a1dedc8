"""
Worksheet Analyzer
Enumerates sheets of an uploaded file and extracts headers, row counts and a
short preview without materializing full sheet contents.
"""

import logging
from typing import List, Optional

from catalog_import.config.settings import ImportSettings, get_settings
from catalog_import.errors import ConfigurationError
from catalog_import.ingestion.readers import SheetReader, format_cell_for_preview, is_empty_row
from catalog_import.models.imports import SheetHeaders, WorksheetAnalysis, WorksheetInfo

logger = logging.getLogger(__name__)


def build_preview(headers: List[str], limit: int = 3) -> str:
    """First few headers joined for display, with an ellipsis when more exist."""
    preview = ", ".join(headers[:limit])
    if len(headers) > limit:
        preview += "..."
    return preview


class WorksheetAnalyzer:
    """
    Sheet discovery for the column mapping step.

    Row counts are exact only for small sheets. Above
    settings.exact_row_count_threshold the count is estimated from the last
    populated row index, which may include blank rows.
    """

    def __init__(self, settings: Optional[ImportSettings] = None):
        self.settings = settings or get_settings()

    def analyze(self, file_path: str) -> WorksheetAnalysis:
        """
        Analyze every worksheet of a file, up to settings.max_worksheets.

        Args:
            file_path: Path to a .csv/.tsv/.txt or .xlsx file

        Returns:
            WorksheetAnalysis with one WorksheetInfo per analyzed sheet

        Raises:
            ConfigurationError: If the file cannot be opened
        """
        analysis = WorksheetAnalysis()

        with SheetReader(file_path) as reader:
            names = reader.sheet_names()
            if len(names) > self.settings.max_worksheets:
                logger.warning(
                    f"{file_path} has {len(names)} worksheets, "
                    f"analyzing the first {self.settings.max_worksheets}"
                )
                names = names[: self.settings.max_worksheets]
                analysis.truncated = True

            for index, name in enumerate(names):
                analysis.worksheets.append(self._analyze_sheet(reader, index, name))

        logger.info(f"Analyzed {len(analysis.worksheets)} worksheet(s) in {file_path}")
        return analysis

    def _analyze_sheet(self, reader: SheetReader, index: int, name: str) -> WorksheetInfo:
        headers = reader.read_headers(name)
        highest_row = reader.highest_row(name)

        if highest_row <= self.settings.exact_row_count_threshold:
            row_count = sum(
                1 for _, values in reader.iter_values(name, min_row=2) if not is_empty_row(values)
            )
            estimated = False
        else:
            row_count = max(highest_row - 1, 0)
            estimated = True

        logger.debug(
            f"Worksheet '{name}': {len(headers)} headers, "
            f"{row_count} rows{' (estimated)' if estimated else ''}"
        )
        return WorksheetInfo(
            index=index,
            name=name,
            headers=headers,
            row_count=row_count,
            row_count_estimated=estimated,
            preview=build_preview(headers),
        )

    def load_headers_for_selected_sheets(self, file_path: str, selected_sheets: List[str]) -> SheetHeaders:
        """
        Headers and a small sample from the first selected sheet only.

        Args:
            file_path: Path to the uploaded file
            selected_sheets: Sheet names chosen by the caller

        Returns:
            SheetHeaders for the first selected sheet

        Raises:
            ConfigurationError: If nothing is selected or the sheet does not exist
        """
        if not selected_sheets:
            raise ConfigurationError("No worksheets selected")

        sheet_name = selected_sheets[0]
        with SheetReader(file_path) as reader:
            if sheet_name not in reader.sheet_names():
                raise ConfigurationError(f"Worksheet not found: {sheet_name}")

            headers = reader.read_headers(sheet_name)
            sample = []
            for row in reader.iter_rows(sheet_name, max_rows=self.settings.header_sample_rows):
                sample.append([format_cell_for_preview(v) for v in row.values[: len(headers)]])

        return SheetHeaders(sheet_name=sheet_name, headers=headers, sample_rows=sample)
