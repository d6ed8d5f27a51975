"""Request-side models for API endpoints."""
from enum import Enum


class ExportFormat(str, Enum):
    """Supported export formats."""

    EXCEL = "excel"
    CSV = "csv"

    @property
    def media_type(self) -> str:
        if self is ExportFormat.CSV:
            return "text/csv"
        return "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

    @property
    def extension(self) -> str:
        return ".csv" if self is ExportFormat.CSV else ".xlsx"
