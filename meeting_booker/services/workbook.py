# meeting_booker/services/workbook.py
from __future__ import annotations

import logging
import zipfile
from pathlib import Path
from typing import Any, Iterator, Protocol

import openpyxl
from openpyxl.utils.exceptions import InvalidFileException
from openpyxl.workbook.workbook import Workbook
from openpyxl.worksheet.worksheet import Worksheet

logger = logging.getLogger(__name__)


class DocumentError(RuntimeError):
    """
    Raised when a bookings workbook cannot be opened, located or saved.
    """


class BookingDocument(Protocol):
    """
    What the booking pipeline needs from a tabular document.
    """

    def header_values(self) -> list[Any]: ...

    def iter_rows(self, start_row: int) -> Iterator[tuple[int, list[Any]]]: ...

    def row_values(self, row_number: int) -> list[Any]: ...

    def write_cell(self, row_number: int, column: int, value: Any) -> None: ...

    def append_header(self, label: str) -> int: ...

    def save(self) -> None: ...


class BookingWorkbook:
    """
    openpyxl-backed bookings document.

    Only one worksheet is exposed. Changes are kept in memory until
    `save()` writes the whole workbook back to its path.
    """

    def __init__(self, workbook: Workbook, worksheet: Worksheet, path: str | Path) -> None:
        self._workbook = workbook
        self._worksheet = worksheet
        self.path = Path(path)

    @classmethod
    def open(cls, path: str | Path, sheet_name: str = "Bookings") -> "BookingWorkbook":
        """
        Load `path` and select `sheet_name`.

        Raises
        ------
        DocumentError
            If the file is missing, is not a valid xlsx workbook, or has no
            sheet with the given name.
        """
        try:
            workbook = openpyxl.load_workbook(path)
        except (OSError, InvalidFileException, zipfile.BadZipFile, KeyError, ValueError) as exc:
            raise DocumentError(f"Cannot open workbook {path}: {exc}") from exc

        if sheet_name not in workbook.sheetnames:
            raise DocumentError(f"Workbook {path} has no '{sheet_name}' sheet")

        logger.debug("Opened workbook %s (sheet=%s)", path, sheet_name)
        return cls(workbook, workbook[sheet_name], path)

    def header_values(self) -> list[Any]:
        return self.row_values(1)

    def row_values(self, row_number: int) -> list[Any]:
        for values in self._worksheet.iter_rows(
            min_row=row_number,
            max_row=row_number,
            values_only=True,
        ):
            return list(values)
        return []

    def iter_rows(self, start_row: int) -> Iterator[tuple[int, list[Any]]]:
        """
        Yield `(row_number, values)` for every row from `start_row` on.
        """
        for offset, values in enumerate(
            self._worksheet.iter_rows(min_row=start_row, values_only=True)
        ):
            yield start_row + offset, list(values)

    def write_cell(self, row_number: int, column: int, value: Any) -> None:
        self._worksheet.cell(row=row_number, column=column, value=value)

    def append_header(self, label: str) -> int:
        """
        Add `label` as a new last header cell and return its column index.
        """
        column = self._worksheet.max_column + 1
        self._worksheet.cell(row=1, column=column, value=label)
        logger.info("Added missing '%s' column at position %d", label, column)
        return column

    def save(self) -> None:
        try:
            self._workbook.save(self.path)
        except OSError as exc:
            raise DocumentError(f"Cannot save workbook {self.path}: {exc}") from exc
