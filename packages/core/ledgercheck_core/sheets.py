"""Read uploaded CSV and Excel files into rows of cells."""

from __future__ import annotations

import csv
import io
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import PurePath
from typing import Any

from openpyxl import load_workbook

from .errors import SheetReadError

Cell = Any

CSV_EXTENSIONS = (".csv",)
WORKBOOK_EXTENSIONS = (".xlsx", ".xlsm")


@dataclass(frozen=True, slots=True)
class UploadedFile:
    """Named byte buffer supplied by an upload source."""

    name: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass(slots=True)
class Sheet:
    name: str
    rows: list[list[Cell]] = field(default_factory=list)


def cell_text(value: Cell) -> str:
    """Render a cell the way a reviewer would have typed it."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime):
        if value.time() == datetime.min.time():
            return value.date().isoformat()
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value).strip()


def _decode(content: bytes) -> str:
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError:
        return content.decode("latin-1")


def _read_csv(upload: UploadedFile) -> list[Sheet]:
    reader = csv.reader(io.StringIO(_decode(upload.content), newline=""))
    try:
        rows: list[list[Cell]] = [list(row) for row in reader]
    except csv.Error as exc:
        raise SheetReadError(f"Could not read CSV '{upload.name}': {exc}") from exc
    return [Sheet(name=PurePath(upload.name).stem or "Sheet1", rows=rows)]


def _read_workbook(upload: UploadedFile) -> list[Sheet]:
    try:
        workbook = load_workbook(
            io.BytesIO(upload.content), read_only=True, data_only=True
        )
    except Exception as exc:  # openpyxl raises several unrelated types
        raise SheetReadError(
            f"Could not open workbook '{upload.name}': {exc}"
        ) from exc
    try:
        sheets: list[Sheet] = []
        for worksheet in workbook.worksheets:
            rows = [list(row) for row in worksheet.iter_rows(values_only=True)]
            sheets.append(Sheet(name=worksheet.title, rows=rows))
        return sheets
    except Exception as exc:  # rows are parsed lazily in read-only mode
        raise SheetReadError(
            f"Could not read workbook '{upload.name}': {exc}"
        ) from exc
    finally:
        workbook.close()


def read_sheets(upload: UploadedFile) -> list[Sheet]:
    """Return every sheet in the upload; CSV files yield a single sheet."""
    suffix = PurePath(upload.name).suffix.lower()
    if suffix in CSV_EXTENSIONS:
        return _read_csv(upload)
    if suffix in WORKBOOK_EXTENSIONS:
        return _read_workbook(upload)
    raise SheetReadError(
        f"Invalid file type for '{upload.name}'. "
        "Please upload .xlsx, .xlsm or .csv files."
    )


__all__ = ["Sheet", "UploadedFile", "cell_text", "read_sheets"]
