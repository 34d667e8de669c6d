"""Extract product lists from uploaded spreadsheets.

Workbooks are read whole into plain row lists so the column extraction does
not care whether the upload was ``.xls`` (xlrd), ``.xlsx`` (openpyxl) or
``.csv``. A CSV upload is exposed as a single sheet named ``Sheet1``.
"""
from __future__ import annotations

import csv
import re
from dataclasses import dataclass, field
from datetime import date, datetime, time
from io import BytesIO, StringIO
from pathlib import Path
from typing import Any, Dict, List, Optional

import openpyxl
import xlrd


CSV_SHEET_NAME = "Sheet1"

_ZIP_MAGIC = b"PK\x03\x04"
_OLE2_MAGIC = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"

_LETTERS_RE = re.compile(r"^[A-Za-z]+$")
_LEADING_DIGITS_RE = re.compile(r"^\+?(\d+)")


class SheetNotFoundError(ValueError):
    """The requested sheet is not part of the workbook."""

    def __init__(self, sheet_name: str) -> None:
        super().__init__(f'Sheet "{sheet_name}" not found')
        self.sheet_name = sheet_name


class InvalidColumnReference(ValueError):
    """The column reference is neither letters nor a non-negative index."""

    def __init__(self, column_ref: Any) -> None:
        super().__init__(f"Invalid column reference: {column_ref}")
        self.column_ref = column_ref


class WorkbookReadError(OSError):
    """The uploaded bytes could not be parsed as a workbook."""


@dataclass
class Workbook:
    sheets: Dict[str, List[List[Any]]] = field(default_factory=dict)

    @property
    def sheet_names(self) -> List[str]:
        return list(self.sheets)

    def rows(self, sheet_name: str) -> List[List[Any]]:
        try:
            return self.sheets[sheet_name]
        except KeyError:
            raise SheetNotFoundError(sheet_name) from None


def resolve_column_ref(column_ref: Any) -> int:
    """Turn ``"A"``/``"aa"``/``"3"`` into a zero-based column index.

    Letters follow spreadsheet naming (``A`` is 0, ``AA`` is 26). Numbers are
    taken as already zero-based and only their leading digits count, so
    ``"2nd"`` resolves to 2.
    """

    if isinstance(column_ref, bool):
        raise InvalidColumnReference(column_ref)
    if isinstance(column_ref, int):
        if column_ref < 0:
            raise InvalidColumnReference(column_ref)
        return column_ref
    text = str(column_ref or "").strip()
    if _LETTERS_RE.match(text):
        index = 0
        for letter in text.upper():
            index = index * 26 + (ord(letter) - ord("A") + 1)
        return index - 1
    match = _LEADING_DIGITS_RE.match(text)
    if match is None:
        raise InvalidColumnReference(column_ref)
    return int(match.group(1))


def cell_to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return str(value)
    if isinstance(value, datetime):
        if value.time() == time(0, 0):
            return value.date().isoformat()
        return value.isoformat(sep=" ")
    if isinstance(value, (date, time)):
        return value.isoformat()
    return str(value).strip()


def _read_xls(data: bytes) -> Workbook:
    try:
        book = xlrd.open_workbook(file_contents=data)
    except Exception as exc:
        raise WorkbookReadError(f"Invalid XLS file: {exc}") from exc
    workbook = Workbook()
    for sheet in book.sheets():
        rows: List[List[Any]] = []
        for row_index in range(sheet.nrows):
            row: List[Any] = []
            for cell in sheet.row(row_index):
                if cell.ctype in (xlrd.XL_CELL_EMPTY, xlrd.XL_CELL_BLANK, xlrd.XL_CELL_ERROR):
                    row.append(None)
                elif cell.ctype == xlrd.XL_CELL_BOOLEAN:
                    row.append(bool(cell.value))
                elif cell.ctype == xlrd.XL_CELL_DATE:
                    try:
                        row.append(xlrd.xldate_as_datetime(cell.value, book.datemode))
                    except (ValueError, OverflowError):
                        row.append(cell.value)
                else:
                    row.append(cell.value)
            rows.append(row)
        workbook.sheets[sheet.name] = rows
    return workbook


def _read_xlsx(data: bytes) -> Workbook:
    try:
        book = openpyxl.load_workbook(BytesIO(data), read_only=True, data_only=True)
    except Exception as exc:
        raise WorkbookReadError(f"Invalid XLSX file: {exc}") from exc
    workbook = Workbook()
    try:
        for sheet in book.worksheets:
            workbook.sheets[sheet.title] = [
                list(row) for row in sheet.iter_rows(values_only=True)
            ]
    finally:
        book.close()
    return workbook


def _read_csv(data: bytes) -> Workbook:
    try:
        text = data.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise WorkbookReadError("File must be UTF-8 encoded CSV, XLS or XLSX") from exc
    rows = [list(row) for row in csv.reader(StringIO(text))]
    return Workbook(sheets={CSV_SHEET_NAME: rows})


def load_workbook(data: bytes, filename: Optional[str] = None) -> Workbook:
    """Parse ``data`` picking the reader from the extension or magic bytes."""

    if not data:
        raise WorkbookReadError("Empty file")
    extension = Path(filename or "").suffix.lower()
    if extension == ".xls":
        return _read_xls(data)
    if extension in {".xlsx", ".xlsm"}:
        return _read_xlsx(data)
    if extension == ".csv":
        return _read_csv(data)
    if data.startswith(_ZIP_MAGIC):
        return _read_xlsx(data)
    if data.startswith(_OLE2_MAGIC):
        return _read_xls(data)
    return _read_csv(data)


def extract_column(workbook: Workbook, sheet_name: str, column_ref: Any) -> List[str]:
    """Collect every non-empty cell of one column, top to bottom.

    Duplicates and header text are kept as found; skipping a header row is
    left to whoever prepares the sheet.
    """

    rows = workbook.rows(sheet_name)
    column_index = resolve_column_ref(column_ref)
    values: List[str] = []
    for row in rows:
        if not row or column_index >= len(row):
            continue
        text = cell_to_text(row[column_index])
        if text:
            values.append(text)
    return values


def ingest_product_list(
    data: bytes,
    *,
    filename: Optional[str],
    sheet_name: str,
    column_ref: Any,
) -> List[str]:
    workbook = load_workbook(data, filename)
    return extract_column(workbook, sheet_name, column_ref)


__all__ = [
    "CSV_SHEET_NAME",
    "InvalidColumnReference",
    "SheetNotFoundError",
    "Workbook",
    "WorkbookReadError",
    "cell_to_text",
    "extract_column",
    "ingest_product_list",
    "load_workbook",
    "resolve_column_ref",
]
