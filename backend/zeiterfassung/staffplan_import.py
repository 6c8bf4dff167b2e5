"""Parsing of the staffplan Excel workbook.

Layout of the sheet: one header row (somewhere in the first 21 rows) carries
a date per column from column L onward. Employees occupy two rows each,
starting at row 6: the first holds customer (A), internal PO (B), customer
PO (E), the name (I) and the project short label under each date; the second
holds the planned hours under each date.
"""

from __future__ import annotations

import datetime as dt
import io
import re
import zipfile
from dataclasses import dataclass, field
from typing import Any, List, Optional

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException
from openpyxl.worksheet.worksheet import Worksheet

EXCEL_EPOCH = dt.date(1899, 12, 30)
# Smaller numbers are planned hours, not serial dates.
MIN_EXCEL_SERIAL = 367

FIRST_DATE_COLUMN = 12  # L
LAST_DATE_COLUMN = 1001
HEADER_SCAN_ROWS = 21
MIN_HEADER_DATES = 3
FIRST_EMPLOYEE_ROW = 6
EMPLOYEE_ROW_STEP = 2
NAME_COLUMN = 9  # I
CUSTOMER_COLUMN = 1  # A
INTERNAL_PO_COLUMN = 2  # B
CUSTOMER_PO_COLUMN = 5  # E

YEAR_GUESS_WINDOW_DAYS = 200

_FULL_DATE = re.compile(r"(\d{1,2})\.(\d{1,2})\.(\d{4})")
_SHORT_DATE = re.compile(r"(\d{1,2})\.(\d{1,2})\.")
_PLANNED_HOURS = re.compile(r"^\d+([.,]\d+)?$")


class StaffplanImportError(ValueError):
    """Raised when the workbook does not look like a staffplan."""


@dataclass(slots=True)
class DateColumn:
    column: int
    day: dt.date

    @property
    def calendar_week(self) -> str:
        return f"CW{self.day.isocalendar()[1]}"


@dataclass(slots=True)
class StaffplanRow:
    employee_name: str
    sheet_row: int
    work_date: dt.date
    calendar_week: str
    customer: Optional[str] = None
    internal_po: Optional[str] = None
    customer_po: Optional[str] = None
    project_short: Optional[str] = None
    planned_hours: Optional[float] = None


@dataclass(slots=True)
class StaffplanSheet:
    header_row: int
    dates: List[DateColumn]
    rows: List[StaffplanRow] = field(default_factory=list)

    @property
    def date_from(self) -> dt.date:
        return self.dates[0].day

    @property
    def date_to(self) -> dt.date:
        return self.dates[-1].day


def _guess_year(day: int, month: int, today: dt.date) -> Optional[dt.date]:
    try:
        guess = dt.date(today.year, month, day)
    except ValueError:
        return None
    delta = (guess - today).days
    try:
        if delta > YEAR_GUESS_WINDOW_DAYS:
            return guess.replace(year=today.year - 1)
        if delta < -YEAR_GUESS_WINDOW_DAYS:
            return guess.replace(year=today.year + 1)
    except ValueError:
        return None
    return guess


def parse_sheet_date(value: Any, today: Optional[dt.date] = None) -> Optional[dt.date]:
    """Read a date header cell; ``None`` when the cell holds no date."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    if isinstance(value, (int, float)):
        if value < MIN_EXCEL_SERIAL:
            return None
        return EXCEL_EPOCH + dt.timedelta(days=int(value))
    text = str(value).strip()
    if not text:
        return None
    match = _FULL_DATE.search(text)
    if match:
        day, month, year = (int(part) for part in match.groups())
        try:
            return dt.date(year, month, day)
        except ValueError:
            return None
    match = _SHORT_DATE.search(text)
    if match:
        day, month = (int(part) for part in match.groups())
        return _guess_year(day, month, today or dt.date.today())
    return None


def parse_planned_hours(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip()
    if not text or not _PLANNED_HOURS.match(text):
        return None
    return float(text.replace(",", "."))


def _cell_text(sheet: Worksheet, row: int, column: int) -> Optional[str]:
    value = sheet.cell(row=row, column=column).value
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def find_header_row(sheet: Worksheet, today: dt.date) -> tuple[int, int]:
    last_column = min(sheet.max_column, LAST_DATE_COLUMN)
    best_row, best_count = 0, 0
    for row in range(1, min(sheet.max_row, HEADER_SCAN_ROWS) + 1):
        count = sum(
            1
            for column in range(FIRST_DATE_COLUMN, last_column + 1)
            if parse_sheet_date(sheet.cell(row=row, column=column).value, today) is not None
        )
        if count > best_count:
            best_row, best_count = row, count
    return best_row, best_count


def parse_staffplan_sheet(sheet: Worksheet, today: Optional[dt.date] = None) -> StaffplanSheet:
    today = today or dt.date.today()
    header_row, count = find_header_row(sheet, today)
    if count < MIN_HEADER_DATES:
        raise StaffplanImportError(
            f"Keine brauchbare Datums-Kopfzeile gefunden (Scan 1..{HEADER_SCAN_ROWS})"
        )

    dates: List[DateColumn] = []
    for column in range(FIRST_DATE_COLUMN, min(sheet.max_column, LAST_DATE_COLUMN) + 1):
        day = parse_sheet_date(sheet.cell(row=header_row, column=column).value, today)
        if day is not None:
            dates.append(DateColumn(column=column, day=day))

    result = StaffplanSheet(header_row=header_row, dates=dates)
    for row in range(FIRST_EMPLOYEE_ROW, sheet.max_row + 1, EMPLOYEE_ROW_STEP):
        name = _cell_text(sheet, row, NAME_COLUMN)
        if not name:
            continue
        customer = _cell_text(sheet, row, CUSTOMER_COLUMN)
        internal_po = _cell_text(sheet, row, INTERNAL_PO_COLUMN)
        customer_po = _cell_text(sheet, row, CUSTOMER_PO_COLUMN)
        for date_column in dates:
            project = _cell_text(sheet, row, date_column.column)
            planned = parse_planned_hours(sheet.cell(row=row + 1, column=date_column.column).value)
            if project is None and planned is None:
                continue
            result.rows.append(
                StaffplanRow(
                    employee_name=name,
                    sheet_row=row,
                    work_date=date_column.day,
                    calendar_week=date_column.calendar_week,
                    customer=customer,
                    internal_po=internal_po,
                    customer_po=customer_po,
                    project_short=project,
                    planned_hours=planned,
                )
            )
    return result


def parse_staffplan_workbook(content: bytes, today: Optional[dt.date] = None) -> StaffplanSheet:
    try:
        workbook = load_workbook(io.BytesIO(content), data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, OSError, KeyError) as exc:
        raise StaffplanImportError(f"Excel-Datei konnte nicht gelesen werden: {exc}") from exc
    try:
        return parse_staffplan_sheet(workbook.worksheets[0], today)
    finally:
        workbook.close()
