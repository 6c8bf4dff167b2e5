"""Reading time-entry rows from CSV or Excel uploads."""

from __future__ import annotations

import csv
import datetime as dt
import io
import re
import zipfile
from typing import Any, Dict, Iterable, List, Mapping, Optional

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from .calendar_utils import to_date
from .records import TimeEntry


class IngestError(ValueError):
    """Raised when an uploaded row cannot be turned into a time entry."""


COLUMN_ALIASES: Dict[str, str] = {
    "employee_id": "employee_id",
    "mitarbeiter": "employee_id",
    "date": "work_day",
    "work_date": "work_day",
    "datum": "work_day",
    "project": "project",
    "projekt": "project",
    "project_id": "project_id",
    "project_short": "project_short",
    "customer": "customer",
    "kunde": "customer",
    "customer_po": "customer_po",
    "internal_po": "internal_po",
    "task": "task",
    "activity": "task",
    "tätigkeit": "task",
    "minutes": "minutes",
    "minuten": "minutes",
    "duration": "duration",
    "dauer": "duration",
    "hours": "hours",
    "stunden": "hours",
}

_GERMAN_DATE = re.compile(r"^(\d{1,2})\.(\d{1,2})\.(\d{4})$")
_DURATION = re.compile(r"^(\d+):([0-5]\d)$")


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _normalize_header(name: Any) -> Optional[str]:
    key = _clean(name)
    if key is None:
        return None
    return COLUMN_ALIASES.get(key.lower().replace(" ", "_"))


def parse_day(value: Any) -> dt.date:
    if isinstance(value, (dt.date, dt.datetime)):
        return to_date(value)
    text = _clean(value)
    if text is None:
        raise IngestError("Datum fehlt")
    match = _GERMAN_DATE.match(text)
    if match:
        day, month, year = (int(part) for part in match.groups())
        return dt.date(year, month, day)
    try:
        return to_date(text)
    except ValueError as exc:
        raise IngestError(f"Ungültiges Datum: {text}") from exc


def parse_minutes(record: Mapping[str, Any]) -> int:
    raw_minutes = record.get("minutes")
    if _clean(raw_minutes) is not None:
        try:
            minutes = int(float(str(raw_minutes).replace(",", ".")))
        except (ValueError, OverflowError) as exc:
            raise IngestError(f"Ungültige Minutenangabe: {raw_minutes}") from exc
    elif _clean(record.get("duration")) is not None:
        text = str(record["duration"]).strip()
        match = _DURATION.match(text)
        if not match:
            raise IngestError(f"Ungültige Dauer: {text}")
        minutes = int(match.group(1)) * 60 + int(match.group(2))
    elif _clean(record.get("hours")) is not None:
        try:
            minutes = round(float(str(record["hours"]).replace(",", ".")) * 60)
        except (ValueError, OverflowError) as exc:
            raise IngestError(f"Ungültige Stundenangabe: {record['hours']}") from exc
    else:
        raise IngestError("Dauer fehlt")
    if minutes < 0:
        raise IngestError("Dauer darf nicht negativ sein")
    return minutes


def entry_from_record(record: Mapping[str, Any]) -> TimeEntry:
    employee_id = _clean(record.get("employee_id"))
    if employee_id is None:
        raise IngestError("employee_id fehlt")
    return TimeEntry(
        employee_id=employee_id,
        work_day=parse_day(record.get("work_day")),
        minutes=parse_minutes(record),
        project=_clean(record.get("project")),
        project_id=_clean(record.get("project_id")),
        project_short=_clean(record.get("project_short")),
        customer=_clean(record.get("customer")),
        customer_po=_clean(record.get("customer_po")),
        internal_po=_clean(record.get("internal_po")),
        task=_clean(record.get("task")),
    )


def _entries_from_rows(header: Iterable[Any], rows: Iterable[Iterable[Any]], first_line: int) -> List[TimeEntry]:
    columns = [_normalize_header(name) for name in header]
    entries: List[TimeEntry] = []
    for line_number, values in enumerate(rows, start=first_line):
        values = list(values)
        if all(_clean(value) is None for value in values):
            continue
        record = {column: value for column, value in zip(columns, values) if column}
        try:
            entries.append(entry_from_record(record))
        except IngestError as exc:
            raise IngestError(f"Zeile {line_number}: {exc}") from exc
    return entries


def parse_time_entry_csv(text: str) -> List[TimeEntry]:
    text = text.lstrip("\ufeff")
    if not text.strip():
        return []
    try:
        dialect = csv.Sniffer().sniff(text[:4096], delimiters=",;\t")
    except csv.Error:
        dialect = csv.excel
    reader = csv.reader(io.StringIO(text), dialect)
    header = next(reader, [])
    return _entries_from_rows(header, reader, first_line=2)


def parse_time_entry_xlsx(content: bytes) -> List[TimeEntry]:
    try:
        workbook = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, OSError, KeyError) as exc:
        raise IngestError(f"Excel-Datei konnte nicht gelesen werden: {exc}") from exc
    try:
        sheet = workbook.worksheets[0]
        rows = sheet.iter_rows(values_only=True)
        header = next(rows, ())
        return _entries_from_rows(header, rows, first_line=2)
    finally:
        workbook.close()


def read_time_entries(filename: str, content: bytes) -> List[TimeEntry]:
    if filename.lower().endswith((".xlsx", ".xlsm")):
        return parse_time_entry_xlsx(content)
    try:
        text = content.decode("utf-8")
    except UnicodeDecodeError:
        text = content.decode("cp1252", errors="replace")
    return parse_time_entry_csv(text)
