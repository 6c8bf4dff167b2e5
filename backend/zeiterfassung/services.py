from __future__ import annotations

import datetime as dt
import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from zoneinfo import ZoneInfo

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from .calendar_utils import period_label as build_period_label
from .config import settings
from .ingest import IngestError, read_time_entries
from .layout import GroupMode
from .models import Employee, StaffplanEntry, TimeClockEntry
from .pdf import render_timesheet
from .records import TimeEntry, TimesheetMeta
from .sharepoint import SharePointClient, SharePointError
from .staffplan import header_meta, load_override_index, reconcile
from .staffplan_import import StaffplanImportError, StaffplanSheet, parse_staffplan_workbook

logger = logging.getLogger(__name__)

UTC = dt.timezone.utc
LOCAL_TZ = ZoneInfo(settings.timezone)

TIMESHEET_FILENAME = "erfassungsbogen.pdf"


def _now() -> dt.datetime:
    return dt.datetime.now(UTC)


def local_today() -> dt.date:
    return _now().astimezone(LOCAL_TZ).date()


# ---------------------------------------------------------------------------
# Employees
# ---------------------------------------------------------------------------


def list_employees(db: Session) -> List[Employee]:
    return db.query(Employee).order_by(Employee.name.asc()).all()


def get_employee(db: Session, employee_id: str) -> Employee:
    employee = db.get(Employee, employee_id.strip())
    if employee is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Mitarbeiter nicht gefunden")
    return employee


def staffplan_for_day(db: Session, employee_id: str, day: dt.date) -> List[StaffplanEntry]:
    employee_id = employee_id.strip()
    if not employee_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="employee_id fehlt")
    return (
        db.query(StaffplanEntry)
        .filter(StaffplanEntry.employee_id == employee_id, StaffplanEntry.work_date == day)
        .order_by(StaffplanEntry.customer_po.asc(), StaffplanEntry.internal_po.asc(), StaffplanEntry.id.asc())
        .all()
    )


# ---------------------------------------------------------------------------
# Time clock
# ---------------------------------------------------------------------------


def get_open_entry(db: Session, employee_id: str, day: dt.date) -> Optional[TimeClockEntry]:
    return (
        db.query(TimeClockEntry)
        .filter(
            TimeClockEntry.employee_id == employee_id,
            TimeClockEntry.work_date == day,
            TimeClockEntry.end_ts.is_(None),
        )
        .order_by(TimeClockEntry.start_ts.desc())
        .first()
    )


def start_time_entry(
    db: Session,
    employee_id: str,
    project_short: Optional[str] = None,
    customer: Optional[str] = None,
    customer_po: Optional[str] = None,
    internal_po: Optional[str] = None,
) -> Tuple[TimeClockEntry, bool]:
    today = local_today()
    running = get_open_entry(db, employee_id, today)
    if running is not None:
        return running, True
    entry = TimeClockEntry(
        employee_id=employee_id,
        work_date=today,
        project_short=project_short,
        customer=customer,
        customer_po=customer_po,
        internal_po=internal_po,
        start_ts=_now(),
    )
    db.add(entry)
    db.commit()
    db.refresh(entry)
    logger.info("Time block %s started for %s", entry.id, employee_id)
    return entry, False


def end_time_entry(db: Session, employee_id: str, activity: Optional[str] = None) -> TimeClockEntry:
    entry = get_open_entry(db, employee_id, local_today())
    if entry is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Kein laufender Arbeitsblock gefunden")
    entry.close(_now(), activity)
    db.commit()
    db.refresh(entry)
    logger.info("Time block %s ended for %s after %d minutes", entry.id, employee_id, entry.minutes)
    return entry


def current_time_entry(db: Session, employee_id: str) -> Optional[TimeClockEntry]:
    employee_id = employee_id.strip()
    if not employee_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="employee_id fehlt")
    return get_open_entry(db, employee_id, local_today())


def load_time_entries(db: Session, employee_id: str, start_date: dt.date, end_date: dt.date) -> List[TimeEntry]:
    stored = (
        db.query(TimeClockEntry)
        .filter(
            TimeClockEntry.employee_id == employee_id,
            TimeClockEntry.work_date >= start_date,
            TimeClockEntry.work_date <= end_date,
            TimeClockEntry.end_ts.isnot(None),
        )
        .order_by(TimeClockEntry.work_date.asc(), TimeClockEntry.start_ts.asc())
        .all()
    )
    return [
        TimeEntry(
            employee_id=item.employee_id,
            work_day=item.work_date,
            minutes=item.minutes,
            project=item.project_short,
            project_id=item.project_short,
            project_short=item.project_short,
            customer=item.customer,
            customer_po=item.customer_po,
            internal_po=item.internal_po,
            task=item.activity,
        )
        for item in stored
    ]


# ---------------------------------------------------------------------------
# Staffplan import
# ---------------------------------------------------------------------------


def _resolve_employee(db: Session, name: str, sheet_row: int, cache: Dict[str, str]) -> Tuple[str, bool]:
    if name in cache:
        return cache[name], False
    employee = db.query(Employee).filter(Employee.name == name).first()
    if employee is not None:
        cache[name] = employee.employee_id
        return employee.employee_id, False
    employee_id = f"AUTO{sheet_row}"
    db.add(Employee(employee_id=employee_id, name=name))
    db.flush()
    cache[name] = employee_id
    return employee_id, True


def store_staffplan(db: Session, sheet: StaffplanSheet) -> Dict[str, object]:
    """Replace the staffplan table with the rows of ``sheet``.

    Rows are inserted in sheet order so later rows for the same employee and
    day get the larger id.
    """
    db.query(StaffplanEntry).delete(synchronize_session=False)
    cache: Dict[str, str] = {}
    created = 0
    for row in sheet.rows:
        employee_id, was_created = _resolve_employee(db, row.employee_name, row.sheet_row, cache)
        created += int(was_created)
        db.add(
            StaffplanEntry(
                employee_id=employee_id,
                employee_name=row.employee_name,
                work_date=row.work_date,
                calendar_week=row.calendar_week,
                customer=row.customer,
                internal_po=row.internal_po,
                customer_po=row.customer_po,
                project_short=row.project_short,
                planned_hours=row.planned_hours,
            )
        )
        db.flush()
    db.commit()
    logger.info(
        "Staffplan imported: %d rows, header row %d, %s..%s, %d new employees",
        len(sheet.rows),
        sheet.header_row,
        sheet.date_from,
        sheet.date_to,
        created,
    )
    return {
        "imported": len(sheet.rows),
        "header_row": sheet.header_row,
        "date_from": sheet.date_from,
        "date_to": sheet.date_to,
        "date_cols": len(sheet.dates),
        "employees_created": created,
    }


def import_staffplan(db: Session, content: bytes, today: Optional[dt.date] = None) -> Dict[str, object]:
    if not content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Keine Datei")
    try:
        sheet = parse_staffplan_workbook(content, today or local_today())
    except StaffplanImportError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return store_staffplan(db, sheet)


def import_staffplan_from_sharepoint(
    db: Session,
    url: str,
    client: Optional[SharePointClient] = None,
    today: Optional[dt.date] = None,
) -> Dict[str, object]:
    client = client or SharePointClient.from_settings()
    try:
        content = client.download(url.strip())
    except SharePointError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return import_staffplan(db, content, today)


# ---------------------------------------------------------------------------
# Logo
# ---------------------------------------------------------------------------


def current_logo_path() -> Optional[Path]:
    path = settings.logo_path
    return path if path.is_file() else None


def save_logo(content: bytes) -> Path:
    if not content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Keine Datei")
    settings.logo_path.parent.mkdir(parents=True, exist_ok=True)
    settings.logo_path.write_bytes(content)
    return settings.logo_path


# ---------------------------------------------------------------------------
# Erfassungsbogen
# ---------------------------------------------------------------------------


def _parse_group_mode(value: str) -> GroupMode:
    try:
        return GroupMode.parse(value)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unbekannte Gruppierung: {value}",
        ) from exc


def build_timesheet(
    db: Session,
    entries: Sequence[TimeEntry],
    group_mode: str,
    title: Optional[str] = None,
    period_label: Optional[str] = None,
    meta: Optional[TimesheetMeta] = None,
    show_week_column: bool = False,
    apply_staffplan: bool = True,
    with_logo: bool = True,
    date_range: Optional[Tuple[dt.date, dt.date]] = None,
) -> bytes:
    """Reconcile ``entries`` with the staffplan and render the PDF."""
    mode = _parse_group_mode(group_mode)
    rows = list(entries)
    if date_range is None and rows:
        days = [entry.work_day for entry in rows]
        date_range = (min(days), max(days))

    if apply_staffplan and rows and date_range is not None:
        index = load_override_index(db, *date_range)
        rows = reconcile(rows, index)
        staffplan_meta = header_meta(rows, index)
        if staffplan_meta is not None:
            meta = staffplan_meta.merged_over(meta)

    if period_label is None and date_range is not None:
        period_label = build_period_label(*date_range)

    return render_timesheet(
        rows,
        group_mode=mode,
        title=title or settings.timesheet_title,
        period_label=period_label,
        logo_path=current_logo_path() if with_logo else None,
        meta=meta,
        show_week_column=show_week_column,
    )


def employee_timesheet(
    db: Session,
    employee_id: str,
    start_date: dt.date,
    end_date: dt.date,
    group_mode: Optional[str] = None,
    show_week_column: bool = False,
    apply_staffplan: bool = True,
) -> bytes:
    if end_date < start_date:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Zeitraum ist ungültig")
    employee = get_employee(db, employee_id)
    entries = load_time_entries(db, employee.employee_id, start_date, end_date)
    return build_timesheet(
        db,
        entries,
        group_mode or settings.timesheet_group_mode,
        title=f"{settings.timesheet_title} – {employee.name}",
        show_week_column=show_week_column,
        apply_staffplan=apply_staffplan,
        date_range=(start_date, end_date),
    )


def timesheet_from_upload(
    db: Session,
    filename: str,
    content: bytes,
    group_mode: Optional[str] = None,
    show_week_column: bool = False,
    apply_staffplan: bool = True,
) -> bytes:
    if not content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Keine Datei")
    try:
        entries = read_time_entries(filename or "", content)
    except IngestError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return build_timesheet(
        db,
        entries,
        group_mode or settings.timesheet_group_mode,
        show_week_column=show_week_column,
        apply_staffplan=apply_staffplan,
    )
