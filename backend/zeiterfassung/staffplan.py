"""Latest-wins reconciliation of booked time entries against the staffplan."""

from __future__ import annotations

import dataclasses
import datetime as dt
import logging
from functools import reduce
from typing import Iterable, List, Optional, Sequence

from sqlalchemy.orm import Session

from .calendar_utils import day_key
from .models import StaffplanEntry
from .records import OverrideIndex, OverrideKey, Provenance, StaffplanOverride, TimeEntry, TimesheetMeta

logger = logging.getLogger(__name__)


def override_key(employee_id: str, day: object) -> OverrideKey:
    return (str(employee_id), day_key(day))


def _keep_latest(index: OverrideIndex, override: StaffplanOverride) -> OverrideIndex:
    key = override_key(override.employee_id, override.work_day)
    current = index.get(key)
    if current is None or override.recency > current.recency:
        index[key] = override
    return index


def build_override_index(overrides: Iterable[StaffplanOverride]) -> OverrideIndex:
    """Fold overrides into one entry per ``(employee, day)``.

    Ties on ``recency`` keep the override seen first.
    """
    return reduce(_keep_latest, overrides, {})


def _apply_override(entry: TimeEntry, override: StaffplanOverride) -> TimeEntry:
    project_short = override.project_short
    return dataclasses.replace(
        entry,
        project=project_short or entry.project,
        project_id=project_short or entry.project_id,
        project_short=project_short or entry.project_short,
        customer_po=override.customer_po or entry.customer_po,
        internal_po=override.internal_po or entry.internal_po,
        customer=override.customer or entry.customer,
        provenance=Provenance.STAFFPLAN,
    )


def reconcile(rows: Sequence[TimeEntry], index: Optional[OverrideIndex]) -> List[TimeEntry]:
    """Return ``rows`` with staffplan data applied where an override exists.

    Only non-empty override fields replace the booked values. Rows without a
    matching override are passed through as they are.
    """
    if not index or not rows:
        return list(rows)
    reconciled: List[TimeEntry] = []
    for entry in rows:
        override = index.get(override_key(entry.employee_id, entry.work_day))
        reconciled.append(entry if override is None else _apply_override(entry, override))
    return reconciled


def header_meta(rows: Sequence[TimeEntry], index: Optional[OverrideIndex]) -> Optional[TimesheetMeta]:
    """Customer and PO data of the override matching the latest booked day."""
    if not index or not rows:
        return None
    latest = max(rows, key=lambda entry: day_key(entry.work_day))
    override = index.get(override_key(latest.employee_id, latest.work_day))
    if override is None:
        return None
    return TimesheetMeta(
        customer=override.customer or None,
        customer_po=override.customer_po or None,
        internal_po=override.internal_po or None,
    )


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def load_overrides(db: Session, start_date: dt.date, end_date: dt.date) -> List[StaffplanOverride]:
    rows = (
        db.query(StaffplanEntry)
        .filter(StaffplanEntry.work_date >= start_date, StaffplanEntry.work_date <= end_date)
        .order_by(StaffplanEntry.employee_id, StaffplanEntry.work_date, StaffplanEntry.id)
        .all()
    )
    return [
        StaffplanOverride(
            employee_id=row.employee_id,
            work_day=row.work_date,
            recency=row.id,
            project_short=_blank_to_none(row.project_short),
            customer=_blank_to_none(row.customer),
            customer_po=_blank_to_none(row.customer_po),
            internal_po=_blank_to_none(row.internal_po),
        )
        for row in rows
    ]


def load_override_index(db: Session, start_date: dt.date, end_date: dt.date) -> OverrideIndex:
    overrides = load_overrides(db, start_date, end_date)
    index = build_override_index(overrides)
    logger.info(
        "Staffplan %s..%s: %d rows, %d employee days", start_date, end_date, len(overrides), len(index)
    )
    return index
