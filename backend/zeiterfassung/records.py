"""Value types flowing through the Erfassungsbogen pipeline."""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple


class Provenance(str, Enum):
    RAW = "raw"
    STAFFPLAN = "staffplan"


@dataclass(frozen=True, slots=True)
class TimeEntry:
    """A booked block of work of one employee on one day."""

    employee_id: str
    work_day: dt.date
    minutes: int = 0
    project: Optional[str] = None
    project_id: Optional[str] = None
    project_short: Optional[str] = None
    customer: Optional[str] = None
    customer_po: Optional[str] = None
    internal_po: Optional[str] = None
    task: Optional[str] = None
    provenance: Provenance = Provenance.RAW

    @property
    def project_label(self) -> Optional[str]:
        return self.project_short or self.project


@dataclass(frozen=True, slots=True)
class StaffplanOverride:
    """Planned assignment that takes precedence over booked project data.

    ``recency`` orders overrides sharing an employee and day; the larger one
    is authoritative.
    """

    employee_id: str
    work_day: dt.date
    recency: int
    project_short: Optional[str] = None
    customer: Optional[str] = None
    customer_po: Optional[str] = None
    internal_po: Optional[str] = None


OverrideKey = Tuple[str, str]
OverrideIndex = Dict[OverrideKey, StaffplanOverride]


@dataclass(frozen=True, slots=True)
class TimesheetMeta:
    customer: Optional[str] = None
    customer_po: Optional[str] = None
    internal_po: Optional[str] = None

    def lines(self) -> List[str]:
        lines: List[str] = []
        if self.customer:
            lines.append(f"Kunde: {self.customer}")
        if self.customer_po:
            lines.append(f"Kunden-PO: {self.customer_po}")
        if self.internal_po:
            lines.append(f"Internal-PO: {self.internal_po}")
        return lines

    def merged_over(self, fallback: Optional["TimesheetMeta"]) -> "TimesheetMeta":
        if fallback is None:
            return self
        return TimesheetMeta(
            customer=self.customer or fallback.customer,
            customer_po=self.customer_po or fallback.customer_po,
            internal_po=self.internal_po or fallback.internal_po,
        )


@dataclass(slots=True)
class Group:
    label: str
    entries: List[TimeEntry] = field(default_factory=list)

    @property
    def total_minutes(self) -> int:
        return sum(entry.minutes for entry in self.entries)


__all__ = [
    "Group",
    "OverrideIndex",
    "OverrideKey",
    "Provenance",
    "StaffplanOverride",
    "TimeEntry",
    "TimesheetMeta",
]
