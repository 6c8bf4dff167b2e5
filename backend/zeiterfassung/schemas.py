from __future__ import annotations

import datetime as dt
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_serializer

from .records import TimeEntry, TimesheetMeta


def _serialize_datetime(value: dt.datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=dt.timezone.utc)
    else:
        value = value.astimezone(dt.timezone.utc)
    return value.isoformat()


def _strip_optional(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    text = value.strip()
    return text or None


class EmployeeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    employee_id: str
    name: str
    email: Optional[str] = None
    language: str = "de"


class StaffplanProjectResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    work_date: dt.date
    calendar_week: Optional[str] = None
    customer: Optional[str] = None
    internal_po: Optional[str] = None
    customer_po: Optional[str] = None
    project_short: Optional[str] = None
    planned_hours: Optional[float] = None


class EmployeeTodayResponse(BaseModel):
    date: dt.date
    projects: List[StaffplanProjectResponse]


class TimeStartRequest(BaseModel):
    employee_id: str
    project_short: Optional[str] = None
    customer: Optional[str] = None
    customer_po: Optional[str] = None
    internal_po: Optional[str] = None

    @field_validator("employee_id")
    @classmethod
    def _require_employee(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("employee_id fehlt")
        return value


class TimeEndRequest(BaseModel):
    employee_id: str
    activity: Optional[str] = None

    @field_validator("employee_id")
    @classmethod
    def _require_employee(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("employee_id fehlt")
        return value

    @field_validator("activity")
    @classmethod
    def _strip_activity(cls, value: Optional[str]) -> Optional[str]:
        return _strip_optional(value)


class TimeClockResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    employee_id: str
    work_date: dt.date
    project_short: Optional[str]
    customer_po: Optional[str]
    internal_po: Optional[str]
    start_ts: dt.datetime
    end_ts: Optional[dt.datetime]
    activity: Optional[str]
    minutes: int

    @model_serializer(mode="plain", when_used="json")
    def _serialize(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "employee_id": self.employee_id,
            "work_date": self.work_date.isoformat(),
            "project_short": self.project_short,
            "customer_po": self.customer_po,
            "internal_po": self.internal_po,
            "start_ts": _serialize_datetime(self.start_ts),
            "end_ts": _serialize_datetime(self.end_ts) if self.end_ts else None,
            "activity": self.activity,
            "minutes": self.minutes,
        }


class TimeStartResponse(BaseModel):
    entry: TimeClockResponse
    already_running: bool = False


class TimeEndResponse(BaseModel):
    entry: TimeClockResponse
    net_hours: float


class CurrentTimeResponse(BaseModel):
    running: bool
    start_time: Optional[dt.datetime] = None


class StaffplanImportResponse(BaseModel):
    imported: int
    header_row: int
    date_from: dt.date
    date_to: dt.date
    date_cols: int
    employees_created: int


class SharePointImportRequest(BaseModel):
    url: str


class TimeEntryPayload(BaseModel):
    employee_id: str
    work_date: dt.date
    minutes: int = Field(ge=0)
    project: Optional[str] = None
    project_id: Optional[str] = None
    project_short: Optional[str] = None
    customer: Optional[str] = None
    customer_po: Optional[str] = None
    internal_po: Optional[str] = None
    task: Optional[str] = None

    def to_record(self) -> TimeEntry:
        return TimeEntry(
            employee_id=self.employee_id,
            work_day=self.work_date,
            minutes=self.minutes,
            project=_strip_optional(self.project),
            project_id=_strip_optional(self.project_id),
            project_short=_strip_optional(self.project_short),
            customer=_strip_optional(self.customer),
            customer_po=_strip_optional(self.customer_po),
            internal_po=_strip_optional(self.internal_po),
            task=_strip_optional(self.task),
        )


class TimesheetRequest(BaseModel):
    rows: List[TimeEntryPayload] = Field(default_factory=list)
    group_mode: str = "week"
    title: Optional[str] = None
    period_label: Optional[str] = None
    show_week_column: bool = False
    apply_staffplan: bool = True
    with_logo: bool = True
    customer: Optional[str] = None
    customer_po: Optional[str] = None
    internal_po: Optional[str] = None

    def meta(self) -> Optional[TimesheetMeta]:
        if not (self.customer or self.customer_po or self.internal_po):
            return None
        return TimesheetMeta(
            customer=_strip_optional(self.customer),
            customer_po=_strip_optional(self.customer_po),
            internal_po=_strip_optional(self.internal_po),
        )
