from __future__ import annotations

import datetime as dt

from sqlalchemy import Column, Date, DateTime, Integer, Numeric, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


UTC = dt.timezone.utc


def _as_utc(value: dt.datetime) -> dt.datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class Employee(Base):
    __tablename__ = "employees"

    employee_id = Column(String(64), primary_key=True)
    name = Column(String(200), nullable=False, index=True)
    email = Column(String(200), nullable=True)
    language = Column(String(8), nullable=False, default="de")


class StaffplanEntry(Base):
    """One planned assignment of an employee on a day.

    Several rows may exist for the same employee and day; the one with the
    highest ``id`` is authoritative.
    """

    __tablename__ = "staffplan"

    id = Column(Integer, primary_key=True, autoincrement=True)
    employee_id = Column(String(64), nullable=False, index=True)
    employee_name = Column(String(200), nullable=False)
    work_date = Column(Date, nullable=False, index=True)
    calendar_week = Column(String(8), nullable=True)
    customer = Column(String(200), nullable=True)
    internal_po = Column(String(100), nullable=True)
    customer_po = Column(String(100), nullable=True)
    project_short = Column(String(100), nullable=True)
    planned_hours = Column(Numeric(6, 2), nullable=True)


class TimeClockEntry(Base):
    __tablename__ = "time_entries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    employee_id = Column(String(64), nullable=False, index=True)
    work_date = Column(Date, nullable=False, index=True)
    project_short = Column(String(100), nullable=True)
    customer = Column(String(200), nullable=True)
    customer_po = Column(String(100), nullable=True)
    internal_po = Column(String(100), nullable=True)
    start_ts = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    end_ts = Column(DateTime(timezone=True), nullable=True)
    activity = Column(Text, nullable=True)

    @property
    def is_open(self) -> bool:
        return self.end_ts is None

    def close(self, now: dt.datetime, activity: str | None = None) -> None:
        if not self.is_open:
            return
        self.end_ts = _as_utc(now)
        if activity:
            self.activity = activity

    @property
    def minutes(self) -> int:
        if self.end_ts is None:
            return 0
        duration = _as_utc(self.end_ts) - _as_utc(self.start_ts)
        return max(int(duration.total_seconds()) // 60, 0)
