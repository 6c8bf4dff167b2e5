from __future__ import annotations

import datetime as dt

from sqlalchemy.orm import Session

from zeiterfassung.models import StaffplanEntry
from zeiterfassung.records import Provenance, StaffplanOverride, TimesheetMeta
from zeiterfassung.staffplan import (
    build_override_index,
    header_meta,
    load_override_index,
    load_overrides,
    reconcile,
)


def _override(day: str = "2024-01-08", recency: int = 1, **fields) -> StaffplanOverride:
    fields.setdefault("employee_id", "E1")
    return StaffplanOverride(work_day=dt.date.fromisoformat(day), recency=recency, **fields)


def test_empty_overrides_build_empty_index():
    assert build_override_index([]) == {}


def test_latest_override_wins_regardless_of_order():
    older = _override(recency=3, project_short="ALT")
    newer = _override(recency=7, project_short="NEU")
    other_day = _override(day="2024-01-09", recency=1, project_short="X")

    for ordering in ([older, newer, other_day], [newer, other_day, older]):
        index = build_override_index(ordering)
        assert index[("E1", "2024-01-08")].project_short == "NEU"
        assert index[("E1", "2024-01-09")].project_short == "X"
        assert len(index) == 2


def test_equal_recency_keeps_first_seen():
    first = _override(recency=5, project_short="ERST")
    second = _override(recency=5, project_short="ZWEIT")
    index = build_override_index([first, second])
    assert index[("E1", "2024-01-08")].project_short == "ERST"


def test_reconcile_without_index_passes_rows_through(make_entry):
    entry = make_entry(project_short="P1")
    assert reconcile([entry], {}) == [entry]
    assert reconcile([entry], None) == [entry]
    assert reconcile([entry], {})[0].provenance is Provenance.RAW
    assert reconcile([], build_override_index([_override()])) == []


def test_reconcile_coalesces_override_fields(make_entry):
    entry = make_entry(
        project="Booked project",
        project_id="B-1",
        project_short="BOOK",
        customer="Kunde A",
        customer_po="CPO-1",
        internal_po="IPO-1",
        task="Montage",
    )
    index = build_override_index([_override(project_short="PLAN", internal_po="IPO-9", customer=None, customer_po="")])

    (result,) = reconcile([entry], index)

    assert result.project == "PLAN"
    assert result.project_id == "PLAN"
    assert result.project_short == "PLAN"
    assert result.internal_po == "IPO-9"
    assert result.customer == "Kunde A"
    assert result.customer_po == "CPO-1"
    assert result.task == "Montage"
    assert result.minutes == entry.minutes
    assert result.provenance is Provenance.STAFFPLAN
    assert entry.provenance is Provenance.RAW
    assert entry.project_short == "BOOK"


def test_reconcile_keeps_booked_project_when_override_has_none(make_entry):
    entry = make_entry(project_short="BOOK")
    index = build_override_index([_override(project_short=None, customer="Kunde B")])
    (result,) = reconcile([entry], index)
    assert result.project_short == "BOOK"
    assert result.customer == "Kunde B"
    assert result.provenance is Provenance.STAFFPLAN


def test_reconcile_only_touches_matching_employee_and_day(make_entry):
    matching = make_entry(project_short="A")
    other_employee = make_entry(employee_id="E2", project_short="B")
    other_day = make_entry(day="2024-01-09", project_short="C")
    index = build_override_index([_override(project_short="PLAN")])

    result = reconcile([matching, other_employee, other_day], index)

    assert [entry.project_short for entry in result] == ["PLAN", "B", "C"]
    assert result[1] is other_employee
    assert result[2] is other_day


def test_reconcile_is_idempotent(make_entry):
    rows = [make_entry(project_short="A"), make_entry(day="2024-01-10", project_short="B")]
    index = build_override_index([_override(project_short="PLAN", customer_po="CPO")])
    once = reconcile(rows, index)
    assert reconcile(once, index) == once


def test_header_meta_uses_latest_booked_day(make_entry):
    rows = [make_entry(day="2024-01-08"), make_entry(day="2024-01-12")]
    index = build_override_index(
        [
            _override(day="2024-01-08", customer="Früher"),
            _override(day="2024-01-12", customer="Später", customer_po="CPO-2", internal_po="IPO-2"),
        ]
    )
    assert header_meta(rows, index) == TimesheetMeta(customer="Später", customer_po="CPO-2", internal_po="IPO-2")
    assert header_meta(rows, {}) is None
    assert header_meta([make_entry(day="2024-01-09")], index) is None


def test_load_overrides_reads_range_and_blanks(session: Session):
    session.add_all(
        [
            StaffplanEntry(employee_id="E1", employee_name="Anna", work_date=dt.date(2024, 1, 8), project_short="ALT"),
            StaffplanEntry(employee_id="E1", employee_name="Anna", work_date=dt.date(2024, 1, 8), project_short="NEU", customer_po=" "),
            StaffplanEntry(employee_id="E1", employee_name="Anna", work_date=dt.date(2024, 2, 1), project_short="SPÄTER"),
        ]
    )
    session.flush()

    overrides = load_overrides(session, dt.date(2024, 1, 1), dt.date(2024, 1, 31))
    assert [item.project_short for item in overrides] == ["ALT", "NEU"]
    assert overrides[1].customer_po is None
    assert overrides[0].recency < overrides[1].recency

    index = load_override_index(session, dt.date(2024, 1, 1), dt.date(2024, 1, 31))
    assert list(index) == [("E1", "2024-01-08")]
    assert index[("E1", "2024-01-08")].project_short == "NEU"
