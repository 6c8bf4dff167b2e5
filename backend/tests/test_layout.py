from __future__ import annotations

from typing import Any, Dict, List, Optional

import pytest

from zeiterfassung.calendar_utils import minutes_to_hhmm
from zeiterfassung.layout import (
    BOTTOM_RESERVE,
    MARGIN,
    ROW_HEIGHT,
    BODY,
    GroupMode,
    LayoutStage,
    TextStyle,
    bucket_entries,
    group_entries,
    group_key,
    layout_timesheet,
    sort_group_keys,
    table_columns,
)
from zeiterfassung.records import TimesheetMeta


class RecordingSurface:
    """Drawing surface that remembers every call instead of drawing."""

    def __init__(self, page_width: float = 595.28, page_height: float = 841.89, images: Optional[set] = None):
        self.page_width = page_width
        self.page_height = page_height
        self.cursor_y = 0.0
        self.page = 1
        self.images = images or set()
        self.calls: List[Dict[str, Any]] = []
        self.finalized = False

    def _record(self, kind: str, **payload: Any) -> None:
        self.calls.append({"kind": kind, "page": self.page, **payload})

    def begin_page(self) -> None:
        self.page += 1
        self._record("page")

    def place_text(self, text, x, y, width, align="left", style: TextStyle = BODY) -> None:
        self._record("text", text=text, x=x, y=y, width=width, align=align, style=style)

    def draw_rect(self, x, y, width, height, fill) -> None:
        self._record("rect", x=x, y=y, width=width, height=height, fill=fill)

    def draw_line(self, x1, y1, x2, y2, stroke, line_width=1.0) -> None:
        self._record("line", x1=x1, y1=y1, x2=x2, y2=y2, stroke=stroke)

    def draw_image(self, path, x, y, width, height) -> None:
        if str(path) not in self.images:
            raise FileNotFoundError(path)
        self._record("image", path=str(path), x=x, y=y)

    def finalize(self) -> bytes:
        self.finalized = True
        return b""

    def texts(self, **filters: Any) -> List[Dict[str, Any]]:
        return [
            call
            for call in self.calls
            if call["kind"] == "text" and all(call.get(key) == value for key, value in filters.items())
        ]


def _summary_totals(surface: RecordingSurface) -> List[str]:
    texts = [call for call in surface.calls if call["kind"] == "text"]
    return [texts[position + 1]["text"] for position, call in enumerate(texts) if call["text"] == "Summe"]


def _hhmm_to_minutes(value: str) -> int:
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


# ---------------------------------------------------------------------------
# Grouping
# ---------------------------------------------------------------------------


def test_group_mode_parse_accepts_aliases():
    assert GroupMode.parse("by-day") is GroupMode.DAY
    assert GroupMode.parse("date") is GroupMode.DAY
    assert GroupMode.parse("WEEK") is GroupMode.WEEK
    assert GroupMode.parse(GroupMode.PROJECT) is GroupMode.PROJECT
    with pytest.raises(ValueError):
        GroupMode.parse("monat")


def test_week_grouping_merges_same_iso_week(make_entry):
    groups = group_entries([make_entry("2024-01-08"), make_entry("2024-01-10")], "by-week")
    assert [group.label for group in groups] == ["KW 02/2024"]
    assert len(groups[0].entries) == 2


def test_project_key_appends_internal_po_and_placeholder(make_entry):
    assert group_key(make_entry(project_short="ABC", internal_po="4711"), GroupMode.PROJECT) == "ABC • 4711"
    assert group_key(make_entry(project="Langname"), GroupMode.PROJECT) == "Langname"
    assert group_key(make_entry(), GroupMode.PROJECT) == "—"
    assert group_key(make_entry("2024-02-29"), GroupMode.DAY) == "2024-02-29"


def test_bucketing_preserves_first_seen_order(make_entry):
    entries = [make_entry(project_short=name) for name in ("Zeta", "Alpha", "Zeta", "Mitte")]
    buckets = bucket_entries(entries, GroupMode.PROJECT)
    assert list(buckets) == ["Zeta", "Alpha", "Mitte"]
    assert len(buckets["Zeta"]) == 2


def test_group_keys_use_german_collation():
    keys = ["Zeta", "Äpfel", "Birne", "apfel", "Apfel"]
    ordered = sort_group_keys(keys)
    assert ordered.index("Äpfel") < ordered.index("Birne")
    assert ordered.index("apfel") < ordered.index("Birne")
    assert ordered[-1] == "Zeta"
    assert ordered.index("Apfel") < ordered.index("Äpfel")


def test_entries_sorted_by_day_then_project(make_entry):
    entries = [
        make_entry("2024-01-10", project_short="Beta"),
        make_entry("2024-01-08", project_short="Öl"),
        make_entry("2024-01-08", project_short="Zug"),
        make_entry("2024-01-08", project_short="Nord"),
    ]
    (group,) = group_entries(entries, GroupMode.WEEK)
    assert [(entry.work_day.day, entry.project_short) for entry in group.entries] == [
        (8, "Nord"),
        (8, "Öl"),
        (8, "Zug"),
        (10, "Beta"),
    ]


def test_day_groups_are_in_calendar_order(make_entry):
    entries = [make_entry("2024-01-12"), make_entry("2024-01-08"), make_entry("2024-01-10")]
    assert [group.label for group in group_entries(entries, "day")] == ["2024-01-08", "2024-01-10", "2024-01-12"]


# ---------------------------------------------------------------------------
# Layout
# ---------------------------------------------------------------------------


def test_task_column_absorbs_remaining_width():
    columns = table_columns(500.0)
    assert [column.key for column in columns] == ["date", "project", "po", "task", "time"]
    assert sum(column.width for column in columns) == pytest.approx(500.0)
    assert columns[-1].align == "right"
    with_week = table_columns(500.0, show_week_column=True)
    assert with_week[0].key == "kw"
    assert sum(column.width for column in with_week) == pytest.approx(500.0)


def test_single_group_table(make_entry):
    surface = RecordingSurface()
    entries = [
        make_entry("2024-01-08", 90, project_short="ABC", internal_po="4711", task="Montage"),
        make_entry("2024-01-09", 30),
    ]
    layout = layout_timesheet(surface, entries, GroupMode.WEEK, title="Erfassungsbogen", period_label="Januar 2024")

    assert surface.texts(text="Erfassungsbogen")[0]["align"] == "center"
    assert surface.texts(text="Januar 2024")
    assert surface.texts(text="KW 02/2024")
    for header in ("Datum", "Projekt", "PO", "Tätigkeit"):
        assert len(surface.texts(text=header)) == 1
    assert surface.texts(text="Zeit")[0]["align"] == "right"
    assert surface.texts(text="08.01.2024")
    assert surface.texts(text="Montage")
    assert surface.texts(text="01:30")[0]["align"] == "right"
    assert len(surface.texts(text="—")) == 3
    assert _summary_totals(surface) == ["02:00"]
    assert surface.texts(text="Gesamt: 02:00")
    assert layout.pages == 1
    assert layout.stages == [
        LayoutStage.HEADER,
        LayoutStage.GROUP_TITLE,
        LayoutStage.TABLE_HEADER,
        LayoutStage.ROW,
        LayoutStage.ROW,
        LayoutStage.SUMMARY,
        LayoutStage.DONE,
    ]


def test_rows_follow_group_order_on_the_page(make_entry):
    surface = RecordingSurface()
    entries = [make_entry("2024-01-15", 60), make_entry("2024-01-08", 45)]
    layout_timesheet(surface, entries, GroupMode.WEEK)
    first = surface.texts(text="KW 02/2024")[0]
    second = surface.texts(text="KW 03/2024")[0]
    assert first["y"] < second["y"]
    assert _summary_totals(surface) == ["00:45", "01:00"]


def test_meta_lines_are_drawn_in_header_box(make_entry):
    surface = RecordingSurface()
    meta = TimesheetMeta(customer="Kunde AG", customer_po="CPO-1")
    layout_timesheet(surface, [make_entry(minutes=15)], meta=meta)
    assert surface.texts(text="Kunde: Kunde AG")
    assert surface.texts(text="Kunden-PO: CPO-1")
    assert not surface.texts(text="Internal-PO: None")
    assert surface.texts(text="Gesamt: 00:15")[0]["align"] == "right"


def test_page_break_keeps_every_minute_once(make_entry):
    surface = RecordingSurface()
    entries = [make_entry(f"2024-01-{day:02d}", 15 + day, task=f"Aufgabe {n}") for n in range(3) for day in range(1, 29)]
    layout = layout_timesheet(surface, entries, GroupMode.PROJECT)

    assert layout.pages > 1
    assert surface.page == layout.pages
    assert len([call for call in surface.calls if call["kind"] == "page"]) == layout.pages - 1
    totals = _summary_totals(surface)
    assert len(totals) == 1
    assert _hhmm_to_minutes(totals[0]) == sum(entry.minutes for entry in entries)
    row_cells = [call for call in surface.calls if call["kind"] == "text" and call["text"].startswith("Aufgabe")]
    assert len(row_cells) == len(entries)
    # the table header is not repeated after a break
    assert len(surface.texts(text="Datum")) == 1
    assert not surface.texts(text="Datum", page=2)


def test_rows_never_cross_the_bottom_reserve(make_entry):
    surface = RecordingSurface()
    entries = [make_entry(f"2024-03-{day:02d}", 60) for day in range(1, 32)] * 3
    layout_timesheet(surface, entries, GroupMode.DAY)

    limit = surface.page_height - MARGIN - BOTTOM_RESERVE
    row_times = [call for call in surface.calls if call["kind"] == "text" and call["text"] == "01:00"]
    assert row_times
    assert all(call["y"] + ROW_HEIGHT <= limit for call in row_times)
    for page in range(2, surface.page + 1):
        first_on_page = min(call["y"] for call in surface.calls if call["page"] == page and call["kind"] == "text")
        assert first_on_page >= MARGIN
    totals = _summary_totals(surface)
    assert len(totals) == 31
    assert sum(_hhmm_to_minutes(value) for value in totals) == sum(entry.minutes for entry in entries)


def test_header_only_on_first_page(make_entry):
    surface = RecordingSurface()
    entries = [make_entry(f"2024-01-{day:02d}", 10) for day in range(1, 31)] * 3
    layout_timesheet(surface, entries, GroupMode.WEEK, title="Bogen")
    titles = surface.texts(text="Bogen")
    assert len(titles) == 1
    assert titles[0]["page"] == 1


def test_empty_input_renders_header_only():
    surface = RecordingSurface()
    layout = layout_timesheet(surface, [], GroupMode.DAY, title="Leer")
    assert layout.stages == [LayoutStage.HEADER, LayoutStage.DONE]
    assert surface.texts(text="Leer")
    assert surface.texts(text="Gesamt: 00:00")
    assert not surface.texts(text="Datum")


def test_missing_logo_is_skipped(make_entry):
    surface = RecordingSurface()
    layout_timesheet(surface, [make_entry()], logo_path="/nicht/vorhanden.png", title="Mit Logo")
    assert not [call for call in surface.calls if call["kind"] == "image"]
    assert surface.texts(text="Mit Logo")[0]["x"] > MARGIN


def test_existing_logo_is_drawn(make_entry):
    surface = RecordingSurface(images={"logo.png"})
    layout_timesheet(surface, [make_entry()], logo_path="logo.png")
    (image,) = [call for call in surface.calls if call["kind"] == "image"]
    assert image["x"] == MARGIN


def test_week_column_shows_week_number(make_entry):
    surface = RecordingSurface()
    layout_timesheet(surface, [make_entry("2024-01-10")], GroupMode.DAY, show_week_column=True)
    assert surface.texts(text="KW")
    assert surface.texts(text="KW02")
    assert minutes_to_hhmm(60) in [call["text"] for call in surface.texts()]
