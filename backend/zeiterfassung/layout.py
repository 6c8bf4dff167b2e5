"""Grouping and page layout of the Erfassungsbogen.

The layout works on any :class:`DrawingSurface`. Coordinates are in points
with the origin in the top left corner of the page and ``y`` growing
downwards; backends with another origin translate on their side.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Protocol, Sequence, Tuple, Union

from pyuca import Collator

from .calendar_utils import day_key, format_date_de, iso_week, minutes_to_hhmm, week_label
from .records import Group, TimeEntry, TimesheetMeta

logger = logging.getLogger(__name__)

PLACEHOLDER = "—"

MARGIN = 48.0
HEADER_ROW_HEIGHT = 20.0
ROW_HEIGHT = 18.0
ROW_GAP = 2.0
BOTTOM_RESERVE = 40.0
GROUP_TITLE_HEIGHT = 16.0

LOGO_WIDTH = 140.0
LOGO_HEIGHT = 42.0
META_BOX_WIDTH = 170.0
META_BOX_HEIGHT = 54.0

HEADER_FILL = "#F2F4F7"
META_FILL = "#F8FAFC"
DIVIDER_COLOR = "#E4E7EC"
HEADER_LINE_COLOR = "#D0D5DD"


class GroupMode(str, Enum):
    DAY = "day"
    WEEK = "week"
    PROJECT = "project"

    @classmethod
    def parse(cls, value: Union[str, "GroupMode"]) -> "GroupMode":
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower()
        if text.startswith("by-"):
            text = text[3:]
        if text == "date":
            text = "day"
        return cls(text)


@dataclass(frozen=True)
class TextStyle:
    size: float = 9.0
    bold: bool = False
    color: str = "#000000"


BODY = TextStyle()
BODY_BOLD = TextStyle(bold=True, color="#111111")
TITLE = TextStyle(size=16.0, bold=True, color="#111111")
PERIOD = TextStyle(size=10.0, color="#444444")
GROUP_TITLE = TextStyle(size=11.0, bold=True, color="#111111")
META = TextStyle(size=9.0, color="#344054")


class DrawingSurface(Protocol):
    page_width: float
    page_height: float
    cursor_y: float

    def begin_page(self) -> None:
        ...

    def place_text(
        self,
        text: str,
        x: float,
        y: float,
        width: float,
        align: str = "left",
        style: TextStyle = BODY,
    ) -> None:
        ...

    def draw_rect(self, x: float, y: float, width: float, height: float, fill: str) -> None:
        ...

    def draw_line(self, x1: float, y1: float, x2: float, y2: float, stroke: str, line_width: float = 1.0) -> None:
        ...

    def draw_image(self, path: Union[str, Path], x: float, y: float, width: float, height: float) -> None:
        ...

    def finalize(self) -> bytes:
        ...


# ---------------------------------------------------------------------------
# Grouping
# ---------------------------------------------------------------------------


@lru_cache(maxsize=1)
def _collator() -> Collator:
    return Collator()


def collation_key(text: Optional[str]) -> Tuple[int, ...]:
    return _collator().sort_key(text or "")


def group_key(entry: TimeEntry, mode: GroupMode) -> str:
    if mode is GroupMode.DAY:
        return day_key(entry.work_day)
    if mode is GroupMode.WEEK:
        return week_label(entry.work_day)
    label = entry.project_label or PLACEHOLDER
    if entry.internal_po:
        return f"{label} • {entry.internal_po}"
    return label


def bucket_entries(entries: Iterable[TimeEntry], mode: GroupMode) -> Dict[str, List[TimeEntry]]:
    buckets: Dict[str, List[TimeEntry]] = {}
    for entry in entries:
        buckets.setdefault(group_key(entry, mode), []).append(entry)
    return buckets


def sort_group_keys(keys: Iterable[str]) -> List[str]:
    return sorted(keys, key=collation_key)


def sort_group_entries(entries: Iterable[TimeEntry]) -> List[TimeEntry]:
    return sorted(entries, key=lambda entry: (day_key(entry.work_day), collation_key(entry.project_label)))


def group_entries(entries: Iterable[TimeEntry], mode: Union[str, GroupMode]) -> List[Group]:
    mode = GroupMode.parse(mode)
    buckets = bucket_entries(entries, mode)
    return [Group(label=key, entries=sort_group_entries(buckets[key])) for key in sort_group_keys(buckets)]


# ---------------------------------------------------------------------------
# Layout
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Column:
    key: str
    title: str
    width: float
    align: str = "left"


def table_columns(usable_width: float, show_week_column: bool = False) -> List[Column]:
    """Fixed columns; the task column takes whatever width is left."""
    if show_week_column:
        fixed = [("kw", "KW", 56.0), ("date", "Datum", 72.0), ("project", "Projekt", 160.0), ("po", "PO", 68.0)]
    else:
        fixed = [("date", "Datum", 72.0), ("project", "Projekt", 170.0), ("po", "PO", 70.0)]
    time_width = 70.0
    task_width = usable_width - sum(width for _, _, width in fixed) - time_width
    columns = [Column(key, title, width) for key, title, width in fixed]
    columns.append(Column("task", "Tätigkeit", task_width))
    columns.append(Column("time", "Zeit", time_width, align="right"))
    return columns


class LayoutStage(str, Enum):
    HEADER = "header"
    GROUP_TITLE = "group_title"
    TABLE_HEADER = "table_header"
    ROW = "row"
    PAGE_BREAK = "page_break"
    SUMMARY = "summary"
    DONE = "done"


def _cell_values(entry: TimeEntry) -> Dict[str, str]:
    _, week = iso_week(entry.work_day)
    return {
        "kw": f"KW{week:02d}",
        "date": format_date_de(entry.work_day),
        "project": entry.project_label or PLACEHOLDER,
        "po": entry.internal_po or PLACEHOLDER,
        "task": entry.task or PLACEHOLDER,
        "time": minutes_to_hhmm(entry.minutes),
    }


class TimesheetLayout:
    """Streams grouped entries onto a surface in a single forward pass."""

    def __init__(self, surface: DrawingSurface, *, show_week_column: bool = False) -> None:
        self.surface = surface
        self.usable_width = surface.page_width - 2 * MARGIN
        self.columns = table_columns(self.usable_width, show_week_column)
        self.stages: List[LayoutStage] = []
        self.pages = 1

    def _enter(self, stage: LayoutStage) -> None:
        self.stages.append(stage)

    @property
    def bottom_limit(self) -> float:
        return self.surface.page_height - MARGIN

    def draw_header(
        self,
        title: str,
        period_label: Optional[str] = None,
        logo_path: Optional[Union[str, Path]] = None,
        meta_lines: Sequence[str] = (),
    ) -> None:
        self._enter(LayoutStage.HEADER)
        surface = self.surface
        content_width = self.usable_width

        logo_offset = 0.0
        if logo_path:
            logo_offset = LOGO_WIDTH + 20
            try:
                surface.draw_image(logo_path, MARGIN, MARGIN - 6, LOGO_WIDTH, LOGO_HEIGHT)
            except (OSError, ValueError) as exc:
                logger.warning("Logo %s skipped: %s", logo_path, exc)

        title_x = MARGIN + logo_offset
        title_width = content_width - logo_offset - META_BOX_WIDTH
        surface.place_text(title, title_x, MARGIN, title_width, align="center", style=TITLE)
        if period_label:
            surface.place_text(period_label, title_x, MARGIN + 24, title_width, align="center", style=PERIOD)

        if meta_lines:
            box_x = MARGIN + content_width - META_BOX_WIDTH
            box_y = MARGIN - 2
            surface.draw_rect(box_x, box_y, META_BOX_WIDTH, META_BOX_HEIGHT, META_FILL)
            y = box_y + 10
            for line in list(meta_lines)[:4]:
                surface.place_text(line, box_x + 10, y, META_BOX_WIDTH - 20, align="right", style=META)
                y += 11

        line_y = MARGIN + 64
        surface.draw_line(MARGIN, line_y, MARGIN + content_width, line_y, DIVIDER_COLOR, 1.0)
        surface.cursor_y = MARGIN + 82

    def draw_group(self, group: Group, *, first: bool) -> int:
        surface = self.surface
        if not first:
            surface.cursor_y += 8
            surface.draw_line(MARGIN, surface.cursor_y, MARGIN + self.usable_width, surface.cursor_y, DIVIDER_COLOR, 1.0)
            surface.cursor_y += 8

        self._enter(LayoutStage.GROUP_TITLE)
        surface.place_text(group.label, MARGIN, surface.cursor_y, self.usable_width, style=GROUP_TITLE)
        surface.cursor_y += GROUP_TITLE_HEIGHT

        self._draw_table_header()
        for entry in group.entries:
            if surface.cursor_y + ROW_HEIGHT + BOTTOM_RESERVE > self.bottom_limit:
                self._enter(LayoutStage.PAGE_BREAK)
                surface.begin_page()
                self.pages += 1
                surface.cursor_y = MARGIN
            self._draw_row(entry)
        self._draw_summary(group.total_minutes)
        return group.total_minutes

    def _draw_table_header(self) -> None:
        self._enter(LayoutStage.TABLE_HEADER)
        surface = self.surface
        y = surface.cursor_y
        surface.draw_rect(MARGIN, y, self.usable_width, HEADER_ROW_HEIGHT, HEADER_FILL)
        x = MARGIN
        for column in self.columns:
            surface.place_text(column.title, x + 6, y + 5, column.width - 10, align=column.align, style=BODY_BOLD)
            x += column.width
        surface.draw_line(MARGIN, y + HEADER_ROW_HEIGHT, MARGIN + self.usable_width, y + HEADER_ROW_HEIGHT, HEADER_LINE_COLOR, 1.0)
        surface.cursor_y = y + HEADER_ROW_HEIGHT + 4

    def _draw_row(self, entry: TimeEntry) -> None:
        self._enter(LayoutStage.ROW)
        surface = self.surface
        y = surface.cursor_y
        values = _cell_values(entry)
        x = MARGIN
        for column in self.columns:
            surface.place_text(values[column.key], x + 6, y, column.width - 10, align=column.align, style=BODY)
            x += column.width
        surface.draw_line(MARGIN, y + ROW_HEIGHT, MARGIN + self.usable_width, y + ROW_HEIGHT, DIVIDER_COLOR, 0.7)
        surface.cursor_y = y + ROW_HEIGHT + ROW_GAP

    def _draw_summary(self, total_minutes: int) -> None:
        self._enter(LayoutStage.SUMMARY)
        surface = self.surface
        y = surface.cursor_y + 6
        task = next(column for column in self.columns if column.key == "task")
        time = self.columns[-1]
        right_edge = MARGIN + self.usable_width
        surface.place_text("Summe", right_edge - (time.width + task.width), y, task.width - 10, align="right", style=BODY_BOLD)
        surface.place_text(minutes_to_hhmm(total_minutes), right_edge - time.width + 6, y, time.width - 12, align="right", style=BODY_BOLD)
        surface.cursor_y = y + 22

    def render(
        self,
        entries: Sequence[TimeEntry],
        group_mode: Union[str, GroupMode],
        title: str,
        period_label: Optional[str] = None,
        logo_path: Optional[Union[str, Path]] = None,
        meta: Optional[TimesheetMeta] = None,
    ) -> int:
        """Draw the complete sheet and return the grand total in minutes."""
        grand_total = sum(entry.minutes for entry in entries)
        meta_lines = (meta.lines() if meta else []) + [f"Gesamt: {minutes_to_hhmm(grand_total)}"]
        self.draw_header(title, period_label, logo_path, meta_lines)

        groups = group_entries(entries, group_mode)
        drawn = 0
        for position, group in enumerate(groups):
            drawn += self.draw_group(group, first=position == 0)
            if position != len(groups) - 1:
                self.surface.cursor_y += 6
        self._enter(LayoutStage.DONE)
        logger.debug("Laid out %d groups on %d pages", len(groups), self.pages)
        return drawn


def layout_timesheet(
    surface: DrawingSurface,
    entries: Sequence[TimeEntry],
    group_mode: Union[str, GroupMode] = GroupMode.WEEK,
    title: str = "Erfassungsbogen",
    period_label: Optional[str] = None,
    logo_path: Optional[Union[str, Path]] = None,
    meta: Optional[TimesheetMeta] = None,
    show_week_column: bool = False,
) -> TimesheetLayout:
    layout = TimesheetLayout(surface, show_week_column=show_week_column)
    layout.render(entries, group_mode, title, period_label, logo_path, meta)
    return layout
