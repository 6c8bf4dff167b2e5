from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Optional, Sequence, Union

from reportlab.lib.colors import HexColor
from reportlab.lib.pagesizes import A4
from reportlab.lib.utils import ImageReader
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas

from .layout import BODY, GroupMode, TextStyle, layout_timesheet
from .records import TimeEntry, TimesheetMeta

logger = logging.getLogger(__name__)

ELLIPSIS = "…"


def _font_name(style: TextStyle) -> str:
    return "Helvetica-Bold" if style.bold else "Helvetica"


def fit_text(text: str, width: float, font_name: str, size: float) -> str:
    """Cut ``text`` so that it fits into ``width`` points."""
    if width <= 0:
        return ""
    if stringWidth(text, font_name, size) <= width:
        return text
    trimmed = text
    while trimmed and stringWidth(trimmed + ELLIPSIS, font_name, size) > width:
        trimmed = trimmed[:-1]
    return trimmed + ELLIPSIS if trimmed else ""


class ReportLabSurface:
    """Drawing surface writing a PDF into memory.

    Callers address the page top-down; ReportLab's origin is bottom left.
    """

    def __init__(self, title: str, pagesize=A4) -> None:
        self._buffer = io.BytesIO()
        self._canvas = canvas.Canvas(self._buffer, pagesize=pagesize)
        self._canvas.setTitle(title)
        self.page_width, self.page_height = pagesize
        self.cursor_y = 0.0
        self.page_count = 1

    def _flip(self, y: float) -> float:
        return self.page_height - y

    def begin_page(self) -> None:
        self._canvas.showPage()
        self.page_count += 1

    def place_text(
        self,
        text: str,
        x: float,
        y: float,
        width: float,
        align: str = "left",
        style: TextStyle = BODY,
    ) -> None:
        font_name = _font_name(style)
        fitted = fit_text(text, width, font_name, style.size)
        if not fitted:
            return
        page = self._canvas
        page.setFont(font_name, style.size)
        page.setFillColor(HexColor(style.color))
        baseline = self._flip(y) - style.size * 0.85
        if align == "right":
            page.drawRightString(x + width, baseline, fitted)
        elif align == "center":
            page.drawCentredString(x + width / 2, baseline, fitted)
        else:
            page.drawString(x, baseline, fitted)

    def draw_rect(self, x: float, y: float, width: float, height: float, fill: str) -> None:
        page = self._canvas
        page.saveState()
        page.setFillColor(HexColor(fill))
        page.rect(x, self._flip(y) - height, width, height, stroke=0, fill=1)
        page.restoreState()

    def draw_line(self, x1: float, y1: float, x2: float, y2: float, stroke: str, line_width: float = 1.0) -> None:
        page = self._canvas
        page.saveState()
        page.setStrokeColor(HexColor(stroke))
        page.setLineWidth(line_width)
        page.line(x1, self._flip(y1), x2, self._flip(y2))
        page.restoreState()

    def draw_image(self, path: Union[str, Path], x: float, y: float, width: float, height: float) -> None:
        image_path = Path(path)
        if not image_path.is_file():
            raise FileNotFoundError(f"Bilddatei nicht gefunden: {image_path}")
        image = ImageReader(str(image_path))
        self._canvas.drawImage(
            image,
            x,
            self._flip(y) - height,
            width=width,
            height=height,
            preserveAspectRatio=True,
            anchor="nw",
            mask="auto",
        )

    def finalize(self) -> bytes:
        self._canvas.save()
        return self._buffer.getvalue()


def render_timesheet(
    entries: Sequence[TimeEntry],
    group_mode: Union[str, GroupMode] = GroupMode.WEEK,
    title: str = "Erfassungsbogen",
    period_label: Optional[str] = None,
    logo_path: Optional[Union[str, Path]] = None,
    meta: Optional[TimesheetMeta] = None,
    show_week_column: bool = False,
) -> bytes:
    surface = ReportLabSurface(title)
    layout_timesheet(
        surface,
        entries,
        group_mode=group_mode,
        title=title,
        period_label=period_label,
        logo_path=logo_path,
        meta=meta,
        show_week_column=show_week_column,
    )
    content = surface.finalize()
    logger.info("Rendered Erfassungsbogen: %d entries, %d pages, %d bytes", len(entries), surface.page_count, len(content))
    return content
