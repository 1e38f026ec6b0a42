"""PDF generation for the weekly floater roster.

This module creates printable PDF rosters showing:
- A week grid with one row per planner and one column per day
- Uncovered shifts still to staff, in their own row
- A summary page with weekly hours per planner
"""

from dataclasses import dataclass
from datetime import date
from io import BytesIO
from pathlib import Path
from typing import Iterable, Optional, Union

from jollyplanner.domain.models import Schedule, UncoveredShift, Workforce
from jollyplanner.domain.timeutils import weekday_name
from jollyplanner.validation.conflicts import detect_conflicts

# Color definitions (RGB tuples, 0-1 scale)
COLORS = {
    "booking": (0.75, 0.85, 0.95),  # Light blue
    "conflict": (0.95, 0.6, 0.6),  # Red
    "uncovered": (1.0, 0.9, 0.5),  # Yellow
    "unbound": (0.9, 0.9, 0.9),  # Light gray
    "grid": (0.7, 0.7, 0.7),
    "bar": (0.4, 0.6, 0.8),
}


@dataclass
class _GridRow:
    """One row of the week grid."""

    label: str
    cells: list[list[tuple[str, tuple]]]
    fill: tuple
    hours: Optional[float] = None  # None for the uncovered shifts row


class PDFGenerator:
    """Generates printable weekly roster PDFs.

    Example:
        >>> generator = PDFGenerator()
        >>> generator.generate(week, store.planners(), workforce, "roster.pdf", shifts)
    """

    def __init__(
        self,
        page_width: float = 792,  # Letter landscape width (11")
        page_height: float = 612,  # Letter landscape height (8.5")
        margin: float = 36,  # 0.5 inch margins
    ):
        self.page_width = page_width
        self.page_height = page_height
        self.margin = margin

    def generate(
        self,
        week: list[date],
        planners: Iterable[Schedule],
        workforce: Workforce,
        output_path: Union[str, Path],
        shifts: Optional[list[UncoveredShift]] = None,
        include_summary: bool = True,
    ) -> None:
        """Generate the roster PDF and save it to a file.

        Args:
            week: The seven dates of the week.
            planners: Planners in display order.
            workforce: Rosters, for site names.
            output_path: Path to save the PDF.
            shifts: Uncovered shifts, drawn as an extra row.
            include_summary: Whether to include the summary page.
        """
        try:
            from reportlab.lib.pagesizes import landscape, letter
            from reportlab.pdfgen import canvas
        except ImportError:
            raise ImportError(
                "reportlab is required for PDF generation. "
                "Install with: pip install reportlab"
            )

        c = canvas.Canvas(str(output_path), pagesize=landscape(letter))
        self._draw(c, week, list(planners), workforce, shifts or [], include_summary)
        c.save()

    def generate_to_buffer(
        self,
        week: list[date],
        planners: Iterable[Schedule],
        workforce: Workforce,
        shifts: Optional[list[UncoveredShift]] = None,
        include_summary: bool = True,
    ) -> BytesIO:
        """Generate the roster PDF and return it as a bytes buffer."""
        try:
            from reportlab.lib.pagesizes import landscape, letter
            from reportlab.pdfgen import canvas
        except ImportError:
            raise ImportError(
                "reportlab is required for PDF generation. "
                "Install with: pip install reportlab"
            )

        buffer = BytesIO()
        c = canvas.Canvas(buffer, pagesize=landscape(letter))
        self._draw(c, week, list(planners), workforce, shifts or [], include_summary)
        c.save()
        buffer.seek(0)
        return buffer

    def _draw(
        self,
        c,
        week: list[date],
        planners: list[Schedule],
        workforce: Workforce,
        shifts: list[UncoveredShift],
        include_summary: bool,
    ) -> None:
        conflicts = detect_conflicts(planners)
        site_names = {s.id: s.name for s in workforce.sites}
        self._draw_grid_pages(c, week, planners, site_names, conflicts, shifts)
        if include_summary:
            self._draw_summary_page(c, week, planners, shifts, conflicts)

    def _draw_grid_pages(
        self,
        c,
        week: list[date],
        planners: list[Schedule],
        site_names: dict[str, str],
        conflicts: set[str],
        shifts: list[UncoveredShift],
    ) -> None:
        """Draw the week grid, paginated by planner rows."""
        header_height = 60
        footer_height = 40
        day_header_height = 20
        name_width = 120
        usable_height = (
            self.page_height - 2 * self.margin - header_height - footer_height - day_header_height
        )

        rows: list[_GridRow] = []
        if shifts:
            rows.append(
                _GridRow("Uncovered shifts", self._uncovered_cells(week, shifts), (1, 1, 1))
            )
        for planner in planners:
            rows.append(
                _GridRow(
                    planner.label,
                    self._planner_cells(week, planner, site_names, conflicts),
                    (1, 1, 1) if planner.is_bound else COLORS["unbound"],
                    planner.weekly_hours(week),
                )
            )

        row_heights = [self._row_height(row.cells) for row in rows]
        pages: list[list[int]] = [[]]
        used = 0.0
        for index, height in enumerate(row_heights):
            if pages[-1] and used + height > usable_height:
                pages.append([])
                used = 0.0
            pages[-1].append(index)
            used += height

        column_width = (self.page_width - 2 * self.margin - name_width) / len(week)
        for page_num, page_rows in enumerate(pages, 1):
            self._draw_header(c, week, len(planners), header_height)

            y = self.page_height - self.margin - header_height
            self._draw_day_header(c, week, self.margin + name_width, y, column_width)
            y -= day_header_height

            for index in page_rows:
                height = row_heights[index]
                y -= height
                self._draw_row(c, rows[index], self.margin, name_width, column_width, y, height)

            self._draw_legend(c, self.margin, self.margin + 10)
            c.setFont("Helvetica", 9)
            c.drawCentredString(
                self.page_width / 2,
                self.margin - 10,
                f"Page {page_num} of {len(pages)}",
            )
            c.showPage()

    def _planner_cells(
        self,
        week: list[date],
        planner: Schedule,
        site_names: dict[str, str],
        conflicts: set[str],
    ) -> list[list[tuple[str, tuple]]]:
        cells = []
        for day in week:
            bookings = sorted(planner.day(day), key=lambda a: (a.start_time, a.end_time))
            cells.append(
                [
                    (
                        f"{a.start_time}-{a.end_time} {site_names.get(a.site_id, a.site_id)}",
                        COLORS["conflict"] if a.id in conflicts else COLORS["booking"],
                    )
                    for a in bookings
                ]
            )
        return cells

    def _uncovered_cells(
        self,
        week: list[date],
        shifts: list[UncoveredShift],
    ) -> list[list[tuple[str, tuple]]]:
        cells: list[list[tuple[str, tuple]]] = [[] for _ in week]
        index = {day: i for i, day in enumerate(week)}
        for shift in shifts:
            if shift.date in index:
                cells[index[shift.date]].append(
                    (f"{shift.working_hours} {shift.site_name}", COLORS["uncovered"])
                )
        return cells

    def _row_height(self, cells: list[list[tuple[str, tuple]]]) -> float:
        most = max((len(items) for items in cells), default=0)
        return max(24.0, 12.0 * most + 6)

    def _draw_header(self, c, week: list[date], planner_count: int, header_height: float) -> None:
        """Draw page header with the week and title."""
        c.setFont("Helvetica-Bold", 16)
        c.drawString(
            self.margin,
            self.page_height - self.margin - 20,
            f"Floater Roster - week of {week[0].strftime('%B %d, %Y')}",
        )

        c.setFont("Helvetica", 10)
        c.drawString(
            self.margin,
            self.page_height - self.margin - 35,
            f"{week[0].isoformat()} to {week[-1].isoformat()}  |  Planners: {planner_count}",
        )

    def _draw_day_header(
        self, c, week: list[date], x: float, y: float, column_width: float
    ) -> None:
        c.setFont("Helvetica-Bold", 9)
        for i, day in enumerate(week):
            cx = x + i * column_width + column_width / 2
            c.drawCentredString(cx, y - 12, f"{weekday_name(day)[:3]} {day.strftime('%d/%m')}")

    def _draw_row(
        self,
        c,
        row: _GridRow,
        x: float,
        name_width: float,
        column_width: float,
        y: float,
        height: float,
    ) -> None:
        """Draw one planner (or the uncovered shifts) across the week."""
        c.setFillColorRGB(*row.fill)
        c.rect(x, y, name_width, height, fill=1, stroke=0)

        c.setFillColorRGB(0, 0, 0)
        c.setFont("Helvetica-Bold" if row.hours is None else "Helvetica", 9)
        c.drawString(x + 2, y + height - 12, row.label[:20])
        if row.hours is not None:
            c.setFont("Helvetica", 7)
            c.drawString(x + 2, y + height - 21, f"{row.hours:.1f}h")

        c.setStrokeColorRGB(*COLORS["grid"])
        c.setLineWidth(0.5)
        for i, items in enumerate(row.cells):
            cx = x + name_width + i * column_width
            c.rect(cx, y, column_width, height, fill=0, stroke=1)
            ty = y + height - 12
            for text, color in items:
                c.setFillColorRGB(*color)
                c.rect(cx + 1, ty - 2, column_width - 2, 11, fill=1, stroke=0)
                c.setFillColorRGB(0, 0, 0)
                c.setFont("Helvetica", 6.5)
                c.drawString(cx + 3, ty + 1, text[: int(column_width / 3.2)])
                ty -= 12
        c.line(x, y, x + name_width + len(row.cells) * column_width, y)

    def _draw_legend(self, c, x: float, y: float) -> None:
        """Draw legend for colors."""
        c.setFont("Helvetica-Bold", 8)
        c.drawString(x, y, "Legend:")

        items = [
            ("booking", "Booking"),
            ("conflict", "Overlapping booking"),
            ("uncovered", "Uncovered shift"),
            ("unbound", "Unbound planner"),
        ]

        c.setFont("Helvetica", 7)
        current_x = x + 45
        for key, label in items:
            c.setFillColorRGB(*COLORS[key])
            c.rect(current_x, y - 2, 12, 10, fill=1, stroke=1)
            c.setFillColorRGB(0, 0, 0)
            c.drawString(current_x + 15, y, label)
            current_x += 110

    def _draw_summary_page(
        self,
        c,
        week: list[date],
        planners: list[Schedule],
        shifts: list[UncoveredShift],
        conflicts: set[str],
    ) -> None:
        """Draw summary page with weekly hours per planner."""
        c.setFont("Helvetica-Bold", 16)
        c.drawString(
            self.margin,
            self.page_height - self.margin - 20,
            f"Roster Summary - week of {week[0].strftime('%B %d, %Y')}",
        )

        y = self.page_height - self.margin - 60
        c.setFont("Helvetica-Bold", 12)
        c.drawString(self.margin, y, "Overview")
        y -= 20

        total_hours = sum(p.weekly_hours(week) for p in planners)
        stats = [
            f"Planners: {len(planners)} ({sum(1 for p in planners if not p.is_bound)} unbound)",
            f"Booked hours: {total_hours:.1f}",
            f"Uncovered shifts: {len(shifts)}",
            f"Overlapping bookings: {len(conflicts)}",
        ]
        c.setFont("Helvetica", 10)
        for stat in stats:
            c.drawString(self.margin + 20, y, stat)
            y -= 15

        y -= 20
        c.setFont("Helvetica-Bold", 12)
        c.drawString(self.margin, y, "Weekly Hours")
        y -= 20

        hours = [(p.label, p.weekly_hours(week)) for p in planners]
        most = max((h for _, h in hours), default=0.0) or 1.0
        bar_max = 400
        c.setFont("Helvetica", 9)
        for label, value in hours:
            if y < self.margin + 20:
                break
            c.setFillColorRGB(0, 0, 0)
            c.drawString(self.margin + 20, y, label[:20])
            c.setFillColorRGB(*COLORS["bar"])
            c.rect(self.margin + 150, y - 2, bar_max * value / most, 10, fill=1, stroke=0)
            c.setFillColorRGB(0, 0, 0)
            c.drawString(self.margin + 155 + bar_max * value / most, y, f"{value:.1f}h")
            y -= 15

        c.showPage()
