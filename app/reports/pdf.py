"""Paginated plain-text report PDF drawn with the ReportLab canvas."""
from __future__ import annotations

import io
from dataclasses import dataclass
from typing import List, Optional

from reportlab.pdfgen import canvas


@dataclass(frozen=True)
class PageGeometry:
    width: float = 595  # A4 in points
    height: float = 842
    margin: float = 48
    line_height: float = 16
    font_size: float = 11
    title_size: float = 16
    title_gap: float = 6
    body_font: str = "Helvetica"
    title_font: str = "Helvetica-Bold"
    wrap_chars: int = 95
    title_wrap_chars: int = 80


DEFAULT_GEOMETRY = PageGeometry()


@dataclass(frozen=True)
class DrawOp:
    page: int
    x: float
    y: float
    text: str
    font: str
    size: float


def wrap_pdf_line(text: str, max_chars: int = 95) -> List[str]:
    """Greedy word wrap; never splits a word, so a single long word may exceed max_chars."""
    words = text.split()
    if not words:
        return [""]
    lines: List[str] = []
    current = ""
    for word in words:
        candidate = f"{current} {word}" if current else word
        if len(candidate) > max_chars and current:
            lines.append(current)
            current = word
        else:
            current = candidate
    if current:
        lines.append(current)
    return lines


def layout_report_lines(report_text: str, geometry: PageGeometry = DEFAULT_GEOMETRY) -> List[DrawOp]:
    g = geometry
    top = g.height - g.margin
    page = 0
    y = top
    ops: List[DrawOp] = []
    title_done = False

    for raw in report_text.split("\n"):
        if not raw.strip():
            y -= g.line_height / 2
            continue
        is_title = not title_done
        title_done = True
        segments = wrap_pdf_line(raw, g.title_wrap_chars if is_title else g.wrap_chars)
        for i, segment in enumerate(segments):
            bold = is_title and i == 0
            if y <= g.margin:
                page += 1
                y = top
            ops.append(DrawOp(
                page=page,
                x=g.margin,
                y=y,
                text=segment,
                font=g.title_font if bold else g.body_font,
                size=g.title_size if bold else g.font_size,
            ))
            y -= g.line_height + g.title_gap if bold else g.line_height
    return ops


def build_report_pdf(
    report_text: str,
    geometry: PageGeometry = DEFAULT_GEOMETRY,
    title: Optional[str] = None,
) -> bytes:
    buf = io.BytesIO()
    # invariant=1 pins the creation date and document id so output is byte-stable
    c = canvas.Canvas(buf, pagesize=(geometry.width, geometry.height), invariant=1)
    if title:
        c.setTitle(title)
    current = 0
    for op in layout_report_lines(report_text, geometry):
        while current < op.page:
            c.showPage()
            current += 1
        c.setFont(op.font, op.size)
        c.drawString(op.x, op.y, op.text)
    c.showPage()
    c.save()
    return buf.getvalue()
