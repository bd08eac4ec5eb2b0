"""
Shared PDF (reportlab) and DOCX (python-docx) rendering for report exports.

Reports are described as a list of Section objects so each module only shapes its data;
the layout lives here once.
"""
from __future__ import annotations

import html
import re
from dataclasses import dataclass, field
from io import BytesIO
from xml.sax.saxutils import escape

from docx import Document
from docx.shared import Pt
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import LongTable, Paragraph, SimpleDocTemplate, Spacer, TableStyle

from app.fyndr.utils import utcnow

ACCENT = "#1F3A5F"
GRID = "#C9D3DF"
STRIPE = "#F3F6FA"


@dataclass
class Section:
    heading: str
    paragraphs: list[str] = field(default_factory=list)
    bullets: list[str] = field(default_factory=list)
    table: list[list[str]] | None = None  # first row is the header
    level: int = 1


_BLOCK_RE = re.compile(r"</?(?:h[1-6]|p|div|br|li|ul|ol|tr|table)[^>]*>", re.I)
_TAG_RE = re.compile(r"<[^>]+>")


def html_to_paragraphs(content: str | None) -> list[str]:
    """Flatten stored rich-text HTML into plain paragraphs."""
    if not content:
        return []
    text = _BLOCK_RE.sub("\n", content)
    text = html.unescape(_TAG_RE.sub("", text))
    return [line.strip() for line in text.splitlines() if line.strip()]


def _cell(value) -> str:
    return "" if value is None else str(value)


def render_pdf(title: str, sections: list[Section], *, subtitle: str | None = None) -> bytes:
    buf = BytesIO()
    doc = SimpleDocTemplate(
        buf,
        pagesize=A4,
        leftMargin=0.75 * inch,
        rightMargin=0.75 * inch,
        topMargin=0.8 * inch,
        bottomMargin=0.8 * inch,
        title=title,
    )
    styles = getSampleStyleSheet()
    h1 = ParagraphStyle("H1", parent=styles["Heading1"], fontSize=18, leading=22, spaceAfter=8)
    h2 = ParagraphStyle("H2", parent=styles["Heading2"], fontSize=14, leading=18, spaceBefore=10, spaceAfter=6, keepWithNext=True)
    h3 = ParagraphStyle("H3", parent=styles["Heading3"], fontSize=12, leading=15, spaceBefore=6, spaceAfter=4, keepWithNext=True)
    body = ParagraphStyle("Body", parent=styles["Normal"], fontSize=10, leading=14, spaceAfter=6, splitLongWords=True)
    bullet = ParagraphStyle("Bullet", parent=body, leftIndent=14, bulletIndent=4)
    cell = ParagraphStyle("Cell", parent=body, fontSize=8.5, leading=11, spaceAfter=0)
    cell_h = ParagraphStyle("CellH", parent=cell, textColor=colors.white, fontName="Helvetica-Bold")

    generated = utcnow().strftime("%d %b %Y %H:%M UTC")

    def _footer(canvas, doc_):
        canvas.saveState()
        w, _h = doc_.pagesize
        canvas.setFont("Helvetica", 8)
        canvas.drawString(doc_.leftMargin, doc_.bottomMargin - 14, f"FYNDR · {generated}")
        canvas.drawRightString(w - doc_.rightMargin, doc_.bottomMargin - 14, f"Page {canvas.getPageNumber()}")
        canvas.restoreState()

    story: list = [Paragraph(escape(title), h1)]
    if subtitle:
        story.append(Paragraph(escape(subtitle), body))
    story.append(Spacer(1, 6))

    for section in sections:
        story.append(Paragraph(escape(section.heading), h2 if section.level <= 1 else h3))
        for text in section.paragraphs:
            story.append(Paragraph(escape(_cell(text)), body))
        for text in section.bullets:
            story.append(Paragraph(escape(_cell(text)), bullet, bulletText="•"))
        if section.table:
            rows = [
                [Paragraph(escape(_cell(c)), cell_h if i == 0 else cell) for c in row]
                for i, row in enumerate(section.table)
            ]
            tbl = LongTable(rows, repeatRows=1)
            tbl.setStyle(
                TableStyle(
                    [
                        ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor(ACCENT)),
                        ("GRID", (0, 0), (-1, -1), 0.5, colors.HexColor(GRID)),
                        ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.HexColor(STRIPE)]),
                        ("VALIGN", (0, 0), (-1, -1), "TOP"),
                        ("TOPPADDING", (0, 0), (-1, -1), 3),
                        ("BOTTOMPADDING", (0, 0), (-1, -1), 3),
                    ]
                )
            )
            story.append(tbl)
            story.append(Spacer(1, 6))

    doc.build(story, onFirstPage=_footer, onLaterPages=_footer)
    return buf.getvalue()


def render_docx(title: str, sections: list[Section], *, subtitle: str | None = None) -> bytes:
    document = Document()
    document.styles["Normal"].font.size = Pt(10)
    document.add_heading(title, level=0)
    if subtitle:
        document.add_paragraph(subtitle)

    for section in sections:
        document.add_heading(section.heading, level=1 if section.level <= 1 else 2)
        for text in section.paragraphs:
            document.add_paragraph(_cell(text))
        for text in section.bullets:
            document.add_paragraph(_cell(text), style="List Bullet")
        if section.table:
            header, *rows = section.table
            table = document.add_table(rows=1, cols=len(header))
            table.style = "Table Grid"
            for i, value in enumerate(header):
                run = table.rows[0].cells[i].paragraphs[0].add_run(_cell(value))
                run.bold = True
            for row in rows:
                cells = table.add_row().cells
                for i, value in enumerate(row[: len(header)]):
                    cells[i].text = _cell(value)

    document.add_paragraph(f"Generated {utcnow().strftime('%d %b %Y %H:%M UTC')}")
    buf = BytesIO()
    document.save(buf)
    return buf.getvalue()
