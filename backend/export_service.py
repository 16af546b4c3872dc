# backend/export_service.py
import io
import re
from datetime import datetime
from typing import Optional

import mammoth
from docx import Document as DocxDocument
from docx.enum.text import WD_ALIGN_PARAGRAPH
from docx.shared import Pt, RGBColor

from entities import FinalDocument, RankedGoal, Vision

DOCX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

TITLE = "Klant in Beeld"
SUBTITLE = "Geconsolideerde Visie, Doelen & Scope"
NOT_FILLED = "Niet ingevuld"
FOOTER_PREFIX = "Gegenereerd op"
BULLET = "• "

VISION_HEADINGS = [
    ("current_situation", "Huidige situatie"),
    ("desired_situation", "Gewenste situatie"),
    ("change_direction", "Beweging"),
    ("stakeholders", "Belanghebbenden"),
]
H_VISION, H_GOALS, H_SCOPE, H_OUT_OF_SCOPE = "1. Visie", "2. Doelen", "3. Scope", "Buiten scope"

DUTCH_MONTHS = [
    "januari", "februari", "maart", "april", "mei", "juni",
    "juli", "augustus", "september", "oktober", "november", "december",
]
GOAL_LINE = re.compile(r"^(\d+)\.\s(.*)$", re.S)


def _dutch_date(d: datetime) -> str:
    return f"{d.day} {DUTCH_MONTHS[d.month - 1]} {d.year}"


def _muted(paragraph, size=10):
    for run in paragraph.runs:
        run.italic = True
        run.font.size = Pt(size)
        run.font.color.rgb = RGBColor(0x99, 0x99, 0x99)


def build_docx(final: FinalDocument, session_name: Optional[str] = None) -> bytes:
    doc = DocxDocument()
    doc.styles["Normal"].font.name = "Calibri"
    doc.styles["Normal"].font.size = Pt(12)

    doc.add_heading(TITLE, level=0).alignment = WD_ALIGN_PARAGRAPH.CENTER
    sub = doc.add_paragraph(SUBTITLE)
    sub.alignment = WD_ALIGN_PARAGRAPH.CENTER

    doc.add_heading(H_VISION, level=1)
    vision = final.vision.to_dict()
    for key, label in VISION_HEADINGS:
        doc.add_heading(label, level=2)
        doc.add_paragraph(vision[key] or NOT_FILLED)

    doc.add_heading(H_GOALS, level=1)
    for goal in sorted(final.goals, key=lambda g: g.rank):
        doc.add_paragraph(f"{goal.rank}. {goal.text or NOT_FILLED}")

    doc.add_heading(H_SCOPE, level=1)
    doc.add_heading(H_OUT_OF_SCOPE, level=2)
    for item in final.out_of_scope:
        doc.add_paragraph(BULLET + item)

    footer = doc.add_paragraph(f"{FOOTER_PREFIX} {_dutch_date(final.generated_at)}")
    footer.alignment = WD_ALIGN_PARAGRAPH.RIGHT
    _muted(footer)
    if session_name:
        tag = doc.add_paragraph(f"Sessie: {session_name}")
        tag.alignment = WD_ALIGN_PARAGRAPH.RIGHT
        _muted(tag)

    buf = io.BytesIO()
    doc.save(buf)
    return buf.getvalue()


def _filled(text: str) -> str:
    return "" if text == NOT_FILLED else text


def read_docx(data: bytes, session_id: str = "") -> FinalDocument:
    """Parse a file written by `build_docx` back into a FinalDocument."""
    doc = DocxDocument(io.BytesIO(data))
    labels = {label: key for key, label in VISION_HEADINGS}
    vision = {}
    goals, out_of_scope = [], []
    section, field = None, None

    for p in doc.paragraphs:
        text = p.text
        style = p.style.name if p.style is not None else ""
        if text.startswith(FOOTER_PREFIX) and p.alignment == WD_ALIGN_PARAGRAPH.RIGHT:
            break
        if style.startswith("Heading"):
            if text in (H_VISION, H_GOALS, H_SCOPE):
                section, field = text, None
            elif section == H_VISION and text in labels:
                field = labels[text]
            elif section == H_SCOPE and text == H_OUT_OF_SCOPE:
                field = H_OUT_OF_SCOPE
            continue
        if section == H_VISION and field:
            vision[field] = _filled(text)
        elif section == H_GOALS:
            m = GOAL_LINE.match(text)
            if m:
                goals.append(RankedGoal(int(m.group(1)), _filled(m.group(2))))
        elif section == H_SCOPE and field == H_OUT_OF_SCOPE and text.startswith(BULLET):
            out_of_scope.append(text[len(BULLET):])

    return FinalDocument(
        session_id=session_id,
        vision=Vision(**{k: vision.get(k, "") for k, _ in VISION_HEADINGS}),
        goals=goals,
        out_of_scope=out_of_scope,
    )


def docx_to_html(data: bytes) -> str:
    """HTML preview of an exported document."""
    result = mammoth.convert_to_html(io.BytesIO(data), style_map=_style_map())
    return f'<div class="docx-page">{result.value}</div>'


def _style_map():
    return """
    p[style-name='Normal'] => p:fresh
    table => table.table
    """
