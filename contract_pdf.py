from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from io import BytesIO
from typing import List, Optional, Tuple

from reportlab.lib import colors
from reportlab.lib.pagesizes import letter
from reportlab.lib.units import inch
from reportlab.lib.utils import simpleSplit
from reportlab.pdfgen import canvas

from contract_document import docx_paragraphs

DEFAULT_TITLE = "Contrato de servicios"

BODY_FONT = "Helvetica"
BODY_SIZE = 10
TITLE_FONT = "Helvetica-Bold"
TITLE_SIZE = 13
FOOTER_SIZE = 8


@dataclass(frozen=True)
class ContractPdfArtifact:
    title: str
    paragraphs: Tuple[str, ...]
    executive: str = ""
    generated_on: Optional[date] = None


def _wrap_paragraph(text: str, *, max_width: float) -> List[str]:
    """
    Split one paragraph into lines that fit `max_width`.

    Embedded newlines (line breaks in the source document) start a new line; an empty
    paragraph still takes one blank line so spacing in the document is kept.
    """
    lines: List[str] = []
    for chunk in (text or "").split("\n"):
        chunk = chunk.rstrip()
        if not chunk:
            lines.append("")
            continue
        lines.extend(simpleSplit(chunk, BODY_FONT, BODY_SIZE, max_width) or [""])
    return lines or [""]


def _draw_footer(c: canvas.Canvas, *, page_no: int, executive: str, page_w: float, margin: float) -> None:
    c.setFont(BODY_FONT, FOOTER_SIZE)
    c.setFillColor(colors.grey)
    y = margin * 0.6
    if executive:
        c.drawString(margin, y, f"Ejecutivo: {executive}")
    c.drawRightString(page_w - margin, y, f"Página {page_no}")
    c.setFillColor(colors.black)


def make_contract_pdf_bytes(artifact: ContractPdfArtifact) -> bytes:
    """
    Render a contract as a letter-size PDF.

    Paragraphs are word-wrapped to the page width and flow onto as many pages as needed.
    Every page carries a footer with the page number and the executive's name.
    """
    buf = BytesIO()
    c = canvas.Canvas(buf, pagesize=letter)
    # Uncompressed so tests can find text markers in the bytes.
    c.setPageCompression(0)
    c.setTitle(artifact.title or DEFAULT_TITLE)
    if artifact.executive:
        c.setAuthor(artifact.executive)

    w, h = letter
    margin = 0.75 * inch
    text_w = w - 2 * margin
    leading = BODY_SIZE * 1.35
    paragraph_gap = leading * 0.5
    bottom_y = margin + 0.25 * inch

    page_no = 1
    y = h - margin

    c.setFont(TITLE_FONT, TITLE_SIZE)
    c.drawString(margin, y, artifact.title or DEFAULT_TITLE)
    y -= TITLE_SIZE * 1.4
    if artifact.generated_on is not None:
        c.setFont(BODY_FONT, FOOTER_SIZE + 1)
        c.drawString(margin, y, f"Fecha: {artifact.generated_on.isoformat()}")
        y -= leading
    y -= paragraph_gap

    c.setFont(BODY_FONT, BODY_SIZE)
    for paragraph in artifact.paragraphs:
        for line in _wrap_paragraph(paragraph, max_width=text_w):
            if y < bottom_y:
                _draw_footer(c, page_no=page_no, executive=artifact.executive, page_w=w, margin=margin)
                c.showPage()
                page_no += 1
                y = h - margin
                c.setFont(BODY_FONT, BODY_SIZE)
            if line:
                c.drawString(margin, y, line)
            y -= leading
        y -= paragraph_gap

    _draw_footer(c, page_no=page_no, executive=artifact.executive, page_w=w, margin=margin)
    c.showPage()
    c.save()
    return buf.getvalue()


def export_contract_pdf(
    docx_blob: bytes,
    *,
    executive: str = "",
    title: str = DEFAULT_TITLE,
    generated_on: Optional[date] = None,
) -> bytes:
    """Export a rendered contract document (the stored `.docx`) to PDF."""
    texts = tuple(docx_paragraphs(docx_blob))
    return make_contract_pdf_bytes(
        ContractPdfArtifact(
            title=title,
            paragraphs=texts,
            executive=(executive or "").strip(),
            generated_on=generated_on,
        )
    )
