from __future__ import annotations

import logging
import re
from io import BytesIO
from pathlib import Path
from typing import Iterator, List, Mapping, Union
from zipfile import BadZipFile

from docx import Document
from docx.opc.exceptions import PackageNotFoundError

logger = logging.getLogger(__name__)

DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

PLACEHOLDER_RE = re.compile(r"<<\s*([A-Za-z0-9_+\-]+)\s*>>")


class ContractDocumentError(RuntimeError):
    pass


def load_template(templates_dir: Union[str, Path], template_name: str) -> bytes:
    path = Path(templates_dir) / template_name
    try:
        return path.read_bytes()
    except OSError as e:
        raise ContractDocumentError(f"Could not read template {path}: {e}") from e


def _open(blob: bytes):
    try:
        return Document(BytesIO(blob))
    except (BadZipFile, PackageNotFoundError, KeyError, ValueError) as e:
        raise ContractDocumentError(f"Not a valid .docx document: {e}") from e


def _text_value(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _substitute(text: str, fields: Mapping[str, object]) -> str:
    return PLACEHOLDER_RE.sub(lambda m: _text_value(fields.get(m.group(1), "")), text)


def _iter_paragraphs(container) -> Iterator:
    for p in container.paragraphs:
        yield p
    for table in container.tables:
        for row in table.rows:
            for cell in row.cells:
                yield from _iter_paragraphs(cell)


def _all_paragraphs(doc) -> Iterator:
    yield from _iter_paragraphs(doc)
    for section in doc.sections:
        for part in (section.header, section.footer):
            if part.is_linked_to_previous:
                continue
            yield from _iter_paragraphs(part)


def _fill_paragraph(paragraph, fields: Mapping[str, object]) -> int:
    """Replace placeholders in one paragraph; returns how many were found."""
    runs = paragraph.runs
    full = "".join(r.text for r in runs)
    found = len(PLACEHOLDER_RE.findall(full))
    if not found:
        return 0

    # Placeholders contained in a single run keep that run's formatting.
    for run in runs:
        if PLACEHOLDER_RE.search(run.text):
            run.text = _substitute(run.text, fields)

    # Word often splits `<<KEY>>` across runs; collapse the rest into the first run.
    joined = "".join(r.text for r in runs)
    if PLACEHOLDER_RE.search(joined):
        runs[0].text = _substitute(joined, fields)
        for run in runs[1:]:
            run.text = ""
    return found


def render_contract_docx(template: bytes, fields: Mapping[str, object]) -> bytes:
    """
    Fill a `.docx` template and return the rendered document.

    `<<KEY>>` placeholders are replaced in the body, tables, headers and footers. Newlines in
    values become line breaks; keys missing from `fields` render as empty text.
    """
    doc = _open(template)
    replaced = 0
    for paragraph in _all_paragraphs(doc):
        replaced += _fill_paragraph(paragraph, fields)

    out = BytesIO()
    try:
        doc.save(out)
    except (OSError, ValueError) as e:
        raise ContractDocumentError(f"Could not save rendered document: {e}") from e
    logger.info("Rendered contract document (%d placeholders)", replaced)
    return out.getvalue()


def docx_paragraphs(blob: bytes) -> List[str]:
    """Body paragraph texts in document order, table cells included."""
    doc = _open(blob)
    return [p.text for p in _iter_paragraphs(doc)]
