from __future__ import annotations

import tempfile
import unittest
from io import BytesIO
from pathlib import Path

from docx import Document

from contract_document import (
    ContractDocumentError,
    docx_paragraphs,
    load_template,
    render_contract_docx,
)


def _docx_bytes(doc) -> bytes:
    buf = BytesIO()
    doc.save(buf)
    return buf.getvalue()


def _template() -> bytes:
    doc = Document()
    doc.add_paragraph("Cliente: <<NOMBRE>>")
    split = doc.add_paragraph("Plan: ")
    # Word frequently splits a placeholder over several runs.
    split.add_run("<<PL")
    split.add_run("AN>>").bold = True
    split.add_run(" por $<<VALOR_PLAN>>")
    doc.add_paragraph("<<MOVIL>>")
    doc.add_paragraph("Falta: [<<DESCONOCIDO>>]")
    table = doc.add_table(rows=1, cols=2)
    table.cell(0, 0).text = "Meses"
    table.cell(0, 1).text = "<<MESES1-1>>"
    doc.sections[0].footer.paragraphs[0].text = "Ejecutivo: <<EJECUTIVO>>"
    return _docx_bytes(doc)


class TestRenderContractDocx(unittest.TestCase):
    def test_placeholders_are_filled(self) -> None:
        fields = {
            "NOMBRE": "Ana Pérez",
            "PLAN": "Plan Multi 1",
            "VALOR_PLAN": 12000,
            "MOVIL": "Primera línea.\n\nSegunda línea.",
            "MESES1-1": 7,
            "EJECUTIVO": "Pedro",
        }
        rendered = render_contract_docx(_template(), fields)

        paragraphs = docx_paragraphs(rendered)
        self.assertIn("Cliente: Ana Pérez", paragraphs)
        self.assertIn("Plan: Plan Multi 1 por $12000", paragraphs)
        self.assertIn("Primera línea.\n\nSegunda línea.", paragraphs)
        self.assertIn("Falta: []", paragraphs)
        self.assertIn("7", paragraphs)
        self.assertFalse(any("<<" in p for p in paragraphs))

        doc = Document(BytesIO(rendered))
        self.assertEqual(doc.sections[0].footer.paragraphs[0].text, "Ejecutivo: Pedro")

    def test_newlines_become_line_breaks(self) -> None:
        rendered = render_contract_docx(_template(), {"MOVIL": "a\nb"})
        doc = Document(BytesIO(rendered))
        movil = [p for p in doc.paragraphs if p.text == "a\nb"]
        self.assertEqual(len(movil), 1)
        self.assertIn("<w:br/>", movil[0]._p.xml)

    def test_invalid_template_raises(self) -> None:
        with self.assertRaises(ContractDocumentError):
            render_contract_docx(b"not a docx", {})
        with self.assertRaises(ContractDocumentError):
            docx_paragraphs(b"")


class TestLoadTemplate(unittest.TestCase):
    def test_reads_template_from_directory(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            (Path(tmp) / "contrato_template.docx").write_bytes(_template())
            blob = load_template(tmp, "contrato_template.docx")
            self.assertTrue(blob.startswith(b"PK"))

    def test_missing_template_raises(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            with self.assertRaises(ContractDocumentError):
                load_template(tmp, "contrato_template2.docx")


if __name__ == "__main__":
    unittest.main()
