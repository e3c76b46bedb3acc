from __future__ import annotations

import tempfile
import unittest
from io import BytesIO
from pathlib import Path

import httpx
from openpyxl import Workbook

from plan_catalog import PlanDataError
from workbook_source import build_form_data, load_form_data, read_workbook_tables

CATALOG_HEADER = ["Código", "Plan", "Valor", "Promo1", "Meses1", "Promo2", "Meses2", "Detalles"]


def _workbook_bytes(*, with_structure: bool, catalog_title: str = "Catalog", extra_first: bool = False) -> bytes:
    wb = Workbook()
    first = wb.active
    if extra_first:
        first.title = "Notas"
        first.append(["Este libro contiene el catálogo"])
        ws = wb.create_sheet(catalog_title)
    else:
        ws = first
        ws.title = catalog_title
    ws.append(CATALOG_HEADER)
    ws.append(["NM01", "Plan Multi 1", "12.000,00", 10000, "6 meses", "n/a", None, "Gigas libres"])
    ws.append([None, None, None, None, None, None, None, None])
    ws.append(["ND01", "Plan Datos", 8000, None, None, None, None, "Solo datos"])

    if with_structure:
        st = wb.create_sheet("Structure")
        st.append(["Section", "Subsection", "ComponentType", "MultiPrefixes", "MaxAdditional", "ExtraMapping"])
        st.append(["Movil", "nuevo", "movil_group", "multi:NM,datos:ND", 2, ""])

    buf = BytesIO()
    wb.save(buf)
    return buf.getvalue()


class TestReadWorkbook(unittest.TestCase):
    def test_reads_catalog_and_structure(self) -> None:
        tables = read_workbook_tables(_workbook_bytes(with_structure=True))
        self.assertEqual(list(tables.catalog_header), CATALOG_HEADER)
        self.assertEqual(len(tables.catalog_rows), 2)
        self.assertEqual(tables.catalog_rows[0]["Código"], "NM01")
        self.assertEqual(tables.catalog_rows[0]["Meses2"], "")
        self.assertIsNotNone(tables.structure_rows)

        data = build_form_data(tables)
        self.assertEqual(data.warnings, ())
        self.assertEqual(len(data.catalog), 2)
        self.assertEqual(data.catalog.find("NM01").regular_price, 12000)
        self.assertEqual(data.catalog.find("NM01").promo1_duration, 6)
        self.assertFalse(data.structure.used_default)
        self.assertEqual(data.structure.widget("Movil", "nuevo").max_additional_lines, 2)

    def test_missing_structure_uses_default(self) -> None:
        tables = read_workbook_tables(_workbook_bytes(with_structure=False))
        self.assertIsNone(tables.structure_rows)
        with self.assertLogs("form_structure", level="WARNING"):
            data = build_form_data(tables)
        self.assertTrue(data.structure.used_default)
        self.assertEqual(len(data.warnings), 1)
        self.assertEqual(data.structure.sections(), ["Hogar", "Movil"])

    def test_catalog_sheet_found_by_name(self) -> None:
        tables = read_workbook_tables(_workbook_bytes(with_structure=False, catalog_title="CATALOG", extra_first=True))
        self.assertEqual(tables.catalog_rows[1]["Código"], "ND01")

    def test_missing_columns_are_reported(self) -> None:
        wb = Workbook()
        wb.active.append(["Código", "Plan", "Valor"])
        wb.active.append(["T1", "Trio", 30990])
        buf = BytesIO()
        wb.save(buf)
        with self.assertLogs("plan_catalog", level="WARNING"):
            data = build_form_data(read_workbook_tables(buf.getvalue()))
        self.assertTrue(any("promo1" in w for w in data.warnings))
        self.assertEqual(data.catalog.find("T1").regular_price, 30990)

    def test_invalid_workbook(self) -> None:
        with self.assertRaises(PlanDataError):
            read_workbook_tables(b"")
        with self.assertRaises(PlanDataError):
            read_workbook_tables(b"this is not a workbook")


class TestLoadFormData(unittest.TestCase):
    def test_local_path(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "data.xlsx"
            path.write_bytes(_workbook_bytes(with_structure=True))
            data = load_form_data(str(path))
        self.assertEqual(len(data.catalog), 2)

    def test_missing_file(self) -> None:
        with self.assertRaises(PlanDataError):
            load_form_data("/nonexistent/data.xlsx")

    def test_url_source_is_downloaded(self) -> None:
        payload = _workbook_bytes(with_structure=True)
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return httpx.Response(200, content=payload)

        original = httpx.Client

        def client_factory(*args, **kwargs):
            kwargs["transport"] = httpx.MockTransport(handler)
            return original(*args, **kwargs)

        httpx.Client = client_factory  # type: ignore[assignment]
        try:
            data = load_form_data("https://example.com/data.xlsx", timeout_s=5)
        finally:
            httpx.Client = original  # type: ignore[assignment]
        self.assertEqual(seen, ["https://example.com/data.xlsx"])
        self.assertEqual(len(data.catalog), 2)

    def test_url_error_status(self) -> None:
        original = httpx.Client

        def client_factory(*args, **kwargs):
            kwargs["transport"] = httpx.MockTransport(lambda request: httpx.Response(404))
            return original(*args, **kwargs)

        httpx.Client = client_factory  # type: ignore[assignment]
        try:
            with self.assertRaises(PlanDataError):
                load_form_data("https://example.com/missing.xlsx")
        finally:
            httpx.Client = original  # type: ignore[assignment]


if __name__ == "__main__":
    unittest.main()
