from __future__ import annotations

import unittest

from plan_catalog import (
    Catalog,
    PlanRecord,
    format_amount,
    format_duration,
    load_catalog,
    matches_any_prefix,
    matches_prefix,
    missing_required_columns,
    normalize_number,
    plan_from_row,
)


class TestNormalizeNumber(unittest.TestCase):
    def test_separator_styles(self) -> None:
        self.assertEqual(normalize_number("1.234,56"), 1234.56)
        self.assertEqual(normalize_number("1234.56"), 1234.56)
        self.assertEqual(normalize_number("12,5"), 12.5)
        # Several dots are thousands separators.
        self.assertEqual(normalize_number("1.234.567"), 1234567)

    def test_currency_text_and_native_numbers(self) -> None:
        # A lone dot is read as the decimal separator.
        self.assertEqual(normalize_number("$12.990"), 12.99)
        self.assertEqual(normalize_number("$ 12.990,00"), 12990)
        self.assertEqual(normalize_number(15000), 15000)
        self.assertEqual(normalize_number(15000.0), 15000)
        self.assertIsInstance(normalize_number(15000.0), int)

    def test_not_applicable_and_blank(self) -> None:
        for raw in ("n/a", "N/A", "No aplica", "-", "", "   ", None):
            self.assertEqual(normalize_number(raw), "", raw)

    def test_integer_durations(self) -> None:
        self.assertEqual(normalize_number("12 meses", integer=True, allow_text=True), 12)
        self.assertEqual(normalize_number(6.9, integer=True), 6)
        self.assertEqual(normalize_number("indefinido", integer=True, allow_text=True), "indefinido")
        self.assertEqual(normalize_number("indefinido", integer=True), "")

    def test_garbage_never_raises(self) -> None:
        self.assertEqual(normalize_number("abc"), "")
        self.assertEqual(normalize_number(float("nan")), "")
        self.assertEqual(normalize_number(True), "")


class TestPrefixMatching(unittest.TestCase):
    def test_prefix_boundary(self) -> None:
        self.assertTrue(matches_prefix("NM01", "NM"))
        self.assertTrue(matches_prefix("NM", "NM"))
        self.assertFalse(matches_prefix("NMX", "NM"))
        self.assertTrue(matches_prefix("NM-2", "NM"))
        self.assertFalse(matches_prefix("XNM01", "NM"))

    def test_empty_inputs(self) -> None:
        self.assertFalse(matches_prefix("", "NM"))
        self.assertFalse(matches_prefix("NM01", ""))

    def test_any_prefix(self) -> None:
        self.assertTrue(matches_any_prefix("DT01", ["DTF", "DT"]))
        self.assertFalse(matches_any_prefix("DTF01", ["DT"]))
        self.assertTrue(matches_any_prefix("DTF01", ["DT", " DTF "]))


class TestCatalog(unittest.TestCase):
    def test_plan_from_row_uses_aliases(self) -> None:
        plan = plan_from_row(
            {
                "Codigo": "NM02",
                "Plan": "Plan Multi 2",
                "Valor": "$12.000,00",
                "Promo1": "10.000,00",
                "Meses1": "6 meses",
                "Promo2": "n/a",
                "Meses2": "",
                "Detalles": "Gigas libres",
            }
        )
        self.assertEqual(plan.code, "NM02")
        self.assertEqual(plan.regular_price, 12000)
        self.assertEqual(plan.promo1_price, 10000)
        self.assertEqual(plan.promo1_duration, 6)
        self.assertEqual(plan.promo2_price, "")
        self.assertEqual(plan.promo2_duration, "")
        self.assertEqual(plan.details, "Gigas libres")

    def test_plan_from_row_native_cells(self) -> None:
        plan = plan_from_row({"Código": 101.0, "Plan": "Trio", "Valor": 30990, "Meses1": 12.0})
        self.assertEqual(plan.code, "101")
        self.assertEqual(plan.regular_price, 30990)
        self.assertEqual(plan.promo1_duration, 12)
        self.assertEqual(plan.promo1_price, "")

    def test_last_duplicate_wins_on_lookup(self) -> None:
        catalog = load_catalog(
            [
                {"Código": "T1", "Plan": "Old", "Valor": 1000},
                {"Código": "T1", "Plan": "New", "Valor": 2000},
            ]
        )
        self.assertEqual(len(catalog), 2)
        found = catalog.find("T1")
        self.assertIsNotNone(found)
        self.assertEqual(found.name, "New")
        self.assertIsNone(catalog.find(""))
        self.assertIsNone(catalog.find(None))

    def test_options_keep_catalog_order(self) -> None:
        def plan(code: str) -> PlanRecord:
            return PlanRecord(code, code, 1, "", "", "", "", "", "", "")

        catalog = Catalog([plan("NM02"), plan("ND01"), plan("NM01"), plan("NMX1")])
        codes = [p.code for p in catalog.options_for_prefixes(["NM"])]
        self.assertEqual(codes, ["NM02", "NM01"])
        self.assertEqual(catalog.options_for_prefixes([]), ())

    def test_missing_required_columns(self) -> None:
        header = ["Código", "Plan", "Valor", "Promo1", "Meses1", "Promo2", "Meses2"]
        with self.assertLogs("plan_catalog", level="WARNING"):
            missing = missing_required_columns(header)
        self.assertEqual(missing, ["detalles"])
        self.assertEqual(missing_required_columns([h.upper() for h in header] + ["DETALLES"]), [])


class TestFormatting(unittest.TestCase):
    def test_format_amount(self) -> None:
        self.assertEqual(format_amount(""), "-")
        self.assertEqual(format_amount(12000), "12000")
        self.assertEqual(format_amount(12000.0), "12000")
        self.assertEqual(format_amount(99.5), "99.5")

    def test_format_duration(self) -> None:
        self.assertEqual(format_duration(12), "12 meses")
        self.assertEqual(format_duration("indefinido"), "indefinido")
        self.assertEqual(format_duration(""), "")


if __name__ == "__main__":
    unittest.main()
