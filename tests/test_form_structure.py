from __future__ import annotations

import unittest

from form_structure import (
    DEFAULT_MAX_ADDITIONAL_LINES,
    ComponentKind,
    PrefixGroup,
    compile_structure,
    default_structure,
    kind_for_component_type,
    parse_extra_mapping,
    parse_multi_prefixes,
    parse_toggle_options,
)


class TestParsers(unittest.TestCase):
    def test_toggle_options_keep_order_and_alternatives(self) -> None:
        groups = parse_toggle_options("fibra_tv:DT|DTV, fibra_fijo:DF ,:X,tv_fijo:")
        self.assertEqual(
            groups,
            (
                PrefixGroup("fibra_tv", ("DT", "DTV")),
                PrefixGroup("fibra_fijo", ("DF",)),
                PrefixGroup("tv_fijo", ()),
            ),
        )
        self.assertEqual(groups[0].label, "Fibra Tv")

    def test_multi_prefixes_last_duplicate_wins(self) -> None:
        groups = parse_multi_prefixes("multi:NM,datos:ND,multi:XM")
        self.assertEqual([g.key for g in groups], ["multi", "datos"])
        self.assertEqual(groups[0].prefixes, ("XM",))

    def test_extra_mapping(self) -> None:
        self.assertEqual(
            parse_extra_mapping("NM02:NM02S; NM03 : NM03S;broken;:x"),
            {"NM02": "NM02S", "NM03": "NM03S"},
        )
        self.assertEqual(parse_extra_mapping(""), {})

    def test_component_kinds(self) -> None:
        self.assertEqual(kind_for_component_type("trio"), ComponentKind.SINGLE_SELECT)
        self.assertEqual(kind_for_component_type("Duo"), ComponentKind.TOGGLE_SELECT)
        self.assertEqual(kind_for_component_type("uno"), ComponentKind.TOGGLE_SELECT)
        self.assertEqual(kind_for_component_type("movil_group"), ComponentKind.REPEATABLE_GROUP)
        self.assertEqual(kind_for_component_type("carousel"), ComponentKind.GENERIC)


class TestCompileStructure(unittest.TestCase):
    def test_default_structure_when_sheet_missing(self) -> None:
        with self.assertLogs("form_structure", level="WARNING"):
            structure = default_structure()
        self.assertTrue(structure.used_default)
        self.assertEqual(structure.sections(), ["Hogar", "Movil"])
        self.assertEqual([w.subsection for w in structure.widgets_for("Hogar")], ["trio", "duo", "uno"])

        nuevo = structure.widget("Movil", "nuevo")
        self.assertIsNotNone(nuevo)
        self.assertTrue(nuevo.is_repeatable)
        self.assertEqual(nuevo.max_additional_lines, 4)
        self.assertEqual(nuevo.group_keys, ("multi", "datos", "voz"))
        self.assertEqual(nuevo.extra_mapping, {"NM02": "NM02S", "NM03": "NM03S"})

        duo = structure.widget("Hogar", "duo")
        self.assertEqual(duo.kind, ComponentKind.TOGGLE_SELECT)
        self.assertEqual(duo.default_key, "fibra_tv")

    def test_rows_without_section_are_skipped(self) -> None:
        structure = compile_structure(
            [
                {"Section": "Hogar", "Subsection": "", "ComponentType": "trio"},
                {"Section": "", "Subsection": "trio", "ComponentType": "trio"},
                {"Section": "Hogar", "Subsection": "trio", "ComponentType": "trio"},
            ]
        )
        self.assertFalse(structure.used_default)
        self.assertEqual(len(structure.widgets), 1)

    def test_single_select_defaults_to_t_prefix(self) -> None:
        structure = compile_structure([{"Section": "Hogar", "Subsection": "trio", "ComponentType": "trio"}])
        trio = structure.widget("Hogar", "trio")
        self.assertEqual(trio.prefix_groups[0].prefixes, ("T",))
        self.assertFalse(trio.is_repeatable)
        self.assertEqual(trio.max_additional_lines, 0)

    def test_max_additional_parsing(self) -> None:
        rows = [
            {"Section": "Movil", "Subsection": "a", "ComponentType": "movil_group", "MaxAdditional": ""},
            {"Section": "Movil", "Subsection": "b", "ComponentType": "movil_group", "MaxAdditional": "2"},
            {"Section": "Movil", "Subsection": "c", "ComponentType": "movil_group", "MaxAdditional": 0},
            {"Section": "Movil", "Subsection": "d", "ComponentType": "movil_group", "MaxAdditional": "-3"},
            {"Section": "Movil", "Subsection": "e", "ComponentType": "movil_group", "MaxAdditional": "muchas"},
        ]
        structure = compile_structure(rows)
        limits = {w.subsection: w.max_additional_lines for w in structure.widgets}
        self.assertEqual(
            limits,
            {"a": DEFAULT_MAX_ADDITIONAL_LINES, "b": 2, "c": 0, "d": 0, "e": DEFAULT_MAX_ADDITIONAL_LINES},
        )

    def test_spanish_column_aliases(self) -> None:
        structure = compile_structure(
            [{"Sección": "Movil", "Subsección": "cartera", "Tipo": "movil_group", "MultiPrefixes": "multi:CM"}]
        )
        cartera = structure.widget("Movil", "cartera")
        self.assertIsNotNone(cartera)
        self.assertEqual(cartera.group("multi").prefixes, ("CM",))
        self.assertIsNone(cartera.group("datos"))


if __name__ == "__main__":
    unittest.main()
