from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from plan_catalog import normalize_number

logger = logging.getLogger(__name__)


class ComponentKind(str, Enum):
    SINGLE_SELECT = "single_select"
    TOGGLE_SELECT = "toggle_select"
    REPEATABLE_GROUP = "repeatable_group"
    GENERIC = "generic"


class LineMode(str, Enum):
    MULTI = "multi"
    DATOS = "datos"
    VOZ = "voz"


# Raw `ComponentType` values from the structure sheet.
_KIND_BY_COMPONENT_TYPE: Mapping[str, ComponentKind] = {
    "trio": ComponentKind.SINGLE_SELECT,
    "single_select": ComponentKind.SINGLE_SELECT,
    "duo": ComponentKind.TOGGLE_SELECT,
    "uno": ComponentKind.TOGGLE_SELECT,
    "toggle_select": ComponentKind.TOGGLE_SELECT,
    "movil_group": ComponentKind.REPEATABLE_GROUP,
    "repeatable_group": ComponentKind.REPEATABLE_GROUP,
}

STRUCTURE_COLUMN_ALIASES: Mapping[str, Tuple[str, ...]] = {
    "section": ("Section", "Sección", "Seccion"),
    "subsection": ("Subsection", "Subsección", "Subseccion"),
    "component_type": ("ComponentType", "Tipo"),
    "prefixes": ("Prefixes",),
    "toggle_options": ("ToggleOptions",),
    "multi_prefixes": ("MultiPrefixes",),
    "max_additional": ("MaxAdditional", "MaxAdicional"),
    "extra_mapping": ("ExtraMapping",),
}

DEFAULT_MAX_ADDITIONAL_LINES = 4
DEFAULT_GROUP_KEY = "default"


@dataclass(frozen=True)
class PrefixGroup:
    key: str
    prefixes: Tuple[str, ...]

    @property
    def label(self) -> str:
        # "fibra_tv" -> "Fibra Tv"
        return " ".join(w.capitalize() for w in self.key.replace("-", " ").replace("_", " ").split())


@dataclass(frozen=True)
class WidgetConfig:
    section: str
    subsection: str
    kind: ComponentKind
    component_type: str
    prefix_groups: Tuple[PrefixGroup, ...]
    max_additional_lines: int = 0
    # trigger code on the principal line -> bonus code offered on additional lines
    extra_mapping: Mapping[str, str] = field(default_factory=dict)

    @property
    def is_repeatable(self) -> bool:
        return self.kind == ComponentKind.REPEATABLE_GROUP

    @property
    def group_keys(self) -> Tuple[str, ...]:
        return tuple(g.key for g in self.prefix_groups)

    @property
    def default_key(self) -> Optional[str]:
        return self.prefix_groups[0].key if self.prefix_groups else None

    def group(self, key: Optional[str]) -> Optional[PrefixGroup]:
        for g in self.prefix_groups:
            if g.key == key:
                return g
        return None


@dataclass(frozen=True)
class FormStructure:
    widgets: Tuple[WidgetConfig, ...]
    used_default: bool = False

    def sections(self) -> List[str]:
        seen: List[str] = []
        for w in self.widgets:
            if w.section not in seen:
                seen.append(w.section)
        return seen

    def widgets_for(self, section: str) -> List[WidgetConfig]:
        return [w for w in self.widgets if w.section == section]

    def widget(self, section: str, subsection: str) -> Optional[WidgetConfig]:
        for w in self.widgets:
            if w.section == section and w.subsection == subsection:
                return w
        return None

    def by_section(self) -> Dict[str, List[WidgetConfig]]:
        return {s: self.widgets_for(s) for s in self.sections()}


DEFAULT_STRUCTURE_ROWS: Tuple[Mapping[str, object], ...] = (
    {"Section": "Hogar", "Subsection": "trio", "ComponentType": "trio", "Prefixes": "T", "MaxAdditional": 0},
    {
        "Section": "Hogar",
        "Subsection": "duo",
        "ComponentType": "duo",
        "ToggleOptions": "fibra_tv:DT,fibra_fijo:DF,tv_fijo:DTF",
        "MaxAdditional": 0,
    },
    {
        "Section": "Hogar",
        "Subsection": "uno",
        "ComponentType": "uno",
        "ToggleOptions": "fibra:F,tv:TV,fijo:FI",
        "MaxAdditional": 0,
    },
    {
        "Section": "Movil",
        "Subsection": "nuevo",
        "ComponentType": "movil_group",
        "MultiPrefixes": "multi:NM,datos:ND,voz:NV",
        "MaxAdditional": 4,
        "ExtraMapping": "NM02:NM02S;NM03:NM03S",
    },
    {
        "Section": "Movil",
        "Subsection": "cartera",
        "ComponentType": "movil_group",
        "MultiPrefixes": "multi:CM,datos:CD,voz:CV",
        "MaxAdditional": 4,
        "ExtraMapping": "CM02:CM02S;CM03:CM03S",
    },
)


def _split_prefixes(text: str, sep: str) -> Tuple[str, ...]:
    return tuple(p.strip() for p in (text or "").split(sep) if p.strip())


def parse_prefix_list(text: str) -> Tuple[str, ...]:
    return _split_prefixes(text, ",")


def parse_toggle_options(text: str) -> Tuple[PrefixGroup, ...]:
    """`fibra_tv:DT|DTV,fijo:FI` -> ordered (key, prefixes) groups. Entries without a key are dropped."""
    out: List[PrefixGroup] = []
    for chunk in (text or "").split(","):
        key, _, prefs = chunk.partition(":")
        key = key.strip()
        if not key:
            continue
        out.append(PrefixGroup(key=key, prefixes=_split_prefixes(prefs, "|")))
    return tuple(out)


def parse_multi_prefixes(text: str) -> Tuple[PrefixGroup, ...]:
    """`multi:NM,datos:ND,voz:NV`; a repeated key keeps its last prefix list."""
    by_key: Dict[str, Tuple[str, ...]] = {}
    for group in parse_toggle_options(text):
        by_key[group.key] = group.prefixes
    return tuple(PrefixGroup(key=k, prefixes=v) for k, v in by_key.items())


def parse_extra_mapping(text: str) -> Dict[str, str]:
    """`NM02:NM02S;NM03:NM03S` -> {"NM02": "NM02S", "NM03": "NM03S"}."""
    out: Dict[str, str] = {}
    for chunk in (text or "").split(";"):
        trigger, _, bonus = chunk.partition(":")
        trigger = trigger.strip()
        bonus = bonus.strip()
        if trigger and bonus:
            out[trigger] = bonus
    return out


def _resolve(row: Mapping[str, object], name: str) -> str:
    for key in STRUCTURE_COLUMN_ALIASES[name]:
        val = row.get(key)
        if val is None:
            continue
        text = str(val).strip()
        if text:
            return text
    return ""


def _max_additional(raw: str) -> int:
    if not raw:
        return DEFAULT_MAX_ADDITIONAL_LINES
    value = normalize_number(raw, integer=True)
    if not isinstance(value, int):
        return DEFAULT_MAX_ADDITIONAL_LINES
    return max(0, value)


def kind_for_component_type(component_type: str) -> ComponentKind:
    return _KIND_BY_COMPONENT_TYPE.get((component_type or "").strip().lower(), ComponentKind.GENERIC)


def widget_from_row(row: Mapping[str, object]) -> WidgetConfig:
    component_type = _resolve(row, "component_type")
    kind = kind_for_component_type(component_type)

    max_additional = 0
    extra_mapping: Dict[str, str] = {}
    if kind == ComponentKind.SINGLE_SELECT:
        groups = (PrefixGroup(DEFAULT_GROUP_KEY, parse_prefix_list(_resolve(row, "prefixes") or "T")),)
    elif kind == ComponentKind.TOGGLE_SELECT:
        groups = parse_toggle_options(_resolve(row, "toggle_options"))
    elif kind == ComponentKind.REPEATABLE_GROUP:
        groups = parse_multi_prefixes(_resolve(row, "multi_prefixes"))
        max_additional = _max_additional(_resolve(row, "max_additional"))
        extra_mapping = parse_extra_mapping(_resolve(row, "extra_mapping"))
    else:
        groups = (PrefixGroup(DEFAULT_GROUP_KEY, parse_prefix_list(_resolve(row, "prefixes"))),)

    return WidgetConfig(
        section=_resolve(row, "section"),
        subsection=_resolve(row, "subsection"),
        kind=kind,
        component_type=component_type,
        prefix_groups=tuple(groups),
        max_additional_lines=max_additional,
        extra_mapping=extra_mapping,
    )


def compile_structure(rows: Optional[Iterable[Mapping[str, object]]]) -> FormStructure:
    """
    Compile structure-sheet rows into widget configs.

    `None` means the workbook has no structure sheet and the built-in layout is used.
    Rows without a section or subsection are skipped.
    """
    used_default = rows is None
    if rows is None:
        logger.warning("No structure sheet found; using the built-in default structure.")
        rows = DEFAULT_STRUCTURE_ROWS

    widgets: List[WidgetConfig] = []
    for row in rows:
        if not isinstance(row, Mapping):
            continue
        widget = widget_from_row(row)
        if not widget.section or not widget.subsection:
            continue
        widgets.append(widget)
    return FormStructure(widgets=tuple(widgets), used_default=used_default)


def default_structure() -> FormStructure:
    return compile_structure(None)
