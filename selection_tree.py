from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from form_structure import FormStructure, LineMode, WidgetConfig
from plan_catalog import Catalog, PlanRecord

logger = logging.getLogger(__name__)


class SelectionError(ValueError):
    pass


@dataclass(frozen=True)
class ActiveSelectionPath:
    section: str
    subsection: str


@dataclass
class LineSelection:
    line_index: int
    mode: LineMode = LineMode.MULTI
    chosen_code: Optional[str] = None
    portability_requested: bool = False
    ported_number: str = ""
    donor_carrier: str = ""

    @property
    def is_principal(self) -> bool:
        return self.line_index == 0

    @property
    def label(self) -> str:
        return "Línea Principal" if self.line_index == 0 else f"Adicional {self.line_index}"

    @property
    def has_portability(self) -> bool:
        return bool(
            self.portability_requested and self.ported_number.strip() and self.donor_carrier.strip()
        )

    def clear(self) -> None:
        self.chosen_code = None
        self.portability_requested = False
        self.ported_number = ""
        self.donor_carrier = ""


@dataclass
class SelectionNode:
    config: WidgetConfig
    active_key: Optional[str] = None
    lines: List[LineSelection] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.active_key is None:
            self.active_key = self.config.default_key
        if not self.lines:
            self.lines.append(LineSelection(line_index=0))

    @property
    def path(self) -> ActiveSelectionPath:
        return ActiveSelectionPath(self.config.section, self.config.subsection)

    @property
    def principal(self) -> LineSelection:
        return self.lines[0]

    @property
    def additional_count(self) -> int:
        return len(self.lines) - 1

    def line(self, line_index: int) -> LineSelection:
        for ln in self.lines:
            if ln.line_index == line_index:
                return ln
        raise SelectionError(
            f"Line {line_index} does not exist in {self.config.section}/{self.config.subsection}"
        )

    def clear(self) -> None:
        """Reset chosen values; lines, modes and the toggle key are kept."""
        for ln in self.lines:
            ln.clear()


def available_options(
    config: WidgetConfig,
    catalog: Catalog,
    line: LineSelection,
    *,
    active_key: Optional[str],
    principal_code: Optional[str],
) -> Tuple[PlanRecord, ...]:
    """
    Plans a line may choose from.

    Repeatable groups pick the prefix group from the line's own mode; other widgets use the
    node's toggle key. An additional line in `multi` mode also gets the bonus plan mapped
    from the principal line's current code, when the catalog has it.
    """
    key = line.mode.value if config.is_repeatable else active_key
    group = config.group(key)
    options = list(catalog.options_for_prefixes(group.prefixes)) if group is not None else []

    if (
        config.is_repeatable
        and not line.is_principal
        and line.mode == LineMode.MULTI
        and config.extra_mapping
        and principal_code
    ):
        bonus_code = config.extra_mapping.get(principal_code)
        bonus = catalog.find(bonus_code)
        if bonus is not None and all(o.code != bonus.code for o in options):
            options.append(bonus)
    return tuple(options)


class SelectionTree:
    """
    Session state mirroring the compiled structure.

    All commands address a subsection by (section, subsection); nodes are created the first
    time a subsection is activated or touched. Commands either apply fully or raise
    `SelectionError` without mutating anything.
    """

    def __init__(self, structure: FormStructure, catalog: Catalog, *, retain_portability: bool = True) -> None:
        self.structure = structure
        self.catalog = catalog
        # Unchecking portability keeps the typed number/donor so re-checking restores them.
        self.retain_portability = retain_portability
        self._nodes: Dict[Tuple[str, str], SelectionNode] = {}

    def has_node(self, section: str, subsection: str) -> bool:
        return (section, subsection) in self._nodes

    def node(self, section: str, subsection: str) -> SelectionNode:
        key = (section, subsection)
        existing = self._nodes.get(key)
        if existing is not None:
            return existing
        config = self.structure.widget(section, subsection)
        if config is None:
            raise SelectionError(f"Unknown subsection: {section}/{subsection}")
        created = SelectionNode(config=config)
        self._nodes[key] = created
        return created

    def nodes_in_section(self, section: str) -> List[SelectionNode]:
        """Instantiated nodes of a section, in structure order."""
        out: List[SelectionNode] = []
        for cfg in self.structure.widgets_for(section):
            node = self._nodes.get((cfg.section, cfg.subsection))
            if node is not None:
                out.append(node)
        return out

    def options_for(self, section: str, subsection: str, line_index: int) -> Tuple[PlanRecord, ...]:
        node = self.node(section, subsection)
        line = node.line(line_index)
        return available_options(
            node.config,
            self.catalog,
            line,
            active_key=node.active_key,
            principal_code=node.principal.chosen_code,
        )

    def select(self, section: str, subsection: str, line_index: int, code: Optional[str]) -> None:
        node = self.node(section, subsection)
        line = node.line(line_index)
        line.chosen_code = (str(code).strip() or None) if code is not None else None
        if line.is_principal and node.config.is_repeatable:
            # Bonus plans on additional lines depend on the principal's choice.
            self._drop_unoffered_choices(node, node.lines[1:])

    def toggle(self, section: str, subsection: str, key: str) -> None:
        node = self.node(section, subsection)
        if node.config.group(key) is None:
            raise SelectionError(f"Unknown option group {key!r} for {section}/{subsection}")
        if node.config.is_repeatable:
            raise SelectionError("Repeatable groups switch option sets per line (set_line_mode).")
        # Re-picking the current option also resets the list.
        node.active_key = key
        node.principal.chosen_code = None

    def set_line_mode(self, section: str, subsection: str, line_index: int, mode: LineMode) -> None:
        node = self.node(section, subsection)
        if not node.config.is_repeatable:
            raise SelectionError(f"{section}/{subsection} has no per-line modes")
        line = node.line(line_index)
        try:
            line.mode = LineMode(mode)
        except ValueError as exc:
            raise SelectionError(f"Unknown line mode: {mode!r}") from exc
        self._drop_unoffered_choices(node, [line])
        if line.is_principal:
            self._drop_unoffered_choices(node, node.lines[1:])

    def can_add_line(self, section: str, subsection: str) -> bool:
        node = self.node(section, subsection)
        return node.config.is_repeatable and node.additional_count < node.config.max_additional_lines

    def add_line(self, section: str, subsection: str) -> LineSelection:
        node = self.node(section, subsection)
        if not node.config.is_repeatable:
            raise SelectionError(f"{section}/{subsection} does not accept additional lines")
        limit = node.config.max_additional_lines
        if node.additional_count >= limit:
            raise SelectionError(f"Máximo {limit} líneas adicionales")
        line = LineSelection(line_index=len(node.lines))
        node.lines.append(line)
        return line

    def remove_line(self, section: str, subsection: str, line_index: int) -> None:
        node = self.node(section, subsection)
        if line_index == 0:
            raise SelectionError("The principal line cannot be removed")
        target = node.line(line_index)
        node.lines.remove(target)
        for idx, ln in enumerate(node.lines):
            ln.line_index = idx

    def set_portability(
        self,
        section: str,
        subsection: str,
        line_index: int,
        requested: bool,
        number: Optional[str] = None,
        donor: Optional[str] = None,
    ) -> None:
        line = self.node(section, subsection).line(line_index)
        line.portability_requested = bool(requested)
        if number is not None:
            line.ported_number = str(number).strip()
        if donor is not None:
            line.donor_carrier = str(donor).strip()
        if not line.portability_requested and not self.retain_portability:
            line.ported_number = ""
            line.donor_carrier = ""

    def activate_subsection(self, section: str, subsection: str) -> ActiveSelectionPath:
        """
        Make (section, subsection) the active path.

        Every other node, in this section or any other, has its chosen values cleared but
        stays in the tree.
        """
        keep = self.node(section, subsection)
        for node in self._nodes.values():
            if node is not keep:
                node.clear()
        return keep.path

    def activate_section(self, section: str) -> ActiveSelectionPath:
        widgets = self.structure.widgets_for(section)
        if not widgets:
            raise SelectionError(f"Unknown section: {section}")
        return self.activate_subsection(section, widgets[0].subsection)

    def _drop_unoffered_choices(self, node: SelectionNode, lines: Sequence[LineSelection]) -> None:
        principal_code = node.principal.chosen_code
        for ln in lines:
            if not ln.chosen_code:
                continue
            offered = available_options(
                node.config,
                self.catalog,
                ln,
                active_key=node.active_key,
                principal_code=principal_code,
            )
            if all(o.code != ln.chosen_code for o in offered):
                logger.debug("Clearing %s on %s: no longer offered", ln.chosen_code, ln.label)
                ln.chosen_code = None
