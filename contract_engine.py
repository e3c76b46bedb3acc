from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple, Union

from plan_catalog import Amount, Catalog, PlanRecord, amount_or_zero, format_amount, format_duration, is_blank
from selection_tree import LineSelection, SelectionNode, SelectionTree

MOBILE_SECTION = "Movil"
PLACEHOLDER_PROMPT = "Selecciona un plan para ver detalles."
UNNAMED_PLAN = "Sin nombre"


@dataclass(frozen=True)
class DetailBlock:
    subsection: str
    label: str
    plan_name: Optional[str]
    text: str


@dataclass(frozen=True)
class PricedLine:
    subsection: str
    label: str
    plan_code: str
    plan_name: str
    promo_price: str
    promo_duration: str
    regular_price: str
    promo2_price: str = "-"
    promo2_duration: str = ""

    @property
    def text(self) -> str:
        """`Promo1: $10000 (12 meses) / Promo2: $11000 (6 meses) / Sin descuento: $12000`."""
        parts: List[str] = []
        if self.promo_price != "-":
            parts.append(f"Promo1: ${self.promo_price} ({self.promo_duration or '-'})")
        if self.promo2_price != "-":
            parts.append(f"Promo2: ${self.promo2_price} ({self.promo2_duration or '-'})")
        if self.regular_price != "-":
            parts.append(f"Sin descuento: ${self.regular_price}")
        return " / ".join(parts)


@dataclass(frozen=True)
class DerivationTotals:
    total_with_discount: Union[int, float]
    total_without_discount: Union[int, float]


@dataclass(frozen=True)
class DerivationResult:
    section: str
    detail_blocks: Tuple[DetailBlock, ...]
    priced_lines: Tuple[PricedLine, ...]
    totals: DerivationTotals
    paragraphs: Tuple[str, ...]
    has_any_portability: bool
    # (plan name, line count) in first-seen order
    plan_counts: Tuple[Tuple[str, int], ...]
    summary: str

    @property
    def mobile_text(self) -> str:
        return "\n\n".join(self.paragraphs)


def is_mobile_section(section_name: str) -> bool:
    return (section_name or "").strip().lower() == MOBILE_SECTION.lower()


def _detail_block(subsection: str, line: LineSelection, plan: Optional[PlanRecord]) -> DetailBlock:
    if plan is None:
        return DetailBlock(subsection=subsection, label=line.label, plan_name=None, text=PLACEHOLDER_PROMPT)
    return DetailBlock(subsection=subsection, label=line.label, plan_name=plan.name, text=plan.details)


def has_promo(price: Amount) -> bool:
    """A promo counts only when it is a non-zero amount; 0 and blanks mean "no discount"."""
    return not is_blank(price) and bool(amount_or_zero(price))


def _promo_display(price: Amount, duration: Amount) -> Tuple[str, str]:
    if not has_promo(price):
        return "-", ""
    return format_amount(price), format_duration(duration)


def _priced_line(subsection: str, line: LineSelection, plan: PlanRecord) -> PricedLine:
    promo_price, promo_duration = _promo_display(plan.promo1_price, plan.promo1_duration)
    promo2_price, promo2_duration = _promo_display(plan.promo2_price, plan.promo2_duration)
    return PricedLine(
        subsection=subsection,
        label=line.label,
        plan_code=plan.code,
        plan_name=plan.name,
        promo_price=promo_price,
        promo_duration=promo_duration,
        regular_price=format_amount(plan.regular_price),
        promo2_price=promo2_price,
        promo2_duration=promo2_duration,
    )


def describe_node(node: SelectionNode, catalog: Catalog) -> Tuple[Tuple[DetailBlock, ...], Tuple[PricedLine, ...]]:
    """Detail blocks (one per line) and priced lines (resolved lines only) for one subsection."""
    subsection = node.config.subsection
    blocks: List[DetailBlock] = []
    priced: List[PricedLine] = []
    for line in node.lines:
        plan = catalog.find(line.chosen_code)
        blocks.append(_detail_block(subsection, line, plan))
        if plan is not None:
            priced.append(_priced_line(subsection, line, plan))
    return tuple(blocks), tuple(priced)


def discounted_price(plan: PlanRecord) -> Union[int, float]:
    """Promo price when the plan has one, otherwise the regular price."""
    if has_promo(plan.promo1_price):
        return amount_or_zero(plan.promo1_price)
    return amount_or_zero(plan.regular_price)


def compute_totals(plans: Sequence[PlanRecord]) -> DerivationTotals:
    return DerivationTotals(
        total_with_discount=sum(discounted_price(p) for p in plans),
        total_without_discount=sum(amount_or_zero(p.regular_price) for p in plans),
    )


def tally_plans(plans: Sequence[PlanRecord]) -> Tuple[Tuple[str, int], ...]:
    counts: Dict[str, int] = {}
    for plan in plans:
        name = plan.name or UNNAMED_PLAN
        counts[name] = counts.get(name, 0) + 1
    return tuple(counts.items())


def line_paragraph(plan: PlanRecord, line: LineSelection, *, first: bool, customer_name: str) -> str:
    regular = format_amount(plan.regular_price)
    if first:
        text = f"Sr./Sra. {customer_name}, Confirmamos el {plan.name}, con valor normal de ${regular}"
    else:
        text = f"Confirmamos siguiente plan, el {plan.name}, con valor normal de ${regular}"

    additions: List[str] = []
    if has_promo(plan.promo1_price):
        promo = f"y promoción de ${format_amount(plan.promo1_price)}"
        duration = format_duration(plan.promo1_duration)
        if duration:
            promo += f" por {duration}"
        additions.append(promo)
    if line.has_portability:
        additions.append(
            f"portabilidad del número {line.ported_number.strip()} desde la compañía {line.donor_carrier.strip()}"
        )
    if additions:
        text += ", " + " y ".join(additions)
    return text + "."


def summary_sentence(plan_counts: Sequence[Tuple[str, int]], totals: DerivationTotals) -> str:
    if not plan_counts:
        return ""
    entries = [f"{count} {'linea' if count == 1 else 'lineas'} con el {name}" for name, count in plan_counts]
    return (
        f"Usted está contratando {', '.join(entries)}, "
        f"con valor total de ${format_amount(totals.total_without_discount)} "
        f"y con descuento quedaría en ${format_amount(totals.total_with_discount)}."
    )


def derive(section_name: str, catalog: Catalog, tree: SelectionTree, *, customer_name: str = "") -> DerivationResult:
    """
    Derive display blocks, totals and contract prose for a section.

    Scans every instantiated subsection of the section, not only the active one, then each
    line in order. Lines without a resolvable plan contribute a placeholder detail block and
    nothing else. Paragraphs and the summary sentence are only produced for the mobile
    section.
    """
    blocks: List[DetailBlock] = []
    priced: List[PricedLine] = []
    resolved: List[Tuple[LineSelection, PlanRecord]] = []

    for node in tree.nodes_in_section(section_name):
        node_blocks, node_priced = describe_node(node, catalog)
        blocks.extend(node_blocks)
        priced.extend(node_priced)
        for line in node.lines:
            plan = catalog.find(line.chosen_code)
            if plan is not None:
                resolved.append((line, plan))

    plans = [plan for _, plan in resolved]
    totals = compute_totals(plans)
    plan_counts = tally_plans(plans)
    has_any_portability = any(line.has_portability for line, _ in resolved)

    paragraphs: Tuple[str, ...] = ()
    summary = ""
    if is_mobile_section(section_name):
        paragraphs = tuple(
            line_paragraph(plan, line, first=(i == 0), customer_name=customer_name)
            for i, (line, plan) in enumerate(resolved)
        )
        summary = summary_sentence(plan_counts, totals)

    return DerivationResult(
        section=section_name,
        detail_blocks=tuple(blocks),
        priced_lines=tuple(priced),
        totals=totals,
        paragraphs=paragraphs,
        has_any_portability=has_any_portability,
        plan_counts=plan_counts,
        summary=summary,
    )
