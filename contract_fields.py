from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Mapping, Optional, Union

from contract_engine import MOBILE_SECTION, DerivationResult, derive, is_mobile_section
from plan_catalog import Amount, Catalog, PlanRecord, is_blank
from selection_tree import ActiveSelectionPath, SelectionTree

HOME_SECTION = "Hogar"
HOME_TEMPLATE = "contrato_template2.docx"
DEFAULT_TEMPLATE = "contrato_template.docx"

FieldValue = Union[str, int, float]

PORTABILITY_DISCLOSURE = (
    "¿Autoriza usted mediante esta grabación a Pacífico Cable SPA a solicitar al OAP toda "
    "información necesaria para activar el proceso? Necesito que me indique su número telefónico "
    "actual, la compañía donante, su RUT y su nombre completo.\n\n"
    "La portabilidad solo aplica al número telefónico. Su compañía actual podría cobrar por "
    "servicios pendientes. El cambio se realiza entre 03:00 y 05:00 AM, con posible breve "
    "interrupción. En caso de retracto, puede realizarlo hasta las 20:00 horas del día en que se "
    "active el servicio.\n"
)

NEW_CUSTOMER_BILLING = (
    "En Mundo, nuestros servicios tienen el cobro por mes adelantado con seis ciclos de facturación "
    "distintos con fecha de inicio 1, 5, 10, 15, 20 y 25 de cada mes. La primera boleta se emitirá "
    "en el ciclo más cercano a la activación de los servicios, con 20 días continuos de plazo para "
    "pagar. Si no se paga 5 días después, el servicio se suspende y la reposición cuesta $2.500."
)

EXISTING_CUSTOMER_BILLING = (
    "Nuestros servicios se facturan por mes adelantado y se acoplan a su actual ciclo de "
    "facturación {cycle}. Puede aplicarse un cobro proporcional el día de la activación si "
    "corresponde."
)

BRANCH_PICKUP = (
    "En la sucursal seleccionada por usted {branch}. El retiro y activación de su Sim Card puede "
    "realizarlo a partir del día hábil siguiente (24 horas)."
)

HOME_DELIVERY = (
    "La tarjeta SIM será enviada a su dirección {address}, en un plazo de 2 a 5 días hábiles, una "
    "vez recibida debe activarla siguiendo las indicaciones entregadas junto con su Sim Card. Si "
    "tiene dudas o consultas puede realizarlas al 6009100100 o al 442160800 opción móvil. "
    "(Activación Opción 5)"
)


class PickupMode(str, Enum):
    BRANCH = "Sucursal"
    HOME = "Domicilio"


@dataclass(frozen=True)
class ContractForm:
    customer_name: str = ""
    address: str = ""
    branch: str = ""
    billing_cycle: str = ""
    date: str = ""
    pickup_mode: PickupMode = PickupMode.BRANCH


@dataclass(frozen=True)
class ContractFields:
    template_name: str
    fields: Mapping[str, FieldValue]


def template_for_section(section_name: str) -> str:
    if (section_name or "").strip().lower() == HOME_SECTION.lower():
        return HOME_TEMPLATE
    return DEFAULT_TEMPLATE


def principal_plan(tree: SelectionTree, path: ActiveSelectionPath) -> Optional[PlanRecord]:
    """First line of the active subsection that resolves to a catalog plan."""
    if not tree.has_node(path.section, path.subsection):
        return None
    node = tree.node(path.section, path.subsection)
    for line in node.lines:
        plan = tree.catalog.find(line.chosen_code)
        if plan is not None:
            return plan
    return None


def billing_notice(path: ActiveSelectionPath, billing_cycle: str) -> str:
    if not is_mobile_section(path.section):
        return ""
    sub = (path.subsection or "").strip().lower()
    if sub == "nuevo":
        return NEW_CUSTOMER_BILLING
    if sub == "cartera":
        return EXISTING_CUSTOMER_BILLING.format(cycle=billing_cycle)
    return ""


def pickup_notice(form: ContractForm) -> str:
    if form.pickup_mode == PickupMode.HOME:
        return HOME_DELIVERY.format(address=form.address)
    return BRANCH_PICKUP.format(branch=form.branch)


def _plus_one(value: Amount) -> FieldValue:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value + 1
    return ""


def _value(value: Amount) -> FieldValue:
    return "" if is_blank(value) else value


def build_contract_fields(
    path: ActiveSelectionPath,
    derivation: DerivationResult,
    tree: SelectionTree,
    form: ContractForm,
    *,
    executive: str = "",
) -> ContractFields:
    """
    Compose the flat placeholder mapping for the contract template of the active section.

    The home section uses its own template and only describes the principal plan; every
    other section gets the mobile prose, totals summary and logistics paragraphs.
    """
    plan = principal_plan(tree, path)
    template_name = template_for_section(path.section)

    fields: Dict[str, FieldValue]
    if template_name == HOME_TEMPLATE:
        fields = {
            "NOMBRE": form.customer_name,
            "PLAN": plan.name if plan else "",
            "DIRECCION": form.address,
            "VALOR": _value(plan.regular_price) if plan else "",
            "PROMO1": _value(plan.promo1_price) if plan else "",
            "MESES1": _value(plan.promo1_duration) if plan else "",
            "MESES1-1": _plus_one(plan.promo1_duration) if plan else "",
            "MESES2+1": _plus_one(plan.promo2_duration) if plan else "",
            "PROMO2": _value(plan.promo2_price) if plan else "",
            "MESES2": _value(plan.promo2_duration) if plan else "",
            "DETALLES": plan.details if plan else "",
            "FECHA": form.date,
            "EJECUTIVO": executive,
        }
    else:
        fields = {
            "NOMBRE": form.customer_name,
            "DIRECCION": form.address,
            "SUCURSAL": form.branch,
            "PLAN": plan.name if plan else "",
            "VALOR_PLAN": _value(plan.regular_price) if plan else "",
            "VALOR_PROMO": _value(plan.promo1_price) if plan else "",
            "VALOR_PROMO2": _value(plan.promo2_price) if plan else "",
            "DURACION": _value(plan.promo1_duration) if plan else "",
            "CICLO": form.billing_cycle,
            "FECHA": form.date,
            "MOVIL": derivation.mobile_text,
            "CONDICION": PORTABILITY_DISCLOSURE if derivation.has_any_portability else " ",
            "NOC": billing_notice(path, form.billing_cycle),
            "OBTEN": pickup_notice(form),
            "ALL": derivation.summary,
            "EJECUTIVO": executive,
        }
    return ContractFields(template_name=template_name, fields=fields)


def mobile_derivation_for(tree: SelectionTree, catalog: Catalog, form: ContractForm) -> DerivationResult:
    # MOVIL/ALL/CONDICION always describe the mobile section, whatever tab is active.
    return derive(MOBILE_SECTION, catalog, tree, customer_name=form.customer_name)
