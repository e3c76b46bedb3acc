from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import List, Literal, Optional, Tuple

import streamlit as st
from dotenv import load_dotenv

from app_config import AppConfig, configure_logging, is_url, load_app_config
from contract_document import DOCX_MIME, ContractDocumentError, load_template, render_contract_docx
from contract_engine import derive, describe_node
from contract_fields import ContractForm, PickupMode, build_contract_fields, mobile_derivation_for
from contract_pdf import export_contract_pdf
from contract_store import ContractStore, ContractStoreError
from form_structure import LineMode
from plan_catalog import Catalog, PlanDataError, format_amount
from selection_tree import ActiveSelectionPath, SelectionError, SelectionNode, SelectionTree
from workbook_source import FormData, load_form_data

logger = logging.getLogger(__name__)

TREE_KEY = "_selection_tree"
PATH_KEY = "_active_path"
SOURCE_KEY = "_tree_source"
FLASH_KEY = "_flash_message"
NO_PLAN = ""


@dataclass(frozen=True)
class UserMessage:
    # "data": the catalog could not be loaded; "document": generation/export failed
    kind: Literal["data", "document"]
    text: str


def _read_secret_or_env_str(key: str) -> str:
    """
    Read a configuration value from Streamlit Secrets (preferred) or environment variables.

    Returns a stripped string; returns "" when missing.
    """
    val: object = ""
    try:
        val = st.secrets.get(key, "")  # type: ignore[attr-defined]
    except Exception:
        # No secrets.toml at all is normal for local runs.
        val = ""
    if not val:
        val = os.environ.get(key, "")
    if isinstance(val, str):
        return val.strip()
    return str(val).strip() if val is not None else ""


def _source_mtime(source: str) -> float:
    if is_url(source):
        return 0.0
    try:
        return Path(source).stat().st_mtime
    except OSError:
        return 0.0


@st.cache_resource
def _load_form_data_cached(source: str, source_mtime: float, timeout_s: float) -> FormData:
    """
    Cached workbook loader.

    Do not call Streamlit UI functions here; `source_mtime` only invalidates the cache when
    a local workbook changes.
    """
    _ = source_mtime
    return load_form_data(source, timeout_s=timeout_s)


def load_data(cfg: AppConfig) -> Tuple[Optional[FormData], Optional[UserMessage]]:
    try:
        data = _load_form_data_cached(cfg.data_source, _source_mtime(cfg.data_source), cfg.http_timeout_s)
    except PlanDataError as e:
        logger.warning("Catalog load failed: %s", e)
        return None, UserMessage(kind="data", text=f"No se pudo cargar el catálogo: {e}")
    return data, None


def ensure_session(data: FormData, cfg: AppConfig) -> Tuple[SelectionTree, ActiveSelectionPath]:
    """
    Create the session's selection tree on first run, or when the loaded data changed.

    The first section's first subsection starts active.
    """
    tree = st.session_state.get(TREE_KEY)
    path = st.session_state.get(PATH_KEY)
    if (
        not isinstance(tree, SelectionTree)
        or st.session_state.get(SOURCE_KEY) != id(data)
        or not isinstance(path, ActiveSelectionPath)
    ):
        tree = SelectionTree(data.structure, data.catalog, retain_portability=cfg.retain_portability)
        sections = data.structure.sections()
        path = tree.activate_section(sections[0]) if sections else ActiveSelectionPath("", "")
        st.session_state[TREE_KEY] = tree
        st.session_state[PATH_KEY] = path
        st.session_state[SOURCE_KEY] = id(data)
    return tree, path


def _tree() -> SelectionTree:
    return st.session_state[TREE_KEY]


def _run_command(fn, *args) -> None:
    try:
        fn(*args)
    except SelectionError as e:
        st.session_state[FLASH_KEY] = str(e)


# -- widget callbacks (run before the rerun renders) ------------------------------------------


def _on_section_change(widget_key: str) -> None:
    section = st.session_state.get(widget_key)
    try:
        st.session_state[PATH_KEY] = _tree().activate_section(section)
    except SelectionError as e:
        st.session_state[FLASH_KEY] = str(e)


def _on_subsection_change(section: str, widget_key: str) -> None:
    subsection = st.session_state.get(widget_key)
    try:
        st.session_state[PATH_KEY] = _tree().activate_subsection(section, subsection)
    except SelectionError as e:
        st.session_state[FLASH_KEY] = str(e)


def _on_select(section: str, subsection: str, line_index: int, widget_key: str) -> None:
    code = st.session_state.get(widget_key) or None
    _run_command(_tree().select, section, subsection, line_index, code)


def _on_toggle(section: str, subsection: str, widget_key: str) -> None:
    _run_command(_tree().toggle, section, subsection, st.session_state.get(widget_key))


def _on_mode(section: str, subsection: str, line_index: int, widget_key: str) -> None:
    _run_command(_tree().set_line_mode, section, subsection, line_index, st.session_state.get(widget_key))


def _on_portability(section: str, subsection: str, line_index: int, prefix: str) -> None:
    _run_command(
        _tree().set_portability,
        section,
        subsection,
        line_index,
        bool(st.session_state.get(f"{prefix}_port")),
        st.session_state.get(f"{prefix}_number"),
        st.session_state.get(f"{prefix}_donor"),
    )


def _on_add_line(section: str, subsection: str) -> None:
    _run_command(_tree().add_line, section, subsection)


def _on_remove_line(section: str, subsection: str, line_index: int) -> None:
    _run_command(_tree().remove_line, section, subsection, line_index)


# -- rendering ---------------------------------------------------------------------------------


def _option_label(catalog: Catalog, code: str) -> str:
    if not code:
        return "Selecciona un plan"
    plan = catalog.find(code)
    if plan is None:
        return code
    return f"{plan.code} - {plan.name}" if plan.name else plan.code


def _widget_key(*parts: object) -> str:
    return "w_" + "_".join(str(p) for p in parts)


def _render_navigation(tree: SelectionTree, path: ActiveSelectionPath) -> ActiveSelectionPath:
    sections = tree.structure.sections()
    sec_key = "nav_section"
    st.session_state[sec_key] = path.section
    st.radio("Sección", options=sections, key=sec_key, horizontal=True, on_change=_on_section_change, args=(sec_key,))

    subsections = [w.subsection for w in tree.structure.widgets_for(path.section)]
    sub_key = _widget_key("nav_sub", path.section)
    st.session_state[sub_key] = path.subsection
    st.radio(
        "Subsección",
        options=subsections,
        key=sub_key,
        horizontal=True,
        on_change=_on_subsection_change,
        args=(path.section, sub_key),
    )
    return path


def offers_portability(node: SelectionNode) -> bool:
    """Every line of a repeatable group can port a number, whatever its section."""
    return node.config.is_repeatable


def _render_line(tree: SelectionTree, path: ActiveSelectionPath, line_index: int) -> None:
    node = tree.node(path.section, path.subsection)
    line = node.line(line_index)
    sec, sub = path.section, path.subsection
    prefix = _widget_key(sec, sub, line_index)

    cols = st.columns([3, 2, 1]) if node.config.is_repeatable else st.columns([1])
    with cols[0]:
        options = tree.options_for(sec, sub, line_index)
        codes: List[str] = [NO_PLAN] + [o.code for o in options]
        sel_key = f"{prefix}_plan"
        st.session_state[sel_key] = line.chosen_code if line.chosen_code in codes else NO_PLAN
        st.selectbox(
            line.label,
            options=codes,
            key=sel_key,
            format_func=lambda c: _option_label(tree.catalog, c),
            on_change=_on_select,
            args=(sec, sub, line_index, sel_key),
        )

    if not node.config.is_repeatable:
        return

    with cols[1]:
        mode_key = f"{prefix}_mode"
        st.session_state[mode_key] = line.mode.value
        st.radio(
            "Tipo",
            options=[m.value for m in LineMode],
            key=mode_key,
            horizontal=True,
            format_func=lambda m: m.capitalize(),
            on_change=_on_mode,
            args=(sec, sub, line_index, mode_key),
        )
    with cols[2]:
        if not line.is_principal:
            st.button(
                "Quitar",
                key=f"{prefix}_remove",
                on_click=_on_remove_line,
                args=(sec, sub, line_index),
                use_container_width=True,
            )

    if offers_portability(node):
        st.session_state[f"{prefix}_port"] = line.portability_requested
        st.checkbox(
            "Portabilidad",
            key=f"{prefix}_port",
            on_change=_on_portability,
            args=(sec, sub, line_index, prefix),
        )
        if line.portability_requested:
            p1, p2 = st.columns(2)
            st.session_state[f"{prefix}_number"] = line.ported_number
            st.session_state[f"{prefix}_donor"] = line.donor_carrier
            with p1:
                st.text_input(
                    "Número a portar",
                    key=f"{prefix}_number",
                    on_change=_on_portability,
                    args=(sec, sub, line_index, prefix),
                )
            with p2:
                st.text_input(
                    "Compañía donante",
                    key=f"{prefix}_donor",
                    on_change=_on_portability,
                    args=(sec, sub, line_index, prefix),
                )


def _render_selection(tree: SelectionTree, path: ActiveSelectionPath) -> None:
    node = tree.node(path.section, path.subsection)
    sec, sub = path.section, path.subsection

    if len(node.config.prefix_groups) > 1 and not node.config.is_repeatable:
        toggle_key = _widget_key(sec, sub, "toggle")
        st.session_state[toggle_key] = node.active_key
        labels = {g.key: g.label for g in node.config.prefix_groups}
        st.radio(
            "Opción",
            options=list(node.config.group_keys),
            key=toggle_key,
            horizontal=True,
            format_func=lambda k: labels.get(k, k),
            on_change=_on_toggle,
            args=(sec, sub, toggle_key),
        )

    for ln in list(node.lines):
        _render_line(tree, path, ln.line_index)

    if node.config.is_repeatable:
        limit = node.config.max_additional_lines
        st.button(
            f"Agregar línea ({node.additional_count}/{limit})",
            key=_widget_key(sec, sub, "add"),
            on_click=_on_add_line,
            args=(sec, sub),
            disabled=not tree.can_add_line(sec, sub),
        )


def _render_details(tree: SelectionTree, path: ActiveSelectionPath) -> None:
    node = tree.node(path.section, path.subsection)
    blocks, priced = describe_node(node, tree.catalog)
    st.subheader("Detalles")
    for block in blocks:
        title = f"**{block.label}**" + (f" · {block.plan_name}" if block.plan_name else "")
        st.markdown(title)
        st.caption(block.text)

    if priced:
        st.subheader("Precios")
        for pl in priced:
            st.markdown(f"**{pl.label}** · {pl.plan_name}: {pl.text}")

    result = derive(path.section, tree.catalog, tree)
    c1, c2 = st.columns(2)
    c1.metric("Total con descuento", f"${format_amount(result.totals.total_with_discount)}")
    c2.metric("Total sin descuento", f"${format_amount(result.totals.total_without_discount)}")


def generate_contract(
    tree: SelectionTree,
    path: ActiveSelectionPath,
    form: ContractForm,
    *,
    executive: str,
    templates_dir: Path,
    store: ContractStore,
) -> Tuple[Optional[bytes], Optional[UserMessage]]:
    """Render the contract for the active path and store it as the current document."""
    derivation = mobile_derivation_for(tree, tree.catalog, form)
    contract = build_contract_fields(path, derivation, tree, form, executive=executive)
    try:
        template = load_template(templates_dir, contract.template_name)
        blob = render_contract_docx(template, contract.fields)
        store.put_document(blob)
    except (ContractDocumentError, ContractStoreError) as e:
        logger.warning("Contract generation failed: %s", e)
        return None, UserMessage(kind="document", text=f"No se pudo generar el contrato: {e}")
    logger.info("Generated %s for %s/%s", contract.template_name, path.section, path.subsection)
    return blob, None


def export_stored_contract(store: ContractStore, *, executive: str) -> Tuple[Optional[bytes], Optional[UserMessage]]:
    try:
        blob = store.get_document()
        if blob is None:
            return None, UserMessage(kind="document", text="No hay un contrato generado para exportar.")
        return export_contract_pdf(blob, executive=executive, generated_on=date.today()), None
    except (ContractDocumentError, ContractStoreError) as e:
        logger.warning("Contract export failed: %s", e)
        return None, UserMessage(kind="document", text=f"No se pudo exportar el contrato: {e}")


def _executive_name(store: ContractStore) -> str:
    try:
        return store.get_executive()
    except ContractStoreError as e:
        logger.warning("Could not read executive name: %s", e)
        return ""


def _show_message(msg: Optional[UserMessage]) -> None:
    if msg is None:
        return
    if msg.kind == "data":
        st.error(msg.text)
    else:
        st.warning(msg.text)


def _render_contract_form(tree: SelectionTree, path: ActiveSelectionPath, cfg: AppConfig, store: ContractStore) -> None:
    st.subheader("Contrato")
    with st.form("contract_form"):
        customer_name = st.text_input("Nombre del cliente")
        address = st.text_input("Dirección")
        branch = st.text_input("Sucursal")
        billing_cycle = st.text_input("Ciclo de facturación")
        contract_date = st.date_input("Fecha", value=date.today())
        pickup = st.radio("Entrega de Sim Card", options=[m.value for m in PickupMode], horizontal=True)
        submitted = st.form_submit_button("Generar contrato", use_container_width=True)

    if submitted:
        form = ContractForm(
            customer_name=customer_name.strip(),
            address=address.strip(),
            branch=branch.strip(),
            billing_cycle=billing_cycle.strip(),
            date=contract_date.strftime("%d-%m-%Y") if contract_date else "",
            pickup_mode=PickupMode(pickup),
        )
        _, msg = generate_contract(
            tree,
            path,
            form,
            executive=_executive_name(store),
            templates_dir=cfg.templates_dir,
            store=store,
        )
        if msg is None:
            st.success("Contrato generado.")
        _show_message(msg)

    try:
        stored = store.get_document()
    except ContractStoreError as e:
        _show_message(UserMessage(kind="document", text=str(e)))
        return
    if stored is None:
        return

    d1, d2 = st.columns(2)
    with d1:
        st.download_button(
            "Descargar contrato (.docx)",
            data=stored,
            file_name="contrato.docx",
            mime=DOCX_MIME,
            use_container_width=True,
        )
    with d2:
        pdf_bytes, msg = export_stored_contract(store, executive=_executive_name(store))
        if pdf_bytes is not None:
            st.download_button(
                "Exportar a PDF",
                data=pdf_bytes,
                file_name="contrato.pdf",
                mime="application/pdf",
                use_container_width=True,
            )
        _show_message(msg)


def _render_sidebar(store: ContractStore) -> None:
    st.sidebar.header("Ajustes")
    try:
        current = store.get_executive()
    except ContractStoreError as e:
        st.sidebar.error(str(e))
        return
    name = st.sidebar.text_input("Nombre del ejecutivo", value=current)
    c1, c2 = st.sidebar.columns(2)
    try:
        if c1.button("Guardar", use_container_width=True):
            store.put_executive(name)
            st.sidebar.success("Guardado.")
        if c2.button("Borrar", use_container_width=True):
            store.delete_executive()
            st.rerun()
    except ContractStoreError as e:
        st.sidebar.error(str(e))


def main() -> None:
    st.set_page_config(page_title="Contratos", layout="wide")
    st.title("Contratos")

    load_dotenv(dotenv_path=Path.cwd() / ".env")
    cfg = load_app_config(_read_secret_or_env_str)
    configure_logging(cfg.log_level)
    store = ContractStore(cfg.store_dir)

    _render_sidebar(store)

    data, msg = load_data(cfg)
    if data is None:
        _show_message(msg)
        st.stop()
    for warning in data.warnings:
        st.warning(warning)
    if not data.structure.widgets:
        st.error("La estructura del formulario está vacía.")
        st.stop()

    tree, path = ensure_session(data, cfg)
    flash = st.session_state.pop(FLASH_KEY, None)
    if flash:
        st.warning(flash)

    path = _render_navigation(tree, path)
    left, right = st.columns([3, 2])
    with left:
        _render_selection(tree, path)
    with right:
        _render_details(tree, path)

    _render_contract_form(tree, path, cfg, store)


if __name__ == "__main__":
    main()
