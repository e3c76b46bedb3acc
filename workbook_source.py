from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from io import BytesIO
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union
from zipfile import BadZipFile

import httpx
from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from form_structure import FormStructure, compile_structure
from plan_catalog import Catalog, PlanDataError, load_catalog, missing_required_columns

logger = logging.getLogger(__name__)

CATALOG_SHEET = "catalog"
STRUCTURE_SHEET = "structure"

Row = Dict[str, object]


@dataclass(frozen=True)
class WorkbookTables:
    catalog_header: Tuple[str, ...]
    catalog_rows: Tuple[Row, ...]
    # None when the workbook has no structure sheet
    structure_rows: Optional[Tuple[Row, ...]]


@dataclass(frozen=True)
class FormData:
    catalog: Catalog
    structure: FormStructure
    warnings: Tuple[str, ...] = ()


def _cell(value: object) -> object:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return value


def _sheet_rows(ws) -> Tuple[Tuple[str, ...], Tuple[Row, ...]]:
    rows = ws.iter_rows(values_only=True)
    header_raw = next(rows, None)
    if header_raw is None:
        return (), ()
    header = tuple(str(h).strip() if h is not None else "" for h in header_raw)
    out: List[Row] = []
    for values in rows:
        if values is None or all(v is None or (isinstance(v, str) and not v.strip()) for v in values):
            continue
        row: Row = {}
        for idx, name in enumerate(header):
            if not name:
                continue
            row[name] = _cell(values[idx]) if idx < len(values) else ""
        out.append(row)
    return header, tuple(out)


def _find_sheet(wb, name: str):
    for ws in wb.worksheets:
        if ws.title.strip().lower() == name:
            return ws
    return None


def read_workbook_tables(data: bytes) -> WorkbookTables:
    """
    Read the catalog and structure sheets of an `.xlsx` workbook.

    The catalog is the sheet named `catalog` (any case) or, failing that, the first sheet.
    The structure sheet is optional.
    """
    if not data:
        raise PlanDataError("Workbook is empty")
    try:
        wb = load_workbook(BytesIO(data), read_only=True, data_only=True)
    except (BadZipFile, InvalidFileException, OSError, KeyError, ValueError) as e:
        raise PlanDataError(f"Could not open workbook: {e}") from e

    try:
        if not wb.worksheets:
            raise PlanDataError("Workbook has no sheets")
        catalog_ws = _find_sheet(wb, CATALOG_SHEET) or wb.worksheets[0]
        header, catalog_rows = _sheet_rows(catalog_ws)

        structure_rows: Optional[Tuple[Row, ...]] = None
        structure_ws = _find_sheet(wb, STRUCTURE_SHEET)
        if structure_ws is not None and structure_ws is not catalog_ws:
            _, structure_rows = _sheet_rows(structure_ws)
    finally:
        wb.close()

    logger.info(
        "Read workbook: %d catalog rows, structure sheet %s",
        len(catalog_rows),
        "present" if structure_rows is not None else "missing",
    )
    return WorkbookTables(catalog_header=header, catalog_rows=catalog_rows, structure_rows=structure_rows)


def load_workbook_tables(path: Union[str, Path]) -> WorkbookTables:
    p = Path(path)
    try:
        data = p.read_bytes()
    except OSError as e:
        raise PlanDataError(f"Could not read workbook {p}: {e}") from e
    return read_workbook_tables(data)


def fetch_workbook_tables(url: str, *, timeout_s: float = 30.0) -> WorkbookTables:
    try:
        with httpx.Client(timeout=timeout_s, follow_redirects=True) as client:
            resp = client.get(url)
    except httpx.HTTPError as e:
        raise PlanDataError(f"Could not download workbook from {url}: {e}") from e
    if not (200 <= resp.status_code < 300):
        raise PlanDataError(f"Workbook download failed ({resp.status_code}) from {url}")
    return read_workbook_tables(resp.content)


def build_form_data(tables: WorkbookTables) -> FormData:
    """Compile workbook tables into a catalog and form structure, collecting load warnings."""
    warnings: List[str] = []
    missing = missing_required_columns(tables.catalog_header)
    if missing:
        warnings.append(f"Faltan columnas en el catálogo: {', '.join(missing)}")

    catalog = load_catalog(tables.catalog_rows)
    structure = compile_structure(tables.structure_rows)
    if structure.used_default:
        warnings.append("No se encontró la hoja de estructura; se usa la estructura por defecto.")
    return FormData(catalog=catalog, structure=structure, warnings=tuple(warnings))


def load_form_data(source: str, *, timeout_s: float = 30.0) -> FormData:
    """Load from a local path or an http(s) URL."""
    src = (source or "").strip()
    if src.lower().startswith(("http://", "https://")):
        tables = fetch_workbook_tables(src, timeout_s=timeout_s)
    else:
        tables = load_workbook_tables(src)
    return build_form_data(tables)
