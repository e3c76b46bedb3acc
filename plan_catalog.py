from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

logger = logging.getLogger(__name__)

# A normalized numeric cell: a number, free text (durations only) or "" when empty.
Amount = Union[int, float, str]


class PlanDataError(ValueError):
    pass


@dataclass(frozen=True)
class PlanRecord:
    code: str
    name: str
    regular_price: Amount
    promo1_price: Amount
    promo1_duration: Amount
    promo2_price: Amount
    promo2_duration: Amount
    details: str
    section: str
    subsection: str
    extra_for: str = ""


# Accepted column names per logical field, first non-empty wins.
CATALOG_COLUMN_ALIASES: Mapping[str, Tuple[str, ...]] = {
    "code": ("Código", "Codigo", "Code"),
    "name": ("Plan", "Name"),
    "regular_price": ("Valor", "Value", "Price"),
    "promo1_price": ("Promo1", "Promo_1"),
    "promo1_duration": ("Meses1", "Meses_1"),
    "promo2_price": ("Promo2", "Promo_2"),
    "promo2_duration": ("Meses2", "Meses_2"),
    "details": ("Detalles", "Details"),
    "section": ("Section", "Sección", "Seccion"),
    "subsection": ("Subsection", "Subsección", "Subseccion"),
    "extra_for": ("ExtraFor", "Extra_for"),
}

REQUIRED_CATALOG_COLUMNS: Tuple[str, ...] = (
    "código",
    "plan",
    "valor",
    "promo1",
    "meses1",
    "promo2",
    "meses2",
    "detalles",
)

_NOT_APPLICABLE = {"no aplica", "noaplica", "n/a", "na", "-"}
_NUMBER_RE = re.compile(r"-?\d[\d.,]*")
_LETTER_RE = re.compile(r"[A-Za-z]")


def normalize_number(value: object, *, integer: bool = False, allow_text: bool = False) -> Amount:
    """
    Coerce a spreadsheet cell into a number.

    Handles both `1.234,56` (dot thousands, comma decimals) and `1234.56` styles. Values
    that mean "not applicable" and blanks become "". When nothing numeric can be read the
    result is "" unless `allow_text`, in which case the trimmed text is kept verbatim
    (durations such as "indefinido").
    """
    if value is None or isinstance(value, bool):
        return ""
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return ""
        return math.floor(value) if integer else _tidy(value)

    s = str(value).strip()
    if not s:
        return ""
    if s.lower() in _NOT_APPLICABLE:
        return ""

    m = _NUMBER_RE.search(s)
    if m:
        num_str = m.group(0)
        if "." in num_str and "," in num_str:
            num_str = num_str.replace(".", "").replace(",", ".", 1)
        elif "," in num_str:
            num_str = num_str.replace(",", ".", 1)
        elif num_str.count(".") > 1:
            num_str = num_str.replace(".", "")
        try:
            num = float(num_str)
        except ValueError:
            num = None
        if num is not None:
            return math.floor(num) if integer else _tidy(num)

    if allow_text:
        return s
    return ""


def _tidy(num: Union[int, float]) -> Union[int, float]:
    if isinstance(num, float) and num.is_integer():
        return int(num)
    return num


def amount_or_zero(value: Amount) -> Union[int, float]:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value
    return 0


def is_blank(value: Amount) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def matches_prefix(code: str, prefix: str) -> bool:
    """
    True when `code` is `prefix` or `prefix` followed by a non-letter.

    `NM` matches `NM01` and `NM` but not `NMX`: a trailing letter means a different
    product family, not a numbered variant.
    """
    if not code or not prefix:
        return False
    code = str(code)
    prefix = str(prefix)
    if code == prefix:
        return True
    if not code.startswith(prefix):
        return False
    nxt = code[len(prefix) : len(prefix) + 1]
    if not nxt:
        return True
    return not _LETTER_RE.match(nxt)


def matches_any_prefix(code: str, prefixes: Iterable[str]) -> bool:
    return any(matches_prefix(code, str(p or "").strip()) for p in prefixes)


class Catalog:
    """Ordered, read-only plan catalog. Duplicate codes: the last row wins on lookup."""

    def __init__(self, plans: Iterable[PlanRecord] = ()) -> None:
        self._plans: Tuple[PlanRecord, ...] = tuple(plans)
        self._by_code: Dict[str, PlanRecord] = {}
        for plan in self._plans:
            if plan.code:
                self._by_code[plan.code] = plan

    @property
    def plans(self) -> Tuple[PlanRecord, ...]:
        return self._plans

    def __len__(self) -> int:
        return len(self._plans)

    def __iter__(self):
        return iter(self._plans)

    def find(self, code: Optional[str]) -> Optional[PlanRecord]:
        if not code:
            return None
        return self._by_code.get(str(code))

    def options_for_prefixes(self, prefixes: Sequence[str]) -> Tuple[PlanRecord, ...]:
        if not prefixes:
            return ()
        return tuple(p for p in self._plans if matches_any_prefix(p.code, prefixes))


def _resolve(row: Mapping[str, object], aliases: Sequence[str]) -> object:
    for key in aliases:
        val = row.get(key)
        if val is None:
            continue
        if isinstance(val, str) and not val.strip():
            continue
        return val
    return ""


def _as_text(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def plan_from_row(row: Mapping[str, object]) -> PlanRecord:
    def field(name: str) -> object:
        return _resolve(row, CATALOG_COLUMN_ALIASES[name])

    return PlanRecord(
        code=_as_text(field("code")),
        name=_as_text(field("name")),
        regular_price=normalize_number(field("regular_price")),
        promo1_price=normalize_number(field("promo1_price")),
        promo1_duration=normalize_number(field("promo1_duration"), integer=True, allow_text=True),
        promo2_price=normalize_number(field("promo2_price")),
        promo2_duration=normalize_number(field("promo2_duration"), integer=True, allow_text=True),
        details=_as_text(field("details")),
        section=_as_text(field("section")),
        subsection=_as_text(field("subsection")),
        extra_for=_as_text(field("extra_for")),
    )


def load_catalog(rows: Iterable[Mapping[str, object]]) -> Catalog:
    plans: List[PlanRecord] = []
    for row in rows:
        if not isinstance(row, Mapping):
            continue
        plans.append(plan_from_row(row))
    return Catalog(plans)


def missing_required_columns(header: Iterable[object]) -> List[str]:
    present = {str(h).strip().lower() for h in header if h is not None}
    missing = [c for c in REQUIRED_CATALOG_COLUMNS if c not in present]
    if missing:
        logger.warning("Catalog header is missing required columns: %s", ", ".join(missing))
    return missing


def format_amount(value: Amount) -> str:
    """Render a price for display; blanks become "-"."""
    if is_blank(value):
        return "-"
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else str(value)
    return str(value)


def format_duration(value: Amount) -> str:
    """`12` -> "12 meses"; free text is kept; blanks -> ""."""
    if is_blank(value):
        return ""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return f"{format_amount(value)} meses"
    return str(value)
