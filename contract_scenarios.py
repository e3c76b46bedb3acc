from __future__ import annotations

"""
Scripted selection sessions.

A scenario is a JSON object describing the clicks an executive would make in the form:

    {
      "name": "movil-nuevo-2-lineas",
      "section": "Movil",
      "subsection": "nuevo",
      "actions": [
        {"op": "select", "line": 0, "code": "NM02"},
        {"op": "add_line"},
        {"op": "select", "line": 1, "code": "NM02S"},
        {"op": "portability", "line": 0, "requested": true, "number": "987654321", "donor": "Entel"}
      ],
      "form": {"customer_name": "Ana", "pickup_mode": "Domicilio", "address": "Calle 1"},
      "executive": "Pedro"
    }

Actions run in order against a fresh `SelectionTree`; `section`/`subsection` on an action
address another node without changing the active path, and `activate` moves the path.
"""

import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Tuple, Union

from contract_fields import ContractForm, PickupMode
from form_structure import LineMode
from selection_tree import ActiveSelectionPath, SelectionTree


class ScenarioError(ValueError):
    pass


@dataclass(frozen=True)
class Scenario:
    name: str
    section: str
    subsection: Optional[str]
    actions: Tuple[Mapping[str, object], ...]
    form: ContractForm
    executive: str = ""


def _as_str(value: object) -> str:
    return value.strip() if isinstance(value, str) else ""


def _line(action: Mapping[str, object]) -> int:
    raw = action.get("line", 0)
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise ScenarioError(f"Action `line` must be an integer: {action!r}")
    return raw


def _form_from_raw(raw: object) -> ContractForm:
    if raw is None:
        return ContractForm()
    if not isinstance(raw, dict):
        raise ScenarioError("Scenario `form` must be an object")
    pickup = _as_str(raw.get("pickup_mode")) or PickupMode.BRANCH.value
    try:
        pickup_mode = PickupMode(pickup)
    except ValueError as e:
        raise ScenarioError(f"Unknown pickup_mode: {pickup!r}") from e
    return ContractForm(
        customer_name=_as_str(raw.get("customer_name")),
        address=_as_str(raw.get("address")),
        branch=_as_str(raw.get("branch")),
        billing_cycle=_as_str(raw.get("billing_cycle")),
        date=_as_str(raw.get("date")),
        pickup_mode=pickup_mode,
    )


def scenario_from_dict(raw: Mapping[str, object], *, default_name: str = "scenario") -> Scenario:
    if not isinstance(raw, dict):
        raise ScenarioError("Scenario must be a JSON object")
    section = _as_str(raw.get("section"))
    if not section:
        raise ScenarioError("Scenario is missing `section`")
    actions = raw.get("actions", [])
    if not isinstance(actions, list) or not all(isinstance(a, dict) for a in actions):
        raise ScenarioError("Scenario `actions` must be a list of objects")
    return Scenario(
        name=_as_str(raw.get("name")) or default_name,
        section=section,
        subsection=_as_str(raw.get("subsection")) or None,
        actions=tuple(actions),
        form=_form_from_raw(raw.get("form")),
        executive=_as_str(raw.get("executive")),
    )


def load_scenario(path: Union[str, Path]) -> Scenario:
    p = Path(path)
    try:
        with p.open("r", encoding="utf-8") as f:
            raw = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ScenarioError(f"Could not read scenario {p}: {e}") from e
    return scenario_from_dict(raw, default_name=p.stem)


def _apply_action(tree: SelectionTree, path: ActiveSelectionPath, action: Mapping[str, object]) -> ActiveSelectionPath:
    op = _as_str(action.get("op"))
    sec = _as_str(action.get("section")) or path.section
    sub = _as_str(action.get("subsection")) or path.subsection

    ops: Dict[str, Callable[[], object]] = {
        "select": lambda: tree.select(sec, sub, _line(action), _as_str(action.get("code")) or None),
        "toggle": lambda: tree.toggle(sec, sub, _as_str(action.get("key"))),
        "mode": lambda: tree.set_line_mode(sec, sub, _line(action), LineMode(_as_str(action.get("mode")))),
        "add_line": lambda: tree.add_line(sec, sub),
        "remove_line": lambda: tree.remove_line(sec, sub, _line(action)),
        "portability": lambda: tree.set_portability(
            sec,
            sub,
            _line(action),
            bool(action.get("requested", True)),
            action.get("number"),
            action.get("donor"),
        ),
    }
    if op == "activate":
        if _as_str(action.get("subsection")):
            ops[op] = lambda: tree.activate_subsection(sec, sub)
        else:
            ops[op] = lambda: tree.activate_section(sec)
    fn = ops.get(op)
    if fn is None:
        raise ScenarioError(f"Unknown action op: {op!r}")
    try:
        result = fn()
    except ValueError as e:
        # SelectionError and bad enum values both surface with the failing step.
        raise ScenarioError(f"Action {action!r} failed: {e}") from e
    return result if op == "activate" else path


def apply_scenario(tree: SelectionTree, scenario: Scenario) -> ActiveSelectionPath:
    """Activate the scenario's start path, replay its actions and return the final active path."""
    try:
        if scenario.subsection:
            path = tree.activate_subsection(scenario.section, scenario.subsection)
        else:
            path = tree.activate_section(scenario.section)
    except ValueError as e:
        raise ScenarioError(str(e)) from e
    for action in scenario.actions:
        path = _apply_action(tree, path, action)
    return path


def safe_stem(name: str) -> str:
    stem = re.sub(r"[^a-zA-Z0-9._-]+", "_", name or "").strip("_")
    return stem or "contrato"


def find_scenarios(paths: List[Path]) -> List[Path]:
    """Expand directories into their `*.json` files; files are kept as given."""
    out: List[Path] = []
    for p in paths:
        if p.is_dir():
            out.extend(sorted(q for q in p.glob("*.json") if q.is_file()))
        else:
            out.append(p)
    return out
