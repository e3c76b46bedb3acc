from __future__ import annotations

"""
Generate contracts offline from scripted selection scenarios.

Each scenario JSON (see `contract_scenarios.py`) is replayed against a fresh selection tree,
then the contract `.docx` and its PDF export are written to the output directory.

Usage:
  python3 scripts/generate_contracts.py --scenario scenarios/ --out-dir out/contracts
  python3 scripts/generate_contracts.py --workbook https://example.com/data.xlsx --scenario s1.json
"""

import argparse
import logging
import sys
from datetime import date
from pathlib import Path
from typing import Optional

# Allow running as `python3 scripts/generate_contracts.py` (module imports live at repo root).
_ROOT = Path(__file__).resolve().parents[1]
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

from tqdm import tqdm

from app_config import configure_logging, load_app_config
from contract_document import ContractDocumentError, load_template, render_contract_docx
from contract_fields import build_contract_fields, mobile_derivation_for
from contract_pdf import export_contract_pdf
from contract_scenarios import ScenarioError, apply_scenario, find_scenarios, load_scenario, safe_stem
from plan_catalog import PlanDataError
from selection_tree import SelectionTree
from workbook_source import FormData, load_form_data

logger = logging.getLogger("generate_contracts")


def generate_one(
    scenario_path: Path,
    *,
    data: FormData,
    templates_dir: Path,
    out_dir: Path,
    retain_portability: bool,
) -> Path:
    scenario = load_scenario(scenario_path)
    tree = SelectionTree(data.structure, data.catalog, retain_portability=retain_portability)
    path = apply_scenario(tree, scenario)

    derivation = mobile_derivation_for(tree, data.catalog, scenario.form)
    contract = build_contract_fields(path, derivation, tree, scenario.form, executive=scenario.executive)
    blob = render_contract_docx(load_template(templates_dir, contract.template_name), contract.fields)

    stem = safe_stem(scenario.name)
    docx_path = out_dir / f"{stem}.docx"
    docx_path.write_bytes(blob)
    pdf = export_contract_pdf(blob, executive=scenario.executive, generated_on=date.today())
    (out_dir / f"{stem}.pdf").write_bytes(pdf)
    return docx_path


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Render contracts (.docx + .pdf) from selection scenarios.")
    parser.add_argument(
        "--workbook",
        help="Catalog workbook path or http(s) URL (default: CONTRACT_DATA_SOURCE or data.xlsx).",
    )
    parser.add_argument(
        "--scenario",
        action="append",
        required=True,
        help="Scenario JSON file or directory of them (repeatable).",
    )
    parser.add_argument("--templates-dir", help="Directory with the contract .docx templates.")
    parser.add_argument("--out-dir", default=str(_ROOT / "out" / "contracts"), help="Output directory.")
    args = parser.parse_args(argv)

    cfg = load_app_config(dotenv_path=Path.cwd() / ".env")
    configure_logging(cfg.log_level)

    source = (args.workbook or "").strip() or cfg.data_source
    templates_dir = Path(args.templates_dir) if args.templates_dir else cfg.templates_dir
    out_dir = Path(args.out_dir)

    try:
        data = load_form_data(source, timeout_s=cfg.http_timeout_s)
    except PlanDataError as e:
        raise SystemExit(f"Could not load catalog: {e}")
    for warning in data.warnings:
        logger.warning(warning)

    scenarios = find_scenarios([Path(s) for s in args.scenario])
    if not scenarios:
        raise SystemExit("No scenario files found")
    out_dir.mkdir(parents=True, exist_ok=True)

    failures = 0
    for scenario_path in tqdm(scenarios, desc="Contracts"):
        try:
            written = generate_one(
                scenario_path,
                data=data,
                templates_dir=templates_dir,
                out_dir=out_dir,
                retain_portability=cfg.retain_portability,
            )
        except (ScenarioError, ContractDocumentError, OSError) as e:
            failures += 1
            logger.error("%s: %s", scenario_path.name, e)
            continue
        logger.info("Wrote %s", written)

    return 1 if failures else 0


if __name__ == "__main__":
    raise SystemExit(main())
