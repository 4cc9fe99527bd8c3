"""Command line entry point: validate inputs from CSV files, optionally run the service."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Sequence

from cost_estimator import runtime_logging
from cost_estimator.api_client import SimulationApiClient
from cost_estimator.costing import total_base_cost
from cost_estimator.defaults import DRIVER_OPTIONS
from cost_estimator.input_metadata import advisory_warnings, driver_help, help_with_guidance
from cost_estimator.schema import coerce_number, display_id
from cost_estimator.session import SessionState, SetCorrelationMode, SetIterations, SetSeed, initial_state, reduce, sensitivity_tiers
from cost_estimator.validation import run_validation
from cost_estimator.workflow import export_results, import_cbs_text, import_risks_text, load_confidence_factors, run_simulation


def _driver_epilog() -> str:
    lines = ["Driver groups (Standard correlation):"]
    lines.extend(f"  {group}: {driver_help(group)}" for group in DRIVER_OPTIONS)
    return "\n".join(lines)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="cost-estimator", description="Risk adjusted project cost estimate inputs.")
    sub = parser.add_subparsers(dest="command", required=True)
    for name, help_text in (("validate", "Import CSV inputs and report validation issues."), ("run", "Validate, then run the simulation service.")):
        p = sub.add_parser(name, help=help_text, epilog=_driver_epilog(), formatter_class=argparse.RawDescriptionHelpFormatter)
        p.add_argument("--cbs", type=Path, help="CBS CSV (names, optional base cost and low/mostLikely/high).")
        p.add_argument("--risks", type=Path, help="Risk register CSV.")
        p.add_argument("--iterations", type=int, default=None, help=help_with_guidance("iterations"))
        p.add_argument("--seed", type=int, default=None, help=help_with_guidance("seed"))
        p.add_argument("--correlation", choices=["none", "standard"], default=None, help=driver_help(""))
        p.add_argument("--api-base-url", default=None, help="Overrides COST_ESTIMATOR_API_BASE_URL.")
        if name == "run":
            p.add_argument("--export", choices=["excel", "json"], action="append", default=[], help="Download a rendered export after the run.")
            p.add_argument("--out", type=Path, default=Path("."), help="Directory for exports.")
    return parser


def _print_errors(state: SessionState) -> None:
    for err in state.errors:
        print(f"{err.get('msg', 'Error')}: {err.get('detail', '')}", file=sys.stderr)


def _apply_inputs(state: SessionState, args: argparse.Namespace) -> SessionState:
    if args.cbs is not None:
        state = import_cbs_text(state, args.cbs.read_text(encoding="utf-8"))
    if args.risks is not None:
        state = import_risks_text(state, args.risks.read_text(encoding="utf-8"))
    if args.iterations is not None:
        state = reduce(state, SetIterations(args.iterations))
    if args.seed is not None:
        state = reduce(state, SetSeed(args.seed))
    if args.correlation is not None:
        state = reduce(state, SetCorrelationMode(args.correlation))
    return state


def _print_results(state: SessionState) -> None:
    results = state.results or {}
    for key in ("p5", "p10", "p50", "p90", "contingency_p90_minus_p50"):
        if key in results:
            print(f"{key}: {coerce_number(results[key]):,.0f}")
    tiers = sensitivity_tiers(state)
    for title, frame in (("Dominant drivers", tiers.dominant), ("Moderately dominant drivers", tiers.moderate)):
        print(f"{title} ({len(frame)})")
        for row in frame.itertuples(index=False):
            print(f"  {row.direction} {row.abs_rho:.2f}  {row.display_name} [{display_id(row.name)}]")


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    runtime_logging.install_global_exception_logging()

    state = initial_state()
    client = None
    if args.command == "run":
        client = SimulationApiClient(base_url=args.api_base_url)
        state = load_confidence_factors(state, client)

    state = _apply_inputs(state, args)
    _print_errors(state)

    report = run_validation(state)
    print(f"CBS items: {len(state.cbs_items)}  base total: {total_base_cost(state.cbs_items):,.0f}  risks: {len(state.risks)}")
    for warning in advisory_warnings({"iterations": state.settings.iterations}, state.risks):
        print(f"warning: {warning}")
    for issue in report.issues:
        print(f"issue: {issue}")
    if report.issues:
        return 1
    if client is None:
        print("Inputs are simulation-ready.")
        return 0

    state = run_simulation(state, client)
    if not state.has_results:
        _print_errors(state)
        return 2
    _print_results(state)
    if state.commentary:
        print(state.commentary)

    for kind in args.export:
        state, content, filename = export_results(state, client, kind)
        if content is None:
            _print_errors(state)
            return 2
        args.out.mkdir(parents=True, exist_ok=True)
        (args.out / filename).write_bytes(content)
        print(f"Wrote {args.out / filename}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
