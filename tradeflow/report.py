"""
tradeflow.report — CLI trade analysis report.

Usage:
    python -m tradeflow.report
    python -m tradeflow.report --data-dir data/ --year 2023 --year 2024
    python -m tradeflow.report --country Kenya --top-n 5 --json

Exit codes:
    0: Report produced.
    1: Dataset could not be loaded.

Output:
    Default: human-readable report to stdout.
    --json: structured JSON report to stdout.
"""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from tradeflow.aggregator import by_code, by_commodity, by_country, summarize
from tradeflow.constants import DEFAULT_TOP_N, OPPORTUNITY_LIMIT
from tradeflow.filters import FilterSpec, apply_filter
from tradeflow.forecast import forecast_trend
from tradeflow.loader import DatasetLoadError, load_trade_data
from tradeflow.models import CanonicalRecord
from tradeflow.opportunity import score_opportunities

EXIT_OK = 0
EXIT_LOAD_FAILED = 1


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tradeflow.report",
        description="Summarize, rank and forecast yearly trade datasets.",
    )
    parser.add_argument(
        "--data-dir",
        type=str,
        default=None,
        help="Directory of <year>.json files (default: packaged data).",
    )
    parser.add_argument("--year", type=int, action="append", default=[], help="Restrict to a year (repeatable).")
    parser.add_argument("--country", action="append", default=[], help="Restrict to a country (repeatable).")
    parser.add_argument("--commodity", action="append", default=[], help="Restrict to a commodity description (repeatable).")
    parser.add_argument("--code", type=int, action="append", default=[], help="Restrict to a commodity code (repeatable).")
    parser.add_argument("--top-n", type=int, default=DEFAULT_TOP_N, help="Rows per breakdown.")
    parser.add_argument(
        "--json",
        action="store_true",
        dest="json_output",
        help="Output structured JSON report.",
    )
    return parser


def build_report(
    records: Sequence[CanonicalRecord],
    top_n: int = DEFAULT_TOP_N,
) -> dict[str, Any]:
    return {
        "summary": summarize(records).to_dict(),
        "top_countries": [r.to_dict() for r in by_country(records, top_n)],
        "top_commodities": [r.to_dict() for r in by_commodity(records, top_n)],
        "top_codes": [r.to_dict() for r in by_code(records, top_n)],
        "opportunities": [o.to_dict() for o in score_opportunities(records, OPPORTUNITY_LIMIT)],
        "forecast": forecast_trend(records).to_dict(),
    }


def _print_rows(title: str, rows: list[dict[str, Any]]) -> None:
    print(f"\n{title}")
    for i, row in enumerate(rows, 1):
        print(f"  {i:>2}. {row['group_key']}: ${row['value']:,.0f}")


def main(argv: list[str] | None = None) -> int:
    """Run the report. Returns exit code."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        dataset = load_trade_data(Path(args.data_dir) if args.data_dir else None)
    except DatasetLoadError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_LOAD_FAILED

    spec = FilterSpec.from_lists(
        years=args.year,
        countries=args.country,
        commodities=args.commodity,
        codes=args.code,
    )
    records = apply_filter(dataset.records, spec)
    report = build_report(records, args.top_n)

    if args.json_output:
        report["filters"] = spec.to_dict()
        report["dataset_version"] = dataset.version
        print(json.dumps(report, indent=2, ensure_ascii=False))
        return EXIT_OK

    s = report["summary"]
    print(f"Dataset:  {dataset.version[:16]} ({len(dataset)} records)")
    print(f"Filtered: {s['total_records']} records")
    print(f"Value:    ${s['total_value']:,.0f}")
    print(f"Avg unit: ${s['avg_unit_price']:,.2f}")
    print(f"Markets:  {s['unique_countries']}  Commodities: {s['unique_commodities']}")

    _print_rows("Top countries", report["top_countries"])
    _print_rows("Top commodities", report["top_commodities"])
    _print_rows("Top commodity codes", report["top_codes"])

    print("\nOpportunities")
    for opp in report["opportunities"]:
        print(
            f"  [{opp['potential']}] {opp['commodity']} (CMD {opp['cmd_code']}): "
            f"{opp['growth_rate']:+.1f}% growth, ${opp['current_value']:,.0f}, "
            f"top market {opp['top_market']}"
        )

    fc = report["forecast"]
    print(f"\nForecast (projected growth {fc['projected_growth']:+.1f}%)")
    for point in fc["points"]:
        if point["forecast"] is None:
            print(f"  {point['year']}: ${point['actual']:,.0f}")
        else:
            print(
                f"  {point['year']}: ${point['forecast']:,.0f} "
                f"(${point['lower_bound']:,.0f} – ${point['upper_bound']:,.0f})"
            )

    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
