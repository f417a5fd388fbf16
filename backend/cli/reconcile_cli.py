from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, List, Optional

import yaml

from backend.app.error_messages import extraction_error_message
from backend.app.models import CandidateDecodeError, QuoteData, decode_candidate
from backend.app.services import merge_service, metrics_service
from backend.app.services.reconcile_service import reconcile_candidate, to_canonical_quote
from backend.app.services.session_service import currency_disclosure
from backend.shared.normalize.rules import ReconciliationRules, load_rules
from backend.shared.normalize.text import normalize_key


class CLIError(Exception):
    """Raised when user input is invalid."""


def _read_candidate_file(path: Path) -> Any:
    if not path.exists():
        raise CLIError(f"File not found: {path}")
    text = path.read_text(encoding="utf-8")
    suffix = path.suffix.lower()
    try:
        if suffix in (".yaml", ".yml"):
            return yaml.safe_load(text)
        return json.loads(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise CLIError(f"Could not parse {path}: {exc}") from exc


def _load_rules(args: argparse.Namespace) -> ReconciliationRules:
    try:
        return load_rules(args.rules)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        raise CLIError(f"Could not load reconciliation rules: {exc}") from exc


def _reconcile_file(path: Path, quote_id: str, rules: ReconciliationRules):
    payload = _read_candidate_file(path)
    try:
        candidate = decode_candidate(payload)
    except CandidateDecodeError as exc:
        raise CLIError(f"{path}: {extraction_error_message('validation')} ({exc.message})") from exc
    return candidate, to_canonical_quote(reconcile_candidate(candidate, rules), quote_id)


def _money(value: Optional[float]) -> str:
    return "-" if value is None else f"${value:,.2f}"


def cmd_reconcile(args: argparse.Namespace) -> None:
    rules = _load_rules(args)
    candidate, quote = _reconcile_file(Path(args.path), args.quote_id, rules)
    result = {
        "quote": quote.to_payload(),
        "metrics": metrics_service.compute_metrics(quote).to_payload(),
        "currency": currency_disclosure(candidate),
    }
    print(json.dumps(result, indent=2, ensure_ascii=False))


def _print_comparison(quotes: List[QuoteData], rules: ReconciliationRules) -> None:
    calculations = metrics_service.compute_all(quotes)
    analysis = metrics_service.price_analysis(quotes)
    for quote in quotes:
        metrics = calculations[quote.id]
        labels = analysis["quotes"][quote.id]["labels"]
        marker = f" [{metrics_service.BEST_PRICE}]" if analysis["quotes"][quote.id]["isBestPrice"] else ""
        print(
            f"{quote.company_name}: total={_money(metrics.total_cost)} "
            f"per_lb={_money(metrics.price_per_pound)} per_cuft={_money(metrics.price_per_cubic_foot)}"
            f"{marker}"
        )
        if labels:
            print(f"  {', '.join(labels)}")
    rows = merge_service.other_cost_rows(quotes, rules)
    if rows:
        print("Other costs:")
        for row in rows:
            cells = ", ".join(f"{cell['quoteId']}={_money(cell['value'])}" for cell in row["cells"])
            print(f"- {row['label'] or row['key']}: {cells}")
    if analysis["hasUnknownCosts"]:
        print("Note: some separately charged services have no cost entered.")


def cmd_compare(args: argparse.Namespace) -> None:
    rules = _load_rules(args)
    quotes: List[QuoteData] = []
    for idx, raw_path in enumerate(args.path, start=1):
        _, quote = _reconcile_file(Path(raw_path), f"quote-{idx}", rules)
        quotes.append(quote)
    if args.json:
        payload = {
            "quotes": [quote.to_payload() for quote in quotes],
            "calculations": {
                quote_id: metrics.to_payload()
                for quote_id, metrics in metrics_service.compute_all(quotes).items()
            },
            "otherCosts": merge_service.other_cost_rows(quotes, rules),
            "analysis": metrics_service.price_analysis(quotes),
        }
        print(json.dumps(payload, indent=2, ensure_ascii=False))
        return
    _print_comparison(quotes, rules)


def cmd_normalize_key(args: argparse.Namespace) -> None:
    normalized = normalize_key(args.key)
    if not normalized:
        raise CLIError(f"Key '{args.key}' is empty after normalization.")
    print(normalized)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Reconcile and compare moving quotes offline.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    reconcile = subparsers.add_parser("reconcile", help="Reconcile one candidate record (JSON/YAML).")
    reconcile.add_argument("--path", required=True)
    reconcile.add_argument("--quote-id", dest="quote_id", default="quote-1")
    reconcile.add_argument("--rules", default=None, help="Reconciliation rules YAML.")
    reconcile.set_defaults(func=cmd_reconcile)

    compare = subparsers.add_parser("compare", help="Reconcile several candidates and compare them.")
    compare.add_argument("--path", required=True, action="append", help="Repeat for each quote.")
    compare.add_argument("--rules", default=None, help="Reconciliation rules YAML.")
    compare.add_argument("--json", action="store_true", help="Emit the comparison as JSON.")
    compare.set_defaults(func=cmd_compare)

    normalize = subparsers.add_parser("normalize-key", help="Show the category key for a raw label.")
    normalize.add_argument("key")
    normalize.set_defaults(func=cmd_normalize_key)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        args.func(args)
    except CLIError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
