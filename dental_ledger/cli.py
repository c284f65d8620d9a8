"""Command line interface for the dental billing ledger."""
from __future__ import annotations

import argparse
import logging
import sys
from datetime import date
from decimal import Decimal
from pathlib import Path

from dental_ledger.billing import BillingEngine, LedgerError, LedgerValidationError, identify_brand, last_four
from dental_ledger.billing.money import quantize
from dental_ledger.catalog import get_catalog
from dental_ledger.config import AppSettings, get_settings
from dental_ledger.rendering.report import (
    aging_to_dict,
    render_aging_html,
    render_statement_html,
    write_aging_csv,
    write_html,
    write_json,
    write_pdf,
)
from dental_ledger.reporting import build_aging_detail, build_aging_report
from dental_ledger.storage import import_accounts, load_export

LOGGER = logging.getLogger(__name__)


def _amount(value: str) -> Decimal:
    try:
        return quantize(value)
    except LedgerValidationError as exc:
        raise argparse.ArgumentTypeError(f"invalid amount: {value!r}") from exc


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Dental billing and insurance ledger")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    aging = subparsers.add_parser("aging", help="Build an accounts receivable aging report")
    aging.add_argument("export", type=Path, help="Ledger JSON export")
    aging.add_argument("-o", "--output", type=Path, default=Path("out"), help="Output directory")
    aging.add_argument("--as-of", type=date.fromisoformat, default=None, help="Report date (YYYY-MM-DD)")
    aging.add_argument("--json-only", action="store_true", help="Generate only JSON output")
    aging.add_argument("--html-only", action="store_true", help="Skip PDF generation")
    aging.add_argument("--csv", action="store_true", help="Also write a per-account CSV")
    aging.add_argument("--strict", action="store_true", help="Fail on recorded balance mismatches")

    statement = subparsers.add_parser("statement", help="Render a patient statement")
    statement.add_argument("export", type=Path, help="Ledger JSON export")
    statement.add_argument("account_id", help="Account to render")
    statement.add_argument("-o", "--output", type=Path, default=Path("out"), help="Output directory")
    statement.add_argument("--html-only", action="store_true", help="Skip PDF generation")

    brand = subparsers.add_parser("brand", help="Identify the brand of a card number")
    brand.add_argument("card_number", help="Card number or IIN prefix")

    fee = subparsers.add_parser("fee", help="Resolve the fee charged for a procedure")
    fee.add_argument("procedure_code", help="CDT procedure code, e.g. D1110")
    fee.add_argument("--plan", default=None, help="Insurance plan identifier")
    fee.add_argument("--override", type=_amount, default=None, help="Manual fee override")
    fee.add_argument("--export", type=Path, default=None, help="Ledger export holding the fee schedule")
    return parser


def _load_engine(path: Path, settings: AppSettings, *, strict: bool = False) -> BillingEngine:
    engine = BillingEngine(catalog=get_catalog(settings))
    import_accounts(engine, load_export(path), strict=strict)
    return engine


def _write_pdf_if_available(html_content: str, path: Path) -> None:
    try:
        write_pdf(html_content, path)
    except RuntimeError as exc:
        LOGGER.warning("Skipping PDF generation: %s", exc)


def _run_aging(args: argparse.Namespace, settings: AppSettings) -> int:
    engine = _load_engine(args.export, settings, strict=args.strict)
    as_of = args.as_of or date.today()
    accounts = engine.snapshot()
    buckets = build_aging_report(accounts, as_of)
    rows = build_aging_detail(accounts, as_of)
    output_dir = args.output
    write_json(aging_to_dict(buckets, rows, as_of), output_dir / "aging.json")
    if args.csv:
        write_aging_csv(rows, output_dir / "aging.csv")
    if not args.json_only:
        html_content = render_aging_html(buckets, rows, as_of, settings=settings)
        write_html(html_content, output_dir / "aging.html")
        if not args.html_only:
            _write_pdf_if_available(html_content, output_dir / "aging.pdf")
    LOGGER.info("Artifacts written to %s", output_dir)
    return 0


def _run_statement(args: argparse.Namespace, settings: AppSettings) -> int:
    engine = _load_engine(args.export, settings)
    account = engine.get_account(args.account_id)
    html_content = render_statement_html(account, settings=settings)
    stem = f"statement-{account.account_id}"
    write_html(html_content, args.output / f"{stem}.html")
    if not args.html_only:
        _write_pdf_if_available(html_content, args.output / f"{stem}.pdf")
    LOGGER.info("Statement written to %s", args.output)
    return 0


def _run_brand(args: argparse.Namespace) -> int:
    brand = identify_brand(args.card_number)
    print(f"{brand or 'Unknown'} ending {last_four(args.card_number) or '-'}")
    return 0


def _run_fee(args: argparse.Namespace, settings: AppSettings) -> int:
    if args.export:
        engine = _load_engine(args.export, settings)
    else:
        engine = BillingEngine(catalog=get_catalog(settings))
    fee = engine.resolve_fee(args.procedure_code, args.plan, args.override)
    print(f"{args.procedure_code.upper()}: {settings.currency_symbol}{fee:,.2f}")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.debug else logging.INFO)
    settings = get_settings()
    try:
        if args.command == "aging":
            return _run_aging(args, settings)
        if args.command == "statement":
            return _run_statement(args, settings)
        if args.command == "brand":
            return _run_brand(args)
        return _run_fee(args, settings)
    except LedgerError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
