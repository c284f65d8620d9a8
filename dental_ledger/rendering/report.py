"""HTML, PDF, JSON and CSV rendering for billing reports."""
from __future__ import annotations

import csv
import json
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Dict, List

from jinja2 import Environment, FileSystemLoader, select_autoescape

from dental_ledger.billing.engine import group_lines_by_service_date
from dental_ledger.config import AppSettings, get_settings
from dental_ledger.models import Account
from dental_ledger.reporting.aging import AGING_BUCKETS, AgingRow

try:  # pragma: no cover - optional dependency
    from weasyprint import HTML
except Exception:  # pragma: no cover - fallback when not installed
    HTML = None  # type: ignore


def _build_environment(settings: AppSettings) -> Environment:
    loader = FileSystemLoader(str(settings.template_dir))
    env = Environment(loader=loader, autoescape=select_autoescape(["html", "xml", "j2"]))
    env.filters["money"] = lambda value: f"{settings.currency_symbol}{Decimal(value):,.2f}"
    return env


def render_aging_html(
    buckets: Dict[str, Decimal],
    rows: List[AgingRow],
    as_of: date,
    settings: AppSettings | None = None,
) -> str:
    settings = settings or get_settings()
    template = _build_environment(settings).get_template("aging_report.html.j2")
    return template.render(
        buckets=buckets,
        bucket_names=AGING_BUCKETS,
        rows=rows,
        as_of=as_of,
        total=sum(buckets.values(), Decimal("0")),
        settings=settings,
    )


def render_statement_html(account: Account, settings: AppSettings | None = None) -> str:
    settings = settings or get_settings()
    template = _build_environment(settings).get_template("statement.html.j2")
    return template.render(
        account=account,
        lines_by_date=group_lines_by_service_date(account.invoice_lines),
        settings=settings,
    )


def write_html(html_content: str, output_path: Path) -> Path:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(html_content, encoding="utf-8")
    return output_path


def write_pdf(html_content: str, output_path: Path) -> Path:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    if HTML is None:
        raise RuntimeError("WeasyPrint is not installed; cannot render PDF")
    HTML(string=html_content).write_pdf(str(output_path))
    return output_path


def aging_to_dict(buckets: Dict[str, Decimal], rows: List[AgingRow], as_of: date) -> Dict[str, object]:
    return {
        "as_of": as_of.isoformat(),
        "buckets": {name: str(buckets[name]) for name in AGING_BUCKETS},
        "total": str(sum(buckets.values(), Decimal("0"))),
        "accounts": [
            {
                "account_id": row.account_id,
                "buckets": {name: str(row.buckets[name]) for name in AGING_BUCKETS},
                "total": str(row.total),
                "line_count": row.line_count,
                "balance_due": str(row.balance_due),
            }
            for row in rows
        ],
    }


def write_json(payload: object, output_path: Path) -> Path:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(
        json.dumps(payload, indent=2, default=str),
        encoding="utf-8",
    )
    return output_path


def write_aging_csv(rows: List[AgingRow], output_path: Path) -> Path:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with output_path.open("w", encoding="utf-8", newline="") as handle:
        writer = csv.writer(handle)
        writer.writerow(["account_id", *AGING_BUCKETS, "total", "balance_due"])
        for row in rows:
            writer.writerow(
                [row.account_id, *(row.buckets[name] for name in AGING_BUCKETS), row.total, row.balance_due]
            )
    return output_path


__all__ = [
    "aging_to_dict",
    "render_aging_html",
    "render_statement_html",
    "write_aging_csv",
    "write_html",
    "write_json",
    "write_pdf",
]
