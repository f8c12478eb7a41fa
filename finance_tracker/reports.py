"""Reporting utilities.

Formats analytics into human-readable text, JSON-serializable dicts and CSV
exports.
"""

from __future__ import annotations

import csv
import io
import json
from pathlib import Path
from typing import Dict, IO, Iterable, List, Optional, Sequence

from . import analytics as an
from .data_loader import Transaction
from .merchants import MerchantGroup

EXPORT_COLUMNS = (
    "transaction_date",
    "description",
    "amount",
    "category",
    "transaction_type",
    "payment_method",
    "merchant",
)


def build_summary(txns: Iterable[Transaction]) -> Dict:
    txns = list(txns)
    return {
        "totals": an.summarize_income_expense(txns),
        "kpis": an.kpis(txns),
        "category_spend": an.spending_by_category(txns),
        "monthly": an.monthly_totals(txns),
        "top_merchants": an.top_merchants(txns, n=10),
        "recurring": an.detect_recurring(txns),
    }


def format_text_report(summary: Dict, groups: Optional[Sequence[MerchantGroup]] = None) -> str:
    lines: List[str] = []
    t = summary["totals"]
    lines.append("=== Personal Finance Summary ===")
    lines.append(f"Income:  ${t['income']:.2f}")
    lines.append(f"Expense: ${t['expense']:.2f}")
    lines.append(f"Net:     ${t['net']:.2f}")
    lines.append(f"Savings rate: {summary['kpis']['savingsRate']:.1f}%")
    lines.append("")

    lines.append("-- Spend by Category --")
    for row in summary["category_spend"]:
        lines.append(f"{row['category']:15} ${row['total']:.2f}  ({row['count']} txns)")
    lines.append("")

    lines.append("-- Monthly Totals --")
    for m, vals in summary["monthly"].items():
        lines.append(f"{m} | Inc ${vals['income']:.2f}  Exp ${vals['expense']:.2f}  Net ${vals['net']:.2f}")
    lines.append("")

    lines.append("-- Top Merchants (Spend) --")
    for desc, amt in summary["top_merchants"]:
        lines.append(f"{desc[:40]:40} ${amt:.2f}")
    lines.append("")

    lines.append("-- Recurring Payments (Detected) --")
    for desc, amt, months in summary["recurring"]:
        lines.append(f"{desc[:40]:40} ${amt:.2f}  ({months} months)")

    if groups is not None:
        lines.append("")
        lines.append("-- Uncategorized Merchants --")
        for group in groups:
            lines.append(f"{group.merchant[:40]:40} {group.count:4d}  ${group.total_amount:.2f}")
    return "\n".join(lines)


def save_json(summary: Dict, path: str | Path) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    with p.open("w", encoding="utf-8") as f:
        json.dump(summary, f, indent=2)


def export_rows(txns: Iterable[Transaction]) -> List[Dict]:
    return [
        {
            "transaction_date": t.date.isoformat(),
            "description": t.description,
            "amount": t.amount,
            "category": t.category,
            "transaction_type": t.transaction_type,
            "payment_method": t.payment_method,
            "merchant": t.merchant,
        }
        for t in txns
    ]


def export_transactions_csv(txns: Iterable[Transaction], target: Optional[IO[str]] = None) -> str:
    """Write transactions as CSV; returns the text when no target is given."""
    buffer = target if target is not None else io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=EXPORT_COLUMNS, lineterminator="\n")
    writer.writeheader()
    for row in export_rows(txns):
        writer.writerow({k: "" if v is None else v for k, v in row.items()})
    return buffer.getvalue() if target is None else ""
