"""Analytics and trend calculations.

Pure functions over an explicit list of canonical transactions. Income and
expense totals follow ``transaction_type``; ``payment`` rows (card payments
and refunds) are left out of both.
"""

from __future__ import annotations

import datetime as dt
import re
from collections import Counter, defaultdict
from statistics import median
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .config import DEFAULT_CATEGORY
from .data_loader import EXPENSE, INCOME, Transaction
from .merchants import merchant_key

TREND_PERIODS = ("day", "week", "month", "year")


def month_key(d: dt.date) -> str:
    return f"{d.year:04d}-{d.month:02d}"


def period_start(d: dt.date, period: str) -> dt.date:
    if period == "day":
        return d
    if period == "week":
        return d - dt.timedelta(days=d.weekday())
    if period == "year":
        return dt.date(d.year, 1, 1)
    return dt.date(d.year, d.month, 1)


def _normalize_description(desc: str) -> str:
    desc = desc.lower()
    desc = re.sub(r"\d+", " ", desc)
    desc = re.sub(r"[^a-z\s]", " ", desc)
    desc = re.sub(r"\s+", " ", desc).strip()
    return desc


def _income(t: Transaction) -> float:
    return t.amount if t.transaction_type == INCOME else 0.0


def _expense(t: Transaction) -> float:
    return abs(t.amount) if t.transaction_type == EXPENSE else 0.0


def summarize_income_expense(txns: Iterable[Transaction]) -> Dict[str, float]:
    txns = list(txns)
    income = sum(_income(t) for t in txns)
    expense = sum(_expense(t) for t in txns)
    net = income - expense
    return {"income": round(income, 2), "expense": round(expense, 2), "net": round(net, 2)}


def kpis(txns: Iterable[Transaction]) -> Dict[str, float]:
    txns = list(txns)
    totals = summarize_income_expense(txns)
    savings_rate = (totals["net"] / totals["income"]) * 100 if totals["income"] > 0 else 0.0
    avg = sum(abs(t.amount) for t in txns) / len(txns) if txns else 0.0
    return {
        "totalIncome": totals["income"],
        "totalExpenses": totals["expense"],
        "netSavings": totals["net"],
        "savingsRate": round(savings_rate, 2),
        "transactionCount": len(txns),
        "avgTransaction": round(avg, 2),
    }


def spending_by_category(txns: Iterable[Transaction]) -> List[Dict[str, Any]]:
    totals: Dict[str, float] = defaultdict(float)
    counts: Dict[str, int] = defaultdict(int)
    for t in txns:
        if t.transaction_type == EXPENSE:
            cat = t.category or DEFAULT_CATEGORY
            totals[cat] += abs(t.amount)
            counts[cat] += 1
    ranked = sorted(totals.items(), key=lambda kv: (-kv[1], kv[0]))
    return [
        {
            "category": cat,
            "total": round(total, 2),
            "count": counts[cat],
            "average": round(total / counts[cat], 2),
        }
        for cat, total in ranked
    ]


def top_categories(txns: Iterable[Transaction], n: int = 5) -> List[Dict[str, Any]]:
    return [{"category": row["category"], "total": row["total"]} for row in spending_by_category(txns)[:n]]


def monthly_totals(txns: Iterable[Transaction]) -> Dict[str, Dict[str, float]]:
    months: Dict[str, Dict[str, float]] = defaultdict(lambda: {"income": 0.0, "expense": 0.0, "net": 0.0})
    for t in txns:
        m = month_key(t.date)
        months[m]["income"] += _income(t)
        months[m]["expense"] += _expense(t)
        months[m]["net"] = months[m]["income"] - months[m]["expense"]
    # Round
    return {m: {k: round(v, 2) for k, v in vals.items()} for m, vals in sorted(months.items())}


def trends(txns: Iterable[Transaction], period: str = "month", limit: int = 24) -> List[Dict[str, Any]]:
    """Income, expenses and row count per period, most recent period first."""
    if period not in TREND_PERIODS:
        period = "month"
    buckets: Dict[dt.date, Dict[str, float]] = defaultdict(
        lambda: {"income": 0.0, "expenses": 0.0, "transactionCount": 0}
    )
    for t in txns:
        bucket = buckets[period_start(t.date, period)]
        bucket["income"] += _income(t)
        bucket["expenses"] += _expense(t)
        bucket["transactionCount"] += 1
    ordered = sorted(buckets.items(), key=lambda kv: kv[0], reverse=True)[:limit]
    return [
        {
            "period": start.isoformat(),
            "income": round(vals["income"], 2),
            "expenses": round(vals["expenses"], 2),
            "transactionCount": int(vals["transactionCount"]),
        }
        for start, vals in ordered
    ]


def monthly_trend(txns: Iterable[Transaction], limit: int = 12) -> List[Dict[str, Any]]:
    return [
        {"month": row["period"][:7], "income": row["income"], "expenses": row["expenses"]}
        for row in trends(txns, "month", limit)
    ]


def monthly_comparison(txns: Iterable[Transaction], limit: int = 100) -> List[Dict[str, Any]]:
    totals: Dict[Tuple[str, str, str], float] = defaultdict(float)
    for t in txns:
        totals[(month_key(t.date), t.transaction_type, t.category or DEFAULT_CATEGORY)] += abs(t.amount)
    rows = [
        {"month": month, "transactionType": txn_type, "category": cat, "total": round(total, 2)}
        for (month, txn_type, cat), total in totals.items()
    ]
    rows.sort(key=lambda r: r["total"], reverse=True)
    rows.sort(key=lambda r: r["month"], reverse=True)
    return rows[:limit]


def top_merchants(txns: Iterable[Transaction], n: int = 10) -> List[Tuple[str, float]]:
    spend: Dict[str, float] = defaultdict(float)
    for t in txns:
        if t.transaction_type == EXPENSE:
            spend[merchant_key(t)] += abs(t.amount)
    ranked = sorted(spend.items(), key=lambda kv: kv[1], reverse=True)
    return [(d, round(v, 2)) for d, v in ranked[:n]]


def detect_recurring(txns: Iterable[Transaction], min_months: int = 3, tolerance: float = 0.15) -> List[Tuple[str, float, int]]:
    """Detect recurring payments by normalized description.

    A merchant is considered recurring when the charge appears in at least
    ``min_months`` unique months and the amounts remain within a tolerance.
    ``tolerance`` is a relative percentage with a $1 absolute floor to avoid
    rejecting small fluctuations on low recurring charges.
    """

    by_desc_month: Dict[str, Dict[str, List[float]]] = defaultdict(lambda: defaultdict(list))
    display_names: Dict[str, Counter[str]] = defaultdict(Counter)
    for t in txns:
        if t.transaction_type == EXPENSE:
            norm = _normalize_description(t.description) or t.description.lower().strip()
            by_desc_month[norm][month_key(t.date)].append(abs(t.amount))
            display_names[norm][t.description] += 1

    recurring: List[Tuple[str, float, int]] = []
    for norm_desc, months in by_desc_month.items():
        month_amounts = {month: median(amts) for month, amts in months.items() if amts}
        if len(month_amounts) < min_months:
            continue
        med = median(month_amounts.values())
        tolerance_amount = max(abs(med) * tolerance, 1.0) if med else 1.0
        accepted = [amount for amount in month_amounts.values() if abs(amount - med) <= tolerance_amount]
        if len(accepted) < min_months:
            continue
        typical_amount = round(sum(accepted) / len(accepted), 2)
        display = display_names[norm_desc].most_common(1)[0][0]
        recurring.append((display, typical_amount, len(accepted)))

    recurring.sort(key=lambda x: (-x[2], -x[1]))
    return recurring


def generate_insights(txns: Iterable[Transaction], today: Optional[dt.date] = None) -> List[Dict[str, str]]:
    """Rule-based observations about the current month."""

    txns = list(txns)
    today = today or dt.date.today()
    current = month_key(today)
    insights: List[Dict[str, str]] = []

    monthly_spend: Dict[str, float] = defaultdict(float)
    for t in txns:
        if t.transaction_type == EXPENSE:
            monthly_spend[month_key(t.date)] += abs(t.amount)
    avg_monthly = sum(monthly_spend.values()) / len(monthly_spend) if monthly_spend else 0.0
    current_spend = monthly_spend.get(current, 0.0)

    if avg_monthly > 0 and current_spend > avg_monthly * 1.2:
        insights.append(
            {
                "type": "warning",
                "title": "Higher Than Average Spending",
                "message": f"You're spending {(current_spend / avg_monthly - 1) * 100:.0f}% more this month compared to your average.",
                "impact": "high",
            }
        )

    this_month = [t for t in txns if month_key(t.date) == current]
    top = top_categories(this_month, n=1)
    if top:
        insights.append(
            {
                "type": "info",
                "title": "Top Spending Category",
                "message": f"{top[0]['category']} is your largest expense this month at ${top[0]['total']:.2f}.",
                "impact": "medium",
            }
        )

    totals = summarize_income_expense(this_month)
    income = totals["income"]
    savings_rate = (totals["net"] / income) * 100 if income > 0 else 0.0
    if income > 0 and savings_rate < 10:
        insights.append(
            {
                "type": "warning",
                "title": "Low Savings Rate",
                "message": f"Your savings rate is {savings_rate:.1f}%. Financial experts recommend saving at least 20% of income.",
                "impact": "high",
            }
        )
    elif savings_rate >= 20:
        insights.append(
            {
                "type": "success",
                "title": "Great Savings!",
                "message": f"You're saving {savings_rate:.1f}% of your income. Keep up the excellent work!",
                "impact": "positive",
            }
        )

    recurring = detect_recurring(txns)
    if recurring:
        monthly_cost = sum(amount for _, amount, _ in recurring)
        insights.append(
            {
                "type": "info",
                "title": "Recurring Charges",
                "message": f"{len(recurring)} recurring charge{'s' if len(recurring) != 1 else ''} detected, about ${monthly_cost:.2f} per month.",
                "impact": "medium",
            }
        )
    return insights
