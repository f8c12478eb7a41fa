import datetime as dt

from finance_tracker import analytics as an
from finance_tracker.data_loader import EXPENSE, INCOME, PAYMENT, Transaction
from finance_tracker.reports import build_summary, export_transactions_csv, format_text_report


def _t(day, description, amount, category, txn_type):
    return Transaction(date=day, description=description, amount=amount, category=category, transaction_type=txn_type)


def _sample():
    return [
        _t(dt.date(2024, 1, 1), "Paycheck", 3000.0, "Income", INCOME),
        _t(dt.date(2024, 1, 3), "Whole Foods", -120.0, "Groceries", EXPENSE),
        _t(dt.date(2024, 1, 10), "Netflix", -15.0, "Subscriptions", EXPENSE),
        _t(dt.date(2024, 1, 20), "Card payment", 500.0, "Other", PAYMENT),
        _t(dt.date(2024, 2, 1), "Paycheck", 3000.0, "Income", INCOME),
        _t(dt.date(2024, 2, 10), "Netflix", -15.0, "Subscriptions", EXPENSE),
        _t(dt.date(2024, 3, 10), "Netflix", -15.0, "Subscriptions", EXPENSE),
        _t(dt.date(2024, 3, 12), "Rent", -2800.0, "Housing & Rent", EXPENSE),
    ]


def test_payments_are_excluded_from_totals():
    totals = an.summarize_income_expense(_sample())
    assert totals == {"income": 6000.0, "expense": 2965.0, "net": 3035.0}


def test_kpis():
    k = an.kpis(_sample())
    assert k["totalIncome"] == 6000.0
    assert k["totalExpenses"] == 2965.0
    assert k["savingsRate"] == round(3035 / 6000 * 100, 2)
    assert k["transactionCount"] == 8


def test_spending_by_category_sorted_descending():
    rows = an.spending_by_category(_sample())
    assert [r["category"] for r in rows] == ["Housing & Rent", "Groceries", "Subscriptions"]
    assert rows[2] == {"category": "Subscriptions", "total": 45.0, "count": 3, "average": 15.0}


def test_trends_most_recent_first():
    rows = an.trends(_sample(), "month")
    assert [r["period"] for r in rows] == ["2024-03-01", "2024-02-01", "2024-01-01"]
    assert rows[2]["transactionCount"] == 4
    assert rows[2]["expenses"] == 135.0


def test_trends_unknown_period_defaults_to_month():
    assert an.trends(_sample(), "fortnight") == an.trends(_sample(), "month")


def test_detect_recurring_finds_monthly_charge():
    recurring = an.detect_recurring(_sample())
    assert recurring == [("Netflix", 15.0, 3)]


def test_insights_flag_overspending_and_recurring():
    insights = an.generate_insights(_sample(), today=dt.date(2024, 3, 20))
    titles = [i["title"] for i in insights]
    assert "Higher Than Average Spending" in titles
    assert "Top Spending Category" in titles
    assert "Recurring Charges" in titles


def test_report_and_csv_export():
    txns = _sample()
    text = format_text_report(build_summary(txns))
    assert "Personal Finance Summary" in text
    assert "Netflix" in text
    csv_text = export_transactions_csv(txns)
    lines = csv_text.strip().splitlines()
    assert lines[0] == "transaction_date,description,amount,category,transaction_type,payment_method,merchant"
    assert len(lines) == 9
