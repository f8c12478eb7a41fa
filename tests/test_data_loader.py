import datetime as dt
import io

import pytest

from finance_tracker.config import BANK_STATEMENT, CREDIT_CARD
from finance_tracker.data_loader import (
    EXPENSE,
    INCOME,
    PAYMENT,
    coerce_canonical,
    load_csv_file,
    load_csv_stream,
    normalize_row,
)
from finance_tracker.errors import ValidationError

TODAY = dt.date(2024, 6, 15)


@pytest.mark.parametrize("value", ["12.50", "-12.50", "$1,012.50", "(12.50)"])
def test_debit_only_row_is_negative_expense(value):
    txn = normalize_row({"Date": "2024-01-05", "Description": "Shop", "Debit": value, "Credit": ""})
    assert txn.amount < 0
    assert txn.transaction_type == EXPENSE


@pytest.mark.parametrize("value", ["900", "-900", "(900.00)"])
def test_credit_only_row_is_positive_income(value):
    txn = normalize_row({"Date": "2024-01-05", "Description": "Employer", "Debit": "", "Credit": value})
    assert txn.amount == 900.0
    assert txn.transaction_type == INCOME


def test_zero_filled_debit_column_is_ignored():
    txn = normalize_row({"Date": "2024-01-05", "Description": "Payroll", "Debit": "0.00", "Credit": "1500"})
    assert txn.amount == 1500.0
    assert txn.transaction_type == INCOME
    assert txn.category == "Income"


def test_credit_card_charge_becomes_expense():
    row = {"Transaction Date": "01/15/2024", "Description": "STARBUCKS #123 SEATTLE", "Amount": "5.75"}
    txn = normalize_row(row, mode=CREDIT_CARD)
    assert txn.date == dt.date(2024, 1, 15)
    assert txn.amount == -5.75
    assert txn.transaction_type == EXPENSE
    assert txn.category == "Food & Dining"
    assert txn.merchant == "STARBUCKS #123 SEATTLE"


def test_credit_card_negative_amount_is_payment():
    txn = normalize_row({"Date": "2024-01-20", "Description": "PAYMENT THANK YOU", "Amount": "-250.00"}, mode=CREDIT_CARD)
    assert txn.amount == 250.0
    assert txn.transaction_type == PAYMENT
    assert txn.category != "Income"


def test_bank_statement_signed_amount():
    txn = normalize_row({"date": "2024-02-01", "description": "Rent February", "amount": "-1200"}, mode=BANK_STATEMENT)
    assert txn.amount == -1200.0
    assert txn.transaction_type == EXPENSE
    assert txn.category == "Housing & Rent"


def test_missing_fields_fall_back_to_defaults():
    txn = normalize_row({"Irrelevant": "x"}, today=TODAY)
    assert txn.date == TODAY
    assert txn.description == "Unknown"
    assert txn.amount == 0.0


def test_unparseable_values_do_not_raise(caplog):
    txn = normalize_row({"Date": "not a date", "Description": "Thing", "Amount": "abc"}, today=TODAY)
    assert txn.date == TODAY
    assert txn.amount == 0.0
    assert "unparseable" in caplog.text


def test_headers_are_trimmed_and_case_insensitive():
    row = {"  DATE ": "2024-03-01", " DESCRIPTION": "Netflix.com", "AMOUNT  ": "-15.49", "Category": " Subscriptions "}
    txn = normalize_row(row)
    assert txn.date == dt.date(2024, 3, 1)
    assert txn.description == "Netflix.com"
    assert txn.amount == -15.49
    assert txn.category == "Subscriptions"


def test_explicit_merchant_column_wins():
    txn = normalize_row({"Date": "2024-03-01", "Description": "SQ *BLUE BOTTLE 0042", "Merchant": "Blue Bottle", "Amount": "-4"})
    assert txn.merchant == "Blue Bottle"


def test_unknown_mode_is_rejected():
    with pytest.raises(ValueError):
        normalize_row({"Date": "2024-01-01"}, mode="savings")


def test_load_csv_stream_skips_blank_rows():
    text = "Date,Description,Amount\n2024-01-01,Coffee Shop,-3.50\n,,\n2024-01-02,Salary,2000\n"
    txns = load_csv_stream(io.StringIO(text), label="bank.csv")
    assert [t.description for t in txns] == ["Coffee Shop", "Salary"]
    assert txns[1].category == "Income"


def test_load_csv_stream_requires_header():
    with pytest.raises(ValueError):
        load_csv_stream(io.StringIO(""), label="empty.csv")


def test_load_csv_file_handles_bom(tmp_path):
    path = tmp_path / "card.csv"
    path.write_text("\ufeffTransaction Date,Description,Amount\n01/15/2024,AMAZON MKTPLACE,23.99\n", encoding="utf-8")
    (txn,) = load_csv_file(path, mode=CREDIT_CARD)
    assert txn.amount == -23.99
    assert txn.category == "Shopping"


def test_coerce_canonical_accepts_valid_row():
    txn = coerce_canonical({"transactionDate": "2024-04-01T00:00:00Z", "description": "Whole Foods", "amount": "-82.10"})
    assert txn.date == dt.date(2024, 4, 1)
    assert txn.transaction_type == EXPENSE
    assert txn.category == "Groceries"


def test_coerce_canonical_collects_field_errors():
    with pytest.raises(ValidationError) as excinfo:
        coerce_canonical({"transactionDate": "yesterday", "description": " ", "amount": "x"}, index=2)
    fields = [e["field"] for e in excinfo.value.payload["errors"]]
    assert fields == ["transactions[2].transactionDate", "transactions[2].description", "transactions[2].amount"]


@pytest.mark.parametrize(
    "header, value",
    [
        ("Date", "2024-05-06"),
        ("Transaction Date", "05/06/2024"),
        ("Trans. Date", "05/06/2024"),
        ("Timestamp", "2024-05-06T10:30:00"),
    ],
)
def test_date_header_candidates(header, value):
    txn = normalize_row({header: value, "Description": "Corner Deli", "Amount": "-4"})
    assert txn.date == dt.date(2024, 5, 6)


@pytest.mark.parametrize("header", ["Description", "Merchant", "Name", "Memo"])
def test_description_header_candidates(header):
    txn = normalize_row({"Date": "2024-05-06", header: "Corner Deli", "Amount": "-4"})
    assert txn.description == "Corner Deli"


@pytest.mark.parametrize("header", ["Amount", "Value", "Total"])
def test_amount_header_candidates(header):
    txn = normalize_row({"Date": "2024-05-06", "Description": "Corner Deli", header: "-7.25"})
    assert txn.amount == -7.25
    assert txn.transaction_type == EXPENSE


def test_merchant_column_fills_missing_description():
    txn = normalize_row({"Date": "2024-05-06", "Merchant": "Blue Bottle", "Amount": "-4"})
    assert txn.description == "Blue Bottle"
    assert txn.merchant == "Blue Bottle"


def test_type_column_is_category_fallback():
    row = {"Date": "2024-05-06", "Description": "Corner Deli", "Amount": "-4", "Type": "Sale"}
    assert normalize_row(row).category == "Sale"
    row["Category"] = "Food & Dining"
    assert normalize_row(row).category == "Food & Dining"


def test_credit_card_credit_column_is_payment():
    row = {"Date": "2024-01-20", "Description": "ONLINE THANK YOU", "Debit": "", "Credit": "100.00"}
    txn = normalize_row(row, mode=CREDIT_CARD)
    assert txn.amount == 100.0
    assert txn.transaction_type == PAYMENT


def test_credit_card_debit_column_is_expense():
    row = {"Date": "2024-01-21", "Description": "CORNER DELI", "Debit": "42.00", "Credit": ""}
    txn = normalize_row(row, mode=CREDIT_CARD)
    assert txn.amount == -42.0
    assert txn.transaction_type == EXPENSE
