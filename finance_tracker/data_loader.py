"""Data loading helpers.

Reads bank and credit-card CSV exports and normalizes each row into the
canonical transaction schema:
    date (datetime.date), description (str), amount (float), category (str),
    transaction_type ("income" | "expense" | "payment"), merchant (str)

Column headers vary by source and are matched case-insensitively, with
surrounding whitespace removed, against an ordered table of candidates.
The sign convention is chosen explicitly by the import mode, never guessed
from which columns happen to be present.
"""

from __future__ import annotations

import csv
import datetime as dt
import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Any, Dict, Iterable, List, Mapping, Optional, Tuple

from .categorizer import categorize
from .config import BANK_STATEMENT, CREDIT_CARD, IMPORT_MODES, Rules
from .errors import ValidationError
from .merchants import extract_merchant

logger = logging.getLogger(__name__)

INCOME = "income"
EXPENSE = "expense"
PAYMENT = "payment"
TRANSACTION_TYPES = (INCOME, EXPENSE, PAYMENT)

UNKNOWN_DESCRIPTION = "Unknown"


@dataclass
class Transaction:
    date: dt.date
    description: str
    amount: float  # negative = expense, positive = income or card payment
    category: Optional[str] = None
    transaction_type: str = EXPENSE
    merchant: Optional[str] = None
    payment_method: Optional[str] = None
    id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "transactionDate": self.date.isoformat(),
            "description": self.description,
            "amount": self.amount,
            "category": self.category,
            "transactionType": self.transaction_type,
            "merchant": self.merchant,
            "paymentMethod": self.payment_method,
        }


# Candidate headers per canonical field, highest priority first.
_FIELD_HEADERS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("date", ("date", "transaction date", "trans. date", "timestamp")),
    ("description", ("description", "merchant", "name", "memo")),
    ("amount", ("amount", "debit", "credit", "value", "total")),
    ("merchant", ("merchant",)),
    ("category", ("category", "type")),
    ("debit", ("debit",)),
    ("credit", ("credit",)),
)
_HEADERS: Dict[str, Tuple[str, ...]] = dict(_FIELD_HEADERS)
_SPLIT_COLUMNS = ("debit", "credit")

_DATE_FORMATS = ("%Y-%m-%d", "%m/%d/%Y", "%d/%m/%Y", "%Y/%m/%d", "%m/%d/%y", "%m-%d-%Y", "%d-%m-%Y")


def _present(value: Any) -> bool:
    return value is not None and str(value).strip() != ""


def _clean_row(row: Mapping[Any, Any]) -> Dict[str, Any]:
    # csv.DictReader stores surplus cells under a ``None`` key.
    return {str(k).strip().lower(): v for k, v in row.items() if k is not None}


def _lookup(clean: Mapping[str, Any], field_name: str) -> Optional[Any]:
    for header in _HEADERS[field_name]:
        value = clean.get(header)
        if _present(value):
            return value
    return None


def _parse_date(value: Any) -> Optional[dt.date]:
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    text = str(value or "").strip()
    if not text:
        return None
    for fmt in _DATE_FORMATS:
        try:
            return dt.datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    try:
        return dt.datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        return None


def _to_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        v = str(value or "").replace(",", "").replace("$", "").strip()
        # Some exports wrap negatives in parentheses, e.g., (12.34)
        if v.startswith("(") and v.endswith(")"):
            v = "-" + v[1:-1]
        try:
            number = float(v)
        except ValueError:
            return None
    if not math.isfinite(number):
        return None
    return number


def _money_populated(value: Any) -> bool:
    # Some banks fill the unused debit/credit column with 0.00.
    return bool(_to_float(value)) if _present(value) else False


def _resolve_amount(clean: Mapping[str, Any], label: str) -> float:
    for header in _HEADERS["amount"]:
        value = clean.get(header)
        if not _present(value):
            continue
        if header in _SPLIT_COLUMNS and not _money_populated(value):
            continue
        amount = _to_float(value)
        if amount is None:
            logger.warning("%s: unparseable amount %r, using 0", label, value)
            return 0.0
        return amount
    return 0.0


def normalize_row(
    row: Mapping[Any, Any],
    mode: str = BANK_STATEMENT,
    source_file: Optional[str] = None,
    rules: Optional[Rules] = None,
    today: Optional[dt.date] = None,
) -> Transaction:
    """Map one raw CSV row onto a canonical ``Transaction``.

    Never raises for bad cell values: a missing or unparseable date becomes
    ``today``, a missing description becomes ``"Unknown"`` and a missing or
    unparseable amount becomes 0.
    """

    if mode not in IMPORT_MODES:
        raise ValueError(f"Unknown import mode: {mode}")
    label = source_file or "row"
    clean = _clean_row(row)
    today = today or dt.date.today()

    raw_date = _lookup(clean, "date")
    date = _parse_date(raw_date) if raw_date is not None else None
    if date is None:
        if raw_date is not None:
            logger.warning("%s: unparseable date %r, using %s", label, raw_date, today.isoformat())
        date = today

    description = str(_lookup(clean, "description") or UNKNOWN_DESCRIPTION).strip()
    raw_amount = _resolve_amount(clean, label)

    debit = _money_populated(clean.get("debit"))
    credit = _money_populated(clean.get("credit"))
    if mode == CREDIT_CARD:
        # On a card statement the Credit column holds payments and refunds.
        if credit and not debit:
            amount, txn_type = abs(raw_amount), PAYMENT
        elif debit and not credit:
            amount, txn_type = -abs(raw_amount), EXPENSE
        elif raw_amount < 0:
            amount, txn_type = abs(raw_amount), PAYMENT
        else:
            amount, txn_type = -raw_amount if raw_amount else 0.0, EXPENSE
    else:
        if debit and not credit:
            amount = -abs(raw_amount)
        elif credit and not debit:
            amount = abs(raw_amount)
        else:
            amount = raw_amount
        txn_type = INCOME if amount >= 0 else EXPENSE

    amount = round(amount, 2)
    merchant_value = _lookup(clean, "merchant")
    merchant = str(merchant_value).strip() if merchant_value is not None else extract_merchant(description)

    category_value = _lookup(clean, "category")
    if category_value is not None:
        category = str(category_value).strip()
    else:
        category = categorize(description, amount, rules, allow_income=mode == BANK_STATEMENT)

    return Transaction(
        date=date,
        description=description,
        amount=amount,
        category=category,
        transaction_type=txn_type,
        merchant=merchant,
    )


def normalize_rows(
    rows: Iterable[Mapping[Any, Any]],
    mode: str = BANK_STATEMENT,
    source_file: Optional[str] = None,
    rules: Optional[Rules] = None,
    today: Optional[dt.date] = None,
) -> List[Transaction]:
    return [normalize_row(row, mode, source_file, rules, today) for row in rows]


def coerce_canonical(
    payload: Mapping[str, Any],
    rules: Optional[Rules] = None,
    index: Optional[int] = None,
) -> Transaction:
    """Validate a row that already uses the canonical JSON field names."""

    where = f"transactions[{index}]." if index is not None else ""
    errors: List[Dict[str, str]] = []

    date: Optional[dt.date] = None
    raw_date = payload.get("transactionDate")
    if isinstance(raw_date, str) and raw_date.strip():
        try:
            date = dt.date.fromisoformat(raw_date.strip()[:10])
        except ValueError:
            date = None
    if date is None:
        errors.append({"field": f"{where}transactionDate", "message": "Valid date required"})

    description = str(payload.get("description") or "").strip()
    if not description:
        errors.append({"field": f"{where}description", "message": "Description required"})

    amount = _to_float(payload.get("amount")) if _present(payload.get("amount")) else None
    if amount is None:
        errors.append({"field": f"{where}amount", "message": "Valid amount required"})

    txn_type = payload.get("transactionType")
    if txn_type is not None and txn_type not in TRANSACTION_TYPES:
        errors.append({"field": f"{where}transactionType", "message": "Type must be income, expense or payment"})

    if errors:
        raise ValidationError("Invalid transaction", errors=errors)

    amount = round(amount, 2)
    txn_type = txn_type or (INCOME if amount >= 0 else EXPENSE)
    category = str(payload.get("category") or "").strip() or categorize(
        description, amount, rules, allow_income=txn_type == INCOME
    )
    merchant = str(payload.get("merchant") or "").strip() or extract_merchant(description)
    return Transaction(
        date=date,
        description=description,
        amount=amount,
        category=category,
        transaction_type=txn_type,
        merchant=merchant,
        payment_method=(payload.get("paymentMethod") or None),
    )


def load_csv_stream(
    stream: IO[str],
    mode: str = BANK_STATEMENT,
    label: Optional[str] = None,
    rules: Optional[Rules] = None,
) -> List[Transaction]:
    name = label or "upload"
    reader = csv.DictReader(stream)
    if not reader.fieldnames:
        raise ValueError(f"{name}: CSV file has no header row.")
    rows = [
        row for row in reader
        if any(_present(v) for k, v in row.items() if k is not None)
    ]
    txns = normalize_rows(rows, mode=mode, source_file=name, rules=rules)
    logger.info("%s: normalized %d rows (%s)", name, len(txns), mode)
    return txns


def load_csv_file(
    path: str | Path,
    mode: str = BANK_STATEMENT,
    rules: Optional[Rules] = None,
) -> List[Transaction]:
    p = Path(path)
    with p.open("r", encoding="utf-8-sig", newline="") as f:
        return load_csv_stream(f, mode=mode, label=p.name, rules=rules)


def load_csv_files(
    paths: Iterable[str | Path],
    mode: str = BANK_STATEMENT,
    rules: Optional[Rules] = None,
) -> List[Transaction]:
    all_txns: List[Transaction] = []
    for p in paths:
        all_txns.extend(load_csv_file(p, mode=mode, rules=rules))
    # Sort by date ascending
    all_txns.sort(key=lambda t: (t.date, t.description, t.amount))
    return all_txns
