"""Merchant keys and quick-categorize grouping.

A merchant key is a short, deterministic string derived from a free-text
description. It is only meant to put transactions from the same payee into
the same bucket, not to recover a legally exact merchant name.
"""

from __future__ import annotations

import re
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, List, Optional, Sequence

from .config import DEFAULT_CATEGORY

MERCHANT_KEY_MAX_LENGTH = 50
UNKNOWN_MERCHANT = "UNKNOWN"

_DATE_TOKEN = re.compile(r"\b\d{1,2}[/-]\d{1,2}[/-]\d{4}\b")
_NOISE_WORDS = re.compile(r"\b(?:PURCHASE|PAYMENT|DEBIT|CREDIT)\b", re.IGNORECASE)


def extract_merchant(description: Optional[str]) -> str:
    text = (description or "").upper()
    text = _DATE_TOKEN.sub(" ", text)
    text = _NOISE_WORDS.sub(" ", text)
    tokens = text.strip().split()
    key = " ".join(tokens[:3])[:MERCHANT_KEY_MAX_LENGTH].strip()
    return key or UNKNOWN_MERCHANT


def merchant_key(txn: Any) -> str:
    """Explicit merchant field if set, else the key derived from the description."""
    explicit = (getattr(txn, "merchant", None) or "").strip()
    if explicit:
        return explicit
    return extract_merchant(getattr(txn, "description", ""))


def is_uncategorized(category: Optional[str]) -> bool:
    value = (category or "").strip()
    return not value or value.lower() == DEFAULT_CATEGORY.lower()


@dataclass
class MerchantGroup:
    merchant: str
    transactions: List[Any] = field(default_factory=list)
    total_amount: float = 0.0

    @property
    def count(self) -> int:
        return len(self.transactions)

    def to_dict(self) -> dict:
        return {
            "merchant": self.merchant,
            "count": self.count,
            "totalAmount": round(self.total_amount, 2),
            "transactions": [
                t.to_dict() if hasattr(t, "to_dict") else t for t in self.transactions
            ],
        }


def group_uncategorized(txns: Iterable[Any]) -> List[MerchantGroup]:
    """Group transactions still in ``Other`` (or with no category) by merchant key.

    Groups are sorted by member count, largest first; ties are broken by the
    absolute amount total and then the key so the order is stable.
    """

    groups: "OrderedDict[str, MerchantGroup]" = OrderedDict()
    for t in txns:
        if not is_uncategorized(getattr(t, "category", None)):
            continue
        key = merchant_key(t)
        group = groups.setdefault(key, MerchantGroup(merchant=key))
        group.transactions.append(t)
        group.total_amount += abs(float(getattr(t, "amount", 0) or 0))
    return sorted(groups.values(), key=lambda g: (-g.count, -g.total_amount, g.merchant))


def find_group(groups: Sequence[MerchantGroup], merchant: str) -> Optional[MerchantGroup]:
    wanted = (merchant or "").strip()
    for group in groups:
        if group.merchant == wanted:
            return group
    return None


@dataclass
class RowResult:
    id: Any
    ok: bool
    error: Optional[str] = None

    def to_dict(self) -> dict:
        body = {"id": self.id, "ok": self.ok}
        if self.error:
            body["error"] = self.error
        return body


def apply_category(
    txns: Iterable[Any],
    category: str,
    update: Callable[[Any, str], None],
) -> List[RowResult]:
    """Assign ``category`` to every transaction, one independent update per row.

    A failing row is reported and the remaining rows are still attempted.
    """

    results: List[RowResult] = []
    for t in txns:
        txn_id = getattr(t, "id", None)
        try:
            update(t, category)
        except Exception as exc:  # noqa: BLE001
            results.append(RowResult(id=txn_id, ok=False, error=str(exc) or exc.__class__.__name__))
        else:
            results.append(RowResult(id=txn_id, ok=True))
    return results
