"""Transaction categorization logic.

Ordered keyword matcher. Rules are evaluated top to bottom against the
lower-cased description and the first category with a matching keyword wins;
there is no scoring and no multi-label output.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable, Optional

from .config import DEFAULT_CATEGORY, DEFAULT_RULES, INCOME_CATEGORY, Rules

if TYPE_CHECKING:
    from .data_loader import Transaction


def categorize(
    description: Optional[str],
    amount: float = 0.0,
    rules: Optional[Rules] = None,
    allow_income: bool = False,
    default_category: str = DEFAULT_CATEGORY,
) -> str:
    """Return the category for one description.

    With ``allow_income`` a non-negative amount that matched no keyword is
    classified as income; card statements pass ``False`` because positive
    card amounts are charges, not income.
    """

    desc = (description or "").lower()
    for category, keywords in rules if rules is not None else DEFAULT_RULES:
        for kw in keywords or ():
            kw = kw.lower()
            if kw and kw in desc:
                return category

    if allow_income and amount >= 0:
        return INCOME_CATEGORY
    return default_category


def categorize_transactions(
    txns: Iterable["Transaction"],
    rules: Optional[Rules] = None,
    default_category: str = DEFAULT_CATEGORY,
) -> None:
    """In-place categorization of transactions that have no category yet."""

    for t in txns:
        if t.category:
            continue
        t.category = categorize(
            t.description,
            t.amount,
            rules,
            allow_income=t.transaction_type == "income",
            default_category=default_category,
        )
