"""Bulk import of normalized transactions with duplicate detection.

The whole batch runs in one database transaction: either every
non-duplicate row is persisted or, on any storage error, none is. A row is a
duplicate when the user already owns a transaction with the same date,
amount and description, including rows inserted earlier in the same batch,
so importing the same file twice is idempotent.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError

from . import db as store
from .data_loader import Transaction
from .errors import ImportFailedError, ImportValidationError
from .models import db, utcnow

logger = logging.getLogger(__name__)


@dataclass
class ImportResult:
    imported: int = 0
    duplicates: int = 0
    total: int = 0
    transactions: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "imported": self.imported,
            "duplicates": self.duplicates,
            "total": self.total,
            "transactions": self.transactions,
        }


def bulk_import(
    user_id: int,
    rows: Sequence[Transaction],
    source_file: Optional[str] = None,
) -> ImportResult:
    if not isinstance(rows, (list, tuple)) or not rows:
        raise ImportValidationError()

    result = ImportResult(total=len(rows))
    imported_at = utcnow()
    session = db.session
    # Anything pending from before the import must not ride along in (or be
    # rolled back with) the batch.
    session.commit()
    try:
        store.lock_user_for_import(user_id, imported_at)
        for txn in rows:
            if store.transaction_exists(user_id, txn.date, txn.amount, txn.description):
                result.duplicates += 1
                continue
            record = store.insert_transaction(user_id, txn, source_file, imported_at)
            result.transactions.append(record.summary_dict())
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception(
            "Bulk import failed for user_id=%s source=%s; rolled back %d staged rows",
            user_id,
            source_file,
            len(result.transactions),
        )
        raise ImportFailedError() from exc

    result.imported = len(result.transactions)
    logger.info(
        "Bulk import for user_id=%s source=%s: imported=%d duplicates=%d total=%d",
        user_id,
        source_file,
        result.imported,
        result.duplicates,
        result.total,
    )
    return result
