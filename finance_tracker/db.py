"""Persistence helpers on top of the Flask-SQLAlchemy session.

The import pipeline needs only a handful of storage operations: an existence
check on (user, date, amount, description), insert-returning-row, a per-user
write lock, update by id, and commit/rollback of the surrounding unit of work.
"""

from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Dict, Optional

from flask import Flask

from .data_loader import Transaction as CanonicalTransaction
from .models import AuditLog, Transaction, User, db, utcnow

logger = logging.getLogger(__name__)


def init_db(app: Flask) -> None:
    with app.app_context():
        db.create_all()
    logger.info("Database ready at %s", app.config.get("SQLALCHEMY_DATABASE_URI"))


def transaction_exists(user_id: int, date: dt.date, amount: float, description: Optional[str]) -> bool:
    stmt = (
        db.select(Transaction.id)
        .where(
            Transaction.user_id == user_id,
            Transaction.transaction_date == date,
            Transaction.amount == amount,
            Transaction.description == description,
        )
        .limit(1)
    )
    return db.session.execute(stmt).first() is not None


def insert_transaction(
    user_id: int,
    txn: CanonicalTransaction,
    source_file: Optional[str] = None,
    imported_at: Optional[dt.datetime] = None,
) -> Transaction:
    record = Transaction(
        user_id=user_id,
        transaction_date=txn.date,
        description=txn.description,
        amount=txn.amount,
        category=txn.category,
        transaction_type=txn.transaction_type,
        payment_method=txn.payment_method,
        merchant=txn.merchant,
        source_file=source_file,
        imported_at=imported_at,
    )
    db.session.add(record)
    db.session.flush()
    return record


def lock_user_for_import(user_id: int, now: Optional[dt.datetime] = None) -> None:
    """Stamp ``last_import_at`` so the current transaction holds the user's write lock.

    PostgreSQL locks the user row until commit; SQLite takes the database
    write lock. Either way a second import for the same user waits here
    instead of racing through the duplicate check.
    """

    db.session.execute(
        db.update(User).where(User.id == user_id).values(last_import_at=now or utcnow())
    )


def count_transactions(user_id: int) -> int:
    stmt = db.select(db.func.count(Transaction.id)).where(Transaction.user_id == user_id)
    return int(db.session.execute(stmt).scalar() or 0)


def get_user_transaction(user_id: int, txn_id: int) -> Optional[Transaction]:
    return db.session.execute(
        db.select(Transaction).where(Transaction.id == txn_id, Transaction.user_id == user_id)
    ).scalar_one_or_none()


def update_category(record: Transaction, category: str) -> None:
    """Update one row and commit it on its own; rolls back that row on failure."""

    try:
        record.category = category
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


def log_audit(
    user_id: int,
    action: str,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
    commit: bool = True,
) -> None:
    db.session.add(
        AuditLog(
            user_id=user_id,
            action=action,
            ip_address=ip_address,
            user_agent=(user_agent or None) and user_agent[:255],
            metadata_json=metadata,
        )
    )
    if commit:
        db.session.commit()
