import datetime as dt

import pytest

from finance_tracker.data_loader import EXPENSE, Transaction
from finance_tracker.errors import ImportFailedError, ImportValidationError
from finance_tracker.importer import bulk_import
from finance_tracker.models import Transaction as TransactionRecord
from finance_tracker.models import User, db


@pytest.fixture()
def user_id(app):
    with app.app_context():
        user = User(email="importer@example.com", password_hash="x", first_name="Imp", last_name="Orter")
        db.session.add(user)
        db.session.commit()
        return user.id


def _rows(n, start=1):
    return [
        Transaction(
            date=dt.date(2024, 1, i),
            description=f"Store {i}",
            amount=-float(i),
            category="Shopping",
            transaction_type=EXPENSE,
        )
        for i in range(start, start + n)
    ]


def _stored(user_id):
    return db.session.execute(
        db.select(db.func.count(TransactionRecord.id)).where(TransactionRecord.user_id == user_id)
    ).scalar()


def test_second_import_is_all_duplicates(app, user_id):
    with app.app_context():
        first = bulk_import(user_id, _rows(5), "jan.csv")
        second = bulk_import(user_id, _rows(5), "jan.csv")
        assert (first.imported, first.duplicates, first.total) == (5, 0, 5)
        assert (second.imported, second.duplicates, second.total) == (0, 5, 5)
        assert _stored(user_id) == 5


def test_duplicates_within_one_batch(app, user_id):
    with app.app_context():
        rows = _rows(2) + _rows(1)
        result = bulk_import(user_id, rows)
        assert (result.imported, result.duplicates) == (2, 1)
        assert [t["description"] for t in result.transactions] == ["Store 1", "Store 2"]


def test_failing_row_rolls_back_whole_batch(app, user_id):
    rows = _rows(10)
    rows[2].description = None
    with app.app_context():
        with pytest.raises(ImportFailedError):
            bulk_import(user_id, rows, "broken.csv")
        assert _stored(user_id) == 0
        assert db.session.get(User, user_id).last_import_at is None


def test_empty_batch_is_rejected(app, user_id):
    with app.app_context():
        with pytest.raises(ImportValidationError):
            bulk_import(user_id, [])
        with pytest.raises(ImportValidationError):
            bulk_import(user_id, "not a list")


def test_import_stamps_user_and_source(app, user_id):
    with app.app_context():
        bulk_import(user_id, _rows(1), "feb.csv")
        record = db.session.execute(db.select(TransactionRecord)).scalar_one()
        assert record.source_file == "feb.csv"
        assert record.imported_at is not None
        assert db.session.get(User, user_id).last_import_at is not None


def test_long_text_fields_are_unbounded(app, user_id):
    columns = TransactionRecord.__table__.c
    for name in ("description", "merchant", "category"):
        assert isinstance(columns[name].type, db.Text)

    row = _rows(1)[0]
    row.description = "X" * 2000
    row.merchant = "M" * 600
    with app.app_context():
        result = bulk_import(user_id, [row], "long.csv")
        assert result.imported == 1
        stored = db.session.execute(db.select(TransactionRecord)).scalar_one()
        assert len(stored.description) == 2000
