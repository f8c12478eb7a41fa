"""SQLAlchemy models for the Personal Finance Tracker API."""

from __future__ import annotations

import datetime as dt

from flask_sqlalchemy import SQLAlchemy

from .data_loader import Transaction as CanonicalTransaction


db = SQLAlchemy()


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc).replace(tzinfo=None)


def _iso(value):
    return value.isoformat() if value is not None else None


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False)
    phone = db.Column(db.String(40))
    currency = db.Column(db.String(3), default="USD", nullable=False)
    timezone = db.Column(db.String(64), default="UTC", nullable=False)
    subscription_tier = db.Column(db.String(32), default="free", nullable=False)
    subscription_status = db.Column(db.String(32), default="active", nullable=False)
    subscription_ends_at = db.Column(db.DateTime)
    email_verified = db.Column(db.Boolean, default=False, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    last_login = db.Column(db.DateTime)
    last_import_at = db.Column(db.DateTime)
    deleted_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    transactions = db.relationship("Transaction", back_populates="user", cascade="all, delete-orphan")
    refresh_tokens = db.relationship("RefreshToken", back_populates="user", cascade="all, delete-orphan")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "currency": self.currency,
            "subscriptionTier": self.subscription_tier,
        }

    def profile_dict(self) -> dict:
        body = self.to_dict()
        body.update(
            {
                "phone": self.phone,
                "timezone": self.timezone,
                "subscriptionStatus": self.subscription_status,
                "subscriptionEndsAt": _iso(self.subscription_ends_at),
                "emailVerified": self.email_verified,
                "createdAt": _iso(self.created_at),
                "lastLogin": _iso(self.last_login),
            }
        )
        return body


class RefreshToken(db.Model):
    __tablename__ = "refresh_tokens"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token_id = db.Column(db.String(64), unique=True, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)
    revoked = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    user = db.relationship("User", back_populates="refresh_tokens")


class Transaction(db.Model):
    __tablename__ = "transactions"
    # Lookup index for the import duplicate check. Not unique: manually created
    # transactions may repeat. Description stays out of the key because it is
    # unbounded text.
    __table_args__ = (
        db.Index("ix_transactions_dedup", "user_id", "transaction_date", "amount"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    transaction_date = db.Column(db.Date, nullable=False)
    description = db.Column(db.Text, nullable=False)
    amount = db.Column(db.Float, nullable=False)
    category = db.Column(db.Text)
    transaction_type = db.Column(db.String(16), nullable=False)
    payment_method = db.Column(db.String(64))
    merchant = db.Column(db.Text)
    notes = db.Column(db.Text)
    tags = db.Column(db.JSON)
    is_recurring = db.Column(db.Boolean, default=False, nullable=False)
    recurring_frequency = db.Column(db.String(32))
    source_file = db.Column(db.String(255))
    imported_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    user = db.relationship("User", back_populates="transactions")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transactionDate": _iso(self.transaction_date),
            "description": self.description,
            "amount": self.amount,
            "category": self.category,
            "transactionType": self.transaction_type,
            "paymentMethod": self.payment_method,
            "merchant": self.merchant,
            "notes": self.notes,
            "tags": self.tags,
            "isRecurring": self.is_recurring,
            "recurringFrequency": self.recurring_frequency,
            "sourceFile": self.source_file,
            "importedAt": _iso(self.imported_at),
            "createdAt": _iso(self.created_at),
        }

    def summary_dict(self) -> dict:
        return {
            "id": self.id,
            "transactionDate": _iso(self.transaction_date),
            "description": self.description,
            "amount": self.amount,
            "category": self.category,
        }

    def to_canonical(self) -> CanonicalTransaction:
        return CanonicalTransaction(
            date=self.transaction_date,
            description=self.description,
            amount=self.amount,
            category=self.category,
            transaction_type=self.transaction_type,
            merchant=self.merchant,
            payment_method=self.payment_method,
            id=self.id,
        )


class AuditLog(db.Model):
    __tablename__ = "audit_log"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    action = db.Column(db.String(64), nullable=False)
    ip_address = db.Column(db.String(64))
    user_agent = db.Column(db.String(255))
    metadata_json = db.Column("metadata", db.JSON)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    def to_dict(self) -> dict:
        return {
            "action": self.action,
            "ipAddress": self.ip_address,
            "userAgent": self.user_agent,
            "metadata": self.metadata_json,
            "createdAt": _iso(self.created_at),
        }
