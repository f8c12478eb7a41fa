"""Flask REST API for the Personal Finance Tracker."""

from __future__ import annotations

import csv
import datetime as dt
import io
import logging
import time
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from flask import Flask, Response, current_app, g, jsonify, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import HTTPException

from . import db as store
from .analytics import (
    generate_insights,
    kpis,
    monthly_comparison,
    monthly_trend,
    spending_by_category,
    top_categories,
    trends,
)
from .auth import (
    MIN_PASSWORD_LENGTH,
    check_password,
    hash_password,
    is_valid_email,
    issue_tokens,
    normalize_email,
    revoke_all_tokens,
    revoke_refresh_token,
    rotate_refresh_token,
    token_required,
)
from .config import IMPORT_MODES, PLAN_ORDER, PROJECT_ROOT, AppConfig, load_settings
from .data_loader import (
    EXPENSE,
    INCOME,
    Transaction as CanonicalTransaction,
    coerce_canonical,
    load_csv_stream,
    normalize_row,
)
from .errors import (
    APIError,
    AuthenticationError,
    ConflictError,
    ForbiddenError,
    ImportValidationError,
    NotFoundError,
    ValidationError,
)
from .importer import bulk_import
from .limits import feature_limit
from .logging_setup import configure_logging
from .merchants import apply_category, extract_merchant, find_group, group_uncategorized
from .models import AuditLog, Transaction, User, db, utcnow
from .reports import export_rows, export_transactions_csv

logger = logging.getLogger(__name__)

SORT_FIELDS = {
    "transaction_date": Transaction.transaction_date,
    "amount": Transaction.amount,
    "category": Transaction.category,
    "created_at": Transaction.created_at,
}
MAX_PAGE_SIZE = 1000
UPGRADE_PLANS = ("premium", "enterprise")
SUBSCRIPTION_PERIOD = dt.timedelta(days=30)


def _json_body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("JSON object body required")
    return data


def _client_info() -> Dict[str, Optional[str]]:
    return {"ip_address": request.remote_addr, "user_agent": request.headers.get("User-Agent")}


def _int_arg(args: Mapping[str, Any], name: str, default: int, minimum: int = 1, maximum: Optional[int] = None) -> int:
    raw = args.get(name)
    if raw in (None, ""):
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer")
    value = max(value, minimum)
    if maximum is not None:
        value = min(value, maximum)
    return value


def _safe_parse_date(value: Any, name: str) -> Optional[dt.date]:
    if value in (None, ""):
        return None
    try:
        return dt.date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ValidationError(f"{name} must be in YYYY-MM-DD format")


def _parse_amount(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        return round(float(value), 2)
    except (TypeError, ValueError):
        return None


def _date_range(args: Mapping[str, Any]) -> List[Any]:
    clauses = []
    start = _safe_parse_date(args.get("startDate"), "startDate")
    end = _safe_parse_date(args.get("endDate"), "endDate")
    if start:
        clauses.append(Transaction.transaction_date >= start)
    if end:
        clauses.append(Transaction.transaction_date <= end)
    return clauses


def _transaction_filters(args: Mapping[str, Any]) -> List[Any]:
    clauses = _date_range(args)
    if args.get("category"):
        clauses.append(Transaction.category == args["category"])
    if args.get("type"):
        clauses.append(Transaction.transaction_type == args["type"])
    search = (args.get("search") or "").strip()
    if search:
        pattern = f"%{search}%"
        clauses.append(db.or_(Transaction.description.ilike(pattern), Transaction.merchant.ilike(pattern)))
    return clauses


def _fetch_rows(user_id: int, clauses: Optional[List[Any]] = None) -> List[Transaction]:
    stmt = (
        db.select(Transaction)
        .where(Transaction.user_id == user_id, *(clauses or []))
        .order_by(Transaction.transaction_date, Transaction.id)
    )
    return list(db.session.execute(stmt).scalars())


def _fetch_canonical(user_id: int, clauses: Optional[List[Any]] = None) -> List[CanonicalTransaction]:
    return [row.to_canonical() for row in _fetch_rows(user_id, clauses)]


def _app_config() -> AppConfig:
    return current_app.extensions["finance_tracker"]


def _import_mode(value: Any) -> str:
    mode = str(value or "").strip() or _app_config().default_import_mode
    if mode not in IMPORT_MODES:
        raise ValidationError(f"mode must be one of: {', '.join(IMPORT_MODES)}")
    return mode


def _paginated(pagination, key: str, items: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {
        key: items,
        "pagination": {
            "page": pagination.page,
            "limit": pagination.per_page,
            "total": pagination.total,
            "totalPages": pagination.pages,
        },
    }


def _validate_transaction_fields(data: Mapping[str, Any], partial: bool) -> Dict[str, Any]:
    """Check the manual-entry fields; with ``partial`` only the ones present."""

    errors: List[Dict[str, str]] = []
    values: Dict[str, Any] = {}

    def wanted(name: str) -> bool:
        return not partial or data.get(name) is not None

    if wanted("transactionDate"):
        try:
            values["transaction_date"] = dt.date.fromisoformat(str(data.get("transactionDate") or "")[:10])
        except ValueError:
            errors.append({"field": "transactionDate", "message": "Valid date required"})
    if wanted("description"):
        description = str(data.get("description") or "").strip()
        if description:
            values["description"] = description
        else:
            errors.append({"field": "description", "message": "Description required"})
    if wanted("amount"):
        amount = _parse_amount(data.get("amount"))
        if amount is None:
            errors.append({"field": "amount", "message": "Valid amount required"})
        else:
            values["amount"] = amount
    if wanted("category"):
        category = str(data.get("category") or "").strip()
        if category:
            values["category"] = category
        else:
            errors.append({"field": "category", "message": "Category required"})
    if wanted("transactionType"):
        txn_type = data.get("transactionType")
        if txn_type in (INCOME, EXPENSE):
            values["transaction_type"] = txn_type
        else:
            errors.append({"field": "transactionType", "message": "Type must be income or expense"})
    if errors:
        raise ValidationError("Validation failed", errors=errors)

    for key, attr in (
        ("paymentMethod", "payment_method"),
        ("merchant", "merchant"),
        ("notes", "notes"),
        ("recurringFrequency", "recurring_frequency"),
    ):
        if data.get(key) is not None:
            values[attr] = str(data[key]).strip() or None
    if data.get("tags") is not None:
        tags = data["tags"]
        if not isinstance(tags, list):
            raise ValidationError("Validation failed", errors=[{"field": "tags", "message": "Tags must be a list"}])
        values["tags"] = [str(tag) for tag in tags]
    if data.get("isRecurring") is not None:
        values["is_recurring"] = bool(data["isRecurring"])
    return values


def _signed(amount: float, txn_type: str) -> float:
    # Manual entries carry the sign of their type: income positive, expense negative.
    return abs(amount) if txn_type == INCOME else -abs(amount)


def create_app(test_config: Optional[Mapping[str, Any]] = None) -> Flask:
    app = Flask(__name__)
    app.config.from_mapping(load_settings(test_config))
    configure_logging(app.config.get("LOG_LEVEL"))

    cfg_path = app.config.get("RULES_CONFIG")
    if cfg_path and not Path(cfg_path).is_absolute():
        cfg_path = PROJECT_ROOT / cfg_path
    # Tests may inject a ready-made AppConfig (small plan limits, custom rules).
    app.extensions["finance_tracker"] = app.config.get("APP_CONFIG") or AppConfig.load(cfg_path)

    db.init_app(app)
    CORS(app, origins=[app.config["FRONTEND_URL"]], supports_credentials=True)
    limiter = Limiter(
        get_remote_address,
        app=app,
        application_limits=[app.config["API_RATE_LIMIT"]],
        storage_uri=app.config["RATELIMIT_STORAGE_URI"],
    )
    # Login and registration share one budget per client address.
    auth_limit = limiter.shared_limit(
        app.config["AUTH_RATE_LIMIT"],
        scope="auth",
        error_message="Too many login attempts, please try again later.",
    )

    @limiter.request_filter
    def _outside_api():
        return not request.path.startswith("/api/")

    store.init_db(app)

    @app.cli.command("init-db")
    def init_db_command():
        store.init_db(app)
        print("Initialized the database.")

    @app.before_request
    def _start_timer():
        g.request_started = time.perf_counter()

    @app.after_request
    def _log_request(response):
        started = g.pop("request_started", None)
        elapsed = (time.perf_counter() - started) * 1000 if started is not None else 0.0
        logger.info("%s %s %s %.1fms", request.method, request.path, response.status_code, elapsed)
        return response

    @app.errorhandler(APIError)
    def _handle_api_error(exc: APIError):
        if exc.status >= 500:
            logger.error("%s %s failed: %s", request.method, request.path, exc.message)
        return jsonify(exc.to_dict()), exc.status

    @app.errorhandler(429)
    def _handle_rate_limited(exc):
        limit = getattr(exc, "limit", None)
        message = getattr(limit, "error_message", None) or "Too many requests from this IP, please try again later."
        logger.warning("Rate limit hit on %s %s from %s", request.method, request.path, request.remote_addr)
        return jsonify({"error": message}), 429

    @app.errorhandler(HTTPException)
    def _handle_http_error(exc: HTTPException):
        if exc.code == 404:
            return jsonify({"error": "Route not found"}), 404
        return jsonify({"error": exc.description}), exc.code

    @app.errorhandler(Exception)
    def _handle_unexpected(exc: Exception):
        db.session.rollback()
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return jsonify({"error": "Internal Server Error"}), 500

    @app.get("/health")
    def health():
        return jsonify({"status": "healthy", "timestamp": utcnow().isoformat() + "Z"})

    # -- auth --------------------------------------------------------------

    @app.post("/api/auth/register")
    @auth_limit
    def register():
        data = _json_body()
        email = normalize_email(data.get("email"))
        password = str(data.get("password") or "")
        first_name = str(data.get("firstName") or "").strip()
        last_name = str(data.get("lastName") or "").strip()
        errors = []
        if not is_valid_email(email):
            errors.append({"field": "email", "message": "Invalid email address"})
        if len(password) < MIN_PASSWORD_LENGTH:
            errors.append({"field": "password", "message": f"Password must be at least {MIN_PASSWORD_LENGTH} characters"})
        if not first_name:
            errors.append({"field": "firstName", "message": "First name is required"})
        if not last_name:
            errors.append({"field": "lastName", "message": "Last name is required"})
        if errors:
            raise ValidationError("Validation failed", errors=errors)

        if db.session.execute(db.select(User.id).where(User.email == email)).first():
            raise ConflictError("Email already registered")
        user = User(
            email=email,
            password_hash=hash_password(password),
            first_name=first_name,
            last_name=last_name,
            phone=(str(data.get("phone") or "").strip() or None),
        )
        db.session.add(user)
        try:
            db.session.flush()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError("Email already registered")
        tokens = issue_tokens(user.id)
        store.log_audit(user.id, "user_registered", commit=False, **_client_info())
        db.session.commit()
        logger.info("Registered user_id=%s", user.id)
        return jsonify({"user": user.to_dict(), **tokens}), 201

    @app.post("/api/auth/login")
    @auth_limit
    def login():
        data = _json_body()
        email = normalize_email(data.get("email"))
        password = str(data.get("password") or "")
        if not is_valid_email(email) or not password:
            raise ValidationError("Validation failed", errors=[{"field": "email", "message": "Email and password are required"}])
        user = db.session.execute(
            db.select(User).where(User.email == email, User.deleted_at.is_(None))
        ).scalar_one_or_none()
        if user is None:
            raise AuthenticationError("Invalid credentials")
        if not user.is_active:
            raise ForbiddenError("Account is deactivated")
        if not check_password(user.password_hash, password):
            store.log_audit(user.id, "login_failed", metadata={"reason": "invalid_password"}, **_client_info())
            raise AuthenticationError("Invalid credentials")

        tokens = issue_tokens(user.id)
        user.last_login = utcnow()
        store.log_audit(user.id, "login_success", commit=False, **_client_info())
        db.session.commit()
        return jsonify({"user": user.to_dict(), **tokens})

    @app.post("/api/auth/refresh")
    def refresh():
        data = _json_body()
        return jsonify(rotate_refresh_token(data.get("refreshToken")))

    @app.post("/api/auth/logout")
    def logout():
        data = _json_body()
        revoke_refresh_token(data.get("refreshToken"))
        return jsonify({"message": "Logged out successfully"})

    @app.post("/api/auth/forgot-password")
    def forgot_password():
        data = _json_body()
        email = normalize_email(data.get("email"))
        user = db.session.execute(
            db.select(User).where(User.email == email, User.deleted_at.is_(None))
        ).scalar_one_or_none()
        if user is not None:
            logger.info("Password reset requested for user_id=%s", user.id)
        return jsonify({"message": "If the email exists, a reset link has been sent"})

    # -- transactions ------------------------------------------------------

    @app.get("/api/transactions")
    @token_required
    def list_transactions():
        args = request.args
        page = _int_arg(args, "page", 1)
        limit = _int_arg(args, "limit", 50, maximum=MAX_PAGE_SIZE)
        sort_col = SORT_FIELDS.get(args.get("sortBy") or "", Transaction.transaction_date)
        ascending = (args.get("sortOrder") or "DESC").upper() == "ASC"
        stmt = (
            db.select(Transaction)
            .where(Transaction.user_id == g.user.id, *_transaction_filters(args))
            .order_by(sort_col.asc() if ascending else sort_col.desc(),
                      Transaction.id.asc() if ascending else Transaction.id.desc())
        )
        pagination = db.paginate(stmt, page=page, per_page=limit, max_per_page=MAX_PAGE_SIZE, error_out=False)
        return jsonify(_paginated(pagination, "transactions", [t.to_dict() for t in pagination.items]))

    @app.get("/api/transactions/<int:txn_id>")
    @token_required
    def get_transaction(txn_id: int):
        record = store.get_user_transaction(g.user.id, txn_id)
        if record is None:
            raise NotFoundError("Transaction not found")
        return jsonify(record.to_dict())

    @app.post("/api/transactions")
    @token_required
    @feature_limit("transactions")
    def create_transaction():
        values = _validate_transaction_fields(_json_body(), partial=False)
        values["amount"] = _signed(values["amount"], values["transaction_type"])
        values.setdefault("merchant", extract_merchant(values["description"]))
        record = Transaction(user_id=g.user.id, **values)
        db.session.add(record)
        db.session.commit()
        return jsonify(record.to_dict()), 201

    @app.put("/api/transactions/<int:txn_id>")
    @token_required
    def update_transaction(txn_id: int):
        record = store.get_user_transaction(g.user.id, txn_id)
        if record is None:
            raise NotFoundError("Transaction not found")
        values = _validate_transaction_fields(_json_body(), partial=True)
        for attr, value in values.items():
            setattr(record, attr, value)
        db.session.commit()
        return jsonify(record.to_dict())

    @app.delete("/api/transactions/<int:txn_id>")
    @token_required
    def delete_transaction(txn_id: int):
        record = store.get_user_transaction(g.user.id, txn_id)
        if record is None:
            raise NotFoundError("Transaction not found")
        db.session.delete(record)
        db.session.commit()
        return jsonify({"message": "Transaction deleted successfully"})

    @app.post("/api/transactions/bulk-delete")
    @token_required
    def bulk_delete_transactions():
        ids = _json_body().get("transactionIds")
        if not isinstance(ids, list) or not ids:
            raise ValidationError("Transaction IDs array required")
        try:
            ids = [int(i) for i in ids]
        except (TypeError, ValueError):
            raise ValidationError("Transaction IDs must be integers")
        deleted = db.session.execute(
            db.delete(Transaction).where(Transaction.user_id == g.user.id, Transaction.id.in_(ids))
        ).rowcount
        db.session.commit()
        logger.info("Bulk delete for user_id=%s deleted=%s", g.user.id, deleted)
        return jsonify({"deleted": deleted, "message": f"{deleted} transactions deleted"})

    @app.post("/api/transactions/bulk-import")
    @token_required
    @feature_limit("transactions")
    def bulk_import_transactions():
        data = _json_body()
        rows = data.get("transactions")
        if not isinstance(rows, list) or not rows:
            raise ImportValidationError()
        source_file = (str(data.get("sourceFile") or "").strip() or None)
        mode = _import_mode(data.get("mode"))
        rules = _app_config().rules

        canonical: List[CanonicalTransaction] = []
        for index, row in enumerate(rows):
            if not isinstance(row, dict):
                raise ValidationError(
                    "Invalid transaction",
                    errors=[{"field": f"transactions[{index}]", "message": "Row must be an object"}],
                )
            if "transactionDate" in row:
                canonical.append(coerce_canonical(row, rules, index))
            else:
                canonical.append(normalize_row(row, mode, source_file, rules))

        result = bulk_import(g.user.id, canonical, source_file)
        store.log_audit(
            g.user.id,
            "transactions_imported",
            metadata={"sourceFile": source_file, "imported": result.imported, "duplicates": result.duplicates},
            **_client_info(),
        )
        return jsonify(result.to_dict()), 201

    @app.post("/api/transactions/upload")
    @token_required
    @feature_limit("transactions")
    def upload_transactions():
        file = request.files.get("file")
        if not file or not file.filename:
            raise ValidationError("Please choose a CSV file to upload.")
        mode = _import_mode(request.form.get("mode"))
        try:
            text_stream = file.read().decode("utf-8-sig")
        except UnicodeDecodeError:
            raise ValidationError("Unable to decode the uploaded file. Ensure it is UTF-8 encoded.")
        try:
            txns = load_csv_stream(io.StringIO(text_stream), mode=mode, label=file.filename, rules=_app_config().rules)
        except (ValueError, csv.Error) as exc:
            raise ValidationError(str(exc))
        if not txns:
            raise ImportValidationError("The CSV file contains no transactions")

        result = bulk_import(g.user.id, txns, file.filename)
        store.log_audit(
            g.user.id,
            "transactions_imported",
            metadata={"sourceFile": file.filename, "imported": result.imported, "duplicates": result.duplicates},
            **_client_info(),
        )
        return jsonify(result.to_dict()), 201

    @app.get("/api/transactions/meta/categories")
    @token_required
    def transaction_categories():
        rows = db.session.execute(
            db.select(Transaction.category, Transaction.transaction_type)
            .where(Transaction.user_id == g.user.id)
            .distinct()
            .order_by(Transaction.category, Transaction.transaction_type)
        ).all()
        return jsonify([{"category": cat, "transactionType": txn_type} for cat, txn_type in rows])

    @app.get("/api/transactions/merchant-groups")
    @token_required
    def merchant_groups():
        groups = group_uncategorized(_fetch_rows(g.user.id))
        return jsonify({"groups": [group.to_dict() for group in groups]})

    @app.post("/api/transactions/merchant-groups/categorize")
    @token_required
    def quick_categorize():
        data = _json_body()
        merchant = str(data.get("merchant") or "").strip()
        category = str(data.get("category") or "").strip()
        if not merchant or not category:
            raise ValidationError("merchant and category are required")
        group = find_group(group_uncategorized(_fetch_rows(g.user.id)), merchant)
        if group is None:
            raise NotFoundError("No uncategorized transactions for this merchant")

        results = apply_category(group.transactions, category, store.update_category)
        failed = [r for r in results if not r.ok]
        if failed:
            logger.warning(
                "Quick-categorize for user_id=%s merchant=%r: %d of %d rows failed",
                g.user.id, merchant, len(failed), len(results),
            )
        return jsonify(
            {
                "merchant": merchant,
                "category": category,
                "updated": len(results) - len(failed),
                "failed": len(failed),
                "results": [r.to_dict() for r in results],
            }
        )

    # -- analytics ---------------------------------------------------------

    @app.get("/api/analytics/kpis")
    @token_required
    def analytics_kpis():
        txns = _fetch_canonical(g.user.id, _date_range(request.args))
        return jsonify({"kpis": kpis(txns), "topCategories": top_categories(txns), "monthlyTrend": monthly_trend(txns)})

    @app.get("/api/analytics/spending-by-category")
    @token_required
    def analytics_spending_by_category():
        return jsonify(spending_by_category(_fetch_canonical(g.user.id, _date_range(request.args))))

    @app.get("/api/analytics/monthly-comparison")
    @token_required
    def analytics_monthly_comparison():
        return jsonify(monthly_comparison(_fetch_canonical(g.user.id)))

    @app.get("/api/analytics/trends")
    @token_required
    def analytics_trends():
        period = request.args.get("period") or "month"
        return jsonify(trends(_fetch_canonical(g.user.id), period))

    @app.get("/api/analytics/insights")
    @token_required
    def analytics_insights():
        return jsonify(generate_insights(_fetch_canonical(g.user.id), dt.date.today()))

    @app.get("/api/analytics/export")
    @token_required
    def analytics_export():
        txns = _fetch_canonical(g.user.id, _date_range(request.args))
        txns.sort(key=lambda t: (t.date, t.id or 0), reverse=True)
        if (request.args.get("format") or "json").lower() == "csv":
            return Response(
                export_transactions_csv(txns),
                mimetype="text/csv",
                headers={"Content-Disposition": "attachment; filename=transactions.csv"},
            )
        return jsonify(export_rows(txns))

    # -- user account ------------------------------------------------------

    @app.get("/api/user/profile")
    @token_required
    def get_profile():
        return jsonify(g.user.profile_dict())

    @app.put("/api/user/profile")
    @token_required
    def update_profile():
        data = _json_body()
        errors = []
        for key, attr in (("firstName", "first_name"), ("lastName", "last_name")):
            if data.get(key) is not None:
                value = str(data[key]).strip()
                if value:
                    setattr(g.user, attr, value)
                else:
                    errors.append({"field": key, "message": f"{key} cannot be empty"})
        if data.get("currency") is not None:
            currency = str(data["currency"]).strip().upper()
            if len(currency) == 3:
                g.user.currency = currency
            else:
                errors.append({"field": "currency", "message": "Currency must be a 3-letter code"})
        if errors:
            db.session.rollback()
            raise ValidationError("Validation failed", errors=errors)
        if data.get("phone") is not None:
            g.user.phone = str(data["phone"]).strip() or None
        if str(data.get("timezone") or "").strip():
            g.user.timezone = str(data["timezone"]).strip()
        db.session.commit()
        return jsonify(g.user.profile_dict())

    @app.put("/api/user/password")
    @token_required
    def change_password():
        data = _json_body()
        current = str(data.get("currentPassword") or "")
        new = str(data.get("newPassword") or "")
        errors = []
        if not current:
            errors.append({"field": "currentPassword", "message": "Current password required"})
        if len(new) < MIN_PASSWORD_LENGTH:
            errors.append({"field": "newPassword", "message": f"New password must be at least {MIN_PASSWORD_LENGTH} characters"})
        if errors:
            raise ValidationError("Validation failed", errors=errors)
        if not check_password(g.user.password_hash, current):
            raise AuthenticationError("Current password is incorrect")
        g.user.password_hash = hash_password(new)
        store.log_audit(g.user.id, "password_changed", commit=False, **_client_info())
        db.session.commit()
        return jsonify({"message": "Password updated successfully"})

    @app.get("/api/user/statistics")
    @token_required
    def user_statistics():
        count, first, last = db.session.execute(
            db.select(
                db.func.count(Transaction.id),
                db.func.min(Transaction.transaction_date),
                db.func.max(Transaction.transaction_date),
            ).where(Transaction.user_id == g.user.id)
        ).one()
        return jsonify(
            {
                "transactionCount": int(count or 0),
                "firstTransaction": first.isoformat() if first else None,
                "lastTransaction": last.isoformat() if last else None,
                "lastImport": g.user.last_import_at.isoformat() if g.user.last_import_at else None,
            }
        )

    @app.get("/api/user/subscription")
    @token_required
    def get_subscription():
        plan = _app_config().plan(g.user.subscription_tier)
        if plan is None:
            raise NotFoundError("Subscription not found")
        return jsonify(
            {
                "subscriptionTier": g.user.subscription_tier,
                "subscriptionStatus": g.user.subscription_status,
                "subscriptionEndsAt": g.user.subscription_ends_at.isoformat() if g.user.subscription_ends_at else None,
                "displayName": plan["display_name"],
                "priceMonthly": plan["price_monthly"],
                "priceYearly": plan["price_yearly"],
                "features": plan["features"],
            }
        )

    @app.post("/api/user/subscription/upgrade")
    @token_required
    def upgrade_subscription():
        plan = _json_body().get("plan")
        if plan not in UPGRADE_PLANS:
            raise ValidationError("Invalid plan")
        current_tier = g.user.subscription_tier
        if current_tier not in PLAN_ORDER:
            raise ValidationError(f"Unknown current subscription plan: {current_tier}")
        if PLAN_ORDER.index(plan) <= PLAN_ORDER.index(current_tier):
            raise ValidationError(f"Already on the {g.user.subscription_tier} plan or higher")
        # No payment processor is wired in; the tier change is recorded directly.
        g.user.subscription_tier = plan
        g.user.subscription_status = "active"
        g.user.subscription_ends_at = utcnow() + SUBSCRIPTION_PERIOD
        store.log_audit(g.user.id, "subscription_upgraded", metadata={"new_plan": plan}, commit=False)
        db.session.commit()
        return jsonify({"message": "Subscription upgraded successfully", "plan": plan})

    @app.delete("/api/user/account")
    @token_required
    def delete_account():
        password = str(_json_body().get("password") or "")
        if not password:
            raise ValidationError("Password required for account deletion")
        if not check_password(g.user.password_hash, password):
            raise AuthenticationError("Incorrect password")
        g.user.deleted_at = utcnow()
        g.user.is_active = False
        revoke_all_tokens(g.user.id)
        store.log_audit(g.user.id, "account_deleted", commit=False)
        db.session.commit()
        logger.info("Soft-deleted user_id=%s", g.user.id)
        return jsonify({"message": "Account deleted successfully"})

    @app.get("/api/user/activity")
    @token_required
    def user_activity():
        page = _int_arg(request.args, "page", 1)
        limit = _int_arg(request.args, "limit", 20, maximum=100)
        stmt = (
            db.select(AuditLog)
            .where(AuditLog.user_id == g.user.id)
            .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        )
        pagination = db.paginate(stmt, page=page, per_page=limit, max_per_page=100, error_out=False)
        return jsonify(_paginated(pagination, "activities", [a.to_dict() for a in pagination.items]))

    return app


if __name__ == "__main__":
    create_app().run(debug=True)
