"""Configuration utilities for the Personal Finance Tracker.

Provides the default categorization rules, the subscription plan catalogue
and helpers to load user-defined configuration (custom keyword rules, plan
limits) from JSON files and Flask settings from the environment.
"""

from __future__ import annotations

import copy
import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

PACKAGE_ROOT = Path(__file__).resolve().parent
PROJECT_ROOT = PACKAGE_ROOT.parent

BANK_STATEMENT = "bank_statement"
CREDIT_CARD = "credit_card"
IMPORT_MODES = (BANK_STATEMENT, CREDIT_CARD)

DEFAULT_CATEGORY = "Other"
INCOME_CATEGORY = "Income"

# Ordered keyword rules. The first category whose keyword appears in the
# lower-cased description wins, so more specific categories come first.
Rules = List[Tuple[str, List[str]]]

DEFAULT_RULES: Rules = [
    ("Groceries", ["grocery", "whole foods", "trader joe", "kroger", "safeway", "aldi", "costco", "supermarket"]),
    ("Food & Dining", ["starbucks", "restaurant", "cafe", "coffee", "mcdonald", "doordash", "ubereats", "grubhub", "pizza", "burger", "diner", "food"]),
    ("Gas & Fuel", ["shell", "exxon", "chevron", "bp ", "fuel", "gas station", "petro"]),
    ("Transportation", ["uber", "lyft", "transit", "metro", "parking", "toll", "transport", "taxi"]),
    ("Housing & Rent", ["rent", "mortgage", "landlord", "apartment", "hoa"]),
    ("Utilities", ["electric", "water bill", "comcast", "xfinity", "verizon", "at&t", "internet", "utilities"]),
    ("Subscriptions", ["netflix", "spotify", "hulu", "icloud", "prime", "subscription", "patreon"]),
    ("Entertainment", ["movie", "cinema", "theater", "concert", "ticketmaster", "steam", "entertainment"]),
    ("Healthcare", ["pharmacy", "cvs", "walgreens", "doctor", "dentist", "medical", "health", "hospital"]),
    ("Shopping", ["amazon", "target", "walmart", "best buy", "ebay", "store", "shopping"]),
    ("Insurance", ["insurance", "geico", "allstate", "progressive", "state farm"]),
    ("Travel", ["airbnb", "hotel", "airline", "delta", "united", "expedia", "booking.com", "travel"]),
]

CATEGORIES: List[str] = [category for category, _ in DEFAULT_RULES] + [INCOME_CATEGORY, DEFAULT_CATEGORY]

PLAN_ORDER = ("free", "premium", "enterprise")

PLANS: Dict[str, Dict[str, Any]] = {
    "free": {
        "display_name": "Free",
        "price_monthly": 0.0,
        "price_yearly": 0.0,
        "features": {"max_transactions": 500},
    },
    "premium": {
        "display_name": "Premium",
        "price_monthly": 9.99,
        "price_yearly": 99.0,
        "features": {"max_transactions": 10000},
    },
    "enterprise": {
        "display_name": "Enterprise",
        "price_monthly": 29.99,
        "price_yearly": 299.0,
        "features": {"max_transactions": None},
    },
}

ACCESS_TOKEN_TTL = 15 * 60
REFRESH_TOKEN_TTL = 7 * 24 * 60 * 60

FRONTEND_URL = "http://localhost:3000"
API_RATE_LIMIT = "100 per 15 minutes"
AUTH_RATE_LIMIT = "5 per 15 minutes"


def _normalize_rules(raw: Any) -> Optional[Rules]:
    # Accept {"Category": [...]} (object order is kept) or
    # [{"category": ..., "keywords": [...]}, ...].
    if isinstance(raw, dict):
        items = list(raw.items())
    elif isinstance(raw, list):
        items = [
            (entry.get("category"), entry.get("keywords"))
            for entry in raw
            if isinstance(entry, dict) and entry.get("category")
        ]
    else:
        return None
    return [
        (str(category), [str(k).lower() for k in (keywords or []) if str(k).strip()])
        for category, keywords in items
    ]


@dataclass
class AppConfig:
    rules: Rules = field(default_factory=lambda: list(DEFAULT_RULES))
    plans: Dict[str, Dict[str, Any]] = field(default_factory=lambda: copy.deepcopy(PLANS))
    default_import_mode: str = BANK_STATEMENT

    def plan(self, tier: Optional[str]) -> Optional[Dict[str, Any]]:
        return self.plans.get(tier or "")

    @staticmethod
    def load(config_path: Optional[str | Path] = None) -> "AppConfig":
        """Load config from JSON if provided, else use defaults.

        JSON format:
        {
          "rules": {"Category": ["keyword1", "keyword2"]},
          "default_import_mode": "credit_card",
          "plans": {"free": {"max_transactions": 1000}}
        }
        """

        cfg = AppConfig()
        if not config_path:
            return cfg
        p = Path(config_path)
        if not p.exists():
            return cfg
        with p.open("r", encoding="utf-8") as f:
            raw = json.load(f)
        if not isinstance(raw, dict):
            return cfg

        rules = _normalize_rules(raw.get("rules"))
        if rules is not None:
            cfg.rules = rules
        mode = raw.get("default_import_mode")
        if mode in IMPORT_MODES:
            cfg.default_import_mode = mode
        if isinstance(raw.get("plans"), dict):
            for tier, limits in raw["plans"].items():
                if tier in cfg.plans and isinstance(limits, dict):
                    cfg.plans[tier]["features"].update(limits)
        return cfg


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name, "").strip()
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def load_settings(overrides: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
    """Build the Flask config mapping from the environment.

    ``overrides`` (used by tests and embedding applications) win over the
    environment. ``DATABASE`` may be given as a plain SQLite path.
    """

    overrides = dict(overrides or {})
    db_path = overrides.pop("DATABASE", None)
    database_url = "" if db_path else os.environ.get("DATABASE_URL", "").strip()
    if database_url.startswith("postgres://"):
        database_url = "postgresql://" + database_url[len("postgres://"):]
    if not database_url:
        db_path = db_path or str(PROJECT_ROOT / "finance_tracker.db")
        database_url = f"sqlite:///{db_path}"

    settings: Dict[str, Any] = {
        "SECRET_KEY": os.environ.get("SECRET_KEY", "dev-secret-change-me"),
        "SQLALCHEMY_DATABASE_URI": database_url,
        "ACCESS_TOKEN_TTL": _env_int("ACCESS_TOKEN_TTL", ACCESS_TOKEN_TTL),
        "REFRESH_TOKEN_TTL": _env_int("REFRESH_TOKEN_TTL", REFRESH_TOKEN_TTL),
        "RULES_CONFIG": os.environ.get("RULES_CONFIG") or None,
        "LOG_LEVEL": os.environ.get("LOG_LEVEL") or None,
        "MAX_CONTENT_LENGTH": 10 * 1024 * 1024,
        "FRONTEND_URL": os.environ.get("FRONTEND_URL") or FRONTEND_URL,
        "API_RATE_LIMIT": os.environ.get("API_RATE_LIMIT") or API_RATE_LIMIT,
        "AUTH_RATE_LIMIT": os.environ.get("AUTH_RATE_LIMIT") or AUTH_RATE_LIMIT,
        "RATELIMIT_STORAGE_URI": os.environ.get("RATELIMIT_STORAGE_URI") or "memory://",
    }
    if database_url.startswith("sqlite"):
        settings["SQLALCHEMY_ENGINE_OPTIONS"] = {"connect_args": {"timeout": 5}}
    settings.update(overrides)
    return settings
