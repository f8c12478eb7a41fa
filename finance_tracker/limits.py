"""Subscription feature limits checked before writes start."""

from __future__ import annotations

import logging
from functools import wraps
from typing import Optional

from flask import current_app, g

from . import db as store
from .config import AppConfig
from .errors import APIError, QuotaExceededError
from .models import User

logger = logging.getLogger(__name__)


def check_feature_limit(user: User, feature: str = "transactions", cfg: Optional[AppConfig] = None) -> None:
    """Raise ``QuotaExceededError`` when the user's plan is already at its limit."""

    cfg = cfg or current_app.extensions["finance_tracker"]
    plan = cfg.plan(user.subscription_tier)
    if plan is None:
        raise APIError("Invalid subscription plan", status=500)
    if feature != "transactions":
        return
    maximum = plan["features"].get("max_transactions")
    if not maximum:
        return
    current = store.count_transactions(user.id)
    if current >= maximum:
        logger.info("Transaction limit reached for user_id=%s (%d/%d)", user.id, current, maximum)
        raise QuotaExceededError(limit=maximum, current=current)


def feature_limit(feature: str):
    """Route decorator; must sit below ``token_required`` so ``g.user`` is set."""

    def decorator(view):
        @wraps(view)
        def wrapped_view(**kwargs):
            check_feature_limit(g.user, feature)
            return view(**kwargs)

        return wrapped_view

    return decorator
