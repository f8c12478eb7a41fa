"""Password hashing, signed API tokens and the ``token_required`` guard.

Access tokens are short-lived signed payloads. Refresh tokens are signed as
well and additionally tracked in ``refresh_tokens`` so they can be rotated
(each refresh revokes the presented token) and revoked on logout.
"""

from __future__ import annotations

import datetime as dt
import logging
import re
import secrets
from functools import wraps
from typing import Dict, Optional

from flask import current_app, g, request
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from werkzeug.security import check_password_hash, generate_password_hash

from .errors import AuthenticationError, ForbiddenError
from .models import RefreshToken, User, db, utcnow

logger = logging.getLogger(__name__)

ACCESS_SALT = "finance-tracker-access"
REFRESH_SALT = "finance-tracker-refresh"
MIN_PASSWORD_LENGTH = 8

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def normalize_email(value: Optional[str]) -> str:
    return (value or "").strip().lower()


def is_valid_email(value: str) -> bool:
    return bool(_EMAIL_RE.match(value or ""))


def hash_password(password: str) -> str:
    return generate_password_hash(password)


def check_password(password_hash: str, password: str) -> bool:
    return check_password_hash(password_hash, password or "")


def _serializer(salt: str) -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt=salt)


def issue_tokens(user_id: int) -> Dict[str, str]:
    """Create an access/refresh pair; the refresh row is added to the session, not committed."""

    token_id = secrets.token_urlsafe(24)
    ttl = int(current_app.config["REFRESH_TOKEN_TTL"])
    db.session.add(
        RefreshToken(
            user_id=user_id,
            token_id=token_id,
            expires_at=utcnow() + dt.timedelta(seconds=ttl),
        )
    )
    return {
        "accessToken": _serializer(ACCESS_SALT).dumps({"uid": user_id}),
        "refreshToken": _serializer(REFRESH_SALT).dumps({"uid": user_id, "jti": token_id}),
    }


def load_access_token(token: str) -> int:
    try:
        data = _serializer(ACCESS_SALT).loads(token, max_age=int(current_app.config["ACCESS_TOKEN_TTL"]))
    except SignatureExpired as exc:
        raise AuthenticationError("Token expired") from exc
    except BadSignature as exc:
        raise AuthenticationError("Invalid token") from exc
    return int(data["uid"])


def _load_refresh_token(token: str) -> Dict:
    return _serializer(REFRESH_SALT).loads(token, max_age=int(current_app.config["REFRESH_TOKEN_TTL"]))


def rotate_refresh_token(token: Optional[str]) -> Dict[str, str]:
    if not token:
        raise AuthenticationError("Refresh token required")
    try:
        data = _load_refresh_token(token)
    except BadSignature as exc:
        raise AuthenticationError("Invalid refresh token") from exc

    row = db.session.execute(
        db.select(RefreshToken).where(
            RefreshToken.token_id == data.get("jti"),
            RefreshToken.revoked.is_(False),
            RefreshToken.expires_at > utcnow(),
        )
    ).scalar_one_or_none()
    if row is None or row.user_id != data.get("uid"):
        logger.warning("Rejected refresh token for user_id=%s", data.get("uid"))
        raise AuthenticationError("Invalid refresh token")

    row.revoked = True
    tokens = issue_tokens(row.user_id)
    db.session.commit()
    return tokens


def revoke_refresh_token(token: Optional[str]) -> bool:
    if not token:
        return False
    try:
        # Expired tokens can still be revoked.
        data = _serializer(REFRESH_SALT).loads(token)
    except BadSignature:
        return False
    updated = db.session.execute(
        db.update(RefreshToken).where(RefreshToken.token_id == data.get("jti")).values(revoked=True)
    ).rowcount
    db.session.commit()
    return bool(updated)


def revoke_all_tokens(user_id: int) -> None:
    db.session.execute(
        db.update(RefreshToken).where(RefreshToken.user_id == user_id).values(revoked=True)
    )


def token_required(view):
    @wraps(view)
    def wrapped_view(**kwargs):
        header = request.headers.get("Authorization", "")
        parts = header.split(" ", 1)
        token = parts[1].strip() if len(parts) == 2 and parts[0].lower() == "bearer" else ""
        if not token:
            raise AuthenticationError("Access token required")
        user = db.session.get(User, load_access_token(token))
        if user is None or user.deleted_at is not None:
            raise AuthenticationError("User not found")
        if not user.is_active:
            raise ForbiddenError("Account is deactivated")
        g.user = user
        return view(**kwargs)

    return wrapped_view
