# Overview: Bearer token issue/validation; resolves a caller to a business.

"""
Session Token Service

The inventory API does not own login. An operator (or the external auth
service) issues a token for a staff user; every request presents it as
`Authorization: Bearer <token>` and gets its tenant from the token row.

- 32 bytes of entropy from `secrets`, hex encoded
- stored as SHA-256 only; the plaintext is returned once
- business_id is captured at issue time and is immutable
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app, has_app_context

from ..extensions import db
from ..models import Business, SessionToken, User
from stockroom.time_utils import utcnow

DEFAULT_TTL_HOURS = 24


@dataclass
class SessionContext:
    """Resolved caller: who they are and which business they act for."""
    user: User
    session: SessionToken
    business_id: int


def generate_token() -> str:
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def create_session(user_id: int, ttl_hours: int | None = None) -> tuple[SessionToken, str]:
    """
    Issue a token for a user.

    Returns (session_record, plaintext_token).
    Raises ValueError if the user or their business is missing or inactive.
    """
    user = db.session.query(User).filter_by(id=user_id).first()
    if not user:
        raise ValueError("User not found")
    if not user.is_active:
        raise ValueError("User is not active")

    business = db.session.query(Business).filter_by(id=user.business_id).first()
    if not business or not business.is_active:
        raise ValueError("Business is not active")

    if ttl_hours is None:
        ttl_hours = DEFAULT_TTL_HOURS
        if has_app_context():
            ttl_hours = int(current_app.config.get("SESSION_TTL_HOURS", DEFAULT_TTL_HOURS))

    plaintext_token = generate_token()
    now = utcnow()

    session = SessionToken(
        user_id=user.id,
        business_id=user.business_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        expires_at=now + timedelta(hours=ttl_hours),
        is_revoked=False,
    )
    db.session.add(session)
    db.session.commit()

    return session, plaintext_token


def validate_session(token: str) -> SessionContext | None:
    """
    Resolve a plaintext token to its SessionContext.

    Returns None if the token is unknown, revoked, expired, or its user or
    business has since been deactivated.
    """
    if not token:
        return None

    session = db.session.query(SessionToken).filter_by(token_hash=hash_token(token)).first()
    if not session or session.is_revoked:
        return None
    if session.expires_at <= utcnow():
        return None

    user = db.session.query(User).filter_by(id=session.user_id).first()
    if not user or not user.is_active or user.business_id != session.business_id:
        return None

    business = db.session.query(Business).filter_by(id=session.business_id).first()
    if not business or not business.is_active:
        return None

    return SessionContext(user=user, session=session, business_id=session.business_id)


def revoke_session(token: str) -> bool:
    session = db.session.query(SessionToken).filter_by(token_hash=hash_token(token)).first()
    if not session or session.is_revoked:
        return False
    session.is_revoked = True
    session.revoked_at = utcnow()
    db.session.commit()
    return True
