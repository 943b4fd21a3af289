from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone

from sqlalchemy import select

from app.auth import Principal
from app.config import settings
from app.models import ApiToken, PermissionLevel, User, UserPermission, UserRole


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _token_expiry() -> datetime:
    return _now() + timedelta(minutes=settings.api_token_ttl_minutes)


def create_api_token(db, user_id: int, ip: str | None, user_agent: str | None) -> ApiToken:
    api_token = ApiToken(
        token=secrets.token_urlsafe(48),
        user_id=user_id,
        ip=ip,
        user_agent=user_agent,
        expires_at=_token_expiry(),
    )
    db.add(api_token)
    db.flush()
    return api_token


def revoke_api_token(db, token: str) -> None:
    api_token = db.execute(select(ApiToken).where(ApiToken.token == token)).scalar_one_or_none()
    if not api_token or api_token.revoked_at is not None:
        return
    api_token.revoked_at = _now()


def load_permissions(db, user_id: int) -> dict:
    rows = db.execute(select(UserPermission.section, UserPermission.level).where(UserPermission.user_id == user_id)).all()
    return {row.section: PermissionLevel(row.level) for row in rows}


def principal_from_user(db, user: User) -> Principal:
    return Principal(
        id=user.id,
        email=user.email,
        full_name=user.full_name,
        role=UserRole(user.role),
        active=user.active,
        permissions=load_permissions(db, user.id),
    )


def load_principal_from_token(db, token: str | None) -> Principal | None:
    if not token:
        return None

    row = db.execute(
        select(ApiToken, User).join(User, User.id == ApiToken.user_id).where(ApiToken.token == token)
    ).one_or_none()
    if not row:
        return None

    api_token, user = row
    now = _now()
    if api_token.revoked_at is not None or _as_utc(api_token.expires_at) <= now:
        return None

    api_token.last_seen_at = now
    api_token.expires_at = _token_expiry()
    return principal_from_user(db, user)
