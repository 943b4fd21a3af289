from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.errors import InvalidInputError, NotFoundError
from app.models import PermissionLevel, PortalSection, User, UserPermission, UserRole
from app.security.passwords import hash_password
from app.services.audit_service import log_audit

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _get_user(db: Session, user_id: int) -> User:
    user = db.execute(select(User).where(User.id == user_id)).scalar_one_or_none()
    if not user:
        raise NotFoundError('User', user_id)
    return user


def parse_permissions(raw: dict[str, str] | None) -> dict[PortalSection, PermissionLevel]:
    parsed: dict[PortalSection, PermissionLevel] = {}
    for section_raw, level_raw in (raw or {}).items():
        try:
            section = PortalSection(section_raw)
        except ValueError as exc:
            raise InvalidInputError(f'Unknown section: {section_raw}') from exc
        try:
            parsed[section] = PermissionLevel(level_raw)
        except ValueError as exc:
            raise InvalidInputError(f'Unknown permission level for {section_raw}: {level_raw}') from exc
    return parsed


def permission_matrix(db: Session, user_id: int) -> dict[PortalSection, PermissionLevel]:
    rows = db.execute(select(UserPermission).where(UserPermission.user_id == user_id)).scalars().all()
    stored = {row.section: PermissionLevel(row.level) for row in rows}
    return {section: stored.get(section, PermissionLevel.NO_ACCESS) for section in PortalSection}


def set_permissions(db: Session, *, user_id: int, permissions: dict[PortalSection, PermissionLevel]) -> None:
    existing = {
        row.section: row
        for row in db.execute(select(UserPermission).where(UserPermission.user_id == user_id)).scalars().all()
    }
    for section, level in permissions.items():
        row = existing.get(section)
        if row:
            row.level = level
        else:
            db.add(UserPermission(user_id=user_id, section=section, level=level))
    db.flush()


def create_user(
    db: Session,
    *,
    email: str,
    full_name: str,
    password: str,
    role: UserRole = UserRole.STAFF,
    phone: str | None = None,
    permissions: dict[PortalSection, PermissionLevel] | None = None,
) -> User:
    clean_email = (email or '').strip().lower()
    if not clean_email or '@' not in clean_email:
        raise InvalidInputError('A valid email is required')
    if not (full_name or '').strip():
        raise InvalidInputError('Full name is required')
    if len(password or '') < 8:
        raise InvalidInputError('Password must be at least 8 characters')

    exists = db.execute(select(User.id).where(User.email == clean_email)).scalar_one_or_none()
    if exists:
        raise InvalidInputError('Email is already registered')

    user = User(
        email=clean_email,
        full_name=full_name.strip(),
        phone=(phone or '').strip() or None,
        password_hash=hash_password(password),
        role=role,
        active=True,
    )
    db.add(user)
    db.flush()
    if permissions:
        set_permissions(db, user_id=user.id, permissions=permissions)
    return user


def serialize_user(db: Session, user: User) -> dict:
    return {
        'id': user.id,
        'full_name': user.full_name,
        'email': user.email,
        'phone': user.phone,
        'role': UserRole(user.role),
        'active': user.active,
        'permissions': {section.value: level.value for section, level in permission_matrix(db, user.id).items()},
    }


def list_users(db: Session) -> list[dict]:
    users = db.execute(select(User).order_by(User.full_name.asc(), User.id.asc())).scalars().all()
    return [serialize_user(db, user) for user in users]


def update_user_access(
    db: Session,
    *,
    actor_user_id: int,
    user_id: int,
    permissions: dict[str, str] | None = None,
    role: str | None = None,
    active: bool | None = None,
    ip: str | None = None,
) -> dict:
    user = _get_user(db, user_id)
    parsed = parse_permissions(permissions)
    if parsed:
        set_permissions(db, user_id=user.id, permissions=parsed)

    if role is not None:
        try:
            user.role = UserRole(role)
        except ValueError as exc:
            raise InvalidInputError(f'Unknown role: {role}') from exc
    if active is not None:
        if not active and user.id == actor_user_id:
            raise InvalidInputError('You cannot deactivate your own account')
        user.active = active
    user.updated_at = _now()

    log_audit(
        db,
        actor_user_id=actor_user_id,
        action='USER_ACCESS_UPDATED',
        ip=ip,
        metadata={
            'user_id': user.id,
            'permissions': {section.value: level.value for section, level in parsed.items()},
            'role': role,
            'active': active,
        },
    )
    db.flush()
    logger.info('User %s access updated by user %s', user.id, actor_user_id)
    return serialize_user(db, user)
