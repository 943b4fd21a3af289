from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.auth import Principal
from app.models import Base, PermissionLevel, PortalSection, User, UserRole
from app.security.sessions import principal_from_user
from app.services.order_service import OrderItemInput
from app.services.user_service import set_permissions

RW = PermissionLevel.READ_WRITE
RO = PermissionLevel.READ_ONLY

ALL_WRITE = {section: RW for section in PortalSection}


def make_session_factory() -> sessionmaker:
    engine = create_engine('sqlite://', connect_args={'check_same_thread': False}, poolclass=StaticPool)
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def add_user(
    db: Session,
    email: str,
    permissions: dict[PortalSection, PermissionLevel] | None = None,
    *,
    role: UserRole = UserRole.STAFF,
    password_hash: str = 'not-a-real-hash',
) -> Principal:
    user = User(
        email=email,
        full_name=email.split('@')[0].title(),
        password_hash=password_hash,
        role=role,
        active=True,
    )
    db.add(user)
    db.flush()
    if permissions:
        set_permissions(db, user_id=user.id, permissions=permissions)
    return principal_from_user(db, user)


def pouch_items() -> list[OrderItemInput]:
    return [OrderItemInput(item_type='A', quantity=2, price=10, description='pouch')]
