from sqlalchemy import select

from app.db import SessionLocal, init_db
from app.models import PermissionLevel, PortalSection, User, UserRole
from app.services.user_service import create_user

RW = PermissionLevel.READ_WRITE
RO = PermissionLevel.READ_ONLY

DEMO_USERS = [
    {
        'email': 'admin@example.com',
        'full_name': 'Portal Admin',
        'role': UserRole.ADMIN,
        'permissions': {section: RW for section in PortalSection},
    },
    {
        'email': 'intake@example.com',
        'full_name': 'Intake Desk',
        'role': UserRole.STAFF,
        'permissions': {PortalSection.CREATE_ORDER: RW, PortalSection.NEW_ORDERS: RW, PortalSection.COMPLAINTS: RO},
    },
    {
        'email': 'floor@example.com',
        'full_name': 'Production Floor',
        'role': UserRole.STAFF,
        'permissions': {
            PortalSection.SA: RW,
            PortalSection.SB: RW,
            PortalSection.SC: RW,
            PortalSection.PACKAGING: RW,
            PortalSection.DISPATCHED: RO,
        },
    },
    {
        'email': 'dispatch@example.com',
        'full_name': 'Dispatch Desk',
        'role': UserRole.STAFF,
        'permissions': {PortalSection.PACKAGING: RO, PortalSection.DISPATCHED: RW, PortalSection.COMPLAINTS: RW},
    },
]


def seed(password: str = 'change-me-now') -> None:
    init_db()
    with SessionLocal() as db:
        for demo in DEMO_USERS:
            exists = db.execute(select(User.id).where(User.email == demo['email'])).scalar_one_or_none()
            if exists:
                continue
            create_user(
                db,
                email=demo['email'],
                full_name=demo['full_name'],
                password=password,
                role=demo['role'],
                permissions=demo['permissions'],
            )
        db.commit()


if __name__ == '__main__':
    seed()
