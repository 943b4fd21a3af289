from dataclasses import dataclass, field

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from app.db import get_db
from app.errors import PermissionDeniedError
from app.models import PermissionLevel, PortalSection, UserRole


@dataclass
class Principal:
    id: int
    email: str
    full_name: str
    role: UserRole
    active: bool
    permissions: dict[PortalSection, PermissionLevel] = field(default_factory=dict)

    def permission_for(self, section: PortalSection) -> PermissionLevel:
        return self.permissions.get(section, PermissionLevel.NO_ACCESS)

    def can_read(self, section: PortalSection) -> bool:
        return self.permission_for(section).rank >= PermissionLevel.READ_ONLY.rank

    def can_write(self, section: PortalSection) -> bool:
        return self.permission_for(section) == PermissionLevel.READ_WRITE


def bearer_token(request: Request) -> str | None:
    header = request.headers.get('authorization', '')
    scheme, _, token = header.partition(' ')
    if scheme.lower() != 'bearer' or not token.strip():
        return None
    return token.strip()


def get_current_principal(request: Request, db: Session = Depends(get_db)) -> Principal:
    # Deferred: app.security.sessions imports Principal from this module.
    from app.security.sessions import load_principal_from_token

    token = bearer_token(request)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail='Unauthorized')

    principal = load_principal_from_token(db, token)
    db.commit()
    if not principal:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail='Invalid token')
    if not principal.active or principal.role == UserRole.PENDING:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)
    request.state.principal = principal
    return principal


def require_role(*allowed: UserRole):
    def _dep(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in allowed:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)
        return principal

    return _dep


def assert_section_access(principal: Principal, section: PortalSection, level: PermissionLevel) -> None:
    if principal.permission_for(section).rank < level.rank:
        raise PermissionDeniedError(section.value, level.value)
