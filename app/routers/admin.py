from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.auth import Principal, require_role
from app.db import get_db
from app.dependencies import get_client_ip
from app.models import UserRole
from app.schemas import UserAccessIn, UserOut
from app.services.user_service import list_users, update_user_access

router = APIRouter(prefix='/admin', tags=['admin'])
admin_access = require_role(UserRole.ADMIN)


@router.get('/users', response_model=list[UserOut])
def users_index(_: Principal = Depends(admin_access), db: Session = Depends(get_db)):
    return list_users(db)


@router.put('/users', response_model=UserOut)
def users_update_access(
    payload: UserAccessIn,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
):
    user = update_user_access(
        db,
        actor_user_id=principal.id,
        user_id=payload.user_id,
        permissions=payload.permissions,
        role=payload.role,
        active=payload.active,
        ip=get_client_ip(request),
    )
    db.commit()
    return user
