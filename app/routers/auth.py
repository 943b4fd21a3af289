from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.auth import Principal, bearer_token, get_current_principal
from app.db import get_db
from app.dependencies import get_client_ip, get_user_agent
from app.models import PortalSection, User, UserRole
from app.schemas import ProfileOut, TokenIn, TokenOut
from app.security.passwords import verify_password
from app.security.sessions import create_api_token, revoke_api_token
from app.services.audit_service import log_audit, log_auth_event

router = APIRouter(prefix='/auth', tags=['auth'])

INVALID_CREDENTIALS = 'Invalid email or password'


def _reject_login(db: Session, *, email: str, reason: str, user_id: int | None, ip: str | None, user_agent: str | None):
    log_auth_event(
        db,
        attempted_email=email,
        success=False,
        failure_reason=reason,
        user_id=user_id,
        ip=ip,
        user_agent=user_agent,
    )
    db.commit()
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=INVALID_CREDENTIALS)


@router.post('/token', response_model=TokenOut)
def issue_token(payload: TokenIn, request: Request, db: Session = Depends(get_db)):
    email = payload.email.strip().lower()
    ip = get_client_ip(request)
    user_agent = get_user_agent(request)

    user = db.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if not user:
        _reject_login(db, email=email, reason='UNKNOWN_EMAIL', user_id=None, ip=ip, user_agent=user_agent)

    if not user.active or user.role == UserRole.PENDING:
        _reject_login(db, email=email, reason='INACTIVE_USER', user_id=user.id, ip=ip, user_agent=user_agent)

    valid, updated_hash = verify_password(payload.password, user.password_hash)
    if not valid:
        _reject_login(db, email=email, reason='BAD_PASSWORD', user_id=user.id, ip=ip, user_agent=user_agent)
    if updated_hash:
        user.password_hash = updated_hash

    api_token = create_api_token(db, user.id, ip=ip, user_agent=user_agent)
    log_auth_event(
        db,
        attempted_email=email,
        success=True,
        failure_reason=None,
        user_id=user.id,
        ip=ip,
        user_agent=user_agent,
    )
    log_audit(db, actor_user_id=user.id, action='AUTH_LOGIN', ip=ip, metadata={'email': email})
    db.commit()
    return {'access_token': api_token.token, 'token_type': 'bearer', 'expires_at': api_token.expires_at}


@router.post('/logout')
def logout(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    revoke_api_token(db, bearer_token(request))
    log_audit(db, actor_user_id=principal.id, action='AUTH_LOGOUT', ip=get_client_ip(request))
    db.commit()
    return {'success': True}


@router.get('/profile', response_model=ProfileOut)
def profile(principal: Principal = Depends(get_current_principal)):
    return {
        'id': principal.id,
        'full_name': principal.full_name,
        'email': principal.email,
        'role': principal.role.value,
        'permissions': {section.value: principal.permission_for(section).value for section in PortalSection},
    }
