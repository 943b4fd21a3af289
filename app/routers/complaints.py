from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.auth import Principal, get_current_principal
from app.db import get_db
from app.dependencies import get_client_ip
from app.errors import InvalidInputError
from app.schemas import ComplaintCreateIn, ComplaintEnvelope, ComplaintOut, ComplaintUpdateIn
from app.services.complaint_service import list_complaints, raise_complaint, resolve_complaint

router = APIRouter(prefix='/complaints', tags=['complaints'])


@router.get('', response_model=list[ComplaintOut])
def complaints_index(
    status: str | None = None,
    _: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    return list_complaints(db, status_filter=status)


@router.post('', response_model=ComplaintEnvelope)
def complaints_create(
    payload: ComplaintCreateIn,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    complaint = raise_complaint(
        db,
        principal=principal,
        order_id=payload.order_id,
        section=payload.section,
        description=payload.description,
        ip=get_client_ip(request),
    )
    db.commit()
    return {'success': True, 'complaint': complaint}


@router.put('', response_model=ComplaintEnvelope)
def complaints_update(
    payload: ComplaintUpdateIn,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    if payload.complaint_id is None:
        raise InvalidInputError('Complaint ID is required')
    complaint = resolve_complaint(
        db,
        principal=principal,
        complaint_id=payload.complaint_id,
        status=payload.status,
        ip=get_client_ip(request),
    )
    db.commit()
    return {'success': True, 'complaint': complaint}
