from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.auth import Principal, assert_section_access
from app.errors import ConflictError, InvalidInputError, NotFoundError
from app.models import Complaint, ComplaintSection, ComplaintStatus, Order, PermissionLevel, PortalSection, User
from app.services.audit_service import log_audit

logger = logging.getLogger(__name__)

STATUS_FILTERS = {
    'open': (ComplaintStatus.OPEN,),
    'resolved': (ComplaintStatus.RESOLVED,),
    'all': (ComplaintStatus.OPEN, ComplaintStatus.RESOLVED),
}


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _parse_section(raw: str | None) -> ComplaintSection:
    try:
        return ComplaintSection((raw or '').strip())
    except ValueError as exc:
        raise InvalidInputError(f'Unknown complaint section: {raw}') from exc


def _get_complaint(db: Session, complaint_id: int) -> Complaint:
    complaint = db.execute(select(Complaint).where(Complaint.id == complaint_id)).scalar_one_or_none()
    if not complaint:
        raise NotFoundError('Complaint', complaint_id)
    return complaint


def _serialize(db: Session, complaints: list[Complaint]) -> list[dict]:
    user_ids = {c.created_by_id for c in complaints} | {c.resolved_by_id for c in complaints if c.resolved_by_id}
    order_ids = {c.order_id for c in complaints}
    users = {}
    if user_ids:
        users = {
            row.id: {'id': row.id, 'full_name': row.full_name, 'email': row.email}
            for row in db.execute(select(User.id, User.full_name, User.email).where(User.id.in_(user_ids))).all()
        }
    orders = {}
    if order_ids:
        orders = {
            row.id: {'id': row.id, 'customer_name': row.customer_name, 'customer_phone': row.customer_phone}
            for row in db.execute(
                select(Order.id, Order.customer_name, Order.customer_phone).where(Order.id.in_(order_ids))
            ).all()
        }
    return [
        {
            'id': c.id,
            'order': orders.get(c.order_id),
            'section': ComplaintSection(c.section),
            'description': c.description,
            'status': ComplaintStatus(c.status),
            'created_by': users.get(c.created_by_id),
            'resolved_by': users.get(c.resolved_by_id) if c.resolved_by_id else None,
            'resolved_at': c.resolved_at,
            'created_at': c.created_at,
            'updated_at': c.updated_at,
        }
        for c in complaints
    ]


def raise_complaint(
    db: Session,
    *,
    principal: Principal,
    order_id: int,
    section: str,
    description: str,
    ip: str | None = None,
) -> dict:
    complaint_section = _parse_section(section)
    # Complaint sections share their names with the permission keys.
    assert_section_access(principal, PortalSection(complaint_section.value), PermissionLevel.READ_WRITE)

    clean_description = (description or '').strip()
    if not clean_description:
        raise InvalidInputError('Complaint description is required')
    exists = db.execute(select(Order.id).where(Order.id == order_id)).scalar_one_or_none()
    if not exists:
        raise NotFoundError('Order', order_id)

    now = _now()
    complaint = Complaint(
        order_id=order_id,
        section=complaint_section,
        description=clean_description,
        status=ComplaintStatus.OPEN,
        created_by_id=principal.id,
        created_at=now,
        updated_at=now,
    )
    db.add(complaint)
    db.flush()

    log_audit(
        db,
        actor_user_id=principal.id,
        action='COMPLAINT_RAISED',
        ip=ip,
        order_id=order_id,
        complaint_id=complaint.id,
        metadata={'section': complaint_section.value},
    )
    db.flush()
    logger.info('Complaint %s raised on order %s (%s) by user %s', complaint.id, order_id, complaint_section.value, principal.id)
    return _serialize(db, [complaint])[0]


def resolve_complaint(
    db: Session,
    *,
    principal: Principal,
    complaint_id: int,
    status: str = ComplaintStatus.RESOLVED.value,
    ip: str | None = None,
) -> dict:
    assert_section_access(principal, PortalSection.COMPLAINTS, PermissionLevel.READ_WRITE)
    if (status or '').strip() != ComplaintStatus.RESOLVED.value:
        raise InvalidInputError('Complaints can only be moved to resolved')

    complaint = _get_complaint(db, complaint_id)
    if complaint.status == ComplaintStatus.RESOLVED:
        raise ConflictError(f'Complaint {complaint_id} is already resolved')

    now = _now()
    result = db.execute(
        update(Complaint)
        .where(Complaint.id == complaint_id, Complaint.status == ComplaintStatus.OPEN)
        .values(status=ComplaintStatus.RESOLVED, resolved_by_id=principal.id, resolved_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ConflictError(f'Complaint {complaint_id} is already resolved')

    log_audit(
        db,
        actor_user_id=principal.id,
        action='COMPLAINT_RESOLVED',
        ip=ip,
        order_id=complaint.order_id,
        complaint_id=complaint_id,
    )
    db.flush()
    db.refresh(complaint)
    logger.info('Complaint %s resolved by user %s', complaint_id, principal.id)
    return _serialize(db, [complaint])[0]


def list_complaints(db: Session, *, status_filter: str | None = None) -> list[dict]:
    key = (status_filter or 'all').strip().lower()
    if key not in STATUS_FILTERS:
        raise InvalidInputError(f'Unknown complaint filter: {status_filter}')

    complaints = db.execute(
        select(Complaint)
        .where(Complaint.status.in_(STATUS_FILTERS[key]))
        .order_by(Complaint.created_at.desc(), Complaint.id.desc())
    ).scalars().all()
    return _serialize(db, list(complaints))
