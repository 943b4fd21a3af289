from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.auth import Principal, get_current_principal
from app.db import get_db
from app.dependencies import get_client_ip
from app.schemas import OrderCreateIn, OrderDetailOut, OrderEnvelope, OrderEventOut, OrderOut, OrderTransitionIn
from app.services.order_filter_service import parse_section
from app.services.order_service import (
    OrderItemInput,
    get_order,
    list_order_events,
    list_orders,
    submit_order,
    summarize_section,
    transition_order,
)
from app.services.order_workflow_service import parse_stage, parse_status

router = APIRouter(prefix='/orders', tags=['orders'])


@router.get('', response_model=list[OrderOut])
def orders_index(
    section: str | None = None,
    filter: str | None = None,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    return list_orders(
        db,
        principal=principal,
        section=parse_section(section) if section else None,
        filter_key=filter,
    )


@router.get('/summary')
def orders_summary(
    section: str,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
) -> dict[str, int]:
    return summarize_section(db, principal=principal, section=parse_section(section))


@router.post('', response_model=OrderEnvelope)
def orders_create(
    payload: OrderCreateIn,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    order = submit_order(
        db,
        principal=principal,
        customer_name=payload.customer_name,
        customer_phone=payload.customer_phone,
        items=[
            OrderItemInput(
                item_type=item.item_type,
                quantity=item.quantity,
                price=item.price,
                description=item.description,
                photo_path=item.photo_path,
            )
            for item in payload.items
        ],
        ip=get_client_ip(request),
    )
    db.commit()
    return {'success': True, 'order': order}


@router.put('', response_model=OrderEnvelope)
def orders_transition(
    payload: OrderTransitionIn,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    order = transition_order(
        db,
        principal=principal,
        order_id=payload.order_id,
        target_status=parse_status(payload.status),
        stage=parse_stage(payload.section),
        ip=get_client_ip(request),
    )
    db.commit()
    return {'success': True, 'order': order}


@router.get('/{order_id}', response_model=OrderDetailOut)
def orders_detail(
    order_id: int,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    return get_order(db, principal=principal, order_id=order_id)


@router.get('/{order_id}/events', response_model=list[OrderEventOut])
def orders_events(
    order_id: int,
    _: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    return list_order_events(db, order_id=order_id)
