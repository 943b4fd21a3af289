from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation

from sqlalchemy import select, update
from sqlalchemy.orm import Session, selectinload

from app.auth import Principal, assert_section_access
from app.config import settings
from app.errors import ConflictError, InvalidInputError, InvalidTransitionError, NotFoundError
from app.models import (
    ItemType,
    Order,
    OrderItem,
    OrderStatus,
    OrderStatusEvent,
    PermissionLevel,
    PortalSection,
    Stage,
    User,
)
from app.services import order_filter_service, order_workflow_service
from app.services.audit_service import log_audit

logger = logging.getLogger(__name__)

# Column limits: order_items.price is NUMERIC(12, 2), order_items.quantity is INTEGER,
# orders.customer_phone is VARCHAR(32).
MAX_PRICE = Decimal('9999999999.99')
PRICE_STEP = Decimal('0.01')
MAX_QUANTITY = 2_147_483_647
MAX_PHONE_LENGTH = 32

_ACTOR_FIELDS = {
    'created_by': 'created_by_id',
    'reviewed_by': 'reviewed_by_id',
    'sa_processed_by': 'sa_processed_by_id',
    'sb_processed_by': 'sb_processed_by_id',
    'sc_processed_by': 'sc_processed_by_id',
    'packaged_by': 'packaged_by_id',
    'dispatched_by': 'dispatched_by_id',
}
_STAMP_FIELDS = ('reviewed_at', 'sa_processed_at', 'sb_processed_at', 'sc_processed_at', 'packaged_at', 'dispatched_at')


@dataclass(frozen=True)
class OrderItemInput:
    item_type: str
    quantity: int
    price: Decimal | float | int | str
    description: str
    photo_path: str | None = None


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _validate_item(index: int, item: OrderItemInput) -> OrderItem:
    label = f'Item {index + 1}'
    try:
        item_type = ItemType(str(item.item_type).strip().upper())
    except ValueError as exc:
        raise InvalidInputError(f'{label}: item type must be one of A, B, C') from exc

    if isinstance(item.quantity, bool) or not isinstance(item.quantity, int):
        raise InvalidInputError(f'{label}: quantity must be a whole number')
    if item.quantity < 1:
        raise InvalidInputError(f'{label}: quantity must be at least 1')
    if item.quantity > MAX_QUANTITY:
        raise InvalidInputError(f'{label}: quantity cannot exceed {MAX_QUANTITY}')

    try:
        price = Decimal(str(item.price))
    except InvalidOperation as exc:
        raise InvalidInputError(f'{label}: invalid price') from exc
    if not price.is_finite():
        raise InvalidInputError(f'{label}: invalid price')
    if price < 0:
        raise InvalidInputError(f'{label}: price cannot be negative')
    if price > MAX_PRICE:
        raise InvalidInputError(f'{label}: price cannot exceed {MAX_PRICE}')
    if price != price.quantize(PRICE_STEP):
        raise InvalidInputError(f'{label}: price can have at most 2 decimal places')
    price = price.quantize(PRICE_STEP)

    description = (item.description or '').strip()
    if not description:
        raise InvalidInputError(f'{label}: description is required')

    photo_path = (item.photo_path or '').strip() or None
    return OrderItem(
        position=index,
        item_type=item_type,
        quantity=item.quantity,
        price=price,
        description=description,
        photo_path=photo_path,
    )


def _get_order(db: Session, order_id: int) -> Order:
    order = db.execute(
        select(Order).options(selectinload(Order.items)).where(Order.id == order_id)
    ).scalar_one_or_none()
    if not order:
        raise NotFoundError('Order', order_id)
    return order


def _identities(db: Session, user_ids: set[int]) -> dict[int, dict]:
    if not user_ids:
        return {}
    rows = db.execute(select(User.id, User.full_name, User.email).where(User.id.in_(user_ids))).all()
    return {row.id: {'id': row.id, 'full_name': row.full_name, 'email': row.email} for row in rows}


def _serialize_orders(db: Session, orders: list[Order]) -> list[dict]:
    user_ids = {
        getattr(order, column)
        for order in orders
        for column in _ACTOR_FIELDS.values()
        if getattr(order, column) is not None
    }
    identities = _identities(db, user_ids)

    rows = []
    for order in orders:
        row = {
            'id': order.id,
            'customer_name': order.customer_name,
            'customer_phone': order.customer_phone,
            'status': OrderStatus(order.status),
            'items': [
                {
                    'item_type': item.item_type,
                    'quantity': item.quantity,
                    'price': item.price,
                    'description': item.description,
                    'photo_path': item.photo_path,
                }
                for item in order.items
            ],
            'created_at': order.created_at,
            'updated_at': order.updated_at,
        }
        for key, column in _ACTOR_FIELDS.items():
            actor_id = getattr(order, column)
            row[key] = identities.get(actor_id) if actor_id is not None else None
        for key in _STAMP_FIELDS:
            row[key] = getattr(order, key)
        rows.append(row)
    return rows


def serialize_order(db: Session, order: Order) -> dict:
    return _serialize_orders(db, [order])[0]


def submit_order(
    db: Session,
    *,
    principal: Principal,
    customer_name: str,
    customer_phone: str,
    items: list[OrderItemInput],
    ip: str | None = None,
) -> dict:
    assert_section_access(principal, PortalSection.CREATE_ORDER, PermissionLevel.READ_WRITE)

    clean_name = (customer_name or '').strip()
    clean_phone = (customer_phone or '').strip()
    if not clean_name:
        raise InvalidInputError('Customer name is required')
    if not clean_phone:
        raise InvalidInputError('Customer phone is required')
    if len(clean_phone) > MAX_PHONE_LENGTH:
        raise InvalidInputError(f'Customer phone cannot be longer than {MAX_PHONE_LENGTH} characters')
    if not items:
        raise InvalidInputError('Add at least one item')

    now = _now()
    order = Order(
        customer_name=clean_name,
        customer_phone=clean_phone,
        status=OrderStatus.NEW,
        created_by_id=principal.id,
        created_at=now,
        updated_at=now,
        items=[_validate_item(index, item) for index, item in enumerate(items)],
    )
    db.add(order)
    db.flush()

    log_audit(
        db,
        actor_user_id=principal.id,
        action='ORDER_SUBMITTED',
        ip=ip,
        order_id=order.id,
        metadata={'item_count': len(order.items)},
    )
    db.flush()
    logger.info('Order %s submitted by user %s with %d item(s)', order.id, principal.id, len(order.items))
    return serialize_order(db, order)


def transition_order(
    db: Session,
    *,
    principal: Principal,
    order_id: int,
    target_status: OrderStatus,
    stage: Stage,
    ip: str | None = None,
) -> dict:
    assert_section_access(principal, order_workflow_service.section_for_stage(stage), PermissionLevel.READ_WRITE)

    order = _get_order(db, order_id)
    current = OrderStatus(order.status)
    try:
        order_workflow_service.check_transition(
            current, stage, target_status, strict=settings.enforce_transition_table
        )
    except InvalidTransitionError:
        logger.warning(
            'Rejected transition of order %s from %s to %s at stage %s by user %s',
            order_id,
            current.value,
            target_status.value,
            stage.value,
            principal.id,
        )
        raise

    now = _now()
    actor_column, stamp_column = order_workflow_service.STAGE_AUDIT_FIELDS[stage]
    result = db.execute(
        update(Order)
        .where(Order.id == order_id, Order.status == current)
        .values({'status': target_status, actor_column: principal.id, stamp_column: now, 'updated_at': now})
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        logger.warning('Order %s changed while user %s was moving it from %s', order_id, principal.id, current.value)
        raise ConflictError(f'Order {order_id} is no longer {current.value}; reload and try again')

    db.add(
        OrderStatusEvent(
            order_id=order_id,
            stage=stage,
            from_status=current,
            to_status=target_status,
            actor_id=principal.id,
            created_at=now,
        )
    )
    log_audit(
        db,
        actor_user_id=principal.id,
        action='ORDER_TRANSITIONED',
        ip=ip,
        order_id=order_id,
        metadata={'stage': stage.value, 'from_status': current.value, 'to_status': target_status.value},
    )
    db.flush()
    db.refresh(order)
    logger.info(
        'Order %s moved %s -> %s at stage %s by user %s', order_id, current.value, target_status.value, stage.value, principal.id
    )
    return serialize_order(db, order)


def list_orders(
    db: Session,
    *,
    principal: Principal,
    section: PortalSection | None = None,
    filter_key: str | None = None,
) -> list[dict]:
    if filter_key is not None and section is None:
        raise InvalidInputError('A filter needs a section')
    query = select(Order).options(selectinload(Order.items)).order_by(Order.created_at.desc(), Order.id.desc())
    if section is not None:
        assert_section_access(principal, section, PermissionLevel.READ_ONLY)
        statuses = order_filter_service.statuses_for(section, filter_key)
        query = query.where(Order.status.in_(statuses))

    rows = _serialize_orders(db, list(db.execute(query).scalars().all()))
    if section is not None:
        rows = order_filter_service.sort_for_section(section, rows)
    return rows


def get_order(db: Session, *, principal: Principal, order_id: int) -> dict:
    order = _get_order(db, order_id)
    row = serialize_order(db, order)
    writable = {section for section in PortalSection if principal.can_write(section)}
    row['allowed_actions'] = [
        {'section': action.stage.value, 'outcome': action.outcome, 'status': action.target.value}
        for action in order_workflow_service.available_actions(row['status'], writable)
    ]
    row['terminal'] = order_workflow_service.is_terminal(row['status'])
    return row


def list_order_events(db: Session, *, order_id: int) -> list[dict]:
    _get_order(db, order_id)
    events = db.execute(
        select(OrderStatusEvent)
        .where(OrderStatusEvent.order_id == order_id)
        .order_by(OrderStatusEvent.created_at.asc(), OrderStatusEvent.id.asc())
    ).scalars().all()
    identities = _identities(db, {event.actor_id for event in events})
    return [
        {
            'id': event.id,
            'section': Stage(event.stage).value,
            'from_status': OrderStatus(event.from_status),
            'to_status': OrderStatus(event.to_status),
            'actor': identities.get(event.actor_id),
            'created_at': event.created_at,
        }
        for event in events
    ]


def summarize_section(db: Session, *, principal: Principal, section: PortalSection) -> dict[str, int]:
    assert_section_access(principal, section, PermissionLevel.READ_ONLY)
    statuses = [OrderStatus(status) for status in db.execute(select(Order.status)).scalars().all()]
    return order_filter_service.count_by_filter(section, statuses)
