"""Request and response bodies. The wire format is camelCase."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.models import ComplaintSection, ComplaintStatus, ItemType, OrderStatus, UserRole


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ActorOut(CamelModel):
    id: int
    full_name: str
    email: str


class OrderItemIn(CamelModel):
    item_type: str
    quantity: int
    price: float | int | str
    description: str = ''
    photo_path: str | None = None


class OrderCreateIn(CamelModel):
    customer_name: str = ''
    customer_phone: str = ''
    items: list[OrderItemIn] = Field(default_factory=list)


class OrderTransitionIn(CamelModel):
    order_id: int
    status: str
    section: str


class OrderItemOut(CamelModel):
    item_type: ItemType
    quantity: int
    price: float
    description: str
    photo_path: str | None = None


class AllowedActionOut(CamelModel):
    section: str
    outcome: str
    status: str


class OrderOut(CamelModel):
    id: int
    customer_name: str
    customer_phone: str
    status: OrderStatus
    items: list[OrderItemOut]
    created_by: ActorOut | None = None
    reviewed_by: ActorOut | None = None
    reviewed_at: datetime | None = None
    sa_processed_by: ActorOut | None = None
    sa_processed_at: datetime | None = None
    sb_processed_by: ActorOut | None = None
    sb_processed_at: datetime | None = None
    sc_processed_by: ActorOut | None = None
    sc_processed_at: datetime | None = None
    packaged_by: ActorOut | None = None
    packaged_at: datetime | None = None
    dispatched_by: ActorOut | None = None
    dispatched_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class OrderDetailOut(OrderOut):
    allowed_actions: list[AllowedActionOut] = Field(default_factory=list)
    terminal: bool = False


class OrderEnvelope(CamelModel):
    success: bool = True
    order: OrderOut


class OrderEventOut(CamelModel):
    id: int
    section: str
    from_status: OrderStatus
    to_status: OrderStatus
    actor: ActorOut | None = None
    created_at: datetime


class OrderRefOut(CamelModel):
    id: int
    customer_name: str
    customer_phone: str


class ComplaintCreateIn(CamelModel):
    order_id: int
    section: str
    description: str = ''


class ComplaintUpdateIn(CamelModel):
    complaint_id: int | None = None
    status: str = 'resolved'


class ComplaintOut(CamelModel):
    id: int
    order: OrderRefOut | None = None
    section: ComplaintSection
    description: str
    status: ComplaintStatus
    created_by: ActorOut | None = None
    resolved_by: ActorOut | None = None
    resolved_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class ComplaintEnvelope(CamelModel):
    success: bool = True
    complaint: ComplaintOut


class TokenIn(CamelModel):
    email: str
    password: str


class TokenOut(CamelModel):
    access_token: str
    token_type: str = 'bearer'
    expires_at: datetime


class ProfileOut(CamelModel):
    id: int
    full_name: str
    email: str
    role: str
    permissions: dict[str, str]


class UserOut(CamelModel):
    id: int
    full_name: str
    email: str
    phone: str | None = None
    role: UserRole
    active: bool
    permissions: dict[str, str]


class UserAccessIn(CamelModel):
    user_id: int
    permissions: dict[str, str] | None = None
    role: str | None = None
    active: bool | None = None
