from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# SQLite only autoincrements INTEGER primary keys.
BigIntPK = BigInteger().with_variant(Integer, 'sqlite')


class Base(DeclarativeBase):
    pass


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


class UserRole(str, Enum):
    ADMIN = 'admin'
    STAFF = 'staff'
    PENDING = 'pending'


class PortalSection(str, Enum):
    CREATE_ORDER = 'createOrder'
    NEW_ORDERS = 'newOrders'
    SA = 'sa'
    SB = 'sb'
    SC = 'sc'
    PACKAGING = 'packaging'
    DISPATCHED = 'dispatched'
    COMPLAINTS = 'complaints'


class PermissionLevel(str, Enum):
    NO_ACCESS = 'no_access'
    READ_ONLY = 'read_only'
    READ_WRITE = 'read_write'

    @property
    def rank(self) -> int:
        return _PERMISSION_RANK[self]


_PERMISSION_RANK = {
    PermissionLevel.NO_ACCESS: 0,
    PermissionLevel.READ_ONLY: 1,
    PermissionLevel.READ_WRITE: 2,
}


class OrderStatus(str, Enum):
    NEW = 'NEW'
    ACCEPTED = 'ACCEPTED'
    REJECTED = 'REJECTED'
    SA_PENDING = 'SA_PENDING'
    SA_DONE = 'SA_DONE'
    SA_FAILED = 'SA_FAILED'
    SB_PENDING = 'SB_PENDING'
    SB_DONE = 'SB_DONE'
    SB_FAILED = 'SB_FAILED'
    SC_PENDING = 'SC_PENDING'
    SC_DONE = 'SC_DONE'
    SC_FAILED = 'SC_FAILED'
    PACKAGING_PENDING = 'PACKAGING_PENDING'
    PACKAGING_DONE = 'PACKAGING_DONE'
    PACKAGING_FAILED = 'PACKAGING_FAILED'
    DISPATCH_YET = 'DISPATCH_YET'
    DISPATCH_REACHED = 'DISPATCH_REACHED'
    DISPATCH_FAILED = 'DISPATCH_FAILED'
    DISPATCH_COULD_NOT = 'DISPATCH_COULD_NOT'


OrderStatusType = SQLEnum(OrderStatus, name='order_status')


class Stage(str, Enum):
    REVIEW = 'review'
    SA = 'sa'
    SB = 'sb'
    SC = 'sc'
    PACKAGING = 'packaging'
    DISPATCH = 'dispatch'


class ItemType(str, Enum):
    A = 'A'
    B = 'B'
    C = 'C'


class ComplaintSection(str, Enum):
    NEW_ORDERS = 'newOrders'
    SA = 'sa'
    SB = 'sb'
    SC = 'sc'
    PACKAGING = 'packaging'
    DISPATCHED = 'dispatched'


class ComplaintStatus(str, Enum):
    OPEN = 'open'
    RESOLVED = 'resolved'


class User(Base):
    __tablename__ = 'users'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    full_name: Mapped[str] = mapped_column(Text, nullable=False)
    phone: Mapped[str | None] = mapped_column(String(32), unique=True)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[UserRole] = mapped_column(
        SQLEnum(UserRole, name='user_role', values_callable=_enum_values),
        nullable=False,
        default=UserRole.PENDING,
        server_default='pending',
    )
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default='true')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class UserPermission(Base):
    __tablename__ = 'user_permissions'

    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('users.id', ondelete='CASCADE'), primary_key=True)
    section: Mapped[PortalSection] = mapped_column(
        SQLEnum(PortalSection, name='portal_section', values_callable=_enum_values), primary_key=True
    )
    level: Mapped[PermissionLevel] = mapped_column(
        SQLEnum(PermissionLevel, name='permission_level', values_callable=_enum_values),
        nullable=False,
        default=PermissionLevel.NO_ACCESS,
        server_default='no_access',
    )


class Order(Base):
    __tablename__ = 'orders'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    customer_name: Mapped[str] = mapped_column(Text, nullable=False)
    customer_phone: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[OrderStatus] = mapped_column(
        OrderStatusType, nullable=False, default=OrderStatus.NEW, server_default='NEW'
    )
    created_by_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('users.id'), nullable=False)

    reviewed_by_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('users.id'))
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    sa_processed_by_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('users.id'))
    sa_processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    sb_processed_by_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('users.id'))
    sb_processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    sc_processed_by_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('users.id'))
    sc_processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    packaged_by_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('users.id'))
    packaged_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    dispatched_by_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('users.id'))
    dispatched_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    items: Mapped[list[OrderItem]] = relationship(
        back_populates='order', order_by='OrderItem.position', cascade='all, delete-orphan'
    )


class OrderItem(Base):
    __tablename__ = 'order_items'
    __table_args__ = (
        CheckConstraint('quantity >= 1', name='order_items_quantity_positive'),
        CheckConstraint('price >= 0', name='order_items_price_non_negative'),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    order_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('orders.id', ondelete='CASCADE'), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default='0')
    item_type: Mapped[ItemType] = mapped_column(SQLEnum(ItemType, name='item_type'), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    photo_path: Mapped[str | None] = mapped_column(Text)

    order: Mapped[Order] = relationship(back_populates='items')


class OrderStatusEvent(Base):
    __tablename__ = 'order_status_events'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    order_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('orders.id', ondelete='CASCADE'), nullable=False, index=True)
    stage: Mapped[Stage] = mapped_column(SQLEnum(Stage, name='order_stage', values_callable=_enum_values), nullable=False)
    from_status: Mapped[OrderStatus] = mapped_column(OrderStatusType, nullable=False)
    to_status: Mapped[OrderStatus] = mapped_column(OrderStatusType, nullable=False)
    actor_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('users.id'), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class Complaint(Base):
    __tablename__ = 'complaints'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    order_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('orders.id'), nullable=False, index=True)
    section: Mapped[ComplaintSection] = mapped_column(
        SQLEnum(ComplaintSection, name='complaint_section', values_callable=_enum_values), nullable=False
    )
    description: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[ComplaintStatus] = mapped_column(
        SQLEnum(ComplaintStatus, name='complaint_status', values_callable=_enum_values),
        nullable=False,
        default=ComplaintStatus.OPEN,
        server_default='open',
    )
    created_by_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('users.id'), nullable=False)
    resolved_by_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('users.id'))
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class AuthEvent(Base):
    __tablename__ = 'auth_events'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    attempted_email: Mapped[str] = mapped_column(String(320), nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    failure_reason: Mapped[str | None] = mapped_column(Text)
    user_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('users.id'))
    ip: Mapped[str | None] = mapped_column(String(64))
    user_agent: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class AuditLog(Base):
    __tablename__ = 'audit_log'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    actor_user_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('users.id'))
    action: Mapped[str] = mapped_column(Text, nullable=False)
    order_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('orders.id'))
    complaint_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('complaints.id'))
    ip: Mapped[str | None] = mapped_column(String(64))
    meta: Mapped[dict] = mapped_column('metadata', JSON, nullable=False, default=dict, server_default='{}')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class ApiToken(Base):
    __tablename__ = 'api_tokens'
    __table_args__ = (
        UniqueConstraint('token', name='api_tokens_token_key'),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    token: Mapped[str] = mapped_column(String(128), nullable=False)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('users.id'), nullable=False)
    ip: Mapped[str | None] = mapped_column(String(64))
    user_agent: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    last_seen_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
