from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
    true,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# SQLite only autoincrements INTEGER primary keys.
IdType = BigInteger().with_variant(Integer(), 'sqlite')


class Base(DeclarativeBase):
    pass


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


class UserRole(str, Enum):
    SUPERMARKET = 'supermarket'
    DISTRIBUTOR = 'distributor'


class OrderStatus(str, Enum):
    PENDING = 'pending'
    PROCESSING = 'processing'
    SHIPPED = 'shipped'
    DELIVERED = 'delivered'
    CANCELLED = 'cancelled'
    RECEIVING = 'receiving'
    RECEIVED = 'received'
    PARTIALLY_RECEIVED = 'partially_received'


class ItemReceivingStatus(str, Enum):
    PENDING = 'pending'
    RECEIVED = 'received'
    PARTIAL = 'partial'
    MISSING = 'missing'


class Store(Base):
    __tablename__ = 'stores'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    code: Mapped[str] = mapped_column(Text, nullable=False)
    address: Mapped[str] = mapped_column(Text, nullable=False)
    city: Mapped[str] = mapped_column(Text, nullable=False)
    state: Mapped[str] = mapped_column(Text, nullable=False)
    phone: Mapped[str] = mapped_column(Text, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())


class Distributor(Base):
    __tablename__ = 'distributors'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    code: Mapped[str] = mapped_column(Text, nullable=False)
    contact: Mapped[str] = mapped_column(Text, nullable=False)
    phone: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[str] = mapped_column(Text, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())


class User(Base):
    __tablename__ = 'users'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    username: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[UserRole] = mapped_column(
        SQLEnum(UserRole, name='user_role', values_callable=_enum_values),
        nullable=False,
        default=UserRole.DISTRIBUTOR,
    )
    store_id: Mapped[int | None] = mapped_column(IdType, ForeignKey('stores.id'))
    distributor_id: Mapped[int | None] = mapped_column(IdType, ForeignKey('distributors.id'))
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Product(Base):
    __tablename__ = 'products'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    distributor_id: Mapped[int] = mapped_column(IdType, ForeignKey('distributors.id'), nullable=False, index=True)
    item_code: Mapped[str] = mapped_column(Text, nullable=False)
    supplier_code: Mapped[str] = mapped_column(Text, nullable=False, default='')
    bar_code: Mapped[str | None] = mapped_column(Text)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    group_name: Mapped[str | None] = mapped_column(Text)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    previous_unit_price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    box_price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    previous_box_price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    box_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    unit: Mapped[str] = mapped_column(Text, nullable=False, default='un')
    image_url: Mapped[str | None] = mapped_column(Text)
    is_special_offer: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    expiration_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Order(Base):
    __tablename__ = 'orders'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    distributor_id: Mapped[int] = mapped_column(IdType, ForeignKey('distributors.id'), nullable=False, index=True)
    store_id: Mapped[int] = mapped_column(IdType, ForeignKey('stores.id'), nullable=False, index=True)
    status: Mapped[OrderStatus] = mapped_column(
        SQLEnum(OrderStatus, name='order_status', values_callable=_enum_values),
        nullable=False,
        default=OrderStatus.PENDING,
        server_default=OrderStatus.PENDING.value,
    )
    total: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    received_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    received_by: Mapped[str | None] = mapped_column(Text)
    receiving_notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    store: Mapped[Store] = relationship()
    distributor: Mapped[Distributor] = relationship()
    items: Mapped[list[OrderItem]] = relationship(back_populates='order', order_by='OrderItem.id')


class OrderItem(Base):
    __tablename__ = 'order_items'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    order_id: Mapped[int] = mapped_column(IdType, ForeignKey('orders.id'), nullable=False, index=True)
    product_id: Mapped[int] = mapped_column(IdType, ForeignKey('products.id'), nullable=False, index=True)
    quantity: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    total: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    received_quantity: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    missing_quantity: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    receiving_status: Mapped[ItemReceivingStatus | None] = mapped_column(
        SQLEnum(ItemReceivingStatus, name='item_receiving_status', values_callable=_enum_values),
    )
    receiving_notes: Mapped[str | None] = mapped_column(Text)

    order: Mapped[Order] = relationship(back_populates='items')
    product: Mapped[Product] = relationship()


class AuthEvent(Base):
    __tablename__ = 'auth_events'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    attempted_username: Mapped[str] = mapped_column(Text, nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    failure_reason: Mapped[str | None] = mapped_column(Text)
    user_id: Mapped[int | None] = mapped_column(IdType, ForeignKey('users.id'))
    ip: Mapped[str | None] = mapped_column(String(64))
    user_agent: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class AuditLog(Base):
    __tablename__ = 'audit_log'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    actor_user_id: Mapped[int | None] = mapped_column(IdType, ForeignKey('users.id'))
    action: Mapped[str] = mapped_column(Text, nullable=False)
    order_id: Mapped[int | None] = mapped_column(IdType)
    ip: Mapped[str | None] = mapped_column(String(64))
    meta: Mapped[dict] = mapped_column('metadata', JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class WebSession(Base):
    __tablename__ = 'web_sessions'
    __table_args__ = (
        UniqueConstraint('session_token', name='web_sessions_session_token_key'),
    )

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    session_token: Mapped[str] = mapped_column(String(128), nullable=False)
    user_id: Mapped[int] = mapped_column(IdType, ForeignKey('users.id'), nullable=False)
    ip: Mapped[str | None] = mapped_column(String(64))
    user_agent: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    last_seen_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
