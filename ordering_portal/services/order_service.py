from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from ordering_portal.models import Order, OrderItem, OrderStatus, Product
from ordering_portal.services.catalog_service import get_distributor, get_product, get_store, set_unit_price
from ordering_portal.services.normalization_service import (
    ITEM_NOTES_MAX_LENGTH,
    ORDER_NOTES_MAX_LENGTH,
    normalize_decimal,
    to_cents,
    truncate_text,
)
from ordering_portal.services.order_status_service import (
    STATUS_POLICY_REJECT,
    assert_item_receiving_allowed,
    assert_transition_allowed,
    item_receiving_status,
    missing_quantity,
    resolve_order_status,
)
from ordering_portal.services.reconciliation_service import start_receiving


logger = logging.getLogger(__name__)

ITEM_RECEIVING_FIELDS = ('received_quantity', 'missing_quantity', 'receiving_notes')


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _cents(value) -> Decimal:
    return Decimal(normalize_decimal(value))


def _detail_query():
    return select(Order).options(
        selectinload(Order.store),
        selectinload(Order.distributor),
        selectinload(Order.items).selectinload(OrderItem.product),
    )


def list_orders(
    db: Session,
    *,
    store_id: int | None = None,
    distributor_id: int | None = None,
) -> list[Order]:
    query = _detail_query().order_by(Order.created_at.desc(), Order.id.desc())
    if store_id is not None:
        query = query.where(Order.store_id == store_id)
    if distributor_id is not None:
        query = query.where(Order.distributor_id == distributor_id)
    return db.execute(query).scalars().all()


def get_order_detail(db: Session, order_id: int) -> Order:
    order = db.execute(_detail_query().where(Order.id == order_id)).scalar_one_or_none()
    if order is None:
        raise ValueError('Order not found')
    return order


def get_order(db: Session, order_id: int) -> Order:
    order = db.get(Order, order_id)
    if order is None:
        raise ValueError('Order not found')
    return order


def create_order(db: Session, *, store_id: int, distributor_id: int, total) -> Order:
    get_store(db, store_id)
    get_distributor(db, distributor_id)
    order = Order(
        store_id=store_id,
        distributor_id=distributor_id,
        status=OrderStatus.PENDING,
        total=_cents(total),
    )
    db.add(order)
    db.flush()
    return order


def update_order(
    db: Session,
    order_id: int,
    fields: dict,
    *,
    actor_username: str,
    status_policy: str = STATUS_POLICY_REJECT,
) -> Order:
    order = get_order(db, order_id)
    if fields.get('total') is not None:
        order.total = _cents(fields['total'])

    if fields.get('status') is not None:
        target = resolve_order_status(fields['status'], policy=status_policy)
        assert_transition_allowed(order.status, target)
        previous = order.status
        if target == OrderStatus.RECEIVING:
            start_receiving(
                order,
                received_by=actor_username,
                received_at=fields.get('received_at'),
                notes=fields.get('receiving_notes'),
            )
        else:
            order.status = target
        if previous != target:
            logger.info('Order %s moved from %s to %s by %s', order.id, previous.value, target.value, actor_username)
    elif 'receiving_notes' in fields:
        order.receiving_notes = truncate_text(fields['receiving_notes'], ORDER_NOTES_MAX_LENGTH)

    order.updated_at = _now()
    db.flush()
    return order


def list_order_items(db: Session, order_id: int) -> list[OrderItem]:
    get_order(db, order_id)
    return db.execute(
        select(OrderItem)
        .options(selectinload(OrderItem.product))
        .where(OrderItem.order_id == order_id)
        .order_by(OrderItem.id.asc())
    ).scalars().all()


def add_order_item(db: Session, order_id: int, *, product_id: int, quantity, price, total=None) -> OrderItem:
    order = get_order(db, order_id)
    get_product(db, product_id)
    quantity_value = _cents(quantity)
    price_value = _cents(price)
    item = OrderItem(
        order_id=order.id,
        product_id=product_id,
        quantity=quantity_value,
        price=price_value,
        total=_cents(total) if total is not None else to_cents(quantity_value * price_value),
    )
    db.add(item)
    db.flush()
    return item


def get_order_item(db: Session, item_id: int) -> OrderItem:
    item = db.get(OrderItem, item_id)
    if item is None:
        raise ValueError('Order item not found')
    return item


def update_order_item(db: Session, item_id: int, fields: dict) -> OrderItem:
    item = get_order_item(db, item_id)
    fields = {key: value for key, value in fields.items() if value is not None or key == 'receiving_notes'}
    if 'quantity' in fields:
        item.quantity = _cents(fields['quantity'])
    if 'price' in fields:
        item.price = _cents(fields['price'])
    if 'total' in fields:
        item.total = _cents(fields['total'])
    elif 'quantity' in fields or 'price' in fields:
        item.total = to_cents(Decimal(item.quantity) * Decimal(item.price))

    if any(key in fields for key in ITEM_RECEIVING_FIELDS):
        assert_item_receiving_allowed(item.order.status)
        if 'received_quantity' in fields:
            item.received_quantity = _cents(fields['received_quantity'])
        if fields.get('missing_quantity') is not None:
            item.missing_quantity = _cents(fields['missing_quantity'])
        elif 'received_quantity' in fields:
            item.missing_quantity = missing_quantity(item.received_quantity, item.quantity)
        if 'receiving_notes' in fields:
            item.receiving_notes = truncate_text(fields['receiving_notes'], ITEM_NOTES_MAX_LENGTH)

    if item.received_quantity is not None:
        item.receiving_status = item_receiving_status(item.received_quantity, item.quantity)
    db.flush()
    return item


def edit_order_line(
    db: Session,
    item_id: int,
    *,
    quantity=None,
    price=None,
    update_product_price: bool = True,
) -> OrderItem:
    """Change quantity and/or price on an order line.

    When the price changes and ``update_product_price`` is set, the product's
    unit price follows it. The line total and the order total are recomputed.
    All writes share the caller's transaction.
    """
    item = get_order_item(db, item_id)
    if quantity is None and price is None:
        raise ValueError('Nothing to update')
    if quantity is not None:
        item.quantity = _cents(quantity)
    if price is not None:
        item.price = _cents(price)
        if update_product_price:
            product = db.get(Product, item.product_id)
            set_unit_price(product, item.price)
            product.updated_at = _now()
    item.total = to_cents(Decimal(item.quantity) * Decimal(item.price))
    if item.received_quantity is not None:
        item.receiving_status = item_receiving_status(item.received_quantity, item.quantity)
    db.flush()

    order = item.order
    order.total = to_cents(sum((Decimal(line.total) for line in order.items), Decimal('0')))
    order.updated_at = _now()
    db.flush()
    return item
