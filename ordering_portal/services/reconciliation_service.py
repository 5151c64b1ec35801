from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from ordering_portal.models import Order, OrderItem, OrderStatus
from ordering_portal.services.normalization_service import (
    ITEM_NOTES_MAX_LENGTH,
    ORDER_NOTES_MAX_LENGTH,
    normalize_decimal,
    to_cents,
    truncate_text,
)
from ordering_portal.services.order_status_service import (
    ItemQuantities,
    assert_item_receiving_allowed,
    assert_receiving_allowed,
    final_order_status,
    item_receiving_status,
    missing_quantity,
)


logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


@dataclass(frozen=True)
class ReconciliationSummary:
    original_subtotal: Decimal
    received_subtotal: Decimal
    missing_amount: Decimal


@dataclass(frozen=True)
class ItemReceipt:
    item_id: int
    received_quantity: object
    missing_quantity: object = None
    notes: str | None = None


def summarize_items(items: Iterable[OrderItem]) -> ReconciliationSummary:
    original = Decimal('0')
    received = Decimal('0')
    for item in items:
        line_total = Decimal(item.total)
        original += line_total
        if item.received_quantity is not None:
            received += Decimal(item.received_quantity) * Decimal(item.price)
        else:
            received += line_total
    original = to_cents(original)
    received = to_cents(received)
    return ReconciliationSummary(
        original_subtotal=original,
        received_subtotal=received,
        missing_amount=original - received,
    )


def apply_item_receipt(
    item: OrderItem,
    *,
    received_quantity,
    missing_qty=None,
    notes: str | None = None,
) -> OrderItem:
    item.received_quantity = Decimal(normalize_decimal(received_quantity))
    if missing_qty is None:
        item.missing_quantity = missing_quantity(item.received_quantity, item.quantity)
    else:
        item.missing_quantity = Decimal(normalize_decimal(missing_qty))
    item.receiving_status = item_receiving_status(item.received_quantity, item.quantity)
    if notes is not None:
        item.receiving_notes = truncate_text(notes, ITEM_NOTES_MAX_LENGTH)
    return item


def start_receiving(
    order: Order,
    *,
    received_by: str,
    received_at: datetime | None = None,
    notes: str | None = None,
) -> Order:
    order.status = OrderStatus.RECEIVING
    order.received_by = received_by
    order.received_at = received_at or _now()
    if notes is not None:
        order.receiving_notes = truncate_text(notes, ORDER_NOTES_MAX_LENGTH)
    order.updated_at = _now()
    return order


def receive_order(
    db: Session,
    *,
    order_id: int,
    received_by: str,
    receipts: list[ItemReceipt],
    notes: str | None = None,
) -> Order:
    """Record one receiving pass for an order and settle its final status.

    The order enters ``receiving``, every receipt is applied to its item, and
    the final status is derived from all items of the order, including the
    ones this pass did not touch. Nothing is committed here; the caller owns
    the transaction so the pass lands as a single unit.
    """
    order = db.execute(select(Order).where(Order.id == order_id)).scalar_one_or_none()
    if order is None:
        raise ValueError('Order not found')
    assert_receiving_allowed(order.status)

    items = db.execute(select(OrderItem).where(OrderItem.order_id == order.id)).scalars().all()
    items_by_id = {item.id: item for item in items}
    unknown = [receipt.item_id for receipt in receipts if receipt.item_id not in items_by_id]
    if unknown:
        raise ValueError(f'Items {unknown} do not belong to order {order.id}')

    start_receiving(order, received_by=received_by, notes=notes)
    assert_item_receiving_allowed(order.status)
    for receipt in receipts:
        apply_item_receipt(
            items_by_id[receipt.item_id],
            received_quantity=receipt.received_quantity,
            missing_qty=receipt.missing_quantity,
            notes=receipt.notes,
        )

    order.status = final_order_status(
        ItemQuantities(ordered=item.quantity, received=item.received_quantity) for item in items
    )
    order.updated_at = _now()
    db.flush()
    logger.info(
        'Order %s received by %s: %s (%d item updates)',
        order.id,
        received_by,
        order.status.value,
        len(receipts),
    )
    return order
