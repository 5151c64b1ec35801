from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal

from ordering_portal.models import ItemReceivingStatus, OrderStatus
from ordering_portal.services.normalization_service import parse_decimal, to_cents


logger = logging.getLogger(__name__)

STATUS_POLICY_REJECT = 'reject'
STATUS_POLICY_COERCE = 'coerce'

TERMINAL_STATUSES = frozenset({OrderStatus.CANCELLED, OrderStatus.RECEIVED})
RECEIVING_STATUSES = frozenset({OrderStatus.RECEIVING, OrderStatus.PARTIALLY_RECEIVED})


class OrderStateError(ValueError):
    """Raised when a mutation is not allowed in the order's current status."""


@dataclass(frozen=True)
class ItemQuantities:
    ordered: Decimal
    received: Decimal | None


def resolve_order_status(value, *, policy: str = STATUS_POLICY_REJECT) -> OrderStatus:
    raw = str(value or '').strip().lower()
    try:
        return OrderStatus(raw)
    except ValueError:
        if policy == STATUS_POLICY_COERCE:
            logger.warning('Unknown order status %r stored as pending', value)
            return OrderStatus.PENDING
        raise ValueError(f'Invalid order status: {value}') from None


def assert_transition_allowed(current: OrderStatus, target: OrderStatus) -> None:
    if current == target:
        return
    if current in TERMINAL_STATUSES:
        raise OrderStateError(f'Order is {current.value} and can no longer change status')


def assert_receiving_allowed(current: OrderStatus) -> None:
    if current in TERMINAL_STATUSES:
        raise OrderStateError(f'Order is {current.value} and cannot be received again')


def assert_item_receiving_allowed(current: OrderStatus) -> None:
    if current not in RECEIVING_STATUSES:
        raise OrderStateError('Receiving quantities can only be recorded while the order is being received')


def _as_decimal(value) -> Decimal:
    parsed = parse_decimal(value)
    return parsed if parsed is not None else Decimal('0')


def item_receiving_status(received, ordered) -> ItemReceivingStatus:
    received_qty = _as_decimal(received)
    ordered_qty = _as_decimal(ordered)
    if received_qty == ordered_qty:
        return ItemReceivingStatus.RECEIVED
    if received_qty == 0:
        return ItemReceivingStatus.MISSING
    if 0 < received_qty < ordered_qty:
        return ItemReceivingStatus.PARTIAL
    return ItemReceivingStatus.PENDING


def missing_quantity(received, ordered) -> Decimal:
    return to_cents(max(_as_decimal(ordered) - _as_decimal(received), Decimal('0')))


def final_order_status(items: Iterable[ItemQuantities]) -> OrderStatus:
    # Items without a recorded quantity count as nothing received.
    all_received = all(
        _as_decimal(item.received) == _as_decimal(item.ordered)
        for item in items
    )
    return OrderStatus.RECEIVED if all_received else OrderStatus.PARTIALLY_RECEIVED
