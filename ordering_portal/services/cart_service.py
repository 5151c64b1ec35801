from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from ordering_portal.models import Order, OrderItem, OrderStatus, Product
from ordering_portal.services.catalog_service import get_store
from ordering_portal.services.normalization_service import parse_decimal, to_cents


logger = logging.getLogger(__name__)


@dataclass
class CartLine:
    product: Product
    quantity: Decimal
    is_box_unit: bool = False

    @property
    def unit_price(self) -> Decimal:
        if self.is_box_unit:
            return Decimal(self.product.box_price or 0)
        return Decimal(self.product.unit_price or 0)

    @property
    def total(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass
class Cart:
    """Lines a store intends to order, possibly spanning several distributors.

    A line is keyed by product and unit mode, so the same product can sit in
    the cart once by the unit and once by the box.
    """

    lines: list[CartLine] = field(default_factory=list)

    def _find(self, product_id: int, is_box_unit: bool) -> CartLine | None:
        for line in self.lines:
            if line.product.id == product_id and line.is_box_unit == is_box_unit:
                return line
        return None

    def add(self, product: Product, quantity=1, is_box_unit: bool = False) -> bool:
        if is_box_unit and not product.box_price:
            return False
        qty = parse_decimal(quantity)
        if qty is None or qty <= 0:
            return False
        existing = self._find(product.id, is_box_unit)
        if existing is not None:
            existing.quantity += qty
        else:
            self.lines.append(CartLine(product=product, quantity=qty, is_box_unit=is_box_unit))
        return True

    def remove(self, product_id: int) -> None:
        self.lines = [line for line in self.lines if line.product.id != product_id]

    def update_quantity(self, product_id: int, quantity, is_box_unit: bool) -> None:
        qty = parse_decimal(quantity)
        if qty is None or qty <= 0:
            self.remove(product_id)
            return
        line = self._find(product_id, is_box_unit)
        if line is not None:
            line.quantity = qty

    def clear(self) -> None:
        self.lines = []

    @property
    def total(self) -> Decimal:
        return to_cents(sum((line.total for line in self.lines), Decimal('0')))

    def by_distributor(self) -> dict[int, list[CartLine]]:
        grouped: dict[int, list[CartLine]] = {}
        for line in self.lines:
            grouped.setdefault(line.product.distributor_id, []).append(line)
        return grouped


def build_cart(db: Session, entries: list[dict]) -> tuple[Cart, list[str]]:
    product_ids = {int(entry['product_id']) for entry in entries}
    products = {}
    if product_ids:
        products = {
            product.id: product
            for product in db.execute(select(Product).where(Product.id.in_(product_ids))).scalars().all()
        }

    cart = Cart()
    rejected: list[str] = []
    for entry in entries:
        product = products.get(int(entry['product_id']))
        if product is None:
            rejected.append(f"Product {entry['product_id']} not found")
            continue
        if not cart.add(product, entry.get('quantity', 1), bool(entry.get('is_box_unit', False))):
            rejected.append(f'Product {product.id} could not be added to the cart')
    return cart, rejected


def checkout(db: Session, cart: Cart, *, store_id: int) -> list[Order]:
    """Place one pending order per distributor present in the cart."""
    if not cart.lines:
        raise ValueError('Cart is empty')
    get_store(db, store_id)

    orders: list[Order] = []
    for distributor_id, lines in cart.by_distributor().items():
        order = Order(
            distributor_id=distributor_id,
            store_id=store_id,
            status=OrderStatus.PENDING,
            total=to_cents(sum((line.total for line in lines), Decimal('0'))),
        )
        db.add(order)
        db.flush()
        for line in lines:
            db.add(
                OrderItem(
                    order_id=order.id,
                    product_id=line.product.id,
                    quantity=to_cents(line.quantity),
                    price=to_cents(line.unit_price),
                    total=to_cents(line.total),
                )
            )
        orders.append(order)
    db.flush()
    logger.info('Checkout for store %s created %d orders', store_id, len(orders))
    return orders
