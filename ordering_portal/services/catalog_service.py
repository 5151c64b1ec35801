from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.orm import Session

from ordering_portal.models import Distributor, Order, OrderItem, Product, Store, User
from ordering_portal.services.normalization_service import (
    normalize_decimal,
    normalize_optional_decimal,
    to_cents,
)


logger = logging.getLogger(__name__)

STORE_FIELDS = ('name', 'code', 'address', 'city', 'state', 'phone', 'active')
DISTRIBUTOR_FIELDS = ('name', 'code', 'contact', 'phone', 'email', 'active')
PRODUCT_TEXT_FIELDS = (
    'item_code',
    'supplier_code',
    'bar_code',
    'name',
    'description',
    'group_name',
    'unit',
    'image_url',
)
NULLABLE_PRODUCT_FIELDS = ('bar_code', 'description', 'group_name', 'image_url')


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _apply_fields(row, fields: dict, allowed: tuple[str, ...], nullable: tuple[str, ...] = ()) -> None:
    for key in allowed:
        if key not in fields:
            continue
        if fields[key] is None and key not in nullable:
            continue
        setattr(row, key, fields[key])


def _box_quantity(value) -> int:
    try:
        quantity = int(Decimal(str(value).strip().replace(',', '.')))
    except (ArithmeticError, ValueError):
        return 1
    return quantity if quantity > 0 else 1


# Stores

def list_stores(db: Session) -> list[Store]:
    return db.execute(select(Store).order_by(Store.name.asc())).scalars().all()


def get_store(db: Session, store_id: int) -> Store:
    store = db.get(Store, store_id)
    if store is None:
        raise ValueError('Store not found')
    return store


def create_store(db: Session, fields: dict) -> Store:
    store = Store()
    _apply_fields(store, fields, STORE_FIELDS)
    db.add(store)
    db.flush()
    return store


def update_store(db: Session, store_id: int, fields: dict) -> Store:
    store = get_store(db, store_id)
    _apply_fields(store, fields, STORE_FIELDS)
    db.flush()
    return store


# Distributors

def list_distributors(db: Session) -> list[Distributor]:
    return db.execute(select(Distributor).order_by(Distributor.name.asc())).scalars().all()


def get_distributor(db: Session, distributor_id: int) -> Distributor:
    distributor = db.get(Distributor, distributor_id)
    if distributor is None:
        raise ValueError('Distributor not found')
    return distributor


def create_distributor(db: Session, fields: dict) -> Distributor:
    distributor = Distributor()
    _apply_fields(distributor, fields, DISTRIBUTOR_FIELDS)
    db.add(distributor)
    db.flush()
    return distributor


def update_distributor(db: Session, distributor_id: int, fields: dict) -> Distributor:
    distributor = get_distributor(db, distributor_id)
    _apply_fields(distributor, fields, DISTRIBUTOR_FIELDS)
    db.flush()
    return distributor


@dataclass(frozen=True)
class DistributorDeletion:
    distributor_id: int
    order_items: int
    orders: int
    products: int
    users: int


def delete_distributor(db: Session, distributor_id: int) -> DistributorDeletion:
    """Delete a distributor with its catalog, its orders and the order lines placed against it.

    All statements run in the caller's transaction: the router commits only
    after every step succeeded, and a failure rolls all of them back.
    """
    get_distributor(db, distributor_id)
    product_ids = select(Product.id).where(Product.distributor_id == distributor_id)
    order_ids = select(Order.id).where(Order.distributor_id == distributor_id)

    items_deleted = db.execute(
        delete(OrderItem)
        .where(or_(OrderItem.product_id.in_(product_ids), OrderItem.order_id.in_(order_ids)))
        .execution_options(synchronize_session=False)
    ).rowcount
    # Orders reference the distributor row, so they cannot outlive it.
    orders_deleted = db.execute(
        delete(Order).where(Order.distributor_id == distributor_id).execution_options(synchronize_session=False)
    ).rowcount
    products_deleted = db.execute(
        delete(Product).where(Product.distributor_id == distributor_id).execution_options(synchronize_session=False)
    ).rowcount
    # Distributor logins are unlinked and deactivated.
    users_detached = db.execute(
        update(User)
        .where(User.distributor_id == distributor_id)
        .values(distributor_id=None, active=False)
        .execution_options(synchronize_session=False)
    ).rowcount
    db.execute(delete(Distributor).where(Distributor.id == distributor_id).execution_options(synchronize_session=False))
    db.flush()
    db.expire_all()

    logger.info(
        'Deleted distributor %s: %d products, %d order items, %d orders',
        distributor_id,
        products_deleted,
        items_deleted,
        orders_deleted,
    )
    return DistributorDeletion(
        distributor_id=distributor_id,
        order_items=items_deleted,
        orders=orders_deleted,
        products=products_deleted,
        users=users_detached,
    )


# Products

def list_products(db: Session, *, distributor_id: int | None = None) -> list[Product]:
    query = select(Product).order_by(Product.name.asc())
    if distributor_id is not None:
        query = query.where(Product.distributor_id == distributor_id)
    return db.execute(query).scalars().all()


def get_product(db: Session, product_id: int) -> Product:
    product = db.get(Product, product_id)
    if product is None:
        raise ValueError('Product not found')
    return product


def create_product(db: Session, fields: dict) -> Product:
    get_distributor(db, fields['distributor_id'])
    product = Product(
        distributor_id=fields['distributor_id'],
        item_code=str(fields['item_code']).strip(),
        supplier_code=str(fields.get('supplier_code') or '').strip(),
        name=str(fields['name']).strip(),
        unit_price=Decimal(normalize_decimal(fields.get('unit_price'))),
        box_price=_optional_decimal(fields.get('box_price')),
        box_quantity=_box_quantity(fields.get('box_quantity', 1)),
        unit=str(fields.get('unit') or 'un').strip(),
        is_special_offer=bool(fields.get('is_special_offer', False)),
        expiration_date=fields.get('expiration_date'),
    )
    for key in ('bar_code', 'description', 'group_name', 'image_url'):
        value = fields.get(key)
        if value is not None:
            setattr(product, key, str(value).strip() or None)
    db.add(product)
    db.flush()
    return product


def _optional_decimal(value) -> Decimal | None:
    normalized = normalize_optional_decimal(value)
    return Decimal(normalized) if normalized is not None else None


def set_unit_price(product: Product, value) -> None:
    new_price = Decimal(normalize_decimal(value))
    if product.unit_price is not None and to_cents(Decimal(product.unit_price)) != new_price:
        product.previous_unit_price = product.unit_price
    product.unit_price = new_price


def update_product(db: Session, product_id: int, fields: dict) -> Product:
    product = get_product(db, product_id)
    if fields.get('distributor_id') is not None and fields['distributor_id'] != product.distributor_id:
        get_distributor(db, fields['distributor_id'])
        product.distributor_id = fields['distributor_id']
    _apply_fields(product, fields, PRODUCT_TEXT_FIELDS, NULLABLE_PRODUCT_FIELDS)
    if fields.get('unit_price') is not None:
        set_unit_price(product, fields['unit_price'])
    if 'box_price' in fields:
        new_box_price = _optional_decimal(fields['box_price'])
        if product.box_price is not None and new_box_price != to_cents(Decimal(product.box_price)):
            product.previous_box_price = product.box_price
        product.box_price = new_box_price
    if fields.get('box_quantity') is not None:
        product.box_quantity = _box_quantity(fields['box_quantity'])
    if fields.get('is_special_offer') is not None:
        product.is_special_offer = bool(fields['is_special_offer'])
    if 'expiration_date' in fields:
        product.expiration_date = fields['expiration_date']
    product.updated_at = _now()
    db.flush()
    return product


def effective_box_price(product: Product) -> Decimal:
    if product.box_price is not None:
        return Decimal(product.box_price)
    return Decimal(product.unit_price) * Decimal(product.box_quantity or 1)


def compare_prices(db: Session, product_id: int) -> list[dict]:
    """Rank the product against offers of the same item from other distributors.

    Offers match on bar code when the product has one, otherwise on the
    case-insensitive name. Ranking uses the box price (or unit price times
    box quantity when no box price is listed).
    """
    product = get_product(db, product_id)
    matches = [Product.bar_code == product.bar_code] if product.bar_code else []
    matches.append(func.lower(Product.name) == product.name.lower())
    similar = db.execute(
        select(Product, Distributor.name)
        .join(Distributor, Distributor.id == Product.distributor_id)
        .where(
            Product.id != product.id,
            Product.distributor_id != product.distributor_id,
            or_(*matches),
        )
    ).all()
    own_distributor = db.execute(
        select(Distributor.name).where(Distributor.id == product.distributor_id)
    ).scalar_one_or_none()

    offers = [(product, own_distributor)] + [(row, name) for row, name in similar]
    offers.sort(key=lambda offer: effective_box_price(offer[0]))
    lowest = effective_box_price(offers[0][0])

    ranked = []
    for offer, distributor_name in offers:
        box_price = effective_box_price(offer)
        if lowest > 0:
            diff = ((box_price - lowest) / lowest * Decimal('100')).quantize(Decimal('0.1'))
        else:
            diff = Decimal('0.0')
        ranked.append(
            {
                'product': offer,
                'distributor_name': distributor_name or 'Unknown',
                'box_price': to_cents(box_price),
                'price_diff_percent': diff,
            }
        )
    return ranked
