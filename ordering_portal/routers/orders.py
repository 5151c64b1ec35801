from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from ordering_portal.auth import Principal, Role, assert_order_scope, get_current_principal, order_scope, require_role
from ordering_portal.db import get_db
from ordering_portal.dependencies import get_client_ip, get_status_policy, service_error
from ordering_portal.schemas import CheckoutIn, OrderIn, OrderItemIn, OrderUpdate, ReceivePassIn
from ordering_portal.serializers import order_detail_to_dict, order_item_to_dict
from ordering_portal.services.audit_service import log_audit
from ordering_portal.services.cart_service import build_cart, checkout
from ordering_portal.services.order_service import (
    add_order_item,
    create_order,
    get_order,
    get_order_detail,
    list_order_items,
    list_orders,
    update_order,
)
from ordering_portal.services.reconciliation_service import ItemReceipt, receive_order

router = APIRouter(prefix='/api/orders', tags=['orders'])

supermarket_access = require_role(Role.SUPERMARKET)


def _scoped_order(db: Session, principal: Principal, order_id: int):
    try:
        order = get_order(db, order_id)
    except ValueError as exc:
        raise service_error(exc) from exc
    assert_order_scope(principal, store_id=order.store_id, distributor_id=order.distributor_id)
    return order


@router.get('')
def orders_index(principal: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    orders = list_orders(db, **order_scope(principal))
    return [order_detail_to_dict(order) for order in orders]


@router.get('/share/{order_id}')
def orders_share(order_id: int, db: Session = Depends(get_db)):
    # Public link handed to distributors; anyone with the id can read the order.
    try:
        order = get_order_detail(db, order_id)
    except ValueError as exc:
        raise service_error(exc) from exc
    return order_detail_to_dict(order)


@router.post('', status_code=status.HTTP_201_CREATED)
def orders_create(
    payload: OrderIn,
    request: Request,
    principal: Principal = Depends(supermarket_access),
    db: Session = Depends(get_db),
):
    assert_order_scope(principal, store_id=payload.store_id, distributor_id=payload.distributor_id)
    try:
        order = create_order(
            db,
            store_id=payload.store_id,
            distributor_id=payload.distributor_id,
            total=payload.total,
        )
    except ValueError as exc:
        raise service_error(exc) from exc
    log_audit(db, actor_user_id=principal.id, action='ORDER_CREATE', ip=get_client_ip(request), order_id=order.id)
    db.commit()
    return order_detail_to_dict(get_order_detail(db, order.id))


@router.post('/checkout', status_code=status.HTTP_201_CREATED)
def orders_checkout(
    payload: CheckoutIn,
    request: Request,
    principal: Principal = Depends(supermarket_access),
    db: Session = Depends(get_db),
):
    store_id = payload.store_id if payload.store_id is not None else principal.store_id
    if store_id is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='A store is required to check out')
    scope = order_scope(principal)
    if 'store_id' in scope and scope['store_id'] != store_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)

    cart, rejected = build_cart(
        db,
        [
            {'product_id': entry.product_id, 'quantity': entry.quantity, 'is_box_unit': entry.is_box_unit}
            for entry in payload.items
        ],
    )
    if rejected:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='; '.join(rejected))
    try:
        orders = checkout(db, cart, store_id=store_id)
    except ValueError as exc:
        raise service_error(exc) from exc

    ip = get_client_ip(request)
    for order in orders:
        log_audit(db, actor_user_id=principal.id, action='ORDER_CHECKOUT', ip=ip, order_id=order.id)
    db.commit()
    return [order_detail_to_dict(get_order_detail(db, order.id)) for order in orders]


@router.patch('/{order_id}')
def orders_update(
    order_id: int,
    payload: OrderUpdate,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    status_policy: str = Depends(get_status_policy),
    db: Session = Depends(get_db),
):
    order = _scoped_order(db, principal, order_id)
    previous_status = order.status.value
    changes = payload.changes()
    try:
        order = update_order(
            db,
            order_id,
            changes,
            actor_username=principal.username,
            status_policy=status_policy,
        )
    except ValueError as exc:
        raise service_error(exc) from exc

    if order.status.value != previous_status:
        log_audit(
            db,
            actor_user_id=principal.id,
            action='ORDER_STATUS_CHANGE',
            ip=get_client_ip(request),
            order_id=order.id,
            metadata={'from': previous_status, 'to': order.status.value},
        )
    db.commit()
    return order_detail_to_dict(get_order_detail(db, order.id))


@router.post('/{order_id}/receive')
def orders_receive(
    order_id: int,
    payload: ReceivePassIn,
    request: Request,
    principal: Principal = Depends(supermarket_access),
    db: Session = Depends(get_db),
):
    _scoped_order(db, principal, order_id)
    receipts = [
        ItemReceipt(
            item_id=item.item_id,
            received_quantity=item.received_quantity,
            missing_quantity=item.missing_quantity,
            notes=item.notes,
        )
        for item in payload.items
    ]
    try:
        order = receive_order(
            db,
            order_id=order_id,
            received_by=principal.username,
            receipts=receipts,
            notes=payload.notes,
        )
    except ValueError as exc:
        raise service_error(exc) from exc

    log_audit(
        db,
        actor_user_id=principal.id,
        action='ORDER_RECEIVE',
        ip=get_client_ip(request),
        order_id=order.id,
        metadata={'status': order.status.value, 'items': [receipt.item_id for receipt in receipts]},
    )
    db.commit()
    return order_detail_to_dict(get_order_detail(db, order.id))


@router.get('/{order_id}/items')
def order_items_index(
    order_id: int,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    _scoped_order(db, principal, order_id)
    return [order_item_to_dict(item) for item in list_order_items(db, order_id)]


@router.post('/{order_id}/items', status_code=status.HTTP_201_CREATED)
def order_items_create(
    order_id: int,
    payload: OrderItemIn,
    principal: Principal = Depends(supermarket_access),
    db: Session = Depends(get_db),
):
    _scoped_order(db, principal, order_id)
    try:
        item = add_order_item(
            db,
            order_id,
            product_id=payload.product_id,
            quantity=payload.quantity,
            price=payload.price,
            total=payload.total,
        )
    except ValueError as exc:
        raise service_error(exc) from exc
    db.commit()
    return order_item_to_dict(item)
