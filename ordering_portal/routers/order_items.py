from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from ordering_portal.auth import Principal, Role, assert_order_scope, get_current_principal, require_role
from ordering_portal.db import get_db
from ordering_portal.dependencies import get_client_ip, service_error
from ordering_portal.schemas import OrderItemUpdate, OrderLineEdit
from ordering_portal.serializers import order_item_to_dict
from ordering_portal.services.audit_service import log_audit
from ordering_portal.services.normalization_service import format_decimal
from ordering_portal.services.order_service import edit_order_line, get_order_item, update_order_item

router = APIRouter(prefix='/api/order-items', tags=['order-items'])


def _scoped_item(db: Session, principal: Principal, item_id: int):
    try:
        item = get_order_item(db, item_id)
    except ValueError as exc:
        raise service_error(exc) from exc
    assert_order_scope(principal, store_id=item.order.store_id, distributor_id=item.order.distributor_id)
    return item


@router.patch('/{item_id}')
def order_items_update(
    item_id: int,
    payload: OrderItemUpdate,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    _scoped_item(db, principal, item_id)
    changes = payload.changes()
    changes.pop('receiving_status', None)
    try:
        item = update_order_item(db, item_id, changes)
    except ValueError as exc:
        raise service_error(exc) from exc
    db.commit()
    return order_item_to_dict(item)


@router.patch('/{item_id}/line')
def order_items_edit_line(
    item_id: int,
    payload: OrderLineEdit,
    request: Request,
    principal: Principal = Depends(require_role(Role.SUPERMARKET)),
    db: Session = Depends(get_db),
):
    item = _scoped_item(db, principal, item_id)
    try:
        item = edit_order_line(
            db,
            item_id,
            quantity=payload.quantity,
            price=payload.price,
            update_product_price=payload.update_product_price,
        )
    except ValueError as exc:
        raise service_error(exc) from exc
    log_audit(
        db,
        actor_user_id=principal.id,
        action='ORDER_LINE_EDIT',
        ip=get_client_ip(request),
        order_id=item.order_id,
        metadata={'item_id': item.id, 'product_price_updated': payload.update_product_price and payload.price is not None},
    )
    db.commit()
    data = order_item_to_dict(item)
    data['orderTotal'] = format_decimal(item.order.total)
    return data
