from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from ordering_portal.auth import Principal, get_current_principal, require_main_store
from ordering_portal.db import get_db
from ordering_portal.dependencies import get_client_ip, service_error
from ordering_portal.schemas import DistributorIn, DistributorUpdate
from ordering_portal.serializers import distributor_to_dict
from ordering_portal.services.audit_service import log_audit
from ordering_portal.services.catalog_service import (
    create_distributor,
    delete_distributor,
    list_distributors,
    update_distributor,
)

router = APIRouter(prefix='/api/distributors', tags=['distributors'])


@router.get('')
def distributors_index(_: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    return [distributor_to_dict(distributor) for distributor in list_distributors(db)]


@router.post('', status_code=status.HTTP_201_CREATED)
def distributors_create(
    payload: DistributorIn,
    request: Request,
    principal: Principal = Depends(require_main_store),
    db: Session = Depends(get_db),
):
    distributor = create_distributor(db, payload.model_dump())
    log_audit(
        db,
        actor_user_id=principal.id,
        action='DISTRIBUTOR_CREATE',
        ip=get_client_ip(request),
        metadata={'distributor_id': distributor.id, 'name': distributor.name},
    )
    db.commit()
    return distributor_to_dict(distributor)


@router.patch('/{distributor_id}')
def distributors_update(
    distributor_id: int,
    payload: DistributorUpdate,
    request: Request,
    principal: Principal = Depends(require_main_store),
    db: Session = Depends(get_db),
):
    changes = payload.changes()
    try:
        distributor = update_distributor(db, distributor_id, changes)
    except ValueError as exc:
        raise service_error(exc) from exc
    log_audit(
        db,
        actor_user_id=principal.id,
        action='DISTRIBUTOR_UPDATE',
        ip=get_client_ip(request),
        metadata={'distributor_id': distributor_id, 'fields': sorted(changes)},
    )
    db.commit()
    return distributor_to_dict(distributor)


@router.delete('/{distributor_id}')
def distributors_delete(
    distributor_id: int,
    request: Request,
    principal: Principal = Depends(require_main_store),
    db: Session = Depends(get_db),
):
    try:
        deletion = delete_distributor(db, distributor_id)
    except ValueError as exc:
        raise service_error(exc) from exc
    counts = {
        'products': deletion.products,
        'orderItems': deletion.order_items,
        'orders': deletion.orders,
        'users': deletion.users,
    }
    log_audit(
        db,
        actor_user_id=principal.id,
        action='DISTRIBUTOR_DELETE',
        ip=get_client_ip(request),
        metadata={'distributor_id': distributor_id, **counts},
    )
    db.commit()
    return {'id': distributor_id, 'deleted': counts}
