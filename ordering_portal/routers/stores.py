from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from ordering_portal.auth import Principal, get_current_principal, require_main_store
from ordering_portal.db import get_db
from ordering_portal.dependencies import get_client_ip, service_error
from ordering_portal.schemas import StoreIn, StoreUpdate
from ordering_portal.serializers import store_to_dict
from ordering_portal.services.audit_service import log_audit
from ordering_portal.services.catalog_service import create_store, list_stores, update_store

router = APIRouter(prefix='/api/stores', tags=['stores'])


@router.get('')
def stores_index(_: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    return [store_to_dict(store) for store in list_stores(db)]


@router.post('', status_code=status.HTTP_201_CREATED)
def stores_create(
    payload: StoreIn,
    request: Request,
    principal: Principal = Depends(require_main_store),
    db: Session = Depends(get_db),
):
    store = create_store(db, payload.model_dump())
    log_audit(
        db,
        actor_user_id=principal.id,
        action='STORE_CREATE',
        ip=get_client_ip(request),
        metadata={'store_id': store.id, 'name': store.name},
    )
    db.commit()
    return store_to_dict(store)


@router.patch('/{store_id}')
def stores_update(
    store_id: int,
    payload: StoreUpdate,
    request: Request,
    principal: Principal = Depends(require_main_store),
    db: Session = Depends(get_db),
):
    changes = payload.changes()
    try:
        store = update_store(db, store_id, changes)
    except ValueError as exc:
        raise service_error(exc) from exc
    log_audit(
        db,
        actor_user_id=principal.id,
        action='STORE_UPDATE',
        ip=get_client_ip(request),
        metadata={'store_id': store_id, 'fields': sorted(changes)},
    )
    db.commit()
    return store_to_dict(store)
