from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session

from ordering_portal.auth import Principal, Role, get_current_principal, require_role
from ordering_portal.db import get_db
from ordering_portal.dependencies import get_client_ip, service_error
from ordering_portal.schemas import ProductImportIn, ProductIn, ProductUpdate
from ordering_portal.serializers import price_offer_to_dict, product_to_dict
from ordering_portal.services.audit_service import log_audit
from ordering_portal.services.catalog_service import (
    compare_prices,
    create_product,
    get_product,
    list_products,
    update_product,
)
from ordering_portal.services.image_search_service import (
    ImageSearchError,
    backfill_missing_images,
    search_product_images,
)
from ordering_portal.services.import_service import import_products

router = APIRouter(prefix='/api/products', tags=['products'])

supermarket_access = require_role(Role.SUPERMARKET)


@router.get('')
def products_index(
    distributor_id: int | None = Query(default=None, alias='distributorId'),
    _: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    return [product_to_dict(product) for product in list_products(db, distributor_id=distributor_id)]


@router.post('', status_code=status.HTTP_201_CREATED)
def products_create(
    payload: ProductIn,
    request: Request,
    principal: Principal = Depends(supermarket_access),
    db: Session = Depends(get_db),
):
    try:
        product = create_product(db, payload.model_dump())
    except ValueError as exc:
        raise service_error(exc) from exc
    log_audit(
        db,
        actor_user_id=principal.id,
        action='PRODUCT_CREATE',
        ip=get_client_ip(request),
        metadata={'product_id': product.id, 'distributor_id': product.distributor_id},
    )
    db.commit()
    return product_to_dict(product)


@router.post('/import', status_code=status.HTTP_201_CREATED)
def products_import(
    payload: ProductImportIn,
    request: Request,
    principal: Principal = Depends(supermarket_access),
    db: Session = Depends(get_db),
):
    result = import_products(db, payload.rows, default_distributor_id=payload.distributor_id)
    log_audit(
        db,
        actor_user_id=principal.id,
        action='PRODUCT_IMPORT',
        ip=get_client_ip(request),
        metadata={'imported': result.imported, 'skipped': result.skipped},
    )
    db.commit()
    return {'imported': result.imported, 'skipped': result.skipped, 'errors': result.errors}


@router.post('/backfill-images')
def products_backfill_images(
    request: Request,
    distributor_id: int | None = Query(default=None, alias='distributorId'),
    limit: int = Query(default=50, ge=1, le=500),
    principal: Principal = Depends(supermarket_access),
    db: Session = Depends(get_db),
):
    counts = backfill_missing_images(db, distributor_id=distributor_id, limit=limit)
    log_audit(
        db,
        actor_user_id=principal.id,
        action='PRODUCT_IMAGE_BACKFILL',
        ip=get_client_ip(request),
        metadata=counts,
    )
    db.commit()
    return counts


@router.patch('/{product_id}')
def products_update(
    product_id: int,
    payload: ProductUpdate,
    _: Principal = Depends(supermarket_access),
    db: Session = Depends(get_db),
):
    try:
        product = update_product(db, product_id, payload.changes())
    except ValueError as exc:
        raise service_error(exc) from exc
    db.commit()
    return product_to_dict(product)


@router.get('/{product_id}/price-comparison')
def products_price_comparison(
    product_id: int,
    _: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    try:
        offers = compare_prices(db, product_id)
    except ValueError as exc:
        raise service_error(exc) from exc
    return [price_offer_to_dict(offer) for offer in offers]


@router.get('/{product_id}/search-images')
def products_search_images(
    product_id: int,
    limit: int = Query(default=6, ge=1, le=10),
    _: Principal = Depends(supermarket_access),
    db: Session = Depends(get_db),
):
    try:
        product = get_product(db, product_id)
    except ValueError as exc:
        raise service_error(exc) from exc
    try:
        images = search_product_images(product.name, limit=limit)
    except ImageSearchError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return {'productId': product.id, 'images': images}
