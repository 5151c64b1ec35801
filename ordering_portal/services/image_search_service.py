from __future__ import annotations

import json
import logging
import re
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

from sqlalchemy import select
from sqlalchemy.orm import Session

from ordering_portal.config import settings
from ordering_portal.models import Product


logger = logging.getLogger(__name__)

UNIT_PATTERN = re.compile(r'\b(kg|g|ml|l|un|cx)\b', re.IGNORECASE)
DIGIT_PATTERN = re.compile(r'\d+')


class ImageSearchError(RuntimeError):
    pass


def clean_product_name(name: str) -> str:
    cleaned = UNIT_PATTERN.sub('', name or '')
    cleaned = DIGIT_PATTERN.sub('', cleaned)
    return re.sub(r'\s+', ' ', cleaned).strip()


def _search_get(params: dict) -> dict:
    if not settings.image_search_api_key or not settings.image_search_engine_id:
        raise ImageSearchError('IMAGE_SEARCH_API_KEY and IMAGE_SEARCH_ENGINE_ID are required')

    query = urlencode(
        {
            'key': settings.image_search_api_key,
            'cx': settings.image_search_engine_id,
            **params,
        }
    )
    req = Request(url=f'{settings.image_search_base_url}?{query}', method='GET')
    try:
        with urlopen(req, timeout=settings.image_search_timeout_seconds) as response:
            return json.loads(response.read().decode('utf-8'))
    except HTTPError as exc:
        body = exc.read().decode('utf-8', errors='ignore') if exc.fp else ''
        raise ImageSearchError(f'Image search error {exc.code}: {body}') from exc
    except URLError as exc:
        raise ImageSearchError(f'Image search network error: {exc.reason}') from exc


def search_product_images(product_name: str, *, limit: int = 6) -> list[str]:
    cleaned = clean_product_name(product_name)
    if not cleaned:
        return []
    payload = _search_get(
        {
            'q': f'{cleaned} produto embalagem',
            'searchType': 'image',
            'num': max(1, min(limit, 10)),
            'imgType': 'photo',
            'safe': 'active',
        }
    )
    return [item['link'] for item in payload.get('items', []) if item.get('link')]


def find_product_image(product_name: str) -> str | None:
    try:
        links = search_product_images(product_name, limit=1)
    except ImageSearchError as exc:
        logger.warning('Image lookup failed for %r: %s', product_name, exc)
        return None
    return links[0] if links else None


def backfill_missing_images(db: Session, *, distributor_id: int | None = None, limit: int = 50) -> dict:
    query = select(Product).where(Product.image_url.is_(None))
    if distributor_id is not None:
        query = query.where(Product.distributor_id == distributor_id)
    query = query.order_by(Product.id.asc()).limit(limit)
    products = db.execute(query).scalars().all()

    updated = 0
    for product in products:
        link = find_product_image(product.name)
        if link:
            product.image_url = link
            updated += 1
    db.flush()
    return {'checked': len(products), 'updated': updated}
