from __future__ import annotations

from datetime import datetime

from ordering_portal.models import Distributor, Order, OrderItem, Product, Store, User
from ordering_portal.services.normalization_service import format_decimal
from ordering_portal.services.reconciliation_service import summarize_items


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _enum(value) -> str | None:
    if value is None:
        return None
    return value.value if hasattr(value, 'value') else str(value)


def store_to_dict(store: Store | None) -> dict | None:
    if store is None:
        return None
    return {
        'id': store.id,
        'name': store.name,
        'code': store.code,
        'address': store.address,
        'city': store.city,
        'state': store.state,
        'phone': store.phone,
        'active': store.active,
    }


def distributor_to_dict(distributor: Distributor | None) -> dict | None:
    if distributor is None:
        return None
    return {
        'id': distributor.id,
        'name': distributor.name,
        'code': distributor.code,
        'contact': distributor.contact,
        'phone': distributor.phone,
        'email': distributor.email,
        'active': distributor.active,
    }


def product_to_dict(product: Product | None) -> dict | None:
    if product is None:
        return None
    return {
        'id': product.id,
        'distributorId': product.distributor_id,
        'itemCode': product.item_code,
        'supplierCode': product.supplier_code,
        'barCode': product.bar_code,
        'name': product.name,
        'description': product.description,
        'group': product.group_name,
        'unitPrice': format_decimal(product.unit_price),
        'previousUnitPrice': format_decimal(product.previous_unit_price),
        'boxPrice': format_decimal(product.box_price),
        'previousBoxPrice': format_decimal(product.previous_box_price),
        'boxQuantity': product.box_quantity,
        'unit': product.unit,
        'imageUrl': product.image_url,
        'isSpecialOffer': product.is_special_offer,
        'expirationDate': _iso(product.expiration_date),
        'createdAt': _iso(product.created_at),
        'updatedAt': _iso(product.updated_at),
    }


def order_item_to_dict(item: OrderItem, *, include_product: bool = True) -> dict:
    data = {
        'id': item.id,
        'orderId': item.order_id,
        'productId': item.product_id,
        'quantity': format_decimal(item.quantity),
        'price': format_decimal(item.price),
        'total': format_decimal(item.total),
        'receivedQuantity': format_decimal(item.received_quantity),
        'missingQuantity': format_decimal(item.missing_quantity),
        'receivingStatus': _enum(item.receiving_status),
        'receivingNotes': item.receiving_notes,
    }
    if include_product:
        data['product'] = product_to_dict(item.product)
    return data


def order_to_dict(order: Order) -> dict:
    return {
        'id': order.id,
        'distributorId': order.distributor_id,
        'storeId': order.store_id,
        'status': _enum(order.status),
        'total': format_decimal(order.total),
        'createdAt': _iso(order.created_at),
        'updatedAt': _iso(order.updated_at),
        'receivedAt': _iso(order.received_at),
        'receivedBy': order.received_by,
        'receivingNotes': order.receiving_notes,
    }


def order_detail_to_dict(order: Order) -> dict:
    """Order with its store, distributor, items (each with product) and reconciliation totals."""
    summary = summarize_items(order.items)
    data = order_to_dict(order)
    data.update(
        {
            'store': store_to_dict(order.store),
            'distributor': distributor_to_dict(order.distributor),
            'items': [order_item_to_dict(item) for item in order.items],
            'reconciliation': {
                'originalSubtotal': format_decimal(summary.original_subtotal),
                'receivedSubtotal': format_decimal(summary.received_subtotal),
                'missingAmount': format_decimal(summary.missing_amount),
            },
        }
    )
    return data


def price_offer_to_dict(offer: dict) -> dict:
    return {
        'product': product_to_dict(offer['product']),
        'distributorName': offer['distributor_name'],
        'boxPrice': format_decimal(offer['box_price']),
        'priceDiffPercent': f"{offer['price_diff_percent']:.1f}",
    }


def user_to_dict(user: User) -> dict:
    return {
        'id': user.id,
        'username': user.username,
        'role': _enum(user.role),
        'storeId': user.store_id,
        'distributorId': user.distributor_id,
        'active': user.active,
    }
