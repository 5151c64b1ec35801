from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# Quantities and prices arrive as numbers or as strings like "12,50".
DecimalInput = str | int | float


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra='ignore')

    def changes(self) -> dict[str, Any]:
        """Fields the client actually sent, keyed by attribute name."""
        return self.model_dump(exclude_unset=True)


# Auth

class LoginIn(CamelModel):
    username: str
    password: str


class SupermarketRegisterIn(CamelModel):
    username: str
    password: str
    store_id: int | None = None


class StoreUserRegisterIn(CamelModel):
    username: str
    password: str
    store_id: int


class DistributorUserRegisterIn(CamelModel):
    username: str
    password: str
    distributor_id: int


# Catalog

class StoreIn(CamelModel):
    name: str = Field(min_length=1)
    code: str = Field(min_length=1)
    address: str
    city: str
    state: str
    phone: str
    active: bool = True


class StoreUpdate(CamelModel):
    name: str | None = Field(default=None, min_length=1)
    code: str | None = Field(default=None, min_length=1)
    address: str | None = None
    city: str | None = None
    state: str | None = None
    phone: str | None = None
    active: bool | None = None


class DistributorIn(CamelModel):
    name: str = Field(min_length=1)
    code: str = Field(min_length=1)
    contact: str
    phone: str
    email: str
    active: bool = True


class DistributorUpdate(CamelModel):
    name: str | None = Field(default=None, min_length=1)
    code: str | None = Field(default=None, min_length=1)
    contact: str | None = None
    phone: str | None = None
    email: str | None = None
    active: bool | None = None


class ProductIn(CamelModel):
    distributor_id: int
    item_code: str = Field(min_length=1)
    supplier_code: str = ''
    bar_code: str | None = None
    name: str = Field(min_length=1)
    description: str | None = None
    group_name: str | None = None
    unit_price: DecimalInput = '0.00'
    box_price: DecimalInput | None = None
    box_quantity: DecimalInput = 1
    unit: str = 'un'
    image_url: str | None = None
    is_special_offer: bool = False
    expiration_date: datetime | None = None


class ProductUpdate(CamelModel):
    distributor_id: int | None = None
    item_code: str | None = Field(default=None, min_length=1)
    supplier_code: str | None = None
    bar_code: str | None = None
    name: str | None = Field(default=None, min_length=1)
    description: str | None = None
    group_name: str | None = None
    unit_price: DecimalInput | None = None
    box_price: DecimalInput | None = None
    box_quantity: DecimalInput | None = None
    unit: str | None = None
    image_url: str | None = None
    is_special_offer: bool | None = None
    expiration_date: datetime | None = None


class ProductImportIn(CamelModel):
    rows: list[dict[str, Any]]
    distributor_id: int | None = None


# Orders

class OrderIn(CamelModel):
    store_id: int
    distributor_id: int
    total: DecimalInput = '0.00'


class OrderUpdate(CamelModel):
    status: str | None = None
    total: DecimalInput | None = None
    received_at: datetime | None = None
    receiving_notes: str | None = None


class OrderItemIn(CamelModel):
    product_id: int
    quantity: DecimalInput
    price: DecimalInput
    total: DecimalInput | None = None


class OrderItemUpdate(CamelModel):
    quantity: DecimalInput | None = None
    price: DecimalInput | None = None
    total: DecimalInput | None = None
    received_quantity: DecimalInput | None = None
    missing_quantity: DecimalInput | None = None
    receiving_notes: str | None = None
    # Derived server side; accepted so older clients can keep sending it.
    receiving_status: str | None = None


class OrderLineEdit(CamelModel):
    quantity: DecimalInput | None = None
    price: DecimalInput | None = None
    update_product_price: bool = True


class ItemReceiptIn(CamelModel):
    item_id: int
    received_quantity: DecimalInput
    missing_quantity: DecimalInput | None = None
    notes: str | None = None


class ReceivePassIn(CamelModel):
    notes: str | None = None
    items: list[ItemReceiptIn] = Field(default_factory=list)


class CartEntryIn(CamelModel):
    product_id: int
    quantity: DecimalInput = 1
    is_box_unit: bool = False


class CheckoutIn(CamelModel):
    store_id: int | None = None
    items: list[CartEntryIn] = Field(min_length=1)
