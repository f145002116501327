# checkout/domain/schemas.py
from pydantic import BaseModel, Field, ConfigDict
from typing import Dict, List
from decimal import Decimal
from datetime import datetime

from checkout.domain.states import PaymentMethod


class ItemIn(BaseModel):
    """Product added to a cart."""

    product_id: str = Field(..., min_length=1)
    quantity: int = Field(..., ge=1, le=100)
    size: str | None = None
    color: str | None = None
    variants: Dict[str, str] = Field(default_factory=dict)

    def variant(self) -> Dict[str, str]:
        attrs = dict(self.variants)
        if self.size:
            attrs["size"] = self.size
        if self.color:
            attrs["color"] = self.color
        return attrs


class QuantityIn(BaseModel):
    quantity: int
    variants: Dict[str, str] | None = None


class CartItemOut(BaseModel):
    product_id: str
    name: str
    sku: str
    unit_price: Decimal
    quantity: int
    variants: Dict[str, str]
    added_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TotalsOut(BaseModel):
    total_items: int
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    total: Decimal

    model_config = ConfigDict(from_attributes=True)


class CartOut(BaseModel):
    cart_id: int
    customer_id: str
    items: List[CartItemOut]
    totals: TotalsOut
    last_activity: datetime


class StockShortfall(BaseModel):
    item_index: int
    product_id: str
    requested: int
    available: int


class AddressIn(BaseModel):
    street: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    pincode: str = Field(..., pattern=r"^\d{6}$")
    country: str = "India"
    phone: str = Field(..., pattern=r"^\d{10}$")


class CheckoutIn(BaseModel):
    customer_id: str = Field(..., min_length=1)
    shipping_address: AddressIn
    billing_address: AddressIn | None = None
    payment_method: PaymentMethod


class OrderItemOut(BaseModel):
    product_id: str
    name: str
    sku: str
    unit_price: Decimal
    quantity: int
    variants: Dict[str, str]
    line_total: Decimal

    model_config = ConfigDict(from_attributes=True)


class StatusHistoryOut(BaseModel):
    status: str
    note: str | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class OrderOut(BaseModel):
    id: str
    order_number: str
    customer_id: str
    status: str
    payment_status: str
    payment_method: str
    items: List[OrderItemOut]
    shipping_address: Dict[str, str]
    billing_address: Dict[str, str]
    total_items: int
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    total: Decimal
    cancellation_reason: str | None = None
    history: List[StatusHistoryOut] = []
    created_at: datetime
    paid_at: datetime | None = None
    cancelled_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class CancelIn(BaseModel):
    reason: str = Field(..., min_length=3, max_length=500)


class PaymentOut(BaseModel):
    id: str
    payment_id: str
    order_id: str
    amount: Decimal
    currency: str
    method: str
    status: str
    correlation_id: str | None = None
    refund_id: str | None = None

    model_config = ConfigDict(from_attributes=True)


class PaymentAttemptOut(BaseModel):
    id: int
    kind: str
    status: str
    correlation_id: str | None = None
    amount: Decimal | None = None
    detail: str | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PaymentResult(BaseModel):
    """Outcome of a verification, `retryable` separates 'try again' from 'contact support'."""

    payment: PaymentOut
    order_status: str
    retryable: bool
    message: str


class InitiateIn(BaseModel):
    method: PaymentMethod | None = None


class GatewayResponseIn(BaseModel):
    correlation_id: str
    status: str = Field(..., pattern=r"^(success|failure)$")
    amount: Decimal


class RefundIn(BaseModel):
    reason: str = Field("customer request", min_length=3, max_length=500)


class InventoryIn(BaseModel):
    product_id: str = Field(..., min_length=1)
    sku: str = Field(..., pattern=r"^[A-Z0-9-]+$")
    quantity_available: int = Field(0, ge=0)
    reorder_level: int = Field(10, ge=0)
    max_stock_level: int = Field(1000, ge=0)


class AdjustIn(BaseModel):
    delta: int
    reason: str = Field(..., min_length=3, max_length=500)


class HoldIn(BaseModel):
    quantity: int = Field(..., ge=1)


class AvailabilityOut(BaseModel):
    product_id: str
    sku: str
    quantity_available: int
    quantity_reserved: int
    quantity_locked: int
    available_for_sale: int
    total_stock: int
    reorder_level: int
    max_stock_level: int
    is_low_stock: bool
    is_out_of_stock: bool

    model_config = ConfigDict(from_attributes=True)


class InventoryStats(BaseModel):
    total_records: int
    low_stock: int
    out_of_stock: int
    units_available: int
    units_reserved: int
    units_locked: int


class FindingOut(BaseModel):
    id: int
    kind: str
    product_id: str | None = None
    order_id: str | None = None
    expected: int | None = None
    actual: int | None = None
    detail: str
    created_at: datetime
    resolved_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)
