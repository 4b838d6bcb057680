"""Pydantic schemas for orders.

This module exposes the request/validation schemas used by the orders API
and the read DTOs that decide which order fields leave the service. The
delivery code is only rendered when the domain object still carries it,
which the service allows only for the owner of a shipped order.
"""

import re
import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from .domain import Order, OrderStatus


SKU_RE = re.compile(r"^[A-Z0-9_-]{3,32}$")
CURRENCIES = {"EUR", "USD", "GBP"}


class OrderItemIn(BaseModel):
    """Input schema for a single order line item.

    Attributes:
        sku: Product SKU. Will be normalized to uppercase and validated
            against a regex (3-32 chars, uppercase letters, digits, '_' and '-').
        quantity: Positive integer indicating units requested.
    """

    sku: str = Field(min_length=3, max_length=32)
    quantity: int = Field(gt=0)

    @field_validator("sku")
    @classmethod
    def validate_sku(cls, v: str) -> str:
        """Validate and normalize SKU to uppercase.

        Raises:
            ValueError: When the SKU does not match the expected pattern.
        """
        v2 = v.upper()
        if not SKU_RE.match(v2):
            raise ValueError("Invalid SKU format")
        return v2


class ShippingInfoIn(BaseModel):
    address: str = Field(min_length=1)
    city: str = Field(min_length=1)
    phone: str = Field(min_length=1)
    # Replaced by the principal's name when the identity provider has one.
    name: Optional[str] = None


class PaymentInfoIn(BaseModel):
    """Opaque payment metadata; recorded, never validated against a provider."""

    id: Optional[str] = None
    status: str = Field(min_length=1)
    method: str = Field(min_length=1)


class CreateOrderDTO(BaseModel):
    """Schema for creating an order.

    Attributes:
        items: List of `OrderItemIn` items.
        shipping_info: Delivery address and contact.
        payment_info: Payment metadata.
        amount_cents: Optional expected total in integer cents; when given it
            must match the catalog total.
        currency: 3-letter ISO currency code. Normalized to uppercase and
            validated against a small supported set.
    """

    items: list[OrderItemIn] = Field(min_length=1)
    shipping_info: ShippingInfoIn
    payment_info: PaymentInfoIn
    amount_cents: Optional[int] = Field(default=None, gt=0)
    currency: str = Field(default="EUR", min_length=3, max_length=3)

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        v2 = v.upper()
        if v2 not in CURRENCIES:
            raise ValueError("Unsupported currency")
        return v2


class UpdateStatusDTO(BaseModel):
    status: OrderStatus


class VerifyDeliveryDTO(BaseModel):
    order_id: uuid.UUID
    code: str = Field(min_length=1, max_length=32)


class LineItemOut(BaseModel):
    sku: str
    quantity: int
    unit_price_cents: int
    name: str
    image: str


class HistoryEntryOut(BaseModel):
    status: OrderStatus
    at: datetime


class OrderReadDTO(BaseModel):
    id: uuid.UUID
    owner_id: str
    status: OrderStatus
    reservation: str
    amount_cents: int
    currency: str
    items: list[LineItemOut]
    shipping_info: dict
    payment_info: dict
    history: list[HistoryEntryOut]
    created_at: Optional[datetime] = None
    delivery_code: Optional[str] = None

    @classmethod
    def from_domain(cls, order: Order) -> "OrderReadDTO":
        return cls(
            id=order.id,
            owner_id=order.owner_id,
            status=order.status,
            reservation=order.reservation.value,
            amount_cents=order.total_cents,
            currency=order.currency,
            items=[
                LineItemOut(
                    sku=it.sku,
                    quantity=it.quantity,
                    unit_price_cents=it.unit_price_cents,
                    name=it.name,
                    image=it.image,
                )
                for it in order.items
            ],
            shipping_info=order.shipping_info,
            payment_info=order.payment_info,
            history=[HistoryEntryOut(status=h.status, at=h.at) for h in order.history],
            created_at=order.created_at,
            delivery_code=order.delivery_code,
        )

    def to_json(self) -> dict:
        return self.model_dump(mode="json", exclude_none=True)
