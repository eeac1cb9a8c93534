"""Pydantic schemas for orders.

This module exposes the request/validation schemas used by the orders API
and the read models used to render responses. Field names are snake_case
in Python and camelCase on the wire.
"""

from dataclasses import asdict
from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer, field_validator
from pydantic.alias_generators import to_camel

from .domain import Order, OrderPage, OrderStatus

# Monetary values stay Decimal in Python and render as JSON numbers.
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def dump(self) -> dict:
        """Return a JSON-ready dict using wire (camelCase) names."""
        return self.model_dump(mode="json", by_alias=True)


def _status(v: Any) -> Any:
    return v.upper() if isinstance(v, str) else v


class OrderItemIn(CamelModel):
    """Input schema for a single order line.

    Attributes:
        product_id: Catalog product reference. Numeric ids are accepted and
            normalized to strings.
        quantity: Positive integer indicating units requested.
    """

    product_id: str = Field(min_length=1, max_length=64)
    quantity: int = Field(gt=0)

    @field_validator("product_id", mode="before")
    @classmethod
    def normalize_product_id(cls, v: Any) -> Any:
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v.strip() if isinstance(v, str) else v


class CreateOrderDTO(CamelModel):
    """Schema for creating an order: a non-empty list of ``OrderItemIn``."""

    items: list[OrderItemIn] = Field(min_length=1)


class OrderPaginationDTO(CamelModel):
    """Query parameters for listing orders."""

    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1)
    status: Optional[OrderStatus] = None

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, v: Any) -> Any:
        return _status(v) or None


class ChangeStatusDTO(CamelModel):
    status: OrderStatus

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, v: Any) -> Any:
        return _status(v)


class PaidOrderDTO(CamelModel):
    """Payload of the ``payment.succeeded`` notification.

    Attributes:
        order_id: Order being settled.
        stripe_payment_id: External charge reference from the provider.
        receipt_url: Link to the provider receipt.
    """

    order_id: UUID
    stripe_payment_id: str = Field(min_length=1, max_length=255)
    receipt_url: str = Field(min_length=1, max_length=2048)


class OrderItemReadDTO(CamelModel):
    product_id: str
    quantity: int
    price: Money
    name: Optional[str] = None


class OrderReadDTO(CamelModel):
    id: UUID
    status: OrderStatus
    total_amount: Money
    total_items: int
    paid: bool
    paid_at: Optional[datetime] = None
    stripe_charge_id: Optional[str] = None
    receipt_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    items: list[OrderItemReadDTO] = []

    @classmethod
    def from_domain(cls, order: Order) -> "OrderReadDTO":
        return cls.model_validate(asdict(order))


class PageMetaDTO(CamelModel):
    page: int
    total: int
    per_page: int
    total_pages: int


class OrdersPageDTO(CamelModel):
    data: list[OrderReadDTO]
    meta: PageMetaDTO

    @classmethod
    def from_domain(cls, page: OrderPage) -> "OrdersPageDTO":
        return cls(
            data=[OrderReadDTO.from_domain(o) for o in page.data],
            meta=PageMetaDTO(
                page=page.page,
                total=page.total,
                per_page=page.per_page,
                total_pages=page.total_pages,
            ),
        )
