"""Shipping quote schemas."""

from pydantic import Field

from src.schemas.common import CamelModel


class CartItemWeight(CamelModel):
    weight: float | None = None
    quantity: int | None = None


class ShippingQuoteRequest(CamelModel):
    """Quote by explicit weight, or by cart items when weight is omitted."""

    pincode: str
    weight_kg: float | None = Field(default=None, description="Parcel weight in kg")
    items: list[CartItemWeight] | None = Field(default=None, description="Cart items to weigh")
    subtotal: float | None = Field(default=None, ge=0, description="Cart subtotal for the free-shipping rule")


class DestinationResponse(CamelModel):
    district: str
    state: str
    office_type: str
    delivery_status: str


class ShippingQuoteResponse(CamelModel):
    """Computed shipping for a destination."""

    cost: float = Field(description="Payable shipping after the free-shipping rule")
    rate_cost: float = Field(description="Zone rate before the free-shipping rule")
    delivery_estimate: str
    zone: str
    is_local: bool
    is_ncr: bool
    is_metro: bool
    free_shipping_applied: bool
    total_weight_kg: float
    destination: DestinationResponse
