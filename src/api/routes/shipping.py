"""Shipping quote routes."""

from fastapi import APIRouter

from src.api.middleware.error_handler import ValidationError
from src.core.config import get_settings
from src.schemas.shipping import DestinationResponse, ShippingQuoteRequest, ShippingQuoteResponse
from src.services.shipping_rates import (
    apply_free_shipping,
    calculate_total_weight,
    get_shipping_rate_engine,
)

router = APIRouter(prefix="/shipping", tags=["shipping"])


@router.post(
    "/quote",
    response_model=ShippingQuoteResponse,
    summary="Quote shipping",
    description="India Post shipping cost and delivery estimate for a pincode and parcel weight.",
)
async def quote_shipping(data: ShippingQuoteRequest) -> ShippingQuoteResponse:
    """Quote shipping by explicit weight or by cart items.

    Raises:
        ValidationError: 400 if the pincode or weight is invalid, or neither weight nor items is given.
        NotFoundError: 404 if the pincode is not in the directory.
    """
    if data.weight_kg is not None:
        weight = data.weight_kg
    elif data.items:
        weight = calculate_total_weight(item.model_dump() for item in data.items)
    else:
        raise ValidationError(
            "Provide weightKg or items to quote shipping",
            details=[{"loc": ["weightKg"], "msg": "Field required", "type": "missing"}],
        )

    quote = get_shipping_rate_engine().compute_shipping(data.pincode, weight)

    cost = quote.cost
    if data.subtotal is not None:
        cost = apply_free_shipping(quote.cost, data.subtotal, get_settings().free_shipping_threshold)

    destination = quote.destination
    return ShippingQuoteResponse(
        cost=cost,
        rate_cost=quote.cost,
        delivery_estimate=quote.delivery_estimate,
        zone=quote.zone.value,
        is_local=quote.is_local,
        is_ncr=quote.is_ncr,
        is_metro=quote.is_metro,
        free_shipping_applied=cost == 0 and quote.cost > 0,
        total_weight_kg=round(weight, 3),
        destination=DestinationResponse(
            district=destination.district,
            state=destination.state,
            office_type=destination.office_type,
            delivery_status=destination.delivery_status,
        ),
    )
