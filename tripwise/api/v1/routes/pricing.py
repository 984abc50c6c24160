from fastapi import APIRouter, Depends

from tripwise.api.deps import get_pricing_service, http_error
from tripwise.core.errors import TripwiseError
from tripwise.schemas.pricing import BatchQuoteRequest, PriceQuoteOut, PricingFactorsOut, QuoteRequest
from tripwise.services.pricing_service import PricingService

router = APIRouter(tags=["pricing"])


def _overrides(body) -> dict | None:
    return body.config.overrides() if body.config else None


@router.post("/pricing/quote")
def quote(body: QuoteRequest, service: PricingService = Depends(get_pricing_service)):
    """Dynamic price for one trip snapshot; nothing is persisted."""
    try:
        price = service.compute_price(body.trip.to_trip(), _overrides(body))
    except TripwiseError as e:
        raise http_error(e)
    return {"tripId": body.trip.id, "currentPrice": body.trip.price, "price": price}


@router.post("/pricing/explain", response_model=PricingFactorsOut)
def explain(body: QuoteRequest, service: PricingService = Depends(get_pricing_service)):
    try:
        f = service.explain_price(body.trip.to_trip(), _overrides(body))
    except TripwiseError as e:
        raise http_error(e)
    return PricingFactorsOut(
        timeFactor=f.time_factor,
        occupancyFactor=f.occupancy_factor,
        peakHourFactor=f.peak_hour_factor,
        velocityFactor=f.velocity_factor,
        finalPrice=f.final_price,
        priceChange=f.price_change,
    )


@router.post("/pricing/batch-quote", response_model=list[PriceQuoteOut])
def batch_quote(body: BatchQuoteRequest, service: PricingService = Depends(get_pricing_service)):
    try:
        quotes = service.quote_batch([t.to_trip() for t in body.trips], _overrides(body))
    except TripwiseError as e:
        raise http_error(e)
    return [PriceQuoteOut(tripId=q.trip_id, currentPrice=q.current_price, newPrice=q.new_price, adjustment=q.adjustment) for q in quotes]
