from fastapi import HTTPException, Request

from tripwise.core.errors import TripwiseError
from tripwise.services.pricing_scheduler import PricingScheduler
from tripwise.services.pricing_service import PricingService
from tripwise.services.trip_store import TripStore


def get_store(request: Request) -> TripStore:
    return request.app.state.trip_store


def get_pricing_service(request: Request) -> PricingService:
    return request.app.state.pricing_service


def get_scheduler(request: Request) -> PricingScheduler:
    return request.app.state.pricing_scheduler


def http_error(exc: TripwiseError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.message or exc.__class__.__name__)
