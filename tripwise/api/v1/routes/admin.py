from fastapi import APIRouter, Depends

from tripwise.api.deps import get_pricing_service, get_scheduler, http_error
from tripwise.core.errors import TripwiseError
from tripwise.schemas.pricing import (
    BatchResultOut,
    PricingConfigIn,
    PricingStatsOut,
    PricingUpdateOut,
    RevertOut,
    SchedulerHealthOut,
    SchedulerStatusOut,
)
from tripwise.services.pricing_scheduler import PricingScheduler
from tripwise.services.pricing_service import PricingService

router = APIRouter(tags=["admin"])


@router.get("/admin/pricing/config")
def get_config(service: PricingService = Depends(get_pricing_service)):
    return service.get_pricing_config().to_dict()


@router.put("/admin/pricing/config")
def replace_config(body: PricingConfigIn, service: PricingService = Depends(get_pricing_service)):
    """Replace the whole config: fields left out fall back to defaults."""
    try:
        cfg = service.replace_pricing_config(body.overrides())
    except TripwiseError as e:
        raise http_error(e)
    return cfg.to_dict()


@router.patch("/admin/pricing/config")
def update_config(body: PricingConfigIn, service: PricingService = Depends(get_pricing_service)):
    try:
        cfg = service.update_pricing_config(body.overrides())
    except TripwiseError as e:
        raise http_error(e)
    return cfg.to_dict()


@router.post("/admin/pricing/run", response_model=BatchResultOut)
def run_pricing_batch(scheduler: PricingScheduler = Depends(get_scheduler)):
    try:
        result = scheduler.run_manual_update()
    except TripwiseError as e:
        raise http_error(e)
    return BatchResultOut(
        totalTripsProcessed=result.total_trips_processed,
        pricesUpdated=result.prices_updated,
        failedTripIds=result.failed_trip_ids,
        updates=[
            PricingUpdateOut(tripId=u.trip_id, oldPrice=u.old_price, newPrice=u.new_price,
                             adjustment=u.adjustment, reason=u.reason, timestamp=u.timestamp)
            for u in result.updates
        ],
    )


@router.get("/admin/pricing/status", response_model=SchedulerStatusOut)
def scheduler_status(scheduler: PricingScheduler = Depends(get_scheduler)):
    s = scheduler.get_status()
    return SchedulerStatusOut(isRunning=s.is_running, isStarted=s.is_started,
                              nextRunDescription=s.next_run_description, nextRunAt=s.next_run_at,
                              configuration=s.configuration)


@router.get("/admin/pricing/health", response_model=SchedulerHealthOut)
def scheduler_health(scheduler: PricingScheduler = Depends(get_scheduler)):
    try:
        h = scheduler.health_check()
    except TripwiseError as e:
        raise http_error(e)
    return SchedulerHealthOut(status=h.status, lastUpdate=h.last_update,
                              activeTripCount=h.active_trip_count, avgAdjustment=h.avg_adjustment)


@router.get("/admin/pricing/stats", response_model=PricingStatsOut)
def pricing_stats(service: PricingService = Depends(get_pricing_service)):
    try:
        s = service.get_pricing_stats()
    except TripwiseError as e:
        raise http_error(e)
    return PricingStatsOut(
        totalActiveTrips=s.total_active_trips,
        averagePriceAdjustment=s.average_price_adjustment,
        tripsWithIncreasedPrices=s.trips_with_increased_prices,
        tripsWithDecreasedPrices=s.trips_with_decreased_prices,
        lastUpdateTime=s.last_update_time,
    )


@router.post("/admin/pricing/trips/{trip_id}/revert", response_model=RevertOut)
def revert_trip_price(trip_id: str, service: PricingService = Depends(get_pricing_service)):
    try:
        trip = service.revert_trip_price(trip_id)
    except TripwiseError as e:
        raise http_error(e)
    return RevertOut(tripId=trip.id, price=trip.price)
