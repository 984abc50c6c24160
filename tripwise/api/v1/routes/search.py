from fastapi import APIRouter, Depends

from tripwise.api.deps import get_store, http_error
from tripwise.core.config import settings
from tripwise.core.errors import TripwiseError
from tripwise.engine.occupancy import get_occupancy_stats
from tripwise.schemas.search import (
    OccupancyStatsOut,
    RankedTripOut,
    RankOptionsIn,
    RankRequest,
    SearchTripIn,
    TripFiltersIn,
)
from tripwise.services.search_service import RankOptions, rank_trips, rank_trips_for_user
from tripwise.services.trip_store import TripStore

router = APIRouter(tags=["search"])


def _options(o: RankOptionsIn) -> RankOptions:
    return RankOptions(
        use_content_based=o.useContentBased,
        prioritize_occupancy=o.prioritizeOccupancy,
        min_occupancy_threshold=o.minOccupancyThreshold,
        limit=o.limit,
        diversity_factor=o.diversityFactor,
    )


@router.post("/search/rank", response_model=list[RankedTripOut])
def rank(body: RankRequest):
    """Rank a caller-supplied candidate list."""
    try:
        ranked = rank_trips(
            [t.to_trip() for t in body.trips],
            body.preferences.to_preferences(),
            body.filters.to_filters() if body.filters else None,
            _options(body.options),
            tz=settings.TIMEZONE,
        )
    except TripwiseError as e:
        raise http_error(e)
    return [RankedTripOut.from_trip(t) for t in ranked]


@router.post("/search/users/{user_id}/rank", response_model=list[RankedTripOut])
def rank_for_user(user_id: str, filters: TripFiltersIn | None = None, options: RankOptionsIn | None = None,
                  store: TripStore = Depends(get_store)):
    """Rank upcoming trips against preferences inferred from the user's bookings."""
    try:
        ranked = rank_trips_for_user(
            store, user_id,
            filters.to_filters() if filters else None,
            _options(options or RankOptionsIn()),
            tz=settings.TIMEZONE,
        )
    except TripwiseError as e:
        raise http_error(e)
    return [RankedTripOut.from_trip(t) for t in ranked]


@router.post("/search/stats", response_model=OccupancyStatsOut)
def occupancy_stats(trips: list[SearchTripIn]):
    try:
        s = get_occupancy_stats([t.to_trip() for t in trips])
    except TripwiseError as e:
        raise http_error(e)
    return OccupancyStatsOut(averageOccupancy=s.average_occupancy, highOccupancyCount=s.high_occupancy_count,
                             lowOccupancyCount=s.low_occupancy_count, totalTrips=s.total_trips)
