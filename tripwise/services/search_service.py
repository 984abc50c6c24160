"""Wires trip candidates through the relevance model and the occupancy ranker."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Sequence

from tripwise.engine import occupancy, relevance
from tripwise.engine.occupancy import OccupancyConfig
from tripwise.engine.relevance import TripFilters, UserPreferences
from tripwise.engine.trips import Trip, utcnow
from tripwise.services.trip_store import TripStore


@dataclass(frozen=True)
class RankOptions:
    use_content_based: bool = True
    prioritize_occupancy: bool = False
    min_occupancy_threshold: Optional[float] = None
    limit: Optional[int] = None
    # None skips the diversity pass
    diversity_factor: Optional[float] = None


def rank_trips(trips: Sequence[Trip], preferences: Optional[UserPreferences] = None,
               filters: Optional[TripFilters] = None, options: Optional[RankOptions] = None,
               tz: Optional[str] = None, rng=None) -> List[Trip]:
    options = options or RankOptions()
    preferences = preferences or UserPreferences()
    ranked = list(trips)

    if options.use_content_based:
        ranked = relevance.recommend(ranked, preferences, filters, limit=None, tz=tz)
        if options.diversity_factor is not None:
            ranked = relevance.diversify(ranked, options.diversity_factor, rng=rng)

    if options.prioritize_occupancy:
        cfg = OccupancyConfig.from_overrides({"min_occupancy_threshold": options.min_occupancy_threshold})
        ranked = occupancy.sort_by_occupancy(ranked, cfg)

    if options.limit is not None:
        ranked = ranked[:max(options.limit, 0)]
    return ranked


def rank_trips_for_user(store: TripStore, user_id: str, filters: Optional[TripFilters] = None,
                        options: Optional[RankOptions] = None, tz: Optional[str] = None,
                        now: Optional[datetime] = None) -> List[Trip]:
    """Rank upcoming trips for a user, inferring preferences from their bookings."""
    filters = filters or TripFilters()
    candidates = store.list_search_candidates(
        now or utcnow(), origin=filters.origin, destination=filters.destination, bus_type=filters.bus_type,
        min_price=filters.min_price, max_price=filters.max_price,
    )
    preferences = relevance.infer_preferences(store.list_booking_history(user_id))
    return rank_trips(candidates, preferences, filters, options, tz=tz)
