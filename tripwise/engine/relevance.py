"""
Content-based relevance between trips and a user's preference profile.

The score is a weighted average: every active signal adds its weight to the
denominator and weight * match (0..1) to the numerator. Signals the user never
expressed contribute nothing, so an empty profile scores 0 rather than 1.
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from tripwise.core.errors import PreconditionViolation
from tripwise.engine.trips import PastBooking, Trip, local_hour

ORIGIN_WEIGHT = 3.0
DESTINATION_WEIGHT = 3.0
BUS_TYPE_WEIGHT = 2.0
PRICE_RANGE_WEIGHT = 2.0
TIME_OF_DAY_WEIGHT = 1.0
FACILITIES_WEIGHT = 1.5
FILTER_MATCH_WEIGHT = 2.0
RATING_WEIGHT = 1.0
MAX_RATING = 5.0

# [start, end) hours; night wraps midnight
TIME_OF_DAY_BUCKETS = {
    "morning": ((6, 12),),
    "afternoon": ((12, 18),),
    "evening": ((18, 22),),
    "night": ((22, 24), (0, 6)),
}

PRICE_HISTORY_LOW = 0.8
PRICE_HISTORY_HIGH = 1.2

DEFAULT_DIVERSITY_FACTOR = 0.3
DIVERSITY_KEEP_RATIO = 0.8
SIMILAR_PRICE_RATIO = 0.1


@dataclass(frozen=True)
class PriceRange:
    min: float
    max: float

    def __post_init__(self):
        if self.min > self.max:
            raise PreconditionViolation(f"price range min {self.min} exceeds max {self.max}")


@dataclass(frozen=True)
class UserPreferences:
    preferred_origins: Tuple[str, ...] = ()
    preferred_destinations: Tuple[str, ...] = ()
    preferred_bus_types: Tuple[str, ...] = ()
    price_range: Optional[PriceRange] = None
    preferred_time_of_day: Optional[str] = None
    preferred_facilities: Tuple[str, ...] = ()

    def __post_init__(self):
        if self.preferred_time_of_day is not None and self.preferred_time_of_day not in TIME_OF_DAY_BUCKETS:
            raise PreconditionViolation(f"unknown time of day: {self.preferred_time_of_day}")

    def is_empty(self) -> bool:
        return not (self.preferred_origins or self.preferred_destinations or self.preferred_bus_types
                    or self.price_range or self.preferred_time_of_day or self.preferred_facilities)


@dataclass(frozen=True)
class TripFilters:
    origin: Optional[str] = None
    destination: Optional[str] = None
    bus_type: Optional[str] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None


@dataclass(frozen=True)
class TripFeatures:
    id: str
    origin: str
    destination: str
    bus_type: str
    price: float
    departure_time: datetime
    facilities: Tuple[str, ...] = ()
    operator_rating: Optional[float] = None
    distance: Optional[float] = None
    duration: Optional[float] = None

    @classmethod
    def from_trip(cls, trip: Trip) -> "TripFeatures":
        return cls(
            id=trip.id,
            origin=trip.origin,
            destination=trip.destination,
            bus_type=trip.bus_type,
            price=trip.price,
            departure_time=trip.departure_time,
            facilities=tuple(trip.facilities),
            operator_rating=trip.rating(),
            distance=trip.distance,
            duration=trip.duration,
        )


def _contains(haystack: str, needle: str) -> bool:
    return needle.lower() in (haystack or "").lower()


def _matches_any(value: str, wanted: Iterable[str]) -> bool:
    return any(_contains(value, w) for w in wanted)


def price_range_match(price: float, price_range: PriceRange) -> float:
    if price_range.min <= price <= price_range.max:
        return 1.0
    width = price_range.max - price_range.min
    if width <= 0:
        return 0.0
    distance = min(abs(price - price_range.min), abs(price - price_range.max))
    return max(0.0, 1 - distance / width)


def time_of_day_match(departure: datetime, bucket: str, tz: Optional[str] = None) -> bool:
    hour = local_hour(departure, tz)
    return any(start <= hour < end for start, end in TIME_OF_DAY_BUCKETS[bucket])


def facilities_match(trip_facilities: Sequence[str], wanted: Sequence[str]) -> float:
    matched = [w for w in wanted if any(_contains(f, w) for f in trip_facilities)]
    return len(matched) / len(wanted)


def _filter_price_match(price: float, filters: TripFilters) -> bool:
    if filters.min_price is None and filters.max_price is None:
        return False
    if filters.min_price is not None and price < filters.min_price:
        return False
    if filters.max_price is not None and price > filters.max_price:
        return False
    return True


def score(trip: TripFeatures, preferences: UserPreferences, filters: Optional[TripFilters] = None, tz: Optional[str] = None) -> float:
    """Normalized 0..1 similarity between a trip and a preference profile."""
    signals: List[Tuple[float, float]] = []  # (weight, match)

    if preferences.preferred_origins:
        signals.append((ORIGIN_WEIGHT, float(_matches_any(trip.origin, preferences.preferred_origins))))
    if preferences.preferred_destinations:
        signals.append((DESTINATION_WEIGHT, float(_matches_any(trip.destination, preferences.preferred_destinations))))
    if preferences.preferred_bus_types:
        signals.append((BUS_TYPE_WEIGHT, float(_matches_any(trip.bus_type, preferences.preferred_bus_types))))
    if preferences.price_range is not None:
        signals.append((PRICE_RANGE_WEIGHT, price_range_match(trip.price, preferences.price_range)))
    if preferences.preferred_time_of_day:
        signals.append((TIME_OF_DAY_WEIGHT, float(time_of_day_match(trip.departure_time, preferences.preferred_time_of_day, tz))))
    if preferences.preferred_facilities:
        signals.append((FACILITIES_WEIGHT, facilities_match(trip.facilities, preferences.preferred_facilities)))

    if filters is not None:
        # An active search filter the trip satisfies counts as a full-weight match
        matched = (
            filters.origin and _contains(trip.origin, filters.origin),
            filters.destination and _contains(trip.destination, filters.destination),
            filters.bus_type and _contains(trip.bus_type, filters.bus_type),
            _filter_price_match(trip.price, filters),
        )
        signals.extend((FILTER_MATCH_WEIGHT, 1.0) for m in matched if m)

    if not signals:
        return 0.0

    # Rating only refines a profile that already expressed something
    if trip.operator_rating:
        signals.append((RATING_WEIGHT, trip.operator_rating / MAX_RATING))

    total_weight = sum(w for w, _ in signals)
    return sum(w * m for w, m in signals) / total_weight


def recommend(trips: Sequence[Trip], preferences: UserPreferences, filters: Optional[TripFilters] = None,
              limit: Optional[int] = 10, tz: Optional[str] = None) -> List[Trip]:
    """Score, attach content_score, order best-first (stable on ties), truncate."""
    scored = [
        replace(trip, content_score=score(TripFeatures.from_trip(trip), preferences, filters, tz))
        for trip in trips
    ]
    scored.sort(key=lambda t: t.content_score, reverse=True)
    if limit is None:
        return scored
    return scored[:max(limit, 0)]


def _dedupe(values: Iterable[str]) -> Tuple[str, ...]:
    return tuple(dict.fromkeys(v for v in values if v))


def infer_preferences(past_bookings: Sequence[PastBooking]) -> UserPreferences:
    """Build a profile from booking history; no history means no preferences."""
    if not past_bookings:
        return UserPreferences()
    prices = [b.price for b in past_bookings]
    return UserPreferences(
        preferred_origins=_dedupe(b.origin for b in past_bookings),
        preferred_destinations=_dedupe(b.destination for b in past_bookings),
        preferred_bus_types=_dedupe(b.bus_type for b in past_bookings),
        price_range=PriceRange(min=min(prices) * PRICE_HISTORY_LOW, max=max(prices) * PRICE_HISTORY_HIGH),
    )


def is_near_duplicate(candidate: Trip, kept: Trip) -> bool:
    same_route = candidate.origin == kept.origin and candidate.destination == kept.destination
    same_bus = candidate.bus_type == kept.bus_type
    similar_price = abs(candidate.price - kept.price) < kept.price * SIMILAR_PRICE_RATIO
    return same_route and same_bus and similar_price


def diversify(ranked: Sequence[Trip], diversity_factor: float = DEFAULT_DIVERSITY_FACTOR,
              rng: Optional[Callable[[], float]] = None) -> List[Trip]:
    """
    Thin out near-duplicates from a ranked list.

    The top item always survives. A near-duplicate is still let through with
    probability `diversity_factor`, so results are random unless the factor
    is 0 or a deterministic `rng` is supplied. Stops at ceil(0.8 * n) items.
    """
    if not 0 <= diversity_factor <= 1:
        raise PreconditionViolation("diversity_factor must be within [0, 1]")
    if len(ranked) <= 1:
        return list(ranked)

    draw = rng or random.random
    cap = math.ceil(len(ranked) * DIVERSITY_KEEP_RATIO)
    kept = [ranked[0]]
    for candidate in ranked[1:]:
        distinct = not any(is_near_duplicate(candidate, k) for k in kept)
        if distinct or (diversity_factor > 0 and draw() < diversity_factor):
            kept.append(candidate)
        if len(kept) >= cap:
            break
    return kept
