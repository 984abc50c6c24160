"""
Occupancy-driven ranking.

Rule: occupancy here is a percentage (0..100), unlike the pricing model which
works with the 0..1 rate.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, List, Mapping, Optional, Sequence, Set

from tripwise.core.errors import PreconditionViolation
from tripwise.engine.trips import Trip, as_aware, occupancy_rate

HIGH_OCCUPANCY_PERCENT = 60
LOW_OCCUPANCY_PERCENT = 20

CONTENT_WEIGHT = 0.6
OCCUPANCY_WEIGHT = 0.4

# smart filter knobs
SMART_HIGH_OCCUPANCY_PERCENT = 40
SMART_FREE_ROUTE_SLOTS = 3
SMART_OPERATOR_SHARE = 3  # one operator may fill at most ceil(target / 3) slots


@dataclass(frozen=True)
class OccupancyConfig:
    min_occupancy_threshold: float = 10
    occupancy_boost_factor: float = 1.5
    low_occupancy_penalty: float = 0.5
    balance_with_content_score: bool = True

    @classmethod
    def from_overrides(cls, overrides: Optional[Mapping[str, Any]] = None) -> "OccupancyConfig":
        if not overrides:
            return cls()
        known = {f.name: f.name for f in fields(cls)}
        known.update({
            "minOccupancyThreshold": "min_occupancy_threshold",
            "occupancyBoostFactor": "occupancy_boost_factor",
            "lowOccupancyPenalty": "low_occupancy_penalty",
            "balanceWithContentScore": "balance_with_content_score",
        })
        changes = {}
        for key, value in overrides.items():
            if key not in known:
                raise PreconditionViolation(f"unknown occupancy option: {key}")
            if value is not None:
                changes[known[key]] = value
        cfg = replace(cls(), **changes)
        if cfg.occupancy_boost_factor <= 0 or cfg.low_occupancy_penalty <= 0:
            raise PreconditionViolation("occupancy boost and penalty must be > 0")
        return cfg


@dataclass(frozen=True)
class OccupancyStats:
    average_occupancy: float
    high_occupancy_count: int
    low_occupancy_count: int
    total_trips: int


def occupancy_percent(trip: Trip) -> float:
    return occupancy_rate(trip) * 100


def occupancy_score(occupancy: float, config: OccupancyConfig) -> float:
    score = occupancy / 100
    if occupancy > HIGH_OCCUPANCY_PERCENT:
        score *= config.occupancy_boost_factor
    elif occupancy < LOW_OCCUPANCY_PERCENT:
        score *= config.low_occupancy_penalty
    return min(score, 1.0)


def _sort_key(trip: Trip):
    # final score desc, occupancy desc, departure asc
    return (-trip.final_score, -trip.occupancy, as_aware(trip.departure_time))


def sort_by_occupancy(trips: Sequence[Trip], config: Optional[OccupancyConfig] = None) -> List[Trip]:
    """Drop under-threshold trips, score the rest and order them best-first."""
    config = config or OccupancyConfig()
    scored = []
    for trip in trips:
        occupancy = occupancy_percent(trip)
        if occupancy < config.min_occupancy_threshold:
            continue
        occ_score = occupancy_score(occupancy, config)
        final = occ_score
        if config.balance_with_content_score and trip.content_score is not None:
            final = CONTENT_WEIGHT * trip.content_score + OCCUPANCY_WEIGHT * occ_score
        scored.append(replace(trip, occupancy=occupancy, occupancy_score=occ_score, final_score=final))
    scored.sort(key=_sort_key)
    return scored


def get_occupancy_stats(trips: Sequence[Trip]) -> OccupancyStats:
    if not trips:
        return OccupancyStats(average_occupancy=0, high_occupancy_count=0, low_occupancy_count=0, total_trips=0)
    occupancies = [occupancy_percent(t) for t in trips]
    average = sum(occupancies) / len(occupancies)
    return OccupancyStats(
        average_occupancy=math.floor(average * 100 + 0.5) / 100,
        high_occupancy_count=sum(1 for o in occupancies if o > HIGH_OCCUPANCY_PERCENT),
        low_occupancy_count=sum(1 for o in occupancies if o < LOW_OCCUPANCY_PERCENT),
        total_trips=len(trips),
    )


def smart_occupancy_filter(trips: Sequence[Trip], target_count: int, config: Optional[OccupancyConfig] = None) -> List[Trip]:
    """
    Pick `target_count` trips favouring demand while keeping routes and operators varied.

    Pass 1 walks the occupancy ranking and takes high-occupancy trips plus any
    trip that keeps route and operator spread acceptable. Pass 2 tops up with
    the best remaining trips in rank order.
    """
    if target_count < 0:
        raise PreconditionViolation("target_count must be >= 0")
    ranked = sort_by_occupancy(trips, config)
    if len(ranked) <= target_count:
        return ranked

    operator_cap = math.ceil(target_count / SMART_OPERATOR_SHARE)
    selected: List[Trip] = []
    selected_ids: Set[str] = set()
    used_routes: Set[str] = set()
    operator_count: Dict[str, int] = {}

    for trip in ranked:
        if len(selected) >= target_count:
            break
        route = trip.route_key
        operator_trips = operator_count.get(trip.operator_id, 0)
        high_occupancy = trip.occupancy > SMART_HIGH_OCCUPANCY_PERCENT
        route_diverse = route not in used_routes or len(used_routes) < SMART_FREE_ROUTE_SLOTS
        operator_diverse = operator_trips < operator_cap
        if high_occupancy or (route_diverse and operator_diverse):
            selected.append(trip)
            selected_ids.add(trip.id)
            used_routes.add(route)
            operator_count[trip.operator_id] = operator_trips + 1

    for trip in ranked:
        if len(selected) >= target_count:
            break
        if trip.id not in selected_ids:
            selected.append(trip)
            selected_ids.add(trip.id)

    return selected
