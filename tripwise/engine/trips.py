"""
Value snapshots handed to the pricing and ranking engine.

Everything here is read-only: the storage layer builds these records and the
engine functions only ever derive new ones (dataclasses.replace), never mutate.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Tuple
from zoneinfo import ZoneInfo

from tripwise.core.errors import PreconditionViolation


class TripStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


@dataclass(frozen=True)
class PricingTrip:
    """Input to the pricing model."""
    id: str
    departure_time: datetime
    arrival_time: datetime
    price: float
    total_seats: int
    booked_count: int
    created_at: datetime
    status: TripStatus = TripStatus.SCHEDULED
    original_price: Optional[float] = None

    @property
    def base_price(self) -> float:
        # Anchor every adjustment to the stored baseline, never the last dynamic price
        return self.original_price if self.original_price is not None else self.price


@dataclass(frozen=True)
class Trip(PricingTrip):
    """
    Search candidate: a pricing snapshot plus route/bus/operator detail.

    occupancy / occupancy_score / final_score are filled in by the occupancy
    ranker, content_score by the relevance model.
    """
    origin: str = ""
    destination: str = ""
    distance: Optional[float] = None
    duration: Optional[float] = None
    bus_type: str = ""
    facilities: Tuple[str, ...] = ()
    operator_id: str = ""
    operator_name: str = ""
    operator_verified: Optional[bool] = None
    operator_rating: Optional[float] = None

    content_score: Optional[float] = None
    occupancy: Optional[float] = None
    occupancy_score: Optional[float] = None
    final_score: Optional[float] = None

    @property
    def route_key(self) -> str:
        return f"{self.origin}-{self.destination}"

    def rating(self) -> Optional[float]:
        if self.operator_rating is not None:
            return self.operator_rating
        if self.operator_verified is None:
            return None
        return 4.5 if self.operator_verified else 3.5


@dataclass(frozen=True)
class PastBooking:
    """One entry of a user's booking history, as seen by preference inference."""
    origin: str
    destination: str
    bus_type: str
    price: float
    facilities: Tuple[str, ...] = field(default_factory=tuple)


def occupancy_rate(trip: PricingTrip) -> float:
    """Booked fraction of the trip's seats, 0..1 (may exceed 1 when oversold)."""
    if trip.total_seats <= 0:
        raise PreconditionViolation(f"trip {trip.id} has no seat capacity (total_seats={trip.total_seats})")
    return trip.booked_count / trip.total_seats


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_aware(moment: datetime, tz: Optional[str] = None) -> datetime:
    """Attach the operating zone (UTC when unset) to a naive datetime."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=ZoneInfo(tz) if tz else timezone.utc)
    return moment


def hours_between(start: datetime, end: datetime, tz: Optional[str] = None) -> float:
    return (as_aware(end, tz) - as_aware(start, tz)).total_seconds() / 3600.0


def local_hour(moment: datetime, tz: Optional[str] = None) -> int:
    """
    Hour of day in the operating zone.

    Naive datetimes are taken as already local; aware ones are converted to
    `tz` when given, otherwise read as-is.
    """
    if moment.tzinfo is not None and tz:
        moment = moment.astimezone(ZoneInfo(tz))
    return moment.hour
