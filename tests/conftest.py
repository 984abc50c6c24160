"""Test fixtures for the Tripwise pricing and ranking engine."""
from __future__ import annotations

import os
import threading
import uuid
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

import pytest

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_tripwise.db")
os.environ.setdefault("PRICING_SCHEDULER_BACKEND", "off")

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from tripwise.core.errors import NotFound, StorageFailure
from tripwise.db.session import Base
from tripwise.engine.trips import PastBooking, PricingTrip, Trip, TripStatus
from tripwise.models import booking, bus, operator, route, trip  # noqa: F401
from tripwise.services.trip_store import UNCHANGED, PriceSnapshot

# 06:00 UTC; departures two hours out land in the 07-10 peak
NOW = datetime(2026, 3, 2, 6, 0, tzinfo=timezone.utc)


def make_pricing_trip(
    *,
    id: str = "trip-1",
    hours_to_departure: float = 30,
    price: float = 1200,
    original_price: Optional[float] = None,
    total_seats: int = 50,
    booked: int = 20,
    age_hours: float = 30,
    status: TripStatus = TripStatus.SCHEDULED,
    now: datetime = NOW,
) -> PricingTrip:
    """Defaults give a neutral trip: no time, occupancy, peak or velocity signal."""
    departure = now + timedelta(hours=hours_to_departure)
    return PricingTrip(
        id=id,
        departure_time=departure,
        arrival_time=departure + timedelta(hours=6),
        price=price,
        original_price=original_price,
        status=status,
        total_seats=total_seats,
        booked_count=booked,
        created_at=now - timedelta(hours=age_hours),
    )


def make_trip(
    *,
    id: Optional[str] = None,
    origin: str = "Kathmandu",
    destination: str = "Pokhara",
    bus_type: str = "Deluxe",
    price: float = 1200,
    total_seats: int = 100,
    booked: int = 50,
    hours_to_departure: float = 30,
    operator_id: str = "op-1",
    facilities: tuple = (),
    operator_rating: Optional[float] = None,
    content_score: Optional[float] = None,
    now: datetime = NOW,
) -> Trip:
    departure = now + timedelta(hours=hours_to_departure)
    return Trip(
        id=id or uuid.uuid4().hex[:8],
        departure_time=departure,
        arrival_time=departure + timedelta(hours=7),
        price=price,
        total_seats=total_seats,
        booked_count=booked,
        created_at=now - timedelta(hours=30),
        origin=origin,
        destination=destination,
        bus_type=bus_type,
        facilities=facilities,
        operator_id=operator_id,
        operator_rating=operator_rating,
        content_score=content_score,
    )


class FakeTripStore:
    """In-memory TripStore; trip ids in `failing` raise StorageFailure on write."""

    def __init__(self, trips: List[PricingTrip] = ()):
        self.trips: Dict[str, PricingTrip] = {t.id: t for t in trips}
        self.updated_at: Dict[str, datetime] = {}
        self.failing: set = set()
        self.list_error: Optional[Exception] = None
        self.on_list: Optional[Callable[[], None]] = None
        self.list_calls = 0
        self.writes: List[tuple] = []
        self.history: Dict[str, List[PastBooking]] = {}

    def list_eligible_pricing_trips(self, now, horizon_days):
        self.list_calls += 1
        if self.on_list is not None:
            self.on_list()
        if self.list_error is not None:
            raise self.list_error
        horizon = now + timedelta(days=horizon_days)
        return [
            t for t in self.trips.values()
            if t.status == TripStatus.SCHEDULED and now <= t.departure_time <= horizon
        ]

    def update_trip_price(self, trip_id, price, original_price=UNCHANGED):
        self.writes.append((trip_id, price, original_price))
        if trip_id in self.failing:
            raise StorageFailure(f"write to {trip_id} failed")
        if trip_id not in self.trips:
            raise NotFound(f"trip {trip_id} not found")
        t = replace(self.trips[trip_id], price=price)
        if original_price is not UNCHANGED:
            t = replace(t, original_price=original_price)
        self.trips[trip_id] = t
        self.updated_at[trip_id] = datetime.now(timezone.utc)

    def get_trip_by_id(self, trip_id):
        return self.trips.get(trip_id)

    def count_active_trips(self, now):
        return sum(1 for t in self.trips.values() if t.status == TripStatus.SCHEDULED and t.departure_time >= now)

    def list_recently_updated_trips(self, since):
        return [
            PriceSnapshot(t.id, t.price, t.original_price, self.updated_at[t.id])
            for t in self.trips.values()
            if t.original_price is not None and t.id in self.updated_at and self.updated_at[t.id] >= since
        ]

    def list_booking_history(self, user_id):
        return list(self.history.get(user_id, []))

    def list_search_candidates(self, now, origin=None, destination=None, bus_type=None,
                               min_price=None, max_price=None):
        def matches(t):
            return (
                isinstance(t, Trip)
                and t.status == TripStatus.SCHEDULED and t.departure_time >= now
                and (not origin or origin.lower() in t.origin.lower())
                and (not destination or destination.lower() in t.destination.lower())
                and (not bus_type or bus_type.lower() in t.bus_type.lower())
                and (min_price is None or t.price >= min_price)
                and (max_price is None or t.price <= max_price)
            )
        return sorted((t for t in self.trips.values() if matches(t)), key=lambda t: t.departure_time)


class GatedStore(FakeTripStore):
    """Holds the listing call open until `release` is set, to keep a batch in flight."""

    def __init__(self, trips: List[PricingTrip] = ()):
        super().__init__(trips)
        self.entered = threading.Event()
        self.release = threading.Event()
        self.on_list = self._gate

    def _gate(self):
        self.entered.set()
        assert self.release.wait(5), "batch was never released"


@pytest.fixture()
def now() -> datetime:
    return NOW


@pytest.fixture()
def fake_store() -> FakeTripStore:
    return FakeTripStore()


@pytest.fixture()
def session_factory(tmp_path):
    """Fresh SQLite database with the full schema."""
    engine = create_engine(f"sqlite:///{tmp_path / 'tripwise.db'}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()
