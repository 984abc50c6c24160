"""
Storage collaborator for the pricing and search services.

TripStore is the contract; SqlTripStore implements it over the SQLAlchemy
models and opens one short-lived session per call, so it is safe to use from
the scheduler thread as well as request handlers.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, List, Optional, Protocol, Union

from sqlalchemy import and_, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tripwise.core.errors import NotFound, StorageFailure
from tripwise.engine.trips import PastBooking, PricingTrip, Trip, TripStatus
from tripwise.models.booking import ACTIVE_BOOKING_STATUSES, Booking
from tripwise.models.bus import Bus
from tripwise.models.operator import Operator
from tripwise.models.route import Route
from tripwise.models.trip import Trip as TripRow

HISTORY_BOOKING_STATUSES = ACTIVE_BOOKING_STATUSES + ("COMPLETED",)


class _Unchanged(Enum):
    token = 0


UNCHANGED = _Unchanged.token


@dataclass(frozen=True)
class PriceSnapshot:
    trip_id: str
    price: float
    original_price: Optional[float]
    updated_at: datetime


class TripStore(Protocol):
    def list_eligible_pricing_trips(self, now: datetime, horizon_days: int) -> List[PricingTrip]: ...

    def update_trip_price(self, trip_id: str, price: float,
                          original_price: Union[float, None, _Unchanged] = UNCHANGED) -> None: ...

    def get_trip_by_id(self, trip_id: str) -> Optional[PricingTrip]: ...

    def count_active_trips(self, now: datetime) -> int: ...

    def list_recently_updated_trips(self, since: datetime) -> List[PriceSnapshot]: ...

    def list_booking_history(self, user_id: str) -> List[PastBooking]: ...

    def list_search_candidates(self, now: datetime, origin: Optional[str] = None,
                               destination: Optional[str] = None, bus_type: Optional[str] = None,
                               min_price: Optional[float] = None, max_price: Optional[float] = None) -> List[Trip]: ...


def _aware(dt: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops tzinfo on the way back
    if dt is not None and dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def _active_bookings_subquery():
    return (
        select(Booking.trip_id, func.count(Booking.id).label("booked"))
        .where(Booking.status.in_(ACTIVE_BOOKING_STATUSES))
        .group_by(Booking.trip_id)
        .subquery()
    )


class SqlTripStore:
    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def _pricing_query(self):
        booked = _active_bookings_subquery()
        stmt = (
            select(TripRow, Bus.total_seats, func.coalesce(booked.c.booked, 0))
            .join(Bus, Bus.id == TripRow.bus_id)
            .outerjoin(booked, booked.c.trip_id == TripRow.id)
        )
        return stmt

    @staticmethod
    def _to_pricing_trip(row: TripRow, total_seats: int, booked: int) -> PricingTrip:
        return PricingTrip(
            id=row.id,
            departure_time=_aware(row.departure_time),
            arrival_time=_aware(row.arrival_time),
            price=row.price,
            original_price=row.original_price,
            status=TripStatus(row.status),
            total_seats=total_seats,
            booked_count=int(booked),
            created_at=_aware(row.created_at),
        )

    def list_eligible_pricing_trips(self, now: datetime, horizon_days: int) -> List[PricingTrip]:
        db = self._session_factory()
        try:
            stmt = self._pricing_query().where(
                TripRow.status == TripStatus.SCHEDULED.value,
                TripRow.departure_time >= now,
                TripRow.departure_time <= now + timedelta(days=horizon_days),
            ).order_by(TripRow.departure_time)
            return [self._to_pricing_trip(r, seats, booked) for r, seats, booked in db.execute(stmt).all()]
        except SQLAlchemyError as exc:
            raise StorageFailure(f"listing eligible trips failed: {exc}") from exc
        finally:
            db.close()

    def update_trip_price(self, trip_id: str, price: float,
                          original_price: Union[float, None, _Unchanged] = UNCHANGED) -> None:
        db = self._session_factory()
        try:
            row = db.get(TripRow, trip_id)
            if not row:
                raise NotFound(f"trip {trip_id} not found")
            row.price = price
            if original_price is not UNCHANGED:
                row.original_price = original_price
            row.updated_at = datetime.now(timezone.utc)
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise StorageFailure(f"updating trip {trip_id} failed: {exc}") from exc
        finally:
            db.close()

    def get_trip_by_id(self, trip_id: str) -> Optional[PricingTrip]:
        db = self._session_factory()
        try:
            found = db.execute(self._pricing_query().where(TripRow.id == trip_id)).first()
            if not found:
                return None
            row, seats, booked = found
            return self._to_pricing_trip(row, seats, booked)
        except SQLAlchemyError as exc:
            raise StorageFailure(f"loading trip {trip_id} failed: {exc}") from exc
        finally:
            db.close()

    def count_active_trips(self, now: datetime) -> int:
        db = self._session_factory()
        try:
            return db.query(TripRow).filter(
                TripRow.status == TripStatus.SCHEDULED.value,
                TripRow.departure_time >= now,
            ).count()
        except SQLAlchemyError as exc:
            raise StorageFailure(f"counting active trips failed: {exc}") from exc
        finally:
            db.close()

    def list_recently_updated_trips(self, since: datetime) -> List[PriceSnapshot]:
        db = self._session_factory()
        try:
            rows = db.query(TripRow).filter(
                TripRow.status == TripStatus.SCHEDULED.value,
                TripRow.updated_at >= since,
                TripRow.original_price != None,  # noqa: E711
            ).all()
            return [PriceSnapshot(r.id, r.price, r.original_price, _aware(r.updated_at)) for r in rows]
        except SQLAlchemyError as exc:
            raise StorageFailure(f"listing recently updated trips failed: {exc}") from exc
        finally:
            db.close()

    def list_booking_history(self, user_id: str) -> List[PastBooking]:
        db = self._session_factory()
        try:
            stmt = (
                select(Route.origin, Route.destination, Bus.bus_type, Bus.facilities, TripRow.price)
                .select_from(Booking)
                .join(TripRow, TripRow.id == Booking.trip_id)
                .join(Route, Route.id == TripRow.route_id)
                .join(Bus, Bus.id == TripRow.bus_id)
                .where(and_(Booking.user_id == user_id, Booking.status.in_(HISTORY_BOOKING_STATUSES)))
                .order_by(Booking.created_at)
            )
            return [
                PastBooking(
                    origin=origin,
                    destination=destination,
                    bus_type=bus_type,
                    price=price,
                    facilities=tuple(f.strip() for f in (facilities or "").split(",") if f.strip()),
                )
                for origin, destination, bus_type, facilities, price in db.execute(stmt).all()
            ]
        except SQLAlchemyError as exc:
            raise StorageFailure(f"loading booking history for {user_id} failed: {exc}") from exc
        finally:
            db.close()

    def list_search_candidates(self, now: datetime, origin: Optional[str] = None,
                               destination: Optional[str] = None, bus_type: Optional[str] = None,
                               min_price: Optional[float] = None, max_price: Optional[float] = None) -> List[Trip]:
        """Upcoming scheduled trips with route/bus/operator detail for ranking."""
        db = self._session_factory()
        try:
            booked = _active_bookings_subquery()
            stmt = (
                select(TripRow, Route, Bus, Operator, func.coalesce(booked.c.booked, 0))
                .join(Route, Route.id == TripRow.route_id)
                .join(Bus, Bus.id == TripRow.bus_id)
                .join(Operator, Operator.id == TripRow.operator_id)
                .outerjoin(booked, booked.c.trip_id == TripRow.id)
                .where(TripRow.status == TripStatus.SCHEDULED.value, TripRow.departure_time >= now)
                .order_by(TripRow.departure_time)
            )
            if origin:
                stmt = stmt.where(func.lower(Route.origin).like(f"%{origin.lower()}%"))
            if destination:
                stmt = stmt.where(func.lower(Route.destination).like(f"%{destination.lower()}%"))
            if bus_type:
                stmt = stmt.where(func.lower(Bus.bus_type).like(f"%{bus_type.lower()}%"))
            if min_price is not None:
                stmt = stmt.where(TripRow.price >= min_price)
            if max_price is not None:
                stmt = stmt.where(TripRow.price <= max_price)
            out = []
            for row, route, bus, operator, count in db.execute(stmt).all():
                out.append(Trip(
                    id=row.id,
                    departure_time=_aware(row.departure_time),
                    arrival_time=_aware(row.arrival_time),
                    price=row.price,
                    original_price=row.original_price,
                    status=TripStatus(row.status),
                    total_seats=bus.total_seats,
                    booked_count=int(count),
                    created_at=_aware(row.created_at),
                    origin=route.origin,
                    destination=route.destination,
                    distance=route.distance,
                    duration=route.duration,
                    bus_type=bus.bus_type,
                    facilities=tuple(bus.facility_list()),
                    operator_id=operator.id,
                    operator_name=operator.company_name,
                    operator_verified=operator.is_verified,
                ))
            return out
        except SQLAlchemyError as exc:
            raise StorageFailure(f"loading search candidates failed: {exc}") from exc
        finally:
            db.close()
