from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from tripwise.engine.relevance import PriceRange, TripFilters, UserPreferences
from tripwise.core.config import settings
from tripwise.engine.trips import Trip, TripStatus, as_aware


class PriceRangeIn(BaseModel):
    min: float
    max: float


class UserPreferencesIn(BaseModel):
    preferredOrigins: List[str] = []
    preferredDestinations: List[str] = []
    preferredBusTypes: List[str] = []
    priceRange: Optional[PriceRangeIn] = None
    preferredTimeOfDay: Optional[Literal["morning", "afternoon", "evening", "night"]] = None
    preferredFacilities: List[str] = []

    def to_preferences(self) -> UserPreferences:
        return UserPreferences(
            preferred_origins=tuple(self.preferredOrigins),
            preferred_destinations=tuple(self.preferredDestinations),
            preferred_bus_types=tuple(self.preferredBusTypes),
            price_range=PriceRange(self.priceRange.min, self.priceRange.max) if self.priceRange else None,
            preferred_time_of_day=self.preferredTimeOfDay,
            preferred_facilities=tuple(self.preferredFacilities),
        )


class TripFiltersIn(BaseModel):
    origin: Optional[str] = None
    destination: Optional[str] = None
    busType: Optional[str] = None
    minPrice: Optional[float] = None
    maxPrice: Optional[float] = None

    def to_filters(self) -> TripFilters:
        return TripFilters(
            origin=self.origin,
            destination=self.destination,
            bus_type=self.busType,
            min_price=self.minPrice,
            max_price=self.maxPrice,
        )


class RankOptionsIn(BaseModel):
    useContentBased: bool = True
    prioritizeOccupancy: bool = False
    minOccupancyThreshold: Optional[float] = None
    limit: Optional[int] = Field(default=None, ge=0)
    diversityFactor: Optional[float] = Field(default=None, ge=0, le=1)


class SearchTripIn(BaseModel):
    id: str
    departureTime: datetime
    arrivalTime: datetime
    price: float
    originalPrice: Optional[float] = None
    status: TripStatus = TripStatus.SCHEDULED
    totalSeats: int
    bookedCount: int = 0
    createdAt: Optional[datetime] = None
    origin: str
    destination: str
    distance: Optional[float] = None
    duration: Optional[float] = None
    busType: str = ""
    facilities: List[str] = []
    operatorId: str = ""
    operatorName: str = ""
    operatorVerified: Optional[bool] = None
    operatorRating: Optional[float] = Field(default=None, ge=0, le=5)
    contentScore: Optional[float] = Field(default=None, ge=0, le=1)

    def to_trip(self) -> Trip:
        return Trip(
            id=self.id,
            departure_time=as_aware(self.departureTime, settings.TIMEZONE),
            arrival_time=as_aware(self.arrivalTime, settings.TIMEZONE),
            price=self.price,
            original_price=self.originalPrice,
            status=self.status,
            total_seats=self.totalSeats,
            booked_count=self.bookedCount,
            created_at=as_aware(self.createdAt, settings.TIMEZONE) if self.createdAt else datetime.now(timezone.utc),
            origin=self.origin,
            destination=self.destination,
            distance=self.distance,
            duration=self.duration,
            bus_type=self.busType,
            facilities=tuple(self.facilities),
            operator_id=self.operatorId,
            operator_name=self.operatorName,
            operator_verified=self.operatorVerified,
            operator_rating=self.operatorRating,
            content_score=self.contentScore,
        )


class RankRequest(BaseModel):
    trips: List[SearchTripIn]
    preferences: UserPreferencesIn = UserPreferencesIn()
    filters: Optional[TripFiltersIn] = None
    options: RankOptionsIn = RankOptionsIn()


class RankedTripOut(BaseModel):
    id: str
    origin: str
    destination: str
    busType: str
    operatorId: str
    price: float
    departureTime: datetime
    contentScore: Optional[float] = None
    occupancy: Optional[float] = None
    occupancyScore: Optional[float] = None
    finalScore: Optional[float] = None

    @classmethod
    def from_trip(cls, t: Trip) -> "RankedTripOut":
        return cls(
            id=t.id,
            origin=t.origin,
            destination=t.destination,
            busType=t.bus_type,
            operatorId=t.operator_id,
            price=t.price,
            departureTime=t.departure_time,
            contentScore=t.content_score,
            occupancy=t.occupancy,
            occupancyScore=t.occupancy_score,
            finalScore=t.final_score,
        )


class OccupancyStatsOut(BaseModel):
    averageOccupancy: float
    highOccupancyCount: int
    lowOccupancyCount: int
    totalTrips: int
