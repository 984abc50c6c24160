from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field

from tripwise.core.config import settings
from tripwise.engine.trips import PricingTrip, TripStatus, as_aware


class PeakHourIn(BaseModel):
    start: int = Field(ge=0, le=23)
    end: int = Field(ge=0, le=23)


class PricingConfigIn(BaseModel):
    """Partial pricing config; unset fields keep their current/default value."""
    earlyBirdDiscount: Optional[float] = None
    lastMinuteMultiplier: Optional[float] = None
    peakHourMultiplier: Optional[float] = None
    highDemandMultiplier: Optional[float] = None
    lowDemandDiscount: Optional[float] = None
    earlyBirdThreshold: Optional[float] = None
    lastMinuteThreshold: Optional[float] = None
    maxPriceIncrease: Optional[float] = None
    maxPriceDecrease: Optional[float] = None
    peakHours: Optional[List[PeakHourIn]] = None

    def overrides(self) -> dict:
        return self.model_dump(exclude_none=True)


class PricingTripIn(BaseModel):
    id: str
    departureTime: datetime
    arrivalTime: datetime
    price: float = Field(gt=0)
    originalPrice: Optional[float] = None
    status: TripStatus = TripStatus.SCHEDULED
    totalSeats: int
    bookedCount: int = Field(default=0, ge=0)
    createdAt: Optional[datetime] = None

    def to_trip(self) -> PricingTrip:
        return PricingTrip(
            id=self.id,
            departure_time=as_aware(self.departureTime, settings.TIMEZONE),
            arrival_time=as_aware(self.arrivalTime, settings.TIMEZONE),
            price=self.price,
            original_price=self.originalPrice,
            status=self.status,
            total_seats=self.totalSeats,
            booked_count=self.bookedCount,
            created_at=as_aware(self.createdAt, settings.TIMEZONE) if self.createdAt else datetime.now(timezone.utc),
        )


class QuoteRequest(BaseModel):
    trip: PricingTripIn
    config: Optional[PricingConfigIn] = None


class BatchQuoteRequest(BaseModel):
    trips: List[PricingTripIn]
    config: Optional[PricingConfigIn] = None


class PricingFactorsOut(BaseModel):
    timeFactor: float
    occupancyFactor: float
    peakHourFactor: float
    velocityFactor: float
    finalPrice: float
    priceChange: float


class PriceQuoteOut(BaseModel):
    tripId: str
    currentPrice: float
    newPrice: float
    adjustment: float


class PricingUpdateOut(BaseModel):
    tripId: str
    oldPrice: float
    newPrice: float
    adjustment: float
    reason: str
    timestamp: datetime


class BatchResultOut(BaseModel):
    totalTripsProcessed: int
    pricesUpdated: int
    failedTripIds: List[str] = []
    updates: List[PricingUpdateOut]


class SchedulerStatusOut(BaseModel):
    isRunning: bool
    isStarted: bool
    nextRunDescription: str
    nextRunAt: Optional[datetime] = None
    configuration: str


class SchedulerHealthOut(BaseModel):
    status: str
    lastUpdate: Optional[datetime] = None
    activeTripCount: int
    avgAdjustment: float


class PricingStatsOut(BaseModel):
    totalActiveTrips: int
    averagePriceAdjustment: float
    tripsWithIncreasedPrices: int
    tripsWithDecreasedPrices: int
    lastUpdateTime: Optional[datetime] = None


class RevertOut(BaseModel):
    ok: bool = True
    tripId: str
    price: float
