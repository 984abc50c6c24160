"""
Storage-backed dynamic pricing: batch updates, reverts, statistics and the
process-wide pricing configuration.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Any, List, Mapping, Optional

from tripwise.core.errors import InvalidState, NotFound
from tripwise.engine import pricing
from tripwise.engine.pricing import PricingConfig, PricingFactors, PriceQuote, round_half_up
from tripwise.engine.trips import PricingTrip, utcnow
from tripwise.services.trip_store import UNCHANGED, TripStore

logger = logging.getLogger(__name__)

STATS_WINDOW = timedelta(hours=24)


@dataclass(frozen=True)
class PricingUpdate:
    trip_id: str
    old_price: float
    new_price: float
    adjustment: float
    reason: str
    timestamp: datetime


@dataclass(frozen=True)
class TripOutcome:
    """Result of pricing one trip inside a batch: an update, nothing, or an error."""
    trip_id: str
    update: Optional[PricingUpdate] = None
    error: Optional[str] = None


@dataclass
class BatchResult:
    total_trips_processed: int = 0
    prices_updated: int = 0
    updates: List[PricingUpdate] = field(default_factory=list)
    failed_trip_ids: List[str] = field(default_factory=list)

    def add(self, outcome: TripOutcome) -> "BatchResult":
        self.total_trips_processed += 1
        if outcome.update is not None:
            self.prices_updated += 1
            self.updates.append(outcome.update)
        if outcome.error is not None:
            self.failed_trip_ids.append(outcome.trip_id)
        return self


@dataclass(frozen=True)
class PricingStats:
    total_active_trips: int
    average_price_adjustment: float
    trips_with_increased_prices: int
    trips_with_decreased_prices: int
    last_update_time: Optional[datetime]


class PricingService:
    def __init__(self, store: TripStore, config: Optional[PricingConfig] = None,
                 update_threshold: float = pricing.DEFAULT_UPDATE_THRESHOLD, horizon_days: int = 7):
        self.store = store
        self._config = config or PricingConfig()
        self._config.validate()
        self.update_threshold = update_threshold
        self.horizon_days = horizon_days

    # --- configuration -------------------------------------------------

    @property
    def config(self) -> PricingConfig:
        return self._config

    def get_pricing_config(self) -> PricingConfig:
        return self._config

    def replace_pricing_config(self, overrides: Optional[Mapping[str, Any]] = None) -> PricingConfig:
        """Swap in a new config built from defaults plus `overrides`."""
        cfg = PricingConfig.from_overrides(overrides, base=PricingConfig(timezone=self._config.timezone))
        self._config = cfg
        logger.info("Replaced pricing configuration: %s", cfg.to_dict())
        return cfg

    def update_pricing_config(self, overrides: Mapping[str, Any]) -> PricingConfig:
        """Merge `overrides` over the current config."""
        cfg = PricingConfig.from_overrides(overrides, base=self._config)
        self._config = cfg
        logger.info("Updated pricing configuration: %s", dict(overrides))
        return cfg

    def _effective_config(self, overrides: Optional[Mapping[str, Any]]) -> PricingConfig:
        return PricingConfig.from_overrides(overrides, base=self._config)

    # --- read-only pricing ---------------------------------------------

    def compute_price(self, trip: PricingTrip, config_override: Optional[Mapping[str, Any]] = None,
                      now: Optional[datetime] = None) -> float:
        return pricing.calculate_dynamic_price(trip, self._effective_config(config_override), now)

    def explain_price(self, trip: PricingTrip, config_override: Optional[Mapping[str, Any]] = None,
                      now: Optional[datetime] = None) -> PricingFactors:
        return pricing.get_pricing_factors(trip, self._effective_config(config_override), now)

    def quote_batch(self, trips: List[PricingTrip], config_override: Optional[Mapping[str, Any]] = None,
                    now: Optional[datetime] = None) -> List[PriceQuote]:
        return pricing.calculate_batch_pricing(trips, self._effective_config(config_override), now)

    # --- batch update --------------------------------------------------

    def update_trip_prices(self, now: Optional[datetime] = None) -> BatchResult:
        """
        Reprice every eligible trip.

        A failure while listing aborts the batch; a failure on one trip is
        logged and recorded in its outcome, and the batch moves on.
        """
        now = now or utcnow()
        config = self._config
        logger.info("Starting dynamic pricing update")
        trips = self.store.list_eligible_pricing_trips(now, self.horizon_days)

        result = BatchResult()
        for trip in trips:
            result.add(self._reprice(trip, config, now))

        logger.info("Completed: %s/%s trips updated (%s failed)",
                    result.prices_updated, result.total_trips_processed, len(result.failed_trip_ids))
        return result

    def _reprice(self, trip: PricingTrip, config: PricingConfig, now: datetime) -> TripOutcome:
        try:
            factors = pricing.get_pricing_factors(trip, config, now)
            new_price = factors.final_price
            if not pricing.should_update_price(trip.price, new_price, self.update_threshold):
                return TripOutcome(trip_id=trip.id)

            # First adjustment anchors the baseline; later ones leave it alone
            baseline = trip.price if trip.original_price is None else UNCHANGED
            self.store.update_trip_price(trip.id, new_price, original_price=baseline)

            update = PricingUpdate(
                trip_id=trip.id,
                old_price=trip.price,
                new_price=new_price,
                adjustment=pricing.price_adjustment(trip.price, new_price),
                reason=pricing.describe_price_change(factors),
                timestamp=utcnow(),
            )
            logger.info("Updated trip %s: %s -> %s (%+.1f%%) - %s",
                        trip.id, trip.price, new_price, update.adjustment, update.reason)
            return TripOutcome(trip_id=trip.id, update=update)
        except Exception as exc:
            logger.exception("Error updating trip %s: %s", trip.id, exc)
            return TripOutcome(trip_id=trip.id, error=str(exc))

    # --- revert & stats ------------------------------------------------

    def revert_trip_price(self, trip_id: str) -> PricingTrip:
        trip = self.store.get_trip_by_id(trip_id)
        if trip is None:
            raise NotFound(f"trip {trip_id} not found")
        if trip.original_price is None:
            raise InvalidState(f"trip {trip_id} has no original price to revert to")
        self.store.update_trip_price(trip_id, trip.original_price, original_price=None)
        logger.info("Reverted trip %s to original price: %s", trip_id, trip.original_price)
        return replace(trip, price=trip.original_price, original_price=None)

    def get_pricing_stats(self, now: Optional[datetime] = None) -> PricingStats:
        now = now or utcnow()
        active = self.store.count_active_trips(now)
        recent = [s for s in self.store.list_recently_updated_trips(now - STATS_WINDOW) if s.original_price]

        total_adjustment = 0.0
        increased = decreased = 0
        last_update: Optional[datetime] = None
        for snap in recent:
            total_adjustment += abs(pricing.percent_change(snap.original_price, snap.price))
            if snap.price > snap.original_price:
                increased += 1
            elif snap.price < snap.original_price:
                decreased += 1
            if last_update is None or snap.updated_at > last_update:
                last_update = snap.updated_at

        average = total_adjustment / len(recent) if recent else 0.0
        return PricingStats(
            total_active_trips=active,
            average_price_adjustment=round_half_up(average),
            trips_with_increased_prices=increased,
            trips_with_decreased_prices=decreased,
            last_update_time=last_update,
        )
