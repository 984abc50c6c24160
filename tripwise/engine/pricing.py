"""
Dynamic pricing model.

Every factor multiplies against the trip's base price (stored original price,
else current price):

    raw   = base * time * occupancy * peak_hour * velocity
    price = round_to_5(clamp(raw, base * max_price_decrease, base * max_price_increase))

All functions are pure; `now` is injectable so results are reproducible.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, fields, replace
from datetime import datetime
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple

from tripwise.core.errors import PreconditionViolation
from tripwise.engine.trips import PricingTrip, hours_between, local_hour, occupancy_rate, utcnow

PRICE_STEP = 5
DEFAULT_UPDATE_THRESHOLD = 2.0

# Velocity signal constants
FRESH_TRIP_HOURS = 24
STALE_TRIP_HOURS = 72
VELOCITY_OCCUPANCY = 0.2
FAST_VELOCITY_FACTOR = 1.1
SLOW_VELOCITY_FACTOR = 0.95

HIGH_DEMAND_RATE = 0.7
LOW_DEMAND_RATE = 0.3


@dataclass(frozen=True)
class PricingConfig:
    early_bird_discount: float = 0.85
    last_minute_multiplier: float = 1.25
    peak_hour_multiplier: float = 1.15

    high_demand_multiplier: float = 1.3
    low_demand_discount: float = 0.8

    # hours before departure
    early_bird_threshold: float = 48
    last_minute_threshold: float = 6

    # bounds as multipliers of base price
    max_price_increase: float = 1.5
    max_price_decrease: float = 0.7

    # inclusive [start, end] hours, 24h local time
    peak_hours: Tuple[Tuple[int, int], ...] = ((7, 10), (17, 20))

    # zone used to read the departure hour; None reads datetimes as-is
    timezone: Optional[str] = None

    @classmethod
    def from_overrides(cls, overrides: Optional[Mapping[str, Any]] = None, base: Optional["PricingConfig"] = None) -> "PricingConfig":
        """
        Merge partial overrides over `base` (defaults when omitted).

        Keys may be snake_case or camelCase; None values leave the field unset.
        """
        cfg = base or cls()
        if not overrides:
            cfg.validate()
            return cfg
        known = {f.name for f in fields(cls)}
        changes = {}
        for key, value in overrides.items():
            name = _snake(key)
            if name not in known:
                raise PreconditionViolation(f"unknown pricing option: {key}")
            if value is None:
                continue
            if name == "peak_hours":
                value = _normalize_peak_hours(value)
            changes[name] = value
        cfg = replace(cfg, **changes)
        cfg.validate()
        return cfg

    def validate(self) -> None:
        for name in ("early_bird_discount", "last_minute_multiplier", "peak_hour_multiplier",
                     "high_demand_multiplier", "low_demand_discount",
                     "max_price_increase", "max_price_decrease"):
            if getattr(self, name) <= 0:
                raise PreconditionViolation(f"{name} must be > 0")
        if self.early_bird_threshold < 0 or self.last_minute_threshold < 0:
            raise PreconditionViolation("pricing thresholds must be >= 0")
        if self.max_price_decrease > self.max_price_increase:
            raise PreconditionViolation("max_price_decrease must not exceed max_price_increase")
        for start, end in self.peak_hours:
            if not (0 <= start <= 23 and 0 <= end <= 23) or start > end:
                raise PreconditionViolation(f"invalid peak hour interval: {start}-{end}")

    def to_dict(self) -> dict:
        return {
            "earlyBirdDiscount": self.early_bird_discount,
            "lastMinuteMultiplier": self.last_minute_multiplier,
            "peakHourMultiplier": self.peak_hour_multiplier,
            "highDemandMultiplier": self.high_demand_multiplier,
            "lowDemandDiscount": self.low_demand_discount,
            "earlyBirdThreshold": self.early_bird_threshold,
            "lastMinuteThreshold": self.last_minute_threshold,
            "maxPriceIncrease": self.max_price_increase,
            "maxPriceDecrease": self.max_price_decrease,
            "peakHours": [{"start": s, "end": e} for s, e in self.peak_hours],
            "timezone": self.timezone,
        }


@dataclass(frozen=True)
class PricingFactors:
    time_factor: float
    occupancy_factor: float
    peak_hour_factor: float
    velocity_factor: float
    final_price: float
    price_change: float


@dataclass(frozen=True)
class PriceQuote:
    trip_id: str
    current_price: float
    new_price: float
    adjustment: float


def _snake(key: str) -> str:
    out = []
    for ch in key:
        if ch.isupper():
            out.append("_")
            out.append(ch.lower())
        else:
            out.append(ch)
    return "".join(out)


def _normalize_peak_hours(value: Iterable[Any]) -> Tuple[Tuple[int, int], ...]:
    intervals = []
    for item in value:
        if isinstance(item, Mapping):
            intervals.append((int(item["start"]), int(item["end"])))
        else:
            start, end = item
            intervals.append((int(start), int(end)))
    return tuple(intervals)


def round_half_up(value: float, places: int = 2) -> float:
    scale = 10 ** places
    return math.floor(value * scale + 0.5) / scale


def round_to_step(value: float, step: int = PRICE_STEP) -> float:
    """Nearest multiple of `step`, halves rounding up."""
    return math.floor(value / step + 0.5) * step


def percent_change(old: float, new: float) -> float:
    if old == 0:
        raise PreconditionViolation("cannot compute a percentage change from a zero price")
    return (new - old) * 100 / old


def price_adjustment(old: float, new: float) -> float:
    """Reported percentage change, 2 places; a zero current price reports no change."""
    if old == 0:
        return 0.0
    return round_half_up(percent_change(old, new))


def time_factor(trip: PricingTrip, config: PricingConfig, now: datetime) -> float:
    hours = hours_between(now, trip.departure_time, config.timezone)
    if hours > config.early_bird_threshold:
        return config.early_bird_discount
    if hours < config.last_minute_threshold:
        return config.last_minute_multiplier
    return 1.0


def occupancy_factor(trip: PricingTrip, config: PricingConfig) -> float:
    rate = occupancy_rate(trip)
    if rate > HIGH_DEMAND_RATE:
        return config.high_demand_multiplier
    if rate < LOW_DEMAND_RATE:
        return config.low_demand_discount
    return 1.0


def peak_hour_factor(trip: PricingTrip, config: PricingConfig) -> float:
    hour = local_hour(trip.departure_time, config.timezone)
    if any(start <= hour <= end for start, end in config.peak_hours):
        return config.peak_hour_multiplier
    return 1.0


def velocity_factor(trip: PricingTrip, now: datetime, tz: Optional[str] = None) -> float:
    """Nudge price by how quickly seats sold relative to the trip's age."""
    age = hours_between(trip.created_at, now, tz)
    rate = occupancy_rate(trip)
    if age < FRESH_TRIP_HOURS and rate > VELOCITY_OCCUPANCY:
        return FAST_VELOCITY_FACTOR
    if age > STALE_TRIP_HOURS and rate < VELOCITY_OCCUPANCY:
        return SLOW_VELOCITY_FACTOR
    return 1.0


def _factors(trip: PricingTrip, config: PricingConfig, now: datetime) -> Tuple[float, float, float, float]:
    return (
        time_factor(trip, config, now),
        occupancy_factor(trip, config),
        peak_hour_factor(trip, config),
        velocity_factor(trip, now, config.timezone),
    )


def price_from_factors(base_price: float, factors: Sequence[float], config: PricingConfig) -> float:
    raw = base_price
    for f in factors:
        raw *= f
    lower = base_price * config.max_price_decrease
    upper = base_price * config.max_price_increase
    price = round_to_step(max(lower, min(upper, raw)))
    # rounding may step past a bound that is not itself a multiple of 5
    if price > upper and price - PRICE_STEP >= lower:
        price -= PRICE_STEP
    elif price < lower and price + PRICE_STEP <= upper:
        price += PRICE_STEP
    if not lower <= price <= upper:
        raise PreconditionViolation(
            f"no multiple of {PRICE_STEP} fits between {lower:g} and {upper:g} for base price {base_price:g}")
    return price


def calculate_dynamic_price(trip: PricingTrip, config: Optional[PricingConfig] = None, now: Optional[datetime] = None) -> float:
    config = config or PricingConfig()
    now = now or utcnow()
    return price_from_factors(trip.base_price, _factors(trip, config, now), config)


def get_pricing_factors(trip: PricingTrip, config: Optional[PricingConfig] = None, now: Optional[datetime] = None) -> PricingFactors:
    """Per-factor breakdown of a dynamic price, for explanations and reason strings."""
    config = config or PricingConfig()
    now = now or utcnow()
    t, o, p, v = _factors(trip, config, now)
    final = price_from_factors(trip.base_price, (t, o, p, v), config)
    return PricingFactors(
        time_factor=t,
        occupancy_factor=o,
        peak_hour_factor=p,
        velocity_factor=v,
        final_price=final,
        price_change=price_adjustment(trip.price, final),
    )


def should_update_price(current_price: float, new_price: float, threshold: float = DEFAULT_UPDATE_THRESHOLD) -> bool:
    """True when the change is at least `threshold` percent (boundary inclusive)."""
    return abs(percent_change(current_price, new_price)) >= threshold


def calculate_batch_pricing(trips: Iterable[PricingTrip], config: Optional[PricingConfig] = None, now: Optional[datetime] = None) -> List[PriceQuote]:
    config = config or PricingConfig()
    now = now or utcnow()
    quotes = []
    for trip in trips:
        new_price = calculate_dynamic_price(trip, config, now)
        quotes.append(PriceQuote(
            trip_id=trip.id,
            current_price=trip.price,
            new_price=new_price,
            adjustment=price_adjustment(trip.price, new_price),
        ))
    return quotes


def describe_price_change(factors: PricingFactors) -> str:
    """Human-readable reason built from the factors that moved off neutral."""
    reasons = []
    if factors.time_factor < 1:
        reasons.append("Early bird discount")
    elif factors.time_factor > 1:
        reasons.append("Last-minute premium")

    if factors.occupancy_factor > 1:
        reasons.append("High demand")
    elif factors.occupancy_factor < 1:
        reasons.append("Low occupancy")

    if factors.peak_hour_factor > 1:
        reasons.append("Peak hour")

    if factors.velocity_factor > 1:
        reasons.append("Fast booking rate")
    elif factors.velocity_factor < 1:
        reasons.append("Slow booking rate")

    return ", ".join(reasons) if reasons else "Price optimization"
