"""Tests for the dynamic pricing model."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime

import pytest

from tripwise.core.errors import PreconditionViolation
from tripwise.engine import pricing
from tripwise.engine.pricing import PricingConfig

from conftest import NOW, make_pricing_trip


def test_last_minute_high_demand_peak_trip_is_capped():
    trip = make_pricing_trip(hours_to_departure=2, booked=45)

    factors = pricing.get_pricing_factors(trip, PricingConfig(), NOW)

    assert factors.time_factor == 1.25
    assert factors.occupancy_factor == 1.3
    assert factors.peak_hour_factor == 1.15
    assert factors.velocity_factor == 1.0
    assert factors.final_price == 1800
    assert factors.price_change == 50.0
    assert pricing.calculate_dynamic_price(trip, PricingConfig(), NOW) == 1800


def test_early_bird_low_demand_is_held_at_the_floor():
    # raw 1200 * 0.85 * 0.8 = 816 sits under the default 0.7 floor (840)
    trip = make_pricing_trip(hours_to_departure=72, booked=5, age_hours=2)

    assert pricing.calculate_dynamic_price(trip, PricingConfig(), NOW) == 840


def test_early_bird_low_demand_rounds_to_nearest_five_inside_bounds():
    trip = make_pricing_trip(hours_to_departure=72, booked=5, age_hours=2)
    config = PricingConfig.from_overrides({"maxPriceDecrease": 0.6})

    factors = pricing.get_pricing_factors(trip, config, NOW)

    assert (factors.time_factor, factors.occupancy_factor, factors.peak_hour_factor, factors.velocity_factor) == (
        0.85, 0.8, 1.0, 1.0
    )
    assert factors.final_price == 815


@pytest.mark.parametrize(
    "hours, expected",
    [
        (48, 1.0),      # threshold itself is neutral
        (48.5, 0.85),
        (6, 1.0),
        (5.5, 1.25),
        (24, 1.0),
    ],
)
def test_time_factor_thresholds_are_strict(hours, expected):
    trip = make_pricing_trip(hours_to_departure=hours)
    assert pricing.time_factor(trip, PricingConfig(), NOW) == expected


@pytest.mark.parametrize(
    "booked, expected",
    [(35, 1.0), (36, 1.3), (15, 1.0), (14, 0.8), (25, 1.0)],
)
def test_occupancy_factor_bands(booked, expected):
    trip = make_pricing_trip(booked=booked)
    assert pricing.occupancy_factor(trip, PricingConfig()) == expected


@pytest.mark.parametrize(
    "hours, expected",
    [
        (1, 1.15),    # 07:00
        (4, 1.15),    # 10:00, end is inclusive
        (5, 1.0),     # 11:00
        (11, 1.15),   # 17:00
        (14, 1.15),   # 20:00
        (15, 1.0),    # 21:00
    ],
)
def test_peak_hour_intervals_are_inclusive(hours, expected):
    trip = make_pricing_trip(hours_to_departure=hours)
    assert pricing.peak_hour_factor(trip, PricingConfig()) == expected


def test_peak_hour_uses_configured_timezone():
    # 06:00 UTC + 2h = 08:00 UTC = 13:45 in Kathmandu
    trip = make_pricing_trip(hours_to_departure=2)
    assert pricing.peak_hour_factor(trip, PricingConfig(timezone="UTC")) == 1.15
    assert pricing.peak_hour_factor(trip, PricingConfig(timezone="Asia/Kathmandu")) == 1.0


@pytest.mark.parametrize(
    "age, booked, expected",
    [
        (10, 20, 1.1),    # fresh and selling
        (10, 10, 1.0),    # fresh, exactly 20% is not > 0.2
        (80, 5, 0.95),    # stale and empty
        (80, 10, 1.0),
        (48, 5, 1.0),
    ],
)
def test_velocity_factor(age, booked, expected):
    trip = make_pricing_trip(age_hours=age, booked=booked)
    assert pricing.velocity_factor(trip, NOW) == expected


def test_neutral_trip_keeps_its_price():
    trip = make_pricing_trip()
    assert pricing.calculate_dynamic_price(trip, PricingConfig(), NOW) == 1200


def test_base_price_is_the_stored_original():
    trip = make_pricing_trip(price=1500, original_price=1200)

    factors = pricing.get_pricing_factors(trip, PricingConfig(), NOW)

    assert factors.final_price == 1200
    assert factors.price_change == -20.0


def test_zero_base_price_passes_through():
    trip = make_pricing_trip(price=0, hours_to_departure=2, booked=45)
    assert pricing.calculate_dynamic_price(trip, PricingConfig(), NOW) == 0


def test_zero_seat_capacity_is_rejected():
    trip = make_pricing_trip(total_seats=0, booked=0)
    with pytest.raises(PreconditionViolation):
        pricing.calculate_dynamic_price(trip, PricingConfig(), NOW)


@pytest.mark.parametrize("price", [1200, 1203, 999, 47])
@pytest.mark.parametrize("hours, booked, age", [(2, 45, 30), (72, 5, 80), (30, 20, 10), (20, 0, 100), (3, 50, 1)])
def test_price_is_bounded_and_a_multiple_of_five(price, hours, booked, age):
    config = PricingConfig()
    trip = make_pricing_trip(price=price, hours_to_departure=hours, booked=booked, age_hours=age)

    result = pricing.calculate_dynamic_price(trip, config, NOW)

    assert price * config.max_price_decrease <= result <= price * config.max_price_increase
    assert result % 5 == 0


@pytest.mark.parametrize("hours, booked, age", [(2, 45, 30), (72, 5, 80), (30, 20, 10), (100, 40, 2)])
def test_factors_reproduce_the_direct_price(hours, booked, age):
    config = PricingConfig()
    trip = make_pricing_trip(hours_to_departure=hours, booked=booked, age_hours=age)

    f = pricing.get_pricing_factors(trip, config, NOW)
    recomputed = pricing.price_from_factors(
        trip.base_price, (f.time_factor, f.occupancy_factor, f.peak_hour_factor, f.velocity_factor), config
    )

    assert recomputed == f.final_price == pricing.calculate_dynamic_price(trip, config, NOW)


def test_should_update_price_boundary_is_inclusive():
    assert pricing.should_update_price(100, 102, 2) is True
    assert pricing.should_update_price(100, 103, 2) is True
    assert pricing.should_update_price(100, 101.9, 2) is False
    assert pricing.should_update_price(100, 97, 2) is True
    assert pricing.should_update_price(100, 101) is False


def test_should_update_price_rejects_zero_current_price():
    with pytest.raises(PreconditionViolation):
        pricing.should_update_price(0, 100)


def test_batch_pricing_reports_adjustments():
    trips = [
        make_pricing_trip(id="a", hours_to_departure=2, booked=45),
        make_pricing_trip(id="b"),
    ]

    quotes = pricing.calculate_batch_pricing(trips, PricingConfig(), NOW)

    assert [(q.trip_id, q.current_price, q.new_price, q.adjustment) for q in quotes] == [
        ("a", 1200, 1800, 50.0),
        ("b", 1200, 1200, 0.0),
    ]


def test_config_merges_camel_and_snake_case_over_defaults():
    cfg = PricingConfig.from_overrides({"peakHourMultiplier": 1.3, "low_demand_discount": 0.75,
                                        "peakHours": [{"start": 11, "end": 12}]})

    assert cfg.peak_hour_multiplier == 1.3
    assert cfg.low_demand_discount == 0.75
    assert cfg.peak_hours == ((11, 12),)
    assert cfg.early_bird_discount == 0.85


@pytest.mark.parametrize(
    "overrides",
    [
        {"maxPriceDecrease": 1.6},
        {"maxPriceIncrease": 0.5},
        {"earlyBirdDiscount": 0},
        {"lastMinuteThreshold": -1},
        {"peakHours": [{"start": 20, "end": 17}]},
        {"peakHours": [(7, 25)]},
        {"surgeMultiplier": 2},
    ],
)
def test_malformed_config_fails_fast(overrides):
    with pytest.raises(PreconditionViolation):
        PricingConfig.from_overrides(overrides)


def test_describe_price_change():
    f = pricing.PricingFactors(0.85, 0.8, 1.0, 0.95, 0, 0)
    assert pricing.describe_price_change(f) == "Early bird discount, Low occupancy, Slow booking rate"

    f = pricing.PricingFactors(1.25, 1.3, 1.15, 1.1, 0, 0)
    assert pricing.describe_price_change(f) == "Last-minute premium, High demand, Peak hour, Fast booking rate"

    f = pricing.PricingFactors(1.0, 1.0, 1.0, 1.0, 0, 0)
    assert pricing.describe_price_change(f) == "Price optimization"


def naive(trip, **times):
    """Same trip with its datetimes stripped of tzinfo (or replaced by `times`)."""
    return replace(
        trip,
        departure_time=times.get("departure_time", trip.departure_time.replace(tzinfo=None)),
        arrival_time=times.get("arrival_time", trip.arrival_time.replace(tzinfo=None)),
        created_at=times.get("created_at", trip.created_at.replace(tzinfo=None)),
    )


def test_naive_datetimes_are_read_as_utc_without_a_zone():
    trip = make_pricing_trip(hours_to_departure=2, booked=45, age_hours=10)
    config = PricingConfig(peak_hours=())

    assert pricing.calculate_dynamic_price(naive(trip), config, NOW) == pricing.calculate_dynamic_price(trip, config, NOW)
    factors = pricing.get_pricing_factors(naive(trip), config, NOW)
    assert (factors.time_factor, factors.velocity_factor) == (1.25, 1.1)


def test_naive_departure_is_local_to_the_configured_zone():
    # NOW is 11:45 in Kathmandu; 15:00 local is 3h15m away, 15:00 UTC would be 9h away
    trip = naive(make_pricing_trip(), departure_time=datetime(2026, 3, 2, 15, 0))

    assert pricing.time_factor(trip, PricingConfig(timezone="Asia/Kathmandu"), NOW) == 1.25
    assert pricing.time_factor(trip, PricingConfig(), NOW) == 1.0


def test_naive_trips_price_in_a_batch():
    trips = [naive(make_pricing_trip(id="a", hours_to_departure=2, booked=45)), make_pricing_trip(id="b")]

    quotes = pricing.calculate_batch_pricing(trips, PricingConfig(timezone="UTC"), NOW)

    assert [(q.trip_id, q.new_price) for q in quotes] == [("a", 1800), ("b", 1200)]


@pytest.mark.parametrize("price", [1, 2, 3])
def test_base_price_with_no_multiple_of_five_in_bounds_is_rejected(price):
    trip = make_pricing_trip(price=price)
    with pytest.raises(PreconditionViolation):
        pricing.calculate_dynamic_price(trip, PricingConfig(), NOW)


def test_smallest_price_with_a_multiple_of_five_in_bounds():
    # bounds 3.5..7.5
    assert pricing.calculate_dynamic_price(make_pricing_trip(price=5), PricingConfig(), NOW) == 5


def test_zero_current_price_reports_no_change():
    trip = make_pricing_trip(price=0, hours_to_departure=2, booked=45)

    factors = pricing.get_pricing_factors(trip, PricingConfig(), NOW)
    quotes = pricing.calculate_batch_pricing([trip], PricingConfig(), NOW)

    assert (factors.final_price, factors.price_change) == (0, 0.0)
    assert (quotes[0].new_price, quotes[0].adjustment) == (0, 0.0)
