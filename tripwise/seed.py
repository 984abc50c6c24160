import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import Session
from sqlalchemy import text
from sqlalchemy.exc import OperationalError, ProgrammingError

from tripwise.db.session import SessionLocal
from tripwise.models.booking import Booking
from tripwise.models.bus import Bus
from tripwise.models.operator import Operator
from tripwise.models.route import Route
from tripwise.models.trip import Trip

ROUTES = [
    ("Kathmandu", "Pokhara", 200.0, 420),
    ("Kathmandu", "Chitwan", 160.0, 300),
    ("Pokhara", "Lumbini", 190.0, 480),
]
OPERATORS = [("Himalayan Express", True), ("Valley Travels", False)]
BUSES = [
    ("BA-1-KHA-1234", "Deluxe", 40, "WiFi,AC,Charging Port"),
    ("BA-2-KHA-5678", "AC Sleeper", 30, "AC,Blanket,Charging Port"),
    ("GA-1-KHA-4321", "Tourist", 35, "AC,Snacks"),
]
DEPARTURE_HOURS = (7, 13, 19)


def _new_id() -> str:
    return str(uuid.uuid4())


def run(db: Session | None = None):
    if db is None:
        db = SessionLocal()
    try:
        try:
            db.execute(text("SELECT 1 FROM trips LIMIT 1"))
        except (ProgrammingError, OperationalError):
            db.rollback()
            print("[seed] trips table not found yet. Skipping seeding.")
            return
        if db.query(Trip).first():
            return

        operators = []
        for name, verified in OPERATORS:
            op = Operator(id=_new_id(), company_name=name, is_verified=verified)
            db.add(op)
            operators.append(op)

        buses = []
        for i, (number, bus_type, seats, facilities) in enumerate(BUSES):
            bus = Bus(id=_new_id(), operator_id=operators[i % len(operators)].id, bus_number=number,
                      bus_type=bus_type, total_seats=seats, facilities=facilities)
            db.add(bus)
            buses.append(bus)

        routes = []
        for origin, destination, distance, duration in ROUTES:
            r = Route(id=_new_id(), origin=origin, destination=destination, distance=distance, duration=duration)
            db.add(r)
            routes.append(r)

        today = datetime.now(timezone.utc).replace(minute=0, second=0, microsecond=0)
        for day in range(1, 6):
            for i, route in enumerate(routes):
                for j, hour in enumerate(DEPARTURE_HOURS):
                    bus = buses[(i + j) % len(buses)]
                    dep = today.replace(hour=hour) + timedelta(days=day)
                    trip = Trip(
                        id=_new_id(),
                        bus_id=bus.id,
                        route_id=route.id,
                        operator_id=bus.operator_id,
                        departure_time=dep,
                        arrival_time=dep + timedelta(minutes=route.duration),
                        price=1200 + 150 * i,
                        status="SCHEDULED",
                    )
                    db.add(trip)
                    # Spread demand so both discount and premium paths show up
                    for k in range((day * 7 + i * 5 + j * 3) % bus.total_seats):
                        db.add(Booking(
                            id=_new_id(),
                            booking_ref=f"TW-{uuid.uuid4().hex[:8].upper()}",
                            trip_id=trip.id,
                            user_id="seed-user",
                            seat_count=1,
                            total_amount=trip.price,
                            status="CONFIRMED" if k % 3 else "PENDING",
                        ))
        db.commit()
        print("[seed] demo routes, buses and trips created.")
    finally:
        db.close()
