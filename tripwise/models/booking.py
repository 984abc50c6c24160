from sqlalchemy import String, Integer, DateTime, Float
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from tripwise.db.session import Base

# Bookings that hold a seat for pricing and occupancy purposes
ACTIVE_BOOKING_STATUSES = ("CONFIRMED", "PENDING")

class Booking(Base):
    __tablename__ = "bookings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    booking_ref: Mapped[str] = mapped_column(String(20), unique=True, index=True)

    trip_id: Mapped[str] = mapped_column(String(36), index=True)
    user_id: Mapped[str] = mapped_column(String(36), index=True)  # booker

    seat_count: Mapped[int] = mapped_column(Integer, default=1)
    total_amount: Mapped[float] = mapped_column(Float, default=0)

    status: Mapped[str] = mapped_column(String(30), default="PENDING")  # PENDING, CONFIRMED, CANCELLED, COMPLETED

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
