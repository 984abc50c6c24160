from sqlalchemy import String, DateTime, Float
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from tripwise.db.session import Base

class Trip(Base):
    __tablename__ = "trips"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    bus_id: Mapped[str] = mapped_column(String(36), index=True)
    route_id: Mapped[str] = mapped_column(String(36), index=True)
    operator_id: Mapped[str] = mapped_column(String(36), index=True)

    departure_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    arrival_time: Mapped[datetime] = mapped_column(DateTime(timezone=True))

    price: Mapped[float] = mapped_column(Float)
    # Baseline captured on the first dynamic adjustment; cleared on revert
    original_price: Mapped[float] = mapped_column(Float, nullable=True)

    status: Mapped[str] = mapped_column(String(20), default="SCHEDULED", index=True)  # SCHEDULED, IN_PROGRESS, COMPLETED, CANCELLED

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
