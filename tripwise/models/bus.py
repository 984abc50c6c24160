from sqlalchemy import String, Integer, DateTime
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from tripwise.db.session import Base

class Bus(Base):
    __tablename__ = "buses"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    operator_id: Mapped[str] = mapped_column(String(36), index=True)
    bus_number: Mapped[str] = mapped_column(String(30), unique=True)
    bus_type: Mapped[str] = mapped_column(String(60), default="Standard")  # Deluxe, AC Sleeper, Tourist ...
    total_seats: Mapped[int] = mapped_column(Integer)
    # comma-separated: WiFi,AC,Charging Port
    facilities: Mapped[str] = mapped_column(String(255), default="")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def facility_list(self) -> list[str]:
        return [f.strip() for f in (self.facilities or "").split(",") if f.strip()]
