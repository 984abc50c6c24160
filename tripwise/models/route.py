from sqlalchemy import String, DateTime, Boolean, Float, Integer
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from tripwise.db.session import Base

class Route(Base):
    __tablename__ = "routes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    origin: Mapped[str] = mapped_column(String(120), index=True)
    destination: Mapped[str] = mapped_column(String(120), index=True)
    distance: Mapped[float] = mapped_column(Float, nullable=True)   # km
    duration: Mapped[int] = mapped_column(Integer, nullable=True)   # minutes
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
