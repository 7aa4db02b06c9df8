from sqlalchemy import String, Date, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from datetime import date, datetime, timezone
from app.db.session import Base

AVAILABILITY_STATUSES = ("available", "unavailable")

class GuideAvailability(Base):
    __tablename__ = "guide_availability"
    __table_args__ = (
        UniqueConstraint("guide_id", "date", name="uq_guide_availability_date"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    guide_id: Mapped[str] = mapped_column(String(36), ForeignKey("guides.id"), index=True)
    date: Mapped[date] = mapped_column(Date, index=True)
    status: Mapped[str] = mapped_column(String(20), default="available")  # available, unavailable
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
