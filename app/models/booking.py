from sqlalchemy import String, Integer, Date, DateTime, ForeignKey, Index, text
from sqlalchemy.orm import Mapped, mapped_column
from datetime import date, datetime, timezone
from app.db.session import Base

BOOKING_STATUSES = ("pending", "confirmed", "completed", "cancelled")
ACTIVE_STATUSES = ("confirmed", "pending")

# One guide per date among active bookings; the assignment engine checks first,
# this index settles races between concurrent admins.
_ACTIVE_ASSIGNMENT = "guide_id IS NOT NULL AND status IN ('confirmed', 'pending')"

class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        Index(
            "uq_bookings_guide_date_active",
            "guide_id",
            "travel_date",
            unique=True,
            postgresql_where=text(_ACTIVE_ASSIGNMENT),
            sqlite_where=text(_ACTIVE_ASSIGNMENT),
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    booking_ref: Mapped[str] = mapped_column(String(20), unique=True, index=True)

    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), index=True)  # tourist account
    package_id: Mapped[str] = mapped_column(String(36), ForeignKey("tour_packages.id"), index=True)
    travel_date: Mapped[date] = mapped_column(Date, index=True)
    travelers: Mapped[int] = mapped_column(Integer, default=1)
    total_price: Mapped[int] = mapped_column(Integer, default=0)

    status: Mapped[str] = mapped_column(String(20), default="confirmed", index=True)  # pending, confirmed, completed, cancelled

    guide_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("guides.id"), nullable=True, index=True)
    assigned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    assigned_by: Mapped[str | None] = mapped_column(String(36), nullable=True)  # admin user id

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
