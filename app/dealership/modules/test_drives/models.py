from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING

from sqlalchemy import Date, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.dealership.models import Base

if TYPE_CHECKING:
    from app.dealership.models import User
    from app.dealership.modules.inventory.models import Car


class TestDriveBooking(Base):
    __test__ = False  # not a pytest test class
    __tablename__ = "test_drive_bookings"
    __table_args__ = (
        Index("idx_test_drives_slot", "car_id", "booking_date", "start_time"),
        Index("idx_test_drives_user", "user_id"),
        Index("idx_test_drives_status", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    car_id: Mapped[int] = mapped_column(ForeignKey("cars.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    booking_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)  # "HH:MM", zero padded
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)

    status: Mapped[str] = mapped_column(String(32), nullable=False, default="PENDING")  # PENDING, CONFIRMED, CANCELLED, COMPLETED
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    car: Mapped["Car"] = relationship("Car", back_populates="test_drives", lazy="selectin")
    user: Mapped["User"] = relationship("User", lazy="selectin")
