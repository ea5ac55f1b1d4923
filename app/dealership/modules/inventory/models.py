from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.dealership.models import Base

if TYPE_CHECKING:
    from app.dealership.modules.purchases.models import Purchase
    from app.dealership.modules.reviews.models import Review
    from app.dealership.modules.test_drives.models import TestDriveBooking


class Car(Base):
    __tablename__ = "cars"
    __table_args__ = (
        Index("idx_cars_status", "status"),
        Index("idx_cars_make_model", "make", "model"),
        Index("idx_cars_featured", "featured"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    make: Mapped[str] = mapped_column(String(64), nullable=False)
    model: Mapped[str] = mapped_column(String(128), nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    mileage: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    color: Mapped[str] = mapped_column(String(64), nullable=False)
    fuel_type: Mapped[str] = mapped_column(String(32), nullable=False)
    transmission: Mapped[str] = mapped_column(String(32), nullable=False)
    body_type: Mapped[str] = mapped_column(String(32), nullable=False)
    seats: Mapped[int | None] = mapped_column(Integer, nullable=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)

    status: Mapped[str] = mapped_column(String(32), nullable=False, default="AVAILABLE")  # AVAILABLE, UNAVAILABLE, SOLD
    featured: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    purchase: Mapped["Purchase | None"] = relationship(
        "Purchase",
        back_populates="car",
        uselist=False,
        lazy="selectin",
    )
    reviews: Mapped[list["Review"]] = relationship(
        "Review",
        back_populates="car",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    test_drives: Mapped[list["TestDriveBooking"]] = relationship(
        "TestDriveBooking",
        back_populates="car",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def title(self) -> str:
        return f"{self.year} {self.make} {self.model}"
