from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.dealership.models import Base

if TYPE_CHECKING:
    from app.dealership.models import User
    from app.dealership.modules.inventory.models import Car


class Purchase(Base):
    __tablename__ = "purchases"
    __table_args__ = (
        UniqueConstraint("car_id", name="uq_purchases_car_id"),
        Index("idx_purchases_user", "user_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    car_id: Mapped[int] = mapped_column(ForeignKey("cars.id", ondelete="RESTRICT"), nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    # Price at the moment of sale; the car's list price may change afterwards.
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    # Buyer contact / delivery details
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    phone: Mapped[str] = mapped_column(String(32), nullable=False)
    address: Mapped[str] = mapped_column(String(512), nullable=False)
    city: Mapped[str] = mapped_column(String(128), nullable=False)
    state: Mapped[str] = mapped_column(String(64), nullable=False)
    zip_code: Mapped[str] = mapped_column(String(16), nullable=False)

    # Only the last four card digits are kept.
    card_last4: Mapped[str] = mapped_column(String(4), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    car: Mapped["Car"] = relationship("Car", back_populates="purchase", lazy="selectin")
    user: Mapped["User"] = relationship("User", lazy="selectin")
