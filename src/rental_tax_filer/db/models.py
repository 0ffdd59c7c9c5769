from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Boolean, Date, DateTime, Integer, Numeric, String, Text, false, func
from sqlalchemy.orm import Mapped, mapped_column

from rental_tax_filer.db.base import Base
from rental_tax_filer.db.enums import BookingStatus


class Booking(Base):
    __tablename__ = "bookings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    guest_name: Mapped[str] = mapped_column(Text, nullable=False)
    check_in: Mapped[date] = mapped_column(Date, nullable=False)
    check_out: Mapped[date] = mapped_column(Date, nullable=False)
    total_payout: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    # Platform reservation code; the de-duplication key for ingestion and filing.
    platform_id: Mapped[str] = mapped_column(Text, nullable=False, unique=True, index=True)

    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=BookingStatus.PENDING.value,
        server_default=BookingStatus.PENDING.value,
        index=True,
    )
    audit_evidence_path: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    is_cancelled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    cancellation_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=True
    )
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
