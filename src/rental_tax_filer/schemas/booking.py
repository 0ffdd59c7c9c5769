from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from rental_tax_filer.db.enums import BookingStatus
from rental_tax_filer.utils.errors import InvalidBookingError


def check_booking_invariants(
    *,
    guest_name: str,
    check_in: date,
    check_out: date,
    total_payout: Decimal,
    is_cancelled: bool,
    cancellation_date: date | None,
) -> None:
    """
    What it does:
    - Enforces the fiscal invariants a booking must satisfy before it is stored or filed.

    Why it matters:
    - A corrupt amount or date on a tax declaration is worse than no declaration.

    Behavior:
    - Raises InvalidBookingError (a ValueError) with the first violation found.
    """
    if not guest_name or not guest_name.strip():
        raise InvalidBookingError("guest_name must not be empty")
    if check_in >= check_out:
        raise InvalidBookingError(f"check_in {check_in} must be before check_out {check_out}")
    if not isinstance(total_payout, Decimal) or not total_payout.is_finite():
        raise InvalidBookingError(f"total_payout {total_payout!r} is not a finite amount")
    if total_payout <= 0:
        raise InvalidBookingError(f"total_payout must be positive, got {total_payout}")
    if is_cancelled and cancellation_date is None:
        raise InvalidBookingError("cancellation_date is required for a cancelled booking")
    if not is_cancelled and cancellation_date is not None:
        raise InvalidBookingError("cancellation_date is only allowed for a cancelled booking")


class BookingCandidate(BaseModel):
    """Ingestion boundary: one reservation as produced by the listing-platform scraper."""

    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    guest_name: str = Field(validation_alias=AliasChoices("guest_name", "guestName"))
    check_in: date = Field(validation_alias=AliasChoices("check_in", "checkIn"))
    check_out: date = Field(validation_alias=AliasChoices("check_out", "checkOut"))
    total_payout: Decimal = Field(
        validation_alias=AliasChoices("total_payout", "totalPayout"), decimal_places=2
    )
    platform_id: str = Field(
        min_length=1,
        validation_alias=AliasChoices("platform_id", "platformId", "confirmationCode"),
    )
    is_cancelled: bool = Field(
        default=False, validation_alias=AliasChoices("is_cancelled", "isCancelled")
    )
    cancellation_date: date | None = Field(
        default=None, validation_alias=AliasChoices("cancellation_date", "cancellationDate")
    )

    @field_validator("total_payout", mode="before")
    @classmethod
    def reject_bool_payout(cls, v):
        if isinstance(v, bool):
            raise ValueError("total_payout must be a number")
        return v

    @field_validator("cancellation_date", mode="before")
    @classmethod
    def blank_date_is_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @model_validator(mode="after")
    def validate_invariants(self):
        check_booking_invariants(
            guest_name=self.guest_name,
            check_in=self.check_in,
            check_out=self.check_out,
            total_payout=self.total_payout,
            is_cancelled=self.is_cancelled,
            cancellation_date=self.cancellation_date,
        )
        return self


@dataclass(frozen=True)
class BookingRecord:
    """
    Detached snapshot of a stored booking.

    The pipeline works on these; they do not change when the row does.
    """

    id: int
    guest_name: str
    check_in: date
    check_out: date
    total_payout: Decimal
    platform_id: str
    status: BookingStatus
    is_cancelled: bool = False
    cancellation_date: date | None = None
    audit_evidence_path: str | None = None
    last_error: str | None = None
    created_at: datetime | None = None

    @classmethod
    def from_model(cls, row) -> BookingRecord:
        payout = row.total_payout
        if payout is not None and not isinstance(payout, Decimal):
            payout = Decimal(str(payout))
        return cls(
            id=row.id,
            guest_name=row.guest_name,
            check_in=row.check_in,
            check_out=row.check_out,
            total_payout=payout,
            platform_id=row.platform_id,
            status=BookingStatus(row.status),
            is_cancelled=bool(row.is_cancelled),
            cancellation_date=row.cancellation_date,
            audit_evidence_path=row.audit_evidence_path,
            last_error=row.last_error,
            created_at=row.created_at,
        )

    def validate(self) -> None:
        check_booking_invariants(
            guest_name=self.guest_name,
            check_in=self.check_in,
            check_out=self.check_out,
            total_payout=self.total_payout,
            is_cancelled=self.is_cancelled,
            cancellation_date=self.cancellation_date,
        )
