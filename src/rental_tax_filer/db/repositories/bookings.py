from __future__ import annotations

from collections.abc import Iterable
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import func, select, update

from rental_tax_filer.db.enums import BookingStatus
from rental_tax_filer.db.models import Booking
from rental_tax_filer.db.repositories.base import BaseRepository
from rental_tax_filer.schemas.booking import BookingCandidate, BookingRecord, check_booking_invariants
from rental_tax_filer.utils.errors import ConflictError, NotFoundError


def _normalize_booking_status(status: BookingStatus | str) -> str:
    """
    What it does:
    - Converts status input into the exact stored string.

    Why it matters:
    - The pipeline selects work by status; a typo would silently drop bookings from the queue.

    Behavior:
    - If passed a BookingStatus enum -> returns its value.
    - If passed a string -> validates it matches one of the allowed values.
    - Otherwise -> raises ValueError before any DB operation.
    """
    if isinstance(status, BookingStatus):
        return status.value

    allowed = {s.value for s in BookingStatus}
    if status not in allowed:
        raise ValueError(f"Invalid booking status '{status}'. Allowed: {sorted(allowed)}")
    return status


class BookingRepository(BaseRepository):
    """
    Durable, idempotent queue of bookings awaiting a tax declaration.

    Flushes only; commit/rollback belong to the caller's get_session() boundary.
    """

    def insert(self, candidate: BookingCandidate) -> bool:
        """
        What it does:
        - Inserts a booking unless its platform_id is already stored.

        Why it matters:
        - Ingestion re-reads the same reservations on every run; duplicates must not
          create a second row (and so a second declaration).

        Behavior:
        - Returns True when a row was created, False on duplicate. Never raises on duplicate.
        - Flushes each insert so a repeated platform_id in the same batch is seen as a duplicate.
        """
        if self.get_by_platform_id(candidate.platform_id) is not None:
            return False

        booking = Booking(
            guest_name=candidate.guest_name,
            check_in=candidate.check_in,
            check_out=candidate.check_out,
            total_payout=candidate.total_payout,
            platform_id=candidate.platform_id,
            is_cancelled=candidate.is_cancelled,
            cancellation_date=candidate.cancellation_date,
            status=BookingStatus.PENDING.value,
        )
        self.session.add(booking)
        self.session.flush()
        return True

    def get(self, booking_id: int) -> Booking:
        booking = self.session.get(Booking, booking_id)
        if not booking:
            raise NotFoundError(f"Booking {booking_id} not found")
        return booking

    def get_by_platform_id(self, platform_id: str) -> Booking | None:
        stmt = select(Booking).where(Booking.platform_id == platform_id)
        return self.session.scalars(stmt).first()

    def list_by_status(self, status: BookingStatus | str) -> list[BookingRecord]:
        """
        What it does:
        - Returns every booking currently in `status`, oldest first.

        Why it matters:
        - This is the pipeline's work queue. Insertion order keeps runs reproducible
          and audit trails easy to follow.

        Behavior:
        - Returns detached BookingRecord snapshots, not live rows.
        """
        return self.list_by_statuses([status])

    def list_by_statuses(self, statuses: Iterable[BookingStatus | str]) -> list[BookingRecord]:
        values = [_normalize_booking_status(s) for s in statuses]
        stmt = select(Booking).where(Booking.status.in_(values)).order_by(Booking.id.asc())
        return [BookingRecord.from_model(b) for b in self.session.scalars(stmt).all()]

    def count_by_status(self) -> dict[str, int]:
        stmt = select(Booking.status, func.count(Booking.id)).group_by(Booking.status)
        return {status: count for status, count in self.session.execute(stmt).all()}

    def update_status(
        self,
        booking_id: int,
        status: BookingStatus | str,
        evidence_path: str | None = None,
        *,
        error: str | None = None,
    ) -> None:
        """
        What it does:
        - Writes the outcome of one processing attempt.

        Why it matters:
        - This is the only mutation the pipeline performs; it must not touch booking data.

        Behavior:
        - Single-row UPDATE of status, last_error and updated_at.
        - audit_evidence_path is only overwritten when a new evidence_path is given.
        - A SUBMITTED booking cannot be moved to another status (ConflictError).
        - Raises NotFoundError for an unknown id.
        """
        value = _normalize_booking_status(status)

        values = {
            "status": value,
            "last_error": error,
            "updated_at": datetime.now(timezone.utc),
        }
        # An attempt without a screenshot keeps pointing at the previous one.
        if evidence_path is not None:
            values["audit_evidence_path"] = evidence_path

        stmt = (
            update(Booking)
            .where(Booking.id == booking_id)
            .where(
                (Booking.status != BookingStatus.SUBMITTED.value)
                | (Booking.status == value)
            )
            .values(**values)
            .execution_options(synchronize_session="evaluate")
        )
        result = self.session.execute(stmt)
        if result.rowcount == 1:
            self.session.flush()
            return

        current = self.get(booking_id)
        raise ConflictError(
            f"Booking {booking_id} is {current.status}; refusing to change it to {value}"
        )

    def record_cancellation(
        self,
        platform_id: str,
        *,
        cancellation_date: date,
        refund_amount: Decimal,
    ) -> Booking:
        """
        What it does:
        - Marks a stored booking as cancelled on the platform and re-queues it.

        Why it matters:
        - A cancellation must be declared with the refund amount instead of the rent.

        Behavior:
        - Sets is_cancelled, cancellation_date and total_payout=refund_amount; status -> PENDING.
        - Refuses SUBMITTED bookings: an already filed declaration needs a human amendment.
        """
        booking = self.get_by_platform_id(platform_id)
        if booking is None:
            raise NotFoundError(f"Booking with platform_id {platform_id} not found")
        if booking.status == BookingStatus.SUBMITTED.value:
            raise ConflictError(
                f"Booking {platform_id} was already declared; amend the filed declaration manually"
            )

        check_booking_invariants(
            guest_name=booking.guest_name,
            check_in=booking.check_in,
            check_out=booking.check_out,
            total_payout=refund_amount,
            is_cancelled=True,
            cancellation_date=cancellation_date,
        )

        booking.is_cancelled = True
        booking.cancellation_date = cancellation_date
        booking.total_payout = refund_amount
        booking.status = BookingStatus.PENDING.value
        booking.updated_at = datetime.now(timezone.utc)
        self.session.flush()
        return booking
