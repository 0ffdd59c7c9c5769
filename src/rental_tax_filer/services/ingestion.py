from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

import structlog
from pydantic import ValidationError
from sqlalchemy.orm import Session

from rental_tax_filer.db.repositories.bookings import BookingRepository
from rental_tax_filer.schemas.booking import BookingCandidate

logger = structlog.get_logger(__name__)

# Shape produced by the listing-platform scraper; used for local dry runs.
MOCK_BOOKINGS: tuple[dict[str, Any], ...] = (
    {
        "guestName": "John Doe",
        "checkIn": "2024-05-01",
        "checkOut": "2024-05-05",
        "totalPayout": "450.00",
        "platformId": "HM-12345678",
    },
    {
        "guestName": "Maria Papadopoulos",
        "checkIn": "2024-05-10",
        "checkOut": "2024-05-15",
        "totalPayout": "600.50",
        "platformId": "HM-87654321",
    },
)


@dataclass
class IngestionReport:
    inserted: list[str] = field(default_factory=list)
    duplicates: list[str] = field(default_factory=list)
    rejected: list[tuple[str, str]] = field(default_factory=list)


def _row_label(row: Any, index: int) -> str:
    if isinstance(row, Mapping):
        for key in ("platform_id", "platformId", "confirmationCode"):
            value = row.get(key)
            if value:
                return str(value)
    return f"row {index}"


def ingest_candidates(session: Session, rows: Iterable[Any]) -> IngestionReport:
    """
    What it does:
    - Validates scraped reservations and queues the new ones as PENDING bookings.

    Why it matters:
    - The scraper re-reads the same reservations every time; only the first sighting
      of a platform_id may become a declaration.

    Behavior:
    - Invalid rows (including rows that are not JSON objects) are rejected with a
      logged reason and never inserted.
    - Already stored platform_ids are counted as duplicates, never updated.
    - Flushes only; the caller's get_session() commits.
    """
    repo = BookingRepository(session)
    report = IngestionReport()

    for index, row in enumerate(rows):
        label = _row_label(row, index)
        try:
            candidate = BookingCandidate.model_validate(row)
        except ValidationError as e:
            reason = _first_error(e)
            logger.warning("booking_rejected", platform_id=label, reason=reason)
            report.rejected.append((label, reason))
            continue

        if repo.insert(candidate):
            logger.info("booking_queued", platform_id=candidate.platform_id)
            report.inserted.append(candidate.platform_id)
        else:
            logger.info("booking_duplicate_skipped", platform_id=candidate.platform_id)
            report.duplicates.append(candidate.platform_id)

    logger.info(
        "ingestion_done",
        inserted=len(report.inserted),
        duplicates=len(report.duplicates),
        rejected=len(report.rejected),
    )
    return report


def _first_error(error: ValidationError) -> str:
    errors = error.errors()
    if not errors:
        return str(error)
    first = errors[0]
    where = ".".join(str(part) for part in first.get("loc", ())) or "booking"
    return f"{where}: {first.get('msg', 'invalid value')}"
