from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
from pydantic import ValidationError

from rental_tax_filer.db.enums import BookingStatus
from rental_tax_filer.schemas.booking import BookingCandidate, BookingRecord
from rental_tax_filer.utils.errors import InvalidBookingError

SCRAPED = {
    "guestName": "  Maria Papadopoulos ",
    "checkIn": "2024-05-10",
    "checkOut": "2024-05-15",
    "totalPayout": "600.50",
    "platformId": "HM-87654321",
}


def test_candidate_accepts_scraper_shape():
    c = BookingCandidate.model_validate(SCRAPED)

    assert c.guest_name == "Maria Papadopoulos"
    assert c.check_in == date(2024, 5, 10)
    assert c.check_out == date(2024, 5, 15)
    assert c.total_payout == Decimal("600.50")
    assert c.platform_id == "HM-87654321"
    assert c.is_cancelled is False
    assert c.cancellation_date is None


def test_candidate_accepts_confirmation_code_as_platform_id():
    row = {k: v for k, v in SCRAPED.items() if k != "platformId"}
    row["confirmationCode"] = "HMABC123"
    assert BookingCandidate.model_validate(row).platform_id == "HMABC123"


@pytest.mark.parametrize(
    "overrides",
    [
        {"checkOut": "2024-05-10"},  # same day as check-in
        {"checkOut": "2024-05-01"},  # before check-in
        {"totalPayout": "0"},
        {"totalPayout": "-12.00"},
        {"totalPayout": "NaN"},
        {"totalPayout": "12.345"},
        {"totalPayout": True},
        {"totalPayout": "abc"},
        {"guestName": "   "},
        {"platformId": ""},
        {"isCancelled": True},  # no cancellation date
        {"cancellationDate": "2024-05-01"},  # date without cancellation
    ],
)
def test_candidate_rejects_invalid_rows(overrides):
    with pytest.raises(ValidationError):
        BookingCandidate.model_validate({**SCRAPED, **overrides})


def test_blank_cancellation_date_reads_as_none():
    c = BookingCandidate.model_validate({**SCRAPED, "cancellationDate": "  "})
    assert c.cancellation_date is None


def test_cancelled_candidate_with_date():
    c = BookingCandidate.model_validate(
        {**SCRAPED, "isCancelled": True, "cancellationDate": "2024-05-02"}
    )
    assert c.is_cancelled is True
    assert c.cancellation_date == date(2024, 5, 2)


def _record(**overrides) -> BookingRecord:
    data = dict(
        id=1,
        guest_name="John Doe",
        check_in=date(2024, 5, 1),
        check_out=date(2024, 5, 5),
        total_payout=Decimal("450.00"),
        platform_id="HM-12345678",
        status=BookingStatus.PENDING,
    )
    data.update(overrides)
    return BookingRecord(**data)


def test_record_validate_accepts_valid_snapshot():
    _record().validate()


@pytest.mark.parametrize("payout", [Decimal("0"), Decimal("-1"), Decimal("NaN"), Decimal("Infinity")])
def test_record_validate_rejects_bad_payout(payout):
    with pytest.raises(InvalidBookingError):
        _record(total_payout=payout).validate()
