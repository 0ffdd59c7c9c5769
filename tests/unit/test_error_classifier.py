from __future__ import annotations

import pytest

from rental_tax_filer.db.enums import BookingStatus
from rental_tax_filer.services.error_classifier import (
    PageSignals,
    classify,
    is_transient_message,
    read_page_signals,
)
from rental_tax_filer.testing.fakes import build_portal
from rental_tax_filer.utils.errors import DeclarationFormError, StuckStateMachineError


@pytest.mark.parametrize(
    "message",
    [
        "Maintenance window in progress",
        "Η υπηρεσία βρίσκεται σε ΣΥΝΤΗΡΗΣΗ",
        "Σε συντήρηση",
        "The service is temporarily unavailable",
        "Προσωρινά μη διαθέσιμη",
        "503 Service Unavailable",
        "Μη διαθέσιμη υπηρεσία",
    ],
)
def test_outage_phrasing_is_retryable(message):
    assert classify(message) == BookingStatus.RETRY_LATER
    assert classify(RuntimeError(message)) == BookingStatus.RETRY_LATER


@pytest.mark.parametrize(
    "error",
    [
        DeclarationFormError("Final submit button not found on the declaration form"),
        StuckStateMachineError("Could not reach declaration form after 5 transitions"),
        TimeoutError("Timeout 30000ms exceeded"),
        ValueError("total_payout must be positive"),
        "",
    ],
)
def test_everything_else_is_permanent(error):
    assert classify(error) == BookingStatus.ERROR


def test_maintenance_notice_on_page_wins():
    signals = PageSignals(maintenance_notice=True)
    assert classify(TimeoutError("Timeout 30000ms exceeded"), signals) == BookingStatus.RETRY_LATER


def test_classify_is_deterministic():
    err = RuntimeError("Locator not found")
    results = {classify(err, PageSignals()) for _ in range(10)}
    assert results == {BookingStatus.ERROR}


def test_transient_match_ignores_accents_and_case():
    assert is_transient_message("ΠΡΟΣΩΡΙΝΆ ΜΗ ΔΙΑΘΈΣΙΜΗ")
    assert not is_transient_message("Element is not attached to the DOM")


def test_read_page_signals_from_page():
    portal = build_portal(start="maintenance")
    assert read_page_signals(portal) == PageSignals(maintenance_notice=True, session_expired=False)

    portal.show("expired")
    assert read_page_signals(portal).session_expired is True


class _BrokenInspector:
    @property
    def url(self) -> str:
        raise RuntimeError("Target page, context or browser has been closed")

    def is_visible(self, selector: str) -> bool:
        raise RuntimeError("closed")

    def text_visible(self, text: str) -> bool:
        raise RuntimeError("closed")


def test_read_page_signals_never_raises():
    assert read_page_signals(_BrokenInspector()) == PageSignals()
