from __future__ import annotations

import unicodedata
from dataclasses import dataclass

import structlog

from rental_tax_filer.db.enums import BookingStatus
from rental_tax_filer.portal.form_config import DEFAULT_LAYOUT, PortalLayout
from rental_tax_filer.portal.page_detector import has_maintenance_notice, has_session_expired
from rental_tax_filer.services.portal_client import PageInspector

logger = structlog.get_logger(__name__)

# Stored accent-free and lowercase; compared against normalized error text.
TRANSIENT_PHRASES: tuple[str, ...] = (
    "maintenance",
    "συντηρηση",
    "temporarily unavailable",
    "προσωρινα μη διαθεσιμ",
    "service unavailable",
    "μη διαθεσιμη υπηρεσια",
)


@dataclass(frozen=True)
class PageSignals:
    maintenance_notice: bool = False
    session_expired: bool = False


def _normalize(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", text)
    stripped = "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")
    return stripped.casefold()


def is_transient_message(message: str) -> bool:
    normalized = _normalize(message)
    return any(phrase in normalized for phrase in TRANSIENT_PHRASES)


def classify(error: BaseException | str, page_signals: PageSignals | None = None) -> BookingStatus:
    """
    What it does:
    - Decides whether a failed attempt is safe to retry on a later run.

    Why it matters:
    - Retrying a malformed fiscal submission is unacceptable, so only failures
      positively identified as a portal outage are retried.

    Behavior:
    - RETRY_LATER if the page shows a maintenance notice or the error text matches
      known outage phrasing (Greek or English, accent and case insensitive).
    - ERROR otherwise. Pure: same input, same answer.
    """
    if page_signals is not None and page_signals.maintenance_notice:
        return BookingStatus.RETRY_LATER

    message = error if isinstance(error, str) else f"{type(error).__name__}: {error}"
    if is_transient_message(message):
        return BookingStatus.RETRY_LATER
    return BookingStatus.ERROR


def read_page_signals(
    inspector: PageInspector, layout: PortalLayout = DEFAULT_LAYOUT
) -> PageSignals:
    """
    Gathers classifier inputs from the live page.

    Behavior:
    - Called while handling another failure, so a broken page reads as "no signal"
      instead of raising over the original error.
    """
    try:
        return PageSignals(
            maintenance_notice=has_maintenance_notice(inspector, layout),
            session_expired=has_session_expired(inspector, layout),
        )
    except Exception as e:
        logger.warning("page_signals_unavailable", error=str(e))
        return PageSignals()
