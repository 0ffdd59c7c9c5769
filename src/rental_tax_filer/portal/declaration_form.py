from __future__ import annotations

import time
from collections.abc import Callable
from datetime import date
from decimal import Decimal

import structlog

from rental_tax_filer.config.settings import RunConfig
from rental_tax_filer.portal.form_config import (
    DEFAULT_LAYOUT,
    PAYMENT_ELECTRONIC_PLATFORM,
    PLATFORM_AIRBNB,
    BilingualText,
    FormField,
    PortalLayout,
)
from rental_tax_filer.portal.state_machine import navigate_to_entry
from rental_tax_filer.schemas.booking import BookingRecord
from rental_tax_filer.services.portal_client import IntentExecutor, PortalSession
from rental_tax_filer.utils.errors import DeclarationFormError

logger = structlog.get_logger(__name__)


def format_amount(amount: Decimal) -> str:
    return f"{amount.quantize(Decimal('0.01'))}"


class DeclarationFormFiller:
    """
    What it does:
    - Fills, abandons or final-submits the new-declaration form for one booking.

    Why it matters:
    - Field routing (rent vs. cancellation amount) decides what is declared to the
      tax authority; it lives in one place so it can be tested without a browser.

    Behavior:
    - Every field is addressed directly first (selectors, then labels); the intent
      executor is the fallback.
    - submit() and abandon() never use the intent executor.
    """

    def __init__(
        self,
        *,
        session: PortalSession,
        intents: IntentExecutor,
        config: RunConfig,
        layout: PortalLayout = DEFAULT_LAYOUT,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.session = session
        self.intents = intents
        self.config = config
        self.layout = layout
        self._sleep = sleep

    def fill(self, booking: BookingRecord) -> None:
        form = self.layout.form
        logger.info("declaration_fill_started", platform_id=booking.platform_id)

        self._fill_date(form.arrival_date, booking.check_in)
        self._fill_date(form.departure_date, booking.check_out)

        if booking.is_cancelled:
            if not form.supports_cancellation:
                raise DeclarationFormError(
                    f"Booking {booking.platform_id} is cancelled but the declaration form "
                    "has no cancellation fields"
                )
            assert form.cancellation_amount is not None and form.cancellation_date is not None
            assert booking.cancellation_date is not None
            self._fill_text(form.cancellation_amount, format_amount(booking.total_payout))
            self._fill_date(form.cancellation_date, booking.cancellation_date)
        else:
            self._fill_text(form.total_rent, format_amount(booking.total_payout))

        self._select(form.payment_method, PAYMENT_ELECTRONIC_PLATFORM)
        self._select(form.platform, PLATFORM_AIRBNB)
        logger.info("declaration_fill_done", platform_id=booking.platform_id)

    def abandon(self) -> None:
        """Leaves the form without filing it (dry run)."""
        if self.session.try_click(self.layout.selectors.form_back):
            self.session.wait_for_settle(self.config.settle_ms)
            return
        logger.info("form_back_missing_navigating_to_entry")
        navigate_to_entry(self.session, self.config)

    def submit(self) -> None:
        """Clicks the final submit button. Irreversible."""
        if not self.session.try_click(self.layout.selectors.final_submit):
            raise DeclarationFormError("Final submit button not found on the declaration form")

    def has_error_banner(self) -> bool:
        return self.session.is_visible(self.layout.selectors.error_banner)

    # -------------------- Field helpers --------------------

    def _fill_date(self, field: FormField, value: date) -> None:
        for target in field.targets():
            if self.session.try_fill_date(target, value):
                self._slow_mo()
                return
        self._intent(field, field.instruction("fill", value.isoformat()))

    def _fill_text(self, field: FormField, value: str) -> None:
        for target in field.targets():
            if self.session.try_fill(target, value):
                self._slow_mo()
                return
        self._intent(field, field.instruction("fill", value))

    def _select(self, field: FormField, option: BilingualText) -> None:
        for target in field.targets():
            for text in dict.fromkeys(option.both()):
                if self.session.try_select(target, text):
                    self._slow_mo()
                    return
        self._intent(field, field.instruction("select", option.greek))

    def _intent(self, field: FormField, instruction: str) -> None:
        logger.info("intent_fallback", field=field.name)
        self.intents.perform_action(instruction)
        self._slow_mo()

    def _slow_mo(self) -> None:
        if self.config.slow_mo_ms > 0:
            self._sleep(self.config.slow_mo_ms / 1000)
