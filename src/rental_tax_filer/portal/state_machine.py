from __future__ import annotations

import time
from collections.abc import Callable

import structlog

from rental_tax_filer.config.settings import ContactDetails, RunConfig
from rental_tax_filer.db.enums import PortalState
from rental_tax_filer.portal.form_config import DEFAULT_LAYOUT, PortalLayout
from rental_tax_filer.portal.page_detector import (
    describe_state,
    detect_page_state,
    has_no_registered_properties,
    is_logged_in,
)
from rental_tax_filer.services.portal_client import IntentExecutor, PortalSession
from rental_tax_filer.utils.errors import (
    FatalRunError,
    LoginTimeoutError,
    NoPropertiesRegisteredError,
    PortalNavigationError,
    PortalUnreachableError,
    StuckStateMachineError,
    UserInfoError,
)

logger = structlog.get_logger(__name__)


def navigate_to_entry(session: PortalSession, config: RunConfig) -> None:
    """
    Loads the portal entry page (the property registry).

    Behavior:
    - Any navigation failure means the portal is unreachable for this run.
    """
    logger.info("navigate_to_entry", url=config.portal_entry_url)
    try:
        session.goto(config.portal_entry_url)
    except Exception as e:
        raise PortalUnreachableError(
            f"Could not load portal entry page {config.portal_entry_url}: {e}"
        ) from e
    session.wait_for_settle(config.settle_ms)


class PortalStateMachine:
    """
    What it does:
    - Walks one browsing session from wherever it is to an empty declaration form.

    Why it matters:
    - The portal has no API and reshuffles its pages; acting on the detected page
      state instead of a fixed click script survives redirects, the contact-details
      interstitial and a mid-run re-login.

    Behavior:
    - One handler per state; each returns the next state.
    - Direct addressing is tried first, the intent executor only as a fallback.
    - More than `max_transitions` handler runs without reaching NEW_DECLARATION
      raises StuckStateMachineError.
    - A login that is not observed within `max_login_wait_ms` raises
      LoginTimeoutError, which ends the whole run.
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

        self._handlers: dict[PortalState, Callable[[], PortalState]] = {
            PortalState.LOGIN: self.handle_login,
            PortalState.USER_INFO: self.handle_user_info,
            PortalState.PROPERTY_REGISTRY: self.handle_property_registry,
            PortalState.DECLARATIONS_LIST: self.handle_declarations_list,
            PortalState.UNKNOWN: self.handle_unknown,
            PortalState.DECLARATION_SAVED: self.handle_unknown,
        }

    def detect(self) -> PortalState:
        return detect_page_state(self.session, self.layout)

    def drive_to_new_declaration(self) -> PortalState:
        state = self.detect()
        transitions = 0

        while state != PortalState.NEW_DECLARATION:
            if transitions >= self.config.max_transitions:
                raise StuckStateMachineError(
                    f"Could not reach declaration form after {transitions} transitions "
                    f"(stuck at: {state})"
                )
            logger.info("portal_state", state=state.value, page=describe_state(state))
            state = self._handlers[state]()
            transitions += 1

        logger.info("declaration_form_reached", transitions=transitions)
        return state

    # -------------------- Handlers --------------------

    def handle_login(self) -> PortalState:
        self.wait_for_login()
        self.session.wait_for_settle(self.config.settle_ms)
        return self.detect()

    def wait_for_login(self) -> None:
        """
        Blocks until a human completes the login in the browser window.

        Polls every `poll_interval_ms` up to `max_login_wait_ms`.
        """
        logger.warning(
            "manual_login_required",
            hint="Enter your TaxisNet credentials in the browser window",
            max_wait_s=self.config.max_login_wait_ms // 1000,
        )
        poll_ms = max(self.config.poll_interval_ms, 1)
        elapsed = 0
        while elapsed < self.config.max_login_wait_ms:
            self._sleep(poll_ms / 1000)
            elapsed += poll_ms
            if is_logged_in(self.session, self.layout):
                logger.info("login_detected", waited_ms=elapsed)
                return
            if elapsed % 10_000 < poll_ms:
                logger.info("waiting_for_login", waited_ms=elapsed)

        raise LoginTimeoutError(
            f"No login observed within {self.config.max_login_wait_ms} ms"
        )

    def handle_user_info(self) -> PortalState:
        """The portal refuses to continue (Cancel logs out) until contact details are saved."""
        contact = self.config.contact
        if contact is None:
            raise UserInfoError("Contact details (AADE_PHONE, AADE_MOBILE, AADE_EMAIL) are not configured")

        sel = self.layout.selectors
        try:
            self._fill_contact_details(contact)
            self._act(
                lambda: self.session.try_click(sel.user_info_save),
                "Click the Save button",
                "user_info_save",
            )
            self.session.wait_for_settle(self.config.settle_ms)

            if self.session.try_click(sel.user_info_continue):
                logger.info("user_info_continue_clicked")
                self.session.wait_for_settle(self.config.settle_ms)
        except FatalRunError:
            raise
        except Exception as e:
            raise UserInfoError(f"Failed to fill contact info: {e}") from e

        logger.info("user_info_saved")
        return PortalState.PROPERTY_REGISTRY

    def _fill_contact_details(self, contact: ContactDetails) -> None:
        selector = self.layout.selectors.user_info_inputs
        values = (contact.phone, contact.mobile, contact.email)

        if self.session.count(selector) >= len(values):
            try:
                for index, value in enumerate(values):
                    self.session.fill_nth(selector, index, value)
                    self._slow_mo()
                return
            except Exception as e:
                logger.warning("user_info_direct_fill_failed", error=str(e))

        logger.info("user_info_intent_fallback")
        for field_name, value in zip(("Telephone", "Mobile", "Email"), values):
            self.intents.perform_action(f"Type {value} in the {field_name} field")
            self._slow_mo()

    def handle_property_registry(self) -> PortalState:
        if has_no_registered_properties(self.session, self.layout):
            raise NoPropertiesRegisteredError(
                "No properties registered in the portal. Register the property via "
                f"'{self.layout.add_property_nav.greek}' and run again."
            )

        rows = self.session.visible_row_texts(self.layout.selectors.property_rows)
        if not rows:
            raise PortalNavigationError("Could not find any property in the registry table")

        # First registered property; all bookings are declared against it.
        logger.info("properties_found", count=len(rows), selected=1)

        declarations = self.layout.declarations_nav.greek
        self._act(
            lambda: self.session.try_click(self.layout.selectors.declarations_link),
            f"In the property table, click the '{declarations}' link in the Actions column "
            "for property row 1",
            "declarations_link",
        )
        self.session.wait_for_settle(self.config.settle_ms)
        return PortalState.DECLARATIONS_LIST

    def handle_declarations_list(self) -> PortalState:
        button = self.layout.new_declaration_button
        self._act(
            lambda: self.session.try_click(self.layout.selectors.new_declaration),
            f"Click the '{button.greek}' or '{button.english}' button",
            "new_declaration",
        )
        self.session.wait_for_settle(self.config.settle_ms)
        return PortalState.NEW_DECLARATION

    def handle_unknown(self) -> PortalState:
        navigate_to_entry(self.session, self.config)
        return self.detect()

    # -------------------- Helpers --------------------

    def _act(self, direct: Callable[[], bool], instruction: str, target: str) -> None:
        if direct():
            return
        logger.info("intent_fallback", target=target)
        self.intents.perform_action(instruction)
        self._slow_mo()

    def _slow_mo(self) -> None:
        if self.config.slow_mo_ms > 0:
            self._sleep(self.config.slow_mo_ms / 1000)
