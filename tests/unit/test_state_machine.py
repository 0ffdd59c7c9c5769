from __future__ import annotations

from dataclasses import replace

import pytest

from rental_tax_filer.config.settings import DEFAULT_ENTRY_URL
from rental_tax_filer.db.enums import PortalState
from rental_tax_filer.portal.form_config import DEFAULT_LAYOUT
from rental_tax_filer.portal.state_machine import PortalStateMachine
from rental_tax_filer.services.portal_client import UnavailableIntentExecutor
from rental_tax_filer.testing.fakes import (
    FakeIntentExecutor,
    FakePage,
    FakePortalSession,
    build_portal,
)
from rental_tax_filer.utils.errors import (
    IntentUnavailableError,
    LoginTimeoutError,
    NoPropertiesRegisteredError,
    PortalNavigationError,
    StuckStateMachineError,
    UserInfoError,
)

SEL = DEFAULT_LAYOUT.selectors


def _machine(portal, config, intents=None) -> PortalStateMachine:
    return PortalStateMachine(
        session=portal,
        intents=intents or UnavailableIntentExecutor(),
        config=config,
        sleep=portal.sleep,
    )


@pytest.mark.unit
def test_reaches_form_from_registry(run_config):
    portal = build_portal(start="registry")

    assert _machine(portal, run_config).drive_to_new_declaration() == PortalState.NEW_DECLARATION
    assert portal.clicked(SEL.declarations_link)
    assert portal.clicked(SEL.new_declaration)
    assert not portal.clicked(SEL.final_submit)


@pytest.mark.unit
def test_always_unknown_page_aborts_after_max_transitions(run_config):
    """
    What it does:
    - Drives a portal that shows an unrecognized page no matter what.

    Why it matters:
    - Without a bound the machine would reload the entry page forever.

    Behavior:
    - StuckStateMachineError after exactly max_transitions (5) handler runs.
    """
    portal = FakePortalSession(
        {"blank": FakePage(url="https://www1.gsis.gr/somewhere-else")},
        start="blank",
        routes={DEFAULT_ENTRY_URL: "blank"},
    )

    with pytest.raises(StuckStateMachineError, match="5 transitions"):
        _machine(portal, run_config).drive_to_new_declaration()

    assert [c for c in portal.calls if c[0] == "goto"] == [("goto", DEFAULT_ENTRY_URL)] * 5


@pytest.mark.unit
def test_waits_for_human_login_then_continues(run_config):
    portal = build_portal(start="login", routes={DEFAULT_ENTRY_URL: "login"}, login_after_polls=3)

    assert _machine(portal, run_config).drive_to_new_declaration() == PortalState.NEW_DECLARATION
    assert portal.sleeps == 3


@pytest.mark.unit
def test_login_wait_is_bounded(run_config):
    portal = build_portal(start="login", routes={DEFAULT_ENTRY_URL: "login"})

    with pytest.raises(LoginTimeoutError):
        _machine(portal, run_config).drive_to_new_declaration()

    # 10 s login wait polled every second.
    assert portal.sleeps == 10


@pytest.mark.unit
def test_user_info_is_filled_directly_and_saved(run_config):
    portal = build_portal(start="user_info")

    assert _machine(portal, run_config).drive_to_new_declaration() == PortalState.NEW_DECLARATION

    contact = run_config.contact
    assert portal.filled[f"{SEL.user_info_inputs}#0"] == contact.phone
    assert portal.filled[f"{SEL.user_info_inputs}#1"] == contact.mobile
    assert portal.filled[f"{SEL.user_info_inputs}#2"] == contact.email
    assert portal.clicked(SEL.user_info_save)


@pytest.mark.unit
def test_user_info_continue_is_clicked_after_save(run_config):
    portal = build_portal(start="user_info")
    portal.pages["user_info"].on_click[SEL.user_info_save] = "user_info_continue"

    assert _machine(portal, run_config).drive_to_new_declaration() == PortalState.NEW_DECLARATION

    assert portal.clicked(SEL.user_info_save)
    assert portal.clicked(SEL.user_info_continue)
    assert portal.clicked(SEL.declarations_link)


@pytest.mark.unit
def test_saved_confirmation_reloads_entry_and_reaches_form(run_config):
    portal = build_portal(start="receipt")
    machine = _machine(portal, run_config)

    assert machine.detect() == PortalState.DECLARATION_SAVED
    assert machine.drive_to_new_declaration() == PortalState.NEW_DECLARATION
    assert ("goto", run_config.portal_entry_url) in portal.calls
    assert not portal.clicked(SEL.final_submit)


@pytest.mark.unit
def test_user_info_falls_back_to_intents_when_inputs_not_found(run_config):
    portal = build_portal(start="user_info")
    portal.pages["user_info"].counts = {}
    intents = FakeIntentExecutor()

    _machine(portal, run_config, intents).handle_user_info()

    assert intents.actions == [
        "Type 2101234567 in the Telephone field",
        "Type 6971234567 in the Mobile field",
        "Type host@example.com in the Email field",
    ]
    assert portal.clicked(SEL.user_info_save)


@pytest.mark.unit
def test_user_info_requires_contact_details(run_config):
    portal = build_portal(start="user_info")

    with pytest.raises(UserInfoError):
        _machine(portal, replace(run_config, contact=None)).drive_to_new_declaration()


@pytest.mark.unit
def test_no_registered_properties(run_config):
    portal = build_portal(start="empty_registry")

    with pytest.raises(NoPropertiesRegisteredError) as exc:
        _machine(portal, run_config).drive_to_new_declaration()
    assert exc.value.code == "NO_PROPERTIES_REGISTERED"


@pytest.mark.unit
def test_registry_without_rows_is_a_navigation_error(run_config):
    portal = build_portal(start="registry")
    portal.pages["registry"].rows = []

    with pytest.raises(PortalNavigationError):
        _machine(portal, run_config).drive_to_new_declaration()


@pytest.mark.unit
def test_missing_link_uses_intent_fallback(run_config):
    portal = build_portal(start="registry")
    portal.pages["registry"].visible.discard(SEL.declarations_link)

    with pytest.raises(IntentUnavailableError):
        _machine(portal, run_config).drive_to_new_declaration()

    intents = FakeIntentExecutor()
    _machine(portal, run_config, intents).handle_property_registry()
    assert len(intents.actions) == 1
    assert "Δηλώσεις" in intents.actions[0]
