"""
Page state detection for the declaration portal.

Pure functions over a PageInspector: no navigation, no clicks. The URL is the
cheap signal; page content is only consulted for the property registry (whose
path prefix is shared with other pages) and for the saved confirmation (which
has no URL of its own).
"""

from __future__ import annotations

from collections.abc import Iterable

from rental_tax_filer.db.enums import PortalState
from rental_tax_filer.portal.form_config import DEFAULT_LAYOUT, PortalLayout
from rental_tax_filer.services.portal_client import PageInspector

_STATE_DESCRIPTIONS: dict[PortalState, str] = {
    PortalState.LOGIN: "TaxisNet login page",
    PortalState.USER_INFO: "User contact information form",
    PortalState.PROPERTY_REGISTRY: "Property registry (main page)",
    PortalState.DECLARATIONS_LIST: "Declarations list for property",
    PortalState.NEW_DECLARATION: "New declaration form",
    PortalState.DECLARATION_SAVED: "Declaration saved confirmation",
    PortalState.UNKNOWN: "Unknown page",
}


def matches_any(url: str, patterns: Iterable[str]) -> bool:
    return any(p in url for p in patterns)


def detect_page_state(
    inspector: PageInspector, layout: PortalLayout = DEFAULT_LAYOUT
) -> PortalState:
    """
    What it does:
    - Maps the current page to a PortalState.

    Why it matters:
    - The state machine decides its next action from this alone, so it is
      recomputed on every check and never cached across navigation.

    Behavior:
    - Rules are evaluated top to bottom and the first match wins; URL substrings
      overlap (a login redirect can carry "userInfo"), so the order is load-bearing.
    """
    url = inspector.url
    urls = layout.urls

    if matches_any(url, urls.login):
        return PortalState.LOGIN
    if matches_any(url, urls.user_info):
        return PortalState.USER_INFO
    if matches_any(url, urls.new_declaration):
        return PortalState.NEW_DECLARATION
    if matches_any(url, urls.declarations):
        return PortalState.DECLARATIONS_LIST
    if matches_any(url, urls.property_registry) and inspector.is_visible(
        layout.selectors.property_table
    ):
        return PortalState.PROPERTY_REGISTRY
    if _any_text_visible(inspector, layout.messages.successful_submission.both()):
        return PortalState.DECLARATION_SAVED
    return PortalState.UNKNOWN


def is_logged_in(inspector: PageInspector, layout: PortalLayout = DEFAULT_LAYOUT) -> bool:
    return not matches_any(inspector.url, layout.urls.login)


def has_maintenance_notice(
    inspector: PageInspector, layout: PortalLayout = DEFAULT_LAYOUT
) -> bool:
    return _any_text_visible(inspector, layout.messages.maintenance.both())


def has_session_expired(inspector: PageInspector, layout: PortalLayout = DEFAULT_LAYOUT) -> bool:
    if matches_any(inspector.url, layout.urls.session_expired):
        return True
    return _any_text_visible(inspector, layout.messages.session_expired.both())


def has_no_registered_properties(
    inspector: PageInspector, layout: PortalLayout = DEFAULT_LAYOUT
) -> bool:
    return _any_text_visible(inspector, layout.messages.no_results.both())


def describe_state(state: PortalState) -> str:
    return _STATE_DESCRIPTIONS[state]


def _any_text_visible(inspector: PageInspector, texts: Iterable[str]) -> bool:
    return any(inspector.text_visible(t) for t in texts)
