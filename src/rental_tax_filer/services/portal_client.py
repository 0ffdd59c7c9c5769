from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import Protocol, TypeVar

from pydantic import BaseModel

from rental_tax_filer.utils.errors import IntentUnavailableError

ShapeT = TypeVar("ShapeT", bound=BaseModel)


class PageInspector(Protocol):
    """
    Read-only view of the current portal page.

    Behavior:
    - Probes never raise for a missing element; they answer False.
    """

    @property
    def url(self) -> str: ...

    def is_visible(self, selector: str) -> bool: ...

    def text_visible(self, text: str) -> bool: ...


class PortalSession(PageInspector, Protocol):
    """
    What it does:
    - Defines the browser operations the state machine and pipeline need.

    Why it matters:
    - Business flow stays testable with a scripted fake; Playwright is one adapter.

    Behavior:
    - Targets are CSS/Playwright selectors, or "label:<text>" to address a form
      control by its visible label.
    - try_* methods return False when the target is not on the page (direct
      addressing failed) and raise on real driver failures.
    - goto() raises if the page cannot be loaded.
    """

    def goto(self, url: str) -> None: ...

    def wait_for_settle(self, delay_ms: int) -> None: ...

    def count(self, selector: str) -> int: ...

    def fill_nth(self, selector: str, index: int, value: str) -> None: ...

    def visible_row_texts(self, selector: str) -> list[str]: ...

    def try_click(self, target: str) -> bool: ...

    def try_fill(self, target: str, value: str) -> bool: ...

    def try_fill_date(self, target: str, value: date) -> bool: ...

    def try_select(self, target: str, option: str) -> bool: ...

    def screenshot(self, path: Path) -> None: ...


class IntentExecutor(Protocol):
    """
    Natural-language UI capability (an AI browser agent).

    Fallible and non-deterministic; only ever used after direct addressing failed,
    and never for final submit or cancel.
    """

    def perform_action(self, instruction: str) -> None: ...

    def extract_structured(self, instruction: str, shape: type[ShapeT]) -> ShapeT: ...


class UnavailableIntentExecutor:
    """Default executor when no AI capability is wired: every request fails loudly."""

    def perform_action(self, instruction: str) -> None:
        raise IntentUnavailableError(f"No intent executor configured for: {instruction}")

    def extract_structured(self, instruction: str, shape: type[ShapeT]) -> ShapeT:
        raise IntentUnavailableError(f"No intent executor configured for: {instruction}")
