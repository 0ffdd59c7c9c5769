"""
aade_playwright.py

What this module does
- Implements the `PortalSession` protocol on top of Playwright's sync API.

Why it matters
- Keeps browser details (locators, date widgets, timeouts) out of the state machine
  and the pipeline, which only speak in selectors and labels.

Behavior summary
- Chromium, headful by default: the TaxisNet login is always completed by a human.
- Targets are Playwright selectors, or "label:<text>" for a control found by its label.
- Probes (`is_visible`, `text_visible`) answer False on any driver error.
- `try_*` methods answer False when the target is absent; a control that is present
  but rejects the interaction raises.
"""

from __future__ import annotations

from datetime import date
from pathlib import Path

import structlog
from playwright.sync_api import Error as PWError
from playwright.sync_api import TimeoutError as PWTimeoutError
from playwright.sync_api import sync_playwright

logger = structlog.get_logger(__name__)

LABEL_PREFIX = "label:"


class PlaywrightPortalSession:
    """
    Playwright implementation of PortalSession.

    Behavior:
    - `start()` launches the browser; every other call requires it.
    - `close()` is safe to call multiple times.
    """

    def __init__(
        self,
        *,
        headless: bool = False,
        default_timeout_ms: int = 30_000,
        action_timeout_ms: int = 15_000,
    ) -> None:
        self.headless = headless
        self._default_timeout_ms = default_timeout_ms
        self._action_timeout_ms = action_timeout_ms

        self._pw = None
        self._browser = None
        self._context = None
        self._page = None

    # -------------------- Lifecycle --------------------

    def start(self) -> None:
        """
        What it does:
        - Starts Playwright, launches Chromium and opens one page.

        Behavior:
        - If Chromium isn't installed, raises with the install command.
        """
        if self._page is not None:
            return

        self._pw = sync_playwright().start()
        try:
            self._browser = self._pw.chromium.launch(headless=self.headless)
        except Exception as e:
            self.close()
            raise RuntimeError(
                "Failed to launch Playwright Chromium.\n"
                "If this is the first time on this machine, run:\n\n"
                "  playwright install chromium\n"
            ) from e

        # The portal renders dates as DD/MM/YYYY for the Greek locale.
        self._context = self._browser.new_context(
            locale="el-GR",
            timezone_id="Europe/Athens",
            viewport={"width": 1280, "height": 900},
        )
        self._page = self._context.new_page()
        self._page.set_default_timeout(self._default_timeout_ms)
        logger.info("browser_started", headless=self.headless)

    def close(self) -> None:
        try:
            if self._context:
                self._context.close()
        finally:
            self._context = None

        try:
            if self._browser:
                self._browser.close()
        finally:
            self._browser = None

        try:
            if self._pw:
                self._pw.stop()
        finally:
            self._pw = None
            self._page = None

    # -------------------- PageInspector --------------------

    @property
    def url(self) -> str:
        return self._page.url if self._page is not None else ""

    def is_visible(self, selector: str) -> bool:
        try:
            return self._locate(selector).first.is_visible()
        except PWError:
            return False

    def text_visible(self, text: str) -> bool:
        try:
            return self._require_page().get_by_text(text).first.is_visible()
        except PWError:
            return False

    # -------------------- PortalSession --------------------

    def goto(self, url: str) -> None:
        self._require_page().goto(url, wait_until="domcontentloaded")

    def wait_for_settle(self, delay_ms: int) -> None:
        """
        Waits for network quiet, then a fixed settle delay.

        The portal keeps long-polling connections open, so a networkidle timeout is
        expected and not an error.
        """
        page = self._require_page()
        try:
            page.wait_for_load_state("networkidle", timeout=self._action_timeout_ms)
        except PWTimeoutError:
            logger.debug("networkidle_timeout", url=page.url)
        if delay_ms > 0:
            page.wait_for_timeout(delay_ms)

    def count(self, selector: str) -> int:
        return self._locate(selector).count()

    def fill_nth(self, selector: str, index: int, value: str) -> None:
        field = self._locate(selector).nth(index)
        field.fill("", timeout=self._action_timeout_ms)
        field.fill(value, timeout=self._action_timeout_ms)

    def visible_row_texts(self, selector: str) -> list[str]:
        rows = self._locate(selector)
        texts: list[str] = []
        for i in range(rows.count()):
            row = rows.nth(i)
            if row.is_visible():
                texts.append(row.inner_text().strip())
        return texts

    def try_click(self, target: str) -> bool:
        locator = self._present(target)
        if locator is None:
            return False
        locator.click(timeout=self._action_timeout_ms)
        return True

    def try_fill(self, target: str, value: str) -> bool:
        locator = self._present(target)
        if locator is None:
            return False
        locator.fill("", timeout=self._action_timeout_ms)
        locator.fill(value, timeout=self._action_timeout_ms)
        return True

    def try_fill_date(self, target: str, value: date) -> bool:
        """
        What it does:
        - Fills date inputs robustly across widget types.

        Behavior:
        - <input type="date"> -> ISO 'YYYY-MM-DD'.
        - Otherwise -> detects the display format from placeholder/aria-label,
          defaulting to the Greek DD/MM/YYYY.
        """
        locator = self._present(target)
        if locator is None:
            return False

        input_type = (locator.get_attribute("type") or "").lower()
        if input_type == "date":
            locator.fill(value.isoformat(), timeout=self._action_timeout_ms)
            return True

        fmt = self._detect_date_format(locator)
        locator.fill("", timeout=self._action_timeout_ms)
        locator.fill(self._format_date(value, fmt), timeout=self._action_timeout_ms)
        # Close any datepicker popup so it does not cover the next field.
        locator.press("Tab")
        return True

    def try_select(self, target: str, option: str) -> bool:
        locator = self._present(target)
        if locator is None:
            return False

        tag = locator.evaluate("el => el.tagName.toLowerCase()")
        if tag == "select":
            if locator.locator("option", has_text=option).count() == 0:
                return False
            locator.select_option(label=option, timeout=self._action_timeout_ms)
            return True

        # Custom dropdown widget: open it, then pick the option by its text.
        page = self._require_page()
        choice = page.get_by_role("option", name=option)
        locator.click(timeout=self._action_timeout_ms)
        if choice.count() == 0:
            choice = page.get_by_text(option, exact=True)
        if choice.count() == 0:
            page.keyboard.press("Escape")
            return False
        choice.first.click(timeout=self._action_timeout_ms)
        return True

    def screenshot(self, path: Path) -> None:
        self._require_page().screenshot(path=str(path), full_page=True)

    # -------------------- Helpers --------------------

    def _locate(self, target: str):
        page = self._require_page()
        if target.startswith(LABEL_PREFIX):
            return page.get_by_label(target[len(LABEL_PREFIX) :])
        return page.locator(target)

    def _present(self, target: str):
        """First visible match for `target`, or None when direct addressing fails."""
        try:
            locator = self._locate(target).first
            if locator.count() == 0 or not locator.is_visible():
                return None
        except PWError:
            return None
        return locator

    def _detect_date_format(self, locator) -> str:
        """
        Returns 'DMY' or 'MDY' based on placeholder/attributes.
        Defaults to 'DMY' if unknown.
        """
        placeholder = (locator.get_attribute("placeholder") or "").upper()
        aria = (locator.get_attribute("aria-label") or "").upper()

        hint = f"{placeholder} {aria}"
        if "MM/DD" in hint:
            return "MDY"
        return "DMY"

    def _format_date(self, d: date, fmt: str) -> str:
        if fmt == "MDY":
            return f"{d.month:02d}/{d.day:02d}/{d.year:04d}"
        return f"{d.day:02d}/{d.month:02d}/{d.year:04d}"

    def _require_page(self):
        if self._page is None:
            raise RuntimeError("Playwright page not initialized. Did start() run?")
        return self._page
