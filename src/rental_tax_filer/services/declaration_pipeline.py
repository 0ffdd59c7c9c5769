from __future__ import annotations

import time
from collections import Counter
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from rental_tax_filer.config.settings import RunConfig
from rental_tax_filer.db.engine import SessionScope
from rental_tax_filer.db.enums import QUEUE_STATUSES, RETRY_QUEUE_STATUSES, BookingStatus, PortalState
from rental_tax_filer.db.repositories.bookings import BookingRepository
from rental_tax_filer.portal.declaration_form import DeclarationFormFiller
from rental_tax_filer.portal.form_config import DEFAULT_LAYOUT, PortalLayout
from rental_tax_filer.portal.page_detector import matches_any
from rental_tax_filer.portal.state_machine import PortalStateMachine, navigate_to_entry
from rental_tax_filer.schemas.booking import BookingRecord
from rental_tax_filer.services.audit import AuditRecorder
from rental_tax_filer.services.error_classifier import classify, read_page_signals
from rental_tax_filer.services.portal_client import (
    IntentExecutor,
    PortalSession,
    UnavailableIntentExecutor,
)
from rental_tax_filer.utils.errors import (
    ConflictError,
    FatalRunError,
    NoPropertiesRegisteredError,
    SessionExpiredError,
    SubmissionRejectedError,
    SubmissionUnverifiedError,
)

logger = structlog.get_logger(__name__)

SUCCESS_STATUSES = frozenset({BookingStatus.SUBMITTED, BookingStatus.DRY_RUN_VERIFIED})
CONFIRMED_STATES = frozenset({PortalState.DECLARATION_SAVED, PortalState.DECLARATIONS_LIST})


def _describe(error: BaseException) -> str:
    return f"{type(error).__name__}: {error}"


@dataclass(frozen=True)
class BookingOutcome:
    status: BookingStatus
    evidence_path: Path | None = None
    message: str | None = None
    # Set when this booking's failure leaves the session unusable for the rest of the run.
    halt_reason: str | None = None


@dataclass
class RunSummary:
    processed: list[tuple[str, BookingStatus]] = field(default_factory=list)
    stopped_early: bool = False
    halted_reason: str | None = None

    def record(self, platform_id: str, status: BookingStatus) -> None:
        self.processed.append((platform_id, status))

    @property
    def counts(self) -> dict[str, int]:
        return dict(Counter(status.value for _, status in self.processed))

    @property
    def succeeded(self) -> int:
        return sum(1 for _, s in self.processed if s in SUCCESS_STATUSES)

    @property
    def failed(self) -> int:
        return len(self.processed) - self.succeeded


class DeclarationSubmissionPipeline:
    """
    What it does:
    - Files one tax declaration per queued booking through the portal.

    Why it matters:
    - This is the single entry point for the run: queue selection, portal driving,
      evidence, dry-run safety and status bookkeeping all meet here.

    Behavior:
    - Bookings are processed strictly one after another on one browser session.
    - Each status is committed in its own transaction as soon as it is known.
    - A failure inside one booking never crosses into the next one; the session is
      reset to the entry page before continuing.
    - FatalRunError (login timeout, unreachable portal, expired session) ends the
      run; it is logged and reported in RunSummary.halted_reason, not raised.
    - No registered property marks the current and every remaining booking
      NEEDS_PROPERTY and stops the run.
    """

    def __init__(
        self,
        *,
        db: SessionScope,
        session: PortalSession,
        config: RunConfig,
        intents: IntentExecutor | None = None,
        audit: AuditRecorder | None = None,
        layout: PortalLayout = DEFAULT_LAYOUT,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.db = db
        self.session = session
        self.config = config
        self.layout = layout
        self.intents = intents or UnavailableIntentExecutor()
        self.audit = audit or AuditRecorder(
            config.audit_evidence_dir, prefix=config.evidence_prefix
        )
        self.machine = PortalStateMachine(
            session=session, intents=self.intents, config=config, layout=layout, sleep=sleep
        )
        self.form = DeclarationFormFiller(
            session=session, intents=self.intents, config=config, layout=layout, sleep=sleep
        )

    def load_queue(self) -> list[BookingRecord]:
        statuses = RETRY_QUEUE_STATUSES if self.config.include_retry else QUEUE_STATUSES
        with self.db() as s:
            return BookingRepository(s).list_by_statuses(statuses)

    def run(self) -> RunSummary:
        summary = RunSummary()
        queue = self.load_queue()

        if not queue:
            logger.info("no_pending_bookings")
            return summary

        logger.info(
            "run_started",
            bookings=len(queue),
            mode="DRY_RUN" if self.config.dry_run else "PRODUCTION",
            include_retry=self.config.include_retry,
        )

        try:
            for index, booking in enumerate(queue):
                if booking.status == BookingStatus.SUBMITTED:
                    continue

                outcome = self.process_booking(booking)
                self._persist(booking, outcome)
                summary.record(booking.platform_id, outcome.status)

                if outcome.status == BookingStatus.NEEDS_PROPERTY:
                    self._mark_remaining_needs_property(queue[index + 1 :], summary)
                    summary.stopped_early = True
                    break

                if outcome.halt_reason:
                    summary.halted_reason = outcome.halt_reason
                    logger.error("run_halted", reason=outcome.halt_reason)
                    break

        except FatalRunError as e:
            summary.halted_reason = _describe(e)
            logger.error("run_halted", reason=summary.halted_reason)

        logger.info(
            "run_finished",
            succeeded=summary.succeeded,
            failed=summary.failed,
            counts=summary.counts,
            stopped_early=summary.stopped_early,
            halted=summary.halted_reason is not None,
            audit_dir=str(self.audit.directory),
        )
        return summary

    def process_booking(self, booking: BookingRecord) -> BookingOutcome:
        """
        Drives one booking from the entry page to a resolved declaration.

        Behavior:
        - Evidence is captured after filling and before any submit/back click.
        - Once the final submit has been attempted the outcome is never RETRY_LATER:
          the declaration may already be filed.
        - FatalRunError propagates to run().
        """
        log = logger.bind(platform_id=booking.platform_id, booking_id=booking.id)
        log.info(
            "booking_started",
            guest=booking.guest_name,
            check_in=booking.check_in.isoformat(),
            check_out=booking.check_out.isoformat(),
            payout=str(booking.total_payout),
            cancelled=booking.is_cancelled,
        )

        evidence: Path | None = None
        submit_attempted = False

        try:
            booking.validate()
            self._ensure_entry_point()
            self.machine.drive_to_new_declaration()

            self.form.fill(booking)
            evidence = self.audit.capture(self.session, booking.platform_id)

            if self.config.dry_run:
                self.form.abandon()
                log.info("booking_dry_run_verified", evidence=str(evidence) if evidence else None)
                return BookingOutcome(BookingStatus.DRY_RUN_VERIFIED, evidence)

            submit_attempted = True
            self.form.submit()
            self.session.wait_for_settle(self.config.settle_ms)
            self._verify_submission()

            log.info("booking_submitted", evidence=str(evidence) if evidence else None)
            return BookingOutcome(BookingStatus.SUBMITTED, evidence)

        except NoPropertiesRegisteredError as e:
            log.warning("no_properties_registered", detail=str(e))
            return BookingOutcome(BookingStatus.NEEDS_PROPERTY, evidence, str(e))

        except FatalRunError:
            raise

        except Exception as e:
            return self._handle_failure(booking, e, evidence, submit_attempted)

    # -------------------- Steps --------------------

    def _ensure_entry_point(self) -> None:
        if not matches_any(self.session.url, self.layout.urls.property_registry):
            navigate_to_entry(self.session, self.config)

    def _verify_submission(self) -> None:
        if self.form.has_error_banner():
            raise SubmissionRejectedError("Submission error detected on page")

        state = self.machine.detect()
        if state not in CONFIRMED_STATES:
            raise SubmissionUnverifiedError(
                f"Could not confirm the declaration was saved (landed on: {state})"
            )

    def _handle_failure(
        self,
        booking: BookingRecord,
        error: Exception,
        evidence: Path | None,
        submit_attempted: bool,
    ) -> BookingOutcome:
        signals = read_page_signals(self.session, self.layout)
        status = classify(error, signals)
        if submit_attempted and status != BookingStatus.ERROR:
            logger.warning(
                "post_submit_failure_not_retryable",
                platform_id=booking.platform_id,
                classified=status.value,
            )
            status = BookingStatus.ERROR

        message = _describe(error)
        logger.error(
            "booking_failed",
            platform_id=booking.platform_id,
            status=status.value,
            error=message,
            maintenance=signals.maintenance_notice,
        )

        if signals.session_expired:
            expired = SessionExpiredError("Portal session expired or logged out")
            return BookingOutcome(status, evidence, message, halt_reason=_describe(expired))

        try:
            navigate_to_entry(self.session, self.config)
        except FatalRunError as e:
            return BookingOutcome(status, evidence, message, halt_reason=_describe(e))

        return BookingOutcome(status, evidence, message)

    def _mark_remaining_needs_property(
        self, remaining: list[BookingRecord], summary: RunSummary
    ) -> None:
        if remaining:
            logger.warning("stopping_run_no_property", remaining=len(remaining))
        for other in remaining:
            outcome = BookingOutcome(
                BookingStatus.NEEDS_PROPERTY,
                message="Not attempted: no property registered in the portal",
            )
            self._persist(other, outcome)
            summary.record(other.platform_id, outcome.status)

    def _persist(self, booking: BookingRecord, outcome: BookingOutcome) -> None:
        evidence = str(outcome.evidence_path) if outcome.evidence_path else None
        try:
            with self.db() as s:
                BookingRepository(s).update_status(
                    booking.id, outcome.status, evidence, error=outcome.message
                )
        except ConflictError as e:
            logger.error("status_write_refused", platform_id=booking.platform_id, error=str(e))
            return

        logger.info(
            "status_written",
            platform_id=booking.platform_id,
            status=outcome.status.value,
            evidence=evidence,
        )
