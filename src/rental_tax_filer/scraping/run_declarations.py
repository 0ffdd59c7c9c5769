from __future__ import annotations

import argparse
import json
from dataclasses import replace
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path

import structlog

from rental_tax_filer.config.settings import RunConfig, require_contact_details, settings
from rental_tax_filer.db.engine import get_engine, get_session
from rental_tax_filer.db.enums import BookingStatus
from rental_tax_filer.db.migrations import ensure_schema
from rental_tax_filer.db.repositories.bookings import BookingRepository
from rental_tax_filer.scraping.aade_playwright import PlaywrightPortalSession
from rental_tax_filer.services.declaration_pipeline import DeclarationSubmissionPipeline, RunSummary
from rental_tax_filer.services.ingestion import MOCK_BOOKINGS, ingest_candidates
from rental_tax_filer.utils.logging_config import setup_logging

logger = structlog.get_logger(__name__)


def _load_json_file(path: str) -> list:
    p = Path(path)
    if not p.exists():
        raise RuntimeError(f"JSON file not found: {path}")
    data = json.loads(p.read_text(encoding="utf-8"))
    if not isinstance(data, list):
        raise RuntimeError("--json must contain a JSON list of booking objects.")
    return data


def _parse_amount(value: str) -> Decimal:
    try:
        return Decimal(value)
    except InvalidOperation as e:
        raise argparse.ArgumentTypeError(f"Invalid amount: {value}") from e


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rental-tax-filer",
        description="File short-term-rental tax declarations on the AADE portal.",
    )
    sub = parser.add_subparsers(dest="cmd", required=True)

    sub.add_parser("ingest-mock", help="Queue the two sample bookings (for local dry runs).")

    p_ingest = sub.add_parser("ingest", help="Queue bookings from a JSON list produced by the platform scraper.")
    p_ingest.add_argument("--json", dest="json_path", type=str, required=True)

    sub.add_parser("queue", help="Show booking counts per status.")

    p_cancel = sub.add_parser(
        "cancel",
        help="Mark a booking as cancelled on the platform and re-queue it with the refund amount.",
    )
    p_cancel.add_argument("--platform-id", type=str, required=True)
    p_cancel.add_argument("--date", dest="cancellation_date", type=date.fromisoformat, required=True)
    p_cancel.add_argument("--refund", type=_parse_amount, required=True)

    p_run = sub.add_parser("run", help="Process the queue in the portal (dry run unless --production).")
    p_run.add_argument("--include-retry", action="store_true", help="Also process RETRY_LATER bookings.")
    p_run.add_argument("--headless", action="store_true", help="Hide the browser window.")
    p_run.add_argument(
        "--production",
        action="store_true",
        help="DANGEROUS: click the final submit button for every queued booking (irreversible).",
    )
    p_run.add_argument(
        "--i-understand-this-will-submit",
        action="store_true",
        help="Required safety flag for production runs. Without this, the command refuses to run.",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """
    What it does:
    - Single entrypoint for local operation:
        1) ingest-mock / ingest: queue bookings (idempotent)
        2) queue: show counts per status
        3) cancel: re-queue a booking as a cancellation
        4) run: drive the portal for every queued booking

    Why it matters:
    - The final submit is irreversible; production mode is never a default.

    Behavior:
    - `run` files nothing unless both --production and --i-understand-this-will-submit
      are given. DRY_RUN=false in .env alone is also refused without the safety flag.
    - Returns 1 when the run halted on a fatal condition (login timeout, portal
      unreachable, expired session), 0 otherwise.
    """
    args = build_parser().parse_args(argv)
    setup_logging(settings.log_level)

    if args.cmd == "run":
        config = _run_config(args)
        require_contact_details(config)

    engine = get_engine()
    ensure_schema(engine)

    if args.cmd in ("ingest-mock", "ingest"):
        rows = MOCK_BOOKINGS if args.cmd == "ingest-mock" else _load_json_file(args.json_path)
        with get_session() as session:
            report = ingest_candidates(session, rows)
        print(
            f"OK: inserted={len(report.inserted)} duplicates={len(report.duplicates)} "
            f"rejected={len(report.rejected)}"
        )
        for platform_id, reason in report.rejected:
            print(f"  rejected {platform_id}: {reason}")
        return 0

    if args.cmd == "queue":
        with get_session() as session:
            counts = BookingRepository(session).count_by_status()
        for status in BookingStatus:
            print(f"{status.value:<18} {counts.get(status.value, 0)}")
        return 0

    if args.cmd == "cancel":
        with get_session() as session:
            booking = BookingRepository(session).record_cancellation(
                args.platform_id,
                cancellation_date=args.cancellation_date,
                refund_amount=args.refund,
            )
            print(f"OK: {booking.platform_id} re-queued as cancellation (refund {booking.total_payout})")
        return 0

    if args.cmd == "run":
        return _run(args, config)

    return 0


def _run_config(args: argparse.Namespace) -> RunConfig:
    config = RunConfig.from_settings(settings)
    production = args.production or not config.dry_run
    if production and not args.i_understand_this_will_submit:
        raise RuntimeError("Refusing to final-submit without --i-understand-this-will-submit")

    return replace(
        config,
        dry_run=not production,
        include_retry=config.include_retry or args.include_retry,
    )


def _run(args: argparse.Namespace, config: RunConfig) -> int:
    portal = PlaywrightPortalSession(headless=args.headless or settings.portal_headless)
    try:
        portal.start()
        pipeline = DeclarationSubmissionPipeline(db=get_session, session=portal, config=config)
        summary = pipeline.run()
    finally:
        portal.close()

    _print_summary(summary, config)
    return 1 if summary.halted_reason else 0


def _print_summary(summary: RunSummary, config: RunConfig) -> None:
    mode = "DRY_RUN" if config.dry_run else "PRODUCTION"
    print(f"OK: mode={mode} processed={len(summary.processed)} succeeded={summary.succeeded} failed={summary.failed}")
    for platform_id, status in summary.processed:
        print(f"  {platform_id:<16} {status.value}")
    if summary.stopped_early:
        print("Stopped early: register the property in the portal, then run again.")
    if summary.halted_reason:
        print(f"HALTED: {summary.halted_reason}")


if __name__ == "__main__":
    raise SystemExit(main())
