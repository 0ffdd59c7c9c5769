from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from rental_tax_filer.config.paths import env_file_path, resolve_runtime_path

_UNSET = object()

DEFAULT_ENTRY_URL = "https://www1.gsis.gr/taxisnet/short_term_letting/"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(env_file_path()),
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    app_env: str = "dev"
    log_level: str = "INFO"

    database_url: str | None = None

    portal_entry_url: str = Field(default=DEFAULT_ENTRY_URL, alias="PORTAL_ENTRY_URL")
    # Login is performed by a human in the browser window, so headful by default.
    portal_headless: bool = Field(default=False, alias="PORTAL_HEADLESS")

    dry_run: bool = Field(default=True, alias="DRY_RUN")
    include_retry: bool = Field(default=False, alias="INCLUDE_RETRY")
    max_login_wait_ms: int = Field(default=300_000, alias="MAX_LOGIN_WAIT_MS")
    poll_interval_ms: int = Field(default=2_000, alias="POLL_INTERVAL_MS")
    settle_ms: int = Field(default=2_000, alias="SETTLE_MS")
    slow_mo_ms: int = Field(default=100, alias="SLOW_MO_MS")
    max_transitions: int = Field(default=5, alias="MAX_TRANSITIONS")

    audit_evidence_dir: str = Field(default="audit_logs", alias="AUDIT_EVIDENCE_DIR")
    evidence_prefix: str = Field(default="declaration", alias="EVIDENCE_PREFIX")

    contact_phone: str | None = Field(default=None, alias="AADE_PHONE")
    contact_mobile: str | None = Field(default=None, alias="AADE_MOBILE")
    contact_email: str | None = Field(default=None, alias="AADE_EMAIL")


@dataclass(frozen=True)
class ContactDetails:
    phone: str
    mobile: str
    email: str


@dataclass(frozen=True)
class RunConfig:
    """
    What it does:
    - Immutable configuration for one pipeline run.

    Why it matters:
    - Built once at run start and handed to every component; nothing below the
      CLI reads the environment.

    Behavior:
    - `from_settings()` is the only bridge from Settings; tests build it directly.
    """

    dry_run: bool = True
    max_login_wait_ms: int = 300_000
    poll_interval_ms: int = 2_000
    audit_evidence_dir: Path = Path("audit_logs")
    portal_entry_url: str = DEFAULT_ENTRY_URL
    settle_ms: int = 2_000
    slow_mo_ms: int = 100
    max_transitions: int = 5
    include_retry: bool = False
    evidence_prefix: str = "declaration"
    contact: ContactDetails | None = None

    @classmethod
    def from_settings(cls, s: Settings) -> RunConfig:
        contact = None
        if s.contact_phone or s.contact_mobile or s.contact_email:
            contact = ContactDetails(
                phone=s.contact_phone or "",
                mobile=s.contact_mobile or "",
                email=s.contact_email or "",
            )

        return cls(
            dry_run=s.dry_run,
            max_login_wait_ms=s.max_login_wait_ms,
            poll_interval_ms=s.poll_interval_ms,
            audit_evidence_dir=resolve_runtime_path(s.audit_evidence_dir),
            portal_entry_url=s.portal_entry_url,
            settle_ms=s.settle_ms,
            slow_mo_ms=s.slow_mo_ms,
            max_transitions=s.max_transitions,
            include_retry=s.include_retry,
            evidence_prefix=s.evidence_prefix,
            contact=contact,
        )


def require_database_url(value: object = _UNSET) -> str:
    """
    If `value` is provided (even None), use it. Otherwise fall back to settings.database_url.
    This makes the function unit-testable without depending on a local .env file.
    """
    url = settings.database_url if value is _UNSET else value

    if not isinstance(url, str) or not url.strip():
        raise RuntimeError(
            "DATABASE_URL is not set. Add it to .env (e.g. DATABASE_URL=sqlite:///bookings.db) "
            "or set it as an environment variable."
        )

    return url


def require_contact_details(config: RunConfig) -> ContactDetails:
    """
    The portal refuses to continue past the user-info page without phone, mobile and email.
    Raises before the browser is opened instead of half-way through a login.
    """
    contact = config.contact
    missing = []
    if contact is None or not contact.phone:
        missing.append("AADE_PHONE")
    if contact is None or not contact.mobile:
        missing.append("AADE_MOBILE")
    if contact is None or not contact.email:
        missing.append("AADE_EMAIL")
    if missing:
        raise RuntimeError(f"Missing required contact settings: {', '.join(missing)}")
    assert contact is not None
    return contact


settings = Settings()
