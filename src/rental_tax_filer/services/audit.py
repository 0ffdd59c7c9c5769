from __future__ import annotations

import re
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path

import structlog

from rental_tax_filer.services.portal_client import PortalSession

logger = structlog.get_logger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AuditRecorder:
    """
    What it does:
    - Captures one full-page screenshot per submission attempt.

    Why it matters:
    - Proves what was filled before any submit/cancel click, for every attempt.

    Behavior:
    - Path: <directory>/<prefix>_<platform_id>_<UTC timestamp with microseconds>.png
    - Write-once: an existing file is never overwritten; a numeric suffix is added.
    - Best effort: never raises; a failed capture is logged and returns None.
    """

    def __init__(
        self,
        directory: Path,
        *,
        prefix: str = "declaration",
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.directory = Path(directory)
        self.prefix = prefix
        self._clock = clock

    def evidence_path(self, platform_id: str) -> Path:
        safe_id = _UNSAFE_CHARS.sub("-", platform_id).strip("-") or "unknown"
        stamp = self._clock().strftime("%Y%m%dT%H%M%S%fZ")
        base = f"{self.prefix}_{safe_id}_{stamp}"

        candidate = self.directory / f"{base}.png"
        counter = 1
        while candidate.exists():
            candidate = self.directory / f"{base}-{counter}.png"
            counter += 1
        return candidate

    def capture(self, session: PortalSession, platform_id: str) -> Path | None:
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            path = self.evidence_path(platform_id)
            session.screenshot(path)
        except Exception as e:
            logger.warning("audit_capture_failed", platform_id=platform_id, error=str(e))
            return None

        logger.info("audit_captured", platform_id=platform_id, path=str(path))
        return path
