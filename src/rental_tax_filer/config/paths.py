from __future__ import annotations

import sys
from pathlib import Path


def app_base_dir() -> Path:
    """
    Returns the base directory for runtime files (.env, bookings.db, audit_logs/).

    - In dev: repo root (relative to this file)
    - In a bundled executable: directory containing the executable
    """
    if getattr(sys, "frozen", False) and hasattr(sys, "_MEIPASS"):
        return Path(sys.executable).resolve().parent

    # .../src/rental_tax_filer/config/paths.py -> repo root is 3 parents up
    return Path(__file__).resolve().parents[3]


def env_file_path() -> Path:
    return app_base_dir() / ".env"


def resolve_runtime_path(value: str | Path) -> Path:
    """Relative paths are anchored at app_base_dir(), absolute ones are kept."""
    p = Path(value)
    return p if p.is_absolute() else app_base_dir() / p
