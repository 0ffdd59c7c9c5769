from __future__ import annotations

import pytest

from rental_tax_filer.config.settings import Settings
from rental_tax_filer.db.enums import BookingStatus
from rental_tax_filer.db.repositories.bookings import BookingRepository
from rental_tax_filer.portal.form_config import DEFAULT_LAYOUT
from rental_tax_filer.testing.fakes import build_portal


def _settings(tmp_path, **overrides) -> Settings:
    values = dict(
        AUDIT_EVIDENCE_DIR=str(tmp_path / "audit_logs"),
        SETTLE_MS=0,
        SLOW_MO_MS=0,
        AADE_PHONE="2101234567",
        AADE_MOBILE="6971234567",
        AADE_EMAIL="host@example.com",
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture()
def wired(monkeypatch, tmp_path, engine, session_scope):
    """
    Wires the CLI to the test database and a fake browser.

    Returns the portal the CLI will receive and a list of PlaywrightPortalSession kwargs.
    """
    import rental_tax_filer.scraping.run_declarations as runner

    portal = build_portal(start="registry")
    constructed: list[dict] = []

    def _make_portal(**kwargs):
        constructed.append(kwargs)
        return portal

    monkeypatch.setattr(runner, "settings", _settings(tmp_path), raising=True)
    monkeypatch.setattr(runner, "get_engine", lambda: engine, raising=True)
    monkeypatch.setattr(runner, "get_session", session_scope, raising=True)
    monkeypatch.setattr(runner, "PlaywrightPortalSession", _make_portal, raising=True)
    return runner, portal, constructed


@pytest.mark.unit
def test_cli_production_refuses_without_ack(wired):
    """
    What it does:
    - Runs `run --production` without the acknowledgement flag.

    Why it matters:
    - Prevents accidental irreversible submission.

    Behavior:
    - Must raise RuntimeError before a browser is even created.
    """
    runner, portal, constructed = wired

    with pytest.raises(RuntimeError, match="Refusing to final-submit"):
        runner.main(["run", "--production"])

    assert constructed == []
    assert portal.calls == []


@pytest.mark.unit
def test_cli_dry_run_false_in_env_still_needs_ack(wired, monkeypatch, tmp_path):
    runner, portal, constructed = wired
    monkeypatch.setattr(runner, "settings", _settings(tmp_path, DRY_RUN=False), raising=True)

    with pytest.raises(RuntimeError, match="Refusing to final-submit"):
        runner.main(["run"])

    assert constructed == []


@pytest.mark.unit
def test_cli_refuses_without_contact_details(wired, monkeypatch, tmp_path):
    runner, _, constructed = wired
    monkeypatch.setattr(runner, "settings", _settings(tmp_path, AADE_EMAIL=None), raising=True)

    with pytest.raises(RuntimeError, match="AADE_EMAIL"):
        runner.main(["run"])

    assert constructed == []


@pytest.mark.unit
def test_cli_default_run_is_dry(wired, seed, make_candidate, session_scope):
    runner, portal, constructed = wired
    [booking_id] = seed(make_candidate())

    assert runner.main(["run"]) == 0

    assert constructed == [{"headless": False}]
    assert not portal.clicked(DEFAULT_LAYOUT.selectors.final_submit)
    assert portal.calls[0] == ("start",)
    assert portal.calls[-1] == ("close",)
    with session_scope() as s:
        assert BookingRepository(s).get(booking_id).status == BookingStatus.DRY_RUN_VERIFIED.value


@pytest.mark.unit
def test_cli_production_submits_when_ack(wired, seed, make_candidate, session_scope):
    runner, portal, _ = wired
    [booking_id] = seed(make_candidate())

    assert runner.main(["run", "--production", "--i-understand-this-will-submit"]) == 0

    assert portal.clicked(DEFAULT_LAYOUT.selectors.final_submit)
    with session_scope() as s:
        assert BookingRepository(s).get(booking_id).status == BookingStatus.SUBMITTED.value


@pytest.mark.unit
def test_cli_ingest_mock_and_queue(wired, capsys):
    runner, _, _ = wired

    assert runner.main(["ingest-mock"]) == 0
    assert runner.main(["ingest-mock"]) == 0
    out = capsys.readouterr().out
    assert "inserted=2 duplicates=0" in out
    assert "inserted=0 duplicates=2" in out

    assert runner.main(["queue"]) == 0
    lines = capsys.readouterr().out.splitlines()
    assert ["PENDING", "2"] in [line.split() for line in lines]
