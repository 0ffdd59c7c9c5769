from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import AbstractContextManager, contextmanager

from sqlalchemy import create_engine
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

from rental_tax_filer.config.paths import resolve_runtime_path
from rental_tax_filer.config.settings import require_database_url

_ENGINE: Engine | None = None
SessionLocal: sessionmaker[Session] | None = None

# A zero-arg callable returning a transactional session scope, e.g. get_session.
SessionScope = Callable[[], AbstractContextManager[Session]]


def get_engine() -> Engine:
    global _ENGINE, SessionLocal
    if _ENGINE is None:
        url = resolve_database_url(require_database_url())
        # SQLite files are opened from the CLI thread only; no pool pinging needed.
        options = {} if url.get_backend_name() == "sqlite" else {"pool_pre_ping": True}
        _ENGINE = create_engine(url, **options)
        SessionLocal = _session_factory(_ENGINE)
    return _ENGINE


def resolve_database_url(value: str) -> URL:
    """
    Anchors a relative SQLite file at app_base_dir(), next to .env.

    The queue must be the same store whatever directory the CLI runs from.
    In-memory and non-SQLite URLs are returned unchanged.
    """
    url = make_url(value)
    if url.get_backend_name() != "sqlite":
        return url
    database = url.database
    if not database or database == ":memory:" or database.startswith("file:"):
        return url
    return url.set(database=str(resolve_runtime_path(database)))


def _session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@contextmanager
def _transaction(factory: sessionmaker[Session]) -> Iterator[Session]:
    """
    What it does:
    - Yields one session and ends it as a single transaction.

    Behavior:
    - Commits on success, rolls back on any exception and re-raises.
    - Always closes the session.
    """
    session: Session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@contextmanager
def get_session() -> Iterator[Session]:
    if SessionLocal is None:
        get_engine()

    assert SessionLocal is not None  # for type checkers
    with _transaction(SessionLocal) as session:
        yield session


def session_scope_for(engine: Engine) -> SessionScope:
    """
    Builds a get_session()-style scope bound to an explicit engine.

    Used by tests and by callers that do not want the module-level engine.
    """
    factory = _session_factory(engine)
    return lambda: _transaction(factory)
