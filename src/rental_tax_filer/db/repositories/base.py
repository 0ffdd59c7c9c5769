from __future__ import annotations

from sqlalchemy.orm import Session


class BaseRepository:
    """
    Repositories flush but never commit: the transaction boundary is the caller's
    get_session() block, so one status write is one commit.
    """

    def __init__(self, session: Session) -> None:
        self.session = session
