"""
One database transaction per scheduling operation.

Everything written inside the block commits together or not at all; events
queued with `publish` go out only after a successful commit.
"""
from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from lesson_scheduling.core.errors import PersistenceFailure, SchedulingError, StaleState
from lesson_scheduling.services.rabbitmq_client import publish_lesson_event

logger = logging.getLogger(__name__)

STALE_MESSAGE = "The record was changed by someone else; reload and try again"


class UnitOfWork:
    def __init__(self, db: Session):
        self.db = db
        self._events: list[tuple[str, dict[str, Any]]] = []

    def publish(self, event_type: str, event_data: dict[str, Any]) -> None:
        self._events.append((event_type, event_data))

    def __enter__(self) -> "UnitOfWork":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is not None:
            self.db.rollback()
            _translate(exc)
            return False

        try:
            self.db.commit()
        except Exception as commit_exc:
            self.db.rollback()
            _translate(commit_exc)
            raise

        for event_type, event_data in self._events:
            publish_lesson_event(event_type, event_data)
        return False


def _translate(exc: BaseException) -> None:
    """Re-raise backend exceptions as domain errors; leave others alone."""
    if isinstance(exc, SchedulingError):
        return
    if isinstance(exc, StaleDataError):
        logger.warning("Stale write rejected: %s", exc)
        raise StaleState(STALE_MESSAGE) from exc
    if isinstance(exc, IntegrityError):
        logger.warning("Integrity error: %s", exc.orig)
        raise PersistenceFailure("The database rejected the write (conflicting or invalid data)") from exc
    if isinstance(exc, SQLAlchemyError):
        logger.error("Database error: %s", exc)
        raise PersistenceFailure("Database unavailable, please try again later") from exc
