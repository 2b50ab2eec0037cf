# Overview: Service-layer operations for concurrency; encapsulates business logic and database work.

from __future__ import annotations

import logging
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db


logger = logging.getLogger(__name__)


class PersistenceError(Exception):
    """The store failed mid-operation; the transaction was rolled back."""


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but MySQL/Postgres honor it.
    """
    return query.with_for_update()


@contextmanager
def transaction(operation: str):
    """
    Commit the session on success; roll back on any error.

    Domain exceptions propagate unchanged. SQLAlchemy failures (deadlocks and
    lock wait timeouts included) are wrapped in PersistenceError.
    """
    try:
        yield db.session
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Database failure during %s", operation)
        raise PersistenceError(f"Failed to {operation}") from exc
    except Exception:
        db.session.rollback()
        raise
