"""Shared service base with robust session lifecycle behavior."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from forecourt.core.exceptions import ConflictError, DatabaseError, InvalidStateError
from forecourt.database.db import SessionLocal

logger = logging.getLogger(__name__)


class BaseService:
    """Base class for services that operate on a SQLAlchemy session."""

    def __init__(self, db: Session | None = None) -> None:
        self.db = db or SessionLocal()

    def commit(self) -> None:
        """Commit current transaction and rollback on failure."""
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def rollback(self) -> None:
        self.db.rollback()

    def close(self) -> None:
        self.db.close()

    @contextmanager
    def unit_of_work(self) -> Iterator[Session]:
        """Run a block as one transaction: commit once, roll back on any error.

        Concurrent-write failures surface as domain errors.
        """
        try:
            yield self.db
            self.db.commit()
        except StaleDataError as exc:
            self.db.rollback()
            logger.warning("service.unit_of_work.stale", extra={"event": "service.unit_of_work.stale"})
            raise InvalidStateError("The deal was modified concurrently; reload and retry.") from exc
        except IntegrityError as exc:
            self.db.rollback()
            raise ConflictError("The change conflicts with an existing record.") from exc
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("service.unit_of_work.failed", extra={"event": "service.unit_of_work.failed"})
            raise DatabaseError(str(exc)) from exc
        except Exception:
            self.db.rollback()
            raise

    def __enter__(self) -> "BaseService":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if exc_type:
            self.rollback()
        self.close()
