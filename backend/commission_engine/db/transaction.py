"""
Transaction boundaries for multi-step commission operations.

Repositories normally commit after every write. While an `atomic()` block is
open on their session they only flush, so the block decides whether the
whole unit of work is committed or rolled back.
"""

import logging
from contextlib import contextmanager
from functools import wraps

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from commission_engine.core.exceptions import RepositoryError
from commission_engine.domain.interfaces import ITransactionManager

logger = logging.getLogger(__name__)

_DEPTH_KEY = "commission_atomic_depth"


def in_atomic(session: Session) -> bool:
    return session.info.get(_DEPTH_KEY, 0) > 0


def commit_or_flush(session: Session) -> None:
    """Commit, or only flush when an enclosing atomic block owns the commit."""
    if in_atomic(session):
        session.flush()
    else:
        session.commit()


def rollback_unless_atomic(session: Session) -> None:
    """Roll back a failed standalone write.

    Inside an atomic block the enclosing savepoint or boundary rolls back.
    """
    if not in_atomic(session):
        session.rollback()


class SQLAlchemyTransactionManager(ITransactionManager):
    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def atomic(self):
        depth = self.db.info.get(_DEPTH_KEY, 0)
        self.db.info[_DEPTH_KEY] = depth + 1
        try:
            yield
            if depth == 0:
                self.db.commit()
        except Exception:
            if depth == 0:
                self.db.rollback()
                logger.warning("Atomic block rolled back", exc_info=True)
            raise
        finally:
            self.db.info[_DEPTH_KEY] = depth

    @contextmanager
    def savepoint(self):
        if not in_atomic(self.db):
            yield
            return
        nested = self.db.begin_nested()
        try:
            yield
        except Exception:
            nested.rollback()
            raise
        else:
            nested.commit()


class NullTransactionManager(ITransactionManager):
    """Every step commits on its own (no shared boundary)."""

    @contextmanager
    def atomic(self):
        yield

    @contextmanager
    def savepoint(self):
        yield


def repository_operation(operation: str):
    """Convert SQLAlchemy failures of a repository method into RepositoryError."""

    def decorator(func):
        @wraps(func)
        def wrapper(self, *args, **kwargs):
            try:
                return func(self, *args, **kwargs)
            except SQLAlchemyError as e:
                rollback_unless_atomic(self.db)
                logger.error(
                    f"Database error during {operation}",
                    extra={"context": {"operation": operation, "error": str(e)}},
                    exc_info=True,
                )
                raise RepositoryError(
                    f"Falha ao executar {operation}", operation=operation
                ) from e

        return wrapper

    return decorator
