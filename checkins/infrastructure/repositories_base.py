# checkins/infrastructure/repositories_base.py
from __future__ import annotations

import builtins
from collections.abc import Iterable
from typing import Any, Generic, TypeVar

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .exceptions import NotFoundError, handle_database_error
from .logging import get_logger

T = TypeVar("T")  # ORM model type


class BaseRepository(Generic[T]):
    """
    Small generic repository with CRUD and query helpers.
    - Subclasses set ``model`` and, optionally, the ``not_found`` error raised
      by ``get_by_id_required``.
    - Entity repos add decorators (logging) on the methods they expose.
    """

    model: type[T]  # must be set by subclasses
    not_found: type[NotFoundError] = NotFoundError

    def __init__(self, session: Session):
        if not hasattr(self, "model") or self.model is None:
            raise ValueError(f"{self.__class__.__name__}.model must be set to an ORM class.")
        self.s = session
        self.logger = get_logger(self.__class__.__name__)

    def _handle_error(self, error: SQLAlchemyError, operation: str):
        """Log and convert a driver error into a ``DatabaseError`` subclass."""
        db_error = handle_database_error(error, operation)
        self.logger.error(f"Database error in {operation}: {str(error)}", exc_info=True)
        raise db_error from error

    # ---------- Read ----------
    def get(self, id_: Any) -> T | None:
        return self.s.get(self.model, id_)

    def get_by_id_required(self, id_: Any) -> T:
        obj = self.get(id_)
        if obj is None:
            raise self.not_found(id_)
        return obj

    def list(
        self,
        *filters: Any,
        order_by: Iterable[Any] | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> builtins.list[T]:
        stmt = select(self.model)
        for f in filters:
            stmt = stmt.where(f)
        if order_by:
            stmt = stmt.order_by(*order_by)
        if offset:
            stmt = stmt.offset(offset)
        if limit:
            stmt = stmt.limit(limit)
        return list(self.s.scalars(stmt).all())

    def exists(self, *filters: Any) -> bool:
        stmt = select(self.model)
        for f in filters:
            stmt = stmt.where(f)
        return bool(self.s.scalar(select(stmt.exists())))

    def count(self, *filters: Any) -> int:
        stmt = select(func.count()).select_from(self.model)
        for f in filters:
            stmt = stmt.where(f)
        return int(self.s.scalar(stmt) or 0)

    # ---------- Write ----------
    def create(self, **fields: Any) -> T:
        obj = self.model(**fields)
        self.s.add(obj)
        self.s.flush()  # get PKs without committing
        return obj

    def update(self, obj: T, **fields: Any) -> T:
        for k, v in fields.items():
            setattr(obj, k, v)
        self.s.flush()
        return obj
