"""
Storage collaborator for the generated API.

Receives what a Permit verdict carries (row scope, effective input, depth
limit) and runs it against SQLAlchemy. Scopes are always compiled into the
SQL statement itself, including the ones on included relations.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from autoapi.authz.filters import RowScope, Unconstrained
from autoapi.db.base import Base
from autoapi.db.filters import QueryError, column_for, to_clause

logger = logging.getLogger(__name__)


@dataclass
class Selection:
    """A model plus its row scope and the relations to load under it."""

    model: type
    scope: RowScope
    relations: dict[str, "Selection"] = field(default_factory=dict)

    @property
    def depth(self) -> int:
        if not self.relations:
            return 0
        return 1 + max(child.depth for child in self.relations.values())


def mapped_models() -> dict[str, type]:
    """Map table name -> ORM class for every mapped model."""

    # Local import so the mappers are registered before we read them.
    from autoapi.models import blog  # noqa: F401

    return {m.class_.__tablename__: m.class_ for m in Base.registry.mappers}


def table_names() -> list[str]:
    from autoapi.models import blog  # noqa: F401

    return list(Base.metadata.tables)


def relation_target(model: type, name: str) -> type:
    relationships = model.__mapper__.relationships
    if name not in relationships:
        raise QueryError(f"Unknown relation '{name}' on {model.__tablename__}")
    return relationships[name].mapper.class_


def serialize(obj: Any, relations: Mapping[str, Selection] | None = None) -> dict[str, Any]:
    mapper = obj.__mapper__
    data = {attr.key: getattr(obj, attr.key) for attr in mapper.column_attrs}
    for name, child in (relations or {}).items():
        value = getattr(obj, name)
        if mapper.relationships[name].uselist:
            data[name] = [serialize(item, child.relations) for item in value]
        else:
            data[name] = serialize(value, child.relations) if value is not None else None
    return data


def _loader_options(model: type, relations: Mapping[str, Selection], parent: Any = None) -> list[Any]:
    options: list[Any] = []
    for name, child in relations.items():
        attr = getattr(model, name)
        if not isinstance(child.scope, Unconstrained):
            attr = attr.and_(to_clause(child.model, child.scope))
        loader = selectinload(attr) if parent is None else parent.selectinload(attr)
        if child.relations:
            options.extend(_loader_options(child.model, child.relations, loader))
        else:
            options.append(loader)
    return options


class ModelRepository:
    def __init__(self, db: Session, model: type) -> None:
        self.db = db
        self.model = model

    # ---- Queries --------------------------------------------------------------------

    def _select(
        self,
        selection: Selection,
        depth_limit: int,
        order_by: Mapping[str, str] | None,
        limit: int | None,
        offset: int | None,
    ):
        if selection.depth > depth_limit:
            raise QueryError("Query depth exceeds limit")

        stmt = select(self.model).where(to_clause(self.model, selection.scope))
        stmt = stmt.options(*_loader_options(self.model, selection.relations))
        # Scoped relation collections must not be reused from the identity map.
        stmt = stmt.execution_options(populate_existing=True)

        if order_by:
            for name, direction in order_by.items():
                column = column_for(self.model, name)
                stmt = stmt.order_by(column.desc() if direction == "desc" else column.asc())
        else:
            stmt = stmt.order_by(*self.model.__mapper__.primary_key)

        if limit is not None:
            stmt = stmt.limit(limit)
        if offset:
            stmt = stmt.offset(offset)
        return stmt

    def find_many(
        self,
        selection: Selection,
        depth_limit: int,
        order_by: Mapping[str, str] | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[dict[str, Any]]:
        stmt = self._select(selection, depth_limit, order_by, limit, offset)
        return [serialize(row, selection.relations) for row in self.db.scalars(stmt).all()]

    def find_first(
        self,
        selection: Selection,
        depth_limit: int,
        order_by: Mapping[str, str] | None = None,
    ) -> dict[str, Any] | None:
        stmt = self._select(selection, depth_limit, order_by, 1, None)
        row = self.db.scalars(stmt).first()
        return serialize(row, selection.relations) if row is not None else None

    def count(self, scope: RowScope) -> int:
        stmt = select(func.count()).select_from(self.model).where(to_clause(self.model, scope))
        return int(self.db.execute(stmt).scalar_one())

    # ---- Mutations ------------------------------------------------------------------

    def create_many(self, inputs: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
        rows = [self.model(**dict(values)) for values in inputs]
        self.db.add_all(rows)
        self._commit()
        return [serialize(row) for row in rows]

    def create_one(self, values: Mapping[str, Any]) -> dict[str, Any]:
        return self.create_many([values])[0]

    def update(self, scope: RowScope, values: Mapping[str, Any]) -> list[dict[str, Any]]:
        rows = self._scoped_rows(scope)
        for row in rows:
            for key, value in values.items():
                setattr(row, key, value)
        self._commit()
        return [serialize(row) for row in rows]

    def delete(self, scope: RowScope) -> list[dict[str, Any]]:
        rows = self._scoped_rows(scope)
        deleted = [serialize(row) for row in rows]
        for row in rows:
            self.db.delete(row)
        self._commit()
        return deleted

    def _scoped_rows(self, scope: RowScope) -> list[Any]:
        stmt = select(self.model).where(to_clause(self.model, scope)).order_by(*self.model.__mapper__.primary_key)
        return list(self.db.scalars(stmt).all())

    def _commit(self) -> None:
        try:
            self.db.commit()
        except IntegrityError:
            logger.info("Constraint violation on %s", self.model.__tablename__)
            self.db.rollback()
            raise
