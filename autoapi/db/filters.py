from __future__ import annotations

from functools import lru_cache
from typing import Any

from pydantic import TypeAdapter, ValidationError
from sqlalchemy import DateTime, and_, not_, or_, true
from sqlalchemy.orm import InstrumentedAttribute
from sqlalchemy.sql.elements import ColumnElement

from autoapi.authz.filters import And, Condition, Not, Or, RowScope, Unconstrained


class QueryError(ValueError):
    """Caller referenced an unknown field/relation, or the query is too deep."""

    pass


def column_for(model: type, field: str) -> InstrumentedAttribute:
    mapper = model.__mapper__
    if field not in mapper.column_attrs:
        raise QueryError(f"Unknown field '{field}' on {model.__tablename__}")
    return getattr(model, field)


@lru_cache(maxsize=None)
def _adapter(python_type: type) -> TypeAdapter:
    return TypeAdapter(python_type)


def _coerce(column: InstrumentedAttribute, value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, list):
        return [_coerce(column, item) for item in value]
    try:
        python_type = column.type.python_type
    except NotImplementedError:
        return value
    # JSON carries timestamps as ISO strings; every other type must match exactly.
    strict = not isinstance(column.type, DateTime)
    try:
        return _adapter(python_type).validate_python(value, strict=strict)
    except ValidationError:
        raise QueryError(f"Invalid value {value!r} for field '{column.key}'") from None


def _condition(model: type, cond: Condition) -> ColumnElement[bool]:
    column = column_for(model, cond.field)
    op = cond.op
    value: Any = cond.value if op in ("like", "is_null") else _coerce(column, cond.value)

    if op == "eq":
        return column.is_(None) if value is None else column == value
    if op == "ne":
        return column.is_not(None) if value is None else column != value
    if op == "gt":
        return column > value
    if op == "gte":
        return column >= value
    if op == "lt":
        return column < value
    if op == "lte":
        return column <= value
    if op == "in":
        return column.in_(value)
    if op == "not_in":
        return column.not_in(value)
    if op == "is_null":
        return column.is_(None) if value else column.is_not(None)
    if op == "like":
        return column.like(value)
    raise QueryError(f"Unsupported operator '{op}'")


def to_clause(model: type, scope: RowScope) -> ColumnElement[bool]:
    """
    Translate a filter expression into a WHERE clause for `model`.

    This is where row scoping gets pushed into SQL: rows outside the scope
    never leave the database.
    """

    if isinstance(scope, Unconstrained):
        return true()
    if isinstance(scope, Condition):
        return _condition(model, scope)
    if isinstance(scope, And):
        return and_(*(to_clause(model, t) for t in scope.terms))
    if isinstance(scope, Or):
        return or_(*(to_clause(model, t) for t in scope.terms))
    if isinstance(scope, Not):
        return not_(to_clause(model, scope.term))
    raise QueryError(f"Not a filter expression: {scope!r}")
