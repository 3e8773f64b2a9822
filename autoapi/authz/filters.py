"""
Storage-independent row filter expressions.

Rules produce these; the storage layer translates them into SQL
(see ``autoapi/db/filters.py``). Caller-supplied ``where`` payloads are parsed
into the same tree so both can be combined before anything reaches storage.

JSON form accepted by ``parse_where``::

    {"published": true}                         -> published = true
    {"author_id": {"eq": 7}, "title": {"like": "%sql%"}}
    {"OR": [{"published": true}, {"author_id": 7}]}
    {"AND": [...]}, {"NOT": {...}}
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Union

OPERATORS = frozenset({"eq", "ne", "gt", "gte", "lt", "lte", "in", "not_in", "is_null", "like"})
SCALAR_TYPES = (str, int, float, bool)


class FilterError(ValueError):
    """Malformed filter payload."""

    pass


@dataclass(frozen=True)
class Condition:
    field: str
    op: str
    value: Any


@dataclass(frozen=True)
class And:
    terms: tuple["Filter", ...]


@dataclass(frozen=True)
class Or:
    terms: tuple["Filter", ...]


@dataclass(frozen=True)
class Not:
    term: "Filter"


class Unconstrained:
    """
    Explicit "no row constraint".

    A rule must return this on purpose; ``None`` is not accepted as a stand-in.
    """

    _instance: "Unconstrained | None" = None

    def __new__(cls) -> "Unconstrained":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNCONSTRAINED"


UNCONSTRAINED = Unconstrained()

Filter = Union[Condition, And, Or, Not]
RowScope = Union[Filter, Unconstrained]


def eq(field: str, value: Any) -> Condition:
    return Condition(field, "eq", value)


def and_(*terms: RowScope) -> RowScope:
    """AND the given scopes together, dropping UNCONSTRAINED terms."""

    kept = tuple(t for t in terms if not isinstance(t, Unconstrained))
    if not kept:
        return UNCONSTRAINED
    if len(kept) == 1:
        return kept[0]
    return And(kept)


def or_(*terms: Filter) -> Filter:
    if not terms:
        raise FilterError("OR requires at least one term")
    if len(terms) == 1:
        return terms[0]
    return Or(tuple(terms))


def is_filter(value: object) -> bool:
    return isinstance(value, (Condition, And, Or, Not, Unconstrained))


def parse_where(where: Mapping[str, Any] | None) -> RowScope:
    """Parse a caller ``where`` payload. Empty or missing means UNCONSTRAINED."""

    if not where:
        return UNCONSTRAINED
    if not isinstance(where, Mapping):
        raise FilterError("where must be an object")

    terms: list[Filter] = []
    for key, value in where.items():
        if key == "AND":
            terms.extend(_parse_list(key, value))
        elif key == "OR":
            parts = _parse_list(key, value)
            if parts:
                terms.append(or_(*parts))
        elif key == "NOT":
            inner = parse_where(value)
            if isinstance(inner, Unconstrained):
                raise FilterError("NOT requires a non-empty condition")
            terms.append(Not(inner))
        else:
            terms.extend(_parse_field(key, value))
    return and_(*terms)


def _parse_list(key: str, value: Any) -> list[Filter]:
    if not isinstance(value, list):
        raise FilterError(f"{key} expects a list")
    parsed: list[Filter] = []
    for item in value:
        scope = parse_where(item)
        if not isinstance(scope, Unconstrained):
            parsed.append(scope)
    return parsed


def _is_scalar(value: Any) -> bool:
    return value is None or isinstance(value, SCALAR_TYPES)


def _check_operand(field: str, op: str, operand: Any) -> None:
    if op in ("in", "not_in"):
        if not isinstance(operand, list) or not all(_is_scalar(item) for item in operand):
            raise FilterError(f"'{op}' on field '{field}' expects a list of scalar values")
    elif op == "is_null":
        if not isinstance(operand, bool):
            raise FilterError(f"'is_null' on field '{field}' expects a boolean")
    elif op == "like":
        if not isinstance(operand, str):
            raise FilterError(f"'like' on field '{field}' expects a string")
    elif not _is_scalar(operand):
        raise FilterError(f"'{op}' on field '{field}' expects a scalar value")


def _parse_field(field: str, value: Any) -> list[Filter]:
    if not isinstance(value, Mapping):
        # Shorthand: {"published": true}
        _check_operand(field, "eq", value)
        return [Condition(field, "eq", value)]

    conditions: list[Filter] = []
    for op, operand in value.items():
        if op not in OPERATORS:
            raise FilterError(f"Unknown operator '{op}' on field '{field}'")
        _check_operand(field, op, operand)
        conditions.append(Condition(field, op, operand))
    if not conditions:
        raise FilterError(f"Empty condition for field '{field}'")
    return conditions
