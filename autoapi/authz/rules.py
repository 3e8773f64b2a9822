"""
Value types shared by the registry and the engine.

Everything here is immutable: a ``Principal`` and an ``Operation`` live for a
single field resolution, a ``RuleBundle`` lives for the whole process.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Iterable, Mapping, Optional

from .errors import ConfigError
from .filters import RowScope


@dataclass(frozen=True)
class Principal:
    """The authenticated caller. Anonymous requests have no Principal at all."""

    id: int
    email: str | None = None

    def to_claims(self) -> dict[str, object]:
        return {"id": self.id, "email": self.email}


class OperationKind(str, Enum):
    QUERY = "query"
    MUTATION = "mutation"


class Action(str, Enum):
    FIND_MANY = "find_many"
    FIND_FIRST = "find_first"
    COUNT = "count"
    CREATE_ONE = "create_one"
    CREATE_MANY = "create_many"
    UPDATE = "update"
    DELETE = "delete"

    @property
    def kind(self) -> OperationKind:
        if self in (Action.FIND_MANY, Action.FIND_FIRST, Action.COUNT):
            return OperationKind.QUERY
        return OperationKind.MUTATION

    @property
    def scopes_existing_rows(self) -> bool:
        """True for actions that read or modify rows already in storage."""
        return self not in (Action.CREATE_ONE, Action.CREATE_MANY)


def _freeze(data: Mapping[str, Any] | None) -> Mapping[str, Any]:
    return MappingProxyType(dict(data or {}))


@dataclass(frozen=True)
class Operation:
    """One field resolution attempt (the operation descriptor)."""

    model: str
    action: Action
    depth: int = 0
    input: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.depth < 0:
            raise ValueError("depth must be non-negative")
        object.__setattr__(self, "input", _freeze(self.input))

    @property
    def kind(self) -> OperationKind:
        return self.action.kind


Gate = Callable[[Optional[Principal], Operation], bool]
RowFilter = Callable[[Optional[Principal], Operation], RowScope]


class InputOverride:
    """
    Server-computed input values.

    ``fields`` names every key the override may produce, so the registry can
    reason about it without calling it.
    """

    def __init__(
        self,
        fields: Iterable[str],
        compute: Callable[[Optional[Principal]], Mapping[str, Any]],
        name: str = "override",
    ) -> None:
        self.fields = frozenset(fields)
        self._compute = compute
        self.name = name

    def __call__(self, principal: Principal | None) -> dict[str, Any]:
        values = dict(self._compute(principal))
        unexpected = set(values) - self.fields
        if unexpected:
            raise ConfigError(f"{self.name} produced undeclared fields: {sorted(unexpected)}")
        return values

    def __repr__(self) -> str:
        return f"InputOverride({self.name}, fields={sorted(self.fields)})"


NO_OVERRIDE = InputOverride((), lambda _principal: {}, name="none")


@dataclass(frozen=True)
class RuleBundle:
    """Fully-resolved rule for one (model, operation kind) pair."""

    gate: Gate
    row_filter: RowFilter
    input_field_mask: frozenset[str]
    input_override: InputOverride
    depth_limit: int


@dataclass(frozen=True)
class RuleSpec:
    """
    One configuration layer. ``None`` means "inherit from the layer below".
    """

    gate: Gate | None = None
    row_filter: RowFilter | None = None
    input_field_mask: frozenset[str] | None = None
    input_override: InputOverride | None = None
    depth_limit: int | None = None
