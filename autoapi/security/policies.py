"""
Named rule building blocks referenced from the rules YAML.

Each catalog maps a policy name to a factory; YAML arguments are passed to
the factory as keyword arguments, e.g.::

    row_filter: {policy: owner, field: author_id}
"""

from __future__ import annotations

from typing import Any, Callable, Mapping, Optional

from autoapi.authz.errors import AuthorizationError, ConfigError
from autoapi.authz.filters import RowScope, eq, or_
from autoapi.authz.registry import permit_all, unconstrained
from autoapi.authz.rules import NO_OVERRIDE, Gate, InputOverride, Operation, Principal, RowFilter


# ---- Gates --------------------------------------------------------------------------


def authenticated(principal: Optional[Principal], operation: Operation) -> bool:
    return principal is not None


def deny_all(principal: Optional[Principal], operation: Operation) -> bool:
    return False


# ---- Row filters --------------------------------------------------------------------


def owner_filter(field: str) -> RowFilter:
    def _filter(principal: Optional[Principal], operation: Operation) -> RowScope:
        if principal is None:
            # Evaluating an ownership scope without a principal means the
            # operation is missing an `authenticated` gate.
            raise ConfigError(f"Ownership filter on {operation.model}.{field} evaluated without a principal")
        return eq(field, principal.id)

    return _filter


def match_filter(field: str, value: Any) -> RowFilter:
    def _filter(principal: Optional[Principal], operation: Operation) -> RowScope:
        return eq(field, value)

    return _filter


def published_or_owner_filter(owner_field: str, published_field: str = "published") -> RowFilter:
    """Anonymous callers see published rows; authenticated callers also see their own."""

    def _filter(principal: Optional[Principal], operation: Operation) -> RowScope:
        published = eq(published_field, True)
        if principal is None:
            return published
        return or_(published, eq(owner_field, principal.id))

    return _filter


# ---- Input overrides ----------------------------------------------------------------


def owner_override(field: str) -> InputOverride:
    def _compute(principal: Optional[Principal]) -> Mapping[str, Any]:
        if principal is None:
            raise AuthorizationError()
        return {field: principal.id}

    return InputOverride((field,), _compute, name=f"owner:{field}")


GATES: dict[str, Callable[..., Gate]] = {
    "public": lambda: permit_all,
    "authenticated": lambda: authenticated,
    "deny": lambda: deny_all,
}

ROW_FILTERS: dict[str, Callable[..., RowFilter]] = {
    "unconstrained": lambda: unconstrained,
    "owner": owner_filter,
    "match": match_filter,
    "published_or_owner": published_or_owner_filter,
}

INPUT_OVERRIDES: dict[str, Callable[..., InputOverride]] = {
    "none": lambda: NO_OVERRIDE,
    "owner": owner_override,
}


def build_policy(catalog: Mapping[str, Callable[..., Any]], kind: str, name: str, args: Mapping[str, Any]) -> Any:
    factory = catalog.get(name)
    if factory is None:
        raise ConfigError(f"Unknown {kind} policy '{name}'. Known: {sorted(catalog)}")
    try:
        return factory(**args)
    except TypeError as exc:
        raise ConfigError(f"Bad arguments for {kind} policy '{name}': {exc}") from exc
