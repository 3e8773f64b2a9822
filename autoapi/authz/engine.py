"""
Authorization engine.

Evaluates the rule bundle for one operation and produces a verdict. Pure and
deterministic: no I/O, no state beyond the read-only registry.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Union

from .errors import AuthorizationError, ConfigError, DenyReason
from .filters import RowScope, is_filter
from .registry import RuleRegistry
from .rules import Operation, OperationKind, Principal, RuleBundle

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Permit:
    row_filter: RowScope
    input: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    depth_limit: int = 0


@dataclass(frozen=True)
class Deny:
    reason: DenyReason


Verdict = Union[Permit, Deny]


class AuthorizationEngine:
    def __init__(self, registry: RuleRegistry) -> None:
        self.registry = registry

    def authorize(self, principal: Principal | None, operation: Operation) -> Verdict:
        bundle = self.registry.lookup(operation.model, operation.kind)
        try:
            verdict = self._evaluate(bundle, principal, operation)
        except AuthorizationError as exc:
            verdict = Deny(exc.reason)

        if isinstance(verdict, Deny):
            logger.debug(
                "Denied model=%s action=%s principal=%s reason=%s",
                operation.model,
                operation.action.value,
                principal.id if principal else None,
                verdict.reason.value,
            )
        return verdict

    def _evaluate(self, bundle: RuleBundle, principal: Principal | None, operation: Operation) -> Verdict:
        if not bundle.gate(principal, operation):
            return Deny(DenyReason.FORBIDDEN)

        if operation.kind is OperationKind.QUERY:
            if operation.depth > bundle.depth_limit:
                return Deny(DenyReason.DEPTH_EXCEEDED)
            return Permit(
                row_filter=self._row_filter(bundle, principal, operation),
                depth_limit=bundle.depth_limit,
            )

        masked = bundle.input_field_mask & set(operation.input)
        if masked:
            return Deny(DenyReason.FORBIDDEN)

        final_input = dict(operation.input)
        final_input.update(bundle.input_override(principal))
        return Permit(
            row_filter=self._row_filter(bundle, principal, operation),
            input=MappingProxyType(final_input),
            depth_limit=bundle.depth_limit,
        )

    @staticmethod
    def _row_filter(bundle: RuleBundle, principal: Principal | None, operation: Operation) -> RowScope:
        scope = bundle.row_filter(principal, operation)
        if not is_filter(scope):
            raise ConfigError(
                f"Row filter for {operation.model}/{operation.kind.value} returned {scope!r}; "
                "return a filter expression or UNCONSTRAINED"
            )
        return scope
