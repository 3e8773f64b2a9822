"""
Declarative authorization core.

This package has no dependency on the web, database or settings packages.
Build a ``RuleRegistry`` once at startup, wrap it in an
``AuthorizationEngine`` and call ``authorize(principal, operation)`` before
every storage call.
"""

from .engine import AuthorizationEngine, Deny, Permit, Verdict
from .errors import AuthorizationError, ConfigError, DenyReason
from .filters import UNCONSTRAINED, And, Condition, FilterError, Not, Or, Unconstrained, and_, eq, or_, parse_where
from .registry import RuleRegistry
from .rules import Action, InputOverride, Operation, OperationKind, Principal, RuleBundle, RuleSpec

__all__ = [
    "Action",
    "And",
    "AuthorizationEngine",
    "AuthorizationError",
    "Condition",
    "ConfigError",
    "Deny",
    "DenyReason",
    "FilterError",
    "InputOverride",
    "Not",
    "Operation",
    "OperationKind",
    "Or",
    "Permit",
    "Principal",
    "RuleBundle",
    "RuleRegistry",
    "RuleSpec",
    "UNCONSTRAINED",
    "Unconstrained",
    "Verdict",
    "and_",
    "eq",
    "or_",
    "parse_where",
]
