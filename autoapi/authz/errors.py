"""Error taxonomy for the authorization core."""

from __future__ import annotations

from enum import Enum


class DenyReason(str, Enum):
    FORBIDDEN = "forbidden"
    DEPTH_EXCEEDED = "depth_exceeded"


class ConfigError(Exception):
    """
    Rule configuration (or server configuration) is invalid.

    Raised at startup for a missing secret or a malformed registry, and at
    evaluation time when a rule callable returns something it must not.
    """

    pass


class AuthorizationError(Exception):
    """Raised when an operation is denied. The message never names the rule."""

    def __init__(self, reason: DenyReason = DenyReason.FORBIDDEN) -> None:
        super().__init__(reason.value)
        self.reason = reason
