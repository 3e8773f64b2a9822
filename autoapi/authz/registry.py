"""
Rule registry: (model, operation kind) -> RuleBundle.

Layers, lowest first:

1. built-in base (permit, unconstrained, nothing masked, no override,
   global depth limit)
2. the "all models" default for the operation kind
3. the per-model override for the operation kind

A field present in a higher layer replaces the lower one as a whole (masks
are replaced, not unioned). Bundles are resolved once, at construction.
"""

from __future__ import annotations

import logging
from dataclasses import fields, replace
from typing import Iterable, Mapping, Optional

from .errors import ConfigError
from .filters import UNCONSTRAINED, RowScope
from .rules import NO_OVERRIDE, Action, Operation, OperationKind, Principal, RuleBundle, RuleSpec

logger = logging.getLogger(__name__)

DEFAULT_DEPTH_LIMIT = 5

KindSpecs = Mapping[OperationKind, RuleSpec]


def permit_all(principal: Optional[Principal], operation: Operation) -> bool:
    return True


def unconstrained(principal: Optional[Principal], operation: Operation) -> RowScope:
    return UNCONSTRAINED


def _base_bundle(depth_limit: int) -> RuleBundle:
    return RuleBundle(
        gate=permit_all,
        row_filter=unconstrained,
        input_field_mask=frozenset(),
        input_override=NO_OVERRIDE,
        depth_limit=depth_limit,
    )


def _apply(bundle: RuleBundle, spec: RuleSpec | None) -> RuleBundle:
    if spec is None:
        return bundle
    changes = {f.name: getattr(spec, f.name) for f in fields(spec) if getattr(spec, f.name) is not None}
    return replace(bundle, **changes)


class RuleRegistry:
    """
    Read-only after construction; safe to share across concurrent requests.
    """

    def __init__(
        self,
        models: Iterable[str],
        default: KindSpecs | None = None,
        overrides: Mapping[str, KindSpecs] | None = None,
        default_depth_limit: int = DEFAULT_DEPTH_LIMIT,
        actions: Mapping[str, frozenset[Action]] | None = None,
    ) -> None:
        self._models = tuple(models)
        default = default or {}
        overrides = overrides or {}

        unknown = set(overrides) - set(self._models)
        if unknown:
            raise ConfigError(f"Rules reference unknown models: {sorted(unknown)}")
        unknown = set(actions or {}) - set(self._models)
        if unknown:
            raise ConfigError(f"Operation settings reference unknown models: {sorted(unknown)}")

        base = _base_bundle(default_depth_limit)
        self._bundles: dict[tuple[str, OperationKind], RuleBundle] = {}
        for model in self._models:
            per_model = overrides.get(model, {})
            for kind in OperationKind:
                bundle = _apply(_apply(base, default.get(kind)), per_model.get(kind))
                if bundle.depth_limit < 0:
                    raise ConfigError(f"Negative depth limit for {model}/{kind.value}")
                unmasked = bundle.input_override.fields - bundle.input_field_mask
                if unmasked:
                    # Callers may send these; the override value replaces theirs.
                    logger.debug(
                        "Override %s on %s/%s covers unmasked fields=%s",
                        bundle.input_override.name,
                        model,
                        kind.value,
                        ",".join(sorted(unmasked)),
                    )
                self._bundles[(model, kind)] = bundle

        all_actions = frozenset(Action)
        self._actions = {model: frozenset((actions or {}).get(model, all_actions)) for model in self._models}

        logger.debug("Rule registry built models=%s", ",".join(self._models))

    @property
    def models(self) -> tuple[str, ...]:
        return self._models

    def lookup(self, model: str, kind: OperationKind) -> RuleBundle:
        try:
            return self._bundles[(model, kind)]
        except KeyError:
            raise ConfigError(f"No rules registered for model '{model}'") from None

    def exposed_actions(self, model: str) -> frozenset[Action]:
        if model not in self._actions:
            raise ConfigError(f"No rules registered for model '{model}'")
        return self._actions[model]
