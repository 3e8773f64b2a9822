"""
Load the rules YAML into a RuleRegistry.

Document shape::

    rules:
      use: {exclude: [posts_to_categories]}
      default:
        query: {gate: public}
        mutation: {gate: authenticated}
      models:
        posts:
          input_fields: {exclude: [id, created_at, updated_at]}
          operations: {exclude: [create_many]}
          query:
            row_filter: {policy: published_or_owner, owner_field: author_id}
          mutation:
            row_filter: {policy: owner, field: author_id}
            input_override: {policy: owner, field: author_id}

Settings at layer level apply to both operation kinds; a `query:` or
`mutation:` block in the same layer wins over them.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterable, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from autoapi.authz.errors import ConfigError
from autoapi.authz.registry import DEFAULT_DEPTH_LIMIT, RuleRegistry
from autoapi.authz.rules import Action, OperationKind, RuleSpec
from autoapi.security.policies import GATES, INPUT_OVERRIDES, ROW_FILTERS, build_policy

logger = logging.getLogger(__name__)

PolicyRef = Union[str, dict[str, Any]]


class NameSelection(BaseModel):
    model_config = ConfigDict(extra="forbid")

    include: list[str] | None = None
    exclude: list[str] = Field(default_factory=list)

    def apply(self, names: Iterable[str]) -> list[str]:
        selected = [n for n in names if self.include is None or n in self.include]
        return [n for n in selected if n not in self.exclude]


class KindRule(BaseModel):
    model_config = ConfigDict(extra="forbid")

    gate: PolicyRef | None = None
    row_filter: PolicyRef | None = None
    input_override: PolicyRef | None = None
    input_fields: NameSelection | None = None
    depth_limit: int | None = Field(default=None, ge=0)


class LayerRule(KindRule):
    query: KindRule | None = None
    mutation: KindRule | None = None


class ModelRule(LayerRule):
    operations: NameSelection | None = None


class RulesDocument(BaseModel):
    model_config = ConfigDict(extra="forbid")

    use: NameSelection = Field(default_factory=NameSelection)
    default: LayerRule = Field(default_factory=LayerRule)
    models: dict[str, ModelRule] = Field(default_factory=dict)


def _split_ref(ref: PolicyRef) -> tuple[str, dict[str, Any]]:
    if isinstance(ref, str):
        return ref, {}
    args = dict(ref)
    name = args.pop("policy", None)
    if not isinstance(name, str):
        raise ConfigError(f"Policy reference needs a 'policy' name: {ref!r}")
    return name, args


def _mask(selection: NameSelection | None) -> frozenset[str] | None:
    if selection is None:
        return None
    if selection.include is not None:
        raise ConfigError("input_fields supports 'exclude' only")
    return frozenset(selection.exclude)


def _kind_spec(layer: LayerRule, kind: OperationKind) -> RuleSpec:
    block = layer.query if kind is OperationKind.QUERY else layer.mutation

    def pick(name: str) -> Any:
        if block is not None and getattr(block, name) is not None:
            return getattr(block, name)
        return getattr(layer, name)

    gate_ref = pick("gate")
    filter_ref = pick("row_filter")
    override_ref = pick("input_override")
    return RuleSpec(
        gate=build_policy(GATES, "gate", *_split_ref(gate_ref)) if gate_ref is not None else None,
        row_filter=build_policy(ROW_FILTERS, "row_filter", *_split_ref(filter_ref)) if filter_ref is not None else None,
        input_override=build_policy(INPUT_OVERRIDES, "input_override", *_split_ref(override_ref))
        if override_ref is not None
        else None,
        input_field_mask=_mask(pick("input_fields")),
        depth_limit=pick("depth_limit"),
    )


def _exposed_actions(selection: NameSelection | None) -> frozenset[Action] | None:
    if selection is None:
        return None

    known = {a.value for a in Action} | {k.value for k in OperationKind}
    unknown = set(selection.include or []) | set(selection.exclude)
    unknown -= known
    if unknown:
        raise ConfigError(f"Unknown operations: {sorted(unknown)}")

    def matches(action: Action, names: list[str]) -> bool:
        return action.value in names or action.kind.value in names

    return frozenset(
        a
        for a in Action
        if (selection.include is None or matches(a, selection.include)) and not matches(a, selection.exclude)
    )


def build_rule_registry(
    raw: dict[str, Any],
    models: Iterable[str],
    default_depth_limit: int = DEFAULT_DEPTH_LIMIT,
) -> RuleRegistry:
    try:
        doc = RulesDocument.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(f"Invalid rules config: {exc}") from exc

    all_models = list(models)
    unknown_use = (set(doc.use.include or []) | set(doc.use.exclude)) - set(all_models)
    if unknown_use:
        raise ConfigError(f"'use' references unknown models: {sorted(unknown_use)}")
    exposed = doc.use.apply(all_models)

    default = {kind: _kind_spec(doc.default, kind) for kind in OperationKind}
    overrides = {name: {kind: _kind_spec(rule, kind) for kind in OperationKind} for name, rule in doc.models.items()}

    actions: dict[str, frozenset[Action]] = {}
    for name, rule in doc.models.items():
        selected = _exposed_actions(rule.operations)
        if selected is not None:
            actions[name] = selected

    return RuleRegistry(
        exposed,
        default=default,
        overrides=overrides,
        default_depth_limit=default_depth_limit,
        actions=actions,
    )


def load_rule_registry(
    path: Path,
    models: Iterable[str],
    default_depth_limit: int = DEFAULT_DEPTH_LIMIT,
) -> RuleRegistry:
    try:
        raw_text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Cannot read rules config: {path}") from exc

    try:
        raw: dict[str, Any] = yaml.safe_load(raw_text) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Malformed YAML in rules config: {path}") from exc

    if not isinstance(raw, dict) or "rules" not in raw:
        raise ConfigError(f"Missing top-level 'rules' key in config: {path}")

    registry = build_rule_registry(raw["rules"] or {}, models, default_depth_limit)
    logger.info("Loaded rules for models: %s", ", ".join(registry.models))
    return registry
