"""
Generated per-model routes.

For every exposed model and action this module produces a
`POST /api/{model}/{action}` route. Each route:

1. builds an Operation (plus one per included relation),
2. asks the AuthorizationEngine for a verdict,
3. on Deny raises AuthorizationError before storage is touched,
4. on Permit hands the verdict's scope / input / depth limit to storage.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from autoapi.authz.engine import AuthorizationEngine, Deny, Permit
from autoapi.authz.errors import AuthorizationError, DenyReason
from autoapi.authz.filters import RowScope, and_, parse_where
from autoapi.authz.rules import Action, Operation, Principal
from autoapi.db.repository import ModelRepository, Selection, relation_target
from autoapi.db.session import get_db
from autoapi.schemas.inputs import build_input_model, validate_input
from autoapi.schemas.operations import (
    CountArgs,
    CountOut,
    CreateManyArgs,
    CreateOneArgs,
    DeleteArgs,
    FindFirstArgs,
    FindManyArgs,
    IncludeNode,
    IncludeTree,
    UpdateArgs,
)
from autoapi.security.dependencies import get_authz_engine, get_principal

logger = logging.getLogger(__name__)

ROUTE_PATHS: dict[Action, str] = {
    Action.FIND_MANY: "/find-many",
    Action.FIND_FIRST: "/find-first",
    Action.COUNT: "/count",
    Action.CREATE_ONE: "/create-one",
    Action.CREATE_MANY: "/create-many",
    Action.UPDATE: "/update",
    Action.DELETE: "/delete",
}

Row = dict[str, Any]


def _included(tree: IncludeTree | None) -> dict[str, IncludeNode]:
    nodes: dict[str, IncludeNode] = {}
    for name, node in (tree or {}).items():
        if node is False:
            continue
        nodes[name] = node if isinstance(node, IncludeNode) else IncludeNode()
    return nodes


def include_depth(tree: IncludeTree | None) -> int:
    nodes = _included(tree)
    if not nodes:
        return 0
    return 1 + max(include_depth(node.include) for node in nodes.values())


def require_permit(engine: AuthorizationEngine, principal: Principal | None, operation: Operation) -> Permit:
    verdict = engine.authorize(principal, operation)
    if isinstance(verdict, Deny):
        raise AuthorizationError(verdict.reason)
    return verdict


def build_selection(
    engine: AuthorizationEngine,
    principal: Principal | None,
    model: type,
    scope: RowScope,
    where: Mapping[str, Any] | None,
    include: IncludeTree | None,
) -> Selection:
    """
    Combine the permitted scope with the caller's `where`, then authorize each
    included relation as a query on its own target model.
    """

    selection = Selection(model=model, scope=and_(scope, parse_where(where)))
    for name, node in _included(include).items():
        target = relation_target(model, name)
        target_name = target.__tablename__
        if target_name not in engine.registry.models:
            raise AuthorizationError(DenyReason.FORBIDDEN)

        operation = Operation(model=target_name, action=Action.FIND_MANY, depth=include_depth(node.include))
        permit = require_permit(engine, principal, operation)
        selection.relations[name] = build_selection(engine, principal, target, permit.row_filter, node.where, node.include)
    return selection


def build_model_router(name: str, model: type, actions: Iterable[Action]) -> APIRouter:
    router = APIRouter(prefix=f"/api/{name}", tags=[name])
    input_model = build_input_model(model)
    actions = frozenset(actions)

    if Action.FIND_MANY in actions:

        @router.post(ROUTE_PATHS[Action.FIND_MANY])
        def find_many(
            args: FindManyArgs,
            principal: Principal | None = Depends(get_principal),
            engine: AuthorizationEngine = Depends(get_authz_engine),
            db: Session = Depends(get_db),
        ) -> list[Row]:
            operation = Operation(model=name, action=Action.FIND_MANY, depth=include_depth(args.include))
            permit = require_permit(engine, principal, operation)
            selection = build_selection(engine, principal, model, permit.row_filter, args.where, args.include)
            return ModelRepository(db, model).find_many(
                selection,
                permit.depth_limit,
                order_by=args.order_by,
                limit=args.limit,
                offset=args.offset,
            )

    if Action.FIND_FIRST in actions:

        @router.post(ROUTE_PATHS[Action.FIND_FIRST])
        def find_first(
            args: FindFirstArgs,
            principal: Principal | None = Depends(get_principal),
            engine: AuthorizationEngine = Depends(get_authz_engine),
            db: Session = Depends(get_db),
        ) -> Row | None:
            # Hidden and missing rows both come back as null.
            operation = Operation(model=name, action=Action.FIND_FIRST, depth=include_depth(args.include))
            permit = require_permit(engine, principal, operation)
            selection = build_selection(engine, principal, model, permit.row_filter, args.where, args.include)
            return ModelRepository(db, model).find_first(selection, permit.depth_limit, order_by=args.order_by)

    if Action.COUNT in actions:

        @router.post(ROUTE_PATHS[Action.COUNT])
        def count(
            args: CountArgs,
            principal: Principal | None = Depends(get_principal),
            engine: AuthorizationEngine = Depends(get_authz_engine),
            db: Session = Depends(get_db),
        ) -> CountOut:
            permit = require_permit(engine, principal, Operation(model=name, action=Action.COUNT))
            scope = and_(permit.row_filter, parse_where(args.where))
            return CountOut(count=ModelRepository(db, model).count(scope))

    if Action.CREATE_ONE in actions:

        @router.post(ROUTE_PATHS[Action.CREATE_ONE])
        def create_one(
            args: CreateOneArgs,
            principal: Principal | None = Depends(get_principal),
            engine: AuthorizationEngine = Depends(get_authz_engine),
            db: Session = Depends(get_db),
        ) -> Row:
            caller_input = validate_input(input_model, args.input)
            operation = Operation(model=name, action=Action.CREATE_ONE, input=caller_input)
            permit = require_permit(engine, principal, operation)
            return ModelRepository(db, model).create_one(permit.input)

    if Action.CREATE_MANY in actions:

        @router.post(ROUTE_PATHS[Action.CREATE_MANY])
        def create_many(
            args: CreateManyArgs,
            principal: Principal | None = Depends(get_principal),
            engine: AuthorizationEngine = Depends(get_authz_engine),
            db: Session = Depends(get_db),
        ) -> list[Row]:
            # Every item is authorized before any row is written.
            permits = [
                require_permit(
                    engine,
                    principal,
                    Operation(model=name, action=Action.CREATE_MANY, input=validate_input(input_model, item)),
                )
                for item in args.inputs
            ]
            return ModelRepository(db, model).create_many([p.input for p in permits])

    if Action.UPDATE in actions:

        @router.post(ROUTE_PATHS[Action.UPDATE])
        def update(
            args: UpdateArgs,
            principal: Principal | None = Depends(get_principal),
            engine: AuthorizationEngine = Depends(get_authz_engine),
            db: Session = Depends(get_db),
        ) -> list[Row]:
            caller_input = validate_input(input_model, args.input)
            permit = require_permit(engine, principal, Operation(model=name, action=Action.UPDATE, input=caller_input))
            scope = and_(permit.row_filter, parse_where(args.where))
            return ModelRepository(db, model).update(scope, permit.input)

    if Action.DELETE in actions:

        @router.post(ROUTE_PATHS[Action.DELETE])
        def delete(
            args: DeleteArgs,
            principal: Principal | None = Depends(get_principal),
            engine: AuthorizationEngine = Depends(get_authz_engine),
            db: Session = Depends(get_db),
        ) -> list[Row]:
            permit = require_permit(engine, principal, Operation(model=name, action=Action.DELETE))
            scope = and_(permit.row_filter, parse_where(args.where))
            return ModelRepository(db, model).delete(scope)

    logger.debug("Generated routes for %s: %s", name, ", ".join(sorted(a.value for a in actions)))
    return router


def build_generated_routers(engine: AuthorizationEngine, models: Mapping[str, type]) -> list[APIRouter]:
    routers = []
    for name in engine.registry.models:
        routers.append(build_model_router(name, models[name], engine.registry.exposed_actions(name)))
    return routers
