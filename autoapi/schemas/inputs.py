from __future__ import annotations

from typing import Any, Mapping, Optional

from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel, ConfigDict, ValidationError, create_model


def build_input_model(model: type) -> type[BaseModel]:
    """
    Pydantic model accepting any subset of `model`'s columns.

    Unknown keys are rejected here; which known keys a caller may supply is
    decided later by the rule's input field mask.
    """

    fields: dict[str, Any] = {}
    for attr in model.__mapper__.column_attrs:
        column = attr.columns[0]
        try:
            python_type: Any = column.type.python_type
        except NotImplementedError:
            python_type = Any
        fields[attr.key] = (Optional[python_type], None)

    return create_model(
        f"{model.__name__}Input",
        __config__=ConfigDict(extra="forbid"),
        **fields,
    )


def validate_input(input_model: type[BaseModel], payload: Mapping[str, Any]) -> dict[str, Any]:
    try:
        parsed = input_model.model_validate(dict(payload))
    except ValidationError as exc:
        raise RequestValidationError(exc.errors(include_url=False)) from exc
    return parsed.model_dump(exclude_unset=True)
