"""Request bodies for the generated per-model routes."""

from __future__ import annotations

from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class IncludeNode(BaseModel):
    model_config = ConfigDict(extra="forbid")

    where: dict[str, Any] | None = None
    include: dict[str, Union[bool, "IncludeNode"]] | None = None


IncludeTree = dict[str, Union[bool, IncludeNode]]


class _Args(BaseModel):
    model_config = ConfigDict(extra="forbid")


class FindManyArgs(_Args):
    where: dict[str, Any] | None = None
    order_by: dict[str, Literal["asc", "desc"]] | None = None
    limit: int | None = Field(default=None, ge=0)
    offset: int | None = Field(default=None, ge=0)
    include: IncludeTree | None = None


class FindFirstArgs(_Args):
    where: dict[str, Any] | None = None
    order_by: dict[str, Literal["asc", "desc"]] | None = None
    include: IncludeTree | None = None


class CountArgs(_Args):
    where: dict[str, Any] | None = None


class CreateOneArgs(_Args):
    input: dict[str, Any]


class CreateManyArgs(_Args):
    inputs: list[dict[str, Any]] = Field(min_length=1)


class UpdateArgs(_Args):
    where: dict[str, Any] | None = None
    input: dict[str, Any]


class DeleteArgs(_Args):
    where: dict[str, Any] | None = None


class CountOut(BaseModel):
    count: int
