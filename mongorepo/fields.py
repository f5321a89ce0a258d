"""Typed field references for record models.

A ``FieldRef`` binds a field name to the type declared for it on a pydantic
model, so predicate operators can be annotated against the operand type:

    AGE: FieldRef[int] = FieldRef.of(User, "age")
    q.gt(AGE, 18)

Unknown names fail when the reference is built, not when the query runs.
"""

from __future__ import annotations

import types
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Generic, TypeVar, Union, get_args, get_origin

from pydantic import BaseModel

from mongorepo.exceptions import ConfigurationError

V = TypeVar("V")


def _unwrap_optional(annotation: Any) -> Any:
    """Strip ``None`` from ``X | None`` style annotations."""
    if get_origin(annotation) in (Union, types.UnionType):
        args = [arg for arg in get_args(annotation) if arg is not type(None)]
        if len(args) == 1:
            return args[0]
    return annotation


def _as_model(annotation: Any) -> type[BaseModel] | None:
    if isinstance(annotation, type) and issubclass(annotation, BaseModel):
        return annotation
    return None


@dataclass(frozen=True)
class FieldRef(Generic[V]):
    """Reference to one field of a record model."""

    name: str
    key: str
    annotation: Any = Any
    owner: type[BaseModel] | None = None

    @classmethod
    def of(cls, model: type[BaseModel], name: str) -> FieldRef[Any]:
        info = model.model_fields.get(name)
        if info is None:
            raise ConfigurationError(
                f"Model {model.__name__} has no field '{name}'"
            )
        return cls(
            name=name,
            key=info.alias or name,
            annotation=info.annotation,
            owner=model,
        )

    @classmethod
    def untyped(cls, name: str) -> FieldRef[Any]:
        """Reference for builders that are not bound to a model."""
        return cls(name=name, key=name)

    @property
    def nested_model(self) -> type[BaseModel] | None:
        """Model of a struct-typed field, if any."""
        return _as_model(_unwrap_optional(self.annotation))

    @property
    def element_type(self) -> Any:
        """Element type of an array-typed field, ``Any`` when unknown."""
        annotation = _unwrap_optional(self.annotation)
        origin = get_origin(annotation)
        if isinstance(origin, type) and issubclass(origin, Sequence) and origin is not str:
            args = get_args(annotation)
            if args:
                return args[0]
        if origin in (set, frozenset):
            args = get_args(annotation)
            if args:
                return args[0]
        return Any

    @property
    def element_model(self) -> type[BaseModel] | None:
        return _as_model(_unwrap_optional(self.element_type))
