"""Predicate builder producing MongoDB filter documents.

``Query`` never talks to the database. Every operator returns an immutable
``Predicate`` whose shape is exactly the native filter syntax:

    q.eq("name", "x")            -> {"name": "x"}
    q.gt("age", 18)              -> {"age": {"$gt": 18}}
    q.and_(p1, p2)               -> {"$and": [p1, p2]}

References to the identity field are rewritten to ``_id``. ``prop`` and
``array_prop`` return builders rooted at a nested path (``a.b``).
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Iterator, Mapping
from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel

from mongorepo.exceptions import ConfigurationError
from mongorepo.fields import FieldRef

T = TypeVar("T")
V = TypeVar("V")

ID_KEY = "_id"


class Predicate(Mapping[str, Any]):
    """Immutable filter tree. Compares equal to the plain dict it represents.

    Nested mappings are stored as predicates and sequences as tuples, copied
    when the tree is built, so no operand passed in can change it later.
    """

    __slots__ = ("_tree",)

    def __init__(self, tree: Mapping[str, Any] | None = None):
        self._tree = {key: _freeze(value) for key, value in (tree or {}).items()}

    def __getitem__(self, key: str) -> Any:
        return self._tree[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._tree)

    def __len__(self) -> int:
        return len(self._tree)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Mapping):
            return NotImplemented
        return self.to_filter() == plain(other)

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"Predicate({self._tree!r})"

    def to_filter(self) -> dict[str, Any]:
        """Plain-dict copy suitable for the driver."""
        return plain(self._tree)


def plain(value: Any) -> Any:
    """Convert predicate values (nested predicates, models, enums) to BSON-ready data."""
    if isinstance(value, Mapping):
        return {key: plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [plain(item) for item in value]
    if isinstance(value, BaseModel):
        return value.model_dump(by_alias=True)
    if isinstance(value, Enum):
        return value.value
    return value


def _freeze(value: Any) -> Any:
    if isinstance(value, Predicate):
        return value
    if isinstance(value, Mapping):
        return Predicate(value)
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(item) for item in value)
    if isinstance(value, BaseModel):
        return Predicate(value.model_dump(by_alias=True))
    return value


def _is_operator_expression(condition: Any) -> bool:
    return (
        isinstance(condition, Mapping)
        and len(condition) > 0
        and all(isinstance(key, str) and key.startswith("$") for key in condition)
    )


_COMPLEMENTS = {"$in": "$nin", "$nin": "$in"}


def _negate_condition(condition: Any) -> Any:
    if not _is_operator_expression(condition):
        return {"$ne": condition}
    if len(condition) == 1:
        op, operand = next(iter(condition.items()))
        if op == "$exists":
            return {"$exists": not operand}
        if op in ("$ne", "$not"):
            return operand
        if op in _COMPLEMENTS:
            return {_COMPLEMENTS[op]: operand}
    return {"$not": dict(condition)}


def negate(predicate: Mapping[str, Any]) -> Predicate:
    """Logical complement of a filter tree.

    Leaves are negated per field, combinators via De Morgan, and a leaf object
    with several keys (implicit AND) becomes an ``$or`` of negated keys.
    """
    items = list(predicate.items())
    if not items:
        return Predicate({"$nor": [Predicate()]})
    if len(items) > 1:
        return Predicate({"$or": [negate({key: value}) for key, value in items]})

    key, value = items[0]
    if key == "$and":
        return Predicate({"$or": [negate(child) for child in value]})
    if key == "$or":
        return Predicate({"$and": [negate(child) for child in value]})
    if key == "$nor":
        return Predicate({"$or": list(value)})
    if key.startswith("$"):
        raise ValueError(f"Cannot negate top-level operator '{key}'")
    return Predicate({key: _negate_condition(value)})


class Query(Generic[T]):
    """Builds predicates for records of one model."""

    def __init__(
        self,
        model: type[T] | None = None,
        id_field: str | None = None,
        base: str = "",
    ):
        self._model = model
        self._id_field = id_field
        self._base = base

    @property
    def base(self) -> str:
        return self._base

    def field(self, name: str) -> FieldRef[Any]:
        """Reference to a field of the bound model."""
        if self._model is None:
            return FieldRef.untyped(name)
        return FieldRef.of(self._model, name)

    def _ref(self, field: FieldRef[Any] | str) -> FieldRef[Any]:
        if isinstance(field, str):
            return self.field(field)
        if (
            self._model is not None
            and field.owner is not None
            and not issubclass(self._model, field.owner)
        ):
            raise ConfigurationError(
                f"Field '{field.name}' belongs to {field.owner.__name__}, "
                f"not {self._model.__name__}"
            )
        return field

    def prop_name(self, field: FieldRef[Any] | str) -> str:
        """Stored path of a field, ``_id`` for the identity field."""
        ref = self._ref(field)
        if not self._base and self._id_field is not None and ref.name == self._id_field:
            return ID_KEY
        return f"{self._base}.{ref.key}" if self._base else ref.key

    def _leaf(self, field: FieldRef[Any] | str, condition: Any) -> Predicate:
        return Predicate({self.prop_name(field): condition})

    def empty(self) -> Predicate:
        return Predicate()

    def not_(self, predicate: Mapping[str, Any]) -> Predicate:
        return negate(predicate)

    def eq(self, field: FieldRef[V] | str, value: V) -> Predicate:
        return self._leaf(field, value)

    def neq(self, field: FieldRef[V] | str, value: V) -> Predicate:
        return self._leaf(field, {"$ne": value})

    def is_null(self, field: FieldRef[Any] | str) -> Predicate:
        return self._leaf(field, None)

    def exists(self, field: FieldRef[Any] | str) -> Predicate:
        return self._leaf(field, {"$exists": True})

    def not_exists(self, field: FieldRef[Any] | str) -> Predicate:
        return self._leaf(field, {"$exists": False})

    def regex(self, field: FieldRef[str] | str, pattern: str | re.Pattern[str]) -> Predicate:
        return self._leaf(field, {"$regex": pattern})

    def gt(self, field: FieldRef[V] | str, value: V) -> Predicate:
        return self._leaf(field, {"$gt": value})

    def gte(self, field: FieldRef[V] | str, value: V) -> Predicate:
        return self._leaf(field, {"$gte": value})

    def lt(self, field: FieldRef[V] | str, value: V) -> Predicate:
        return self._leaf(field, {"$lt": value})

    def lte(self, field: FieldRef[V] | str, value: V) -> Predicate:
        return self._leaf(field, {"$lte": value})

    def includes(self, field: FieldRef[list[V]] | str, value: V) -> Predicate:
        """Array field contains ``value`` as one of its elements."""
        return self._leaf(field, value)

    def in_(self, field: FieldRef[V] | str, values: Iterable[V]) -> Predicate:
        return self._leaf(field, {"$in": list(values)})

    def nin(self, field: FieldRef[V] | str, values: Iterable[V]) -> Predicate:
        return self._leaf(field, {"$nin": list(values)})

    def and_(self, *predicates: Mapping[str, Any]) -> Predicate:
        if not predicates:
            raise ValueError("and_ requires at least one predicate")
        return Predicate({"$and": list(predicates)})

    def or_(self, *predicates: Mapping[str, Any]) -> Predicate:
        if not predicates:
            raise ValueError("or_ requires at least one predicate")
        return Predicate({"$or": list(predicates)})

    def prop(self, field: FieldRef[Any] | str) -> Query[Any]:
        """Builder for the sub-document stored in ``field``."""
        ref = self._ref(field)
        return Query(ref.nested_model, None, self.prop_name(ref))

    def array_prop(self, field: FieldRef[Any] | str) -> Query[Any]:
        """Builder for the elements of the array stored in ``field``."""
        ref = self._ref(field)
        return Query(ref.element_model, None, self.prop_name(ref))
