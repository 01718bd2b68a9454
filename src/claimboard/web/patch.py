"""Tri-state values for partial updates: leave as is, clear, or set."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, TypeVar, Union

from pydantic import BaseModel

T = TypeVar("T")


class Unchanged:
    _instance: Unchanged | None = None

    def __new__(cls) -> Unchanged:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNCHANGED"


class Clear:
    _instance: Clear | None = None

    def __new__(cls) -> Clear:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "CLEAR"


@dataclass(frozen=True)
class Set(Generic[T]):
    value: T


UNCHANGED = Unchanged()
CLEAR = Clear()

Patch = Union[Unchanged, Clear, Set[T]]


def from_field(model: BaseModel, name: str) -> Patch[Any]:
    """Read a request field: absent -> UNCHANGED, null -> CLEAR, value -> Set."""
    if name not in model.model_fields_set:
        return UNCHANGED
    value = getattr(model, name)
    if value is None:
        return CLEAR
    return Set(value)
