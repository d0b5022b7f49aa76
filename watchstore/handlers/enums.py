"""Closed-set enum mapping for Pydantic records.

Pydantic stores an ``Enum`` field as its *value*. Records persisted by this
package store enums by member *name* instead, so the files stay readable
when values are numbers or tuples. Use :func:`enum_by_name` to declare such
a field type next to the enum:

>>> class Color(Enum):
...     RED = 1
>>> ColorByName = enum_by_name(Color)
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Callable, Type, TypeVar

from pydantic import BeforeValidator, PlainSerializer

EnumT = TypeVar("EnumT", bound=Enum)


def _parser(enum_cls: Type[EnumT]) -> Callable[[Any], EnumT]:
    def parse(value: Any) -> EnumT:
        if isinstance(value, enum_cls):
            return value
        if value is None:
            raise ValueError("No value present for enum field")
        if not isinstance(value, str):
            raise ValueError(f"{enum_cls.__name__} constant must be given by name")
        try:
            return enum_cls[value]
        except KeyError:
            raise ValueError(
                f"Invalid enum constant {value!r} for {enum_cls.__name__}"
            ) from None

    return parse


def enum_by_name(enum_cls: Type[EnumT]) -> Any:
    """Return an annotated type that (de)serializes ``enum_cls`` by member name."""
    return Annotated[
        enum_cls,
        BeforeValidator(_parser(enum_cls)),
        PlainSerializer(lambda member: member.name, return_type=str),
    ]
