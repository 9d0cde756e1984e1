"""Value model shared by parameter binding and column decoding.

A value is exactly one of ``Null``, ``Integer``, ``Real``, ``Text`` or
``Blob``. Native Python parameters are resolved to one of them by
``to_value`` before they reach the engine.
"""

import dataclasses
import enum
import numbers
from typing import ClassVar, Union

from .errors import ParameterOverflowError, UnsupportedParameterTypeError
from .native import INT64_MAX, INT64_MIN


class ValueType(enum.IntEnum):
    """Run-time storage class codes reported by the engine."""

    INTEGER = 1
    REAL = 2
    TEXT = 3
    BLOB = 4
    NULL = 5


@dataclasses.dataclass(frozen=True)
class Null:
    type: ClassVar[ValueType] = ValueType.NULL

    def to_python(self):
        return None


@dataclasses.dataclass(frozen=True)
class Integer:
    value: int
    type: ClassVar[ValueType] = ValueType.INTEGER

    def __post_init__(self):
        if not INT64_MIN <= self.value <= INT64_MAX:
            raise ParameterOverflowError(self.value)

    def to_python(self):
        return self.value


@dataclasses.dataclass(frozen=True)
class Real:
    value: float
    type: ClassVar[ValueType] = ValueType.REAL

    def to_python(self):
        return self.value


@dataclasses.dataclass(frozen=True)
class Text:
    value: str
    type: ClassVar[ValueType] = ValueType.TEXT

    def to_python(self):
        return self.value


@dataclasses.dataclass(frozen=True)
class Blob:
    value: bytes
    type: ClassVar[ValueType] = ValueType.BLOB

    def to_python(self):
        return self.value


Value = Union[Null, Integer, Real, Text, Blob]

VALUE_TYPES = (Null, Integer, Real, Text, Blob)

NULL = Null()


def to_value(param) -> Value:
    """Resolve a native parameter into exactly one Value variant."""
    if isinstance(param, VALUE_TYPES):
        return param
    if param is None:
        return NULL
    # bool is an Integral; keep it first so it maps to 0/1 explicitly.
    if isinstance(param, bool):
        return Integer(1 if param else 0)
    if isinstance(param, numbers.Integral):
        return Integer(int(param))
    if isinstance(param, numbers.Real):
        return Real(float(param))
    if isinstance(param, str):
        return Text(param)
    if isinstance(param, (bytes, bytearray, memoryview)):
        return Blob(bytes(param))
    raise UnsupportedParameterTypeError(type(param))
