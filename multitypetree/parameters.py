"""
Containers for parameter values that are owned by the caller
(for example, by an inference driver) and read by the models.
"""
from __future__ import annotations
import math
from typing import List, Sequence

import attr

from .exceptions import ValidationError
from .validators import int_or_float, _DummyAttribute


def _to_float_list(values) -> List[float]:
    if isinstance(values, (int, float)):
        values = [values]
    values = list(values)
    for value in values:
        if isinstance(value, bool):
            raise TypeError("parameter values must be numbers, not booleans")
        int_or_float(None, _DummyAttribute("values"), value)
    return [float(value) for value in values]


@attr.s(auto_attribs=True, kw_only=True, slots=True)
class RealParameter:
    """
    A vector of real values with an estimation flag and optional bounds.

    The values are read afresh by every model that uses the parameter,
    so they may be changed freely between evaluations.

    :ivar list[float] values: The current values.
    :ivar bool estimate: Whether an inference driver should estimate
        this parameter.
    :ivar float lower: The lower bound for every value.
    :ivar float upper: The upper bound for every value.
    """

    values: List[float] = attr.ib(converter=_to_float_list)
    estimate: bool = attr.ib(
        default=False, validator=attr.validators.instance_of(bool)
    )
    lower: float = attr.ib(default=-math.inf, converter=float)
    upper: float = attr.ib(default=math.inf, converter=float)

    def __attrs_post_init__(self):
        if self.lower > self.upper:
            raise ValidationError("must have lower <= upper")

    def __len__(self) -> int:
        return len(self.values)

    def __getitem__(self, index: int) -> float:
        return self.values[index]

    def __setitem__(self, index: int, value: float) -> None:
        self.values[index] = float(value)

    @property
    def dimension(self) -> int:
        return len(self.values)

    def set_dimension(self, dimension: int, fill: float = 1.0) -> None:
        """
        Truncate or extend the values to the given dimension. New entries
        are set to ``fill``.
        """
        if dimension < 0:
            raise ValidationError("parameter dimension must be non-negative")
        if dimension < len(self.values):
            del self.values[dimension:]
        else:
            self.values.extend([float(fill)] * (dimension - len(self.values)))

    def set_values(self, values: Sequence[float]) -> None:
        self.values = _to_float_list(values)

    def within_bounds(self) -> bool:
        return all(self.lower <= x <= self.upper for x in self.values)


@attr.s(auto_attribs=True, kw_only=True, slots=True)
class BooleanParameter:
    """
    A vector of boolean indicators with an estimation flag.

    :ivar list[bool] values: The current values.
    :ivar bool estimate: Whether an inference driver should estimate
        this parameter.
    """

    values: List[bool] = attr.ib(
        converter=lambda values: [bool(x) for x in values]
    )
    estimate: bool = attr.ib(
        default=False, validator=attr.validators.instance_of(bool)
    )

    def __len__(self) -> int:
        return len(self.values)

    def __getitem__(self, index: int) -> bool:
        return self.values[index]

    def __setitem__(self, index: int, value: bool) -> None:
        self.values[index] = bool(value)

    @property
    def dimension(self) -> int:
        return len(self.values)

    def set_dimension(self, dimension: int, fill: bool = True) -> None:
        if dimension < 0:
            raise ValidationError("parameter dimension must be non-negative")
        if dimension < len(self.values):
            del self.values[dimension:]
        else:
            self.values.extend([bool(fill)] * (dimension - len(self.values)))


def as_real_parameter(value, **kwargs) -> RealParameter:
    """
    Return ``value`` if it is a :class:`RealParameter`, otherwise wrap the
    number or sequence of numbers in a new parameter.
    """
    if isinstance(value, RealParameter):
        return value
    return RealParameter(values=value, **kwargs)


def as_boolean_parameter(value) -> BooleanParameter:
    if isinstance(value, BooleanParameter):
        return value
    return BooleanParameter(values=value)
