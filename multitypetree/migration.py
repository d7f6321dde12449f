"""
The structured coalescent migration model: per-type population sizes
and a matrix of migration rates between types.
"""
from __future__ import annotations
import copy
import enum
import logging
import warnings
from typing import Any, List, MutableMapping, Optional, Sequence

import numpy as np

from .exceptions import NumericalError, ValidationError
from .parameters import (
    BooleanParameter,
    RealParameter,
    as_boolean_parameter,
    as_real_parameter,
)
from .typeset import TypeSet
from .validators import check_allowed, pop_item, pop_list

logger = logging.getLogger(__name__)


class RateConvention(enum.Enum):
    """
    The time direction in which the supplied migration rates are expressed.

    ``BACKWARD`` rates are the rates at which a lineage of type ``i``
    moves to type ``j`` when following the lineage from the present
    into the past. ``FORWARD`` rates are the rates at which individuals
    of type ``i`` migrate into type ``j`` forwards in time.
    """

    BACKWARD = "backward"
    FORWARD = "forward"


class ForwardTransform(enum.Enum):
    """
    How forward-time rates are converted into backward-time rates.

    ``SCALED`` uses ``b(i, j) = f(j, i) * N_j / N_i``, which keeps the
    expected number of migrants per unit time balanced between the two
    time directions. ``TRANSPOSE`` uses ``b(i, j) = f(j, i)``.
    The two agree when all population sizes are equal.
    """

    SCALED = "scaled"
    TRANSPOSE = "transpose"


def rate_matrix_index(i: int, j: int, num_types: int, *, diagonal_present=False):
    """
    Return the index of the off-diagonal element ``(i, j)`` in a flattened
    rate matrix.

    Without a diagonal the flattened array has ``n * (n - 1)`` elements,
    laid out row by row with the diagonal element of each row omitted.
    With ``diagonal_present=True`` the array is the full row-major
    ``n * n`` matrix; this layout is only used when importing matrices.

    :param int i: Row index (the source type).
    :param int j: Column index (the destination type).
    :param int num_types: The number of types ``n``.
    :param bool diagonal_present: Whether the flattened array includes
        the diagonal.
    :return: The index in the flattened array.
    :rtype: int
    """
    if i == j:
        raise ValidationError("Diagonal elements have no index in the rate matrix.")
    if not (0 <= i < num_types and 0 <= j < num_types):
        raise IndexError(f"({i}, {j}) out of range for {num_types} types")
    if diagonal_present:
        return i * num_types + j
    index = i * (num_types - 1) + j
    if j > i:
        index -= 1
    return index


def flatten_rate_matrix(matrix: Sequence[Sequence[float]]) -> List[float]:
    """
    Flatten a square matrix into the no-diagonal layout of
    :func:`rate_matrix_index`. Diagonal entries are ignored.
    """
    n = len(matrix)
    for row in matrix:
        if len(row) != n:
            raise ValidationError("rate matrix must be square")
    flat = [0.0] * (n * (n - 1))
    for i in range(n):
        for j in range(n):
            if i != j:
                flat[rate_matrix_index(i, j, n)] = float(matrix[i][j])
    return flat


def unflatten_rate_matrix(values: Sequence[float], num_types: int):
    """
    Expand a flattened no-diagonal rate array into a square list-of-lists
    matrix with zeros on the diagonal.
    """
    if len(values) != num_types * (num_types - 1):
        raise ValidationError(
            f"rate matrix for {num_types} types must have "
            f"{num_types * (num_types - 1)} elements, not {len(values)}"
        )
    matrix = [[0.0] * num_types for _ in range(num_types)]
    for i in range(num_types):
        for j in range(num_types):
            if i != j:
                matrix[i][j] = float(values[rate_matrix_index(i, j, num_types)])
    return matrix


def reflatten_rate_matrix(values: Sequence[float], num_types: int) -> List[float]:
    """
    Convert a flattened rate matrix that may or may not include the
    diagonal into the no-diagonal layout.

    :raises ValidationError: If ``values`` has neither ``n * n`` nor
        ``n * (n - 1)`` elements.
    """
    n = num_types
    if len(values) == n * (n - 1):
        return [float(x) for x in values]
    if len(values) != n * n:
        raise ValidationError(
            f"rate matrix must contain {n * n} (with diagonal) or "
            f"{n * (n - 1)} (without diagonal) values for {n} types, "
            f"not {len(values)}"
        )
    flat = [0.0] * (n * (n - 1))
    for i in range(n):
        for j in range(n):
            if i != j:
                source = rate_matrix_index(i, j, n, diagonal_present=True)
                flat[rate_matrix_index(i, j, n)] = float(values[source])
    return flat


def _scale_factor(value) -> Optional[RealParameter]:
    if value is None:
        return None
    param = as_real_parameter(value, lower=0.0)
    if param.dimension != 1:
        raise ValidationError("scale factors must have dimension 1")
    return param


class MigrationModel:
    """
    Population sizes and migration rates for a structured coalescent.

    The model is a view over parameter containers owned by the caller.
    Nothing is cached: every lookup reads the current parameter values,
    so the parameters may be changed between evaluations.
    The rate convention is fixed when the model is created, and all
    rate lookups are answered in the backward-time convention.

    .. code::

        model = MigrationModel(
            type_set=TypeSet(["A", "B"]),
            pop_sizes=[5.0, 10.0],
            rate_matrix=[2.0, 1.0],
        )
        assert model.backward_rate(0, 1) == 2.0

    :param TypeSet type_set: The types of the model.
        A list of names is also accepted.
    :param pop_sizes: The effective population size of each type.
    :type pop_sizes: RealParameter or list[float]
    :param rate_matrix: The ``n * (n - 1)`` off-diagonal migration rates,
        flattened as described in :func:`rate_matrix_index`.
    :type rate_matrix: RealParameter or list[float]
    :param pop_sizes_scale_factor: Multiplies every population size.
    :param rate_matrix_scale_factor: Multiplies every migration rate.
    :param rate_matrix_flags: One boolean per rate; rates whose flag
        is false are treated as zero.
    :param RateConvention convention: The time direction of
        ``rate_matrix``.
    :param ForwardTransform forward_transform: How forward-time rates
        are converted into backward-time rates.
    """

    def __init__(
        self,
        *,
        type_set,
        pop_sizes,
        rate_matrix,
        pop_sizes_scale_factor=None,
        rate_matrix_scale_factor=None,
        rate_matrix_flags=None,
        convention=RateConvention.BACKWARD,
        forward_transform=ForwardTransform.SCALED,
    ):
        if not isinstance(type_set, TypeSet):
            type_set = TypeSet(type_set)
        self.type_set = type_set
        self.pop_sizes: RealParameter = as_real_parameter(pop_sizes, lower=0.0)
        self.rate_matrix: RealParameter = as_real_parameter(rate_matrix, lower=0.0)
        self.pop_sizes_scale_factor = _scale_factor(pop_sizes_scale_factor)
        self.rate_matrix_scale_factor = _scale_factor(rate_matrix_scale_factor)
        self.rate_matrix_flags: Optional[BooleanParameter] = None
        if rate_matrix_flags is not None:
            self.rate_matrix_flags = as_boolean_parameter(rate_matrix_flags)
        self.convention = RateConvention(convention)
        self.forward_transform = ForwardTransform(forward_transform)

        if self.convention is RateConvention.BACKWARD:
            self._backward_rate = self._stored_rate
            self._forward_rate = self._transposed_rate
            if self.forward_transform is ForwardTransform.SCALED:
                self._forward_rate = self._scaled_transposed_rate
        else:
            self._forward_rate = self._stored_rate
            self._backward_rate = self._transposed_rate
            if self.forward_transform is ForwardTransform.SCALED:
                self._backward_rate = self._scaled_transposed_rate

        self.validate()
        if (
            self.convention is RateConvention.FORWARD
            and self.forward_transform is ForwardTransform.TRANSPOSE
            and len(set(self.pop_sizes.values)) > 1
        ):
            warnings.warn(
                "Forward-time migration rates are being transposed without "
                "scaling by population size, but the population sizes are "
                "not all equal. The backward-time rates may not be what "
                "you expect."
            )
        self.type_set._attach(self)

    def __repr__(self) -> str:
        return (
            f"MigrationModel(types={self.type_set.names}, "
            f"pop_sizes={self.pop_sizes.values}, "
            f"rate_matrix={self.rate_matrix.values}, "
            f"convention={self.convention.value})"
        )

    @property
    def num_types(self) -> int:
        return len(self.type_set)

    def validate(self) -> None:
        """
        Check parameter dimensions and values.

        :raises ValidationError: If the dimensions do not match the number
            of types, or if values are out of range.
        """
        n = self.num_types
        if n < 1:
            raise ValidationError("migration model must have at least one type")
        if self.pop_sizes.dimension != n:
            raise ValidationError(
                f"pop_sizes has dimension {self.pop_sizes.dimension}, "
                f"but there are {n} types"
            )
        if self.rate_matrix.dimension != n * (n - 1):
            raise ValidationError(
                f"rate_matrix has dimension {self.rate_matrix.dimension}, "
                f"but {n} types require {n * (n - 1)} off-diagonal rates"
            )
        if (
            self.rate_matrix_flags is not None
            and self.rate_matrix_flags.dimension != n * (n - 1)
        ):
            raise ValidationError(
                f"rate_matrix_flags has dimension "
                f"{self.rate_matrix_flags.dimension}, expected {n * (n - 1)}"
            )
        for j, size in enumerate(self.pop_sizes.values):
            if size <= 0:
                raise ValidationError(f"pop_sizes[{j}] must be greater than zero")
        for j, rate in enumerate(self.rate_matrix.values):
            if rate < 0:
                raise ValidationError(f"rate_matrix[{j}] must be non-negative")
        for name, factor in (
            ("pop_sizes_scale_factor", self.pop_sizes_scale_factor),
            ("rate_matrix_scale_factor", self.rate_matrix_scale_factor),
        ):
            if factor is not None and factor[0] <= 0:
                raise ValidationError(f"{name} must be greater than zero")

    def check_numerics(self) -> None:
        """
        Check the current parameter values before a density evaluation.

        :raises NumericalError: If a population size is not positive or a
            migration rate is negative.
        """
        n = self.num_types
        if self.pop_sizes.dimension != n or self.rate_matrix.dimension != n * (n - 1):
            raise ValidationError(
                "migration model parameter dimensions do not match the type set"
            )
        for j in range(n):
            if not self.pop_size(j) > 0:
                raise NumericalError(
                    f"population size of type {self.type_set.name(j)} is "
                    f"{self.pop_size(j)}, but must be greater than zero"
                )
        for j, rate in enumerate(self.rate_matrix.values):
            if rate < 0 or rate != rate:
                raise NumericalError(f"migration rate {j} is {rate}")
        if self.rate_matrix_scale_factor is not None:
            if self.rate_matrix_scale_factor[0] < 0:
                raise NumericalError("rate_matrix_scale_factor is negative")

    def pop_size(self, i: int) -> float:
        """
        The effective population size of type ``i``.
        """
        size = self.pop_sizes.values[i]
        if self.pop_sizes_scale_factor is not None:
            size *= self.pop_sizes_scale_factor[0]
        return size

    def _stored_rate(self, i: int, j: int) -> float:
        n = self.num_types
        index = rate_matrix_index(i, j, n)
        rate = self.rate_matrix.values[index]
        if self.rate_matrix_scale_factor is not None:
            rate *= self.rate_matrix_scale_factor[0]
        if self.rate_matrix_flags is not None and not self.rate_matrix_flags[index]:
            rate = 0.0
        return rate

    def _transposed_rate(self, i: int, j: int) -> float:
        return self._stored_rate(j, i)

    def _scaled_transposed_rate(self, i: int, j: int) -> float:
        # The same form converts in either direction.
        return self._stored_rate(j, i) * self.pop_size(j) / self.pop_size(i)

    def backward_rate(self, i: int, j: int) -> float:
        """
        The rate at which a lineage of type ``i`` moves to type ``j``,
        backwards in time.
        """
        if i == j:
            raise ValidationError("migration rates are undefined for i == j")
        return self._backward_rate(i, j)

    def forward_rate(self, i: int, j: int) -> float:
        """
        The rate at which individuals of type ``i`` migrate to type ``j``,
        forwards in time.
        """
        if i == j:
            raise ValidationError("migration rates are undefined for i == j")
        return self._forward_rate(i, j)

    def backward_rate_matrix(self) -> List[List[float]]:
        """
        Return the square matrix of backward-time rates, with zeros
        on the diagonal.
        """
        n = self.num_types
        rates = [[0.0] * n for _ in range(n)]
        for i in range(n):
            row = rates[i]
            for j in range(n):
                if i != j:
                    row[j] = self._backward_rate(i, j)
        return rates

    def q_matrix(self) -> np.ndarray:
        """
        Return the generator matrix of the backward-time migration process.
        Off-diagonal entries are the backward rates and each row sums to zero.
        """
        Q = np.array(self.backward_rate_matrix(), dtype=np.float64)
        np.fill_diagonal(Q, -Q.sum(axis=1))
        return Q

    def total_migration_rate(self, i: int) -> float:
        """
        The total rate at which a lineage of type ``i`` leaves its type.
        """
        return sum(
            self._backward_rate(i, j) for j in range(self.num_types) if j != i
        )

    def add_type(self, name: str, *, pop_size: float = 1.0, rate: float = 1.0) -> int:
        """
        Add a type to the model's type set, extending the parameters.
        Rates into and out of the new type are set to ``rate``.

        :return: The index of the new type.
        :rtype: int
        """
        if name in self.type_set:
            raise ValidationError(f"type '{name}' is already present")
        index = self.type_set.add(name)
        n = self.num_types
        self.pop_sizes[index] = pop_size
        for j in range(n):
            if j != index:
                self.rate_matrix[rate_matrix_index(index, j, n)] = rate
                self.rate_matrix[rate_matrix_index(j, index, n)] = rate
        self.validate()
        return index

    def remove_type(self, name: str) -> None:
        """
        Remove a type from the model's type set, dropping its population
        size and the rates into and out of it.
        """
        self.type_set.remove(name)

    def _types_in_use(self):
        return set()

    def _type_added(self, index: int) -> None:
        n = self.num_types
        old_n = n - 1
        square = unflatten_rate_matrix(self.rate_matrix.values, old_n)
        for row in square:
            row.insert(index, 1.0)
        square.insert(index, [1.0] * n)
        self.rate_matrix.set_values(flatten_rate_matrix(square))
        self.pop_sizes.values.insert(index, 1.0)
        if self.rate_matrix_flags is not None:
            flags = unflatten_rate_matrix(
                [float(x) for x in self.rate_matrix_flags.values], old_n
            )
            for row in flags:
                row.insert(index, 1.0)
            flags.insert(index, [1.0] * n)
            self.rate_matrix_flags.values = [
                bool(x) for x in flatten_rate_matrix(flags)
            ]
        logger.debug("Migration model extended to %d types", n)

    def _type_removed(self, index: int) -> None:
        n = self.num_types
        old_n = n + 1
        square = unflatten_rate_matrix(self.rate_matrix.values, old_n)
        del square[index]
        for row in square:
            del row[index]
        self.rate_matrix.set_values(flatten_rate_matrix(square))
        del self.pop_sizes.values[index]
        if self.rate_matrix_flags is not None:
            flags = unflatten_rate_matrix(
                [float(x) for x in self.rate_matrix_flags.values], old_n
            )
            del flags[index]
            for row in flags:
                del row[index]
            self.rate_matrix_flags.values = [
                bool(x) for x in flatten_rate_matrix(flags)
            ]
        logger.debug("Migration model reduced to %d types", n)

    @classmethod
    def fromdict(
        cls, data: MutableMapping[str, Any], *, type_set: Optional[TypeSet] = None
    ) -> MigrationModel:
        """
        Return a migration model from a data dictionary.

        The dictionary has the fields ``types`` (list of names),
        ``pop_sizes`` and ``rate_matrix``, and optionally
        ``pop_sizes_scale_factor``, ``rate_matrix_scale_factor``,
        ``rate_matrix_flags``, ``convention`` and ``forward_transform``.
        Parameters are given either as a list of numbers or as a dictionary
        with the fields ``values``, ``estimate``, ``lower`` and ``upper``.
        The rate matrix may also be given as a square list of lists,
        in which case the diagonal is ignored.

        :param dict data: The data dictionary.
        :param TypeSet type_set: An existing type set to use. If given,
            its names must match the ``types`` field, if present.
        :rtype: MigrationModel
        """
        if not isinstance(data, MutableMapping):
            raise TypeError("data is not a dictionary")

        # Don't modify the input data dict.
        data = copy.deepcopy(data)
        check_allowed(
            data,
            [
                "types",
                "pop_sizes",
                "rate_matrix",
                "pop_sizes_scale_factor",
                "rate_matrix_scale_factor",
                "rate_matrix_flags",
                "convention",
                "forward_transform",
            ],
            "migration_model",
        )
        names = pop_list(
            data, "types", default=None, required_type=str, scope="migration_model"
        )
        if type_set is None:
            if names is None:
                raise KeyError("migration_model: required field 'types' not found")
            type_set = TypeSet(names)
        elif names is not None and names != type_set.names:
            raise ValidationError(
                f"migration_model: types {names} do not match the "
                f"type set {type_set.names}"
            )

        pop_sizes = _param_fromdict(
            pop_item(data, "pop_sizes", required_type=(list, dict)),
            "pop_sizes",
            lower=0.0,
        )
        rate_data = pop_item(data, "rate_matrix", required_type=(list, dict))
        if isinstance(rate_data, list) and all(
            isinstance(row, list) for row in rate_data
        ):
            if len(rate_data) != len(type_set):
                raise ValidationError(
                    "migration_model: square rate_matrix must have one row per type"
                )
            rate_data = flatten_rate_matrix(rate_data)
        rate_matrix = _param_fromdict(rate_data, "rate_matrix", lower=0.0)

        kwargs = dict()
        for name in ("pop_sizes_scale_factor", "rate_matrix_scale_factor"):
            value = pop_item(
                data, name, required_type=(int, float, list, dict), default=None
            )
            if value is not None:
                kwargs[name] = _param_fromdict(value, name, lower=0.0)
        flags = pop_item(data, "rate_matrix_flags", required_type=(list, dict), default=None)
        if flags is not None:
            if isinstance(flags, dict):
                check_allowed(flags, ["values", "estimate"], "rate_matrix_flags")
                kwargs["rate_matrix_flags"] = BooleanParameter(
                    values=flags["values"], estimate=flags.get("estimate", False)
                )
            else:
                kwargs["rate_matrix_flags"] = BooleanParameter(values=flags)
        convention = pop_item(data, "convention", required_type=str, default="backward")
        forward_transform = pop_item(
            data, "forward_transform", required_type=str, default="scaled"
        )
        return cls(
            type_set=type_set,
            pop_sizes=pop_sizes,
            rate_matrix=rate_matrix,
            convention=RateConvention(convention),
            forward_transform=ForwardTransform(forward_transform),
            **kwargs,
        )

    def asdict(self) -> MutableMapping[str, Any]:
        """
        Return a data dictionary representation of the model, suitable
        for :meth:`fromdict`.
        """
        data: MutableMapping[str, Any] = dict(
            types=self.type_set.names,
            pop_sizes=_param_asdict(self.pop_sizes),
            rate_matrix=_param_asdict(self.rate_matrix),
        )
        if self.pop_sizes_scale_factor is not None:
            data["pop_sizes_scale_factor"] = _param_asdict(self.pop_sizes_scale_factor)
        if self.rate_matrix_scale_factor is not None:
            data["rate_matrix_scale_factor"] = _param_asdict(
                self.rate_matrix_scale_factor
            )
        if self.rate_matrix_flags is not None:
            data["rate_matrix_flags"] = dict(
                values=list(self.rate_matrix_flags.values),
                estimate=self.rate_matrix_flags.estimate,
            )
        data["convention"] = self.convention.value
        data["forward_transform"] = self.forward_transform.value
        return data


def _param_fromdict(value, name, **kwargs) -> RealParameter:
    if isinstance(value, dict):
        check_allowed(value, ["values", "estimate", "lower", "upper"], name)
        if "values" not in value:
            raise KeyError(f"{name}: required field 'values' not found")
        kwargs.update(value)
        return RealParameter(**kwargs)
    return RealParameter(values=value, **kwargs)


def _param_asdict(param: RealParameter) -> MutableMapping[str, Any]:
    data: MutableMapping[str, Any] = dict(
        values=list(param.values), estimate=param.estimate
    )
    if param.lower > -np.inf:
        data["lower"] = param.lower
    if param.upper < np.inf:
        data["upper"] = param.upper
    return data
