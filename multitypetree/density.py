"""
The structured coalescent density of a coloured tree.
"""
from __future__ import annotations
import enum
import logging
import math
from typing import List, Tuple

import attr

from .exceptions import InvalidHistoryError, ValidationError
from .migration import MigrationModel
from .tree import MultiTypeTree

logger = logging.getLogger(__name__)


class EventKind(enum.IntEnum):
    """
    The kinds of event in a coloured tree. Events at the same time are
    processed in this order.
    """

    SAMPLE = 0
    MIGRATE = 1
    COALESCE = 2


@attr.s(auto_attribs=True, kw_only=True, slots=True, frozen=True)
class TreeEvent:
    """
    An event in the history of a coloured tree, together with the number
    of lineages of each type immediately after the event.

    :ivar float time: The time of the event.
    :ivar EventKind kind: The kind of event.
    :ivar int type: The type of the sampled or coalescing lineages, or the
        source type of a migration.
    :ivar int dest: The destination type of a migration, otherwise None.
    :ivar tuple[int] counts: The lineage count of each type after the event.
    """

    time: float
    kind: EventKind
    type: int
    dest: int = None
    counts: Tuple[int, ...] = ()


def _collect_events(tree: MultiTypeTree):
    events = []
    for node in tree.nodes:
        if node.is_leaf:
            events.append((node.height, EventKind.SAMPLE, node.type, None, node))
        else:
            events.append((node.height, EventKind.COALESCE, node.type, None, node))
        for event in node.events:
            events.append(
                (event.time, EventKind.MIGRATE, event.source, event.dest, node)
            )
    events.sort(key=lambda e: (e[0], e[1]))
    return events


class StructuredCoalescentDensity:
    """
    The log probability density of a coloured tree under the structured
    coalescent with the given migration model.

    The model parameters and the tree are read afresh by every call to
    :meth:`evaluate`.

    .. code::

        density = StructuredCoalescentDensity(tree, model)
        log_p = density.evaluate()

    :param MultiTypeTree tree: The coloured tree.
    :param MigrationModel model: The migration model.
    :param bool check_validity: If True, validate the whole tree before
        each evaluation.
    """

    def __init__(
        self, tree: MultiTypeTree, model: MigrationModel, *, check_validity=False
    ):
        if tree.type_set is not model.type_set and tree.type_set != model.type_set:
            raise ValidationError(
                "the tree and the migration model have different types"
            )
        self.tree = tree
        self.model = model
        self.check_validity = check_validity
        self.log_p = math.nan

    def event_sequence(self) -> List[TreeEvent]:
        """
        Return the events of the tree in time order, with the lineage
        counts after each event.

        :raises InvalidHistoryError: If the history is inconsistent with
            the lineage counts.
        """
        sequence = []
        for time, kind, type_, dest, counts in self._replay():
            sequence.append(
                TreeEvent(time=time, kind=kind, type=type_, dest=dest, counts=counts)
            )
        return sequence

    def _replay(self):
        n = len(self.model.type_set)
        counts = [0] * n
        for time, kind, type_, dest, node in _collect_events(self.tree):
            if kind is EventKind.SAMPLE:
                counts[type_] += 1
            elif kind is EventKind.MIGRATE:
                if counts[type_] < 1:
                    raise InvalidHistoryError(
                        f"migration from type {type_} at time {time}, but "
                        "there are no lineages of that type"
                    )
                counts[type_] -= 1
                counts[dest] += 1
            else:
                for child in node.children:
                    if child.top_type != type_:
                        raise InvalidHistoryError(
                            f"coalescence of type {type_} at time {time} "
                            f"joins a lineage of type {child.top_type}"
                        )
                if counts[type_] < 2:
                    raise InvalidHistoryError(
                        f"coalescence of type {type_} at time {time}, but "
                        f"there are only {counts[type_]} lineages of that type"
                    )
                counts[type_] -= 1
            yield time, kind, type_, dest, tuple(counts)

    def evaluate(self) -> float:
        """
        Return the log density of the tree, and store it as ``log_p``.

        :raises NumericalError: If a population size is not positive or a
            migration rate is negative.
        :raises InvalidHistoryError: If the history is inconsistent with
            the lineage counts.
        """
        model = self.model
        model.check_numerics()
        if self.check_validity:
            self.tree.validate()

        n = model.num_types
        pop_sizes = [model.pop_size(j) for j in range(n)]
        rates = model.backward_rate_matrix()
        out_rates = [sum(row) for row in rates]

        log_p = 0.0
        last_time = None
        counts: Tuple[int, ...] = (0,) * n
        for time, kind, type_, dest, new_counts in self._replay():
            if last_time is not None:
                dt = time - last_time
                if dt > 0:
                    rate = 0.0
                    for c in range(n):
                        k = counts[c]
                        rate += k * (k - 1) / (2 * pop_sizes[c]) + k * out_rates[c]
                    log_p -= rate * dt
            if kind is EventKind.COALESCE:
                log_p += math.log(1.0 / pop_sizes[type_])
            elif kind is EventKind.MIGRATE:
                rate = rates[type_][dest]
                if rate > 0:
                    log_p += math.log(rate)
                else:
                    log_p = -math.inf
            counts = new_counts
            last_time = time

        if sum(counts) != 1:
            raise InvalidHistoryError(
                f"{sum(counts)} lineages remain after the root coalescence"
            )
        self.log_p = log_p
        return log_p
