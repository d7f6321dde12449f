"""
Simulation of coloured trees under the structured coalescent.
"""
from __future__ import annotations
import logging
import math
from typing import List, Optional, Sequence

import numpy as np

from .exceptions import SimulationError, ValidationError
from .migration import MigrationModel
from .tree import MigrationEvent, MultiTypeTree, Node

logger = logging.getLogger(__name__)


def _sample_weighted(weights: Sequence[float], total: float, rng) -> int:
    """Return index i with probability proportional to weights[i]."""
    u = rng.random() * total
    c = 0.0
    for i, w in enumerate(weights):
        c += w
        if u < c:
            return i
    # Rounding: return the last index with non-zero weight.
    for i in range(len(weights) - 1, -1, -1):
        if weights[i] > 0:
            return i
    raise SimulationError("no event has a positive rate")


def simulate_tree(
    model: MigrationModel,
    leaf_types,
    leaf_heights: Optional[Sequence[float]] = None,
    *,
    rng: Optional[np.random.Generator] = None,
) -> MultiTypeTree:
    """
    Simulate a coloured tree under the structured coalescent.

    Going back in time from the youngest sample, the waiting time to the
    next event is exponential with the total rate of all coalescences and
    migrations, and the event is chosen in proportion to its rate.
    Samples with non-zero heights join the process when it reaches them.

    .. code::

        tree = simulate_tree(model, ["A", "A", "B"], rng=np.random.default_rng(1))

    :param MigrationModel model: The migration model.
    :param leaf_types: The type of each leaf, as names or indices.
    :param leaf_heights: The height of each leaf. Defaults to zero.
    :param numpy.random.Generator rng: The random number generator.
    :return: The simulated tree, whose leaves are labelled ``t0``, ``t1``, ...
        in the order given.
    :rtype: MultiTypeTree
    :raises SimulationError: If more than one lineage remains but no
        further event is possible.
    """
    if rng is None:
        rng = np.random.default_rng()
    leaf_types = [model.type_set.resolve(t) for t in leaf_types]
    if len(leaf_types) == 0:
        raise ValidationError("at least one leaf is required")
    if leaf_heights is None:
        leaf_heights = [0.0] * len(leaf_types)
    if len(leaf_heights) != len(leaf_types):
        raise ValidationError("leaf_heights and leaf_types must have the same length")
    model.check_numerics()

    n = model.num_types
    pop_sizes = [model.pop_size(j) for j in range(n)]
    rates = model.backward_rate_matrix()

    pending: List[Node] = [
        Node(height=float(height), type=type_, label=f"t{j}")
        for j, (type_, height) in enumerate(zip(leaf_types, leaf_heights))
    ]
    pending.sort(key=lambda node: node.height, reverse=True)
    # Active lineages, by current type.
    active: List[List[Node]] = [[] for _ in range(n)]
    t = pending[-1].height

    def add_samples(time):
        while pending and pending[-1].height <= time:
            node = pending.pop()
            active[node.type].append(node)

    add_samples(t)
    while True:
        num_lineages = sum(len(lineages) for lineages in active)
        if num_lineages == 1 and not pending:
            break
        next_sample = pending[-1].height if pending else math.inf

        weights = []
        kinds = []
        for c in range(n):
            k = len(active[c])
            weights.append(k * (k - 1) / (2 * pop_sizes[c]))
            kinds.append((c, None))
        for i in range(n):
            k = len(active[i])
            for j in range(n):
                if i != j:
                    weights.append(k * rates[i][j])
                    kinds.append((i, j))
        total = sum(weights)

        if total > 0:
            dt = rng.exponential(1 / total)
        else:
            dt = math.inf
        if t + dt >= next_sample:
            if next_sample == math.inf:
                raise SimulationError(
                    f"{num_lineages} lineages remain at time {t}, "
                    "but no coalescence or migration can occur"
                )
            t = next_sample
            add_samples(t)
            continue

        t += dt
        source, dest = kinds[_sample_weighted(weights, total, rng)]
        lineages = active[source]
        if dest is None:
            a, b = rng.choice(len(lineages), size=2, replace=False)
            first = lineages[a]
            second = lineages[b]
            for j in sorted((a, b), reverse=True):
                del lineages[j]
            parent = Node(height=t, type=source, children=[first, second])
            first.parent = parent
            second.parent = parent
            lineages.append(parent)
        else:
            j = int(rng.integers(len(lineages)))
            node = lineages.pop(j)
            node.events.append(MigrationEvent(time=t, source=source, dest=dest))
            active[dest].append(node)

    root = next(lineages[0] for lineages in active if lineages)
    tree = MultiTypeTree(root, type_set=model.type_set)
    logger.debug(
        "Simulated tree with %d leaves, root height %g and %d migrations",
        len(leaf_types),
        root.height,
        tree.num_migrations,
    )
    return tree


def simulate_root_heights(
    model: MigrationModel,
    leaf_types,
    num_replicates: int,
    *,
    leaf_heights: Optional[Sequence[float]] = None,
    rng: Optional[np.random.Generator] = None,
) -> np.ndarray:
    """
    Return the root heights of ``num_replicates`` independently simulated
    trees.

    :rtype: numpy.ndarray
    """
    if rng is None:
        rng = np.random.default_rng()
    heights = np.zeros(num_replicates)
    for j in range(num_replicates):
        tree = simulate_tree(model, leaf_types, leaf_heights, rng=rng)
        heights[j] = tree.root.height
    logger.info(
        "Simulated %d trees: root height mean %g, variance %g",
        num_replicates,
        np.mean(heights) if num_replicates > 0 else math.nan,
        np.var(heights, ddof=1) if num_replicates > 1 else math.nan,
    )
    return heights
