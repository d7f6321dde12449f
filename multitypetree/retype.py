"""
Endpoint-conditioned sampling of migration histories on branches,
by uniformisation of the backward-time migration process.
"""
from __future__ import annotations
import logging
import math
from typing import List, Tuple

import numpy as np
import scipy.linalg

from .exceptions import NoValidPathError
from .tree import MigrationEvent, Node

logger = logging.getLogger(__name__)

# Histories needing more virtual events than this are treated as impossible.
MAX_VIRTUAL_EVENTS = 10_000


def transition_matrix(Q: np.ndarray, length: float) -> np.ndarray:
    """
    The matrix of type transition probabilities over a branch of the given
    length, ``expm(Q * length)``.
    """
    return scipy.linalg.expm(Q * length)


def sample_history(
    Q: np.ndarray,
    start_type: int,
    end_type: int,
    start_time: float,
    end_time: float,
    rng: np.random.Generator,
) -> Tuple[List[MigrationEvent], float]:
    """
    Sample a migration history for a branch from ``start_time`` (the child
    end) to ``end_time`` (the parent end), conditional on the types at
    both ends.

    The number of virtual events is drawn from its conditional
    distribution under the uniformised chain, the event times are uniform
    on the branch, and each virtual event's type is drawn conditional on
    the remaining events reaching ``end_type``. Virtual events that do not
    change the type are discarded.

    :param numpy.ndarray Q: The generator matrix of the migration process.
    :param int start_type: The type at the child end of the branch.
    :param int end_type: The type at the parent end of the branch.
    :param float start_time: The height of the child.
    :param float end_time: The height of the parent.
    :param numpy.random.Generator rng: The random number generator.
    :return: The list of migration events and the log probability density
        of the sampled history.
    :rtype: tuple[list[MigrationEvent], float]
    :raises NoValidPathError: If no history connects the two types.
    """
    length = end_time - start_time
    num_types = Q.shape[0]
    mu = float(np.max(-np.diag(Q))) if num_types > 0 else 0.0
    if mu <= 0:
        if start_type != end_type:
            raise NoValidPathError(
                f"no migration is possible from type {start_type} "
                f"to type {end_type}"
            )
        return [], 0.0

    P = transition_matrix(Q, length)
    p_end = P[start_type, end_type]
    if not p_end > 0:
        raise NoValidPathError(
            f"type {end_type} cannot be reached from type {start_type}"
        )

    R = np.eye(num_types) + Q / mu
    powers = [np.eye(num_types)]
    mu_length = mu * length
    u = rng.random() * p_end
    n = 0
    total = math.exp(-mu_length) * powers[0][start_type, end_type]
    while total < u:
        n += 1
        if n > MAX_VIRTUAL_EVENTS:
            raise NoValidPathError(
                f"more than {MAX_VIRTUAL_EVENTS} virtual events required"
            )
        powers.append(powers[-1] @ R)
        log_poisson = -mu_length + n * math.log(mu_length) - math.lgamma(n + 1)
        total += math.exp(log_poisson) * powers[n][start_type, end_type]

    times = np.sort(rng.uniform(start_time, end_time, size=n))
    events = []
    current = start_type
    for j in range(n):
        remaining = n - j
        weights = R[current, :] * powers[remaining - 1][:, end_type]
        weights = weights / weights.sum()
        new_type = int(np.searchsorted(np.cumsum(weights), rng.random(), side="right"))
        new_type = min(new_type, num_types - 1)
        if new_type != current:
            events.append(
                MigrationEvent(time=float(times[j]), source=current, dest=new_type)
            )
            current = new_type

    log_prob = history_log_prob(
        Q, start_type, end_type, start_time, end_time, events, P=P
    )
    return events, log_prob


def history_log_prob(
    Q: np.ndarray,
    start_type: int,
    end_type: int,
    start_time: float,
    end_time: float,
    events: List[MigrationEvent],
    *,
    P=None,
) -> float:
    """
    The log probability density of a branch history under the migration
    process, conditional on the types at both ends of the branch.
    """
    if P is None:
        P = transition_matrix(Q, end_time - start_time)
    log_prob = 0.0
    current = start_type
    last_time = start_time
    for event in events:
        rate = Q[current, event.dest]
        if not rate > 0:
            return -math.inf
        log_prob += Q[current, current] * (event.time - last_time)
        log_prob += math.log(rate)
        current = event.dest
        last_time = event.time
    log_prob += Q[current, current] * (end_time - last_time)
    return log_prob - math.log(P[start_type, end_type])


def branch_log_prob(Q: np.ndarray, node: Node) -> float:
    """
    The log probability density of the migration history on the branch
    above ``node``, conditional on the types at both ends.
    """
    return history_log_prob(
        Q, node.type, node.parent.type, node.height, node.parent.height, node.events
    )


def retype_branch(Q: np.ndarray, node: Node, rng: np.random.Generator) -> float:
    """
    Replace the migration history on the branch above ``node`` with a new
    one sampled by uniformisation. The caller records the node in the
    active edit first.

    :return: The log probability density of the new history.
    :raises NoValidPathError: If no history connects the types at the
        ends of the branch.
    """
    events, log_prob = sample_history(
        Q, node.type, node.parent.type, node.height, node.parent.height, rng
    )
    node.events = events
    return log_prob


def retype_root_branches(Q: np.ndarray, root: Node, rng: np.random.Generator) -> float:
    """
    Choose a new type for the root uniformly at random and resample the
    histories of both branches below it.

    :return: The log probability of the new root type and histories.
    """
    num_types = Q.shape[0]
    root.type = int(rng.integers(num_types))
    log_prob = -math.log(num_types)
    for child in root.children:
        log_prob += retype_branch(Q, child, rng)
    return log_prob


def root_branches_log_prob(Q: np.ndarray, root: Node) -> float:
    """
    The log probability that :func:`retype_root_branches` produces the
    current root type and histories.
    """
    log_prob = -math.log(Q.shape[0])
    for child in root.children:
        log_prob += branch_log_prob(Q, child)
    return log_prob
