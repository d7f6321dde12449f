"""
A minimal Metropolis-Hastings driver for coloured trees.
"""
from __future__ import annotations
import logging
import math
from typing import Optional, Sequence

import numpy as np

from .density import StructuredCoalescentDensity
from .exceptions import ValidationError
from .operators import TreeOperator
from .stats import TreeStatLogger

logger = logging.getLogger(__name__)


class Chain:
    """
    Runs the propose, evaluate, accept or revert loop.

    At each step an operator is chosen with probability proportional to
    its weight, the operator modifies the tree, the density is evaluated,
    and the proposal is accepted with the Metropolis-Hastings probability.
    All random draws come from ``rng``, in that order; the operators must
    share the same generator for a run to be reproducible from one seed.

    .. code::

        rng = np.random.default_rng(42)
        operators = [
            TypedWilsonBalding(tree, model, alpha=0.2, rng=rng),
            MultiTypeTreeScale(tree, model, scale_factor=0.8, rng=rng),
        ]
        chain = Chain(density, operators, rng=rng)
        chain.run(10_000)

    :param StructuredCoalescentDensity density: The target density.
    :param operators: The proposal operators.
    :type operators: list[TreeOperator]
    :param loggers: Loggers whose ``log(step)`` method is called after
        every step.
    :type loggers: list[TreeStatLogger]
    :param numpy.random.Generator rng: The random number generator.
    """

    def __init__(
        self,
        density: StructuredCoalescentDensity,
        operators: Sequence[TreeOperator],
        *,
        loggers: Sequence[TreeStatLogger] = (),
        rng: Optional[np.random.Generator] = None,
    ):
        if len(operators) == 0:
            raise ValidationError("at least one operator is required")
        self.density = density
        self.operators = list(operators)
        self.loggers = list(loggers)
        self.rng = np.random.default_rng() if rng is None else rng
        weights = np.array([op.weight for op in self.operators])
        self._cumulative_weights = np.cumsum(weights / weights.sum())
        self.log_p = math.nan
        self.steps = 0

    def _choose_operator(self) -> TreeOperator:
        j = np.searchsorted(self._cumulative_weights, self.rng.random(), side="right")
        return self.operators[min(j, len(self.operators) - 1)]

    def step(self) -> bool:
        """
        Perform one step of the chain.

        :return: True if the proposal was accepted.
        :rtype: bool
        """
        operator = self._choose_operator()
        proposal = operator.propose()
        accepted = False
        if proposal.feasible:
            new_log_p = self.density.evaluate()
            log_alpha = new_log_p - self.log_p + proposal.log_hastings_ratio
            if log_alpha >= 0 or math.log(self.rng.random()) < log_alpha:
                accepted = True
        if accepted:
            operator.accept()
            self.log_p = new_log_p
        else:
            operator.revert()
        return accepted

    def run(self, chain_length: int) -> None:
        """
        Run the chain for the given number of steps.

        :raises NumericalError: If the density cannot be evaluated.
        """
        self.log_p = self.density.evaluate()
        if self.log_p == -math.inf:
            raise ValidationError("the initial state has zero probability")
        logger.info(
            "Running chain for %d steps from log density %g", chain_length, self.log_p
        )
        for logger_ in self.loggers:
            logger_.log(self.steps)
        for _ in range(chain_length):
            self.step()
            self.steps += 1
            for logger_ in self.loggers:
                logger_.log(self.steps)
        for operator in self.operators:
            logger.info(
                "%s: accepted %d of %d proposals",
                operator,
                operator.num_accepted,
                operator.num_proposed,
            )
