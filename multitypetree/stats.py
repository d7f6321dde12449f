"""
Summary statistics for chains of coloured trees.
"""
from __future__ import annotations
import logging
import math
from typing import List

import arviz as az
import numpy as np

from .exceptions import ValidationError
from .tree import MultiTypeTree

logger = logging.getLogger(__name__)

# Sequences shorter than this have no meaningful effective sample size.
MIN_SAMPLES = 4


def effective_sample_size(samples) -> float:
    """
    Estimate the effective sample size of a correlated sequence, using
    the ESS of the mean from :func:`arviz.ess` on a single chain.

    :param samples: The sequence of values.
    :return: The effective sample size. A constant sequence, or one with
        fewer than :data:`MIN_SAMPLES` values, has an effective sample size
        of ``nan``.
    :rtype: float
    """
    x = np.asarray(samples, dtype=np.float64)
    if len(x) < MIN_SAMPLES or np.ptp(x) == 0:
        return math.nan
    return float(az.ess(x, method="mean"))


class TreeStatLogger:
    """
    Records the root height of a tree at regular intervals of a chain and
    summarises the recorded values after discarding a burn-in.

    :param MultiTypeTree tree: The tree whose root height is recorded.
    :param float burnin_frac: The fraction of recorded values discarded
        as burn-in.
    :param int log_every: The number of chain steps between records.
    """

    def __init__(
        self, tree: MultiTypeTree, *, burnin_frac: float = 0.1, log_every: int = 1
    ):
        if not 0 <= burnin_frac < 1:
            raise ValidationError("burnin_frac must be in the interval [0, 1)")
        if log_every < 1:
            raise ValidationError("log_every must be a positive integer")
        self.tree = tree
        self.burnin_frac = burnin_frac
        self.log_every = log_every
        self.heights: List[float] = []

    def log(self, step: int) -> None:
        if step % self.log_every == 0:
            self.heights.append(self.tree.root.height)

    def _post_burnin(self) -> np.ndarray:
        burnin = int(self.burnin_frac * len(self.heights))
        return np.array(self.heights[burnin:])

    @property
    def height_mean(self) -> float:
        return float(np.mean(self._post_burnin()))

    @property
    def height_var(self) -> float:
        return float(np.var(self._post_burnin(), ddof=1))

    @property
    def height_ess(self) -> float:
        return effective_sample_size(self._post_burnin())

    def summary(self) -> str:
        return (
            f"height mean = {self.height_mean}, height var = {self.height_var}, "
            f"height ESS = {self.height_ess}"
        )
