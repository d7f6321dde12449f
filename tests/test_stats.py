import math

import numpy as np
import pytest

from multitypetree import TreeStatLogger, ValidationError, effective_sample_size

from tests import three_tip_model, three_tip_tree


class TestEffectiveSampleSize:
    def test_independent_samples(self):
        rng = np.random.default_rng(1)
        n = 5000
        ess = effective_sample_size(rng.normal(size=n))
        assert 0.5 * n < ess < 1.5 * n

    def test_autocorrelated_samples(self):
        # For an AR(1) process, ESS = n (1 - phi) / (1 + phi).
        rng = np.random.default_rng(2)
        n = 20_000
        phi = 0.9
        x = np.zeros(n)
        noise = rng.normal(size=n)
        for j in range(1, n):
            x[j] = phi * x[j - 1] + noise[j]
        expected = n * (1 - phi) / (1 + phi)
        ess = effective_sample_size(x)
        assert 0.5 * expected < ess < 2 * expected

    def test_constant(self):
        assert math.isnan(effective_sample_size([1.5] * 100))

    @pytest.mark.parametrize("samples", [[], [1.0], [1.0, 2.0, 3.0]])
    def test_too_short(self, samples):
        assert math.isnan(effective_sample_size(samples))

    def test_accepts_lists(self):
        assert effective_sample_size([1.0, 2.0, 1.0, 2.0, 3.0] * 20) > 0


class TestTreeStatLogger:
    def test_log_every(self):
        model = three_tip_model()
        tree = three_tip_tree(model.type_set)
        stats = TreeStatLogger(tree, log_every=3)
        for step in range(10):
            tree.root.height = 2.0 + step
            stats.log(step)
        assert stats.heights == [2.0, 5.0, 8.0, 11.0]

    def test_burnin(self):
        model = three_tip_model()
        tree = three_tip_tree(model.type_set)
        stats = TreeStatLogger(tree, burnin_frac=0.4)
        for step, height in enumerate([100.0, 100.0, 2.0, 3.0, 4.0, 5.0]):
            tree.root.height = height
            stats.log(step)
        assert stats.height_mean == pytest.approx(3.5)
        assert stats.height_var == pytest.approx(np.var([2, 3, 4, 5], ddof=1))
        assert "height mean = 3.5" in stats.summary()

    @pytest.mark.parametrize(
        "kwargs", [dict(burnin_frac=1.0), dict(burnin_frac=-0.1), dict(log_every=0)]
    )
    def test_bad_arguments(self, kwargs):
        model = three_tip_model()
        tree = three_tip_tree(model.type_set)
        with pytest.raises(ValidationError):
            TreeStatLogger(tree, **kwargs)
