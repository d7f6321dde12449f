import numpy as np
import pytest

from multitypetree import (
    Chain,
    MultiTypeTreeScale,
    StructuredCoalescentDensity,
    TreeStatLogger,
    TypedWilsonBalding,
    ValidationError,
    simulate_root_heights,
)

from tests import (
    four_tip_model,
    four_tip_tree,
    three_tip_model,
    three_tip_tree,
    tree_state,
)


def make_chain(model, tree, seed, loggers=()):
    rng = np.random.default_rng(seed)
    operators = [
        TypedWilsonBalding(tree, model, alpha=0.2, rng=rng),
        MultiTypeTreeScale(tree, model, scale_factor=0.8, rng=rng),
    ]
    density = StructuredCoalescentDensity(tree, model)
    return Chain(density, operators, loggers=loggers, rng=rng)


class TestChain:
    def test_no_operators(self):
        model = three_tip_model()
        tree = three_tip_tree(model.type_set)
        density = StructuredCoalescentDensity(tree, model)
        with pytest.raises(ValidationError):
            Chain(density, [])

    def test_zero_probability_start(self):
        model = four_tip_model()
        model.rate_matrix[1] = 0.0
        tree = four_tip_tree(model.type_set)
        chain = make_chain(model, tree, 1)
        with pytest.raises(ValidationError, match="zero probability"):
            chain.run(10)

    def test_run(self):
        model = four_tip_model()
        tree = four_tip_tree(model.type_set)
        stats = TreeStatLogger(tree, log_every=10)
        chain = make_chain(model, tree, 2, loggers=[stats])
        chain.run(1000)
        assert chain.steps == 1000
        assert sum(op.num_proposed for op in chain.operators) == 1000
        assert all(op.num_accepted > 0 for op in chain.operators)
        assert len(stats.heights) == 101
        tree.validate()
        assert tree.num_leaves == 4
        assert chain.log_p == pytest.approx(chain.density.evaluate())

    def test_step(self):
        model = three_tip_model()
        tree = three_tip_tree(model.type_set)
        chain = make_chain(model, tree, 3)
        chain.run(0)
        num_accepted = sum(chain.step() for _ in range(200))
        assert num_accepted == sum(op.num_accepted for op in chain.operators)

    def test_reproducible(self):
        states = []
        for _ in range(2):
            model = four_tip_model()
            tree = four_tip_tree(model.type_set)
            chain = make_chain(model, tree, 1234)
            chain.run(500)
            states.append((tree_state(tree), chain.log_p))
        assert states[0] == states[1]

    def test_operator_weights(self):
        model = three_tip_model()
        tree = three_tip_tree(model.type_set)
        rng = np.random.default_rng(4)
        operators = [
            TypedWilsonBalding(tree, model, alpha=0.2, weight=1, rng=rng),
            MultiTypeTreeScale(tree, model, scale_factor=0.8, weight=3, rng=rng),
        ]
        density = StructuredCoalescentDensity(tree, model)
        chain = Chain(density, operators, rng=rng)
        chain.run(4000)
        fraction = operators[1].num_proposed / 4000
        assert fraction == pytest.approx(0.75, abs=0.05)


@pytest.mark.slow
class TestChainMatchesSimulation:
    # Root heights sampled by the chain must follow the distribution of
    # root heights of trees simulated under the same model.

    def check_root_heights(self, stats, model, leaf_types, seed):
        heights = simulate_root_heights(
            model, leaf_types, 20_000, rng=np.random.default_rng(seed)
        )
        assert stats.height_ess > 400
        assert abs(stats.height_mean - np.mean(heights)) < 1.0
        assert abs(stats.height_var - np.var(heights, ddof=1)) < 30

    def test_three_tips(self):
        model = three_tip_model()
        tree = three_tip_tree(model.type_set)
        stats = TreeStatLogger(tree, burnin_frac=0.2, log_every=100)
        chain = make_chain(model, tree, 42, loggers=[stats])
        chain.run(1_000_000)
        self.check_root_heights(stats, model, ["A", "A", "A"], 43)

    def test_three_tips_mixed_types_wilson_balding_only(self):
        model = three_tip_model()
        tree = three_tip_tree(model.type_set, leaf_types=(1, 0, 0))
        rng = np.random.default_rng(42)
        stats = TreeStatLogger(tree, burnin_frac=0.1, log_every=500)
        density = StructuredCoalescentDensity(tree, model)
        chain = Chain(
            density,
            [TypedWilsonBalding(tree, model, alpha=0.2, rng=rng)],
            loggers=[stats],
            rng=rng,
        )
        chain.run(1_500_000)
        self.check_root_heights(stats, model, ["B", "A", "A"], 44)
