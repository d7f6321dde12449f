#!/usr/bin/env python3
# Verifies the Markov chain operators by comparing the root heights sampled
# by long chains against root heights of directly simulated trees.
# Tested with Python 3.9 on Linux.
import argparse
import concurrent.futures
import logging
import os

import multitypetree
import numpy as np
import matplotlib

# Use non-GUI backend, to avoid problems with multiprocessing.
matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402
from matplotlib.backends.backend_pdf import PdfPages  # noqa: E402

NUM_PROCS = os.cpu_count()
CHAIN_LENGTH = 1_000_000
LOG_EVERY = 1000
NUM_REPLICATES = 100_000
REPS_PER_BATCH = 5_000
assert NUM_REPLICATES % REPS_PER_BATCH == 0

OPERATORS = {
    "twb": lambda tree, model, rng: multitypetree.TypedWilsonBalding(
        tree, model, alpha=0.2, rng=rng
    ),
    "scale": lambda tree, model, rng: multitypetree.MultiTypeTreeScale(
        tree, model, scale_factor=0.8, rng=rng
    ),
}


def three_tip_model():
    return multitypetree.MigrationModel(
        type_set=["A", "B"], pop_sizes=[7.0, 7.0], rate_matrix=[0.1, 0.1]
    )


def three_tip_tree(model, leaf_types):
    """
    ((1:1, 2:1):1, 3:2), with all internal nodes of type A.
    """
    data = dict(
        height=2.0,
        type="A",
        children=[
            dict(
                height=1.0,
                type="A",
                children=[
                    dict(height=0.0, type=leaf_types[0], label="1"),
                    dict(height=0.0, type=leaf_types[1], label="2"),
                ],
            ),
            dict(height=0.0, type=leaf_types[2], label="3"),
        ],
    )
    for child in data["children"][0]["children"] + data["children"][1:]:
        if child["type"] != "A":
            child["migrations"] = [dict(time=0.5, source=child["type"], dest="A")]
    return multitypetree.MultiTypeTree.fromdict(data, type_set=model.type_set)


def run_chain(leaf_types, operator_names, seed):
    """Run one chain and return the logged root heights."""
    model = three_tip_model()
    tree = three_tip_tree(model, leaf_types)
    rng = np.random.default_rng(seed)
    operators = [OPERATORS[name](tree, model, rng) for name in operator_names]
    stats = multitypetree.TreeStatLogger(tree, log_every=LOG_EVERY)
    density = multitypetree.StructuredCoalescentDensity(tree, model)
    chain = multitypetree.Chain(density, operators, loggers=[stats], rng=rng)
    chain.run(CHAIN_LENGTH)
    return stats.heights


def simulate(leaf_types, num_replicates, seed):
    return multitypetree.simulate_root_heights(
        three_tip_model(),
        leaf_types,
        num_replicates,
        rng=np.random.default_rng(seed),
    )


class Parallel:
    """
    Submit a chain and batches of direct simulations to the pool, and
    gather the results when they are first requested.
    """

    def __init__(self, pool, leaf_types, operator_names, seed):
        ss = np.random.SeedSequence(seed)
        chain_seed, *sim_seeds = ss.generate_state(
            1 + NUM_REPLICATES // REPS_PER_BATCH
        )
        self.chain_future = pool.submit(
            run_chain, leaf_types, operator_names, chain_seed
        )
        self.sim_futures = [
            pool.submit(simulate, leaf_types, REPS_PER_BATCH, sim_seed)
            for sim_seed in sim_seeds
        ]
        self.done = False

    def _wait(self):
        heights = []
        for fs in concurrent.futures.as_completed(self.sim_futures):
            heights.extend(fs.result())
        self._sim_heights = np.array(heights)
        self._chain_heights = self.chain_future.result()
        self.done = True

    def sim_heights(self):
        if not self.done:
            self._wait()
        return self._sim_heights

    def chain_heights(self):
        if not self.done:
            self._wait()
        return self._chain_heights


def plot_qq(ax, title, /, **kwargs):
    """
    Plot QQ onto the given axes.
    """
    (x_label, x), (y_label, y) = kwargs.items()
    quantiles = np.linspace(0, 1, 101)
    xq = np.nanquantile(x, quantiles)
    yq = np.nanquantile(y, quantiles)
    ax.scatter(xq, yq, marker="o", edgecolor="black", facecolor="none")
    ax.scatter(xq[50], yq[50], marker="x", lw=2, c="red", label="median")

    # diagonal line
    xlim = ax.get_xlim()
    ylim = ax.get_ylim()
    min_ = min(xlim[0], ylim[0])
    max_ = max(xlim[1], ylim[1])
    ax.plot([min_, max_], [min_, max_], c="lightgray", ls="--", lw=1, zorder=-10)
    ax.set_xlim(xlim)
    ax.set_ylim(ylim)

    ax.set_xlabel(x_label)
    ax.set_ylabel(y_label)
    ax.set_title(title)
    ax.legend()


def plot_trace(ax, title, heights):
    ax.plot(np.arange(len(heights)) * LOG_EVERY, heights, lw=0.5)
    ax.set_xlabel("Step")
    ax.set_ylabel("Root height")
    ax.set_title(title)


def get_axes(aspect=9 / 16, scale=1.5, **subplot_kwargs):
    """Make a matplotlib axes."""
    figsize = scale * plt.figaspect(aspect)
    fig, ax = plt.subplots(figsize=figsize, **subplot_kwargs)
    fig.set_tight_layout(True)
    return fig, ax


def multipanel_figure(sims, leaf_types, operator_names, burnin_frac):
    """Trace of the chain, and QQ of chain versus simulated root heights."""
    heights = sims.chain_heights()
    sim_heights = sims.sim_heights()
    chain_heights = np.array(heights[int(burnin_frac * len(heights)) :])
    leaf_str = " ".join(leaf_types)
    op_str = "+".join(operator_names)
    fig, axs = get_axes(nrows=1, ncols=2)
    plot_trace(axs[0], f"Root height trace, {op_str}, leaf types: {leaf_str}", heights)
    plot_qq(
        axs[1],
        f"QQ root height, {op_str}, leaf types: {leaf_str}",
        simulation=sim_heights,
        chain=chain_heights,
    )

    ess = multitypetree.effective_sample_size(chain_heights)
    mean = np.mean(chain_heights)
    var = np.var(chain_heights, ddof=1)
    sim_mean = np.mean(sim_heights)
    sim_var = np.var(sim_heights, ddof=1)
    ok = ess > 400 and abs(mean - sim_mean) < 1.0 and abs(var - sim_var) < 30
    print(
        f"{op_str}, leaf types {leaf_str}: height mean = {mean}, height var = {var}, "
        f"height ESS = {ess}; sim height mean = {sim_mean}, "
        f"sim height var = {sim_var}; {'PASS' if ok else 'FAIL'}"
    )
    return fig


if __name__ == "__main__":
    parser = argparse.ArgumentParser(
        description="Compare chain and simulated root heights."
    )
    parser.add_argument(
        "--twb-only",
        action="store_true",
        default=False,
        help="Only run chains with the TypedWilsonBalding operator.",
    )
    args = parser.parse_args()
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    # Leaf types, operators and burn-in fraction.
    scenarios = [
        (["A", "A", "A"], ["twb", "scale"], 0.2),
        (["B", "A", "A"], ["twb", "scale"], 0.1),
        (["B", "A", "A"], ["twb"], 0.1),
    ]
    if args.twb_only:
        scenarios = [
            (["A", "A", "A"], ["twb"], 0.2),
            (["B", "A", "A"], ["twb"], 0.1),
        ]
    with PdfPages("/tmp/verification.pdf") as pdf:
        with concurrent.futures.ProcessPoolExecutor(NUM_PROCS) as pool:
            all_sims = [
                Parallel(pool, leaf_types, operator_names, seed)
                for seed, (leaf_types, operator_names, _) in enumerate(scenarios, 42)
            ]
            for sims, (leaf_types, operator_names, burnin_frac) in zip(
                all_sims, scenarios
            ):
                fig = multipanel_figure(sims, leaf_types, operator_names, burnin_frac)
                pdf.savefig(figure=fig)
                plt.close(fig)
