import argparse
import logging
import sys
import textwrap

import numpy as np

import multitypetree


def _float_list(value: str):
    return [float(x) for x in value.split(",")]


class LoglikCommand:
    """
    Evaluate the structured coalescent log density of a coloured tree
    under a migration model, and write it to stdout.
    """

    def __init__(self, subparsers):
        parser = subparsers.add_parser(
            "loglik",
            help="Evaluate the log density of a coloured tree.",
            description=textwrap.dedent(self.__doc__),
        )
        parser.set_defaults(func=self)
        parser.add_argument(
            "model",
            type=argparse.FileType(),
            help=(
                "Filename of the migration model. The special value '-' may "
                "be used to read from stdin. The file may be in YAML or JSON "
                "format, but will be parsed as YAML."
            ),
        )
        parser.add_argument(
            "tree",
            type=argparse.FileType(),
            help=(
                "Filename of the coloured tree, as a nested YAML or JSON "
                "document whose types refer to the model's types."
            ),
        )
        parser.add_argument(
            "--check",
            action="store_true",
            default=False,
            help="Validate the whole tree before evaluating the density.",
        )

    def __call__(self, args: argparse.Namespace) -> None:
        model = multitypetree.load_model(args.model)
        tree = multitypetree.load_tree(args.tree, type_set=model.type_set)
        density = multitypetree.StructuredCoalescentDensity(
            tree, model, check_validity=args.check
        )
        print(density.evaluate())


class SimulateCommand:
    """
    Simulate coloured trees under the structured coalescent. A single tree
    is written to stdout in YAML format by default. With --replicates,
    the root heights of the simulated trees are written instead, one
    per line.
    """

    def __init__(self, subparsers):
        parser = subparsers.add_parser(
            "simulate",
            help="Simulate a coloured tree under the structured coalescent.",
            description=textwrap.dedent(self.__doc__),
        )
        parser.set_defaults(func=self)
        parser.add_argument(
            "-j",
            "--json",
            action="store_true",
            default=False,
            help="Output a JSON-formatted tree.",
        )
        parser.add_argument(
            "-s",
            "--seed",
            type=int,
            default=None,
            help="Seed for the random number generator.",
        )
        parser.add_argument(
            "--heights",
            type=_float_list,
            default=None,
            help=(
                "Comma-separated heights of the leaves, e.g. 0,4. "
                "Leaves are sampled at zero by default."
            ),
        )
        parser.add_argument(
            "-r",
            "--replicates",
            type=int,
            default=None,
            help="Simulate this many trees and output their root heights.",
        )
        parser.add_argument(
            "model",
            type=argparse.FileType(),
            help="Filename of the migration model, in YAML or JSON format.",
        )
        parser.add_argument(
            "leaf_types",
            nargs="+",
            metavar="TYPE",
            help="The type name of each leaf.",
        )

    def __call__(self, args: argparse.Namespace) -> None:
        model = multitypetree.load_model(args.model)
        rng = np.random.default_rng(args.seed)
        if args.replicates is not None:
            heights = multitypetree.simulate_root_heights(
                model,
                args.leaf_types,
                args.replicates,
                leaf_heights=args.heights,
                rng=rng,
            )
            for height in heights:
                print(height)
        else:
            tree = multitypetree.simulate_tree(
                model, args.leaf_types, args.heights, rng=rng
            )
            multitypetree.dump_tree(
                tree, sys.stdout, format="json" if args.json else "yaml"
            )


def get_multitypetree_parser() -> argparse.ArgumentParser:
    top_parser = argparse.ArgumentParser(
        prog="multitypetree",
        description="Structured coalescent densities and simulations.",
    )
    top_parser.add_argument(
        "--version", action="version", version=multitypetree.__version__
    )
    top_parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Log progress to stderr. Repeat for debug output.",
    )
    subparsers = top_parser.add_subparsers(dest="subcommand")
    LoglikCommand(subparsers)
    SimulateCommand(subparsers)
    return top_parser


def cli(args_list=None) -> None:
    top_parser = get_multitypetree_parser()
    args = top_parser.parse_args(args_list)
    if args.subcommand is None:
        top_parser.print_help()
        exit(1)
    levels = [logging.WARNING, logging.INFO, logging.DEBUG]
    logging.basicConfig(
        level=levels[min(args.verbose, len(levels) - 1)],
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    args.func(args)


if __name__ == "__main__":
    cli()
