__version__ = "0.1.0"

from .exceptions import (
    MultiTypeTreeError,
    ValidationError,
    InvalidHistoryError,
    NumericalError,
    SimulationError,
    NoValidPathError,
)
from .typeset import TypeSet
from .parameters import RealParameter, BooleanParameter
from .migration import (
    MigrationModel,
    RateConvention,
    ForwardTransform,
    rate_matrix_index,
    flatten_rate_matrix,
    unflatten_rate_matrix,
    reflatten_rate_matrix,
)
from .tree import MigrationEvent, Node, MultiTypeTree, TreeEdit
from .density import StructuredCoalescentDensity, EventKind, TreeEvent
from .operators import Proposal, TreeOperator, TypedWilsonBalding, MultiTypeTreeScale
from .simulate import simulate_tree, simulate_root_heights
from .stats import effective_sample_size, TreeStatLogger
from .mcmc import Chain
from .load_dump import (
    load_asdict,
    loads_asdict,
    load_model,
    loads_model,
    dump_model,
    dumps_model,
    load_tree,
    loads_tree,
    dump_tree,
    dumps_tree,
    load_type_names,
    load_pop_sizes,
    load_rate_matrix,
)

__all__ = [
    "MultiTypeTreeError",
    "ValidationError",
    "InvalidHistoryError",
    "NumericalError",
    "SimulationError",
    "NoValidPathError",
    "TypeSet",
    "RealParameter",
    "BooleanParameter",
    "MigrationModel",
    "RateConvention",
    "ForwardTransform",
    "rate_matrix_index",
    "flatten_rate_matrix",
    "unflatten_rate_matrix",
    "reflatten_rate_matrix",
    "MigrationEvent",
    "Node",
    "MultiTypeTree",
    "TreeEdit",
    "StructuredCoalescentDensity",
    "EventKind",
    "TreeEvent",
    "Proposal",
    "TreeOperator",
    "TypedWilsonBalding",
    "MultiTypeTreeScale",
    "simulate_tree",
    "simulate_root_heights",
    "effective_sample_size",
    "TreeStatLogger",
    "Chain",
    "load_asdict",
    "loads_asdict",
    "load_model",
    "loads_model",
    "dump_model",
    "dumps_model",
    "load_tree",
    "loads_tree",
    "dump_tree",
    "dumps_tree",
    "load_type_names",
    "load_pop_sizes",
    "load_rate_matrix",
]


# Override the symbols that are returned when calling dir(<module-name>).
# https://www.python.org/dev/peps/pep-0562/
# We do this because the Python REPL and IPython notebooks ignore __all__
# when providing autocomplete suggestions. They instead rely on dir().
# By not showing internal symbols in the dir() output, we reduce the chance
# that users rely on non-public features.
def __dir__():
    return sorted(__all__)
