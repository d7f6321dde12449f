import pathlib
import tempfile

import pytest
from multitypetree import *


def test_model_and_tree():
    model = MigrationModel(type_set=["A", "B"], pop_sizes=[1, 2], rate_matrix=[1, 1])
    a = Node(height=0.0, type=0)
    b = Node(height=0.0, type=1, events=[MigrationEvent(time=0.5, source=1, dest=0)])
    root = Node(height=1.0, type=0, children=[a, b])
    a.parent = root
    b.parent = root
    tree = MultiTypeTree(root, type_set=model.type_set)
    StructuredCoalescentDensity(tree, model).evaluate()


def test_dumps_and_loads():
    model1 = MigrationModel(type_set=["A"], pop_sizes=[1], rate_matrix=[])
    dump_str = dumps_model(model1)
    model2 = loads_model(dump_str)
    assert model1.asdict() == model2.asdict()


def test_dump_and_load():
    model1 = MigrationModel(type_set=["A"], pop_sizes=[1], rate_matrix=[])
    with tempfile.TemporaryDirectory() as tmpdir:
        tmpfile = pathlib.Path(tmpdir) / "temp.yaml"
        dump_model(model1, tmpfile)
        model2 = load_model(tmpfile)
    assert model1.asdict() == model2.asdict()


def test_public_symbols():
    TypeSet
    RealParameter
    BooleanParameter
    MigrationModel
    RateConvention
    ForwardTransform
    MigrationEvent
    Node
    MultiTypeTree
    TreeEdit
    StructuredCoalescentDensity
    EventKind
    TreeEvent
    Proposal
    TreeOperator
    TypedWilsonBalding
    MultiTypeTreeScale
    Chain
    TreeStatLogger

    MultiTypeTreeError
    ValidationError
    InvalidHistoryError
    NumericalError
    SimulationError
    NoValidPathError

    rate_matrix_index
    flatten_rate_matrix
    unflatten_rate_matrix
    reflatten_rate_matrix
    simulate_tree
    simulate_root_heights
    effective_sample_size

    load_asdict
    loads_asdict
    load_model
    loads_model
    dump_model
    dumps_model
    load_tree
    loads_tree
    dump_tree
    dumps_tree
    load_type_names
    load_pop_sizes
    load_rate_matrix


def test_nonpublic_symbols():
    with pytest.raises(NameError):
        multitypetree
    with pytest.raises(NameError):
        load_dump
    with pytest.raises(NameError):
        retype
    with pytest.raises(NameError):
        validators
    with pytest.raises(NameError):
        sample_history


def test_multitypetree_dir():
    import multitypetree

    dir_multitypetree = set(dir(multitypetree))
    assert "load_model" in dir_multitypetree
    assert "dump_tree" in dir_multitypetree
    assert "MigrationModel" in dir_multitypetree
    assert "StructuredCoalescentDensity" in dir_multitypetree

    assert "multitypetree" not in dir_multitypetree
    assert "load_dump" not in dir_multitypetree
    assert "retype" not in dir_multitypetree
    assert "validators" not in dir_multitypetree
    assert "tree" not in dir_multitypetree
