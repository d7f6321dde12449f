import pathlib
import functools

import multitypetree

_cwd = pathlib.Path(__file__).parent.resolve()
example_dir = _cwd / "../examples"


@functools.lru_cache(maxsize=None)
def example_files():
    files = list(example_dir.glob("**/*.yaml")) + list(example_dir.glob("**/*.json"))
    assert len(files) > 1
    return files


def example_model_files():
    return [fn for fn in example_files() if "model" in fn.name]


def example_tree_files():
    return [fn for fn in example_files() if "tree" in fn.name]


def model_for_tree_file(filename):
    """The example model whose types are used by an example tree."""
    prefix = filename.name.split("_tree")[0].replace("_mixed", "")
    return multitypetree.load_model(example_dir / f"{prefix}_model.yaml")


def four_tip_model(**kwargs):
    return multitypetree.MigrationModel(
        type_set=multitypetree.TypeSet(["0", "1"]),
        pop_sizes=[5.0, 10.0],
        rate_matrix=[2.0, 1.0],
        **kwargs,
    )


def four_tip_tree(type_set):
    """
    ((A:0.5, B:0.5):1.5, (C:1.0, D:1.0):1.0), where A is sampled in
    type 1 and migrates to type 0 at time 0.25. All other nodes have type 0.
    """
    Node = multitypetree.Node
    a = Node(height=0.0, type=1, label="A")
    a.events.append(multitypetree.MigrationEvent(time=0.25, source=1, dest=0))
    b = Node(height=0.0, type=0, label="B")
    c = Node(height=0.0, type=0, label="C")
    d = Node(height=0.0, type=0, label="D")
    ab = Node(height=0.5, type=0, children=[a, b])
    cd = Node(height=1.0, type=0, children=[c, d])
    root = Node(height=2.0, type=0, children=[ab, cd])
    for parent in (ab, cd, root):
        for child in parent.children:
            child.parent = parent
    return multitypetree.MultiTypeTree(root, type_set=type_set)


def three_tip_model(**kwargs):
    return multitypetree.MigrationModel(
        type_set=multitypetree.TypeSet(["A", "B"]),
        pop_sizes=[7.0, 7.0],
        rate_matrix=[0.1, 0.1],
        **kwargs,
    )


def three_tip_tree(type_set, leaf_types=(0, 0, 0)):
    """
    ((1:1, 2:1):1, 3:2), with all internal nodes of type 0. If leaf 1 has
    type 1, its branch migrates to type 0 at time 0.5.
    """
    Node = multitypetree.Node
    leaves = [
        Node(height=0.0, type=t, label=str(j + 1)) for j, t in enumerate(leaf_types)
    ]
    if leaf_types[0] != 0:
        leaves[0].events.append(
            multitypetree.MigrationEvent(time=0.5, source=leaf_types[0], dest=0)
        )
    inner = Node(height=1.0, type=0, children=leaves[:2])
    root = Node(height=2.0, type=0, children=[inner, leaves[2]])
    for parent in (inner, root):
        for child in parent.children:
            child.parent = parent
    return multitypetree.MultiTypeTree(root, type_set=type_set)


def tree_state(tree):
    """
    A comparable snapshot of everything a proposal may change.
    """
    return (
        tree.root.nr,
        [
            (
                node.height,
                node.type,
                None if node.parent is None else node.parent.nr,
                [child.nr for child in node.children],
                list(node.events),
            )
            for node in tree.nodes
        ],
    )
