"""
Coloured trees: binary trees whose nodes carry a type and whose branches
carry the ordered migration events between a node and its parent.
"""
from __future__ import annotations
import copy
import logging
from typing import Any, Dict, List, MutableMapping, Optional, Set

import attr

from .exceptions import ValidationError
from .typeset import TypeSet
from .validators import (
    check_allowed,
    finite,
    int_or_float,
    non_negative,
    pop_item,
    pop_list,
)

logger = logging.getLogger(__name__)


def _distinct_types(self, attribute, value):
    if value == self.source:
        raise ValidationError(
            f"migration event at time {self.time} has source == dest ({value})"
        )


@attr.s(auto_attribs=True, kw_only=True, slots=True, frozen=True)
class MigrationEvent:
    """
    A change of type on a branch, at the given time. Following the branch
    from the child node towards the root, the lineage has type ``source``
    below ``time`` and type ``dest`` above it.

    :ivar float time: The time of the event.
    :ivar int source: The type index below the event.
    :ivar int dest: The type index above the event.
    """

    time: float = attr.ib(validator=[int_or_float, non_negative, finite])
    source: int = attr.ib(validator=attr.validators.instance_of(int))
    dest: int = attr.ib(
        validator=[attr.validators.instance_of(int), _distinct_types]
    )


@attr.s(auto_attribs=True, kw_only=True, slots=True, eq=False, repr=False)
class Node:
    """
    A node of a :class:`MultiTypeTree`.

    Nodes compare by identity. The ``events`` list holds the migration
    events on the branch between this node and its parent, in order of
    increasing time; it is always empty for the root.

    :ivar float height: The height (age) of the node.
    :ivar int type: The index of the node's type.
    :ivar str label: An optional label, usually given to leaves.
    :ivar Node parent: The parent node, or None for the root.
    :ivar list[Node] children: Zero children for a leaf, two otherwise.
    :ivar list[MigrationEvent] events: The events on the branch above
        this node.
    :ivar int nr: The node number, assigned by the tree. Leaves are
        numbered first.
    """

    height: float = attr.ib(validator=[int_or_float, non_negative, finite])
    type: int = attr.ib(validator=attr.validators.instance_of(int))
    label: Optional[str] = attr.ib(
        default=None,
        validator=attr.validators.optional(attr.validators.instance_of(str)),
    )
    parent: Optional[Node] = None
    children: List[Node] = attr.ib(factory=list)
    events: List[MigrationEvent] = attr.ib(factory=list)
    nr: int = -1

    def __repr__(self) -> str:
        return (
            f"Node(nr={self.nr}, label={self.label!r}, height={self.height}, "
            f"type={self.type}, events={len(self.events)})"
        )

    @property
    def is_leaf(self) -> bool:
        return len(self.children) == 0

    @property
    def is_root(self) -> bool:
        return self.parent is None

    @property
    def sibling(self) -> Optional[Node]:
        """
        The other child of this node's parent, or None for the root.
        """
        if self.parent is None:
            return None
        for child in self.parent.children:
            if child is not self:
                return child
        return None

    @property
    def top_type(self) -> int:
        """
        The type at the top of the branch above this node.
        """
        if self.events:
            return self.events[-1].dest
        return self.type

    def type_at(self, time: float) -> int:
        """
        The type of the branch above this node at the given time.
        """
        current = self.type
        for event in self.events:
            if event.time > time:
                break
            current = event.dest
        return current

    @property
    def branch_length(self) -> float:
        if self.parent is None:
            return 0.0
        return self.parent.height - self.height


@attr.s(auto_attribs=True, slots=True)
class _NodeState:
    height: float
    type: int
    parent: Optional[Node]
    children: List[Node]
    events: List[MigrationEvent]


class TreeEdit:
    """
    A record of the state of every node and parameter touched by a
    proposal. Calling :meth:`revert` restores all of them, and the tree's
    root, to the state they had when they were first touched.

    Edits are created with :meth:`MultiTypeTree.begin_edit`. While an edit
    is active, the tree's structural operations record the nodes they
    change automatically; code that modifies nodes directly must call
    :meth:`touch` first.
    """

    def __init__(self, tree: MultiTypeTree):
        self.tree = tree
        self.root = tree.root
        self._nodes: Dict[int, _NodeState] = {}
        self._node_refs: Dict[int, Node] = {}
        self._parameters: Dict[int, Any] = {}
        self.closed = False

    def touch(self, *nodes: Node) -> None:
        """
        Record the current state of each node, unless already recorded.
        """
        for node in nodes:
            key = id(node)
            if key not in self._nodes:
                self._nodes[key] = _NodeState(
                    height=node.height,
                    type=node.type,
                    parent=node.parent,
                    children=list(node.children),
                    events=list(node.events),
                )
                self._node_refs[key] = node

    def record_parameter(self, parameter) -> None:
        """
        Record the current values of a parameter, unless already recorded.
        """
        key = id(parameter)
        if key not in self._parameters:
            self._parameters[key] = (parameter, list(parameter.values))

    @property
    def touched_nodes(self) -> List[Node]:
        return list(self._node_refs.values())

    def revert(self) -> None:
        for key, state in self._nodes.items():
            node = self._node_refs[key]
            node.height = state.height
            node.type = state.type
            node.parent = state.parent
            node.children = state.children
            node.events = state.events
        for parameter, values in self._parameters.values():
            parameter.values = values
        self.tree.root = self.root
        self.close()

    def close(self) -> None:
        self.closed = True
        if self.tree._edit is self:
            self.tree._edit = None


class MultiTypeTree:
    """
    A binary tree with typed nodes and migration events on its branches.

    The set of nodes is fixed when the tree is created: operators may
    rearrange the topology, but leaves stay leaves and node numbers do not
    change. Leaves are numbered ``0 .. num_leaves - 1`` and internal nodes
    follow.

    :param Node root: The root of a fully linked tree.
    :param TypeSet type_set: The types the node and event type indices
        refer to. If omitted, a type set with the names ``"0"``, ``"1"``,
        etc. is created for the largest type index in the tree.
    """

    def __init__(self, root: Node, type_set: Optional[TypeSet] = None):
        if root.parent is not None:
            raise ValidationError("the root node must not have a parent")
        self.root = root
        self._edit: Optional[TreeEdit] = None
        self.nodes: List[Node] = []
        self._number_nodes()
        if type_set is None:
            max_type = max(self.types_in_use(), default=0)
            type_set = TypeSet(str(j) for j in range(max_type + 1))
        self.type_set = type_set
        self.type_set._attach(self)

    def _number_nodes(self) -> None:
        leaves = []
        internal = []
        stack = [self.root]
        while stack:
            node = stack.pop()
            if node.is_leaf:
                leaves.append(node)
            else:
                internal.append(node)
                stack.extend(reversed(node.children))
        self.nodes = leaves + internal
        for nr, node in enumerate(self.nodes):
            node.nr = nr

    def __repr__(self) -> str:
        return (
            f"MultiTypeTree(leaves={self.num_leaves}, "
            f"root_height={self.root.height}, "
            f"migrations={self.num_migrations})"
        )

    @property
    def leaves(self) -> List[Node]:
        return [node for node in self.nodes if node.is_leaf]

    @property
    def internal_nodes(self) -> List[Node]:
        return [node for node in self.nodes if not node.is_leaf]

    @property
    def num_leaves(self) -> int:
        return sum(1 for node in self.nodes if node.is_leaf)

    @property
    def num_migrations(self) -> int:
        return sum(len(node.events) for node in self.nodes)

    def node(self, nr: int) -> Node:
        return self.nodes[nr]

    def types_in_use(self) -> Set[int]:
        used = set()
        for node in self.nodes:
            used.add(node.type)
            for event in node.events:
                used.add(event.source)
                used.add(event.dest)
        return used

    def validate_nodes(self) -> None:
        """
        Check the topology and node heights.

        :raises ValidationError: If a node does not have zero or two
            children, if parent and child links disagree, if a node is not
            strictly below its parent, or if a node is unreachable from
            the root.
        """
        if self.root.parent is not None:
            raise ValidationError("the root node has a parent")
        seen = 0
        stack = [self.root]
        while stack:
            node = stack.pop()
            seen += 1
            if len(node.children) not in (0, 2):
                raise ValidationError(
                    f"node {node.nr} has {len(node.children)} children; "
                    "nodes must have zero or two"
                )
            for child in node.children:
                if child.parent is not node:
                    raise ValidationError(
                        f"node {child.nr} is a child of node {node.nr}, "
                        "but has a different parent"
                    )
                if not child.height < node.height:
                    raise ValidationError(
                        f"node {child.nr} (height {child.height}) must be "
                        f"below its parent {node.nr} (height {node.height})"
                    )
                stack.append(child)
            if seen > len(self.nodes):
                raise ValidationError("the tree contains a cycle")
        if seen != len(self.nodes):
            raise ValidationError(
                f"only {seen} of {len(self.nodes)} nodes are reachable "
                "from the root"
            )

    def validate(self) -> None:
        """
        Check the topology, the node heights and every branch's migration
        events.

        :raises ValidationError: If any invariant of a coloured tree does
            not hold.
        """
        self.validate_nodes()
        num_types = len(self.type_set)
        for node in self.nodes:
            if not (0 <= node.type < num_types):
                raise ValidationError(
                    f"node {node.nr} has type {node.type}, but there are "
                    f"only {num_types} types"
                )
            if node.parent is None:
                if node.events:
                    raise ValidationError("the root branch cannot have events")
                continue
            current = node.type
            last_time = node.height
            for event in node.events:
                if not (last_time < event.time < node.parent.height):
                    raise ValidationError(
                        f"migration event at time {event.time} on the branch "
                        f"above node {node.nr} is out of order or outside "
                        f"the branch ({node.height}, {node.parent.height})"
                    )
                if event.source != current:
                    raise ValidationError(
                        f"migration event at time {event.time} on the branch "
                        f"above node {node.nr} has source {event.source}, "
                        f"but the lineage has type {current}"
                    )
                if not (0 <= event.dest < num_types):
                    raise ValidationError(
                        f"migration event at time {event.time} has "
                        f"destination type {event.dest}, but there are "
                        f"only {num_types} types"
                    )
                current = event.dest
                last_time = event.time
            if current != node.parent.type:
                raise ValidationError(
                    f"the branch above node {node.nr} ends in type {current}, "
                    f"but its parent has type {node.parent.type}"
                )

    def is_valid(self) -> bool:
        try:
            self.validate()
        except ValidationError:
            return False
        return True

    # Type set listener interface.

    def _types_in_use(self) -> Set[int]:
        return self.types_in_use()

    def _type_added(self, index: int) -> None:
        pass

    def _type_removed(self, index: int) -> None:
        def remap(j):
            return j - 1 if j > index else j

        for node in self.nodes:
            node.type = remap(node.type)
            node.events = [
                MigrationEvent(
                    time=event.time,
                    source=remap(event.source),
                    dest=remap(event.dest),
                )
                for event in node.events
            ]

    # Editing.

    def begin_edit(self) -> TreeEdit:
        """
        Start recording changes to the tree. Only one edit may be active
        at a time.
        """
        if self._edit is not None and not self._edit.closed:
            raise ValidationError("an edit is already in progress")
        self._edit = TreeEdit(self)
        return self._edit

    def _touch(self, *nodes: Node) -> None:
        if self._edit is not None:
            self._edit.touch(*nodes)

    def disconnect_branch(self, node: Node) -> None:
        """
        Detach ``node`` and its parent from the tree. The sister of
        ``node`` takes the parent's place, and inherits the migration
        events on the parent's branch. The parent stays attached to
        ``node`` but has no parent, no other child and no events.
        The parent of ``node`` must not be the root.
        """
        parent = node.parent
        if parent is None or parent.parent is None:
            raise ValidationError("cannot disconnect a branch below the root")
        sister = node.sibling
        grandparent = parent.parent
        self._touch(parent, sister, grandparent)
        sister.events = sister.events + parent.events
        grandparent.children = [
            sister if child is parent else child for child in grandparent.children
        ]
        sister.parent = grandparent
        parent.children = [node]
        parent.parent = None
        parent.events = []

    def connect_branch(self, node: Node, dest: Node, time: float) -> None:
        """
        Attach the detached parent of ``node`` to the branch above
        ``dest``, at the given time. The parent takes the type of the
        destination branch at that time, and the destination events above
        that time move to the parent's branch. The migration history of
        the branch above ``node`` is left unchanged.
        """
        parent = node.parent
        grandparent = dest.parent
        if grandparent is None:
            raise ValidationError("use connect_branch_to_root above the root")
        if not (dest.height < time < grandparent.height):
            raise ValidationError(
                f"time {time} is outside the branch above node {dest.nr}"
            )
        self._touch(parent, dest, grandparent)
        parent.height = time
        parent.type = dest.type_at(time)
        parent.events = [event for event in dest.events if event.time > time]
        dest.events = [event for event in dest.events if event.time < time]
        grandparent.children = [
            parent if child is dest else child for child in grandparent.children
        ]
        parent.parent = grandparent
        parent.children = [node, dest]
        dest.parent = parent

    def disconnect_branch_from_root(self, node: Node) -> None:
        """
        Detach ``node`` and its parent, which must be the root. The sister
        of ``node`` becomes the new root and loses the migration events on
        its branch.
        """
        parent = node.parent
        if parent is None or parent.parent is not None:
            raise ValidationError("the parent of node must be the root")
        sister = node.sibling
        self._touch(parent, sister)
        sister.parent = None
        sister.events = []
        parent.children = [node]
        self.root = sister

    def connect_branch_to_root(self, node: Node, old_root: Node, time: float):
        """
        Attach the detached parent of ``node`` above the current root, at
        the given time, making it the new root. The branches below the new
        root have no migration events and must be retyped by the caller.
        """
        parent = node.parent
        if old_root is not self.root:
            raise ValidationError("old_root must be the root of the tree")
        if not time > old_root.height:
            raise ValidationError("the new root must be above the old root")
        self._touch(parent, old_root)
        parent.height = time
        parent.children = [node, old_root]
        parent.parent = None
        parent.events = []
        old_root.parent = parent
        old_root.events = []
        self.root = parent

    # Import and export.

    @classmethod
    def fromdict(
        cls, data: MutableMapping[str, Any], *, type_set: Optional[TypeSet] = None
    ) -> MultiTypeTree:
        """
        Return a tree from a nested data dictionary.

        Each node is a dictionary with the fields ``height``, ``type``, and
        optionally ``label``, ``children`` (a list of two node
        dictionaries) and ``migrations``. The ``migrations`` of a node are
        the events on the branch above it, each a dictionary with the
        fields ``time``, ``source`` and ``dest``.
        Types are given as names or as integer indices. If no type set is
        given, a new one is created: names are added in the order in which
        they are first encountered, and integer indices require names
        ``"0"``, ``"1"``, and so on.

        :param dict data: The data dictionary for the root node.
        :param TypeSet type_set: The type set the types refer to.
        :rtype: MultiTypeTree
        """
        if not isinstance(data, MutableMapping):
            raise TypeError("data is not a dictionary")

        # Don't modify the input data dict.
        data = copy.deepcopy(data)
        if type_set is None:
            type_set = TypeSet()
            resolve = _auto_resolver(type_set)
        else:
            resolve = type_set.resolve

        def make_node(node_data, scope):
            check_allowed(
                node_data, ["height", "type", "label", "children", "migrations"], scope
            )
            node = Node(
                height=pop_item(
                    node_data, "height", required_type=(int, float), scope=scope
                ),
                type=resolve(
                    pop_item(node_data, "type", required_type=(int, str), scope=scope)
                ),
                label=pop_item(
                    node_data, "label", required_type=str, default=None, scope=scope
                ),
            )
            for j, event_data in enumerate(
                pop_list(
                    node_data,
                    "migrations",
                    default=[],
                    required_type=MutableMapping,
                    scope=scope,
                )
            ):
                event_scope = f"{scope}: migrations[{j}]"
                check_allowed(event_data, ["time", "source", "dest"], event_scope)
                node.events.append(
                    MigrationEvent(
                        time=pop_item(
                            event_data,
                            "time",
                            required_type=(int, float),
                            scope=event_scope,
                        ),
                        source=resolve(
                            pop_item(
                                event_data,
                                "source",
                                required_type=(int, str),
                                scope=event_scope,
                            )
                        ),
                        dest=resolve(
                            pop_item(
                                event_data,
                                "dest",
                                required_type=(int, str),
                                scope=event_scope,
                            )
                        ),
                    )
                )
            children = pop_list(
                node_data,
                "children",
                default=[],
                required_type=MutableMapping,
                scope=scope,
            )
            return node, children

        # Build iteratively, so deep trees don't hit the recursion limit.
        root, root_children = make_node(data, "root")
        stack = [(root, root_children, "root")]
        while stack:
            parent, children, scope = stack.pop()
            for j, child_data in enumerate(children):
                child_scope = f"{scope}.children[{j}]"
                child, grandchildren = make_node(child_data, child_scope)
                child.parent = parent
                parent.children.append(child)
                stack.append((child, grandchildren, child_scope))

        tree = cls(root, type_set=type_set)
        tree.validate()
        return tree

    def asdict(self) -> MutableMapping[str, Any]:
        """
        Return a nested data dictionary for the tree, suitable for
        :meth:`fromdict`. Types are given by name.
        """
        names = self.type_set.names

        def node_dict(node):
            data: MutableMapping[str, Any] = dict(
                height=node.height, type=names[node.type]
            )
            if node.label is not None:
                data["label"] = node.label
            if node.events:
                data["migrations"] = [
                    dict(
                        time=event.time,
                        source=names[event.source],
                        dest=names[event.dest],
                    )
                    for event in node.events
                ]
            return data

        root_data = node_dict(self.root)
        stack = [(self.root, root_data)]
        while stack:
            node, data = stack.pop()
            if node.children:
                data["children"] = []
                for child in node.children:
                    child_data = node_dict(child)
                    data["children"].append(child_data)
                    stack.append((child, child_data))
        return root_data


def _auto_resolver(type_set: TypeSet):
    def resolve(value):
        if isinstance(value, str):
            return type_set.add(value)
        if isinstance(value, bool) or value < 0:
            raise ValidationError(f"invalid type index {value}")
        for j in range(len(type_set), value + 1):
            type_set.add(str(j))
        return value

    return resolve
