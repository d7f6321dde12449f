"""
Proposal operators for Markov chain Monte Carlo over coloured trees.
"""
from __future__ import annotations
import logging
import math
from typing import List, Optional, Sequence

import attr
import numpy as np

from . import retype
from .exceptions import NoValidPathError, ValidationError
from .migration import MigrationModel
from .parameters import RealParameter
from .tree import MultiTypeTree, Node, TreeEdit
from .validators import int_or_float, positive, _DummyAttribute

logger = logging.getLogger(__name__)


@attr.s(auto_attribs=True, kw_only=True, slots=True, frozen=True)
class Proposal:
    """
    The result of :meth:`TreeOperator.propose`.

    :ivar float log_hastings_ratio: The log Hastings ratio of the proposal,
        or ``-inf`` if the proposal is infeasible.
    :ivar TreeEdit edit: The record of the changes made to the tree.
    """

    log_hastings_ratio: float
    edit: TreeEdit

    @property
    def feasible(self) -> bool:
        return self.log_hastings_ratio > -math.inf


class TreeOperator:
    """
    Base class for operators that modify a coloured tree in place.

    Subclasses implement :meth:`_propose`, which modifies the tree (and
    records every node it changes in the edit) and returns the log
    Hastings ratio. Ordinary infeasibility is signalled by returning
    ``-inf``; the changes are then reverted before :meth:`propose`
    returns.

    :param MultiTypeTree tree: The tree to operate on.
    :param MigrationModel model: The migration model.
    :param float weight: The relative probability of choosing this
        operator.
    :param numpy.random.Generator rng: The random number generator.
    """

    def __init__(
        self,
        tree: MultiTypeTree,
        model: MigrationModel,
        *,
        weight: float = 1.0,
        rng: Optional[np.random.Generator] = None,
    ):
        int_or_float(None, _DummyAttribute("weight"), weight)
        positive(None, _DummyAttribute("weight"), weight)
        self.tree = tree
        self.model = model
        self.weight = float(weight)
        self.rng = np.random.default_rng() if rng is None else rng
        self.num_accepted = 0
        self.num_rejected = 0
        self._edit: Optional[TreeEdit] = None

    def __repr__(self) -> str:
        return f"{type(self).__name__}(weight={self.weight})"

    @property
    def num_proposed(self) -> int:
        return self.num_accepted + self.num_rejected

    @property
    def acceptance_rate(self) -> float:
        if self.num_proposed == 0:
            return math.nan
        return self.num_accepted / self.num_proposed

    def _propose(self, edit: TreeEdit) -> float:
        raise NotImplementedError

    def propose(self) -> Proposal:
        """
        Modify the tree and return the proposal. The caller must follow
        this with a call to :meth:`accept` or :meth:`revert`.
        """
        if self._edit is not None:
            raise ValidationError(
                "the previous proposal has been neither accepted nor reverted"
            )
        edit = self.tree.begin_edit()
        self._edit = edit
        try:
            log_hr = self._propose(edit)
        except NoValidPathError as err:
            logger.debug("%s: infeasible proposal: %s", self, err)
            log_hr = -math.inf
        if log_hr == -math.inf:
            edit.revert()
        return Proposal(log_hastings_ratio=log_hr, edit=edit)

    def accept(self) -> None:
        """
        Keep the changes made by the last proposal.
        """
        if self._edit is None:
            raise ValidationError("no proposal to accept")
        if self._edit.closed:
            raise ValidationError("cannot accept an infeasible proposal")
        self._edit.close()
        self._edit = None
        self.num_accepted += 1

    def revert(self) -> None:
        """
        Undo the changes made by the last proposal.
        """
        if self._edit is None:
            raise ValidationError("no proposal to revert")
        if not self._edit.closed:
            self._edit.revert()
        self._edit = None
        self.num_rejected += 1


class TypedWilsonBalding(TreeOperator):
    """
    A Wilson-Balding subtree prune-and-regraft move for coloured trees.

    A random subtree is detached together with its parent node and
    reattached on a randomly chosen branch, at a uniformly chosen time on
    that branch, or above the root at an exponentially distributed
    distance scaled by ``alpha``. The migration history of the moved branch
    is resampled by uniformisation; moves that create or remove the root
    also resample the root type and both root branches.

    :param float alpha: The ratio of the mean distance above the root at
        which a subtree is reattached, to the height of the root.
    """

    def __init__(self, tree, model, *, alpha: float, weight=1.0, rng=None):
        super().__init__(tree, model, weight=weight, rng=rng)
        if not alpha > 0:
            raise ValidationError("alpha must be greater than zero")
        if tree.num_leaves < 3:
            raise ValidationError(
                "TypedWilsonBalding requires a tree with at least three leaves"
            )
        self.alpha = float(alpha)

    @staticmethod
    def _invalid_source(node: Node) -> bool:
        if node.parent is None:
            return True
        if node.parent.parent is None:
            sister = node.sibling
            if sister.is_leaf or node.height >= sister.height:
                return True
        return False

    @staticmethod
    def _invalid_dest(src: Node, dest: Node) -> bool:
        if dest is src or dest is src.parent:
            return True
        if dest.parent is not None:
            if dest.parent is src.parent:
                return True
            if dest.parent.height <= src.height:
                return True
        return False

    def _sources(self) -> List[Node]:
        return [node for node in self.tree.nodes if not self._invalid_source(node)]

    def _destinations(self, src: Node) -> List[Node]:
        return [node for node in self.tree.nodes if not self._invalid_dest(src, node)]

    def _propose(self, edit: TreeEdit) -> float:
        tree = self.tree
        rng = self.rng
        Q = self.model.q_matrix()

        sources = self._sources()
        if not sources:
            return -math.inf
        src = sources[rng.integers(len(sources))]
        dests = self._destinations(src)
        if not dests:
            return -math.inf
        dest = dests[rng.integers(len(dests))]
        log_choice = math.log(len(sources)) + math.log(len(dests))

        src_parent = src.parent
        sister = src.sibling
        t_src = src.height
        t_sister = sister.height
        old_time = src_parent.height
        edit.touch(src)

        if dest.parent is None:
            # Reattach above the root.
            grandparent = src_parent.parent
            log_hr = retype.branch_log_prob(Q, src)
            t_dest = dest.height
            new_time = t_dest + rng.exponential(self.alpha * t_dest)
            t_grandparent = grandparent.height
            tree.disconnect_branch(src)
            tree.connect_branch_to_root(src, dest, new_time)
            log_hr -= retype.retype_root_branches(Q, src_parent, rng)
            log_hr += (
                math.log(self.alpha * t_dest)
                + (new_time / t_dest - 1) / self.alpha
                - math.log(t_grandparent - max(t_src, t_sister))
            )
        elif src_parent.parent is None:
            # Remove the root.
            log_hr = retype.root_branches_log_prob(Q, src_parent)
            tree.disconnect_branch_from_root(src)
            t_dest = dest.height
            t_dest_parent = dest.parent.height
            low = max(t_src, t_dest)
            new_time = rng.uniform(low, t_dest_parent)
            if not low < new_time < t_dest_parent:
                return -math.inf
            tree.connect_branch(src, dest, new_time)
            log_hr -= retype.retype_branch(Q, src, rng)
            log_hr += (
                math.log(t_dest_parent - low)
                - math.log(self.alpha * t_sister)
                - (old_time / t_sister - 1) / self.alpha
            )
        else:
            grandparent = src_parent.parent
            log_hr = retype.branch_log_prob(Q, src)
            t_grandparent = grandparent.height
            tree.disconnect_branch(src)
            t_dest = dest.height
            t_dest_parent = dest.parent.height
            low = max(t_src, t_dest)
            new_time = rng.uniform(low, t_dest_parent)
            if not low < new_time < t_dest_parent:
                return -math.inf
            tree.connect_branch(src, dest, new_time)
            log_hr -= retype.retype_branch(Q, src, rng)
            log_hr += math.log(t_dest_parent - low) - math.log(
                t_grandparent - max(t_src, t_sister)
            )

        # The reverse move must put src back next to its old sister.
        if self._invalid_source(src) or self._invalid_dest(src, sister):
            return -math.inf
        log_hr += log_choice - (
            math.log(len(self._sources())) + math.log(len(self._destinations(src)))
        )
        logger.debug(
            "TypedWilsonBalding: moved node %d from %g to %g above node %d, "
            "log HR %g",
            src.nr,
            old_time,
            new_time,
            dest.nr,
            log_hr,
        )
        return log_hr


class MultiTypeTreeScale(TreeOperator):
    """
    Scales the heights of all internal nodes, together with the migration
    events on the tree, by a common random factor.

    The factor is ``f = u * s + (1 - u) / s`` for ``u`` uniform on
    ``[0, 1)`` and scale factor ``s``. Events on internal branches are
    multiplied by ``f``. Events on leaf branches keep their relative
    position between the leaf and its parent, unless
    ``use_old_tree_scaler`` is set, in which case they are also multiplied
    by ``f``.

    :param float scale_factor: The scale factor ``s``, in (0, 1).
    :param bool use_old_tree_scaler: Multiply leaf branch events by ``f``
        instead of rescaling them within their branch.
    :param parameters: Parameters to multiply by ``f``.
    :type parameters: list[RealParameter]
    :param parameters_inverse: Parameters to divide by ``f``.
    :type parameters_inverse: list[RealParameter]
    """

    def __init__(
        self,
        tree,
        model,
        *,
        scale_factor: float,
        use_old_tree_scaler: bool = False,
        parameters: Sequence[RealParameter] = (),
        parameters_inverse: Sequence[RealParameter] = (),
        weight=1.0,
        rng=None,
    ):
        super().__init__(tree, model, weight=weight, rng=rng)
        if not 0 < scale_factor < 1:
            raise ValidationError("scale_factor must be in the interval (0, 1)")
        self.scale_factor = float(scale_factor)
        self.use_old_tree_scaler = use_old_tree_scaler
        self.parameters = list(parameters)
        self.parameters_inverse = list(parameters_inverse)

    def _propose(self, edit: TreeEdit) -> float:
        s = self.scale_factor
        u = self.rng.random()
        f = u * s + (1 - u) / s
        log_f = math.log(f)
        log_hr = -2 * log_f

        tree = self.tree
        edit.touch(*tree.nodes)

        for node in tree.internal_nodes:
            node.height *= f
            log_hr += log_f

        for node in tree.nodes:
            if node.parent is None or not node.events:
                continue
            if not node.is_leaf or self.use_old_tree_scaler:
                node.events = [
                    attr.evolve(event, time=event.time * f) for event in node.events
                ]
                log_hr += len(node.events) * log_f
                continue
            # Leaf branches: parent heights are already scaled.
            new_parent_height = node.parent.height
            old_parent_height = new_parent_height / f
            old_length = old_parent_height - node.height
            new_length = new_parent_height - node.height
            if not new_length > 0:
                return -math.inf
            ratio = new_length / old_length
            node.events = [
                attr.evolve(
                    event,
                    time=new_parent_height - (old_parent_height - event.time) * ratio,
                )
                for event in node.events
            ]
            log_hr += len(node.events) * math.log(ratio)

        for leaf in tree.leaves:
            if not leaf.parent.height > leaf.height:
                return -math.inf
            if leaf.events and not leaf.events[0].time > leaf.height:
                return -math.inf

        for parameter in self.parameters:
            edit.record_parameter(parameter)
            parameter.set_values([x * f for x in parameter.values])
            log_hr += parameter.dimension * log_f
        for parameter in self.parameters_inverse:
            edit.record_parameter(parameter)
            parameter.set_values([x / f for x in parameter.values])
            log_hr -= parameter.dimension * log_f
        for parameter in self.parameters + self.parameters_inverse:
            if not parameter.within_bounds():
                return -math.inf

        if not tree.is_valid():
            return -math.inf
        logger.debug("MultiTypeTreeScale: f = %g, log HR %g", f, log_hr)
        return log_hr
