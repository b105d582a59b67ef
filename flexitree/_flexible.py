"""
_flexible.py
============
A tree that can be re-rooted in place.

Public API
----------
  FlexibleTree(newick_string, resolve_multifurcations=False, edit_listener=None)
  FlexibleTree.from_tree(tree)

  .change_root_to(node, proportion)
  .to_newick(node=None, topology_only=False, show_internal_labels=False)
  .get_sum_of_squared_distance(backend='best')
  .sum_of_squared_distances(node, backend='best')
  .get_min_ssd_tree(node=None, restore_best=True, backend='best')

  .get_length(node) / .set_length(node, value)
  .get_all_branch_lengths() / .set_all_branch_lengths()
  .max_node_height(node=None)
  .has_started_editing

Rerooting
---------
``change_root_to(target, p)`` puts the root on the edge above *target*,
giving ``p`` of that edge to *target* and ``1 - p`` to its old parent.  The
root object itself is reused: the path from the old parent up to the old
root is reversed, the old root's remaining child is telescoped onto the node
below it, and the freed root adopts *target* and the old parent.  All length
bookkeeping happens in a BranchLengthCache; heights are recomputed from it
once the topology is final, and live lengths follow from the heights.

Logging
-------
  logging.getLogger('flexitree')
      DEBUG level:   reroot traces, every SSD candidate with its NEWICK.
      INFO level:    result of a minimum-SSD search.
      WARNING level: multifurcating input, split proportions outside [0, 1].
"""

import logging
from typing import Optional

import numpy as np

from flexitree._backend import get_available_backends, resolve_backend
from flexitree._context import edit_scope, get_backend_override
from flexitree._cpu_kernels import _ssd_njit
from flexitree._lengths import BranchLengthCache
from flexitree._logging import (
    debug_enabled,
    log_backend_availability,
    log_min_ssd,
    log_proportion_out_of_range,
    log_reroot,
    log_reroot_noop,
    log_ssd_candidate,
)
from flexitree._tree import InvalidTopology, Tree
from flexitree._utils import format_length


logger = logging.getLogger(__name__)

log_backend_availability(get_available_backends())


class FlexibleTree(Tree):
    """
    A rooted binary tree that supports re-rooting on any edge, NEWICK
    output and the sum-of-squared-distances rooting criterion.

    Parameters
    ----------
    newick_string : str
        NEWICK tree (trailing ';' optional).
    resolve_multifurcations : bool
        Forwarded to ``Tree``.
    edit_listener : callable, optional
        Called as ``edit_listener(tree, True)`` before a reroot starts
        mutating the tree and ``edit_listener(tree, False)`` once it is
        done.  Copies made by this class do not inherit the listener.
    """

    def __init__(
        self,
        newick_string: str,
        resolve_multifurcations: bool = False,
        edit_listener=None,
    ) -> None:
        super().__init__(newick_string, resolve_multifurcations)
        self._edit_listener = edit_listener

    def _post_init(self) -> None:
        super()._post_init()
        self._lengths = BranchLengthCache(self)
        self._editing = False
        self._edit_listener = None

    @property
    def has_started_editing(self) -> bool:
        """True only while ``change_root_to`` is mutating this tree."""
        return self._editing

    # ================================================================== #
    # Branch lengths                                                       #
    # ================================================================== #

    def get_length(self, node) -> float:
        """Cached length above *node*; builds the cache on first use."""
        return self._lengths.get(self.resolve_node(node))

    def set_length(self, node, branch_length: float) -> None:
        """Overwrite the cached length above *node* (cache must be built)."""
        self._lengths.set(self.resolve_node(node), branch_length)

    def set_all_branch_lengths(self) -> None:
        """Rebuild the branch-length cache from the current heights."""
        self._lengths.rebuild()

    def get_all_branch_lengths(self) -> np.ndarray:
        """
        All cached lengths, indexed by node ID.  A 0.0 entry belongs either
        to the root or to a genuinely zero-length edge.
        """
        return self._lengths.lengths

    def max_node_height(self, node=None) -> float:
        """Maximum height within the subtree at *node* (default: root)."""
        return float(np.max(self.height[self.preorder(node)]))

    # ================================================================== #
    # Rerooting                                                            #
    # ================================================================== #

    def change_root_to(self, node, proportion: float) -> None:
        """
        Re-root the tree on the branch above *node*.

        ``len(node, new_root) = len(node, parent) * proportion``

        Parameters
        ----------
        node : int | str
            Node ID or label.  The new root is placed on the edge between it
            and its parent.
        proportion : float
            Share of that edge given to *node*'s side, normally in [0, 1].
            Values outside the range are accepted and yield a negative
            length on one side.

        Raises
        ------
        InvalidTopology
            If any internal node of the tree does not have exactly two
            children.  Nothing is modified in that case.

        Notes
        -----
        A node without a parent, or whose parent is already the root, is
        left alone: the root already sits on that edge.
        """
        if not self.is_binary():
            raise InvalidTopology(
                "change_root_to is only available for binary trees; found "
                f"internal node(s) {self._non_binary_nodes()} without exactly "
                "two children."
            )

        target = self.resolve_node(node)
        parent = int(self.parent[target])
        if parent == -1 or parent == self.root:
            log_reroot_noop(target)
            return

        if not 0.0 <= proportion <= 1.0:
            log_proportion_out_of_range(proportion)

        with edit_scope(self, self._edit_listener):
            self._lengths.rebuild()

            path = self._path_to_root(parent)
            log_reroot(target, parent, len(path), proportion)
            self._reverse_path(path)

            # The root is now free so use it as the root again.
            self.remove_child(parent, target)
            self.add_child(self.root, target)
            self.add_child(self.root, parent)

            edge = self._lengths.get(target)
            self._lengths.set(target, edge * proportion)
            self._lengths.set(parent, edge * (1.0 - proportion))

            self.set_heights_from_lengths(self._lengths.lengths)

    def _path_to_root(self, node: int) -> list:
        """**Private.**  [node, parent(node), …, root]."""
        path = [node]
        p = int(self.parent[node])
        while p != -1:
            path.append(p)
            p = int(self.parent[p])
        return path

    def _reverse_path(self, path: list) -> None:
        """
        **Private.**  Turn the parent chain *path* (from the target's parent
        up to the root) upside down, carrying each edge length along.

        The old root is handled first: it drops the path child below it and
        hands every other child to that node, adding the dropped edge to
        each of them since the old root disappears as an internal node.
        Then, walking back down, each link (node above, child below) flips
        so that the node becomes a child of the one that used to be below
        it, inheriting the length of the edge they shared.

        With a binary root exactly one child is handed over.  A wider root
        would hand over all of them; no replacement internal node is built
        for that case.
        """
        old_root = path[-1]
        below = path[-2]

        self.remove_child(old_root, below)
        for tmp in list(self.children[old_root]):
            self.remove_child(old_root, tmp)
            self.add_child(below, tmp)
            self._lengths.set(tmp, self._lengths.get(tmp) + self._lengths.get(below))

        for k in range(len(path) - 2, 0, -1):
            node = path[k]
            child = path[k - 1]
            self.remove_child(node, child)
            self.add_child(child, node)
            self._lengths.set(node, self._lengths.get(child))

    def _non_binary_nodes(self) -> list:
        """**Private.**  IDs of internal nodes without exactly two children."""
        return [i for i, ch in enumerate(self.children) if ch and len(ch) != 2]

    # ================================================================== #
    # NEWICK output                                                        #
    # ================================================================== #

    def to_newick(
        self,
        node=None,
        topology_only: bool = False,
        show_internal_labels: bool = False,
    ) -> str:
        """
        Serialize the tree, or the subtree below *node*, as NEWICK.

        Parameters
        ----------
        node : int | str, optional
            Subtree to write.  When omitted the whole tree is written and
            terminated with ';'.
        topology_only : bool
            If True, omit comments and branch lengths.
        show_internal_labels : bool
            If True, label internal nodes too; unlabelled nodes are written
            as their numeric ID.

        Returns
        -------
        str
            For a subtree: ``(child,child)`` with each child followed by its
            label (leaves, or all nodes if *show_internal_labels*), its
            metadata comment and ``:length``.  The node passed in gets
            neither a label nor a length, and no ';' is appended.

            For the whole tree: the root's subtree string followed by the
            root's own length, which is always the ``:0.0`` placeholder of a
            node without a parent edge, and ';'.

        Examples
        --------
        >>> tree = FlexibleTree('((A:1.0,B:1.0):1.0,C:2.0);')
        >>> tree.to_newick()
        '((A:1.0,B:1.0):1.0,C:2.0):0.0;'
        >>> tree.to_newick(tree.root, True, False)
        '((A,B),C)'
        """
        if node is None:
            body = self._newick_body(self.root, topology_only, show_internal_labels)
            if topology_only:
                return body + ";"
            return body + ":" + format_length(self.length_to_parent(self.root)) + ";"
        return self._newick_body(
            self.resolve_node(node), topology_only, show_internal_labels
        )

    def _newick_body(self, top: int, topology_only: bool, show_internal_labels: bool) -> str:
        """**Private.**  Post-order assembly of the subtree string at *top*."""
        parts = {}
        for node in self.postorder(top):
            kids = self.children[node]
            if not kids:
                parts[node] = ""
                continue
            pieces = []
            for child in kids:
                piece = parts.pop(child)
                if not self.children[child] or show_internal_labels:
                    name = self.names[child]
                    piece += name if name != "" else str(child)
                if not topology_only:
                    piece += self.metadata[child]
                    piece += ":" + format_length(self.length_to_parent(child))
                pieces.append(piece)
            parts[node] = "(" + ",".join(pieces) + ")"
        return parts[top]

    # ================================================================== #
    # Sum of squared distances                                             #
    # ================================================================== #

    def get_sum_of_squared_distance(self, backend: str = "best") -> float:
        """Sum of squared parent-child height differences over the tree."""
        return self.sum_of_squared_distances(self.root, backend)

    def sum_of_squared_distances(self, node, backend: str = "best") -> float:
        """
        Sum of ``(height[parent] - height[child]) ** 2`` over every
        parent-child pair in the subtree at *node*.

        Parameters
        ----------
        node : int | str
            Top of the subtree.
        backend : str
            'python', 'cpu' or 'best'.  A ``use_backend`` override takes
            precedence.

        Returns
        -------
        float
            Zero iff every parent-child height gap in the subtree is zero.
        """
        top = self.resolve_node(node)

        backend_override = get_backend_override()
        if backend_override is not None:
            backend = backend_override
        resolved_backend = resolve_backend(backend)

        if resolved_backend == "cpu":
            nodes = np.asarray(self.preorder(top)[1:], dtype=np.int64)
            return float(_ssd_njit(nodes, self.parent, self.height))

        ss = 0.0
        for parent in self.postorder(top):
            for child in self.children[parent]:
                d = float(self.height[parent] - self.height[child])
                ss += d * d
        return ss

    def get_min_ssd_tree(
        self, node=None, restore_best: bool = True, backend: str = "best"
    ) -> "FlexibleTree":
        """
        Search the rootings of the tree (or of the subtree at *node*) for the
        one with the smallest sum of squared distances.

        The pre-order node list of a working copy is taken once.  Walking
        that list, the copy is re-rooted at the midpoint of the edge above
        each node that is, at that moment, neither the root nor a child of
        the root.  Each reroot starts from wherever the previous one left
        the copy, so a node that began next to the root can become a
        candidate later on.  The receiver is never modified.

        Parameters
        ----------
        node : int | str, optional
            Restrict the search to the subtree at *node*.
        restore_best : bool
            If True (default), return a tree in the configuration that
            achieved the minimum; ties keep the earliest.  If False, return
            the working copy as the last candidate left it.
        backend : str
            Backend for the SSD evaluations.

        Raises
        ------
        InvalidTopology
            If the searched tree is not strictly bifurcating.
        """
        if node is None or self.resolve_node(node) == self.root:
            tree = self.copy()
        else:
            tree = self.subtree(node)

        if not tree.is_binary():
            raise InvalidTopology(
                "get_min_ssd_tree is only available for binary trees; found "
                f"internal node(s) {tree._non_binary_nodes()} without exactly "
                "two children."
            )

        min_ssd = tree.get_sum_of_squared_distance(backend)
        if debug_enabled():
            log_ssd_candidate(None, min_ssd, tree.to_newick())

        best: Optional[FlexibleTree] = tree.copy() if restore_best else None
        best_node = None

        candidates = tree.all_child_nodes()
        n_tried = 0

        for candidate in candidates:
            # Root adjacency is checked against the current rooting.
            if candidate == tree.root or tree.get_parent(candidate) == tree.root:
                continue
            n_tried += 1
            tree.change_root_to(candidate, 0.5)
            ssd = tree.get_sum_of_squared_distance(backend)
            if debug_enabled():
                log_ssd_candidate(candidate, ssd, tree.to_newick())
            if ssd < min_ssd:
                min_ssd = ssd
                best_node = candidate
                if restore_best:
                    best = tree.copy()

        log_min_ssd(min_ssd, n_tried, best_node)
        return best if restore_best else tree
