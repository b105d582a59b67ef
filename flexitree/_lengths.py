"""
_lengths.py
===========
Dense per-node branch-length storage used while a tree is being rerooted.

The cache is a float64 array indexed by node ID holding the length of the
edge from each node to its parent.  The root's slot stays 0.0, meaning
"no parent edge".  It is filled from the tree's live lengths on the first
read (or on an explicit ``rebuild()``) and is authoritative from then on:
writes through ``set()`` do not touch the tree until the owner turns the
cached lengths back into heights.
"""

import numpy as np


class BranchLengthCache:
    """
    Length-to-parent of every node of *tree*, indexed by node ID.

    Parameters
    ----------
    tree : Tree
        The tree whose edges are cached.  Only ``n_nodes``, ``root``,
        ``preorder`` and ``length_to_parent`` are used.
    """

    def __init__(self, tree) -> None:
        self._tree = tree
        self._lengths = None

    @property
    def is_built(self) -> bool:
        """True if the cache holds one entry for every current node."""
        return self._lengths is not None and self._lengths.shape[0] == self._tree.n_nodes

    @property
    def lengths(self) -> np.ndarray:
        """The full cache array (built on first access)."""
        if not self.is_built:
            self.rebuild()
        return self._lengths

    def rebuild(self) -> None:
        """
        Refill the cache from the tree's live lengths.

        Visits every descendant of the root once; slots of nodes that are not
        reachable from the root, and the root's own slot, are 0.0.
        """
        tree = self._tree
        lengths = np.zeros(tree.n_nodes, dtype=np.float64)
        for node in tree.preorder():
            if node != tree.root:
                lengths[node] = tree.length_to_parent(node)
        self._lengths = lengths

    def invalidate(self) -> None:
        """Drop the cached values; the next read rebuilds them."""
        self._lengths = None

    def get(self, node: int) -> float:
        return float(self.lengths[node])

    def set(self, node: int, value: float) -> None:
        """
        Overwrite the cached length above *node*.

        Raises
        ------
        RuntimeError   if the cache has not been built yet.
        """
        if not self.is_built:
            raise RuntimeError(
                "Branch-length cache is not built; read it or call rebuild() first."
            )
        self._lengths[node] = value
