"""
_cpu_kernels.py
===============
CPU-accelerated tree kernels using Numba.

This module contains ONLY numba-accelerated code and should not import other
project modules to avoid import-time complications.

Exported Functions
------------------
_ssd_njit : njit function
    Sum of squared parent-child height differences over a node list.

Notes
-----
- cache=True persists compiled binary to disk for faster subsequent runs
- Kernels accept only numpy arrays; node lists and name resolution are
  prepared by the Python wrapper in FlexibleTree.
"""

from numba import njit


@njit(cache=True)
def _ssd_njit(nodes, parent, height):
    """
    Sum over *nodes* of ``(height[parent[i]] - height[i]) ** 2``.

    Parameters
    ----------
    nodes  : int64[:]
        Node IDs whose parent edge is counted.  Nodes with parent -1 are
        skipped, so passing a whole subtree including its top is safe only
        when the top is the tree root.
    parent : int32[:]
        Parent ID of every node; -1 for the root.
    height : float64[:]
        Height of every node.

    Returns
    -------
    float
        The sum of squared distances.
    """
    total = 0.0
    for k in range(nodes.shape[0]):
        i = nodes[k]
        p = parent[i]
        if p < 0:
            continue
        d = height[p] - height[i]
        total += d * d
    return total
