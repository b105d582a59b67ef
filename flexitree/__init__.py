"""
flexitree
=========

Re-rootable phylogenetic trees.

A rooted binary tree with branch lengths can have its root moved onto any
edge, at any split of that edge, in place: topology, branch lengths and
node heights are rewritten consistently without rebuilding the tree.  The
sum of squared parent-child height differences (SSD) scores a rooting, and
an exhaustive midpoint search picks the rooting with the smallest score.

Main Classes
------------
FlexibleTree : Re-rootable tree with NEWICK output and SSD search
Tree : Node table with NEWICK parsing
InvalidTopology : Raised when a strictly bifurcating tree is required

Context Managers
----------------
quiet : Suppress logging during operations
suppress_logger : Suppress specific logger
use_backend : Force a specific SSD backend

Utilities
---------
format_newick : Format NEWICK strings consistently
get_available_backends : Query SSD backends

Examples
--------
>>> from flexitree import FlexibleTree
>>> tree = FlexibleTree('((((A:1.0,B:1.0):1.0,C:2.0):2.0,D:3.0):3.0,E:5.0);')
>>> tree.get_sum_of_squared_distance()
54.0
>>> tree.change_root_to('A', 0.5)
>>> tree.to_newick()
'(A:0.5,(B:1.0,(C:2.0,(D:3.0,E:8.0):2.0):1.0):0.5):0.0;'
"""

__version__ = "0.1.0"
__license__ = "MIT"

# Main classes
from ._tree import Tree, InvalidTopology
from ._flexible import FlexibleTree
from ._lengths import BranchLengthCache

# Context managers (user-facing utilities)
from ._context import (
    suppress_logger,
    quiet,
    use_backend,
)

# Utilities
from ._utils import format_newick
from ._backend import get_available_backends

# Public API
__all__ = [
    # Main classes
    "FlexibleTree",
    "Tree",
    "InvalidTopology",
    "BranchLengthCache",
    # Context managers
    "suppress_logger",
    "quiet",
    "use_backend",
    # Utilities
    "format_newick",
    "get_available_backends",
    # Version info
    "__version__",
]
