"""
_logging.py
===========
Logging functions for flexitree.

All functions in this module have NO side effects except logging. They take
computed data as parameters and format/emit log messages.

This separation ensures:
- Logging can be easily disabled/mocked in tests
- Computation is separate from presentation
"""

import logging
from typing import List


logger = logging.getLogger(__name__)


# ============================================================================ #
# Parsing
# ============================================================================ #


def log_multifurcations(multifurcating: List[int], resolved: bool) -> None:
    """
    Emit a consolidated warning for internal nodes with more than two
    children found while parsing.

    Parameters
    ----------
    multifurcating : List[int]
        Child counts of every multifurcating node, in post-order.
    resolved : bool
        Whether the parser split them into zero-length bifurcations.
    """
    if not multifurcating:
        return

    n_nodes = len(multifurcating)
    widest = max(multifurcating)
    if resolved:
        logger.warning(
            "Input tree is not strictly bifurcating: %d multifurcating node(s) "
            "(widest has %d children) were resolved into zero-length "
            "bifurcations. The order of splitting is arbitrary.",
            n_nodes,
            widest,
        )
    else:
        logger.warning(
            "Input tree is not strictly bifurcating: %d multifurcating node(s) "
            "(widest has %d children). Rerooting will be refused for this tree.",
            n_nodes,
            widest,
        )


def log_tree_loaded(n_nodes: int, n_leaves: int) -> None:
    """Log the shape of a freshly parsed tree at DEBUG level."""
    logger.debug("Parsed tree: %d nodes, %d leaves", n_nodes, n_leaves)


# ============================================================================ #
# Rerooting
# ============================================================================ #


def log_reroot(target: int, parent: int, path_length: int, proportion: float) -> None:
    """
    Trace a reroot at DEBUG level.

    Parameters
    ----------
    target : int
        Node whose parent edge receives the new root.
    parent : int
        The target's parent before the reroot.
    path_length : int
        Number of nodes between ``parent`` and the old root, inclusive.
    proportion : float
        Fraction of the edge assigned to the target side.
    """
    logger.debug(
        "Rerooting on edge %d-%d at proportion %.6g (%d link(s) reversed)",
        target,
        parent,
        proportion,
        path_length - 1,
    )


def log_reroot_noop(target: int) -> None:
    logger.debug("Node %d is already adjacent to the root; nothing to do", target)


def log_proportion_out_of_range(proportion: float) -> None:
    """Warn that a split proportion will produce a negative branch length."""
    logger.warning(
        "Split proportion %.6g is outside [0, 1]; one side of the new root "
        "will receive a negative branch length.",
        proportion,
    )


# ============================================================================ #
# SSD search
# ============================================================================ #


def log_ssd_candidate(node, ssd: float, newick: str) -> None:
    """
    Log one evaluated rooting at DEBUG level.

    Parameters
    ----------
    node : int or None
        Candidate node, or None for the starting configuration.
    ssd : float
        Sum of squared distances of the configuration.
    newick : str
        Serialized configuration.
    """
    if node is None:
        logger.debug("ssd = %r, tree = %s", ssd, newick)
    else:
        logger.debug("node %d: ssd = %r, tree = %s", node, ssd, newick)


def log_min_ssd(min_ssd: float, n_candidates: int, best_node) -> None:
    """
    Report the outcome of a minimum-SSD search at INFO level.

    Parameters
    ----------
    min_ssd : float
        Smallest sum of squared distances seen.
    n_candidates : int
        Number of rerootings evaluated (starting configuration excluded).
    best_node : int or None
        Candidate that reached the minimum; None if the starting
        configuration was never improved upon.
    """
    if best_node is None:
        logger.info(
            "min sum of squared distances = %r (starting rooting; %d candidates tried)",
            min_ssd,
            n_candidates,
        )
    else:
        logger.info(
            "min sum of squared distances = %r (root above node %d; "
            "%d candidates tried)",
            min_ssd,
            best_node,
            n_candidates,
        )


# ============================================================================ #
# Backend Logging (called at module import time)
# ============================================================================ #


def log_backend_availability(backends_available: List[str]) -> None:
    """
    Log which backends can evaluate sums of squared distances.

    Parameters
    ----------
    backends_available : List[str]
        Backend names in preference order (e.g., ['python', 'cpu']).
    """
    import numba

    logger.debug(f"Available backends: {', '.join(backends_available)}")
    logger.debug(f"  cpu: LLVM-compiled kernel (numba {numba.__version__})")
    logger.debug("  python: unoptimized reference implementation")
    logger.debug(f"Default backend='best' will use: {backends_available[-1]}")


def debug_enabled() -> bool:
    """True if DEBUG records from this module would be emitted."""
    return logger.isEnabledFor(logging.DEBUG)
