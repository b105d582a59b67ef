"""
_context.py
===========
Context managers for flexitree.

Provides context managers for temporarily changing state:
- Logging control (suppress/change levels)
- Backend selection (force specific backend)
- Edit scopes (mark a tree as mid-mutation for an external listener)

All context managers properly restore state on exit, even if exceptions occur.
"""

import logging
from contextlib import contextmanager
from typing import Optional


# Module-level state for backend override
_backend_override = None


# ============================================================================ #
# Logging Context Managers
# ============================================================================ #


@contextmanager
def suppress_logger(logger_name: str, level: int = logging.CRITICAL):
    """
    Temporarily change a logger's level.

    Parameters
    ----------
    logger_name : str
        Name of the logger to suppress (e.g., 'flexitree._tree')
    level : int, default logging.CRITICAL
        Temporary logging level.

    Examples
    --------
    >>> # Silence multifurcation warnings while loading trees
    >>> with suppress_logger('flexitree._logging'):
    ...     trees = [Tree(nwk) for nwk in newicks]

    Notes
    -----
    - Exception-safe: Logger level restored even if exception raised
    - Nesting-safe: Can nest multiple suppress_logger contexts
    """
    logger = logging.getLogger(logger_name)
    original_level = logger.level

    try:
        logger.setLevel(level)
        yield
    finally:
        logger.setLevel(original_level)


@contextmanager
def quiet(level: int = logging.CRITICAL):
    """
    Temporarily suppress all flexitree logging.

    Every module logger is a child of the 'flexitree' logger, so raising
    the package logger's level silences them all.

    Examples
    --------
    >>> with quiet():
    ...     best = tree.get_min_ssd_tree()

    >>> # Show only warnings
    >>> with quiet(logging.WARNING):
    ...     tree.change_root_to('A', 1.5)
    """
    with suppress_logger("flexitree", level):
        yield


# ============================================================================ #
# Backend Context Managers
# ============================================================================ #


@contextmanager
def use_backend(backend: str):
    """
    Temporarily force a specific backend for SSD computations.

    Parameters
    ----------
    backend : str
        'python', 'cpu' or 'best'.

    Raises
    ------
    ValueError
        If the requested backend does not exist.

    Examples
    --------
    >>> with use_backend('python'):
    ...     ssd = tree.get_sum_of_squared_distance()

    Notes
    -----
    - **Not thread-safe**: Uses module-level state
    - Original behavior restored on exit
    """
    global _backend_override

    from ._backend import get_available_backends

    available = get_available_backends()

    if backend != "best" and backend not in available:
        raise ValueError(
            f"Backend '{backend}' not available. "
            f"Available backends: {', '.join(available)}"
        )

    original_override = _backend_override

    try:
        _backend_override = backend
        yield
    finally:
        _backend_override = original_override


def get_backend_override() -> Optional[str]:
    """
    Get the current backend override, if any.

    >>> print(get_backend_override())
    None
    >>> with use_backend('python'):
    ...     print(get_backend_override())
    python
    """
    return _backend_override


# ============================================================================ #
# Edit Scopes
# ============================================================================ #


@contextmanager
def edit_scope(tree, listener=None):
    """
    Mark *tree* as being edited for the duration of the with-block.

    Sets ``tree._editing`` and calls ``listener(tree, True)`` on entry and
    ``listener(tree, False)`` on exit.  Nothing inside flexitree reads the
    flag; it exists for change-notification or undo hooks owned by the
    caller.
    """
    tree._editing = True
    if listener is not None:
        listener(tree, True)
    try:
        yield
    finally:
        tree._editing = False
        if listener is not None:
            listener(tree, False)
