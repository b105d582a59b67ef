"""
_backend.py
===========
Backend selection for the sum-of-squared-distances computation.

Two backends evaluate the same quantity:

- 'python' : reference post-order traversal over the node table
- 'cpu'    : LLVM-compiled kernel over the parent/height arrays (numba.njit)

Functions in this module have NO side effects - they only resolve names.
Logging is done by the calling code, not here.
"""

from typing import List


# Preference order: last is best.
_BACKENDS = ("python", "cpu")


def get_available_backends() -> List[str]:
    """
    Get list of execution backends, in preference order.

    Examples
    --------
    >>> get_available_backends()
    ['python', 'cpu']
    """
    return list(_BACKENDS)


def get_best_backend() -> str:
    """
    Get the most optimized backend.

    >>> get_best_backend()
    'cpu'
    """
    return _BACKENDS[-1]


def resolve_backend(backend: str) -> str:
    """
    Resolve a backend name to an actual backend.

    Parameters
    ----------
    backend : str
        'best' or one of the names returned by ``get_available_backends()``.

    Returns
    -------
    str
        Resolved backend name.

    Raises
    ------
    ValueError
        If the requested backend does not exist.

    Examples
    --------
    >>> resolve_backend('best')
    'cpu'

    >>> resolve_backend('python')
    'python'
    """
    if backend == "best":
        return get_best_backend()

    available = get_available_backends()
    if backend not in available:
        raise ValueError(
            f"Backend '{backend}' not available. "
            f"Available backends: {', '.join(available)}"
        )

    return backend
