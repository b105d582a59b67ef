"""
_utils.py
=========
General-purpose utility functions for flexitree.

These are standalone functions that don't depend on the main classes
and could be useful in multiple contexts.
"""


def format_newick(newick: str) -> str:
    """
    Format a NEWICK string for consistent representation.

    Ensures the NEWICK string:
    - Ends with a semicolon
    - Has no leading/trailing whitespace

    Parameters
    ----------
    newick : str
        NEWICK string to format.

    Returns
    -------
    str
        Formatted NEWICK string.

    Examples
    --------
    >>> format_newick('((A:1,B:1):1,(C:1,D:1):1)')
    '((A:1,B:1):1,(C:1,D:1):1);'

    >>> format_newick('  (A:1.0,B:2.0);  ')
    '(A:1.0,B:2.0);'
    """
    newick = newick.strip()
    if not newick.endswith(';'):
        newick += ';'
    return newick


def format_length(value) -> str:
    """
    Render a branch length the way the NEWICK writer emits it.

    Lengths are always written as floats so that integral values keep their
    decimal point.

    >>> format_length(8)
    '8.0'
    >>> format_length(0.5)
    '0.5'
    """
    return repr(float(value))
